"""Real-time infrastructure — fan-out, subscriber registry, WebSocket.

Learn: Events flow:
1. Services → Broadcaster (after commit, fire-and-forget)
2. Broadcaster → publisher: Redis PUBLISH when Redis is up, otherwise the
   local subscriber registry directly
3. Redis relay → registry → WebSocket clients

This decouples event producers (services) from consumers (WebSocket clients).
"""
