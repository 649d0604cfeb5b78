"""Authentication and authorization.

Learn: Three pieces cooperate:
1. Credential store + session issuer → JWT access tokens and hashed,
   single-use rotating refresh secrets
2. Auth dependencies → "current identity" (required or optional) per request
3. Access policy → pure allow/deny decisions over a case snapshot
"""
