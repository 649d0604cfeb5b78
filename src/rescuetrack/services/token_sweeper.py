"""Token sweeper — removes expired refresh rows in the background.

Learn: Expired refresh secrets are already useless (rotation rejects
them), so sweeping is housekeeping only. The sweeper runs as a
long-lived task in the FastAPI lifespan; each pass gets its own DB
session. The CLI "sweep-tokens" command runs a single pass.

Usage:
    sweeper = TokenSweeper()
    asyncio.create_task(sweeper.run_loop())
"""

import asyncio

import structlog

from rescuetrack.auth.session_issuer import SessionIssuer
from rescuetrack.config import settings
from rescuetrack.db.engine import async_session_factory

logger = structlog.get_logger()


async def sweep_once() -> int:
    """Delete every expired refresh row. Returns how many were removed."""
    async with async_session_factory() as db:
        removed = await SessionIssuer(db).sweep_expired()
    if removed:
        logger.info("token_sweeper.swept", removed=removed)
    return removed


class TokenSweeper:
    def __init__(self, interval: float | None = None):
        self.interval = interval or settings.token_sweep_interval_seconds
        self._running = False

    async def run_loop(self) -> None:
        self._running = True
        logger.info("token_sweeper.started", interval=self.interval)

        while self._running:
            try:
                await sweep_once()
            except Exception:
                logger.exception("token_sweeper.error")
            await asyncio.sleep(self.interval)

    def stop(self) -> None:
        """Signal the sweeper to stop after the current pass."""
        self._running = False
        logger.info("token_sweeper.stopping")
