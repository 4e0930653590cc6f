"""
auth/sweeper.py -- Periodic removal of expired refresh tokens and blacklist entries.

The sweeper is an asyncio task with an explicit start()/stop() lifecycle,
started and stopped by the API lifespan. It talks to the rest of the system
only through the shared database.

Each tick runs the two DELETE statements in a worker thread under its own
timeout (asyncio.wait_for), independent of the interval timer. A failed or
timed-out tick is logged and the loop carries on -- expired rows are inert,
they just accumulate until the next successful tick.

On timeout wait_for stops waiting, but the worker thread finishes its current
statement; each DELETE is its own transaction, so nothing is left half-done.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime

from auth.store import utcnow
from auth.token_store import RefreshTokenStore, RevocationLedger

logger = logging.getLogger("authgate.auth.sweeper")


@dataclass(frozen=True)
class SweepResult:
    refresh_tokens_deleted: int
    blacklist_entries_deleted: int


def sweep(refresh_tokens: RefreshTokenStore, ledger: RevocationLedger, now: datetime | None = None) -> SweepResult:
    """Delete everything that expired before now. Synchronous; shared with the CLI."""
    now = now or utcnow()
    return SweepResult(
        blacklist_entries_deleted=ledger.cleanup(now),
        refresh_tokens_deleted=refresh_tokens.cleanup(now),
    )


class ExpirySweeper:
    """Background task that calls sweep() every `interval` seconds.

    Usage (inside a running event loop):
        sweeper = ExpirySweeper(refresh_tokens, ledger, interval=3600, timeout=30)
        sweeper.start()
        ...
        await sweeper.stop()
    """

    def __init__(
        self,
        refresh_tokens: RefreshTokenStore,
        ledger: RevocationLedger,
        interval: float = 60 * 60,
        timeout: float = 30,
    ) -> None:
        self.refresh_tokens = refresh_tokens
        self.ledger = ledger
        self.interval = interval
        self.timeout = timeout
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name="authgate-expiry-sweeper")
        logger.info("Token cleanup worker started (interval=%ss, timeout=%ss)", self.interval, self.timeout)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Token cleanup worker stopped")

    async def run_once(self) -> SweepResult | None:
        """Run one bounded cleanup. Returns None if it failed or timed out."""
        try:
            result = await asyncio.wait_for(
                asyncio.to_thread(sweep, self.refresh_tokens, self.ledger),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.error("Token cleanup timed out after %ss", self.timeout)
            return None
        except Exception:
            logger.exception("Failed to cleanup expired tokens")
            return None
        logger.debug(
            "Cleaned up expired tokens (refresh=%d, blacklist=%d)",
            result.refresh_tokens_deleted,
            result.blacklist_entries_deleted,
        )
        return result

    async def _loop(self) -> None:
        # CancelledError from stop() propagates out of asyncio.sleep and ends the loop.
        while True:
            await asyncio.sleep(self.interval)
            await self.run_once()
