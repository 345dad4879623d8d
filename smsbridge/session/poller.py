from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING, Callable, Optional

from smsbridge.observability import metrics as prom_metrics
from smsbridge.observability import tracing
from smsbridge.transfer.request import fetch_request

if TYPE_CHECKING:
    from smsbridge.session.session import AccountSession


logger = logging.getLogger(__name__)

# getSMS rejects date ranges wider than this.
MAX_AGE = timedelta(days=90)


@dataclass(frozen=True)
class PollWindow:
    date_from: date
    date_to: date


def poll_window(now: datetime) -> PollWindow:
    today = now.date()
    return PollWindow(date_from=today - MAX_AGE, date_to=today)


class Poller:
    """Fixed-interval fetch timer for one account session."""

    def __init__(
        self,
        *,
        session: "AccountSession",
        interval_seconds: float,
        clock: Callable[[], datetime],
    ) -> None:
        self._session = session
        self._interval = interval_seconds
        self._clock = clock
        self._task: Optional[asyncio.Task] = None
        self.ticks = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def submit_fetch(self) -> Optional[int]:
        """Submit a Fetch unless one is already in flight."""
        session = self._session
        if session.closed or session.fetches_in_flight > 0:
            return None
        window = poll_window(self._clock())
        token = session.multiplexer.submit(
            fetch_request(did=session.account.did, date_from=window.date_from, date_to=window.date_to)
        )
        prom_metrics.set_fetches_in_flight(account=session.username, value=session.fetches_in_flight)
        return token

    async def tick(self) -> Optional[int]:
        self.ticks += 1
        with tracing.start_span("sms.poll_tick", attributes={"sms.account": self._session.username}):
            token = self.submit_fetch()
            await self._session.drain()
        return token

    async def _run(self) -> None:
        while True:
            try:
                await self.tick()
            except Exception:
                logger.exception("%s: poll tick failed", self._session.username)
            await asyncio.sleep(self._interval)

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name=f"smsbridge-poll:{self._session.username}"
        )

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        if task is asyncio.current_task():
            return
        with contextlib.suppress(asyncio.CancelledError):
            await task
