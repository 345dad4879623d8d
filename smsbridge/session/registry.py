from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Iterator, Optional

from smsbridge.config import AccountConfig
from smsbridge.host.adapter import Host
from smsbridge.observability.file_observability_log import FileObservabilityLogger
from smsbridge.session import presence
from smsbridge.session.session import AccountSession
from smsbridge.transfer.multiplexer import FetchBytesFn


logger = logging.getLogger(__name__)


class SessionRegistry:
    """Logged-in account sessions keyed by account username."""

    def __init__(self) -> None:
        self._sessions: dict[str, AccountSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, username: object) -> bool:
        return username in self._sessions

    def __iter__(self) -> Iterator[AccountSession]:
        return iter(list(self._sessions.values()))

    def get(self, username: str) -> Optional[AccountSession]:
        return self._sessions.get(username)

    def usernames(self) -> list[str]:
        return list(self._sessions)

    def register(self, session: AccountSession) -> None:
        if session.username in self._sessions:
            raise ValueError(f"account already logged in: {session.username}")
        self._sessions[session.username] = session

    def unregister(self, session: AccountSession) -> None:
        if self._sessions.get(session.username) is session:
            del self._sessions[session.username]


def login(
    account: AccountConfig,
    *,
    host: Host,
    registry: SessionRegistry,
    fetch_bytes: Optional[FetchBytesFn] = None,
    obs_logger: Optional[FileObservabilityLogger] = None,
    clock: Optional[Callable[[], datetime]] = None,
    start_polling: bool = True,
) -> AccountSession:
    """Create, register and start a session; must run inside the event loop."""
    logger.info("logging in %s", account.username)
    session = AccountSession(
        account=account,
        host=host,
        registry=registry,
        fetch_bytes=fetch_bytes,
        obs_logger=obs_logger,
        clock=clock,
    )
    registry.register(session)
    presence.announce_login(host=host, registry=registry, username=session.username)
    if start_polling:
        session.start()
    return session


async def close(session: AccountSession, *, registry: SessionRegistry) -> None:
    await session.close()
    registry.unregister(session)
    presence.announce_logout(host=session.host, registry=registry, username=session.username)
