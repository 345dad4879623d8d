from __future__ import annotations

import sys
from datetime import datetime, timezone
from typing import Optional, Sequence, TextIO

from smsbridge.config import AccountConfig
from smsbridge.host.adapter import Host
from smsbridge.session.presence import STATUS_ONLINE


def _format_ts(timestamp: float) -> str:
    dt = datetime.fromtimestamp(timestamp, tz=timezone.utc).replace(microsecond=0)
    return dt.isoformat().replace("+00:00", "Z")


class ConsoleHost(Host):
    """Host backed by configured accounts that writes conversations to text streams."""

    def __init__(
        self,
        *,
        accounts: Sequence[AccountConfig],
        out: Optional[TextIO] = None,
        err: Optional[TextIO] = None,
    ) -> None:
        self._accounts = {a.username: a for a in accounts}
        self._out = out if out is not None else sys.stdout
        self._err = err if err is not None else sys.stderr
        self.statuses: dict[tuple[str, str], str] = {}

    def got_message(self, *, account: str, sender: str, body: str, timestamp: float) -> None:
        self._out.write(f"[{_format_ts(timestamp)}] {account} <- {sender}: {body}\n")
        self._out.flush()

    def present_error(self, *, account: str, who: str, text: str) -> None:
        self._err.write(f"{account} -> {who}: {text}\n")
        self._err.flush()

    def has_account(self, name: str) -> bool:
        return name in self._accounts

    def privacy_allows(self, *, account: str, sender: str) -> bool:
        acct = self._accounts.get(account)
        if acct is None:
            return True
        return sender not in acct.deny

    def find_buddy(self, *, account: str, who: str) -> bool:
        acct = self._accounts.get(account)
        return acct is not None and who in acct.buddies

    def active_status(self, *, account: str) -> tuple[str, Optional[str]]:
        acct = self._accounts.get(account)
        return STATUS_ONLINE, (acct.status_message if acct is not None else None)

    def got_user_status(
        self, *, account: str, who: str, status_id: str, message: Optional[str]
    ) -> None:
        self.statuses[(account, who)] = status_id
        suffix = f": {message}" if message else ""
        self._out.write(f"{account} sees {who} is {status_id}{suffix}\n")
        self._out.flush()
