from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional


class Host(ABC):
    """Boundary to the chat host that owns accounts, buddy lists and conversations."""

    @abstractmethod
    def got_message(self, *, account: str, sender: str, body: str, timestamp: float) -> None:
        """Deliver an inbound message to `account`'s conversation with `sender`."""

    @abstractmethod
    def present_error(self, *, account: str, who: str, text: str) -> None:
        """Show a user-visible error in `account`'s conversation with `who`."""

    @abstractmethod
    def has_account(self, name: str) -> bool:
        """Return True if `name` is an account known to the host for this protocol."""

    @abstractmethod
    def privacy_allows(self, *, account: str, sender: str) -> bool:
        """Return True if `account`'s privacy rules accept messages from `sender`."""

    @abstractmethod
    def find_buddy(self, *, account: str, who: str) -> bool:
        """Return True if `who` is on `account`'s buddy list."""

    @abstractmethod
    def active_status(self, *, account: str) -> tuple[str, Optional[str]]:
        """Return (status_id, status message) for `account`."""

    @abstractmethod
    def got_user_status(
        self, *, account: str, who: str, status_id: str, message: Optional[str]
    ) -> None:
        """Tell `account` that buddy `who` now has `status_id`."""
