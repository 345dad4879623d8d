from __future__ import annotations

import asyncio
import json
from typing import Any, Optional, Union
from urllib.parse import parse_qsl, urlsplit

from smsbridge.config import AccountConfig, account_from_mapping
from smsbridge.host.adapter import Host
from smsbridge.session.presence import STATUS_ONLINE


Response = Union[bytes, BaseException]


def envelope(status: str = "success", **payload: Any) -> bytes:
    return json.dumps({"status": status, **payload}).encode("utf-8")


def sms(id_: str, date: str, contact: str = "5145550199", message: str = "hi") -> dict[str, str]:
    return {"id": id_, "date": date, "contact": contact, "message": message}


def make_account(**overrides: Any) -> AccountConfig:
    obj: dict[str, Any] = {
        "username": "alice@example.com",
        "password": "secret",
        "did": "5145550100",
        "api_url": "https://api.example/rest.php",
        "poll_interval_seconds": 30,
        "timezone": "UTC",
    }
    obj.update(overrides)
    return account_from_mapping(obj)


class FakeApi:
    """Async stand-in for the HTTP fetcher, answering by api method."""

    def __init__(self, responses: Optional[dict[str, Union[Response, list[Response]]]] = None) -> None:
        self._responses: dict[str, Union[Response, list[Response]]] = dict(responses or {})
        self.calls: list[dict[str, str]] = []
        self.urls: list[str] = []
        self.gates: dict[str, asyncio.Event] = {}
        self.events: Optional[list[str]] = None

    def hold(self, method: str) -> asyncio.Event:
        gate = asyncio.Event()
        self.gates[method] = gate
        return gate

    def calls_for(self, method: str) -> list[dict[str, str]]:
        return [c for c in self.calls if c.get("method") == method]

    async def __call__(self, url: str) -> bytes:
        params = dict(parse_qsl(urlsplit(url).query))
        self.calls.append(params)
        self.urls.append(url)
        method = params["method"]
        if self.events is not None and method == "deleteSMS":
            self.events.append(f"delete:{params['id']}")
        gate = self.gates.get(method)
        if gate is not None:
            await gate.wait()

        resp = self._responses.get(method, envelope())
        if isinstance(resp, list):
            resp = resp.pop(0) if len(resp) > 1 else resp[0]
        if isinstance(resp, BaseException):
            raise resp
        return resp


class RecordingHost(Host):
    def __init__(
        self,
        *,
        accounts: Optional[set[str]] = None,
        deny: Optional[dict[str, set[str]]] = None,
        buddies: Optional[dict[str, set[str]]] = None,
        statuses: Optional[dict[str, str]] = None,
    ) -> None:
        self.accounts = set(accounts or ())
        self.deny = dict(deny or {})
        self.buddies = dict(buddies or {})
        self.status_ids = dict(statuses or {})
        self.messages: list[tuple[str, str, str, float]] = []
        self.errors: list[tuple[str, str, str]] = []
        self.user_statuses: list[tuple[str, str, str, Optional[str]]] = []
        self.events: Optional[list[str]] = None

    def got_message(self, *, account: str, sender: str, body: str, timestamp: float) -> None:
        self.messages.append((account, sender, body, timestamp))
        if self.events is not None:
            self.events.append(f"deliver:{body}")

    def present_error(self, *, account: str, who: str, text: str) -> None:
        self.errors.append((account, who, text))

    def has_account(self, name: str) -> bool:
        return name in self.accounts

    def privacy_allows(self, *, account: str, sender: str) -> bool:
        return sender not in self.deny.get(account, set())

    def find_buddy(self, *, account: str, who: str) -> bool:
        return who in self.buddies.get(account, set())

    def active_status(self, *, account: str) -> tuple[str, Optional[str]]:
        return self.status_ids.get(account, STATUS_ONLINE), None

    def got_user_status(
        self, *, account: str, who: str, status_id: str, message: Optional[str]
    ) -> None:
        self.user_statuses.append((account, who, status_id, message))
