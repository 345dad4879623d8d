from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import date
from typing import Optional, Union

from smsbridge.api.query import METHOD_DELETE, METHOD_FETCH, METHOD_SEND, METHODS
from smsbridge.errors import SmsBridgeError, TransportError


@dataclass(frozen=True)
class SendOutcome:
    error: Optional[SmsBridgeError] = None

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def error_detail(self) -> Optional[str]:
        return None if self.error is None else str(self.error)


@dataclass(frozen=True)
class FetchAttachment:
    pass


@dataclass(frozen=True)
class SendAttachment:
    outcome: "asyncio.Future[SendOutcome]"
    recipient: str
    body: str


@dataclass(frozen=True)
class DeleteAttachment:
    message_id: str
    result: "asyncio.Future[bool]"


Attachment = Union[FetchAttachment, SendAttachment, DeleteAttachment]

_ATTACHMENT_FOR_METHOD = {
    METHOD_FETCH: FetchAttachment,
    METHOD_SEND: SendAttachment,
    METHOD_DELETE: DeleteAttachment,
}


@dataclass(frozen=True)
class Request:
    method: str
    params: tuple[tuple[str, str], ...]
    attachment: Attachment

    def __post_init__(self) -> None:
        if self.method not in METHODS:
            raise ValueError(f"unsupported api method: {self.method}")
        expected = _ATTACHMENT_FOR_METHOD[self.method]
        if not isinstance(self.attachment, expected):
            raise TypeError(
                f"{self.method} request requires {expected.__name__}, "
                f"got {type(self.attachment).__name__}"
            )


@dataclass
class RequestContext:
    token: int
    request: Request
    url: str
    started_at: float
    body: bytearray = field(default_factory=bytearray)
    error: Optional[TransportError] = None


def fetch_request(*, did: str, date_from: date, date_to: date) -> Request:
    return Request(
        method=METHOD_FETCH,
        params=(
            ("from", date_from.isoformat()),
            ("to", date_to.isoformat()),
            ("type", "1"),
            ("did", did),
        ),
        attachment=FetchAttachment(),
    )


def send_request(
    *, did: str, recipient: str, body: str, outcome: "asyncio.Future[SendOutcome]"
) -> Request:
    text = body.strip()
    return Request(
        method=METHOD_SEND,
        params=(("did", did), ("dst", recipient), ("message", text)),
        attachment=SendAttachment(outcome=outcome, recipient=recipient, body=text),
    )


def delete_request(*, message_id: str, result: "asyncio.Future[bool]") -> Request:
    return Request(
        method=METHOD_DELETE,
        params=(("id", message_id),),
        attachment=DeleteAttachment(message_id=message_id, result=result),
    )
