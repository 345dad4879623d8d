from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, tzinfo
from typing import Any, Optional

from smsbridge.api.contracts import contract_errors
from smsbridge.errors import ApiError, DecodeError


logger = logging.getLogger(__name__)

SUCCESS_STATUS = "success"
SMS_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass(frozen=True)
class Message:
    id: str
    contact: str
    body: str
    timestamp: datetime

    def epoch(self) -> float:
        return self.timestamp.timestamp()


def parse_sms_date(value: str, *, tz: Optional[tzinfo] = None) -> datetime:
    """Parse an API date; naive values are taken in `tz` or the local zone."""
    naive = datetime.strptime(value.strip(), SMS_DATE_FORMAT)
    if tz is None:
        return naive.astimezone()
    return naive.replace(tzinfo=tz)


def decode_envelope(raw: bytes) -> dict[str, Any]:
    try:
        obj = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise DecodeError(f"response is not valid JSON: {e}", raw=raw) from e

    errors = contract_errors(name="ResponseEnvelope", version="1.0.0", obj=obj)
    if errors:
        raise DecodeError(f"unexpected response envelope: {'; '.join(errors)}", raw=raw)

    status = obj["status"]
    if status != SUCCESS_STATUS:
        raise ApiError(status)
    return obj


def parse_messages(payload: dict[str, Any], *, tz: Optional[tzinfo] = None) -> list[Message]:
    """Return the payload's SMS entries in server order."""
    entries = payload.get("sms", [])
    out: list[Message] = []
    for idx, item in enumerate(entries):
        errors = contract_errors(name="SmsEntry", version="1.0.0", obj=item)
        if errors:
            logger.warning("skipping sms entry %d: %s", idx, "; ".join(errors))
            continue
        try:
            timestamp = parse_sms_date(item["date"], tz=tz)
        except ValueError as e:
            logger.warning("skipping sms entry %d: bad date %r (%s)", idx, item["date"], e)
            continue
        out.append(
            Message(
                id=str(item["id"]),
                contact=str(item["contact"]),
                body=item["message"],
                timestamp=timestamp,
            )
        )
    return out
