from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional, Sequence

from smsbridge.api.envelope import Message
from smsbridge.host.adapter import Host
from smsbridge.observability import metrics as prom_metrics
from smsbridge.observability.file_observability_log import (
    FileObservabilityLogger,
    build_observability_event,
)


logger = logging.getLogger(__name__)

DeleteFn = Callable[[str], Awaitable[bool]]


def order_oldest_first(messages: Sequence[Message]) -> list[Message]:
    # The API lists newest first; reversing keeps equal timestamps in arrival order.
    return sorted(reversed(messages), key=lambda m: m.timestamp)


@dataclass
class MessagePipeline:
    account: str
    host: Host
    delete_after_fetch: bool
    delete_message: DeleteFn
    obs_logger: Optional[FileObservabilityLogger] = None

    async def deliver(self, messages: Sequence[Message], *, cycle_id: str = "-") -> int:
        """Deliver `messages` in the given order; returns the number delivered."""
        delivered = 0
        for msg in messages:
            self.host.got_message(
                account=self.account,
                sender=msg.contact,
                body=msg.body,
                timestamp=msg.epoch(),
            )
            delivered += 1
            prom_metrics.inc_delivered()

            deleted: Optional[bool] = None
            if self.delete_after_fetch:
                deleted = await self.delete_message(msg.id)
                if not deleted:
                    logger.warning("%s: could not delete message %s after delivery", self.account, msg.id)

            if self.obs_logger is not None:
                self.obs_logger.append(
                    build_observability_event(
                        event_type="MESSAGE_DELIVERED",
                        stage="DELIVER",
                        account=self.account,
                        cycle_id=cycle_id,
                        occurred_at=datetime.now(timezone.utc),
                        duration_ms=None,
                        status="OK" if deleted is not False else "DELETE_FAILED",
                        fields={"sms_id": msg.id, "contact": msg.contact, "deleted": deleted},
                    )
                )
        return delivered
