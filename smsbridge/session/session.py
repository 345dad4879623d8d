from __future__ import annotations

import asyncio
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Callable, Optional

from smsbridge.api.envelope import decode_envelope, parse_messages
from smsbridge.config import AccountConfig
from smsbridge.errors import ApiError, DecodeError, PolicyError, SmsBridgeError, TransportError
from smsbridge.host.adapter import Host
from smsbridge.observability import metrics as prom_metrics
from smsbridge.observability import tracing
from smsbridge.observability.file_observability_log import (
    FileObservabilityLogger,
    build_observability_event,
)
from smsbridge.session.pipeline import MessagePipeline, order_oldest_first
from smsbridge.session.poller import Poller
from smsbridge.transfer.multiplexer import Completion, FetchBytesFn, TransferMultiplexer
from smsbridge.transfer.request import (
    DeleteAttachment,
    FetchAttachment,
    Request,
    SendAttachment,
    SendOutcome,
    delete_request,
    send_request,
)

if TYPE_CHECKING:
    from smsbridge.session.registry import SessionRegistry


logger = logging.getLogger(__name__)

# getSMS answers an empty mailbox with this status instead of an empty list.
EMPTY_FETCH_STATUSES = frozenset({"no_sms"})


class AccountSession:
    """State and operations for one logged-in account."""

    def __init__(
        self,
        *,
        account: AccountConfig,
        host: Host,
        registry: "SessionRegistry",
        fetch_bytes: Optional[FetchBytesFn] = None,
        multiplexer: Optional[TransferMultiplexer] = None,
        obs_logger: Optional[FileObservabilityLogger] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.account = account
        self.username = account.username
        self.host = host
        self.registry = registry
        self.closed = False
        self._tz = account.tzinfo()
        self._obs_logger = obs_logger
        self.multiplexer = multiplexer or TransferMultiplexer(
            credentials=account.credentials,
            base_url=account.api_url,
            fetch_bytes=fetch_bytes,
            timeout_seconds=account.request_timeout_seconds,
        )
        self.pipeline = MessagePipeline(
            account=account.username,
            host=host,
            delete_after_fetch=account.delete_after_fetch,
            delete_message=self.delete_message,
            obs_logger=obs_logger,
        )
        self.poller = Poller(
            session=self,
            interval_seconds=account.poll_interval_seconds,
            clock=clock or self._now,
        )

    def _now(self) -> datetime:
        if self._tz is None:
            return datetime.now().astimezone()
        return datetime.now(self._tz)

    @property
    def fetches_in_flight(self) -> int:
        return self.multiplexer.fetches_in_flight

    def _record(
        self,
        *,
        event_type: str,
        stage: str,
        cycle_id: str,
        status: str,
        duration_ms: Optional[int],
        fields: dict[str, Any],
    ) -> None:
        if self._obs_logger is None:
            return
        self._obs_logger.append(
            build_observability_event(
                event_type=event_type,
                stage=stage,
                account=self.username,
                cycle_id=cycle_id,
                occurred_at=datetime.now(timezone.utc),
                duration_ms=duration_ms,
                status=status,
                fields=fields,
            )
        )

    async def drain(self) -> int:
        """Process every transfer that finished since the last step."""
        delivered = 0
        for token in await self.multiplexer.step():
            # Every claimed token must be processed; step() will not return it again.
            try:
                delivered += await self.process(token)
            except Exception:
                logger.exception("%s: processing transfer %d failed", self.username, token)
        return delivered

    async def process(self, token: int) -> int:
        """Release one claimed transfer and run its completion handler.

        Returns the number of inbound messages delivered (Fetch only).
        """
        completion = self.multiplexer.completed(token)
        prom_metrics.set_fetches_in_flight(account=self.username, value=self.fetches_in_flight)

        attachment = completion.request.attachment
        if isinstance(attachment, FetchAttachment):
            return await self._complete_fetch(completion)
        if isinstance(attachment, SendAttachment):
            self._complete_send(completion, attachment)
            return 0
        if isinstance(attachment, DeleteAttachment):
            self._complete_delete(completion, attachment)
            return 0
        raise TypeError(f"unhandled attachment type: {type(attachment).__name__}")

    async def _complete_fetch(self, completion: Completion) -> int:
        cycle_id = uuid.uuid4().hex
        with tracing.start_span(
            "sms.fetch_complete",
            context=tracing.context_for_cycle(account=self.username, cycle_id=cycle_id),
        ):
            if completion.error is not None:
                logger.warning("%s: fetch failed: %s", self.username, completion.error)
                return self._fetch_abandoned(completion, cycle_id=cycle_id, status="TRANSPORT_ERROR")
            try:
                payload = decode_envelope(completion.body)
            except ApiError as e:
                if e.status in EMPTY_FETCH_STATUSES:
                    return self._fetch_abandoned(completion, cycle_id=cycle_id, status="EMPTY")
                logger.warning("%s: fetch rejected by api: %s", self.username, e.status)
                return self._fetch_abandoned(completion, cycle_id=cycle_id, status="API_ERROR", error=e)
            except DecodeError as e:
                logger.error("%s: %s; raw=%r", self.username, e, e.raw[:512])
                return self._fetch_abandoned(completion, cycle_id=cycle_id, status="DECODE_ERROR", error=e)

            messages = order_oldest_first(parse_messages(payload, tz=self._tz))
            delivered = await self.pipeline.deliver(messages, cycle_id=cycle_id)

        prom_metrics.inc_poll_cycle(status="OK")
        self._record(
            event_type="FETCH_COMPLETE",
            stage="FETCH",
            cycle_id=cycle_id,
            status="OK",
            duration_ms=completion.duration_ms,
            fields={"message_count": len(messages), "delivered": delivered},
        )
        if delivered:
            logger.info("%s: delivered %d message(s)", self.username, delivered)
        return delivered

    def _fetch_abandoned(
        self,
        completion: Completion,
        *,
        cycle_id: str,
        status: str,
        error: Optional[SmsBridgeError] = None,
    ) -> int:
        error = error or completion.error
        prom_metrics.inc_poll_cycle(status=status)
        self._record(
            event_type="FETCH_COMPLETE",
            stage="FETCH",
            cycle_id=cycle_id,
            status=status,
            duration_ms=completion.duration_ms,
            fields={"error": str(error)} if error is not None else {},
        )
        return 0

    def _complete_send(self, completion: Completion, attachment: SendAttachment) -> None:
        error: Optional[SmsBridgeError] = completion.error
        if error is None:
            try:
                decode_envelope(completion.body)
            except (ApiError, DecodeError) as e:
                error = e
        if attachment.outcome.done():
            return
        attachment.outcome.set_result(SendOutcome(error=error))

    def _complete_delete(self, completion: Completion, attachment: DeleteAttachment) -> None:
        error: Optional[SmsBridgeError] = completion.error
        if error is None:
            try:
                decode_envelope(completion.body)
            except (ApiError, DecodeError) as e:
                error = e
        if error is not None:
            logger.warning("%s: delete of message %s failed: %s", self.username, attachment.message_id, error)
        prom_metrics.inc_deleted(status="OK" if error is None else "FAILED")
        if not attachment.result.done():
            attachment.result.set_result(error is None)

    async def _await_own(self, token: int) -> None:
        if await self.multiplexer.wait(token):
            await self.process(token)

    async def send_message(self, recipient: str, body: str) -> SendOutcome:
        logger.info("sending message from %s to %s", self.username, recipient)
        t0 = time.perf_counter()
        with tracing.start_span("sms.send", attributes={"sms.account": self.username}):
            outcome = await self._send(recipient, body)
        duration_ms = int((time.perf_counter() - t0) * 1000)

        if outcome.success:
            status = "OK"
            peer = self.registry.get(recipient)
            if peer is not None and not peer.closed:
                self.host.got_message(
                    account=peer.username,
                    sender=self.username,
                    body=body.strip(),
                    timestamp=time.time(),
                )
        else:
            status = "BLOCKED" if isinstance(outcome.error, PolicyError) else "FAILED"
            logger.warning("%s: send to %s failed: %s", self.username, recipient, outcome.error_detail)
            self.host.present_error(account=self.username, who=recipient, text=outcome.error_detail or "")

        prom_metrics.inc_sent(status=status)
        self._record(
            event_type="SEND_COMPLETE",
            stage="SEND",
            cycle_id="-",
            status=status,
            duration_ms=duration_ms,
            fields={"recipient": recipient, "error": outcome.error_detail},
        )
        return outcome

    async def _send(self, recipient: str, body: str) -> SendOutcome:
        if self.closed:
            return SendOutcome(error=TransportError("session is closed"))
        if self.host.has_account(recipient) and not self.host.privacy_allows(
            account=recipient, sender=self.username
        ):
            logger.info("discarding; %s is blocked by %s's privacy settings", self.username, recipient)
            return SendOutcome(error=PolicyError(sender=self.username, recipient=recipient))

        outcome: asyncio.Future[SendOutcome] = asyncio.get_running_loop().create_future()
        token = self.multiplexer.submit(
            send_request(did=self.account.did, recipient=recipient, body=body, outcome=outcome)
        )
        await self._await_own(token)
        return await outcome

    async def delete_message(self, message_id: str) -> bool:
        if self.closed:
            return False
        result: asyncio.Future[bool] = asyncio.get_running_loop().create_future()
        token = self.multiplexer.submit(delete_request(message_id=message_id, result=result))
        await self._await_own(token)
        return await result

    async def poll_once(self) -> int:
        """Fetch and deliver one cycle immediately; returns messages delivered."""
        token = self.poller.submit_fetch()
        if token is None:
            return await self.drain()
        if await self.multiplexer.wait(token):
            return await self.process(token)
        return 0

    def start(self) -> None:
        self.poller.start()

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        await self.poller.stop()
        for ctx in await self.multiplexer.abandon():
            _resolve_abandoned(ctx.request, TransportError("session is closed"))
        prom_metrics.remove_fetches_in_flight(account=self.username)
        logger.info("%s: session closed", self.username)


def _resolve_abandoned(request: Request, error: TransportError) -> None:
    attachment = request.attachment
    if isinstance(attachment, SendAttachment) and not attachment.outcome.done():
        attachment.outcome.set_result(SendOutcome(error=error))
    elif isinstance(attachment, DeleteAttachment) and not attachment.result.done():
        attachment.result.set_result(False)
