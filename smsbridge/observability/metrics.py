from __future__ import annotations

import contextlib


try:
    from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest
except Exception as e:  # pragma: no cover
    raise RuntimeError("prometheus_client is required (pyproject dependencies)") from e


transfers_submitted_total = Counter(
    "sms_transfers_submitted_total",
    "API transfers submitted to the multiplexer by method.",
    labelnames=("method",),
)

transfers_completed_total = Counter(
    "sms_transfers_completed_total",
    "API transfers completed by method and transport status.",
    labelnames=("method", "status"),
)

transfer_latency_ms = Histogram(
    "sms_transfer_latency_ms",
    "API transfer latency in milliseconds.",
    labelnames=("method", "status"),
    buckets=(
        10,
        25,
        50,
        100,
        250,
        500,
        1000,
        2000,
        5000,
        10000,
        30000,
        60000,
    ),
)

poll_cycles_total = Counter(
    "sms_poll_cycles_total",
    "Completed fetch cycles by outcome.",
    labelnames=("status",),
)

messages_delivered_total = Counter(
    "sms_messages_delivered_total",
    "Inbound messages delivered to the host.",
)

messages_sent_total = Counter(
    "sms_messages_sent_total",
    "Outbound send attempts by outcome.",
    labelnames=("status",),
)

messages_deleted_total = Counter(
    "sms_messages_deleted_total",
    "Delete-after-fetch attempts by outcome.",
    labelnames=("status",),
)

fetches_in_flight = Gauge(
    "sms_fetches_in_flight",
    "Fetch requests currently in flight per account.",
    labelnames=("account",),
)


def inc_submitted(*, method: str) -> None:
    transfers_submitted_total.labels(method=method).inc()


def observe_transfer(*, method: str, duration_ms: int, status: str) -> None:
    transfers_completed_total.labels(method=method, status=status).inc()
    if duration_ms < 0:
        return
    transfer_latency_ms.labels(method=method, status=status).observe(duration_ms)


def inc_poll_cycle(*, status: str) -> None:
    poll_cycles_total.labels(status=status).inc()


def inc_delivered(*, count: int = 1) -> None:
    if count <= 0:
        return
    messages_delivered_total.inc(count)


def inc_sent(*, status: str) -> None:
    messages_sent_total.labels(status=status).inc()


def inc_deleted(*, status: str) -> None:
    messages_deleted_total.labels(status=status).inc()


def set_fetches_in_flight(*, account: str, value: int) -> None:
    fetches_in_flight.labels(account=account).set(value)


def remove_fetches_in_flight(*, account: str) -> None:
    # Sessions that never polled have no series to drop.
    with contextlib.suppress(KeyError):
        fetches_in_flight.remove(account)


def render_prometheus() -> tuple[bytes, str]:
    return generate_latest(), CONTENT_TYPE_LATEST
