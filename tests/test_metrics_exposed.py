import unittest

from smsbridge.observability.metrics import render_prometheus
from smsbridge.session.registry import SessionRegistry, close, login
from tests.fakes import FakeApi, RecordingHost, envelope, make_account, sms


class TestMetricsExposed(unittest.IsolatedAsyncioTestCase):
    async def test_poll_and_send_are_counted(self) -> None:
        api = FakeApi({"getSMS": envelope(sms=[sms("1", "2024-03-30 10:00:00")])})
        registry = SessionRegistry()
        session = login(
            make_account(username="metrics@example.com", delete_after_fetch=True),
            host=RecordingHost(),
            registry=registry,
            fetch_bytes=api,
            start_polling=False,
        )
        await session.poll_once()
        await session.send_message("5145550199", "hi")
        open_body = render_prometheus()[0].decode("utf-8")
        await close(session, registry=registry)

        body_bytes, content_type = render_prometheus()
        body = body_bytes.decode("utf-8")

        self.assertTrue(content_type.startswith("text/plain"))
        for name in (
            "sms_transfers_submitted_total",
            "sms_transfers_completed_total",
            "sms_transfer_latency_ms",
            "sms_poll_cycles_total",
            "sms_messages_delivered_total",
            "sms_messages_sent_total",
            "sms_messages_deleted_total",
            "sms_fetches_in_flight",
        ):
            self.assertIn(name, body)
        self.assertIn('sms_fetches_in_flight{account="metrics@example.com"} 0.0', open_body)
        self.assertNotIn('sms_fetches_in_flight{account="metrics@example.com"}', body)

    async def test_closing_an_idle_session_has_no_gauge_to_drop(self) -> None:
        registry = SessionRegistry()
        session = login(
            make_account(username="idle@example.com"),
            host=RecordingHost(),
            registry=registry,
            fetch_bytes=FakeApi(),
            start_polling=False,
        )
        await close(session, registry=registry)

        body = render_prometheus()[0].decode("utf-8")
        self.assertNotIn('account="idle@example.com"', body)
        self.assertIn('sms_transfers_submitted_total{method="deleteSMS"}', body)


if __name__ == "__main__":
    unittest.main()
