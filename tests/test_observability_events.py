import json
import re
import tempfile
import unittest
from pathlib import Path

from smsbridge.observability import tracing
from smsbridge.observability.file_observability_log import FileObservabilityLogger
from smsbridge.session.registry import SessionRegistry, close, login
from tests.fakes import FakeApi, RecordingHost, envelope, make_account, sms


class TestObservabilityEvents(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        tracing.init_tracing(enabled=True, service_name="smsbridge-test")

    def tearDown(self) -> None:
        tracing.reset_tracing_for_tests()

    async def test_cycle_events_share_cycle_and_trace(self) -> None:
        api = FakeApi(
            {
                "getSMS": envelope(
                    sms=[sms("2", "2024-03-30 10:00:02"), sms("1", "2024-03-30 10:00:01")]
                ),
                "sendSMS": envelope("invalid_dst"),
            }
        )
        registry = SessionRegistry()

        with tempfile.TemporaryDirectory() as td:
            session = login(
                make_account(),
                host=RecordingHost(),
                registry=registry,
                fetch_bytes=api,
                obs_logger=FileObservabilityLogger(base_dir=Path(td)),
                start_polling=False,
            )
            await session.poll_once()
            await session.send_message("5145550199", "hi")
            await close(session, registry=registry)

            files = list((Path(td) / "observability" / "alice@example.com").glob("*.jsonl"))
            self.assertEqual(len(files), 1)
            events = [json.loads(line) for line in files[0].read_text(encoding="utf-8").splitlines()]

        self.assertEqual(
            [e["event_type"] for e in events],
            ["MESSAGE_DELIVERED", "MESSAGE_DELIVERED", "FETCH_COMPLETE", "SEND_COMPLETE"],
        )
        delivered = events[:2]
        fetch = events[2]
        self.assertEqual({e["cycle_id"] for e in delivered}, {fetch["cycle_id"]})
        self.assertEqual(delivered[0]["trace_id"], delivered[1]["trace_id"])
        self.assertTrue(re.fullmatch(r"[0-9a-f]{32}", delivered[0]["trace_id"]))
        self.assertEqual([e["fields"]["sms_id"] for e in delivered], ["1", "2"])
        self.assertEqual(fetch["fields"], {"message_count": 2, "delivered": 2})

        send = events[3]
        self.assertEqual(send["status"], "FAILED")
        self.assertIn("invalid_dst", send["fields"]["error"])


if __name__ == "__main__":
    unittest.main()
