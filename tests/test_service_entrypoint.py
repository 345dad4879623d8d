import asyncio
import subprocess
import sys
import unittest
from pathlib import Path

from smsbridge.bridge.main import serve
from smsbridge.config import load_config
from tests.fakes import FakeApi, RecordingHost, envelope, sms


REPO_ROOT = Path(__file__).resolve().parents[1]


class TestServiceEntrypoint(unittest.TestCase):
    def test_bridge_starts_in_dry_run(self) -> None:
        cp = subprocess.run(
            [
                sys.executable,
                "-m",
                "smsbridge.bridge.main",
                "--dry-run",
                "--config",
                "configs/dev.yaml",
            ],
            cwd=str(REPO_ROOT),
            capture_output=True,
            text=True,
            check=False,
        )
        if cp.returncode != 0:
            msg = f"bridge failed: rc={cp.returncode}\nstdout:\n{cp.stdout}\nstderr:\n{cp.stderr}"
            raise AssertionError(msg)
        self.assertIn("SMSBRIDGE_DRY_RUN_OK", cp.stdout)


class TestServe(unittest.IsolatedAsyncioTestCase):
    async def test_serve_polls_every_account_until_stopped(self) -> None:
        cfg = load_config(path=REPO_ROOT / "configs" / "dev.yaml")
        api = FakeApi({"getSMS": envelope(sms=[sms("1", "2024-03-30 10:00:00", message="hello")])})
        host = RecordingHost(accounts={a.username for a in cfg.accounts})
        stop = asyncio.Event()

        task = asyncio.ensure_future(serve(cfg, stop=stop, host=host, fetch_bytes=api))
        for _ in range(50):
            if {m[0] for m in host.messages} == {"alice@example.com", "bob@example.com"}:
                break
            await asyncio.sleep(0)
        stop.set()
        await asyncio.wait_for(task, timeout=5)

        self.assertEqual({m[0] for m in host.messages}, {"alice@example.com", "bob@example.com"})
        dids = {c["did"] for c in api.calls_for("getSMS")}
        self.assertEqual(dids, {"5145550100", "5145550101"})


if __name__ == "__main__":
    unittest.main()
