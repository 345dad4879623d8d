import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from smsbridge.config import load_config
from smsbridge.observability.config import load_observability_config
from smsbridge.runtime.config import validate_config_file


REPO_ROOT = Path(__file__).resolve().parents[1]

MINIMAL = """\
accounts:
  - username: carol@example.com
    {password}
    did: {did}
"""


class TestConfigLoad(unittest.TestCase):
    def _write(self, td: str, text: str) -> Path:
        path = Path(td) / "cfg.yaml"
        path.write_text(text, encoding="utf-8")
        return path

    def test_dev_config_loads(self) -> None:
        cfg = load_config(path=REPO_ROOT / "configs" / "dev.yaml")

        self.assertTrue(cfg.config_sha256.startswith("sha256:"))
        self.assertEqual(cfg.api_url, "https://voip.ms/api/v1/rest.php")
        self.assertEqual(cfg.logging.level, "INFO")
        self.assertEqual([a.username for a in cfg.accounts], ["alice@example.com", "bob@example.com"])

        alice = cfg.account("alice@example.com")
        self.assertEqual(alice.did, "5145550100")
        self.assertEqual(alice.timezone, "America/Toronto")
        self.assertFalse(alice.delete_after_fetch)
        self.assertEqual(alice.credentials.password, "dev-password")

        bob = cfg.account("bob@example.com")
        self.assertTrue(bob.delete_after_fetch)
        self.assertIsNone(bob.tzinfo())
        self.assertEqual(bob.deny, ("mallory@example.com",))
        self.assertEqual(bob.api_url, cfg.api_url)

        with self.assertRaises(KeyError):
            cfg.account("nobody@example.com")

        obs = load_observability_config(path=REPO_ROOT / "configs" / "dev.yaml")
        self.assertFalse(obs.metrics_enabled)
        self.assertIsNone(obs.events_dir)

    def test_defaults_and_numeric_did(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            cfg = load_config(path=self._write(td, MINIMAL.format(password="password: pw", did=5145550102)))

        acct = cfg.accounts[0]
        self.assertEqual(acct.did, "5145550102")
        self.assertEqual(acct.api_url, "https://voip.ms/api/v1/rest.php")
        self.assertEqual(acct.poll_interval_seconds, 30)
        self.assertEqual(acct.request_timeout_seconds, 30.0)
        self.assertEqual(acct.buddies, ())
        self.assertIsNone(acct.status_message)

    def test_password_from_environment(self) -> None:
        text = MINIMAL.format(password="password_env: CAROL_VOIPMS_PASSWORD", did='"5145550102"')
        with tempfile.TemporaryDirectory() as td:
            path = self._write(td, text)
            with mock.patch.dict(os.environ, {"CAROL_VOIPMS_PASSWORD": "from-env"}):
                cfg = load_config(path=path)
            self.assertEqual(cfg.accounts[0].password, "from-env")

            with mock.patch.dict(os.environ, {}, clear=True):
                with self.assertRaises(ValueError):
                    load_config(path=path)

    def test_invalid_configs_are_rejected(self) -> None:
        account = "  - username: carol@example.com\n    password: pw\n    did: \"5145550102\"\n"
        cases = {
            "no accounts": "accounts: []\n",
            "bad did": MINIMAL.format(password="password: pw", did='"514-555-0102"'),
            "missing password": MINIMAL.format(password="", did='"5145550102"'),
            "bad api url": "bridge:\n  api_url: ftp://voip.ms/api\naccounts:\n" + account,
            "query in api url": "bridge:\n  api_url: https://voip.ms/api?x=1\naccounts:\n" + account,
            "bad level": "logging:\n  level: LOUD\naccounts:\n" + account,
            "zero interval": "accounts:\n" + account + "    poll_interval_seconds: 0\n",
            "bad timezone": "accounts:\n" + account + "    timezone: Mars/Olympus\n",
            "duplicate": "accounts:\n" + account + account,
            "both passwords": "accounts:\n" + account + "    password_env: X\n",
        }
        for name, text in cases.items():
            with self.subTest(case=name):
                with tempfile.TemporaryDirectory() as td:
                    with self.assertRaises(ValueError):
                        load_config(path=self._write(td, text))

    def test_validate_config_file_checks_observability(self) -> None:
        account = "  - username: carol@example.com\n    password: pw\n    did: \"5145550102\"\n"
        with tempfile.TemporaryDirectory() as td:
            path = self._write(td, "accounts:\n" + account + "observability:\n  metrics_enabled: maybe\n")
            with self.assertRaises(ValueError):
                validate_config_file(path=path)


if __name__ == "__main__":
    unittest.main()
