from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import os
import signal
from pathlib import Path
from typing import Optional

from smsbridge.config import BridgeConfig, load_config
from smsbridge.host.adapter import Host
from smsbridge.host.console import ConsoleHost
from smsbridge.observability import tracing
from smsbridge.observability.config import load_observability_config
from smsbridge.observability.file_observability_log import FileObservabilityLogger
from smsbridge.runtime.config import validate_config_file
from smsbridge.runtime.paths import discover_repo_root, resolve_repo_path
from smsbridge.session.registry import SessionRegistry, close, login
from smsbridge.transfer.multiplexer import FetchBytesFn


logger = logging.getLogger(__name__)


def configure_logging(*, level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def resolve_config_path(config: str) -> Path:
    try:
        root = discover_repo_root(Path(__file__).resolve())
    except RuntimeError:
        root = Path.cwd()
    return resolve_repo_path(root, config)


async def serve(
    cfg: BridgeConfig,
    *,
    stop: asyncio.Event,
    host: Optional[Host] = None,
    obs_logger: Optional[FileObservabilityLogger] = None,
    fetch_bytes: Optional[FetchBytesFn] = None,
) -> None:
    """Log in every configured account and poll until `stop` is set."""
    host = host or ConsoleHost(accounts=cfg.accounts)
    registry = SessionRegistry()
    sessions = [
        login(acct, host=host, registry=registry, fetch_bytes=fetch_bytes, obs_logger=obs_logger)
        for acct in cfg.accounts
    ]
    try:
        await stop.wait()
    finally:
        for session in sessions:
            await close(session, registry=registry)


async def _serve_until_signal(cfg: BridgeConfig, *, obs_logger: Optional[FileObservabilityLogger]) -> None:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop.set)
    await serve(cfg, stop=stop, obs_logger=obs_logger)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="smsbridge")
    parser.add_argument("--config", default="configs/dev.yaml", help="Config file (repo-relative unless absolute).")
    parser.add_argument("--dry-run", action="store_true", help="Validate config and exit.")
    args = parser.parse_args(argv)

    cfg_path = resolve_config_path(args.config)
    validate_config_file(path=cfg_path)

    if args.dry_run:
        print("SMSBRIDGE_DRY_RUN_OK")
        return 0

    cfg = load_config(path=cfg_path)
    obs = load_observability_config(path=cfg_path)
    configure_logging(level=cfg.logging.level)
    tracing.init_tracing(enabled=obs.tracing_enabled, service_name="smsbridge")
    if obs.metrics_enabled:
        try:
            from prometheus_client import start_http_server

            host = os.environ.get("SMSBRIDGE_METRICS_HOST", "0.0.0.0")
            port = int(os.environ.get("SMSBRIDGE_METRICS_PORT", "9100"))
            start_http_server(port, addr=host)
            print(f"SMSBRIDGE_METRICS_OK: http://{host}:{port}/metrics")
        except Exception as e:
            print(f"SMSBRIDGE_METRICS_FAILED: {e}")
            return 60

    obs_logger = None
    if obs.events_dir is not None:
        obs_logger = FileObservabilityLogger(base_dir=resolve_config_path(obs.events_dir))

    logger.info("starting bridge for %d account(s)", len(cfg.accounts))
    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(_serve_until_signal(cfg, obs_logger=obs_logger))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
