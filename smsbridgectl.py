#!/usr/bin/env python3
from __future__ import annotations

import argparse
import asyncio
import json
from pathlib import Path
from typing import Optional

from smsbridge.bridge.main import configure_logging, resolve_config_path
from smsbridge.config import AccountConfig, BridgeConfig, load_config
from smsbridge.host.console import ConsoleHost
from smsbridge.runtime.config import validate_config_file
from smsbridge.session.registry import SessionRegistry, close, login
from smsbridge.transfer.multiplexer import FetchBytesFn
from smsbridge.transfer.request import SendOutcome
from smsbridge.version import read_repo_version


def _load(args: argparse.Namespace) -> tuple[BridgeConfig, AccountConfig]:
    cfg = load_config(path=resolve_config_path(args.config))
    configure_logging(level=cfg.logging.level)
    try:
        acct = cfg.account(args.account)
    except KeyError as e:
        raise SystemExit(f"unknown account: {args.account}") from e
    return cfg, acct


async def _send_once(
    cfg: BridgeConfig,
    acct: AccountConfig,
    *,
    recipient: str,
    body: str,
    fetch_bytes: Optional[FetchBytesFn],
) -> SendOutcome:
    registry = SessionRegistry()
    host = ConsoleHost(accounts=cfg.accounts)
    session = login(acct, host=host, registry=registry, fetch_bytes=fetch_bytes, start_polling=False)
    try:
        return await session.send_message(recipient, body)
    finally:
        await close(session, registry=registry)


async def _poll_once(cfg: BridgeConfig, acct: AccountConfig, *, fetch_bytes: Optional[FetchBytesFn]) -> int:
    registry = SessionRegistry()
    host = ConsoleHost(accounts=cfg.accounts)
    session = login(acct, host=host, registry=registry, fetch_bytes=fetch_bytes, start_polling=False)
    try:
        return await session.poll_once()
    finally:
        await close(session, registry=registry)


def cmd_version(args: argparse.Namespace) -> int:
    repo_root = Path(__file__).resolve().parent
    print(read_repo_version(repo_root=repo_root))
    return 0


def cmd_config_validate(args: argparse.Namespace) -> int:
    cfg_path = resolve_config_path(args.config)
    try:
        validate_config_file(path=cfg_path)
    except (OSError, ValueError) as e:
        print(f"CONFIG_INVALID: {e}")
        return 2
    print("CONFIG_OK")
    return 0


def cmd_send(args: argparse.Namespace) -> int:
    cfg, acct = _load(args)
    outcome = asyncio.run(
        _send_once(cfg, acct, recipient=args.to, body=args.message, fetch_bytes=args.fetch_bytes)
    )
    if outcome.success:
        print(json.dumps({"status": "sent", "account": acct.username, "to": args.to}))
        return 0
    print(
        json.dumps(
            {
                "status": "failed",
                "account": acct.username,
                "to": args.to,
                "error_type": type(outcome.error).__name__,
                "error": outcome.error_detail,
            }
        )
    )
    return 2


def cmd_poll(args: argparse.Namespace) -> int:
    cfg, acct = _load(args)
    delivered = asyncio.run(_poll_once(cfg, acct, fetch_bytes=args.fetch_bytes))
    print(json.dumps({"status": "polled", "account": acct.username, "delivered": delivered}))
    return 0


def main(argv: list[str] | None = None, *, fetch_bytes: Optional[FetchBytesFn] = None) -> int:
    parser = argparse.ArgumentParser(prog="smsbridgectl")
    sub = parser.add_subparsers(dest="command", required=True)

    version = sub.add_parser("version")
    version.set_defaults(func=cmd_version)

    config = sub.add_parser("config")
    config_sub = config.add_subparsers(dest="config_command", required=True)

    cfg_validate = config_sub.add_parser("validate")
    cfg_validate.add_argument("--config", default="configs/dev.yaml", help="Config file (repo-relative unless absolute).")
    cfg_validate.set_defaults(func=cmd_config_validate)

    send = sub.add_parser("send")
    send.add_argument("--config", default="configs/dev.yaml", help="Config file (repo-relative unless absolute).")
    send.add_argument("--account", required=True, help="Configured account username to send from.")
    send.add_argument("--to", required=True, help="Recipient phone number.")
    send.add_argument("--message", required=True, help="Message text (surrounding whitespace is trimmed).")
    send.set_defaults(func=cmd_send)

    poll = sub.add_parser("poll")
    poll.add_argument("--config", default="configs/dev.yaml", help="Config file (repo-relative unless absolute).")
    poll.add_argument("--account", required=True, help="Configured account username to fetch for.")
    poll.set_defaults(func=cmd_poll)

    args = parser.parse_args(argv)
    args.fetch_bytes = fetch_bytes
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
