from __future__ import annotations

import hashlib
import os
from dataclasses import dataclass
from datetime import tzinfo
from pathlib import Path
from typing import Any, Optional, Sequence
from urllib.parse import urlsplit
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

from smsbridge.api.query import DEFAULT_API_URL, Credentials


_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def _sha256_prefixed(data: bytes) -> str:
    return "sha256:" + hashlib.sha256(data).hexdigest()


def _require_dict(obj: Any, *, path: str) -> dict[str, Any]:
    if not isinstance(obj, dict):
        raise ValueError(f"{path} must be a mapping")
    return obj


def _require_str(obj: Any, *, path: str) -> str:
    if not isinstance(obj, str) or not obj:
        raise ValueError(f"{path} must be a non-empty string")
    return obj


def _require_bool(obj: Any, *, path: str) -> bool:
    if not isinstance(obj, bool):
        raise ValueError(f"{path} must be a boolean")
    return obj


def _require_int(obj: Any, *, path: str) -> int:
    if not isinstance(obj, int) or isinstance(obj, bool):
        raise ValueError(f"{path} must be an integer")
    return obj


def _require_float(obj: Any, *, path: str) -> float:
    if isinstance(obj, (int, float)) and not isinstance(obj, bool):
        return float(obj)
    raise ValueError(f"{path} must be a number")


def _require_str_list(obj: Any, *, path: str) -> tuple[str, ...]:
    if obj is None:
        return ()
    if not isinstance(obj, list) or not all(isinstance(x, str) and x for x in obj):
        raise ValueError(f"{path} must be a list of non-empty strings")
    return tuple(obj)


def _require_api_url(obj: Any, *, path: str) -> str:
    url = _require_str(obj, path=path)
    parts = urlsplit(url)
    if parts.scheme not in {"http", "https"} or not parts.netloc:
        raise ValueError(f"{path} must be an absolute http(s) url")
    if parts.query or parts.fragment or "?" in url:
        raise ValueError(f"{path} must not carry a query string or fragment")
    return url


def _require_did(obj: Any, *, path: str) -> str:
    # YAML reads unquoted phone numbers as integers.
    if isinstance(obj, int) and not isinstance(obj, bool):
        obj = str(obj)
    did = _require_str(obj, path=path)
    if not did.isdigit():
        raise ValueError(f"{path} must contain digits only")
    return did


@dataclass(frozen=True)
class AccountConfig:
    username: str
    password: str
    did: str
    api_url: str
    delete_after_fetch: bool
    poll_interval_seconds: int
    request_timeout_seconds: float
    timezone: Optional[str]
    buddies: Sequence[str]
    deny: Sequence[str]
    status_message: Optional[str]

    @property
    def credentials(self) -> Credentials:
        return Credentials(username=self.username, password=self.password)

    def tzinfo(self) -> Optional[tzinfo]:
        if self.timezone is None:
            return None
        return ZoneInfo(self.timezone)


@dataclass(frozen=True)
class LoggingConfig:
    level: str


@dataclass(frozen=True)
class BridgeConfig:
    config_path: str
    config_sha256: str
    api_url: str
    request_timeout_seconds: float
    logging: LoggingConfig
    accounts: Sequence[AccountConfig]

    def account(self, username: str) -> AccountConfig:
        for acct in self.accounts:
            if acct.username == username:
                return acct
        raise KeyError(f"account not configured: {username}")


def account_from_mapping(
    obj: Any,
    *,
    path: str = "account",
    default_api_url: str = DEFAULT_API_URL,
    default_timeout_seconds: float = 30.0,
) -> AccountConfig:
    acct = _require_dict(obj, path=path)
    username = _require_str(acct.get("username"), path=f"{path}.username")

    password = acct.get("password")
    password_env = acct.get("password_env")
    if password is not None and password_env is not None:
        raise ValueError(f"{path}: set only one of password and password_env")
    if password_env is not None:
        env_name = _require_str(password_env, path=f"{path}.password_env")
        password = os.environ.get(env_name)
        if not password:
            raise ValueError(f"{path}.password_env: environment variable {env_name} is not set")
    password = _require_str(password, path=f"{path}.password")

    api_url_raw = acct.get("api_url")
    api_url = (
        default_api_url if api_url_raw is None else _require_api_url(api_url_raw, path=f"{path}.api_url")
    )

    poll_interval = _require_int(acct.get("poll_interval_seconds", 30), path=f"{path}.poll_interval_seconds")
    if poll_interval <= 0:
        raise ValueError(f"{path}.poll_interval_seconds must be positive")

    timeout_raw = acct.get("request_timeout_seconds")
    timeout = (
        default_timeout_seconds
        if timeout_raw is None
        else _require_float(timeout_raw, path=f"{path}.request_timeout_seconds")
    )
    if timeout <= 0:
        raise ValueError(f"{path}.request_timeout_seconds must be positive")

    tz_name = acct.get("timezone")
    if tz_name is not None:
        tz_name = _require_str(tz_name, path=f"{path}.timezone")
        try:
            ZoneInfo(tz_name)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"{path}.timezone: unknown time zone {tz_name!r}") from e

    status_message = acct.get("status_message")
    if status_message is not None:
        status_message = _require_str(status_message, path=f"{path}.status_message")

    return AccountConfig(
        username=username,
        password=password,
        did=_require_did(acct.get("did"), path=f"{path}.did"),
        api_url=api_url,
        delete_after_fetch=_require_bool(
            acct.get("delete_after_fetch", False), path=f"{path}.delete_after_fetch"
        ),
        poll_interval_seconds=poll_interval,
        request_timeout_seconds=timeout,
        timezone=tz_name,
        buddies=_require_str_list(acct.get("buddies"), path=f"{path}.buddies"),
        deny=_require_str_list(acct.get("deny"), path=f"{path}.deny"),
        status_message=status_message,
    )


def load_config(*, path: Path) -> BridgeConfig:
    data_bytes = path.read_bytes()
    cfg = yaml.safe_load(data_bytes.decode("utf-8"))
    cfg = _require_dict(cfg, path="config")

    bridge = _require_dict(cfg.get("bridge") or {}, path="bridge")
    api_url = _require_api_url(bridge.get("api_url", DEFAULT_API_URL), path="bridge.api_url")
    timeout = _require_float(
        bridge.get("request_timeout_seconds", 30), path="bridge.request_timeout_seconds"
    )
    if timeout <= 0:
        raise ValueError("bridge.request_timeout_seconds must be positive")

    logging_obj = _require_dict(cfg.get("logging") or {}, path="logging")
    level = _require_str(logging_obj.get("level", "INFO"), path="logging.level").upper()
    if level not in _LOG_LEVELS:
        raise ValueError(f"logging.level must be one of {sorted(_LOG_LEVELS)}")

    accounts_raw = cfg.get("accounts")
    if not isinstance(accounts_raw, list) or not accounts_raw:
        raise ValueError("accounts must be a non-empty list")

    accounts: list[AccountConfig] = []
    seen: set[str] = set()
    for idx, item in enumerate(accounts_raw):
        acct = account_from_mapping(
            item,
            path=f"accounts[{idx}]",
            default_api_url=api_url,
            default_timeout_seconds=timeout,
        )
        if acct.username in seen:
            raise ValueError(f"accounts[{idx}].username is duplicated: {acct.username}")
        seen.add(acct.username)
        accounts.append(acct)

    return BridgeConfig(
        config_path=path.as_posix(),
        config_sha256=_sha256_prefixed(data_bytes),
        api_url=api_url,
        request_timeout_seconds=timeout,
        logging=LoggingConfig(level=level),
        accounts=tuple(accounts),
    )
