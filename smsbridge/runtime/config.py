from __future__ import annotations

from pathlib import Path

from smsbridge.config import load_config
from smsbridge.observability.config import load_observability_config


def validate_config_file(*, path: Path) -> None:
    _ = load_config(path=path)
    _ = load_observability_config(path=path)
