from __future__ import annotations

from pathlib import Path


def discover_repo_root(start: Path) -> Path:
    for p in [start] + list(start.parents):
        if (p / "pyproject.toml").is_file() and (p / "smsbridge").is_dir():
            return p
    raise RuntimeError(f"repo root not found from: {start}")


def resolve_repo_path(repo_root: Path, path: str) -> Path:
    p = Path(path)
    return p if p.is_absolute() else (repo_root / p)
