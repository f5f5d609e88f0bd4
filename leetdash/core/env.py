from __future__ import annotations

import os
from pathlib import Path
from typing import Dict


def load_env(path: Path | None = None) -> None:
    """
    Populate ``os.environ`` from dotenv files without clobbering the shell.

    ``path`` (or ``LEETDASH_ENV_FILE``, or ``<project>/.env``) is read first
    and only fills variables that are not set yet. When no explicit path is
    given, a sibling ``.env.local`` may then override values that came from
    ``.env`` but never ones exported by the shell.
    """
    shell_keys = set(os.environ)

    explicit = path or _env_file_from_shell()
    env_path = explicit or _default_env_path()
    for key, value in parse_env_file(env_path).items():
        os.environ.setdefault(key, value)

    if explicit is None:
        for key, value in parse_env_file(env_path.parent / ".env.local").items():
            if key not in shell_keys:
                os.environ[key] = value


def parse_env_file(env_path: Path) -> Dict[str, str]:
    """``KEY=value`` pairs from ``env_path``; a missing file yields ``{}``."""
    if not env_path.exists():
        return {}

    values: Dict[str, str] = {}
    for raw_line in env_path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if line.startswith("export "):
            line = line[len("export "):].lstrip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        if key:
            values[key] = _strip_quotes(value.strip())
    return values


def _env_file_from_shell() -> Path | None:
    raw = os.getenv("LEETDASH_ENV_FILE", "").strip()
    return Path(raw).expanduser() if raw else None


def _default_env_path() -> Path:
    return Path(__file__).resolve().parents[2] / ".env"


def _strip_quotes(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in {'"', "'"}:
        return value[1:-1]
    return value


__all__ = ["load_env", "parse_env_file"]
