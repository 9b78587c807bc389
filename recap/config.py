"""Recap configuration — loads settings from .env file or environment.

Config is loaded from (in priority order):
  1. Environment variables (highest priority)
  2. .env file in current directory
  3. .recap/.env file
  4. Defaults
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)

_loaded = False


def _parse_env_file(path: Path) -> dict[str, str]:
    """Parse a simple .env file (KEY=VALUE, one per line)."""
    values: dict[str, str] = {}
    if not path.exists():
        return values
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        if "=" not in line:
            continue
        key, _, value = line.partition("=")
        key = key.strip()
        value = value.strip().strip("\"'")
        values[key] = value
    return values


def load_config() -> None:
    """Load config from .env files into os.environ (if not already set)."""
    global _loaded
    if _loaded:
        return
    _loaded = True

    candidates = [
        Path.cwd() / ".env",
        Path.cwd() / ".recap" / ".env",
    ]

    for env_path in candidates:
        values = _parse_env_file(env_path)
        if values:
            logger.debug("Loaded config from %s", env_path)
            for key, value in values.items():
                if key not in os.environ:  # env vars take priority
                    os.environ[key] = value
            break  # use first found


def get(key: str, default: str = "") -> str:
    """Get a config value (loads .env on first call)."""
    load_config()
    return os.environ.get(key, default)


def get_int(key: str, default: int) -> int:
    raw = get(key)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r, using %d", key, raw, default)
        return default


def get_float(key: str, default: float) -> float:
    raw = get(key)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring non-numeric %s=%r, using %s", key, raw, default)
        return default


def setup_logging() -> None:
    """Configure the root logger from LOG_LEVEL. Entry points only."""
    level_name = get("LOG_LEVEL", "info").upper()
    level = getattr(logging, level_name, logging.INFO)
    if not isinstance(level, int):
        level = logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))
