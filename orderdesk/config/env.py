"""Environment helpers for ORDERDESK_* settings."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable, Optional

from dotenv import load_dotenv

ENV_PREFIX = "ORDERDESK_"

_TRUTHY = {"1", "true", "yes", "y", "on"}


def load_env(
    filenames: Iterable[str] = (".env.local", ".env"),
    search_dirs: Optional[list[Path]] = None,
    override: bool = False,
) -> list[Path]:
    """
    Load dotenv files from the working directory and its config/ folder.

    Already-set process variables win unless override is True.
    Returns the files actually loaded, in load order.
    """
    if search_dirs is None:
        cwd = Path.cwd()
        search_dirs = [cwd, cwd / "config"]

    loaded: list[Path] = []
    for directory in search_dirs:
        for name in filenames:
            path = directory / name
            if path.is_file():
                load_dotenv(dotenv_path=path, override=override)
                loaded.append(path)

    return loaded


def env_value(name: str, default: Optional[str] = None) -> Optional[str]:
    """Read ORDERDESK_<name>; blank values count as unset."""
    value = os.getenv(f"{ENV_PREFIX}{name}")
    if value is None or not value.strip():
        return default
    return value.strip()


def env_flag(name: str, default: bool = False) -> bool:
    """Boolean env var. Accepts the full name or the part after ORDERDESK_."""
    full_name = name if name.startswith(ENV_PREFIX) else f"{ENV_PREFIX}{name}"
    v = os.getenv(full_name)
    if v is None:
        return default
    return v.strip().lower() in _TRUTHY
