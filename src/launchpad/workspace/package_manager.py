"""Package manager detection from lock files and package.json."""

from __future__ import annotations

import json
import logging as py_logging
from enum import Enum
from pathlib import Path

logger = py_logging.getLogger(__name__)


class PackageManager(str, Enum):
    NPM = "npm"
    PNPM = "pnpm"
    YARN = "yarn"
    BUN = "bun"


PACKAGE_MANAGER_NAMES = frozenset(item.value for item in PackageManager)

_LOCK_FILES: tuple[tuple[str, PackageManager], ...] = (
    ("pnpm-lock.yaml", PackageManager.PNPM),
    ("yarn.lock", PackageManager.YARN),
    ("bun.lockb", PackageManager.BUN),
    ("package-lock.json", PackageManager.NPM),
)


def _parse_package_manager_field(value: str) -> PackageManager | None:
    # Corepack format: "pnpm@8.15.0".
    name = value.split("@", 1)[0].strip().lower()
    try:
        return PackageManager(name)
    except ValueError:
        return None


def detect_package_manager(repo_path: str | Path, *, preferred: str = "auto") -> PackageManager:
    if preferred and preferred != "auto":
        try:
            return PackageManager(preferred)
        except ValueError:
            logger.warning("Ignoring unknown package manager preference=%s", preferred)

    root = Path(repo_path)
    for filename, manager in _LOCK_FILES:
        if (root / filename).is_file():
            logger.debug("Detected package manager=%s via %s in %s", manager.value, filename, root)
            return manager

    try:
        payload = json.loads((root / "package.json").read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return PackageManager.NPM
    if isinstance(payload, dict):
        field = payload.get("packageManager")
        if isinstance(field, str):
            manager = _parse_package_manager_field(field)
            if manager is not None:
                logger.debug("Detected package manager=%s via packageManager field in %s", manager.value, root)
                return manager
    return PackageManager.NPM
