"""Workspace repository discovery and description."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path

from typing_extensions import TypedDict

from launchpad.docker.detector import COMPOSE_FILE_CANDIDATES

DEFAULT_IGNORES = {"node_modules", "__pycache__"}
REPOSITORY_INDICATORS: tuple[str, ...] = (
    "package.json",
    ".git",
    "Dockerfile",
    "docker-compose.yml",
    "requirements.txt",
    "Gemfile",
    "go.mod",
)
_DOCKER_FILES: tuple[str, ...] = ("Dockerfile", *COMPOSE_FILE_CANDIDATES[:4])


class PackageManifest(TypedDict, total=False):
    name: str
    description: str
    version: str
    scripts: dict[str, str]
    packageManager: str


@dataclass(frozen=True)
class Repository:
    name: str
    path: Path


@dataclass
class RepositoryInfo:
    name: str
    path: Path
    description: str = ""
    version: str = ""
    has_manifest: bool = False
    scripts: list[str] = field(default_factory=list)
    docker_files: list[str] = field(default_factory=list)
    is_git: bool = False


def repository_at(workspace: str | Path, name: str) -> Repository:
    return Repository(name=name, path=Path(workspace).expanduser() / name)


def is_repository(path: Path) -> bool:
    return any((path / indicator).exists() for indicator in REPOSITORY_INDICATORS)


def discover_repositories(workspace: str | Path, ignore_dirs: set[str] | None = None) -> list[Repository]:
    root = Path(workspace).expanduser().resolve()
    if not root.exists() or not root.is_dir():
        return []

    ignored = DEFAULT_IGNORES | (ignore_dirs or set())
    found: list[Repository] = []
    for entry in root.iterdir():
        if not entry.is_dir() or entry.name.startswith(".") or entry.name in ignored:
            continue
        if is_repository(entry):
            found.append(Repository(name=entry.name, path=entry))

    found.sort(key=lambda item: item.name.lower())
    return found


def read_manifest(repo_path: str | Path) -> PackageManifest | None:
    try:
        payload = json.loads((Path(repo_path) / "package.json").read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return None
    if not isinstance(payload, dict):
        return None
    return PackageManifest(**{key: value for key, value in payload.items() if key in PackageManifest.__annotations__})


def describe_repository(repository: Repository) -> RepositoryInfo:
    info = RepositoryInfo(name=repository.name, path=repository.path)
    manifest = read_manifest(repository.path)
    if manifest is not None:
        info.has_manifest = True
        description = manifest.get("description")
        if isinstance(description, str):
            info.description = description
        version = manifest.get("version")
        if isinstance(version, str):
            info.version = version
        scripts = manifest.get("scripts")
        if isinstance(scripts, dict):
            info.scripts = [str(name) for name in scripts]

    info.docker_files = [name for name in _DOCKER_FILES if (repository.path / name).is_file()]
    info.is_git = (repository.path / ".git").exists()
    return info
