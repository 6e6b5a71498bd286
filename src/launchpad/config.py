"""XDG config loading/saving."""

from __future__ import annotations

import os
import sys
from contextlib import suppress
from pathlib import Path
from typing import Literal, cast

from pydantic import BaseModel, ConfigDict, Field, field_validator

if sys.version_info >= (3, 11):
    import tomllib
else:  # pragma: no cover
    import tomli as tomllib

DEFAULT_CONFIG_PATH = Path("~/.config/launchpad/config.toml").expanduser()
DEFAULT_RUN_LOGS_DIR = Path("~/.config/launchpad/logs/runs")
DEFAULT_PACKAGE_MANAGER: Literal["auto", "npm", "pnpm", "yarn", "bun"] = "auto"
DEFAULT_DOCKER_BINARY = "docker"
DEFAULT_STARTUP_GRACE_SECONDS = 1.0
DEFAULT_STOP_TIMEOUT_SECONDS = 2.0
WORKSPACE_ENV = "LAUNCHPAD_WORKSPACE"

_VALID_PACKAGE_MANAGERS = {"auto", "npm", "pnpm", "yarn", "bun"}


class UserConfig(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    name: str = ""
    email: str = ""
    team: str = ""


class AppConfig(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    workspace_path: str = ""
    logs_dir: str = ""
    repositories: list[str] = Field(default_factory=list)
    package_manager: Literal["auto", "npm", "pnpm", "yarn", "bun"] = DEFAULT_PACKAGE_MANAGER
    docker_binary: str = DEFAULT_DOCKER_BINARY
    startup_grace_seconds: float = Field(default=DEFAULT_STARTUP_GRACE_SECONDS, gt=0, le=30)
    stop_timeout_seconds: float = Field(default=DEFAULT_STOP_TIMEOUT_SECONDS, gt=0, le=60)
    user: UserConfig = Field(default_factory=UserConfig)
    # Raw values; parsed into command overrides where they are consumed.
    repository_commands: dict[str, dict[str, object]] = Field(default_factory=dict)

    @field_validator("docker_binary")
    @classmethod
    def _validate_docker_binary(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("docker_binary cannot be empty")
        return value.strip()

    def resolved_workspace(self) -> Path:
        if self.workspace_path.strip():
            return Path(self.workspace_path).expanduser().resolve()
        return Path.cwd()

    def resolved_logs_dir(self) -> Path:
        if self.logs_dir.strip():
            return Path(self.logs_dir).expanduser().resolve()
        return DEFAULT_RUN_LOGS_DIR.expanduser()

    def command_override(self, repository: str, command: str) -> object | None:
        return self.repository_commands.get(repository, {}).get(command)


def get_config_path(path: str | Path | None = None) -> Path:
    if path is None:
        return DEFAULT_CONFIG_PATH
    return Path(path).expanduser()


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def _toml_key(value: str) -> str:
    if value and all(ch.isalnum() or ch in "_-" for ch in value):
        return value
    return f'"{_escape(value)}"'


def _toml_value(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return f'"{_escape(value)}"'
    if isinstance(value, list):
        return "[" + ", ".join(_toml_value(item) for item in value) + "]"
    if isinstance(value, dict):
        items = ", ".join(f"{_toml_key(str(key))} = {_toml_value(item)}" for key, item in value.items())
        return "{ " + items + " }" if items else "{}"
    raise TypeError(f"Unsupported TOML value type: {type(value)!r}")


def _normalize_repositories(value: object) -> list[str]:
    if not isinstance(value, list):
        return []
    names: list[str] = []
    seen: set[str] = set()
    for item in value:
        if not isinstance(item, str):
            continue
        name = item.strip()
        if not name or name in seen:
            continue
        seen.add(name)
        names.append(name)
    return names


def _normalize_repository_commands(value: object) -> dict[str, dict[str, object]]:
    if not isinstance(value, dict):
        return {}
    normalized: dict[str, dict[str, object]] = {}
    for repo_name, commands in value.items():
        if not isinstance(repo_name, str) or not isinstance(commands, dict):
            continue
        key = repo_name.strip()
        if not key:
            continue
        normalized[key] = {
            str(command): raw for command, raw in commands.items() if isinstance(command, str) and command.strip()
        }
    return normalized


def _normalize_user(value: object) -> UserConfig:
    user = UserConfig()
    if not isinstance(value, dict):
        return user
    for field_name in ("name", "email", "team"):
        item = value.get(field_name)
        if isinstance(item, str):
            setattr(user, field_name, item)
    return user


def _positive_float(value: object, *, upper: float) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if 0 < float(value) <= upper:
        return float(value)
    return None


def _sanitize(raw: dict[str, object]) -> AppConfig:
    cfg = AppConfig()

    workspace_path = raw.get("workspace_path", cfg.workspace_path)
    if isinstance(workspace_path, str):
        cfg.workspace_path = workspace_path

    logs_dir = raw.get("logs_dir", cfg.logs_dir)
    if isinstance(logs_dir, str):
        cfg.logs_dir = logs_dir

    cfg.repositories = _normalize_repositories(raw.get("repositories", []))

    package_manager = raw.get("package_manager", cfg.package_manager)
    if isinstance(package_manager, str) and package_manager in _VALID_PACKAGE_MANAGERS:
        cfg.package_manager = cast(Literal["auto", "npm", "pnpm", "yarn", "bun"], package_manager)

    docker_binary = raw.get("docker_binary", cfg.docker_binary)
    if isinstance(docker_binary, str) and docker_binary.strip():
        cfg.docker_binary = docker_binary

    grace = _positive_float(raw.get("startup_grace_seconds"), upper=30)
    if grace is not None:
        cfg.startup_grace_seconds = grace

    stop_timeout = _positive_float(raw.get("stop_timeout_seconds"), upper=60)
    if stop_timeout is not None:
        cfg.stop_timeout_seconds = stop_timeout

    cfg.user = _normalize_user(raw.get("user", {}))
    cfg.repository_commands = _normalize_repository_commands(raw.get("repository_commands", {}))

    return cfg


def _read_raw(path: Path) -> dict[str, object]:
    if not path.exists():
        return {}
    try:
        with path.open("rb") as handle:
            raw = tomllib.load(handle)
    except (tomllib.TOMLDecodeError, OSError):
        return {}
    return raw if isinstance(raw, dict) else {}


def load_config(path: str | Path | None = None) -> AppConfig:
    cfg = _sanitize(_read_raw(get_config_path(path)))
    # The environment wins over the file, even when the file is unusable.
    env_workspace = os.getenv(WORKSPACE_ENV, "").strip()
    if env_workspace:
        cfg.workspace_path = env_workspace
    return cfg


def save_config(config: AppConfig, path: str | Path | None = None) -> Path:
    resolved = get_config_path(path)
    resolved.parent.mkdir(parents=True, exist_ok=True)

    lines = [
        f"workspace_path = {_toml_value(config.workspace_path)}",
        f"logs_dir = {_toml_value(config.logs_dir)}",
        f"repositories = {_toml_value(_normalize_repositories(config.repositories))}",
        f"package_manager = {_toml_value(config.package_manager)}",
        f"docker_binary = {_toml_value(config.docker_binary)}",
        f"startup_grace_seconds = {_toml_value(config.startup_grace_seconds)}",
        f"stop_timeout_seconds = {_toml_value(config.stop_timeout_seconds)}",
        "",
        "[user]",
        f"name = {_toml_value(config.user.name)}",
        f"email = {_toml_value(config.user.email)}",
        f"team = {_toml_value(config.user.team)}",
    ]

    for repo_name, commands in sorted(_normalize_repository_commands(config.repository_commands).items()):
        lines.append("")
        lines.append(f"[repository_commands.{_toml_key(repo_name)}]")
        for command, raw in sorted(commands.items()):
            lines.append(f"{_toml_key(command)} = {_toml_value(raw)}")

    resolved.write_text("\n".join(lines) + "\n", encoding="utf-8")
    with suppress(OSError):
        resolved.chmod(0o600)
    return resolved
