"""Docker Compose detection for workspace repositories.

Two probes feed one :class:`DockerClassification`:

* the manifest probe looks for a Compose file by name only, in a fixed
  priority order;
* the hybrid probe reads ``package.json`` and checks whether the script
  backing the requested logical command shells out to Compose.

Both probes are read-only and never raise. Any failure (missing manifest,
malformed JSON, unexpected shapes) degrades to "not detected" so the run
falls back to the plain package-manager path.

Service extraction is a text heuristic: every token after the first literal
``up`` that is not a flag or one of ``up``/``down``/``build`` is taken as a
service name. A script that uses the word ``up`` outside a Compose
invocation, or chains further commands after ``up``, will yield spurious
service names.
"""

from __future__ import annotations

import json
import logging as py_logging
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

logger = py_logging.getLogger(__name__)

COMPOSE_FILE_CANDIDATES: tuple[str, ...] = (
    "docker-compose.yml",
    "docker-compose.yaml",
    "compose.yml",
    "compose.yaml",
    "docker-compose.dev.yml",
    "docker-compose.development.yml",
)
DEFAULT_COMPOSE_FILE = "docker-compose.yml"

_COMPOSE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"docker-compose"),
    re.compile(r"docker compose"),
    re.compile(r"compose"),
)
_COMPOSE_FILE_FLAG = re.compile(r"-f\s+(\S+)|--file\s+(\S+)")
_NON_SERVICE_WORDS = {"up", "down", "build"}

_SCRIPT_CANDIDATES: dict[str, tuple[str, ...]] = {
    "dev": ("dev", "start:dev", "develop"),
    "start": ("start", "serve", "dev"),
    "build": ("build", "build:prod", "build:dev"),
    "test": ("test", "test:unit", "test:integration"),
    "lint": ("lint", "lint:check"),
}


class ExecutionMode(str, Enum):
    COMPOSE = "compose"
    HYBRID = "hybrid"
    PLAIN = "plain"


@dataclass(frozen=True)
class DockerClassification:
    is_compose_managed: bool = False
    compose_file: str | None = None
    npm_uses_docker: bool = False
    docker_script: str | None = None
    services: tuple[str, ...] = ()
    compose_file_from_script: str | None = None

    @property
    def mode(self) -> ExecutionMode:
        if self.is_compose_managed:
            return ExecutionMode.COMPOSE
        if self.npm_uses_docker:
            return ExecutionMode.HYBRID
        return ExecutionMode.PLAIN

    @property
    def teardown_compose_file(self) -> str:
        if self.is_compose_managed and self.compose_file:
            return self.compose_file
        return self.compose_file_from_script or self.compose_file or DEFAULT_COMPOSE_FILE

    def summary(self) -> str:
        mode = self.mode
        if mode == ExecutionMode.COMPOSE:
            return f"compose ({self.compose_file})"
        if mode == ExecutionMode.HYBRID:
            services = ", ".join(self.services) if self.services else "all services"
            return f"npm+compose ({self.teardown_compose_file}: {services})"
        return "plain"


PLAIN = DockerClassification()


def script_candidates(command: str) -> tuple[str, ...]:
    return _SCRIPT_CANDIDATES.get(command, (command,))


def script_uses_compose(script: str) -> bool:
    return any(pattern.search(script) for pattern in _COMPOSE_PATTERNS)


def parse_compose_script(script: str) -> tuple[str, tuple[str, ...]]:
    """Return ``(compose_file, services)`` inferred from a script string."""
    match = _COMPOSE_FILE_FLAG.search(script)
    compose_file = DEFAULT_COMPOSE_FILE
    if match:
        compose_file = match.group(1) or match.group(2) or DEFAULT_COMPOSE_FILE

    parts = script.split()
    if "up" not in parts:
        return compose_file, ()
    after_up = parts[parts.index("up") + 1 :]
    services = tuple(part for part in after_up if not part.startswith("-") and part not in _NON_SERVICE_WORDS)
    return compose_file, services


class DockerDetector:
    def detect_compose_file(self, repo_path: str | Path) -> str | None:
        root = Path(repo_path)
        for filename in COMPOSE_FILE_CANDIDATES:
            try:
                if (root / filename).exists():
                    return filename
            except OSError:
                continue
        return None

    def detect_npm_docker(self, repo_path: str | Path, command: str) -> tuple[str, str, tuple[str, ...]] | None:
        """Return ``(script, compose_file, services)`` for a Compose-backed script."""
        manifest_path = Path(repo_path) / "package.json"
        try:
            payload = json.loads(manifest_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.debug("package.json unreadable path=%s error=%s", manifest_path, exc)
            return None
        if not isinstance(payload, dict):
            return None
        scripts = payload.get("scripts")
        if not isinstance(scripts, dict):
            return None

        for name in script_candidates(command):
            script = scripts.get(name)
            if not isinstance(script, str) or not script_uses_compose(script):
                continue
            compose_file, services = parse_compose_script(script)
            logger.debug(
                "Script %s in %s invokes compose file=%s services=%s",
                name,
                repo_path,
                compose_file,
                list(services),
            )
            return script, compose_file, services
        return None

    def classify(self, repo_path: str | Path, command: str) -> DockerClassification:
        compose_file = self.detect_compose_file(repo_path)
        hybrid = self.detect_npm_docker(repo_path, command)
        if hybrid is None:
            return DockerClassification(
                is_compose_managed=compose_file is not None,
                compose_file=compose_file,
            )
        script, script_compose_file, services = hybrid
        return DockerClassification(
            is_compose_managed=compose_file is not None,
            compose_file=compose_file,
            npm_uses_docker=True,
            docker_script=script,
            services=services,
            compose_file_from_script=script_compose_file,
        )
