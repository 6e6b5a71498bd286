from __future__ import annotations

import json
from pathlib import Path

from launchpad.docker.detector import (
    DockerClassification,
    DockerDetector,
    ExecutionMode,
    parse_compose_script,
    script_candidates,
    script_uses_compose,
)


def _write_manifest(path: Path, scripts: dict[str, str]) -> None:
    path.mkdir(parents=True, exist_ok=True)
    (path / "package.json").write_text(json.dumps({"name": path.name, "scripts": scripts}), encoding="utf-8")


def test_detect_compose_file_follows_priority_order(tmp_path: Path) -> None:
    (tmp_path / "compose.yaml").write_text("services: {}\n", encoding="utf-8")
    (tmp_path / "docker-compose.dev.yml").write_text("services: {}\n", encoding="utf-8")

    assert DockerDetector().detect_compose_file(tmp_path) == "compose.yaml"

    (tmp_path / "docker-compose.yml").write_text("services: {}\n", encoding="utf-8")

    assert DockerDetector().detect_compose_file(tmp_path) == "docker-compose.yml"


def test_detect_compose_file_returns_none_without_manifest(tmp_path: Path) -> None:
    assert DockerDetector().detect_compose_file(tmp_path) is None


def test_detect_npm_docker_parses_file_and_services(tmp_path: Path) -> None:
    _write_manifest(tmp_path, {"dev": "docker compose -f docker/dev.yml up -d web db"})

    detected = DockerDetector().detect_npm_docker(tmp_path, "dev")

    assert detected == ("docker compose -f docker/dev.yml up -d web db", "docker/dev.yml", ("web", "db"))


def test_detect_npm_docker_checks_later_candidates(tmp_path: Path) -> None:
    _write_manifest(tmp_path, {"dev": "next dev", "develop": "docker-compose up api"})

    detected = DockerDetector().detect_npm_docker(tmp_path, "dev")

    assert detected is not None
    assert detected[0] == "docker-compose up api"
    assert detected[2] == ("api",)


def test_detect_npm_docker_degrades_on_malformed_manifest(tmp_path: Path) -> None:
    (tmp_path / "package.json").write_text("{not json", encoding="utf-8")

    assert DockerDetector().detect_npm_docker(tmp_path, "dev") is None


def test_detect_npm_docker_ignores_non_mapping_scripts(tmp_path: Path) -> None:
    (tmp_path / "package.json").write_text(json.dumps({"scripts": ["dev"]}), encoding="utf-8")

    assert DockerDetector().detect_npm_docker(tmp_path, "dev") is None


def test_classify_plain_repository(tmp_path: Path) -> None:
    _write_manifest(tmp_path, {"dev": "next dev"})

    classification = DockerDetector().classify(tmp_path, "dev")

    assert classification == DockerClassification()
    assert classification.mode == ExecutionMode.PLAIN
    assert classification.summary() == "plain"


def test_classify_hybrid_repository(tmp_path: Path) -> None:
    _write_manifest(tmp_path, {"start": "docker compose up web"})

    classification = DockerDetector().classify(tmp_path, "start")

    assert classification.mode == ExecutionMode.HYBRID
    assert classification.is_compose_managed is False
    assert classification.services == ("web",)
    assert classification.teardown_compose_file == "docker-compose.yml"


def test_compose_manifest_takes_precedence_over_hybrid(tmp_path: Path) -> None:
    _write_manifest(tmp_path, {"dev": "docker compose -f other.yml up"})
    (tmp_path / "compose.yml").write_text("services: {}\n", encoding="utf-8")

    classification = DockerDetector().classify(tmp_path, "dev")

    assert classification.mode == ExecutionMode.COMPOSE
    assert classification.npm_uses_docker is True
    assert classification.teardown_compose_file == "compose.yml"


def test_script_candidates_for_known_and_unknown_commands() -> None:
    assert script_candidates("dev") == ("dev", "start:dev", "develop")
    assert script_candidates("lint") == ("lint", "lint:check")
    assert script_candidates("seed") == ("seed",)


def test_script_uses_compose_patterns() -> None:
    assert script_uses_compose("docker-compose up")
    assert script_uses_compose("docker compose up")
    assert not script_uses_compose("vite build")


def test_parse_compose_script_defaults_without_file_flag() -> None:
    assert parse_compose_script("docker compose build") == ("docker-compose.yml", ())
    assert parse_compose_script("docker compose --file stack.yml up --build") == ("stack.yml", ())
