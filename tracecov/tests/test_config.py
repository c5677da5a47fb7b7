from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from tracecov.config import MatcherConfig, load_config
from tracecov.errors import InputNotFound, MalformedInput

FIXTURES = Path(__file__).parent / "fixtures"


def _write_config(path: Path, content: str) -> Path:
    path.write_text(textwrap.dedent(content), encoding="utf-8")
    return path


def test_load_fixture_config() -> None:
    config = load_config(FIXTURES / "tracecov.yml")

    assert config.project.name == "Sample"
    assert [service.name for service in config.services] == ["users"]
    assert config.matcher.provider == "keyword"
    assert config.matcher.timeout_seconds == 5
    assert config.cache.matcher_max_age_seconds == 3600
    assert config.policy.orphan_api_gaps is False
    assert config.service("users").suggestions == "users/suggestions.yml"
    with pytest.raises(KeyError):
        config.service("orders")


def test_unsupported_version_rejected(tmp_path: Path) -> None:
    path = _write_config(
        tmp_path / "tracecov.yml",
        """
        version: 2
        project:
          name: "X"
        services: []
        """,
    )
    with pytest.raises(MalformedInput, match="version"):
        load_config(path)


def test_duplicate_service_names_rejected(tmp_path: Path) -> None:
    path = _write_config(
        tmp_path / "tracecov.yml",
        """
        version: 1
        project:
          name: "X"
        services:
          - {name: users, baseline: a.yml, tests: a.jsonl}
          - {name: users, baseline: b.yml, tests: b.jsonl}
        """,
    )
    with pytest.raises(MalformedInput, match="Duplicate service names"):
        load_config(path)


def test_non_mapping_config_rejected(tmp_path: Path) -> None:
    path = _write_config(tmp_path / "tracecov.yml", "- just\n- a list\n")
    with pytest.raises(MalformedInput):
        load_config(path)


def test_invalid_yaml_rejected(tmp_path: Path) -> None:
    path = _write_config(tmp_path / "tracecov.yml", "version: [1\n")
    with pytest.raises(MalformedInput, match="Invalid YAML"):
        load_config(path)


def test_missing_config_file(tmp_path: Path) -> None:
    with pytest.raises(InputNotFound):
        load_config(tmp_path / "absent.yml")


def test_api_key_resolution(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TRACECOV_KEY", "env-key")

    assert MatcherConfig(api_key="inline", api_key_env="TRACECOV_KEY").resolved_api_key() == "inline"
    assert MatcherConfig(api_key_env="TRACECOV_KEY").resolved_api_key() == "env-key"
    assert MatcherConfig().resolved_api_key() is None


def test_timeout_must_be_positive() -> None:
    with pytest.raises(ValueError):
        MatcherConfig(timeout_seconds=0)
