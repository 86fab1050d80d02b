"""Tests for configuration loading."""

import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

from paranoid_deps.config import (
    REGISTRY_ENV,
    ConfigError,
    build_policy,
    find_config_file,
    load_policy,
    parse_package_specs,
    read_config_file,
    registry_url,
    split_list,
)
from paranoid_deps.models import DEFAULT_MIN_DAYS, PolicyConfig
from paranoid_deps.resolvers import DEFAULT_REGISTRY


def test_defaults() -> None:
    assert build_policy() == PolicyConfig()
    assert build_policy().min_days == DEFAULT_MIN_DAYS


def test_split_list_and_package_specs() -> None:
    assert split_list(" a, b ,,c ") == ["a", "b", "c"]
    assert parse_package_specs("lodash@^4.0.0, @babel/core@~7.1.0") == {
        "lodash": "^4.0.0",
        "@babel/core": "~7.1.0",
    }


@pytest.mark.parametrize("value", ["lodash", "@^1.0.0"])
def test_parse_package_specs_rejects_missing_name_or_spec(value) -> None:
    with pytest.raises(ConfigError):
        parse_package_specs(value)


def test_build_policy_later_layers_win() -> None:
    config = build_policy(
        {"minDays": 7, "production": True, "exclude": ["a"]},
        {"minDays": 21, "production": None},
    )

    assert config.min_days == 21
    assert config.production is True
    assert config.exclude == ["a"]


def test_build_policy_parses_allow_from_dates() -> None:
    config = build_policy({"allowFrom": {"lodash": "2024-01-15"}})

    assert config.allow_from == {"lodash": datetime(2024, 1, 15, tzinfo=timezone.utc)}


@pytest.mark.parametrize(
    "layer",
    [
        {"minDays": "14"},
        {"minDays": True},
        {"allow": ["lodash@^1.0.0"]},
        {"include": "lodash"},
        {"json": "yes"},
        {"allowFrom": {"lodash": "yesterday"}},
        {"unknown": 1},
    ],
)
def test_build_policy_rejects_invalid_values(layer) -> None:
    with pytest.raises(ConfigError):
        build_policy(layer)


def test_find_config_file(tmp_path: Path) -> None:
    assert find_config_file(tmp_path) is None

    rc = tmp_path / ".paranoidrc.yml"
    rc.write_text("minDays: 3\n", encoding="utf-8")
    assert find_config_file(tmp_path) == rc

    with pytest.raises(ConfigError):
        find_config_file(tmp_path, str(tmp_path / "missing.json"))


def test_read_config_file_drops_unknown_keys(tmp_path: Path, caplog) -> None:
    path = tmp_path / ".paranoidrc.json"
    path.write_text(json.dumps({"minDays": 3, "colour": "blue"}), encoding="utf-8")

    with caplog.at_level("WARNING"):
        values = read_config_file(path)

    assert values == {"minDays": 3}
    assert "colour" in caplog.text


def test_read_config_file_rejects_non_objects(tmp_path: Path) -> None:
    path = tmp_path / ".paranoidrc.yaml"
    path.write_text("- minDays\n", encoding="utf-8")

    with pytest.raises(ConfigError):
        read_config_file(path)


def test_read_config_file_rejects_malformed_json(tmp_path: Path) -> None:
    path = tmp_path / ".paranoidrc.json"
    path.write_text("{minDays: 3", encoding="utf-8")

    with pytest.raises(ConfigError):
        read_config_file(path)


def test_load_policy_layers_file_and_overrides(tmp_path: Path) -> None:
    (tmp_path / ".paranoidrc.yml").write_text(
        "minDays: 3\nproduction: true\nallow:\n  lodash: ^4.0.0\n", encoding="utf-8"
    )

    config = load_policy(tmp_path, overrides={"minDays": 5})
    assert config.min_days == 5
    assert config.production is True
    assert config.allow == {"lodash": "^4.0.0"}

    ignored = load_policy(tmp_path, ignore_options=["production", "allow"])
    assert ignored.min_days == 3
    assert ignored.production is False
    assert ignored.allow == {}

    assert load_policy(tmp_path, ignore_config=True) == PolicyConfig()


def test_registry_url_from_environment(monkeypatch) -> None:
    monkeypatch.delenv(REGISTRY_ENV, raising=False)
    assert registry_url() == DEFAULT_REGISTRY

    monkeypatch.setenv(REGISTRY_ENV, "https://npm.example.com")
    assert registry_url() == "https://npm.example.com"
