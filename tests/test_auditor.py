"""Tests for the end-to-end audit pipeline."""

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from paranoid_deps.auditor import DependencyAuditor, ProjectLoadError
from paranoid_deps.models import Advisory, PackageMetadata, PolicyConfig
from paranoid_deps.resolvers import ResolutionError


NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)

PACKAGE_LOCK = {
    "lockfileVersion": 3,
    "packages": {
        "": {"name": "project", "dependencies": {"left-pad": "^1.0.0"}, "devDependencies": {"tape": "^5.0.0"}},
        "node_modules/left-pad": {"version": "1.3.0"},
        "node_modules/tape": {"version": "5.7.0", "dev": True},
    },
}

YARN_LOCK = '''# yarn lockfile v1

left-pad@^1.0.0:
  version "1.3.0"
'''


def _iso(days_ago: int) -> str:
    return (NOW - timedelta(days=days_ago)).isoformat()


class FakeRegistry:
    times = {
        "left-pad": {"1.2.0": _iso(400), "1.3.0": _iso(3)},
        "tape": {"5.7.0": _iso(200)},
    }

    def __init__(self, failing=False):
        self.failing = failing
        self.requested = []

    def fetch_metadata(self, name, spec="*"):
        if self.failing:
            raise ConnectionError("registry down")
        self.requested.append(name)
        return PackageMetadata(name=name, time=dict(self.times[name]))


class FakeAdvisories:
    def __init__(self, error=None):
        self.error = error

    def fetch_advisories(self, metadata, dependencies):
        if self.error is not None:
            raise self.error
        return {
            "left-pad": [Advisory(
                dependency="left-pad",
                title="Padding overflow",
                severity="low",
                range="<1.3.0",
                versions=["1.2.0", "1.3.0"],
                vulnerable_versions=["1.2.0"],
            )],
        }


def _npm_project(tmp_path: Path) -> Path:
    (tmp_path / "package-lock.json").write_text(json.dumps(PACKAGE_LOCK), encoding="utf-8")
    return tmp_path


def _auditor(project_dir, config=None, registry=None, advisories=None):
    return DependencyAuditor(
        project_dir,
        config or PolicyConfig(),
        registry=registry or FakeRegistry(),
        advisory_source=advisories or FakeAdvisories(),
    )


def test_audit_npm_project(tmp_path: Path) -> None:
    result = _auditor(_npm_project(tmp_path)).audit(now=NOW)

    assert result.safe is False
    assert result.advisories_available is True
    [left_pad] = result.verdicts["left-pad"]
    assert (left_pad.version, left_pad.days_since_publish, left_pad.safe) == ("1.3.0", 3, False)
    assert left_pad.recommendations == []
    assert result.verdicts["tape"][0].safe is True


def test_audit_excluding_dev_dependencies(tmp_path: Path) -> None:
    registry = FakeRegistry()
    result = _auditor(_npm_project(tmp_path), PolicyConfig(exclude_dev=True), registry=registry).audit(now=NOW)

    assert set(result.verdicts) == {"left-pad"}
    assert registry.requested == ["left-pad"]


def test_audit_yarn_project(tmp_path: Path) -> None:
    (tmp_path / "yarn.lock").write_text(YARN_LOCK, encoding="utf-8")

    result = _auditor(tmp_path, PolicyConfig(min_days=2)).audit(now=NOW)

    assert result.safe is True
    assert set(result.dependencies) == {"left-pad"}


def test_installed_node_modules_preferred_over_nothing(tmp_path: Path) -> None:
    (tmp_path / "package.json").write_text(json.dumps({"dependencies": {"tape": "^5.0.0"}}), encoding="utf-8")
    tape_dir = tmp_path / "node_modules" / "tape"
    tape_dir.mkdir(parents=True)
    (tape_dir / "package.json").write_text(json.dumps({"name": "tape", "version": "5.7.0"}), encoding="utf-8")

    dependencies = _auditor(tmp_path).load_dependencies()

    assert set(dependencies) == {"tape"}
    assert dependencies["tape"].versions == {"5.7.0"}


def test_missing_dependency_source(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        _auditor(tmp_path).audit(now=NOW)


def test_registry_failure_aborts_audit(tmp_path: Path) -> None:
    with pytest.raises(ResolutionError):
        _auditor(_npm_project(tmp_path), registry=FakeRegistry(failing=True)).audit(now=NOW)


def test_advisory_failure_degrades(tmp_path: Path, caplog) -> None:
    auditor = _auditor(_npm_project(tmp_path), advisories=FakeAdvisories(error=RuntimeError("boom")))

    result = auditor.audit(now=NOW)

    assert result.advisories_available is False
    assert set(result.verdicts) == {"left-pad", "tape"}
    assert "Cannot retrieve advisories" in caplog.text


def test_recommendations_in_production_mode(tmp_path: Path) -> None:
    lock = json.loads(json.dumps(PACKAGE_LOCK))
    lock["packages"]["node_modules/left-pad"]["version"] = "1.2.0"
    (tmp_path / "package-lock.json").write_text(json.dumps(lock), encoding="utf-8")

    result = _auditor(tmp_path, PolicyConfig(production=True)).audit(now=NOW)

    [left_pad] = result.verdicts["left-pad"]
    assert left_pad.version == "1.2.0"
    assert left_pad.safe is True
    assert [item.fixed_version for item in left_pad.recommendations] == ["1.3.0"]


def test_audit_flag_disables_advisories(tmp_path: Path) -> None:
    auditor = _auditor(
        _npm_project(tmp_path),
        PolicyConfig(audit=False),
        advisories=FakeAdvisories(error=RuntimeError("unused")),
    )

    result = auditor.audit(now=NOW)

    assert result.advisories_available is True
    assert all(not verdict.recommendations for package in result.verdicts.values() for verdict in package)


def test_corrupt_lockfile_raises_load_error(tmp_path: Path) -> None:
    (tmp_path / "package-lock.json").write_text("{not json", encoding="utf-8")

    with pytest.raises(ProjectLoadError) as excinfo:
        _auditor(tmp_path).load_dependencies()

    assert isinstance(excinfo.value.__cause__, json.JSONDecodeError)


def test_undecodable_yarn_lockfile_raises_load_error(tmp_path: Path) -> None:
    (tmp_path / "yarn.lock").write_bytes(b"\xff\xfe garbage")

    with pytest.raises(ProjectLoadError):
        _auditor(tmp_path).audit(now=NOW)
