"""Tests for npm semver parsing and range matching."""

import pytest

from paranoid_deps import npm_semver
from paranoid_deps.npm_semver import npm_semver_key


def test_npm_semver_prerelease_sorting() -> None:
    versions = [
        "0.0.0-insiders.b4008fc",
        "0.0.0",
        "0.0.1",
        "0.0.1-alpha.1",
        "v1.2.3",
        "1.2.3+build.7",
        "1.0.0",
        "1.0.0-beta",
        "not-a-version",
    ]

    keys = [(npm_semver_key(v), v) for v in versions]
    keys = [item for item in keys if item[0] is not None]
    keys.sort(key=lambda item: item[0])
    ordered = [v for _, v in keys]

    assert ordered[:6] == [
        "0.0.0-insiders.b4008fc",
        "0.0.0",
        "0.0.1-alpha.1",
        "0.0.1",
        "1.0.0-beta",
        "1.0.0",
    ]
    # v-prefix and build metadata should not affect ordering vs base version.
    assert set(ordered[-2:]) == {"1.2.3+build.7", "v1.2.3"}
    assert npm_semver_key("v1.2.3") == npm_semver_key("1.2.3+build.7")


def test_prerelease_precedence_follows_semver() -> None:
    ordered = [
        "1.0.0-alpha",
        "1.0.0-alpha.1",
        "1.0.0-alpha.beta",
        "1.0.0-beta",
        "1.0.0-beta.2",
        "1.0.0-beta.11",
        "1.0.0-rc.1",
        "1.0.0",
    ]

    assert sorted(reversed(ordered), key=npm_semver_key) == ordered


@pytest.mark.parametrize(
    "version, spec, expected",
    [
        ("1.2.3", "^1.0.0", True),
        ("2.0.0", "^1.0.0", False),
        ("0.2.5", "^0.2.3", True),
        ("0.3.0", "^0.2.3", False),
        ("0.0.4", "^0.0.3", False),
        ("1.2.9", "~1.2.3", True),
        ("1.3.0", "~1.2.3", False),
        ("1.5.0", "1.x", True),
        ("2.0.0", "1.x", False),
        ("1.5.0", "1.2.3 - 1.6", True),
        ("1.7.0", "1.2.3 - 1.6", False),
        ("3.1.0", "^1.0.0 || ^3.0.0", True),
        ("1.9.9", ">= 1.2.3 < 2", True),
        ("2.0.0", ">= 1.2.3 < 2", False),
        ("1.2.3", "1.2.3", True),
        ("1.2.4", "=1.2.3", False),
        ("5.0.0", "*", True),
        ("5.0.0", "", True),
    ],
)
def test_satisfies(version, spec, expected) -> None:
    assert npm_semver.satisfies(version, spec) is expected


def test_prereleases_only_match_same_release() -> None:
    assert npm_semver.satisfies("1.2.3-beta.2", "^1.2.3-beta.1")
    assert not npm_semver.satisfies("1.2.4-beta.1", "^1.2.3-beta.1")
    assert not npm_semver.satisfies("2.0.0-beta.1", "^1.0.0")
    assert not npm_semver.satisfies("1.0.0-rc.1", "*")


def test_invalid_input_never_satisfies() -> None:
    assert not npm_semver.satisfies("1.0.0", "latest")
    assert not npm_semver.satisfies("garbage", "*")


def test_valid_range() -> None:
    assert npm_semver.valid_range("^1.2.3") == ">=1.2.3 <2.0.0-0"
    assert npm_semver.valid_range("~1.2") == ">=1.2.0 <1.3.0-0"
    assert npm_semver.valid_range("*") == ">=0.0.0"
    assert npm_semver.valid_range("latest") is None
    assert npm_semver.valid_range("git+https://github.com/a/b.git") is None


def test_max_satisfying() -> None:
    versions = ["4.2.9", "4.2.10", "5.0.0", "4.3.0-beta.1"]

    assert npm_semver.max_satisfying(versions, "^4.2.0") == "4.2.10"
    assert npm_semver.max_satisfying(versions, "^6.0.0") is None
    assert npm_semver.max_satisfying(versions, "latest") is None


def test_min_version() -> None:
    assert str(npm_semver.min_version("^1.2.3")) == "1.2.3"
    assert str(npm_semver.min_version(">1.2.3")) == "1.2.4"
    assert str(npm_semver.min_version("*")) == "0.0.0"
    assert str(npm_semver.min_version("1.x || >=2.5.0")) == "1.0.0"
    assert npm_semver.min_version(">=1.0.0 <1.0.0") is None
    assert npm_semver.min_version("latest") is None


def test_gt_and_lt() -> None:
    assert npm_semver.gt("1.10.0", "1.9.0")
    assert npm_semver.lt("1.0.0-beta", "1.0.0")
    with pytest.raises(ValueError):
        npm_semver.gt("one", "1.0.0")


@pytest.mark.parametrize(
    "sub, dom, expected",
    [
        ("~1.2.0", "^1.0.0", True),
        ("^1.0.0", "~1.2.0", False),
        ("1.2.3", "^1.0.0", True),
        ("^1.0.0", "*", True),
        ("^1.0.0 || ^2.0.0", ">=1.0.0", True),
        ("^1.0.0", "^1.0.0 || ^2.0.0", True),
        (">=1.0.0 <2.0.0-0", "^1.0.0", True),
        ("1.5.0 - 2.5.0", ">=1.0.0 <2.0.0 || >=2.0.0 <3.0.0", True),
        ("^2.0.0", "^1.0.0", False),
        ("latest", "*", False),
    ],
)
def test_subset(sub, dom, expected) -> None:
    assert npm_semver.subset(sub, dom) is expected


def test_subset_ignores_prerelease_gaps_between_unions() -> None:
    assert npm_semver.subset(">=1.5.0 <2.5.0", "^1.0.0 || ^2.0.0")
    assert npm_semver.subset("~1.9.0 || ~2.0.0", "^1.0.0 || ^2.0.0")
    # A range naming a 2.0.0 prerelease can match versions the union skips.
    assert not npm_semver.subset(">=2.0.0-beta <2.5.0", "^1.0.0 || ^2.0.0")
    assert not npm_semver.subset(">=1.5.0 <3.5.0", "^1.0.0 || ^2.0.0")
