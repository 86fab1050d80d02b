"""
npm-flavoured semantic versioning.

Versions order the way the npm registry orders them (prerelease identifiers
compared field by field, build metadata ignored) and ranges accept the npm
grammar: ``||`` unions, hyphen ranges, ``~``/``^`` operators and ``x``/``*``
wildcards.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from functools import total_ordering
from typing import Iterable, List, Optional, Sequence, Set, Tuple, Union


_IDENTIFIERS = r"[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*"

_VERSION_RE = re.compile(
    r"^[v=\s]*(\d+)\.(\d+)\.(\d+)"
    rf"(?:-({_IDENTIFIERS}))?"
    rf"(?:\+({_IDENTIFIERS}))?\s*$"
)

_PARTIAL_RE = re.compile(
    r"^[v=\s]*(\d+|[xX*])"
    r"(?:\.(\d+|[xX*])"
    r"(?:\.(\d+|[xX*])"
    rf"(?:-({_IDENTIFIERS}))?"
    rf"(?:\+{_IDENTIFIERS})?"
    r")?)?$"
)

_PRIMITIVE_RE = re.compile(r"^(~>|~|\^|>=|<=|>|<|=)?(.*)$")
_HYPHEN_RE = re.compile(r"^(\S+)\s+-\s+(\S+)$")
_OPERATOR_SPACE_RE = re.compile(r"(~>|~|\^|>=|<=|>|<|=)\s+")

PrereleaseId = Union[int, str]
Partial = Tuple[Optional[int], Optional[int], Optional[int], Tuple[PrereleaseId, ...]]


def _parse_prerelease(value: Optional[str]) -> Tuple[PrereleaseId, ...]:
    if not value:
        return ()
    return tuple(int(part) if part.isdigit() else part for part in value.split("."))


def _prerelease_key(prerelease: Sequence[PrereleaseId]) -> Tuple:
    # A release sorts after all of its prereleases; numeric ids sort before alphanumeric ones.
    if not prerelease:
        return (1,)
    return (0,) + tuple((0, part) if isinstance(part, int) else (1, part) for part in prerelease)


@total_ordering
@dataclass(frozen=True)
class SemVer:
    """A parsed semantic version."""

    major: int
    minor: int
    patch: int
    prerelease: Tuple[PrereleaseId, ...] = ()
    build: Tuple[str, ...] = field(default=(), compare=False)

    @property
    def key(self) -> Tuple:
        return (self.major, self.minor, self.patch, _prerelease_key(self.prerelease))

    @property
    def release(self) -> Tuple[int, int, int]:
        return (self.major, self.minor, self.patch)

    def __lt__(self, other: "SemVer") -> bool:
        if not isinstance(other, SemVer):
            return NotImplemented
        return self.key < other.key

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            text += "-" + ".".join(str(part) for part in self.prerelease)
        return text


ZERO = SemVer(0, 0, 0)
# Lowest possible version: 0.0.0 with the lowest prerelease.
MIN_VERSION = SemVer(0, 0, 0, (0,))


def parse_version(value: str) -> Optional[SemVer]:
    """Parse a version string, returning None when it is not valid semver."""
    if not isinstance(value, str):
        return None
    match = _VERSION_RE.match(value)
    if match is None:
        return None
    major, minor, patch, prerelease, build = match.groups()
    return SemVer(
        int(major),
        int(minor),
        int(patch),
        _parse_prerelease(prerelease),
        tuple(build.split(".")) if build else (),
    )


def npm_semver_key(value: str) -> Optional[Tuple]:
    """Sort key for a version string, or None when it is not valid semver."""
    parsed = parse_version(value)
    return parsed.key if parsed is not None else None


def gt(first: str, second: str) -> bool:
    """Return True when ``first`` is a strictly greater version than ``second``."""
    return _require_version(first) > _require_version(second)


def lt(first: str, second: str) -> bool:
    """Return True when ``first`` is a strictly lower version than ``second``."""
    return _require_version(first) < _require_version(second)


def _require_version(value: str) -> SemVer:
    parsed = parse_version(value)
    if parsed is None:
        raise ValueError(f"Invalid version: {value!r}")
    return parsed


@dataclass(frozen=True)
class Comparator:
    """A single ``<op><version>`` test."""

    operator: str
    version: SemVer

    def test(self, version: SemVer) -> bool:
        if self.operator == "<":
            return version < self.version
        if self.operator == "<=":
            return version <= self.version
        if self.operator == ">":
            return version > self.version
        if self.operator == ">=":
            return version >= self.version
        return version == self.version

    def __str__(self) -> str:
        operator = "" if self.operator == "=" else self.operator
        return f"{operator}{self.version}"


ComparatorSet = Tuple[Comparator, ...]

_ANY: ComparatorSet = (Comparator(">=", ZERO),)
_NOTHING: ComparatorSet = (Comparator("<", MIN_VERSION),)


def _upper(major: int, minor: int = 0, patch: int = 0) -> SemVer:
    # Exclusive upper bounds carry the "-0" prerelease so that prereleases of
    # the next version do not match.
    return SemVer(major, minor, patch, (0,))


def _parse_partial(text: str) -> Partial:
    match = _PARTIAL_RE.match(text)
    if match is None:
        raise ValueError(f"Invalid version in range: {text!r}")
    parts: List[Optional[int]] = []
    wildcard = False
    for raw in match.groups()[:3]:
        if raw is None or raw in ("x", "X", "*") or wildcard:
            wildcard = True
            parts.append(None)
        else:
            parts.append(int(raw))
    prerelease = _parse_prerelease(match.group(4)) if parts[2] is not None else ()
    return parts[0], parts[1], parts[2], prerelease


def _tilde(partial: Partial) -> ComparatorSet:
    major, minor, patch, prerelease = partial
    if major is None:
        return _ANY
    if minor is None:
        return (Comparator(">=", SemVer(major, 0, 0)), Comparator("<", _upper(major + 1)))
    lower = SemVer(major, minor, patch or 0, prerelease)
    return (Comparator(">=", lower), Comparator("<", _upper(major, minor + 1)))


def _caret(partial: Partial) -> ComparatorSet:
    major, minor, patch, prerelease = partial
    if major is None:
        return _ANY
    if minor is None:
        return (Comparator(">=", SemVer(major, 0, 0)), Comparator("<", _upper(major + 1)))
    if patch is None:
        lower = SemVer(major, minor, 0)
        if major == 0:
            return (Comparator(">=", lower), Comparator("<", _upper(0, minor + 1)))
        return (Comparator(">=", lower), Comparator("<", _upper(major + 1)))
    lower = SemVer(major, minor, patch, prerelease)
    if major == 0:
        if minor == 0:
            upper = _upper(0, 0, patch + 1)
        else:
            upper = _upper(0, minor + 1)
    else:
        upper = _upper(major + 1)
    return (Comparator(">=", lower), Comparator("<", upper))


def _xrange(operator: str, partial: Partial) -> ComparatorSet:
    major, minor, patch, prerelease = partial
    if major is None:
        if operator in ("<", ">"):
            return _NOTHING
        return _ANY
    if patch is not None:
        return (Comparator(operator, SemVer(major, minor, patch, prerelease)),)

    if operator == ">":
        if minor is None:
            return (Comparator(">=", SemVer(major + 1, 0, 0)),)
        return (Comparator(">=", SemVer(major, minor + 1, 0)),)
    if operator == "<=":
        if minor is None:
            return (Comparator("<", _upper(major + 1)),)
        return (Comparator("<", _upper(major, minor + 1)),)
    if operator == "<":
        return (Comparator("<", _upper(major, minor or 0)),)
    if operator == ">=":
        return (Comparator(">=", SemVer(major, minor or 0, 0)),)
    if minor is None:
        return (Comparator(">=", SemVer(major, 0, 0)), Comparator("<", _upper(major + 1)))
    return (Comparator(">=", SemVer(major, minor, 0)), Comparator("<", _upper(major, minor + 1)))


def _hyphen(low: Partial, high: Partial) -> ComparatorSet:
    comparators: List[Comparator] = []
    if low[0] is not None:
        prerelease = low[3] if low[2] is not None else ()
        comparators.append(Comparator(">=", SemVer(low[0], low[1] or 0, low[2] or 0, prerelease)))
    if high[0] is not None:
        if high[1] is None:
            comparators.append(Comparator("<", _upper(high[0] + 1)))
        elif high[2] is None:
            comparators.append(Comparator("<", _upper(high[0], high[1] + 1)))
        else:
            comparators.append(Comparator("<=", SemVer(high[0], high[1], high[2], high[3])))
    return tuple(comparators) or _ANY


def _parse_primitive(token: str) -> ComparatorSet:
    match = _PRIMITIVE_RE.match(token)
    operator, rest = match.group(1), match.group(2)
    partial = _parse_partial(rest)
    if operator in ("~", "~>"):
        return _tilde(partial)
    if operator == "^":
        return _caret(partial)
    return _xrange(operator or "=", partial)


def _parse_set(text: str) -> ComparatorSet:
    text = text.strip()
    if not text:
        return _ANY
    hyphen = _HYPHEN_RE.match(text)
    if hyphen is not None:
        return _hyphen(_parse_partial(hyphen.group(1)), _parse_partial(hyphen.group(2)))
    comparators: List[Comparator] = []
    for token in _OPERATOR_SPACE_RE.sub(r"\1", text).split():
        comparators.extend(_parse_primitive(token))
    return tuple(comparators)


@dataclass(frozen=True)
class Range:
    """A union of comparator sets."""

    raw: str
    sets: Tuple[ComparatorSet, ...]

    def test(self, version: Union[str, SemVer]) -> bool:
        if isinstance(version, str):
            parsed = parse_version(version)
            if parsed is None:
                return False
            version = parsed
        return any(_test_set(comparators, version) for comparators in self.sets)

    def __str__(self) -> str:
        return "||".join(" ".join(str(c) for c in comparators) for comparators in self.sets)


def _test_set(comparators: ComparatorSet, version: SemVer) -> bool:
    if not all(comparator.test(version) for comparator in comparators):
        return False
    if not version.prerelease:
        return True
    # Prereleases only match when a comparator names a prerelease of the same release.
    return any(
        comparator.version.prerelease and comparator.version.release == version.release
        for comparator in comparators
    )


def parse_range(spec: str) -> Range:
    """Parse an npm range expression, raising ValueError when it is invalid."""
    if not isinstance(spec, str):
        raise ValueError(f"Invalid range: {spec!r}")
    sets = tuple(_parse_set(part) for part in spec.split("||"))
    return Range(raw=spec, sets=sets)


def valid_range(spec: str) -> Optional[str]:
    """Return the normalized form of ``spec`` or None when it is not a valid range."""
    try:
        return str(parse_range(spec))
    except ValueError:
        return None


def satisfies(version: str, spec: str) -> bool:
    """Return True when ``version`` is inside ``spec``; invalid input never satisfies."""
    try:
        range_ = parse_range(spec)
    except ValueError:
        return False
    return range_.test(version)


def max_satisfying(versions: Iterable[str], spec: str) -> Optional[str]:
    """Return the highest of ``versions`` inside ``spec``."""
    try:
        range_ = parse_range(spec)
    except ValueError:
        return None
    best: Optional[Tuple[SemVer, str]] = None
    for candidate in versions:
        parsed = parse_version(candidate)
        if parsed is None or not range_.test(parsed):
            continue
        if best is None or parsed > best[0]:
            best = (parsed, candidate)
    return best[1] if best is not None else None


def min_version(spec: str) -> Optional[SemVer]:
    """Return the lowest version that can satisfy ``spec``."""
    try:
        range_ = parse_range(spec)
    except ValueError:
        return None

    for candidate in (ZERO, MIN_VERSION):
        if range_.test(candidate):
            return candidate

    lowest: Optional[SemVer] = None
    for comparators in range_.sets:
        set_min: Optional[SemVer] = None
        for comparator in comparators:
            version = comparator.version
            if comparator.operator == ">":
                if version.prerelease:
                    version = SemVer(version.major, version.minor, version.patch, version.prerelease + (0,))
                else:
                    version = SemVer(version.major, version.minor, version.patch + 1)
            elif comparator.operator not in (">=", "="):
                continue
            if set_min is None or version > set_min:
                set_min = version
        if set_min is not None and (lowest is None or set_min < lowest):
            lowest = set_min

    if lowest is not None and range_.test(lowest):
        return lowest
    return None


@dataclass(frozen=True)
class _Interval:
    low: SemVer
    low_inclusive: bool
    high: Optional[SemVer]
    high_inclusive: bool

    @property
    def empty(self) -> bool:
        if self.high is None:
            return False
        if self.low > self.high:
            return True
        return self.low == self.high and not (self.low_inclusive and self.high_inclusive)

    def contains(self, other: "_Interval") -> bool:
        if self.low > other.low or (self.low == other.low and other.low_inclusive and not self.low_inclusive):
            return False
        if self.high is None:
            return True
        if other.high is None or other.high > self.high:
            return False
        return not (other.high == self.high and other.high_inclusive and not self.high_inclusive)


def _to_interval(comparators: ComparatorSet) -> _Interval:
    low, low_inclusive = MIN_VERSION, True
    high: Optional[SemVer] = None
    high_inclusive = False
    for comparator in comparators:
        version, operator = comparator.version, comparator.operator
        if operator in (">", ">=", "="):
            inclusive = operator != ">"
            if version > low or (version == low and not inclusive):
                low, low_inclusive = version, inclusive
        if operator in ("<", "<=", "="):
            inclusive = operator != "<"
            if high is None or version < high or (version == high and not inclusive):
                high, high_inclusive = version, inclusive
    if low == ZERO and low_inclusive:
        low = MIN_VERSION
    return _Interval(low, low_inclusive, high, high_inclusive)


def _prerelease_gap(last: _Interval, interval: _Interval) -> Optional[Tuple[int, int, int]]:
    # ``<X.Y.Z-0`` followed by ``>=X.Y.Z`` leaves only prereleases of X.Y.Z uncovered.
    high = last.high
    if high is None or last.high_inclusive or high.prerelease != (0,):
        return None
    if interval.low_inclusive and interval.low == SemVer(*high.release):
        return high.release
    return None


def _bridges(last: _Interval, interval: _Interval, matchable: Set[Tuple[int, int, int]]) -> bool:
    gap = _prerelease_gap(last, interval)
    return gap is not None and gap not in matchable


def _merge(
    intervals: List[_Interval], matchable: Optional[Set[Tuple[int, int, int]]] = None
) -> List[_Interval]:
    """Join overlapping or adjacent intervals.

    When ``matchable`` is given, two intervals separated only by the
    prereleases of a release missing from it are joined as well.
    """
    ordered = sorted(intervals, key=lambda item: (item.low, not item.low_inclusive))
    merged: List[_Interval] = []
    for interval in ordered:
        if merged:
            last = merged[-1]
            touches = last.high is None or interval.low < last.high or (
                interval.low == last.high and (last.high_inclusive or interval.low_inclusive)
            ) or (matchable is not None and _bridges(last, interval, matchable))
            if touches:
                if last.high is None or interval.high is None:
                    high, high_inclusive = None, False
                elif interval.high > last.high:
                    high, high_inclusive = interval.high, interval.high_inclusive
                elif interval.high == last.high:
                    high, high_inclusive = last.high, last.high_inclusive or interval.high_inclusive
                else:
                    high, high_inclusive = last.high, last.high_inclusive
                merged[-1] = _Interval(last.low, last.low_inclusive, high, high_inclusive)
                continue
        merged.append(interval)
    return merged


def _matchable_prereleases(comparators: ComparatorSet) -> Set[Tuple[int, int, int]]:
    """Releases whose prereleases a comparator set can match."""
    return {
        comparator.version.release
        for comparator in comparators
        if comparator.version.prerelease
        and not (comparator.operator == "<" and comparator.version.prerelease == (0,))
    }


def subset(sub: str, dom: str) -> bool:
    """Return True when every version matched by ``sub`` is also matched by ``dom``.

    Ranges are compared as unions of version intervals. A gap in ``dom``
    holding only prereleases of one release (``^1.0.0 || ^2.0.0`` skips
    ``2.0.0-*``) is ignored unless ``sub`` names a prerelease of that release.
    """
    try:
        sub_range = parse_range(sub)
        dom_range = parse_range(dom)
    except ValueError:
        return False

    dom_intervals = [item for item in map(_to_interval, dom_range.sets) if not item.empty]
    for comparators in sub_range.sets:
        interval = _to_interval(comparators)
        if interval.empty:
            continue
        candidates = _merge(dom_intervals, _matchable_prereleases(comparators))
        if not any(candidate.contains(interval) for candidate in candidates):
            return False
    return True
