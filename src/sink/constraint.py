"""Version constraints and their evaluation against candidate versions.

Supported syntax::

    1.2.3 / =1.2.3 / ==1.2.3   exact match
    >1.2.3                     strictly greater
    <1.2.3                     strictly lower
    ~1.2.3 / ^1.2.3            compatible (same major, or same major.minor below 1.0)
    latest / * / <empty>       highest release
    prerelease                 highest version, prereleases included

A leading ``v`` is ignored, so ``v1.2.3`` and ``1.2.3`` denote the same version.
Numeric components compare numerically; a non-numeric suffix is only consulted
once the numeric parts are equal, and a version carrying one (``1.0.0-rc1``)
sorts below the plain release.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass

from sink.errors import ConstraintError, ErrorKind

_VERSION_PATTERN = re.compile(r"^[vV]?(?P<numbers>\d+(?:\.\d+)*)(?P<suffix>.*)$")
_TAG_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._+\-]*$")


@dataclass(frozen=True, slots=True)
class Version:
    raw: str
    numbers: tuple[int, ...]
    suffix: str = ""

    @classmethod
    def parse(cls, raw: str) -> Version | None:
        match = _VERSION_PATTERN.fullmatch(raw.strip())
        if match is None:
            return None
        numbers = tuple(int(part) for part in match.group("numbers").split("."))
        return cls(raw=raw, numbers=numbers, suffix=match.group("suffix"))

    @property
    def major(self) -> int:
        return self.numbers[0]

    @property
    def minor(self) -> int:
        return self.numbers[1] if len(self.numbers) > 1 else 0

    @property
    def is_prerelease(self) -> bool:
        return bool(self.suffix) and not self.suffix.startswith("+")

    def sort_key(self) -> tuple[tuple[int, ...], int, str]:
        numbers = list(self.numbers)
        while len(numbers) > 1 and numbers[-1] == 0:
            numbers.pop()
        return (tuple(numbers), 0 if self.is_prerelease else 1, self.suffix)


def normalize_version(raw: str) -> str:
    value = raw.strip()
    if value[:1] in ("v", "V") and value[1:2].isdigit():
        return value[1:]
    return value


def compare_versions(left: str, right: str) -> int:
    """Return -1, 0 or 1 like a classic ``cmp``; unparseable versions sort lowest."""
    left_key = _sort_key(left)
    right_key = _sort_key(right)
    if left_key < right_key:
        return -1
    if left_key > right_key:
        return 1
    return 0


def _sort_key(raw: str) -> tuple[int, tuple[tuple[int, ...], int, str]]:
    parsed = Version.parse(raw)
    if parsed is None:
        return (0, ((), 0, normalize_version(raw)))
    return (1, parsed.sort_key())


@dataclass(frozen=True, slots=True)
class Exact:
    version: str

    def satisfies(self, candidate: str) -> bool:
        wanted = Version.parse(self.version)
        actual = Version.parse(candidate)
        if wanted is not None and actual is not None:
            return wanted.sort_key() == actual.sort_key()
        return normalize_version(self.version) == normalize_version(candidate)

    def __str__(self) -> str:
        return f"={self.version}"


@dataclass(frozen=True, slots=True)
class GreaterThan:
    version: str

    def satisfies(self, candidate: str) -> bool:
        if Version.parse(candidate) is None:
            return False
        return compare_versions(candidate, self.version) > 0

    def __str__(self) -> str:
        return f">{self.version}"


@dataclass(frozen=True, slots=True)
class LessThan:
    version: str

    def satisfies(self, candidate: str) -> bool:
        if Version.parse(candidate) is None:
            return False
        return compare_versions(candidate, self.version) < 0

    def __str__(self) -> str:
        return f"<{self.version}"


@dataclass(frozen=True, slots=True)
class Compatible:
    version: str

    def satisfies(self, candidate: str) -> bool:
        wanted = Version.parse(self.version)
        actual = Version.parse(candidate)
        if wanted is None or actual is None:
            return False
        if actual.major != wanted.major:
            return False
        if wanted.major == 0 and actual.minor != wanted.minor:
            return False
        return actual.sort_key() >= wanted.sort_key()

    def __str__(self) -> str:
        return f"~{self.version}"


@dataclass(frozen=True, slots=True)
class Latest:
    include_prereleases: bool = False

    def satisfies(self, candidate: str) -> bool:
        parsed = Version.parse(candidate)
        if parsed is None:
            return False
        return self.include_prereleases or not parsed.is_prerelease

    def __str__(self) -> str:
        return "prerelease" if self.include_prereleases else "latest"


Constraint = Exact | GreaterThan | LessThan | Compatible | Latest

_OPERATORS: tuple[tuple[str, type[Exact | GreaterThan | LessThan | Compatible]], ...] = (
    ("==", Exact),
    ("=", Exact),
    (">", GreaterThan),
    ("<", LessThan),
    ("~", Compatible),
    ("^", Compatible),
)


def parse(raw: str | None) -> Constraint:
    """Parse a constraint string, raising ``ConstraintError`` on unknown syntax."""
    if raw is None:
        return Latest()
    if not isinstance(raw, str):
        raise _malformed(str(raw))
    value = raw.strip()
    lowered = value.lower()
    if lowered in ("", "latest", "*"):
        return Latest()
    if lowered == "prerelease":
        return Latest(include_prereleases=True)

    for operator, variant in _OPERATORS:
        if value.startswith(operator):
            operand = value[len(operator) :].strip()
            if variant is Exact and operand and _TAG_PATTERN.fullmatch(operand):
                return Exact(operand)
            if Version.parse(operand) is None:
                raise _malformed(raw)
            return variant(operand)

    if _TAG_PATTERN.fullmatch(value):
        return Exact(value)
    raise _malformed(raw)


def satisfies(constraint: Constraint, candidate: str) -> bool:
    return constraint.satisfies(candidate)


def select_best(constraint: Constraint, candidates: Iterable[str]) -> str:
    """Return the highest candidate satisfying ``constraint``."""
    pool = list(candidates)
    matching = [candidate for candidate in pool if constraint.satisfies(candidate)]
    if not matching:
        raise ConstraintError(
            f"No version satisfies constraint `{constraint}`.",
            kind=ErrorKind.NO_MATCHING_VERSION,
            hint="Relax the constraint or check which versions are published.",
            context={
                "constraint": str(constraint),
                "candidates": ", ".join(pool[:10]) + (" ..." if len(pool) > 10 else ""),
            },
        )
    return max(matching, key=_sort_key)


def _malformed(raw: str) -> ConstraintError:
    return ConstraintError(
        f"Malformed version constraint `{raw}`.",
        kind=ErrorKind.MALFORMED_CONSTRAINT,
        hint="Use an exact version, or prefix it with one of =, >, <, ~, ^.",
        context={"constraint": raw},
    )


__all__ = [
    "Compatible",
    "Constraint",
    "Exact",
    "GreaterThan",
    "Latest",
    "LessThan",
    "Version",
    "compare_versions",
    "normalize_version",
    "parse",
    "satisfies",
    "select_best",
]
