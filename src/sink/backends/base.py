"""Protocol for dependency installation backends."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol

from sink.constraint import Exact, select_best
from sink.lockfile.model import LockEntry
from sink.models import ResolvedDependency


class Backend(Protocol):
    name: str

    def install(self, dependency: ResolvedDependency) -> LockEntry:
        """Install the best version satisfying the dependency and return its lock entry."""

    def remove(self, entry: LockEntry) -> None:
        """Uninstall what ``entry`` records."""

    def list_versions(self, dependency: ResolvedDependency) -> list[str]:
        """Return the versions the source offers for ``dependency``."""


def resolve_version(dependency: ResolvedDependency, candidates: Iterable[str]) -> str:
    """Pick the version to install; exact pins are passed through unchecked."""
    constraint = dependency.constraint()
    if isinstance(constraint, Exact):
        return constraint.version
    return select_best(constraint, candidates)
