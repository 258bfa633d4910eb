"""Deterministic in-memory backend for development and tests."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field

from sink.backends.base import resolve_version
from sink.errors import BackendError, ErrorKind
from sink.lockfile.model import LockEntry
from sink.models import ResolvedDependency


@dataclass(slots=True)
class InProcessBackend:
    """Pretends to install packages from a fixed version catalogue.

    ``failures`` maps a dependency name to the error kind its install raises.
    ``delay`` sleeps inside every install, which makes concurrency observable.
    """

    name: str = "inprocess"
    catalogue: dict[str, list[str]] = field(default_factory=dict)
    failures: dict[str, ErrorKind] = field(default_factory=dict)
    delay: float = 0.0
    installed: dict[tuple[str, str], LockEntry] = field(default_factory=dict)
    calls: list[tuple[str, str]] = field(default_factory=list)
    max_active: int = 0
    _active: int = 0
    _mutex: threading.Lock = field(default_factory=threading.Lock)

    def list_versions(self, dependency: ResolvedDependency) -> list[str]:
        return list(self.catalogue.get(dependency.qualified_name, []))

    def install(self, dependency: ResolvedDependency) -> LockEntry:
        with self._mutex:
            self.calls.append(("install", dependency.qualified_name))
            self._active += 1
            self.max_active = max(self.max_active, self._active)
        try:
            if self.delay:
                time.sleep(self.delay)
            kind = self.failures.get(dependency.qualified_name)
            if kind is not None:
                raise BackendError(
                    f"Simulated {kind} failure.",
                    kind=kind,
                    context={"dependency": dependency.ref},
                )
            version = resolve_version(dependency, self.list_versions(dependency))
            entry = LockEntry(source=dependency.source, name=dependency.qualified_name, version=version)
            with self._mutex:
                self.installed[entry.key] = entry
            return entry
        finally:
            with self._mutex:
                self._active -= 1

    def remove(self, entry: LockEntry) -> None:
        with self._mutex:
            self.calls.append(("remove", entry.name))
            if self.installed.pop(entry.key, None) is None:
                raise BackendError(
                    "Nothing installed under this name.",
                    kind=ErrorKind.ARTIFACT_MISSING,
                    context={"dependency": entry.ref},
                )
