"""Lockfile typed model."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

LOCKFILE_VERSION = 1


@dataclass(frozen=True, slots=True)
class LockEntry:
    """What a backend actually installed for one (source, name) key."""

    source: str
    name: str
    version: str
    artifacts: tuple[str, ...] = ()
    fingerprint: str | None = None

    @property
    def key(self) -> tuple[str, str]:
        return (self.source, self.name)

    @property
    def ref(self) -> str:
        return f"{self.source}/{self.name}"


@dataclass(frozen=True, slots=True)
class Lockfile:
    """Immutable lock state; entries are always ordered by source, then name."""

    version: int = LOCKFILE_VERSION
    entries: tuple[LockEntry, ...] = ()

    @classmethod
    def from_entries(cls, entries: Iterable[LockEntry], *, version: int = LOCKFILE_VERSION) -> Lockfile:
        unique: dict[tuple[str, str], LockEntry] = {}
        for entry in entries:
            unique[entry.key] = entry
        return cls(version=version, entries=tuple(unique[key] for key in sorted(unique)))

    def get(self, source: str, name: str) -> LockEntry | None:
        for entry in self.entries:
            if entry.source == source and entry.name == name:
                return entry
        return None

    def keys(self) -> set[tuple[str, str]]:
        return {entry.key for entry in self.entries}

    def with_entry(self, entry: LockEntry) -> Lockfile:
        return Lockfile.from_entries((*self.entries, entry), version=self.version)

    def without(self, source: str, name: str) -> Lockfile:
        return Lockfile.from_entries(
            (entry for entry in self.entries if entry.key != (source, name)),
            version=self.version,
        )
