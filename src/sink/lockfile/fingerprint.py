"""Content fingerprints for installed artifacts."""

from __future__ import annotations

import hashlib
from collections.abc import Iterable
from pathlib import Path

from sink.lockfile.model import LockEntry

FINGERPRINT_PREFIX = "sha256:"


def artifact_label(path: Path, *, base: Path) -> str:
    """Return ``path`` relative to ``base`` (POSIX form) when possible."""
    try:
        return path.resolve().relative_to(base.resolve()).as_posix()
    except ValueError:
        return path.resolve().as_posix()


def artifact_path(label: str, *, base: Path) -> Path:
    candidate = Path(label)
    return candidate if candidate.is_absolute() else base / candidate


def fingerprint_files(paths: Iterable[Path], *, base: Path) -> str:
    digest = hashlib.sha256()
    labelled = sorted((artifact_label(path, base=base), path) for path in paths)
    for label, path in labelled:
        digest.update(label.encode("utf-8"))
        digest.update(b"\0")
        digest.update(hashlib.sha256(path.read_bytes()).hexdigest().encode("ascii"))
        digest.update(b"\n")
    return FINGERPRINT_PREFIX + digest.hexdigest()


def artifacts_intact(entry: LockEntry, *, base: Path) -> bool:
    """Whether every recorded artifact exists and still matches the fingerprint."""
    paths = [artifact_path(label, base=base) for label in entry.artifacts]
    if not all(path.is_file() for path in paths):
        return False
    if entry.fingerprint is None:
        return True
    return fingerprint_files(paths, base=base) == entry.fingerprint
