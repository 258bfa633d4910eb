"""Reconcile the effective set against the lock, and apply outcomes back to it."""

from __future__ import annotations

import threading
from collections.abc import Iterable, Sequence
from pathlib import Path

from sink.constraint import Constraint, Latest, Version
from sink.errors import ConstraintError, LockfileError
from sink.lockfile.fingerprint import artifacts_intact
from sink.lockfile.io import write_lockfile
from sink.lockfile.model import Lockfile
from sink.lockfile.plan import Action, Outcome, PlanItem, ReconcilePlan, Success
from sink.models import ResolvedDependency


def reconcile(
    effective_set: Sequence[ResolvedDependency],
    lock: Lockfile,
    *,
    prune: bool = False,
    frozen: bool = False,
    project_dir: Path | None = None,
) -> ReconcilePlan:
    """Classify every dependency as install, upgrade, unchanged or remove.

    ``prune`` enables full-reconcile mode: lock entries with no counterpart in
    the effective set are scheduled for removal. Partial (filtered) runs must
    leave ``prune`` off so entries outside the filter survive.

    ``frozen`` installs exactly what the lock records: every dependency must be
    locked at a version its constraint still accepts, entries whose artifacts
    are intact are unchanged and everything else is reinstalled pinned to the
    locked version.
    """
    if frozen:
        items = [_classify_frozen(dependency, lock, project_dir=project_dir) for dependency in effective_set]
    else:
        items = [_classify(dependency, lock) for dependency in effective_set]

    if prune:
        wanted = {dependency.key for dependency in effective_set}
        items.extend(
            PlanItem(action=Action.REMOVE, locked=entry)
            for entry in lock.entries
            if entry.key not in wanted
        )
    return ReconcilePlan(items=tuple(items))


def _classify(dependency: ResolvedDependency, lock: Lockfile) -> PlanItem:
    locked = lock.get(*dependency.key)
    if locked is None:
        return PlanItem(action=Action.INSTALL, dependency=dependency)
    try:
        constraint = dependency.constraint()
    except ConstraintError:
        # Dispatch reports the malformed constraint for this entry.
        return PlanItem(action=Action.UPGRADE, dependency=dependency, locked=locked)
    if _accepts(constraint, locked.version):
        return PlanItem(action=Action.UNCHANGED, dependency=dependency, locked=locked)
    return PlanItem(action=Action.UPGRADE, dependency=dependency, locked=locked)


def _classify_frozen(
    dependency: ResolvedDependency,
    lock: Lockfile,
    *,
    project_dir: Path | None,
) -> PlanItem:
    locked = lock.get(*dependency.key)
    if locked is None:
        raise LockfileError(
            "Lockfile is stale: dependency is not locked.",
            hint="Run `sink install` without `--sink` to refresh the lock.",
            context={"dependency": dependency.ref},
        )
    try:
        constraint = dependency.constraint()
    except ConstraintError:
        constraint = None
    if constraint is not None and not _accepts(constraint, locked.version):
        raise LockfileError(
            "Lockfile is stale: locked version no longer satisfies the constraint.",
            hint="Run `sink install` without `--sink` to refresh the lock.",
            context={
                "dependency": dependency.ref,
                "locked": locked.version,
                "constraint": dependency.version or "latest",
            },
        )
    base = project_dir or Path.cwd()
    if artifacts_intact(locked, base=base):
        return PlanItem(action=Action.UNCHANGED, dependency=dependency, locked=locked)
    return PlanItem(
        action=Action.INSTALL,
        dependency=dependency.pinned(locked.version),
        locked=locked,
    )


def _accepts(constraint: Constraint, version: str) -> bool:
    if isinstance(constraint, Latest) and Version.parse(version) is None:
        # Non-numeric release tags are locked as-is under `latest`.
        return True
    return constraint.satisfies(version)


def apply_outcome(lock: Lockfile, outcome: Outcome) -> Lockfile:
    """Fold one outcome into ``lock``. Only successes ever change it."""
    if not isinstance(outcome, Success):
        return lock
    if outcome.item.action is Action.REMOVE:
        return lock.without(*outcome.item.key)
    return lock.with_entry(outcome.entry)


def apply_outcomes(lock: Lockfile, outcomes: Iterable[Outcome]) -> Lockfile:
    for outcome in outcomes:
        lock = apply_outcome(lock, outcome)
    return lock


class LockWriter:
    """Single writer for the lockfile: applies and persists one outcome at a time."""

    def __init__(self, path: str | Path, lock: Lockfile) -> None:
        self.path = Path(path)
        self._lock = lock
        self._mutex = threading.Lock()

    @property
    def lock(self) -> Lockfile:
        with self._mutex:
            return self._lock

    def record(self, outcome: Outcome) -> None:
        with self._mutex:
            updated = apply_outcome(self._lock, outcome)
            if updated is self._lock:
                return
            write_lockfile(updated, self.path)
            self._lock = updated


__all__ = ["LockWriter", "apply_outcome", "apply_outcomes", "reconcile"]
