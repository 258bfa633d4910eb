"""Reconcile plans and the per-item outcomes produced by executing them."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from sink.errors import ErrorKind
from sink.lockfile.model import LockEntry
from sink.models import ResolvedDependency


class Action(StrEnum):
    INSTALL = "install"
    UPGRADE = "upgrade"
    UNCHANGED = "unchanged"
    REMOVE = "remove"


@dataclass(frozen=True, slots=True)
class PlanItem:
    action: Action
    dependency: ResolvedDependency | None = None
    locked: LockEntry | None = None

    @property
    def key(self) -> tuple[str, str]:
        if self.dependency is not None:
            return self.dependency.key
        if self.locked is None:
            raise ValueError("PlanItem needs a dependency or a lock entry.")
        return self.locked.key

    @property
    def source(self) -> str:
        return self.key[0]

    @property
    def ref(self) -> str:
        source, name = self.key
        return f"{source}/{name}"


@dataclass(frozen=True, slots=True)
class ReconcilePlan:
    items: tuple[PlanItem, ...] = ()

    def pending(self) -> tuple[PlanItem, ...]:
        return tuple(item for item in self.items if item.action is not Action.UNCHANGED)

    def by_action(self, action: Action) -> tuple[PlanItem, ...]:
        return tuple(item for item in self.items if item.action is action)

    def counts(self) -> dict[str, int]:
        return {action.value: len(self.by_action(action)) for action in Action}

    @property
    def is_noop(self) -> bool:
        return not self.pending()


@dataclass(frozen=True, slots=True)
class Success:
    item: PlanItem
    entry: LockEntry

    @property
    def ref(self) -> str:
        return self.item.ref


@dataclass(frozen=True, slots=True)
class Failure:
    item: PlanItem
    kind: ErrorKind
    message: str

    @property
    def ref(self) -> str:
        return self.item.ref


@dataclass(frozen=True, slots=True)
class Skipped:
    item: PlanItem
    kind: ErrorKind
    message: str

    @property
    def ref(self) -> str:
        return self.item.ref


Outcome = Success | Failure | Skipped

__all__ = [
    "Action",
    "Failure",
    "Outcome",
    "PlanItem",
    "ReconcilePlan",
    "Skipped",
    "Success",
]
