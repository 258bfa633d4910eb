"""Lockfile model, serialization and reconciliation."""

from .fingerprint import artifacts_intact, fingerprint_files
from .io import parse_lockfile, read_lockfile, serialize_lockfile, write_lockfile
from .model import LOCKFILE_VERSION, LockEntry, Lockfile
from .plan import Action, Failure, Outcome, PlanItem, ReconcilePlan, Skipped, Success
from .reconcile import LockWriter, apply_outcome, apply_outcomes, reconcile

__all__ = [
    "LOCKFILE_VERSION",
    "Action",
    "Failure",
    "LockEntry",
    "LockWriter",
    "Lockfile",
    "Outcome",
    "PlanItem",
    "ReconcilePlan",
    "Skipped",
    "Success",
    "apply_outcome",
    "apply_outcomes",
    "artifacts_intact",
    "fingerprint_files",
    "parse_lockfile",
    "read_lockfile",
    "reconcile",
    "serialize_lockfile",
    "write_lockfile",
]
