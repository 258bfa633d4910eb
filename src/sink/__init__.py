"""sink: declare per-project dependencies in TOML and install them."""

from .compile import canonical_source, compile_effective_set
from .config import resolve
from .constraint import parse as parse_constraint
from .constraint import select_best
from .dispatch import DispatchReport, Dispatcher
from .errors import (
    BackendError,
    ConfigError,
    ConstraintError,
    ErrorCode,
    ErrorKind,
    IncludeCycleError,
    LockfileError,
    PolicyError,
    SinkError,
    ValidationError,
)
from .lockfile import LockEntry, Lockfile, read_lockfile, reconcile, write_lockfile
from .models import ConfigDocument, ResolvedDependency
from .project import InstallResult, Project
from .settings import Settings

__version__ = "0.1.0"

__all__ = [
    "BackendError",
    "ConfigDocument",
    "ConfigError",
    "ConstraintError",
    "DispatchReport",
    "Dispatcher",
    "ErrorCode",
    "ErrorKind",
    "IncludeCycleError",
    "InstallResult",
    "LockEntry",
    "Lockfile",
    "LockfileError",
    "PolicyError",
    "Project",
    "ResolvedDependency",
    "Settings",
    "SinkError",
    "ValidationError",
    "__version__",
    "canonical_source",
    "compile_effective_set",
    "parse_constraint",
    "read_lockfile",
    "reconcile",
    "resolve",
    "select_best",
    "write_lockfile",
]
