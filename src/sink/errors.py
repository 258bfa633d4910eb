"""Typed error model with stable, machine-readable error codes and kinds."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from enum import StrEnum
from pathlib import Path


class ErrorCode(StrEnum):
    """Stable error identifiers used across API surfaces."""

    VALIDATION = "E_VALIDATION"
    CONFIG = "E_CONFIG"
    CONSTRAINT = "E_CONSTRAINT"
    BACKEND = "E_BACKEND"
    LOCKFILE = "E_LOCKFILE"
    POLICY = "E_POLICY"


class ErrorKind(StrEnum):
    """Fine-grained failure kinds reported per dependency entry."""

    FILE_NOT_FOUND = "FileNotFound"
    PARSE_ERROR = "ParseError"
    INCLUDE_CYCLE = "IncludeCycle"
    UNKNOWN_KEY = "UnknownKey"
    UNKNOWN_GROUP = "UnknownGroup"
    INVALID_VALUE = "InvalidValue"
    MALFORMED_CONSTRAINT = "MalformedConstraint"
    NO_MATCHING_VERSION = "NoMatchingVersion"
    REPOSITORY_NOT_FOUND = "RepositoryNotFound"
    RELEASE_NOT_FOUND = "ReleaseNotFound"
    ASSET_NOT_FOUND = "AssetNotFound"
    ARTIFACT_MISSING = "ArtifactMissing"
    ARTIFACT_WRITE = "ArtifactWrite"
    NETWORK = "Network"
    TIMEOUT = "Timeout"
    PLUGIN_FAILURE = "PluginFailure"
    UNKNOWN_SOURCE = "UnknownSource"
    FINGERPRINT_MISMATCH = "FingerprintMismatch"
    LOCK_CONFLICT = "LockConflict"
    CANCELLED = "Cancelled"
    INTERNAL = "Internal"


class SinkError(Exception):
    """Base error class that carries code, kind, optional hint, and context."""

    code: str
    kind: ErrorKind | None
    hint: str | None
    context: Mapping[str, str]

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode,
        kind: ErrorKind | None = None,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code.value
        self.kind = kind
        self.hint = hint
        self.context = dict(context or {})

    @property
    def message(self) -> str:
        return super().__str__()

    def __str__(self) -> str:
        parts = [super().__str__()]
        if self.hint:
            parts.append(f"Hint: {self.hint}")
        if self.context:
            for k, v in self.context.items():
                if v:
                    parts.append(f"  {k}: {v}")
        return "\n".join(parts)

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "code": self.code,
            "message": str(self),
            "context": dict(self.context),
        }
        if self.kind is not None:
            payload["kind"] = self.kind.value
        if self.hint is not None:
            payload["hint"] = self.hint
        return payload


class ValidationError(SinkError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.VALIDATION, hint=hint, context=context)


class ConfigError(SinkError):
    """Structural configuration failure. Always fatal, raised before dispatch."""

    def __init__(
        self,
        message: str,
        *,
        kind: ErrorKind = ErrorKind.INVALID_VALUE,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.CONFIG, kind=kind, hint=hint, context=context)


class IncludeCycleError(ConfigError):
    cycle: tuple[str, ...]

    def __init__(
        self,
        cycle: Sequence[str | Path],
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        self.cycle = tuple(str(item) for item in cycle)
        super().__init__(
            "Include cycle detected: " + " -> ".join(self.cycle),
            kind=ErrorKind.INCLUDE_CYCLE,
            hint=hint or "Remove one of the `includes` entries that closes the cycle.",
            context=context,
        )


class ConstraintError(SinkError):
    """Version constraint failure. Fatal only to the entry it belongs to."""

    def __init__(
        self,
        message: str,
        *,
        kind: ErrorKind = ErrorKind.MALFORMED_CONSTRAINT,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(
            message, code=ErrorCode.CONSTRAINT, kind=kind, hint=hint, context=context
        )


class BackendError(SinkError):
    """Install/remove failure reported by a backend for one entry."""

    def __init__(
        self,
        message: str,
        *,
        kind: ErrorKind = ErrorKind.PLUGIN_FAILURE,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.BACKEND, kind=kind, hint=hint, context=context)


class LockfileError(SinkError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.LOCKFILE, hint=hint, context=context)


class PolicyError(SinkError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.POLICY, hint=hint, context=context)


__all__ = [
    "BackendError",
    "ConfigError",
    "ConstraintError",
    "ErrorCode",
    "ErrorKind",
    "IncludeCycleError",
    "LockfileError",
    "PolicyError",
    "SinkError",
    "ValidationError",
]
