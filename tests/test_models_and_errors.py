from pathlib import Path

from sink.constraint import Exact, Latest
from sink.errors import (
    BackendError,
    ConfigError,
    ConstraintError,
    ErrorCode,
    ErrorKind,
    IncludeCycleError,
    LockfileError,
    PolicyError,
    ValidationError,
)
from sink.lockfile import LockEntry
from sink.models import ResolvedDependency


def test_resolved_dependency_key_ref_and_pinning() -> None:
    dependency = ResolvedDependency(
        source="GitHub",
        name="*.tar.gz",
        qualified_name="acme/tool/*.tar.gz",
        version=None,
        group="default",
    )

    assert dependency.key == ("GitHub", "acme/tool/*.tar.gz")
    assert dependency.ref == "GitHub/acme/tool/*.tar.gz"
    assert dependency.constraint() == Latest()
    assert dependency.pinned("v1.2.0").constraint() == Exact("v1.2.0")


def test_lock_entry_key_matches_dependency_key() -> None:
    entry = LockEntry(source="GitHub", name="acme/tool/*.tar.gz", version="v1.2.0")
    assert entry.key == ("GitHub", "acme/tool/*.tar.gz")
    assert entry.ref == "GitHub/acme/tool/*.tar.gz"


def test_error_codes_are_stable_and_machine_readable() -> None:
    errors = [
        ValidationError("bad input"),
        ConfigError("bad config"),
        ConstraintError("bad constraint"),
        BackendError("install failed"),
        LockfileError("lock mismatch"),
        PolicyError("offline"),
    ]
    assert [error.code for error in errors] == [
        ErrorCode.VALIDATION.value,
        ErrorCode.CONFIG.value,
        ErrorCode.CONSTRAINT.value,
        ErrorCode.BACKEND.value,
        ErrorCode.LOCKFILE.value,
        ErrorCode.POLICY.value,
    ]


def test_default_kinds() -> None:
    assert ConfigError("x").kind is ErrorKind.INVALID_VALUE
    assert ConstraintError("x").kind is ErrorKind.MALFORMED_CONSTRAINT
    assert BackendError("x").kind is ErrorKind.PLUGIN_FAILURE
    assert LockfileError("x").kind is None


def test_error_to_dict_and_str_include_hint_and_context() -> None:
    error = BackendError(
        "Release not found.",
        kind=ErrorKind.RELEASE_NOT_FOUND,
        hint="Check the tag.",
        context={"dependency": "GitHub/a/b/c", "empty": ""},
    )

    payload = error.to_dict()
    assert payload["code"] == "E_BACKEND"
    assert payload["kind"] == "ReleaseNotFound"
    assert payload["hint"] == "Check the tag."
    assert payload["context"] == {"dependency": "GitHub/a/b/c", "empty": ""}

    text = str(error)
    assert text.splitlines()[0] == "Release not found."
    assert "Hint: Check the tag." in text
    assert "dependency: GitHub/a/b/c" in text
    assert "empty" not in text
    assert error.message == "Release not found."


def test_include_cycle_error_lists_the_cycle() -> None:
    error = IncludeCycleError([Path("a.toml"), Path("b.toml"), Path("a.toml")])
    assert error.cycle == ("a.toml", "b.toml", "a.toml")
    assert error.message == "Include cycle detected: a.toml -> b.toml -> a.toml"
    assert isinstance(error, ConfigError)
