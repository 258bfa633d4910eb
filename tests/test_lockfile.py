from pathlib import Path

import pytest

from sink.errors import LockfileError
from sink.lockfile import (
    LockEntry,
    Lockfile,
    artifacts_intact,
    fingerprint_files,
    parse_lockfile,
    read_lockfile,
    serialize_lockfile,
    write_lockfile,
)


def _lock() -> Lockfile:
    return Lockfile.from_entries(
        [
            LockEntry(source="Rust", name="serde", version="1.0.197"),
            LockEntry(
                source="GitHub",
                name="acme/tool/*.tar.gz",
                version="v1.1.0",
                artifacts=("vendor/tool-linux.tar.gz",),
                fingerprint="sha256:abc",
            ),
            LockEntry(source="Python", name="requests", version="2.31.0"),
        ]
    )


def test_entries_are_sorted_and_deduplicated() -> None:
    lock = _lock().with_entry(LockEntry(source="Rust", name="serde", version="1.0.198"))

    assert [entry.ref for entry in lock.entries] == [
        "GitHub/acme/tool/*.tar.gz",
        "Python/requests",
        "Rust/serde",
    ]
    assert lock.get("Rust", "serde").version == "1.0.198"
    assert lock.without("Rust", "serde").get("Rust", "serde") is None


def test_serialized_lockfile_is_stable_toml() -> None:
    text = serialize_lockfile(_lock())

    assert text.startswith("# This file is generated by sink.")
    assert "[[dependency]]" in text
    assert parse_lockfile(text) == _lock()
    assert serialize_lockfile(parse_lockfile(text)) == text


def test_write_lockfile_replaces_atomically(tmp_path: Path) -> None:
    path = write_lockfile(_lock(), tmp_path / "nested" / "sink.lock")

    assert read_lockfile(path) == _lock()
    assert not (tmp_path / "nested" / "sink.lock.tmp").exists()


def test_missing_lockfile_is_an_error_unless_allowed(tmp_path: Path) -> None:
    with pytest.raises(LockfileError):
        read_lockfile(tmp_path / "sink.lock")
    assert read_lockfile(tmp_path / "sink.lock", missing_ok=True) == Lockfile()


@pytest.mark.parametrize(
    "text",
    [
        "version = 99\n",
        "version = 1\ndependency = 3\n",
        'version = 1\n[[dependency]]\nsource = "Rust"\nversion = "1"\n',
        'version = 1\n[[dependency]]\nsource = "Rust"\nname = "x"\nversion = "1"\nartifacts = [1]\n',
        "not toml at all [",
    ],
)
def test_parse_lockfile_rejects_invalid_documents(text: str) -> None:
    with pytest.raises(LockfileError):
        parse_lockfile(text)


def test_fingerprint_tracks_artifact_content(tmp_path: Path) -> None:
    artifact = tmp_path / "vendor" / "tool"
    artifact.parent.mkdir()
    artifact.write_bytes(b"one")
    fingerprint = fingerprint_files([artifact], base=tmp_path)
    entry = LockEntry(
        source="GitHub",
        name="acme/tool/tool",
        version="v1",
        artifacts=("vendor/tool",),
        fingerprint=fingerprint,
    )

    assert fingerprint.startswith("sha256:")
    assert artifacts_intact(entry, base=tmp_path)

    artifact.write_bytes(b"two")
    assert not artifacts_intact(entry, base=tmp_path)

    artifact.unlink()
    assert not artifacts_intact(entry, base=tmp_path)
