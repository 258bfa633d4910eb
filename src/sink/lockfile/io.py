"""Lockfile parser and serializer (TOML)."""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any

import tomlkit

from sink.errors import LockfileError
from sink.lockfile.model import LOCKFILE_VERSION, LockEntry, Lockfile

KEY_ENTRIES = "dependency"


def serialize_lockfile(lockfile: Lockfile) -> str:
    document = tomlkit.document()
    document.add(tomlkit.comment("This file is generated by sink. Do not edit it by hand."))
    document.add("version", lockfile.version)
    entries = tomlkit.aot()
    for entry in lockfile.entries:
        table = tomlkit.table()
        table.add("source", entry.source)
        table.add("name", entry.name)
        table.add("version", entry.version)
        table.add("artifacts", list(entry.artifacts))
        if entry.fingerprint is not None:
            table.add("fingerprint", entry.fingerprint)
        entries.append(table)
    document.add(KEY_ENTRIES, entries)
    return tomlkit.dumps(document)


def parse_lockfile(raw: str) -> Lockfile:
    try:
        payload = tomllib.loads(raw)
    except tomllib.TOMLDecodeError as exc:
        raise LockfileError("Invalid lockfile TOML.", hint=str(exc)) from exc

    version = payload.get("version", LOCKFILE_VERSION)
    if not isinstance(version, int) or version != LOCKFILE_VERSION:
        raise LockfileError(
            "Unsupported lockfile `version` value.",
            context={"version": str(version), "supported": str(LOCKFILE_VERSION)},
        )
    raw_entries = payload.get(KEY_ENTRIES, [])
    if not isinstance(raw_entries, list):
        raise LockfileError(f"Invalid lockfile `{KEY_ENTRIES}` value.")
    return Lockfile.from_entries(
        (_parse_entry(item) for item in raw_entries),
        version=version,
    )


def read_lockfile(path: str | Path, *, missing_ok: bool = False) -> Lockfile:
    lock_path = Path(path)
    try:
        raw = lock_path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        if missing_ok:
            return Lockfile()
        raise LockfileError(
            "Lockfile does not exist.",
            hint="Run `sink install` once before using `--sink`.",
            context={"path": str(lock_path)},
        ) from exc
    return parse_lockfile(raw)


def write_lockfile(lockfile: Lockfile, path: str | Path) -> Path:
    lock_path = Path(path)
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = lock_path.with_name(lock_path.name + ".tmp")
    temp_path.write_text(serialize_lockfile(lockfile), encoding="utf-8")
    os.replace(temp_path, lock_path)
    return lock_path


def _parse_entry(item: Any) -> LockEntry:
    if not isinstance(item, dict):
        raise LockfileError("Invalid dependency entry in lockfile.")
    artifacts = item.get("artifacts", [])
    if not isinstance(artifacts, list) or not all(isinstance(value, str) for value in artifacts):
        raise LockfileError("Invalid lockfile `artifacts` value.")
    fingerprint = item.get("fingerprint")
    if fingerprint is not None and not isinstance(fingerprint, str):
        raise LockfileError("Invalid lockfile `fingerprint` value.")
    return LockEntry(
        source=_required_str(item, "source"),
        name=_required_str(item, "name"),
        version=_required_str(item, "version"),
        artifacts=tuple(artifacts),
        fingerprint=fingerprint,
    )


def _required_str(payload: dict[str, Any], key: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or not value:
        raise LockfileError(f"Invalid lockfile `{key}` value.")
    return value
