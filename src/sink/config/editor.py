"""Format-preserving edits of sink TOML files."""

from __future__ import annotations

import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import tomlkit
from tomlkit.exceptions import ParseError as TOMLKitParseError
from tomlkit.items import AbstractTable
from tomlkit.toml_document import TOMLDocument

from sink.errors import ConfigError, ErrorKind, ValidationError
from sink.models import OptionValue

KEY_DEPENDENCIES = "dependencies"


def read_document(path: str | Path) -> TOMLDocument:
    config_path = Path(path)
    try:
        return tomlkit.parse(config_path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ConfigError(
            "Config file does not exist.",
            kind=ErrorKind.FILE_NOT_FOUND,
            context={"path": str(config_path)},
        ) from exc
    except TOMLKitParseError as exc:
        raise ConfigError(
            "Invalid TOML.",
            kind=ErrorKind.PARSE_ERROR,
            hint=str(exc),
            context={"path": str(config_path)},
        ) from exc


def write_document(document: TOMLDocument, path: str | Path) -> Path:
    config_path = Path(path)
    config_path.write_text(tomlkit.dumps(document), encoding="utf-8")
    return config_path


def add_dependency(
    path: str | Path,
    *,
    source: str,
    name: str,
    version: str | None,
    group: str | None = None,
    options: Mapping[str, OptionValue] | None = None,
) -> Path:
    """Declare ``name`` under ``[source.group.dependencies]`` (or ungrouped)."""
    document = read_document(path)
    section = _child_table(document, source)
    parent = _child_table(section, group) if group else section
    dependencies = _child_table(parent, KEY_DEPENDENCIES)

    if options:
        entry = tomlkit.inline_table()
        if version is not None:
            entry["version"] = version
        for key, value in options.items():
            entry[key] = value
        dependencies[name] = entry
    else:
        dependencies[name] = version if version is not None else "latest"
    return write_document(document, path)


def remove_dependency(
    path: str | Path,
    *,
    source: str,
    name: str,
    group: str | None = None,
) -> bool:
    """Delete every declaration of ``name`` in ``source``; return whether any existed."""
    document = read_document(path)
    section = document.get(source)
    if not isinstance(section, AbstractTable):
        return False

    containers: list[Any] = [section.get(KEY_DEPENDENCIES)]
    for key, value in section.items():
        if isinstance(value, AbstractTable) and key != KEY_DEPENDENCIES:
            if group is None or key.lower() == group.lower():
                containers.append(value.get(KEY_DEPENDENCIES))

    removed = False
    for container in containers:
        if isinstance(container, (AbstractTable, dict)) and name in container:
            del container[name]
            removed = True
    if removed:
        write_document(document, path)
    return removed


def set_field(path: str | Path, dotted: str, raw_value: str) -> Path:
    """Update a `.`-separated config field, parsing ``raw_value`` as a TOML value."""
    parts = [part for part in dotted.split(".") if part]
    if not parts:
        raise ValidationError("A field path is required.", context={"field": dotted})
    if KEY_DEPENDENCIES in parts:
        raise ValidationError(
            "Dependencies cannot be updated through config fields.",
            hint="Use `sink add` / `sink remove` instead.",
            context={"field": dotted},
        )
    document = read_document(path)
    container: Any = document
    for part in parts[:-1]:
        container = _child_table(container, part)
    container[parts[-1]] = parse_value(raw_value)
    return write_document(document, path)


def parse_value(raw: str) -> OptionValue:
    try:
        return tomllib.loads(f"value = {raw}")["value"]
    except tomllib.TOMLDecodeError:
        return raw


def _child_table(parent: Any, key: str) -> Any:
    existing = parent.get(key)
    if existing is None:
        created = tomlkit.table()
        parent[key] = created
        return parent[key]
    if not isinstance(existing, (AbstractTable, dict)):
        raise ConfigError(
            f"`{key}` exists but is not a table.",
            kind=ErrorKind.INVALID_VALUE,
            context={"key": key},
        )
    return existing
