"""Parse a single sink TOML file into a ``ConfigNode``."""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Any

from sink.errors import ConfigError, ErrorKind
from sink.models import GROUP_KEYS, ConfigNode, DependencySpec, GroupNode, OptionValue, SectionNode

KEY_INCLUDES = "includes"
KEY_DEFAULT_GROUP = "default-group"
KEY_DEPENDENCIES = "dependencies"
KEY_VERSION = "version"
KEY_GROUP = "group"


def load_config_node(path: str | Path) -> ConfigNode:
    config_path = Path(path)
    try:
        raw = config_path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise ConfigError(
            "Config file does not exist.",
            kind=ErrorKind.FILE_NOT_FOUND,
            hint="Check the path or the `includes` entry referencing it.",
            context={"path": str(config_path)},
        ) from exc
    except IsADirectoryError as exc:
        raise ConfigError(
            "Config path is a directory.",
            kind=ErrorKind.FILE_NOT_FOUND,
            context={"path": str(config_path)},
        ) from exc
    try:
        data = tomllib.loads(raw)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(
            "Invalid TOML.",
            kind=ErrorKind.PARSE_ERROR,
            hint=str(exc),
            context={"path": str(config_path)},
        ) from exc
    return parse_config_node(data, path=config_path)


def parse_config_node(data: dict[str, Any], *, path: Path) -> ConfigNode:
    node = ConfigNode(path=path)
    for key, value in data.items():
        if key == KEY_INCLUDES:
            node.includes = tuple(
                _resolve_include(path, item) for item in _string_list(value, key=key, path=path)
            )
        elif key == KEY_DEFAULT_GROUP:
            node.default_group = _string(value, key=key, path=path)
        elif isinstance(value, dict):
            node.sections[key] = _parse_section(key, value, path=path)
        else:
            raise ConfigError(
                f"Unknown top-level key `{key}`.",
                kind=ErrorKind.UNKNOWN_KEY,
                hint="Only `includes`, `default-group` and section tables are allowed here.",
                context={"path": str(path), "key": key},
            )
    return node


def _parse_section(name: str, table: dict[str, Any], *, path: Path) -> SectionNode:
    section = SectionNode(name=name)
    for key, value in table.items():
        if key == KEY_DEFAULT_GROUP:
            section.default_group = _string(value, key=f"{name}.{key}", path=path)
        elif key == KEY_DEPENDENCIES:
            section.ungrouped.update(
                _parse_dependencies(value, group=None, prefix=f"{name}.{key}", path=path)
            )
        elif _is_group_table(value):
            section.groups[key] = _parse_group(key, value, prefix=f"{name}.{key}", path=path)
        else:
            section.options[key] = _option(value)
    return section


def _is_group_table(value: Any) -> bool:
    return isinstance(value, dict) and bool(value) and set(value) <= GROUP_KEYS


def _parse_group(name: str, table: dict[str, Any], *, prefix: str, path: Path) -> GroupNode:
    group = GroupNode(name=name)
    if KEY_INCLUDES in table:
        group.includes = tuple(
            _string_list(table[KEY_INCLUDES], key=f"{prefix}.{KEY_INCLUDES}", path=path)
        )
    if KEY_DEPENDENCIES in table:
        group.dependencies = _parse_dependencies(
            table[KEY_DEPENDENCIES],
            group=name,
            prefix=f"{prefix}.{KEY_DEPENDENCIES}",
            path=path,
        )
    return group


def _parse_dependencies(
    value: Any,
    *,
    group: str | None,
    prefix: str,
    path: Path,
) -> dict[str, DependencySpec]:
    if not isinstance(value, dict):
        raise ConfigError(
            f"`{prefix}` must be a table.",
            context={"path": str(path), "key": prefix},
        )
    return {
        name: _parse_dependency(name, entry, group=group, key=f"{prefix}.{name}", path=path)
        for name, entry in value.items()
    }


def _parse_dependency(
    name: str,
    entry: Any,
    *,
    group: str | None,
    key: str,
    path: Path,
) -> DependencySpec:
    if isinstance(entry, str):
        return DependencySpec(name=name, version=entry, group=group, origin=path)
    if not isinstance(entry, dict):
        raise ConfigError(
            f"Invalid dependency entry for `{name}`.",
            hint="Use a version string or a table with a `version` field.",
            context={"path": str(path), "key": key},
        )
    fields = dict(entry)
    version = fields.pop(KEY_VERSION, None)
    if version is not None and not isinstance(version, str):
        raise ConfigError(
            f"`version` of `{name}` must be a string.",
            context={"path": str(path), "key": key},
        )
    declared_group = fields.pop(KEY_GROUP, None)
    if declared_group is not None and not isinstance(declared_group, str):
        raise ConfigError(
            f"`group` of `{name}` must be a string.",
            context={"path": str(path), "key": key},
        )
    return DependencySpec(
        name=name,
        version=version,
        options={option: _option(item) for option, item in fields.items()},
        group=group or declared_group,
        origin=path,
    )


def _resolve_include(owner: Path, raw: str) -> Path:
    candidate = Path(raw).expanduser()
    if not candidate.is_absolute():
        candidate = owner.parent / candidate
    return candidate


def _string(value: Any, *, key: str, path: Path) -> str:
    if not isinstance(value, str) or not value:
        raise ConfigError(
            f"`{key}` must be a non-empty string.",
            context={"path": str(path), "key": key},
        )
    return value


def _string_list(value: Any, *, key: str, path: Path) -> list[str]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list) or not all(isinstance(item, str) and item for item in value):
        raise ConfigError(
            f"`{key}` must be a string or a list of strings.",
            context={"path": str(path), "key": key},
        )
    return list(value)


def _option(value: Any) -> OptionValue:
    if isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, list):
        return [_option(item) for item in value]
    if isinstance(value, dict):
        return {str(key): _option(item) for key, item in value.items()}
    # TOML dates and times
    return str(value)
