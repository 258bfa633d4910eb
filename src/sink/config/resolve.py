"""Include resolution: merge a root sink TOML and everything it includes.

Included files are merged before the including file's own entries, so for any
(section, group, dependency) key the file merged last wins. Merging is per key,
never per file: an included file only loses the keys the including file
redeclares.

Group-level ``includes`` (``[Python.dev] includes = "prod"``) are expanded once
all files are merged, so a group may inherit from a group declared in another
file.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path

from sink.config.loader import load_config_node
from sink.errors import ConfigError, ErrorKind, IncludeCycleError
from sink.models import (
    DEFAULT_GROUP,
    ConfigDocument,
    ConfigNode,
    DependencySpec,
    Group,
    OptionValue,
    Section,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class _Entry:
    seq: int
    spec: DependencySpec


@dataclass(slots=True)
class _GroupState:
    includes: tuple[str, ...] = ()
    entries: dict[str, _Entry] = field(default_factory=dict)


@dataclass(slots=True)
class _SectionState:
    options: dict[str, OptionValue] = field(default_factory=dict)
    default_group: str | None = None
    groups: dict[str, _GroupState] = field(default_factory=dict)
    ungrouped: dict[tuple[str | None, str], _Entry] = field(default_factory=dict)


@dataclass(slots=True)
class _MergeState:
    files: list[Path] = field(default_factory=list)
    default_group: str | None = None
    sections: dict[str, _SectionState] = field(default_factory=dict)
    seq: int = 0

    def next_seq(self) -> int:
        self.seq += 1
        return self.seq

    def merge(self, node: ConfigNode) -> None:
        if node.path not in self.files:
            self.files.append(node.path)
        if node.default_group is not None:
            self.default_group = node.default_group
        for name, section in node.sections.items():
            state = self.sections.setdefault(name, _SectionState())
            state.options.update(section.options)
            if section.default_group is not None:
                state.default_group = section.default_group
            for group_name, group in section.groups.items():
                group_state = state.groups.setdefault(group_name, _GroupState())
                if group.includes:
                    group_state.includes = group.includes
                for dep_name, spec in group.dependencies.items():
                    group_state.entries[dep_name] = _Entry(self.next_seq(), spec)
            for dep_name, spec in section.ungrouped.items():
                state.ungrouped[(spec.group, dep_name)] = _Entry(self.next_seq(), spec)


def resolve(root_path: str | Path) -> ConfigDocument:
    """Load ``root_path`` and merge all includes into one ``ConfigDocument``."""
    root = Path(root_path).expanduser().resolve()
    state = _MergeState()
    _merge_file(root, state, open_paths=())
    return _finalize(root, state)


def _merge_file(path: Path, state: _MergeState, *, open_paths: tuple[Path, ...]) -> None:
    resolved = path.resolve()
    if resolved in open_paths:
        start = open_paths.index(resolved)
        raise IncludeCycleError(
            [*open_paths[start:], resolved],
            context={"path": str(resolved)},
        )
    node = load_config_node(resolved)
    stack = (*open_paths, resolved)
    for include in node.includes:
        logger.debug("Including %s from %s", include, resolved)
        _merge_file(include, state, open_paths=stack)
    state.merge(node)


def _finalize(root: Path, state: _MergeState) -> ConfigDocument:
    sections: dict[str, Section] = {}
    for name, section_state in state.sections.items():
        default_group = section_state.default_group or state.default_group or DEFAULT_GROUP
        _place_ungrouped(section_state, default_group=default_group)
        resolved_groups = _expand_group_includes(name, section_state)
        sections[name] = Section(
            name=name,
            options=dict(section_state.options),
            default_group=section_state.default_group,
            groups={
                group_name: Group(
                    name=group_name,
                    includes=section_state.groups[group_name].includes,
                    dependencies=dependencies,
                )
                for group_name, dependencies in resolved_groups.items()
            },
        )
    return ConfigDocument(
        root=root,
        files=tuple(state.files),
        default_group=state.default_group,
        sections=sections,
    )


def _place_ungrouped(section: _SectionState, *, default_group: str) -> None:
    for (declared_group, name), entry in section.ungrouped.items():
        target_name = declared_group or default_group
        target = section.groups.setdefault(target_name, _GroupState())
        existing = target.entries.get(name)
        if existing is not None and existing.seq > entry.seq:
            continue
        target.entries[name] = _Entry(entry.seq, replace(entry.spec, group=target_name))
    section.ungrouped.clear()


def _expand_group_includes(
    section_name: str,
    section: _SectionState,
) -> dict[str, dict[str, DependencySpec]]:
    resolved: dict[str, dict[str, DependencySpec]] = {}

    def expand(group_name: str, visiting: tuple[str, ...]) -> dict[str, DependencySpec]:
        if group_name in resolved:
            return resolved[group_name]
        if group_name in visiting:
            start = visiting.index(group_name)
            raise IncludeCycleError(
                [f"{section_name}.{item}" for item in (*visiting[start:], group_name)],
                hint="Group `includes` must not form a cycle.",
                context={"section": section_name},
            )
        group = section.groups.get(group_name)
        if group is None:
            raise ConfigError(
                f"Group `{visiting[-1]}` includes unknown group `{group_name}`.",
                kind=ErrorKind.UNKNOWN_GROUP,
                hint="Group includes may only reference groups of the same section.",
                context={"section": section_name, "group": visiting[-1]},
            )
        merged: dict[str, DependencySpec] = {}
        for parent in group.includes:
            merged.update(expand(parent, (*visiting, group_name)))
        for name, entry in group.entries.items():
            merged[name] = entry.spec
        resolved[group_name] = merged
        return merged

    for group_name in section.groups:
        expand(group_name, ())
    return {group_name: resolved[group_name] for group_name in section.groups}


__all__ = ["resolve"]
