"""Core typed dataclasses for configuration trees and resolved dependencies."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Union

from sink.constraint import Constraint, parse

OptionValue = Union[str, int, float, bool, list["OptionValue"], dict[str, "OptionValue"]]

DEFAULT_GROUP = "default"
GROUP_KEYS = frozenset({"dependencies", "includes"})


# ── Per-file parse results ──────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class DependencySpec:
    """One declared dependency: a bare constraint or a structured record."""

    name: str
    version: str | None = None
    options: Mapping[str, OptionValue] = field(default_factory=dict)
    group: str | None = None
    origin: Path | None = None


@dataclass(slots=True)
class GroupNode:
    name: str
    includes: tuple[str, ...] = ()
    dependencies: dict[str, DependencySpec] = field(default_factory=dict)


@dataclass(slots=True)
class SectionNode:
    name: str
    options: dict[str, OptionValue] = field(default_factory=dict)
    default_group: str | None = None
    groups: dict[str, GroupNode] = field(default_factory=dict)
    # Entries declared under `[Section.dependencies]` without a group table.
    ungrouped: dict[str, DependencySpec] = field(default_factory=dict)


@dataclass(slots=True)
class ConfigNode:
    path: Path
    includes: tuple[Path, ...] = ()
    default_group: str | None = None
    sections: dict[str, SectionNode] = field(default_factory=dict)


# ── Merged document ─────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class Group:
    name: str
    includes: tuple[str, ...]
    dependencies: Mapping[str, DependencySpec]


@dataclass(frozen=True, slots=True)
class Section:
    name: str
    options: Mapping[str, OptionValue]
    default_group: str | None
    groups: Mapping[str, Group]


@dataclass(frozen=True, slots=True)
class ConfigDocument:
    """Read-only result of merging a root file with everything it includes."""

    root: Path
    files: tuple[Path, ...]
    default_group: str | None
    sections: Mapping[str, Section]

    @property
    def project_dir(self) -> Path:
        return self.root.parent

    def effective_default_group(self, section: Section) -> str:
        return section.default_group or self.default_group or DEFAULT_GROUP

    def languages(self) -> list[str]:
        return list(self.sections)

    def groups(self) -> list[str]:
        names: list[str] = []
        for section in self.sections.values():
            for name in section.groups:
                if name not in names:
                    names.append(name)
        return names

    def dependencies(self) -> list[tuple[str, str, DependencySpec]]:
        return [
            (section.name, group.name, spec)
            for section in self.sections.values()
            for group in section.groups.values()
            for spec in group.dependencies.values()
        ]

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        if self.default_group is not None:
            payload["default-group"] = self.default_group
        for section in self.sections.values():
            section_payload: dict[str, Any] = dict(section.options)
            if section.default_group is not None:
                section_payload["default-group"] = section.default_group
            for group in section.groups.values():
                group_payload: dict[str, Any] = {}
                if group.includes:
                    group_payload["includes"] = list(group.includes)
                group_payload["dependencies"] = {
                    name: _spec_payload(spec) for name, spec in group.dependencies.items()
                }
                section_payload[group.name] = group_payload
            payload[section.name] = section_payload
        return payload

    def get_field(self, dotted: str) -> Any:
        """Look up a `.`-separated path inside the merged document."""
        current: Any = self.to_dict()
        for part in dotted.split("."):
            if not isinstance(current, dict) or part not in current:
                raise KeyError(dotted)
            current = current[part]
        return current


def _spec_payload(spec: DependencySpec) -> OptionValue:
    if not spec.options:
        return spec.version if spec.version is not None else "latest"
    payload: dict[str, OptionValue] = dict(spec.options)
    if spec.version is not None:
        payload["version"] = spec.version
    return payload


# ── Effective set ───────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class ResolvedDependency:
    """A flattened, filter-selected dependency ready for reconcile/dispatch."""

    source: str
    name: str
    qualified_name: str
    version: str | None
    group: str
    options: Mapping[str, OptionValue] = field(default_factory=dict)
    origin: Path | None = None

    @property
    def key(self) -> tuple[str, str]:
        return (self.source, self.qualified_name)

    @property
    def ref(self) -> str:
        return f"{self.source}/{self.qualified_name}"

    def constraint(self) -> Constraint:
        return parse(self.version)

    def pinned(self, version: str) -> ResolvedDependency:
        return replace(self, version=f"={version}")


__all__ = [
    "DEFAULT_GROUP",
    "ConfigDocument",
    "ConfigNode",
    "DependencySpec",
    "Group",
    "GroupNode",
    "OptionValue",
    "ResolvedDependency",
    "Section",
    "SectionNode",
]
