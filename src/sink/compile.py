"""Effective set compiler: flatten a ``ConfigDocument`` into resolved dependencies."""

from __future__ import annotations

from collections.abc import Iterable

from sink.errors import ConfigError
from sink.models import ConfigDocument, DependencySpec, Group, OptionValue, ResolvedDependency, Section

GITHUB_SOURCE = "github"

SOURCE_ALIASES: dict[str, str] = {
    "py": "python",
    "rs": "rust",
    "gh": "github",
}


def canonical_source(name: str) -> str:
    lowered = name.strip().lower()
    return SOURCE_ALIASES.get(lowered, lowered)


def compile_effective_set(
    document: ConfigDocument,
    *,
    lang: str | None = None,
    group: str | None = None,
    all_groups: bool = False,
) -> list[ResolvedDependency]:
    """Return the ordered dependencies selected by the language and group filters.

    Both filters must match (conjunction). Without a group filter each section
    contributes its default group, or every group when ``all_groups`` is set.
    Sections, groups and dependencies keep their declaration order; when the same
    dependency is selected twice the later declaration wins but keeps the
    position of the first.
    """
    wanted_source = canonical_source(lang) if lang else None
    selected: dict[tuple[str, str], ResolvedDependency] = {}
    for section in document.sections.values():
        if wanted_source is not None and canonical_source(section.name) != wanted_source:
            continue
        for selected_group in _select_groups(document, section, group=group, all_groups=all_groups):
            for spec in selected_group.dependencies.values():
                dependency = _resolve_dependency(document, section, selected_group, spec)
                selected[dependency.key] = dependency
    return list(selected.values())


def find_dependency(
    document: ConfigDocument,
    *,
    source: str,
    name: str,
) -> ResolvedDependency | None:
    for dependency in compile_effective_set(document, lang=source, all_groups=True):
        if name in (dependency.name, dependency.qualified_name):
            return dependency
    return None


def _select_groups(
    document: ConfigDocument,
    section: Section,
    *,
    group: str | None,
    all_groups: bool,
) -> Iterable[Group]:
    if group is not None:
        wanted = group.lower()
        return [item for name, item in section.groups.items() if name.lower() == wanted]
    if all_groups:
        return list(section.groups.values())
    default = section.groups.get(document.effective_default_group(section))
    return [default] if default is not None else []


def _resolve_dependency(
    document: ConfigDocument,
    section: Section,
    group: Group,
    spec: DependencySpec,
) -> ResolvedDependency:
    options: dict[str, OptionValue] = {**section.options, **spec.options}
    qualified_name = spec.name
    if canonical_source(section.name) == GITHUB_SOURCE:
        qualified_name = _qualify_github(section, group, spec, options)
    return ResolvedDependency(
        source=section.name,
        name=spec.name,
        qualified_name=qualified_name,
        version=spec.version,
        group=group.name,
        options=options,
        origin=spec.origin,
    )


def _qualify_github(
    section: Section,
    group: Group,
    spec: DependencySpec,
    options: dict[str, OptionValue],
) -> str:
    """Fill in owner/repository defaults and return ``owner/repo/pattern``."""
    context = {
        "section": section.name,
        "group": group.name,
        "dependency": spec.name,
        "path": str(spec.origin or ""),
    }
    parts = spec.name.split("/")
    if len(parts) == 3:
        owner, repository, pattern = parts
    elif len(parts) == 1:
        pattern = spec.name
        raw_repository = options.get("repository") or options.get("default-repository")
        if not isinstance(raw_repository, str) or not raw_repository:
            raise ConfigError(
                f"No repository for GitHub dependency `{spec.name}`.",
                hint="Set `repository` on the dependency or `default-repository` on the section.",
                context=context,
            )
        if "/" in raw_repository:
            owner, _, repository = raw_repository.partition("/")
        else:
            raw_owner = options.get("owner") or options.get("default-owner")
            if not isinstance(raw_owner, str) or not raw_owner:
                raise ConfigError(
                    f"No owner for GitHub dependency `{spec.name}`.",
                    hint="Use `owner/repo` as repository or set `default-owner`.",
                    context=context,
                )
            owner, repository = raw_owner, raw_repository
    else:
        raise ConfigError(
            f"Invalid number ({len(parts) - 1}) of '/' in GitHub dependency `{spec.name}`.",
            hint="Use either `pattern` or `owner/repo/pattern`.",
            context=context,
        )
    if not owner or not repository or not pattern or "/" in repository:
        raise ConfigError(f"Invalid GitHub repository for `{spec.name}`.", context=context)

    destination = options.get("destination") or options.get("default-destination")
    if not isinstance(destination, str) or not destination.strip():
        raise ConfigError(
            f"No destination for GitHub dependency `{spec.name}`.",
            hint="Set `destination` on the dependency or `default-destination` on the section.",
            context=context,
        )

    options["owner"] = owner
    options["repository"] = repository
    options["pattern"] = pattern
    options["destination"] = destination
    return f"{owner}/{repository}/{pattern}"


__all__ = ["GITHUB_SOURCE", "canonical_source", "compile_effective_set", "find_dependency"]
