"""Project-level orchestration: config, lock, reconcile and dispatch together."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from pathlib import Path

from sink.backends.base import Backend
from sink.backends.github import GitHubAssetInstaller
from sink.backends.plugin import plugin_for
from sink.compile import GITHUB_SOURCE, canonical_source, compile_effective_set, find_dependency
from sink.config.editor import add_dependency, remove_dependency
from sink.config.resolve import resolve
from sink.dispatch import DispatchReport, Dispatcher
from sink.errors import ValidationError
from sink.fetch.github import GitHubClient, ReleaseSource
from sink.lockfile.io import read_lockfile
from sink.lockfile.model import Lockfile
from sink.lockfile.plan import Action, PlanItem, ReconcilePlan
from sink.lockfile.reconcile import LockWriter, reconcile
from sink.models import ConfigDocument, OptionValue, ResolvedDependency
from sink.observability import StructuredLogger
from sink.settings import DEFAULT_CONFIG_FILENAME, Settings

SECTION_DISPLAY_NAMES = {"python": "Python", "rust": "Rust", "github": "GitHub"}


@dataclass(frozen=True, slots=True)
class InstallResult:
    plan: ReconcilePlan
    report: DispatchReport
    lock: Lockfile

    @property
    def unchanged(self) -> int:
        return len(self.plan.by_action(Action.UNCHANGED))

    def summary(self) -> str:
        text = self.report.summary()
        if self.unchanged:
            text += f"; {self.unchanged} unchanged"
        if self.report.interrupted:
            text += " (interrupted)"
        return text


def parse_dependency_ref(raw: str) -> tuple[str, str, str | None]:
    """Split ``source/name[@version]`` into its parts."""
    body, at, version = raw.partition("@")
    source, _, name = body.strip().partition("/")
    if not source or not name:
        raise ValidationError(
            "Dependency must be written as `source/name[@version]`.",
            hint="For example `python/requests@~2.31` or `github/owner/repo/*.tar.gz`.",
            context={"dependency": raw},
        )
    if at and not version.strip():
        raise ValidationError("Empty version after `@`.", context={"dependency": raw})
    return source, name, version.strip() if at else None


@dataclass(slots=True)
class Project:
    config_path: Path = field(default_factory=lambda: Path(DEFAULT_CONFIG_FILENAME))
    settings: Settings = field(default_factory=Settings.from_env)
    logger: StructuredLogger = field(default_factory=StructuredLogger)
    backends: dict[str, Backend] | None = None
    release_source: ReleaseSource | None = None

    @property
    def lock_path(self) -> Path:
        return self.config_path.parent / self.settings.lock_filename

    def load(self) -> ConfigDocument:
        return resolve(self.config_path)

    def effective_set(
        self,
        *,
        lang: str | None = None,
        group: str | None = None,
        all_groups: bool = False,
    ) -> list[ResolvedDependency]:
        return compile_effective_set(self.load(), lang=lang, group=group, all_groups=all_groups)

    def build_backends(self, document: ConfigDocument) -> dict[str, Backend]:
        """Default registry: GitHub assets plus one plugin per known language section."""
        client = self.release_source or GitHubClient(
            api_url=self.settings.github_api_url,
            token=self.settings.github_token,
            timeout=self.settings.timeout,
        )
        registry: dict[str, Backend] = {
            GITHUB_SOURCE: GitHubAssetInstaller(
                project_dir=document.project_dir,
                client=client,
                settings=self.settings,
                logger=self.logger,
            )
        }
        for section in document.sections.values():
            canonical = canonical_source(section.name)
            if canonical in registry:
                continue
            adapter = plugin_for(
                section.name,
                canonical,
                project_dir=document.project_dir,
                options=section.options,
                settings=self.settings,
            )
            if adapter is not None:
                registry[canonical] = adapter
        for name, backend in (self.backends or {}).items():
            registry[canonical_source(name)] = backend
        return registry

    def install(
        self,
        *,
        lang: str | None = None,
        group: str | None = None,
        all_groups: bool = False,
        frozen: bool = False,
        cancel: threading.Event | None = None,
    ) -> InstallResult:
        """Bring the environment (and lock) in line with the selected dependencies.

        ``all_groups`` without language or group filters is a full reconcile:
        locked dependencies that are no longer declared get removed.
        """
        document = self.load()
        selected = compile_effective_set(document, lang=lang, group=group, all_groups=all_groups)
        lock = read_lockfile(self.lock_path, missing_ok=not frozen)
        plan = reconcile(
            selected,
            lock,
            prune=all_groups and lang is None and group is None,
            frozen=frozen,
            project_dir=document.project_dir,
        )
        return self._execute(document, plan, lock, cancel=cancel)

    def add(
        self,
        raw: str,
        *,
        group: str | None = None,
        options: dict[str, OptionValue] | None = None,
        install: bool = True,
    ) -> InstallResult | None:
        """Declare a dependency in the root config and install it.

        The config file is restored when the install does not succeed.
        """
        source, name, version = parse_dependency_ref(raw)
        document = self.load()
        section = self._section_name(document, source)
        original = self.config_path.read_text(encoding="utf-8")
        add_dependency(
            self.config_path,
            source=section,
            name=name,
            version=version,
            group=group,
            options=options,
        )
        self._log("add", section, name, f"Declared {section}/{name} ({version or 'latest'})")
        if not install:
            return None

        try:
            document = self.load()
            dependency = find_dependency(document, source=section, name=name)
            if dependency is None:
                raise ValidationError(
                    "Added dependency is not part of any group.",
                    context={"dependency": f"{section}/{name}"},
                )
            lock = read_lockfile(self.lock_path, missing_ok=True)
            result = self._execute(document, reconcile([dependency], lock), lock)
        except BaseException:
            self._restore(original)
            raise
        if not result.report.ok:
            self._restore(original)
        return result

    def remove(self, raw: str) -> InstallResult:
        """Uninstall a dependency, drop it from the lock and from every config file."""
        source, name, _ = parse_dependency_ref(raw)
        document = self.load()
        dependency = find_dependency(document, source=source, name=name)
        if dependency is None:
            raise ValidationError(
                "Dependency is not declared.",
                context={"dependency": raw},
            )
        lock = read_lockfile(self.lock_path, missing_ok=True)
        locked = lock.get(*dependency.key)
        plan = ReconcilePlan(
            items=(PlanItem(action=Action.REMOVE, locked=locked),) if locked is not None else ()
        )
        result = self._execute(document, plan, lock)
        if result.report.ok:
            for path in document.files:
                remove_dependency(path, source=dependency.source, name=dependency.name)
            self._log("remove", dependency.source, dependency.qualified_name, "Removed from config")
        return result

    def _execute(
        self,
        document: ConfigDocument,
        plan: ReconcilePlan,
        lock: Lockfile,
        *,
        cancel: threading.Event | None = None,
    ) -> InstallResult:
        counts = plan.counts()
        self._log(
            "plan",
            None,
            None,
            ", ".join(f"{count} {action}" for action, count in counts.items() if count) or "empty plan",
            level="debug",
        )
        for item in plan.by_action(Action.UNCHANGED):
            source, name = item.key
            version = item.locked.version if item.locked is not None else "?"
            self._log("plan", source, name, f"unchanged ({version})", level="debug")
        if plan.is_noop:
            self._log("install", None, None, "Everything is up to date.")
            return InstallResult(plan=plan, report=DispatchReport(), lock=lock)

        writer = LockWriter(self.lock_path, lock)
        dispatcher = Dispatcher(
            backends=self.build_backends(document),
            jobs=self.settings.jobs,
            logger=self.logger,
        )
        report = dispatcher.dispatch(plan, on_outcome=writer.record, cancel=cancel)
        result = InstallResult(plan=plan, report=report, lock=writer.lock)
        self._log("install", None, None, result.summary(), level="info" if report.ok else "error")
        return result

    def _section_name(self, document: ConfigDocument, source: str) -> str:
        canonical = canonical_source(source)
        for name in document.sections:
            if canonical_source(name) == canonical:
                return name
        return SECTION_DISPLAY_NAMES.get(canonical, source)

    def _restore(self, original: str) -> None:
        self.config_path.write_text(original, encoding="utf-8")
        self._log("add", None, None, "Restored config after failed install.", level="warning")

    def _log(
        self,
        operation: str,
        source: str | None,
        dependency: str | None,
        message: str,
        *,
        level: str = "info",
    ) -> None:
        self.logger.log(
            operation=operation,
            source=source,
            dependency=dependency,
            action=None,
            message=message,
            level=level,
        )


__all__ = ["InstallResult", "Project", "parse_dependency_ref"]
