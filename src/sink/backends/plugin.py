"""Package-manager plugins driven through their command line tools.

Each language section maps to an ``ExternalPluginAdapter`` holding one
``CommandSet`` per provider (``pip`` for Python, ``cargo`` for Rust). A
dependency or section may pick another provider with the ``provider`` option.
Cargo has no command that lists every published version, so the Rust
provider reads them from the crates.io API instead.
"""

from __future__ import annotations

import os
import subprocess
import sys
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from urllib.error import HTTPError
from urllib.parse import quote

from sink.backends.base import resolve_version
from sink.constraint import Exact
from sink.errors import BackendError, ConstraintError, ErrorKind
from sink.fetch.http import fetch_json
from sink.lockfile.model import LockEntry
from sink.models import OptionValue, ResolvedDependency
from sink.settings import Settings, ensure_network_allowed


@dataclass(frozen=True, slots=True)
class CommandRequest:
    name: str
    version: str | None
    options: Mapping[str, OptionValue]
    project_dir: Path


@dataclass(frozen=True, slots=True)
class CommandSet:
    name: str
    install: Callable[[CommandRequest], list[str]]
    remove: Callable[[CommandRequest], list[str]]
    list_versions: Callable[[CommandRequest], list[str]] | None = None
    parse_versions: Callable[[str, CommandRequest], list[str]] | None = None
    fetch_versions: Callable[[CommandRequest, Settings], list[str]] | None = None


@dataclass(slots=True)
class ExternalPluginAdapter:
    source: str
    commands: Mapping[str, CommandSet]
    default_provider: str
    project_dir: Path
    options: Mapping[str, OptionValue] = field(default_factory=dict)
    settings: Settings = field(default_factory=Settings)
    name: str = "plugin"

    def list_versions(self, dependency: ResolvedDependency) -> list[str]:
        command_set = self._command_set(dependency.options)
        request = self._request(dependency.name, None, dependency.options)
        if command_set.fetch_versions is not None:
            ensure_network_allowed(settings=self.settings, operation=f"{self.source}.list_versions")
            return command_set.fetch_versions(request, self.settings)
        if command_set.list_versions is None or command_set.parse_versions is None:
            raise BackendError(
                f"Provider `{command_set.name}` cannot list versions.",
                kind=ErrorKind.PLUGIN_FAILURE,
                hint="Pin an exact version for this dependency.",
                context={"dependency": dependency.ref, "provider": command_set.name},
            )
        result = self._run(command_set.list_versions(request), operation="list_versions", ref=dependency.ref)
        return command_set.parse_versions(result.stdout, request)

    def install(self, dependency: ResolvedDependency) -> LockEntry:
        ensure_network_allowed(settings=self.settings, operation=f"{self.source}.install")
        command_set = self._command_set(dependency.options)
        if dependency.options.get("url"):
            constraint = dependency.constraint()
            if not isinstance(constraint, Exact):
                raise ConstraintError(
                    "URL dependencies need an exact version or tag.",
                    kind=ErrorKind.NO_MATCHING_VERSION,
                    context={"dependency": dependency.ref, "constraint": str(constraint)},
                )
            version = constraint.version
        else:
            candidates: list[str] = []
            if not isinstance(dependency.constraint(), Exact):
                candidates = self.list_versions(dependency)
            version = resolve_version(dependency, candidates)

        request = self._request(dependency.name, version, dependency.options)
        self._run(command_set.install(request), operation="install", ref=dependency.ref)
        return LockEntry(source=dependency.source, name=dependency.qualified_name, version=version)

    def remove(self, entry: LockEntry) -> None:
        command_set = self._command_set(self.options)
        request = self._request(entry.name, entry.version, self.options)
        self._run(command_set.remove(request), operation="remove", ref=entry.ref)

    def _command_set(self, options: Mapping[str, OptionValue]) -> CommandSet:
        provider = options.get("provider") or self.default_provider
        command_set = self.commands.get(str(provider))
        if command_set is None:
            raise BackendError(
                f"Unknown provider `{provider}` for {self.source}.",
                kind=ErrorKind.PLUGIN_FAILURE,
                hint=f"Available providers: {', '.join(sorted(self.commands))}.",
                context={"source": self.source, "provider": str(provider)},
            )
        return command_set

    def _request(
        self, name: str, version: str | None, options: Mapping[str, OptionValue]
    ) -> CommandRequest:
        return CommandRequest(name=name, version=version, options=options, project_dir=self.project_dir)

    def _run(self, cmd: Sequence[str], *, operation: str, ref: str) -> subprocess.CompletedProcess[str]:
        context = {
            "source": self.source,
            "dependency": ref,
            "operation": operation,
            "command": " ".join(cmd),
        }
        try:
            result = subprocess.run(
                list(cmd),
                cwd=str(self.project_dir),
                capture_output=True,
                text=True,
                check=False,
                timeout=self.settings.timeout,
            )
        except FileNotFoundError as exc:
            raise BackendError(
                f"`{cmd[0]}` is not installed.",
                kind=ErrorKind.PLUGIN_FAILURE,
                hint="Install the tool or pick another `provider`.",
                context=context,
            ) from exc
        except subprocess.TimeoutExpired as exc:
            raise BackendError(
                "Plugin command timed out.",
                kind=ErrorKind.TIMEOUT,
                hint="Raise SINK_TIMEOUT or `--timeout`.",
                context=context,
            ) from exc
        if result.returncode != 0:
            raise BackendError(
                "Plugin command failed.",
                kind=ErrorKind.PLUGIN_FAILURE,
                context={
                    **context,
                    "returncode": str(result.returncode),
                    "stderr": result.stderr[:2000] if result.stderr else "",
                },
            )
        return result


# ── pip ─────────────────────────────────────────────────────────────


def _python(request: CommandRequest) -> str:
    venv = request.options.get("venv")
    if not isinstance(venv, str) or not venv:
        return sys.executable
    candidate = Path(venv).expanduser()
    if candidate.is_absolute():
        base = candidate
    elif venv.startswith(".") or "/" in venv:
        base = request.project_dir / candidate
    else:
        base = Path.home() / ".virtualenvs" / venv
    if os.name == "nt":
        return str(base / "Scripts" / "python.exe")
    return str(base / "bin" / "python")


def _string_list(value: OptionValue | None) -> list[str]:
    if isinstance(value, str):
        return [value]
    if isinstance(value, list):
        return [str(item) for item in value]
    return []


def _pip_requirement(request: CommandRequest) -> str:
    extras = _string_list(request.options.get("extras"))
    name = f"{request.name}[{','.join(extras)}]" if extras else request.name
    url = request.options.get("url")
    if isinstance(url, str) and url:
        vcs_url = url if "+" in url.split("://", 1)[0] else f"git+{url}"
        return f"{name} @ {vcs_url}@{request.version}"
    return f"{name}=={request.version}"


def _pip_parse_versions(stdout: str, request: CommandRequest) -> list[str]:
    for line in stdout.splitlines():
        label, _, versions = line.partition(":")
        if label.strip() == "Available versions":
            return [version.strip() for version in versions.split(",") if version.strip()]
    return []


def pip_commands() -> CommandSet:
    return CommandSet(
        name="pip",
        install=lambda request: [_python(request), "-m", "pip", "install", _pip_requirement(request)],
        remove=lambda request: [_python(request), "-m", "pip", "uninstall", "-y", request.name],
        list_versions=lambda request: [_python(request), "-m", "pip", "index", "versions", request.name],
        parse_versions=_pip_parse_versions,
    )


def uv_commands() -> CommandSet:
    pip = pip_commands()
    return CommandSet(
        name="uv",
        install=lambda request: ["uv", "pip", "install", "--python", _python(request), _pip_requirement(request)],
        remove=lambda request: ["uv", "pip", "uninstall", "--python", _python(request), request.name],
        list_versions=pip.list_versions,
        parse_versions=pip.parse_versions,
    )


# ── cargo ───────────────────────────────────────────────────────────

def _cargo_install(request: CommandRequest) -> list[str]:
    cmd = ["cargo", "install"]
    url = request.options.get("url")
    if isinstance(url, str) and url:
        cmd.extend(["--git", url, "--tag", str(request.version)])
    else:
        cmd.extend(["--version", str(request.version)])
    features = _string_list(request.options.get("features"))
    if features:
        cmd.extend(["--features", ",".join(features)])
    cmd.append(request.name)
    return cmd


CRATES_MAX_PAGES = 20


def _crates_io_versions(request: CommandRequest, settings: Settings) -> list[str]:
    """Every published, non-yanked version of a crate, newest first."""
    base = f"{settings.crates_api_url}/crates/{quote(request.name, safe='')}/versions"
    headers = {"Accept": "application/json", "User-Agent": "sink"}
    versions: list[str] = []
    query = ""
    for _ in range(CRATES_MAX_PAGES):
        try:
            payload = fetch_json(base + query, headers=headers, timeout=settings.timeout)
        except HTTPError as exc:
            if exc.code == 404:
                raise BackendError(
                    "Crate not found on the registry.",
                    kind=ErrorKind.NO_MATCHING_VERSION,
                    context={"crate": request.name, "url": base},
                ) from exc
            raise BackendError(
                "Registry request failed.",
                kind=ErrorKind.NETWORK,
                context={"crate": request.name, "url": base, "status": str(exc.code)},
            ) from exc
        if not isinstance(payload, dict):
            raise BackendError(
                "Unexpected registry response.",
                kind=ErrorKind.NETWORK,
                context={"crate": request.name, "url": base},
            )
        for item in payload.get("versions") or []:
            if isinstance(item, dict) and isinstance(item.get("num"), str) and not item.get("yanked"):
                versions.append(item["num"])
        next_page = (payload.get("meta") or {}).get("next_page")
        if not next_page:
            break
        query = next_page
    return versions


def cargo_commands() -> CommandSet:
    return CommandSet(
        name="cargo",
        install=_cargo_install,
        remove=lambda request: ["cargo", "uninstall", request.name],
        fetch_versions=_crates_io_versions,
    )


PLUGIN_PROVIDERS: dict[str, tuple[str, tuple[Callable[[], CommandSet], ...]]] = {
    "python": ("pip", (pip_commands, uv_commands)),
    "rust": ("cargo", (cargo_commands,)),
}


def plugin_for(
    source: str,
    canonical: str,
    *,
    project_dir: Path,
    options: Mapping[str, OptionValue],
    settings: Settings,
) -> ExternalPluginAdapter | None:
    """Build the adapter for a language section, or ``None`` when no tool is known."""
    provider = PLUGIN_PROVIDERS.get(canonical)
    if provider is None:
        return None
    default_provider, factories = provider
    command_sets = [factory() for factory in factories]
    return ExternalPluginAdapter(
        source=source,
        commands={command_set.name: command_set for command_set in command_sets},
        default_provider=default_provider,
        project_dir=project_dir,
        options=options,
        settings=settings,
        name=f"{canonical}-{default_provider}",
    )
