"""Install GitHub release assets into a project directory."""

from __future__ import annotations

import fnmatch
from dataclasses import dataclass, field
from pathlib import Path

from sink.constraint import Exact, Latest, Version, select_best
from sink.errors import BackendError, ErrorKind
from sink.fetch.github import Release, ReleaseSource
from sink.lockfile.fingerprint import artifact_label, artifact_path, fingerprint_files
from sink.lockfile.model import LockEntry
from sink.models import ResolvedDependency
from sink.observability import StructuredLogger
from sink.settings import Settings, ensure_network_allowed


@dataclass(slots=True)
class GitHubAssetInstaller:
    project_dir: Path
    client: ReleaseSource
    settings: Settings = field(default_factory=Settings)
    logger: StructuredLogger = field(default_factory=StructuredLogger)
    name: str = "github"

    def list_versions(self, dependency: ResolvedDependency) -> list[str]:
        return [release.tag for release in self._releases(dependency)]

    def install(self, dependency: ResolvedDependency) -> LockEntry:
        pattern = _option(dependency, "pattern")
        release = self._select_release(dependency, self._releases(dependency))

        assets = sorted(
            (asset for asset in release.assets if fnmatch.fnmatchcase(asset.name, pattern)),
            key=lambda asset: asset.name,
        )
        if not assets:
            raise BackendError(
                "No release asset matches the pattern.",
                kind=ErrorKind.ASSET_NOT_FOUND,
                hint="Check the asset names published with the release.",
                context={
                    "dependency": dependency.ref,
                    "release": release.tag,
                    "pattern": pattern,
                    "available": ", ".join(asset.name for asset in release.assets),
                },
            )

        target_dir = self._destination(dependency)
        timeout = self._timeout(dependency)
        written: list[Path] = []
        for asset in assets:
            self.logger.log(
                operation="install",
                source=dependency.source,
                dependency=dependency.qualified_name,
                action="download",
                message=f"Downloading {asset.name} ({release.tag})",
                level="debug",
            )
            written.append(
                self.client.download_asset(asset, target_dir / asset.name, timeout=timeout)
            )

        return LockEntry(
            source=dependency.source,
            name=dependency.qualified_name,
            version=release.tag,
            artifacts=tuple(sorted(artifact_label(path, base=self.project_dir) for path in written)),
            fingerprint=fingerprint_files(written, base=self.project_dir),
        )

    def remove(self, entry: LockEntry) -> None:
        missing: list[str] = []
        for label in entry.artifacts:
            path = artifact_path(label, base=self.project_dir)
            if path.is_file():
                path.unlink()
            else:
                missing.append(label)
        if missing:
            raise BackendError(
                "Some artifacts were already absent.",
                kind=ErrorKind.ARTIFACT_MISSING,
                context={"dependency": entry.ref, "missing": ", ".join(missing)},
            )

    def _releases(self, dependency: ResolvedDependency) -> list[Release]:
        ensure_network_allowed(settings=self.settings, operation="github.list_releases")
        releases = self.client.list_releases(
            _option(dependency, "owner"),
            _option(dependency, "repository"),
            timeout=self._timeout(dependency),
        )
        return [release for release in releases if not release.draft]

    def _select_release(self, dependency: ResolvedDependency, releases: list[Release]) -> Release:
        context = {"dependency": dependency.ref, "constraint": dependency.version or "latest"}
        if not releases:
            raise BackendError(
                "Repository has no published releases.",
                kind=ErrorKind.RELEASE_NOT_FOUND,
                context=context,
            )
        constraint = dependency.constraint()
        if isinstance(constraint, Exact):
            for release in releases:
                if release.tag == constraint.version or constraint.satisfies(release.tag):
                    return release
            raise BackendError(
                "No release with the requested tag.",
                kind=ErrorKind.RELEASE_NOT_FOUND,
                context=context,
            )
        candidates = releases
        if isinstance(constraint, Latest) and not constraint.include_prereleases:
            candidates = [release for release in releases if not release.prerelease]
        if isinstance(constraint, Latest) and candidates:
            if all(Version.parse(release.tag) is None for release in candidates):
                # Non-numeric tags: the API lists newest first.
                return candidates[0]
        tag = select_best(constraint, [release.tag for release in candidates])
        return next(release for release in candidates if release.tag == tag)

    def _destination(self, dependency: ResolvedDependency) -> Path:
        destination = Path(_option(dependency, "destination")).expanduser()
        if not destination.is_absolute():
            destination = self.project_dir / destination
        try:
            destination.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise BackendError(
                "Cannot create destination directory.",
                kind=ErrorKind.ARTIFACT_WRITE,
                context={"dependency": dependency.ref, "path": str(destination), "error": str(exc)},
            ) from exc
        return destination

    def _timeout(self, dependency: ResolvedDependency) -> float:
        raw = dependency.options.get("timeout")
        if isinstance(raw, (int, float)) and not isinstance(raw, bool) and raw > 0:
            return float(raw)
        return self.settings.timeout


def _option(dependency: ResolvedDependency, key: str) -> str:
    value = dependency.options.get(key)
    if not isinstance(value, str) or not value:
        raise BackendError(
            f"GitHub dependency is missing `{key}`.",
            kind=ErrorKind.INTERNAL,
            context={"dependency": dependency.ref},
        )
    return value
