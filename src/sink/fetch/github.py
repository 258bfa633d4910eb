"""GitHub release listing and asset download."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol
from urllib.error import HTTPError

from sink.errors import BackendError, ErrorKind
from sink.fetch.http import download, fetch_json
from sink.settings import DEFAULT_GITHUB_API


@dataclass(frozen=True, slots=True)
class ReleaseAsset:
    name: str
    download_url: str
    api_url: str = ""
    size: int = 0


@dataclass(frozen=True, slots=True)
class Release:
    tag: str
    prerelease: bool = False
    draft: bool = False
    assets: tuple[ReleaseAsset, ...] = ()


class ReleaseSource(Protocol):
    def list_releases(
        self, owner: str, repository: str, *, timeout: float | None = None
    ) -> list[Release]:
        """Return every release of ``owner/repository``, newest first."""

    def download_asset(
        self, asset: ReleaseAsset, destination: Path, *, timeout: float | None = None
    ) -> Path:
        """Write ``asset`` to ``destination`` and return the written path."""


@dataclass(slots=True)
class GitHubClient:
    api_url: str = DEFAULT_GITHUB_API
    token: str | None = None
    timeout: float = 60.0
    per_page: int = 100
    max_pages: int = 10

    def list_releases(
        self, owner: str, repository: str, *, timeout: float | None = None
    ) -> list[Release]:
        releases: list[Release] = []
        for page in range(1, self.max_pages + 1):
            url = (
                f"{self.api_url}/repos/{owner}/{repository}/releases"
                f"?per_page={self.per_page}&page={page}"
            )
            try:
                payload = fetch_json(url, headers=self._headers(), timeout=timeout or self.timeout)
            except HTTPError as exc:
                raise self._http_error(exc, owner=owner, repository=repository) from exc
            if not isinstance(payload, list):
                raise BackendError(
                    "Unexpected release listing payload.",
                    kind=ErrorKind.NETWORK,
                    context={"url": url},
                )
            releases.extend(_parse_release(item) for item in payload if isinstance(item, dict))
            if len(payload) < self.per_page:
                break
        return releases

    def download_asset(
        self, asset: ReleaseAsset, destination: Path, *, timeout: float | None = None
    ) -> Path:
        if self.token and asset.api_url:
            url = asset.api_url
            headers = self._headers(accept="application/octet-stream")
        else:
            url = asset.download_url
            headers = {}
        try:
            return download(url, destination, headers=headers, timeout=timeout or self.timeout)
        except HTTPError as exc:
            raise BackendError(
                "Asset download failed.",
                kind=ErrorKind.NETWORK,
                context={"asset": asset.name, "url": url, "status": str(exc.code)},
            ) from exc

    def _headers(self, *, accept: str = "application/vnd.github+json") -> dict[str, str]:
        headers = {"Accept": accept, "User-Agent": "sink"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _http_error(self, exc: HTTPError, *, owner: str, repository: str) -> BackendError:
        context = {"repository": f"{owner}/{repository}", "status": str(exc.code)}
        if exc.code == 404:
            return BackendError(
                "Repository not found.",
                kind=ErrorKind.REPOSITORY_NOT_FOUND,
                hint="Check the owner/repository names, or set GITHUB_TOKEN for private repositories.",
                context=context,
            )
        if exc.code in (401, 403):
            return BackendError(
                "GitHub refused the request.",
                kind=ErrorKind.NETWORK,
                hint="Set GITHUB_TOKEN to raise the rate limit or access private repositories.",
                context=context,
            )
        return BackendError("GitHub API request failed.", kind=ErrorKind.NETWORK, context=context)


def _parse_release(payload: dict[str, Any]) -> Release:
    assets = tuple(
        ReleaseAsset(
            name=str(item.get("name", "")),
            download_url=str(item.get("browser_download_url", "")),
            api_url=str(item.get("url", "")),
            size=int(item.get("size") or 0),
        )
        for item in payload.get("assets", [])
        if isinstance(item, dict)
    )
    return Release(
        tag=str(payload.get("tag_name", "")),
        prerelease=bool(payload.get("prerelease", False)),
        draft=bool(payload.get("draft", False)),
        assets=assets,
    )
