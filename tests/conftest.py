"""Shared test fixtures."""

from __future__ import annotations

import textwrap
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from sink.backends import InProcessBackend
from sink.errors import BackendError, ErrorKind
from sink.fetch.github import Release, ReleaseAsset

WriteConfig = Callable[..., Path]


@pytest.fixture
def write_config(tmp_path: Path) -> WriteConfig:
    """Write a dedented TOML file under ``tmp_path`` and return its path."""

    def _write(text: str, name: str = "sink.toml") -> Path:
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(textwrap.dedent(text).lstrip(), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def inprocess_backend() -> InProcessBackend:
    return InProcessBackend(
        catalogue={
            "requests": ["2.30.0", "2.31.0", "3.0.0"],
            "numpy": ["1.25.0", "1.26.4"],
            "serde": ["1.0.190", "1.0.197"],
            "ripgrep": ["13.0.0", "14.1.0"],
        }
    )


@dataclass
class FakeReleaseSource:
    """In-memory GitHub: ``contents`` maps an asset name to the bytes it downloads as."""

    releases: dict[tuple[str, str], list[Release]] = field(default_factory=dict)
    contents: dict[str, bytes] = field(default_factory=dict)
    downloads: list[str] = field(default_factory=list)
    timeouts: list[float | None] = field(default_factory=list)

    def publish(self, owner: str, repository: str, tag: str, *assets: str, prerelease: bool = False) -> None:
        release = Release(
            tag=tag,
            prerelease=prerelease,
            assets=tuple(ReleaseAsset(name=name, download_url=f"https://example.invalid/{tag}/{name}") for name in assets),
        )
        # Newest first, like the API.
        self.releases.setdefault((owner, repository), []).insert(0, release)
        for name in assets:
            self.contents.setdefault(f"{tag}/{name}", f"{owner}/{repository}@{tag}:{name}".encode())

    def list_releases(self, owner: str, repository: str, *, timeout: float | None = None) -> list[Release]:
        self.timeouts.append(timeout)
        if (owner, repository) not in self.releases:
            raise BackendError(
                "Repository not found.",
                kind=ErrorKind.REPOSITORY_NOT_FOUND,
                context={"repository": f"{owner}/{repository}"},
            )
        return list(self.releases[(owner, repository)])

    def download_asset(self, asset: ReleaseAsset, destination: Path, *, timeout: float | None = None) -> Path:
        tag = asset.download_url.rsplit("/", 2)[-2]
        self.downloads.append(f"{tag}/{asset.name}")
        destination.write_bytes(self.contents[f"{tag}/{asset.name}"])
        return destination


@pytest.fixture
def release_source() -> FakeReleaseSource:
    source = FakeReleaseSource()
    source.publish("acme", "tool", "v1.0.0", "tool-linux.tar.gz", "tool-macos.tar.gz")
    source.publish("acme", "tool", "v1.1.0", "tool-linux.tar.gz", "tool-macos.tar.gz")
    source.publish("acme", "tool", "v2.0.0-rc1", "tool-linux.tar.gz", prerelease=True)
    return source
