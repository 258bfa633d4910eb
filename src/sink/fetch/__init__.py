"""Asset fetching: plain HTTP downloads and GitHub release access."""

from .github import GitHubClient, Release, ReleaseAsset, ReleaseSource
from .http import download, fetch_json

__all__ = ["GitHubClient", "Release", "ReleaseAsset", "ReleaseSource", "download", "fetch_json"]
