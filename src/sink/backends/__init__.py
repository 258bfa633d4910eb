"""Installation backend interfaces and implementations."""

from .base import Backend, resolve_version
from .github import GitHubAssetInstaller
from .inprocess import InProcessBackend
from .plugin import (
    CommandRequest,
    CommandSet,
    ExternalPluginAdapter,
    cargo_commands,
    pip_commands,
    plugin_for,
    uv_commands,
)

__all__ = [
    "Backend",
    "CommandRequest",
    "CommandSet",
    "ExternalPluginAdapter",
    "GitHubAssetInstaller",
    "InProcessBackend",
    "cargo_commands",
    "pip_commands",
    "plugin_for",
    "resolve_version",
    "uv_commands",
]
