"""Runtime settings and network policy enforcement."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, replace
from typing import Any, Literal, Self

from sink.errors import PolicyError, ValidationError

NetworkMode = Literal["online", "offline"]

DEFAULT_GITHUB_API = "https://api.github.com"
DEFAULT_CRATES_API = "https://crates.io/api/v1"
DEFAULT_LOCK_FILENAME = "sink.lock"
DEFAULT_CONFIG_FILENAME = "sink.toml"


@dataclass(frozen=True, slots=True)
class Settings:
    jobs: int = 4
    timeout: float = 60.0
    github_token: str | None = None
    github_api_url: str = DEFAULT_GITHUB_API
    crates_api_url: str = DEFAULT_CRATES_API
    network_mode: NetworkMode = "online"
    lock_filename: str = DEFAULT_LOCK_FILENAME

    def __post_init__(self) -> None:
        if self.jobs < 1:
            raise ValidationError(
                "`jobs` must be at least 1.",
                context={"jobs": str(self.jobs)},
            )
        if self.timeout <= 0:
            raise ValidationError(
                "`timeout` must be positive.",
                context={"timeout": str(self.timeout)},
            )

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Self:
        env = os.environ if environ is None else environ
        values: dict[str, Any] = {}
        if env.get("SINK_JOBS"):
            values["jobs"] = _parse_number(env["SINK_JOBS"], int, name="SINK_JOBS")
        if env.get("SINK_TIMEOUT"):
            values["timeout"] = _parse_number(env["SINK_TIMEOUT"], float, name="SINK_TIMEOUT")
        if env.get("GITHUB_TOKEN"):
            values["github_token"] = env["GITHUB_TOKEN"]
        if env.get("SINK_GITHUB_API"):
            values["github_api_url"] = env["SINK_GITHUB_API"].rstrip("/")
        if env.get("SINK_CRATES_API"):
            values["crates_api_url"] = env["SINK_CRATES_API"].rstrip("/")
        if env.get("SINK_OFFLINE", "").lower() in ("1", "true", "yes"):
            values["network_mode"] = "offline"
        return cls(**values)

    def with_overrides(self, **overrides: Any) -> Self:
        return replace(self, **{key: value for key, value in overrides.items() if value is not None})


def ensure_network_allowed(*, settings: Settings, operation: str) -> None:
    if settings.network_mode == "offline":
        raise PolicyError(
            "Network operations are disabled.",
            hint="Unset SINK_OFFLINE to allow this operation.",
            context={"operation": operation},
        )


def _parse_number(raw: str, kind: type[int] | type[float], *, name: str) -> int | float:
    try:
        return kind(raw)
    except ValueError as exc:
        raise ValidationError(
            f"Invalid value for {name}.",
            context={"variable": name, "value": raw},
        ) from exc
