import json
import logging
from pathlib import Path

import pytest

from sink.errors import PolicyError, ValidationError
from sink.observability import StructuredLogger
from sink.settings import Settings, ensure_network_allowed


def test_settings_from_env() -> None:
    settings = Settings.from_env(
        {
            "SINK_JOBS": "8",
            "SINK_TIMEOUT": "2.5",
            "GITHUB_TOKEN": "tok",
            "SINK_GITHUB_API": "https://ghe.example/api/v3/",
            "SINK_CRATES_API": "https://crates.internal/api/v1/",
            "SINK_OFFLINE": "1",
        }
    )

    assert settings.jobs == 8
    assert settings.timeout == 2.5
    assert settings.github_token == "tok"
    assert settings.github_api_url == "https://ghe.example/api/v3"
    assert settings.crates_api_url == "https://crates.internal/api/v1"
    assert settings.network_mode == "offline"
    assert Settings.from_env({}) == Settings()


@pytest.mark.parametrize("environ", [{"SINK_JOBS": "many"}, {"SINK_JOBS": "0"}, {"SINK_TIMEOUT": "-1"}])
def test_invalid_settings_are_rejected(environ: dict[str, str]) -> None:
    with pytest.raises(ValidationError):
        Settings.from_env(environ)


def test_with_overrides_ignores_unset_values() -> None:
    settings = Settings(jobs=3).with_overrides(jobs=None, timeout=10.0)
    assert settings.jobs == 3
    assert settings.timeout == 10.0


def test_offline_mode_blocks_network() -> None:
    ensure_network_allowed(settings=Settings(), operation="github.list_releases")
    with pytest.raises(PolicyError) as excinfo:
        ensure_network_allowed(settings=Settings(network_mode="offline"), operation="github.list_releases")
    assert excinfo.value.context["operation"] == "github.list_releases"


def test_structured_logger_records_and_mirrors(caplog: pytest.LogCaptureFixture, tmp_path: Path) -> None:
    logger = StructuredLogger()

    with caplog.at_level(logging.DEBUG, logger="sink"):
        logger.log(
            operation="dispatch",
            source="Python",
            dependency="requests",
            action="install",
            message="install ok (2.31.0)",
        )
        logger.log(
            operation="install",
            source=None,
            dependency=None,
            action=None,
            message="1 succeeded, 0 failed",
            level="warning",
        )

    assert logger.records_for_dependency("Python/requests")[0]["action"] == "install"
    assert "[Python/requests] install ok (2.31.0)" in caplog.text
    assert caplog.records[-1].levelno == logging.WARNING

    path = logger.to_json_lines(tmp_path / "logs" / "run.jsonl")
    lines = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]
    assert [line["operation"] for line in lines] == ["dispatch", "install"]
