import functools
import json
import tomllib
from collections.abc import Callable
from pathlib import Path

import pytest

from conftest import FakeReleaseSource
from sink import cli
from sink.backends import InProcessBackend
from sink.dispatch import DispatchReport
from sink.errors import ErrorKind
from sink.lockfile import Lockfile, ReconcilePlan, read_lockfile
from sink.project import InstallResult, Project

CONFIG = """
default-group = "prod"

[Python]
venv = ".venv"

[Python.dependencies]
requests = "~2.30"

[Python.dev]
includes = "prod"

[Python.dev.dependencies]
numpy = "latest"

[Rust.dependencies]
serde = "1.0.197"
"""


@pytest.fixture
def config_path(write_config: Callable[..., Path]) -> Path:
    return write_config(CONFIG)


@pytest.fixture
def offline_project(
    monkeypatch: pytest.MonkeyPatch,
    inprocess_backend: InProcessBackend,
    release_source: FakeReleaseSource,
) -> InProcessBackend:
    """Route every CLI-created project to the in-process backend."""
    monkeypatch.setattr(
        cli,
        "Project",
        functools.partial(
            Project,
            backends={"python": inprocess_backend, "rust": inprocess_backend},
            release_source=release_source,
        ),
    )
    return inprocess_backend


def test_config_lists(config_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.main(["-c", str(config_path), "config", "--list", "languages"]) == cli.EXIT_OK
    assert capsys.readouterr().out.split() == ["Python", "Rust"]

    cli.main(["-c", str(config_path), "config", "--list", "groups"])
    assert capsys.readouterr().out.split() == ["dev", "prod"]

    cli.main(["-c", str(config_path), "config", "--list", "dependencies"])
    assert "Python.dev: numpy = latest" in capsys.readouterr().out


def test_config_field_toml_and_all(config_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    cli.main(["-c", str(config_path), "config", "--field", "Python.venv"])
    assert capsys.readouterr().out.strip() == ".venv"

    cli.main(["-c", str(config_path), "config", "--toml"])
    merged = tomllib.loads(capsys.readouterr().out)
    assert merged["Python"]["dev"]["dependencies"] == {"requests": "~2.30", "numpy": "latest"}

    cli.main(["-c", str(config_path), "config", "--all"])
    assert json.loads(capsys.readouterr().out)["default-group"] == "prod"


def test_config_unknown_field_is_a_usage_error(config_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.main(["-c", str(config_path), "config", "--field", "Python.nope"]) == cli.EXIT_USAGE
    assert "No such config field" in capsys.readouterr().err


def test_config_update(config_path: Path) -> None:
    assert cli.main(["-c", str(config_path), "config", "--update", "Python.venv=\"env\""]) == cli.EXIT_OK
    assert tomllib.loads(config_path.read_text(encoding="utf-8"))["Python"]["venv"] == "env"

    assert cli.main(["-c", str(config_path), "config", "--update", "novalue"]) == cli.EXIT_USAGE


def test_missing_config_exits_with_config_error(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.main(["-c", str(tmp_path / "absent.toml"), "config"]) == cli.EXIT_CONFIG
    assert "Config file does not exist" in capsys.readouterr().err


def test_install_and_report(
    config_path: Path,
    offline_project: InProcessBackend,
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    report = tmp_path / "report.jsonl"

    code = cli.main(["-c", str(config_path), "--report", str(report), "install", "--lang", "py", "--group", "DEV"])

    assert code == cli.EXIT_OK
    assert capsys.readouterr().out.startswith("2 succeeded, 0 failed")
    lock = read_lockfile(config_path.parent / "sink.lock")
    assert [entry.ref for entry in lock.entries] == ["Python/numpy", "Python/requests"]
    records = [json.loads(line) for line in report.read_text(encoding="utf-8").splitlines()]
    assert any(record["dependency"] == "numpy" for record in records)


def test_install_exit_codes_reflect_failures(config_path: Path, offline_project: InProcessBackend) -> None:
    offline_project.failures["serde"] = ErrorKind.TIMEOUT
    assert cli.main(["-c", str(config_path), "install", "--lang", "rs"]) == cli.EXIT_ALL_FAILED

    offline_project.failures["requests"] = ErrorKind.NETWORK
    assert cli.main(["-c", str(config_path), "install", "--all"]) == cli.EXIT_PARTIAL


def test_install_frozen_without_lock(config_path: Path, offline_project: InProcessBackend) -> None:
    assert cli.main(["-c", str(config_path), "install", "--sink"]) == cli.EXIT_CONFIG


def test_add_and_remove(config_path: Path, offline_project: InProcessBackend) -> None:
    assert cli.main(["-c", str(config_path), "add", "rs/anyhow@1.0.80", "--group", "tools"]) == cli.EXIT_OK
    payload = tomllib.loads(config_path.read_text(encoding="utf-8"))
    assert payload["Rust"]["tools"]["dependencies"]["anyhow"] == "1.0.80"

    assert cli.main(["-c", str(config_path), "remove", "rust/anyhow"]) == cli.EXIT_OK
    assert "anyhow" not in config_path.read_text(encoding="utf-8")
    assert read_lockfile(config_path.parent / "sink.lock").get("Rust", "anyhow") is None


def test_add_rejects_bad_refs(config_path: Path, offline_project: InProcessBackend) -> None:
    assert cli.main(["-c", str(config_path), "add", "anyhow"]) == cli.EXIT_USAGE


def test_add_options_are_parsed_as_toml(config_path: Path, offline_project: InProcessBackend) -> None:
    code = cli.main(
        ["-c", str(config_path), "add", "py/httpx@0.27.0", "--option", "extras=[\"http2\"]", "--no-install"]
    )
    assert code == cli.EXIT_OK
    entry = tomllib.loads(config_path.read_text(encoding="utf-8"))["Python"]["dependencies"]["httpx"]
    assert entry == {"version": "0.27.0", "extras": ["http2"]}


def test_exit_code_for_interrupted_run() -> None:
    result = InstallResult(plan=ReconcilePlan(), report=DispatchReport(interrupted=True), lock=Lockfile())
    assert cli.exit_code_for(result) == cli.EXIT_INTERRUPTED
    assert cli.exit_code_for(None) == cli.EXIT_OK
