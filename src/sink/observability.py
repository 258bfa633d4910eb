"""Structured logging and observability helpers."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


@dataclass(slots=True)
class StructuredLogger:
    """Collects structured records and mirrors them to the ``logging`` module."""

    records: list[dict[str, Any]] = field(default_factory=list)
    logger: logging.Logger = field(default_factory=lambda: logging.getLogger("sink"))

    def log(
        self,
        *,
        operation: str,
        source: str | None,
        dependency: str | None,
        action: str | None,
        message: str,
        level: str = "info",
        extra: dict[str, Any] | None = None,
    ) -> None:
        record: dict[str, Any] = {
            "level": level,
            "operation": operation,
            "source": source,
            "dependency": dependency,
            "action": action,
            "message": message,
        }
        if extra is not None:
            record["extra"] = extra
        self.records.append(record)
        prefix = f"[{source}/{dependency}] " if dependency else ""
        self.logger.log(_LEVELS.get(level, logging.INFO), "%s%s", prefix, message)

    def records_for_dependency(self, ref: str) -> list[dict[str, Any]]:
        return [
            record
            for record in self.records
            if f"{record.get('source')}/{record.get('dependency')}" == ref
        ]

    def to_json_lines(self, path: str | Path) -> Path:
        output_path = Path(path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        lines = [json.dumps(record, sort_keys=True) for record in self.records]
        output_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return output_path


def configure_logging(*, verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s %(message)s",
    )
