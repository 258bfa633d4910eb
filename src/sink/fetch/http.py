"""HTTP/file fetch helpers with timeouts mapped onto backend errors."""

from __future__ import annotations

import json
import os
import shutil
from collections.abc import Mapping
from pathlib import Path
from typing import Any
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from sink.errors import BackendError, ErrorKind

CHUNK_SIZE = 1 << 16


def fetch_json(
    url: str,
    *,
    headers: Mapping[str, str] | None = None,
    timeout: float,
) -> Any:
    """GET ``url`` and decode the JSON body. ``HTTPError`` propagates to the caller."""
    request = Request(url, headers=dict(headers or {}))
    try:
        with urlopen(request, timeout=timeout) as response:  # noqa: S310 - URL comes from config
            payload = response.read()
    except HTTPError:
        raise
    except (TimeoutError, URLError) as exc:
        raise _transport_error(exc, url=url, timeout=timeout) from exc
    try:
        return json.loads(payload)
    except json.JSONDecodeError as exc:
        raise BackendError(
            "Response is not valid JSON.",
            kind=ErrorKind.NETWORK,
            context={"url": url},
        ) from exc


def download(
    url: str,
    destination: str | Path,
    *,
    headers: Mapping[str, str] | None = None,
    timeout: float,
) -> Path:
    """Stream ``url`` into ``destination``; the file only appears once complete."""
    target = Path(destination)
    partial = target.with_name(target.name + ".part")
    request = Request(url, headers=dict(headers or {}))
    try:
        with urlopen(request, timeout=timeout) as response:  # noqa: S310 - URL comes from the release API
            with partial.open("wb") as handle:
                shutil.copyfileobj(response, handle, CHUNK_SIZE)
        os.replace(partial, target)
    except HTTPError:
        partial.unlink(missing_ok=True)
        raise
    except (TimeoutError, URLError) as exc:
        partial.unlink(missing_ok=True)
        raise _transport_error(exc, url=url, timeout=timeout) from exc
    except OSError as exc:
        partial.unlink(missing_ok=True)
        raise BackendError(
            "Failed to write downloaded artifact.",
            kind=ErrorKind.ARTIFACT_WRITE,
            hint="Check that the destination is writable.",
            context={"url": url, "path": str(target), "error": str(exc)},
        ) from exc
    return target


def _transport_error(exc: Exception, *, url: str, timeout: float) -> BackendError:
    reason = exc.reason if isinstance(exc, URLError) else exc
    if isinstance(reason, TimeoutError):
        return BackendError(
            "Request timed out.",
            kind=ErrorKind.TIMEOUT,
            hint="Raise the `timeout` option or SINK_TIMEOUT.",
            context={"url": url, "timeout": str(timeout)},
        )
    return BackendError(
        "Network request failed.",
        kind=ErrorKind.NETWORK,
        context={"url": url, "reason": str(reason)},
    )
