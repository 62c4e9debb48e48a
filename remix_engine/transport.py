"""HTTP transport used by the gateway and the direct provider calls."""

from __future__ import annotations

import asyncio
import http.client
import json
import socket
import time
from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol, Sequence
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from .errors import TransportError


@dataclass(frozen=True)
class HttpResponse:
    status: int
    body: bytes = b""
    headers: Mapping[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def json(self) -> Any:
        return json.loads(self.text())


class HttpTransport(Protocol):
    async def post(
        self,
        url: str,
        body: bytes,
        headers: Mapping[str, str],
        timeout_s: float,
    ) -> HttpResponse:
        ...


class UrllibTransport:
    """Blocking urllib POST pushed onto a worker thread.

    HTTP error statuses are returned as responses; only failures to reach the
    server raise.
    """

    async def post(
        self,
        url: str,
        body: bytes,
        headers: Mapping[str, str],
        timeout_s: float,
    ) -> HttpResponse:
        return await asyncio.to_thread(_post_sync, url, body, dict(headers), timeout_s)


def _post_sync(url: str, body: bytes, headers: dict[str, str], timeout_s: float) -> HttpResponse:
    req = Request(url, data=body, headers=headers, method="POST")
    try:
        with urlopen(req, timeout=timeout_s) as response:
            status_code = int(getattr(response, "status", 200))
            raw = response.read()
            return HttpResponse(status=status_code, body=raw, headers=dict(response.headers.items()))
    except HTTPError as exc:
        raw = exc.read() if exc.fp else str(exc).encode("utf-8")
        return HttpResponse(status=int(exc.code), body=raw, headers=dict(exc.headers.items()) if exc.headers else {})
    except (socket.timeout, TimeoutError) as exc:
        raise TransportError(f"Request timed out after {timeout_s:g}s", timed_out=True) from exc
    except URLError as exc:
        if isinstance(exc.reason, (socket.timeout, TimeoutError)):
            raise TransportError(f"Request timed out after {timeout_s:g}s", timed_out=True) from exc
        raise TransportError(f"Request failed: {exc.reason}", retryable=False, details={"url": url}) from exc
    except (http.client.HTTPException, OSError) as exc:
        # dropped connections surface from getresponse()/read() without a URLError wrapper
        raise TransportError(f"Request failed: {exc!r}", retryable=False, details={"url": url}) from exc


def json_body(payload: Mapping[str, Any]) -> bytes:
    return json.dumps(payload).encode("utf-8")


def describe_body(response: HttpResponse) -> str:
    """Compact JSON when the body parses, otherwise the raw text."""
    raw = response.text()
    try:
        parsed = json.loads(raw)
    except ValueError:
        return raw.strip()
    return json.dumps(parsed, separators=(",", ":"))


def build_multipart_body(
    boundary: str,
    fields: Sequence[tuple[str, Any]],
    files: Sequence[tuple[str, str, bytes, str | None]],
) -> bytes:
    boundary_bytes = boundary.encode("utf-8")
    payload = bytearray()
    for key, value in fields:
        if value is None:
            continue
        payload.extend(b"--" + boundary_bytes + b"\r\n")
        disposition = f'Content-Disposition: form-data; name="{_multipart_quote(key)}"\r\n\r\n'
        payload.extend(disposition.encode("utf-8"))
        payload.extend(str(value).encode("utf-8"))
        payload.extend(b"\r\n")
    for field_name, filename, blob, mime_type in files:
        payload.extend(b"--" + boundary_bytes + b"\r\n")
        disposition = (
            "Content-Disposition: form-data; "
            f'name="{_multipart_quote(field_name)}"; filename="{_multipart_quote(filename)}"\r\n'
        )
        payload.extend(disposition.encode("utf-8"))
        if mime_type:
            payload.extend(f"Content-Type: {mime_type}\r\n".encode("utf-8"))
        payload.extend(b"\r\n")
        payload.extend(blob)
        payload.extend(b"\r\n")
    payload.extend(b"--" + boundary_bytes + b"--\r\n")
    return bytes(payload)


def multipart_boundary() -> str:
    return f"----RemixBoundary{int(time.time() * 1000)}"


def _multipart_quote(value: str) -> str:
    return str(value).replace("\\", "\\\\").replace('"', '\\"')
