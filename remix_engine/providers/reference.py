"""Reference image loading.

References may be given as an http(s) URL, a ``data:`` URL or a local path.
Whatever the source, the bytes are fetched and checked with Pillow before any
provider call is attempted.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import http.client
import io
from dataclasses import dataclass
from pathlib import Path
from urllib.error import URLError
from urllib.request import Request, urlopen

from PIL import Image, UnidentifiedImageError

from ..errors import ConfigurationError
from ..utils import to_data_url

FETCH_TIMEOUT_S = 30.0

_FORMAT_MIME = {
    "PNG": "image/png",
    "JPEG": "image/jpeg",
    "WEBP": "image/webp",
    "GIF": "image/gif",
}


@dataclass(frozen=True)
class EncodedReference:
    data: bytes
    mime_type: str
    source: str

    @property
    def data_url(self) -> str:
        return to_data_url(self.data, self.mime_type)

    @property
    def is_remote(self) -> bool:
        return is_remote_url(self.source)

    def gateway_value(self) -> str:
        # the gateway can fetch public URLs itself; everything else travels inline
        return self.source if self.is_remote else self.data_url

    @property
    def filename(self) -> str:
        ext = self.mime_type.split("/", 1)[-1].replace("jpeg", "jpg")
        return f"reference.{ext}"


def is_remote_url(value: str | None) -> bool:
    lowered = (value or "").strip().lower()
    return lowered.startswith("http://") or lowered.startswith("https://")


async def encode_reference(value: str) -> EncodedReference:
    source = (value or "").strip()
    if not source:
        raise ConfigurationError("Reference image is empty.")
    if source.startswith("data:"):
        raw = _decode_data_url(source)
    elif is_remote_url(source):
        raw = await asyncio.to_thread(_download_bytes, source)
    else:
        raw = await asyncio.to_thread(_read_path, source)
    return EncodedReference(data=raw, mime_type=_sniff_mime(raw, source), source=source)


def _decode_data_url(value: str) -> bytes:
    header, sep, payload = value.partition(",")
    if not sep or ";base64" not in header:
        raise ConfigurationError("Reference data URL must be base64 encoded.")
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ConfigurationError("Reference data URL is not valid base64.") from exc


def _download_bytes(url: str) -> bytes:
    req = Request(url, method="GET")
    try:
        with urlopen(req, timeout=FETCH_TIMEOUT_S) as response:
            return response.read()
    except (URLError, http.client.HTTPException, OSError) as exc:
        raise ConfigurationError(f"Failed to fetch reference image: {exc}", {"url": url}) from exc


def _read_path(value: str) -> bytes:
    path = Path(value).expanduser()
    try:
        return path.read_bytes()
    except OSError as exc:
        raise ConfigurationError(f"Failed to read reference image: {exc}", {"path": str(path)}) from exc


def _sniff_mime(raw: bytes, source: str) -> str:
    try:
        with Image.open(io.BytesIO(raw)) as image:
            image_format = image.format
            image.verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as exc:
        raise ConfigurationError("Reference is not a readable image.", {"source": source[:80]}) from exc
    return _FORMAT_MIME.get(image_format or "", "image/png")
