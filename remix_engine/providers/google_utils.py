"""Shared helpers for the Google image providers."""

from __future__ import annotations

import re
from typing import Any, Iterable, Optional, Tuple

from google import genai
from google.genai import errors as genai_errors

from ..errors import ProviderAPIError
from ..utils import to_data_url


_DIM_RE = re.compile(r"^\s*(\d+)\s*[xX]\s*(\d+)\s*$")
_RATIO_RE = re.compile(r"^\s*(\d+)\s*[:/]\s*(\d+)\s*$")

GEMINI_RATIOS = {
    "1:1": 1.0,
    "2:3": 2.0 / 3.0,
    "3:2": 3.0 / 2.0,
    "3:4": 3.0 / 4.0,
    "4:3": 4.0 / 3.0,
    "4:5": 4.0 / 5.0,
    "5:4": 5.0 / 4.0,
    "9:16": 9.0 / 16.0,
    "16:9": 16.0 / 9.0,
    "21:9": 21.0 / 9.0,
}


def parse_dims(value: str | None) -> Optional[Tuple[int, int]]:
    if not value:
        return None
    match = _DIM_RE.match(value)
    if not match:
        return None
    w = int(match.group(1))
    h = int(match.group(2))
    if w <= 0 or h <= 0:
        return None
    return w, h


def parse_ratio(value: str | None) -> Optional[Tuple[int, int]]:
    if not value:
        return None
    match = _RATIO_RE.match(value)
    if not match:
        return None
    w = int(match.group(1))
    h = int(match.group(2))
    if w <= 0 or h <= 0:
        return None
    return w, h


def nearest_ratio(
    value: str | None,
    warnings: list[str],
    *,
    allowed: Iterable[str] = GEMINI_RATIOS,
    label: str = "Gemini",
) -> Optional[str]:
    """Snap a ratio, a WxH size or a portrait/landscape alias to ``allowed``."""
    if not value:
        return None
    choices = {key: GEMINI_RATIOS[key] for key in allowed if key in GEMINI_RATIOS}
    normalized = value.strip().lower()
    if normalized in {"portrait", "tall"}:
        normalized = "9:16"
    elif normalized in {"landscape", "wide"}:
        normalized = "16:9"
    elif normalized == "square":
        normalized = "1:1"

    ratio = parse_ratio(normalized)
    if ratio:
        candidate = f"{ratio[0]}:{ratio[1]}"
        if candidate in choices:
            return candidate
        target_ratio = ratio[0] / ratio[1]
    else:
        dims = parse_dims(normalized)
        if not dims:
            return None
        target_ratio = dims[0] / dims[1]

    best_key = None
    best_delta = float("inf")
    for key, val in choices.items():
        delta = abs(val - target_ratio)
        if delta < best_delta:
            best_key = key
            best_delta = delta
    if best_key and best_key != normalized:
        message = f"{label} aspect ratio snapped to {best_key}."
        if message not in warnings:
            warnings.append(message)
    return best_key


def make_client(api_key: str) -> genai.Client:
    return genai.Client(api_key=api_key)


def provider_error(provider: str, exc: Exception) -> ProviderAPIError:
    status = None
    if isinstance(exc, genai_errors.APIError):
        status = getattr(exc, "code", None)
    message = getattr(exc, "message", None) or str(exc)
    return ProviderAPIError(f"{provider} request failed: {message}", status=status, provider=provider)


def inline_image_urls(response: Any) -> list[str]:
    """Data URLs for every inline image part in a generate_content response."""
    urls: list[str] = []
    candidates = getattr(response, "candidates", None) or []
    for candidate in candidates:
        content = getattr(candidate, "content", None)
        parts = getattr(content, "parts", None) or []
        for part in parts:
            inline = getattr(part, "inline_data", None)
            data = getattr(inline, "data", None) if inline is not None else None
            if not data:
                continue
            urls.append(to_data_url(data, getattr(inline, "mime_type", None)))
    return urls
