"""OpenAI image providers (DALL-E 3 and gpt-image-1)."""

from __future__ import annotations

import asyncio
import json
import re
from dataclasses import replace
from typing import Any, Mapping

from ..errors import ProviderAPIError, TransportError
from ..gateway import RemoteGateway
from ..settings import Settings
from ..transport import (
    HttpResponse,
    HttpTransport,
    UrllibTransport,
    build_multipart_body,
    describe_body,
    json_body,
    multipart_boundary,
)
from .base import GenerationOptions
from .cascade import CascadingProvider, PreparedCall


REFERENCE_PREFIX = "Using a reference image as inspiration: "

_DALLE_SIZE_CHOICES: dict[str, tuple[int, int]] = {
    "1024x1024": (1024, 1024),
    "1792x1024": (1792, 1024),
    "1024x1792": (1024, 1792),
}
_DALLE_QUALITY_ALIASES = {
    "standard": "standard",
    "low": "standard",
    "medium": "standard",
    "hd": "hd",
    "high": "hd",
    "quality": "hd",
}
_DALLE_STYLES = {"vivid", "natural"}
_DALLE_ALIASES = {
    "portrait": "1024x1792",
    "tall": "1024x1792",
    "landscape": "1792x1024",
    "wide": "1792x1024",
    "square": "1024x1024",
}

_GPT_IMAGE_SIZE_CHOICES: dict[str, tuple[int, int]] = {
    "1024x1024": (1024, 1024),
    "1024x1536": (1024, 1536),
    "1536x1024": (1536, 1024),
}
_GPT_IMAGE_QUALITY_ALIASES = {
    "low": "low",
    "fast": "low",
    "medium": "medium",
    "standard": "medium",
    "high": "high",
    "hd": "high",
    "auto": "auto",
}
_GPT_IMAGE_ALIASES = {
    "portrait": "1024x1536",
    "tall": "1024x1536",
    "landscape": "1536x1024",
    "wide": "1536x1024",
    "square": "1024x1024",
}
_DIM_RE = re.compile(r"^\s*(\d+)\s*[xX]\s*(\d+)\s*$")
_RATIO_RE = re.compile(r"^\s*(\d+)\s*[:/]\s*(\d+)\s*$")


class _OpenAIBase(CascadingProvider):
    def __init__(
        self,
        gateway: RemoteGateway | None = None,
        settings: Settings | None = None,
        *,
        api_base: str | None = None,
        transport: HttpTransport | None = None,
    ) -> None:
        super().__init__(gateway, settings)
        self.api_base = (api_base or "https://api.openai.com/v1").rstrip("/")
        self.transport = transport or UrllibTransport()

    async def _post(self, endpoint: str, body: bytes, headers: Mapping[str, str]) -> dict[str, Any]:
        url = f"{self.api_base}/{endpoint}"
        timeout_s = self.settings.timeout_s
        try:
            response = await asyncio.wait_for(self.transport.post(url, body, headers, timeout_s), timeout=timeout_s)
        except asyncio.TimeoutError as exc:
            raise TransportError(f"OpenAI request timed out after {timeout_s:g}s", timed_out=True) from exc
        if not response.ok:
            raise ProviderAPIError(
                f"OpenAI API error ({response.status}): {_error_message(response)}",
                status=response.status,
                provider=self.name,
            )
        try:
            data = response.json()
        except ValueError as exc:
            raise ProviderAPIError("OpenAI API returned a non-JSON body.", status=response.status, provider=self.name) from exc
        if not isinstance(data, dict):
            raise ProviderAPIError("OpenAI API returned an unexpected body.", status=response.status, provider=self.name)
        return data

    async def _post_json(self, endpoint: str, payload: Mapping[str, Any], api_key: str) -> dict[str, Any]:
        headers = {"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"}
        return await self._post(endpoint, json_body(payload), headers)


class OpenAIProvider(_OpenAIBase):
    """DALL-E 3 through the Images API."""

    name = "openai"
    model = "dall-e-3"
    accepts_reference = False

    def normalize(
        self, prompt: str, options: GenerationOptions, warnings: list[str]
    ) -> tuple[str, GenerationOptions]:
        size = _snap_size(options.size, _DALLE_SIZE_CHOICES, aliases=_DALLE_ALIASES, label="DALL-E 3", warnings=warnings)
        if options.n > 1:
            _append_warning(warnings, "DALL-E 3 generates one image per request; n set to 1.")
        return prompt, replace(options, size=size, n=1)

    async def call_direct(self, call: PreparedCall, credential: str, warnings: list[str]) -> list[str]:
        payload = build_dalle_payload(call.prompt, call.options, warnings=warnings)
        response = await self._post_json("images/generations", payload, credential)
        return _image_urls(response, self.name)


class GptImageProvider(_OpenAIBase):
    """gpt-image-1; reference images go through the edits endpoint."""

    name = "gpt-image-1"
    model = "gpt-image-1"

    def normalize(
        self, prompt: str, options: GenerationOptions, warnings: list[str]
    ) -> tuple[str, GenerationOptions]:
        raw = (options.size or "").strip().lower()
        if raw == "auto":
            size = "auto"
        else:
            size = _snap_size(
                options.size, _GPT_IMAGE_SIZE_CHOICES, aliases=_GPT_IMAGE_ALIASES, label="gpt-image-1", warnings=warnings
            )
        quality = _normalize_choice(options.quality, _GPT_IMAGE_QUALITY_ALIASES, "gpt-image-1 quality", warnings)
        return prompt, replace(options, size=size, quality=quality, n=max(1, int(options.n)))

    async def call_direct(self, call: PreparedCall, credential: str, warnings: list[str]) -> list[str]:
        options = call.options
        fields: dict[str, Any] = {
            "model": str(options.extra.get("model") or self.model),
            "prompt": call.prompt,
            "n": options.n,
            "size": options.size,
        }
        if options.quality:
            fields["quality"] = options.quality
        if call.reference is None:
            fields["moderation"] = "low"
            response = await self._post_json("images/generations", fields, credential)
            return _image_urls(response, self.name)

        boundary = multipart_boundary()
        body = build_multipart_body(
            boundary,
            list(fields.items()),
            [("image[]", call.reference.filename, call.reference.data, call.reference.mime_type)],
        )
        headers = {
            "Authorization": f"Bearer {credential}",
            "Content-Type": f"multipart/form-data; boundary={boundary}",
        }
        response = await self._post("images/edits", body, headers)
        return _image_urls(response, self.name)


def build_dalle_payload(
    prompt: str,
    options: GenerationOptions,
    *,
    warnings: list[str] | None = None,
) -> dict[str, Any]:
    text = prompt
    if options.reference_image and not text.startswith(REFERENCE_PREFIX):
        text = f"{REFERENCE_PREFIX}{text}"
    payload: dict[str, Any] = {
        "model": "dall-e-3",
        "prompt": text,
        "n": 1,
        "size": options.size if options.size in _DALLE_SIZE_CHOICES else "1024x1024",
    }
    quality = _normalize_choice(options.quality, _DALLE_QUALITY_ALIASES, "DALL-E 3 quality", warnings)
    if quality:
        payload["quality"] = quality
    style = (options.style or "").strip().lower()
    if style in _DALLE_STYLES:
        payload["style"] = style
    elif style:
        _append_warning(warnings, f"DALL-E 3 style '{options.style}' unsupported; omitting.")
    return payload


def _snap_size(
    size: str | None,
    choices: Mapping[str, tuple[int, int]],
    *,
    aliases: Mapping[str, str],
    label: str,
    warnings: list[str] | None,
) -> str:
    normalized = str(size or "").strip().lower()
    if not normalized:
        return "1024x1024"
    if normalized in aliases:
        return aliases[normalized]

    dims = _parse_pair(_DIM_RE, normalized)
    if dims:
        key = f"{dims[0]}x{dims[1]}"
        if key in choices:
            return key
        target_ratio = dims[0] / dims[1]
    else:
        ratio = _parse_pair(_RATIO_RE, normalized)
        if ratio is None:
            _append_warning(warnings, f"{label} size unsupported; using 1024x1024.")
            return "1024x1024"
        target_ratio = ratio[0] / ratio[1]

    best_key = "1024x1024"
    best_delta = float("inf")
    for key, (width, height) in choices.items():
        delta = abs((width / height) - target_ratio)
        if delta < best_delta:
            best_key = key
            best_delta = delta
    _append_warning(warnings, f"{label} size snapped to {best_key}.")
    return best_key


def _normalize_choice(
    value: Any, aliases: Mapping[str, str], label: str, warnings: list[str] | None
) -> str | None:
    if value is None:
        return None
    text = str(value).strip().lower()
    if not text:
        return None
    normalized = aliases.get(text)
    if normalized is None:
        _append_warning(warnings, f"{label} '{value}' unsupported; omitting.")
    return normalized


def _parse_pair(pattern: re.Pattern[str], value: str) -> tuple[int, int] | None:
    match = pattern.match(value)
    if not match:
        return None
    left = int(match.group(1))
    right = int(match.group(2))
    if left <= 0 or right <= 0:
        return None
    return left, right


def _append_warning(warnings: list[str] | None, message: str) -> None:
    if warnings is None:
        return
    if message in warnings:
        return
    warnings.append(message)


def _image_urls(response: Mapping[str, Any], provider: str) -> list[str]:
    data = response.get("data")
    items = [item for item in data if isinstance(item, Mapping)] if isinstance(data, list) else []
    urls: list[str] = []
    for item in items:
        if isinstance(item.get("url"), str) and item["url"]:
            urls.append(item["url"])
        elif isinstance(item.get("b64_json"), str) and item["b64_json"]:
            urls.append(f"data:image/png;base64,{item['b64_json']}")
    if not urls:
        raise ProviderAPIError("OpenAI Images API returned no image data.", provider=provider)
    return urls


def _error_message(response: HttpResponse) -> str:
    try:
        data = json.loads(response.text())
    except ValueError:
        return describe_body(response) or "Unknown error"
    if isinstance(data, Mapping):
        error = data.get("error")
        if isinstance(error, Mapping) and error.get("message"):
            return str(error["message"])
    return describe_body(response) or "Unknown error"
