"""Gemini image providers."""

from __future__ import annotations

import asyncio
from dataclasses import replace
from typing import Any

from google.genai import types

from ..errors import ProviderAPIError
from .base import GenerationOptions
from .cascade import CascadingProvider, PreparedCall, append_qualifier
from .google_utils import inline_image_urls, make_client, nearest_ratio, provider_error


class GeminiProvider(CascadingProvider):
    name = "gemini"
    model = "gemini-2.5-flash-image"
    style_qualifier = True
    image_config = True
    response_modalities = ("IMAGE",)

    def normalize(
        self, prompt: str, options: GenerationOptions, warnings: list[str]
    ) -> tuple[str, GenerationOptions]:
        ratio = nearest_ratio(options.aspect_ratio, warnings) or "1:1"
        style = (options.style or "").strip()
        if self.style_qualifier and style and style.lower() != "photography":
            prompt = append_qualifier(prompt, f"{style} style", probe=style)
        prompt = append_qualifier(prompt, f"{ratio} aspect ratio", probe="aspect ratio")
        return prompt, replace(options, aspect_ratio=ratio)

    async def call_direct(self, call: PreparedCall, credential: str, warnings: list[str]) -> list[str]:
        model = str(call.options.extra.get("model") or self.model)
        parts: list[types.Part] = []
        if call.reference is not None:
            parts.append(
                types.Part(inline_data=types.Blob(data=call.reference.data, mime_type=call.reference.mime_type))
            )
        parts.append(types.Part(text=call.prompt))
        config = self._content_config(call.options)
        try:
            response = await asyncio.to_thread(_generate_content, credential, model, parts, config)
        except ProviderAPIError:
            raise
        except Exception as exc:
            raise provider_error(self.name, exc) from exc
        urls = inline_image_urls(response)[: max(1, call.options.n)]
        if not urls:
            raise ProviderAPIError(f"{self.name} returned no images.", provider=self.name, details={"model": model})
        return urls

    def _content_config(self, options: GenerationOptions) -> types.GenerateContentConfig:
        config_kwargs: dict[str, Any] = {"response_modalities": list(self.response_modalities)}
        if self.image_config and options.aspect_ratio:
            config_kwargs["image_config"] = types.ImageConfig(aspect_ratio=options.aspect_ratio)
        return types.GenerateContentConfig(**config_kwargs)


class Gemini2FlashProvider(GeminiProvider):
    name = "gemini2flash"
    model = "gemini-2.0-flash-preview-image-generation"
    style_qualifier = False
    image_config = False
    response_modalities = ("TEXT", "IMAGE")


def _generate_content(api_key: str, model: str, parts: list[types.Part], config: types.GenerateContentConfig) -> Any:
    client = make_client(api_key)
    return client.models.generate_content(model=model, contents=parts, config=config)
