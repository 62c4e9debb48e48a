"""Imagen provider (Google)."""

from __future__ import annotations

import asyncio
from dataclasses import replace
from typing import Any

from google.genai import types

from ..errors import ProviderAPIError
from ..utils import to_data_url
from .base import GenerationOptions
from .cascade import CascadingProvider, PreparedCall, append_qualifier
from .google_utils import make_client, nearest_ratio, provider_error


IMAGEN_ASPECT_RATIOS = ("1:1", "3:4", "4:3", "9:16", "16:9")
IMAGEN_MAX_IMAGES = 4


class ImagenProvider(CascadingProvider):
    name = "imagen"
    model = "imagen-4.0-generate-001"
    accepts_reference = False

    def normalize(
        self, prompt: str, options: GenerationOptions, warnings: list[str]
    ) -> tuple[str, GenerationOptions]:
        ratio = nearest_ratio(options.aspect_ratio, warnings, allowed=IMAGEN_ASPECT_RATIOS, label="Imagen") or "1:1"
        prompt = append_qualifier(prompt, f"{ratio} aspect ratio", probe="aspect ratio")
        count = max(1, int(options.n))
        if count > IMAGEN_MAX_IMAGES:
            warnings.append(f"Imagen number_of_images clamped to {IMAGEN_MAX_IMAGES}.")
            count = IMAGEN_MAX_IMAGES
        if options.reference_image:
            warnings.append("Imagen ignores reference images on the direct path.")
        return prompt, replace(options, aspect_ratio=ratio, n=count)

    async def call_direct(self, call: PreparedCall, credential: str, warnings: list[str]) -> list[str]:
        model = str(call.options.extra.get("model") or self.model)
        config = types.GenerateImagesConfig(
            number_of_images=call.options.n,
            aspect_ratio=call.options.aspect_ratio,
        )
        try:
            response = await asyncio.to_thread(_generate_images, credential, model, call.prompt, config)
        except ProviderAPIError:
            raise
        except Exception as exc:
            raise provider_error(self.name, exc) from exc

        urls: list[str] = []
        for item in getattr(response, "generated_images", None) or []:
            image = getattr(item, "image", None) or item
            image_bytes = getattr(image, "image_bytes", None)
            if not image_bytes:
                continue
            urls.append(to_data_url(image_bytes, getattr(image, "mime_type", None)))
        if not urls:
            raise ProviderAPIError("Imagen returned no images.", provider=self.name, details={"model": model})
        return urls


def _generate_images(api_key: str, model: str, prompt: str, config: types.GenerateImagesConfig) -> Any:
    client = make_client(api_key)
    return client.models.generate_images(model=model, prompt=prompt, config=config)
