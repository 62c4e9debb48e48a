"""Offline placeholder provider.

Never part of a cascade; it only runs when a caller asks for it by name.
"""

from __future__ import annotations

import hashlib
import io
import textwrap

from PIL import Image, ImageDraw, ImageFont

from ..utils import to_data_url
from .base import GenerationRequest, GenerationResult
from .cascade import validate_prompt
from .google_utils import parse_dims


class PlaceholderProvider:
    name = "placeholder"

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        prompt = validate_prompt(request.prompt)
        width, height = _resolve_size(request.options.size)
        urls = tuple(
            to_data_url(self._render(prompt, width, height, idx), "image/png")
            for idx in range(max(1, request.options.n))
        )
        return GenerationResult(
            image_urls=urls,
            provider=self.name,
            source="placeholder",
            warnings=("Placeholder image; no provider was called.",),
            metadata={"width": width, "height": height},
        )

    def _render(self, prompt: str, width: int, height: int, idx: int) -> bytes:
        image = Image.new("RGB", (width, height), _color_from_prompt(prompt, idx))
        draw = ImageDraw.Draw(image)
        font = ImageFont.load_default()
        text = "placeholder\n" + "\n".join(textwrap.wrap(prompt[:120], width=40))
        draw.text((20, 20), text, fill=(255, 255, 255), font=font)
        buffer = io.BytesIO()
        image.save(buffer, format="PNG")
        return buffer.getvalue()


def _resolve_size(size: str | None) -> tuple[int, int]:
    normalized = (size or "").strip().lower()
    if normalized in {"portrait", "tall"}:
        return (512, 768)
    if normalized in {"landscape", "wide"}:
        return (768, 512)
    dims = parse_dims(normalized)
    if dims:
        # keep data URLs small
        scale = min(1.0, 768 / max(dims))
        return max(1, int(dims[0] * scale)), max(1, int(dims[1] * scale))
    return (512, 512)


def _color_from_prompt(prompt: str, idx: int) -> tuple[int, int, int]:
    digest = hashlib.sha256(f"{prompt}:{idx}".encode("utf-8")).digest()
    return digest[0], digest[1], digest[2]
