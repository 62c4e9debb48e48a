"""Provider base classes."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Protocol

from ..errors import ValidationError


@dataclass(frozen=True)
class GenerationOptions:
    size: str = "1024x1024"
    quality: str | None = None
    style: str | None = None
    aspect_ratio: str = "1:1"
    reference_image: str | None = None
    n: int = 1
    preset: str | None = None
    extra: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class GenerationRequest:
    prompt: str
    provider: str
    options: GenerationOptions = field(default_factory=GenerationOptions)


@dataclass(frozen=True)
class GenerationResult:
    image_urls: tuple[str, ...]
    provider: str
    source: str
    warnings: tuple[str, ...] = ()
    metadata: Mapping[str, Any] = field(default_factory=dict)

    @property
    def image_url(self) -> str:
        return self.image_urls[0]


class ImageProvider(Protocol):
    name: str

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        ...


class ProviderRegistry:
    def __init__(self, providers: Iterable[ImageProvider]) -> None:
        self._providers = {provider.name: provider for provider in providers}

    def get(self, name: str) -> ImageProvider | None:
        return self._providers.get(name)

    def require(self, name: str) -> ImageProvider:
        provider = self._providers.get(name)
        if provider is None:
            raise ValidationError(
                f"Unknown provider: {name}",
                {"available": self.list()},
            )
        return provider

    def list(self) -> list[str]:
        return sorted(self._providers.keys())
