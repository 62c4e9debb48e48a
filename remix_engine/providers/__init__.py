"""Provider registry."""

from __future__ import annotations

from ..gateway import RemoteGateway
from ..settings import Settings
from .base import GenerationOptions, GenerationRequest, GenerationResult, ProviderRegistry
from .gemini import Gemini2FlashProvider, GeminiProvider
from .imagen import ImagenProvider
from .openai import GptImageProvider, OpenAIProvider
from .placeholder import PlaceholderProvider

__all__ = [
    "GenerationOptions",
    "GenerationRequest",
    "GenerationResult",
    "ProviderRegistry",
    "default_registry",
]


def default_registry(gateway: RemoteGateway | None = None, settings: Settings | None = None) -> ProviderRegistry:
    settings = settings or Settings()
    return ProviderRegistry(
        [
            OpenAIProvider(gateway, settings),
            GptImageProvider(gateway, settings),
            GeminiProvider(gateway, settings),
            Gemini2FlashProvider(gateway, settings),
            ImagenProvider(gateway, settings),
            PlaceholderProvider(),
        ]
    )
