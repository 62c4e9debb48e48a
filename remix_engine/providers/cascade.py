"""Gateway-first generation with a direct-call fallback.

Every network-backed adapter subclasses ``CascadingProvider`` and fills in
the hooks: ``normalize`` (prompt qualifiers and option snapping),
``gateway_payload`` and ``call_direct``. The order is fixed: validate,
normalize, check that at least one path is configured, encode the reference,
try the gateway, then the direct call.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from ..errors import ConfigurationError, ProviderAPIError, RemixError, ValidationError
from ..gateway import RemoteGateway
from ..logging_config import get_logger
from ..settings import Settings
from .base import GenerationOptions, GenerationRequest, GenerationResult
from .presets import get_preset
from .reference import EncodedReference, encode_reference, is_remote_url

logger = get_logger("providers.cascade")

MIN_PROMPT_LENGTH = 3
DEFAULT_ENDPOINT = "image-generation"
REFERENCE_ENDPOINT = "reference-image"


@dataclass(frozen=True)
class PreparedCall:
    prompt: str
    options: GenerationOptions
    endpoint: str
    reference: EncodedReference | None = None


def validate_prompt(prompt: str | None) -> str:
    text = (prompt or "").strip()
    if not text:
        raise ValidationError("Please enter a prompt.")
    if len(text) < MIN_PROMPT_LENGTH:
        raise ValidationError(
            f"Prompt must be at least {MIN_PROMPT_LENGTH} characters.",
            {"length": len(text)},
        )
    return text


def append_qualifier(prompt: str, qualifier: str, *, probe: str | None = None) -> str:
    """Append ``(qualifier)`` unless ``probe`` (or the qualifier) already appears."""
    needle = (probe or qualifier).lower()
    if needle in prompt.lower():
        return prompt
    return f"{prompt} ({qualifier})"


def extract_image_urls(response: Mapping[str, Any] | None) -> list[str]:
    if not isinstance(response, Mapping):
        return []
    urls: list[str] = []
    single = response.get("imageUrl")
    if isinstance(single, str) and single.strip():
        urls.append(single.strip())
    many = response.get("imageUrls")
    if isinstance(many, list):
        for item in many:
            if isinstance(item, str) and item.strip() and item.strip() not in urls:
                urls.append(item.strip())
    return urls


class CascadingProvider:
    name = ""
    accepts_reference = True

    def __init__(self, gateway: RemoteGateway | None = None, settings: Settings | None = None) -> None:
        self.gateway = gateway
        self.settings = settings or Settings()

    @property
    def credential_name(self) -> str:
        return self.name

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        prompt = validate_prompt(request.prompt)
        options = request.options
        warnings: list[str] = []

        endpoint = REFERENCE_ENDPOINT if options.reference_image else DEFAULT_ENDPOINT
        preset = get_preset(options.preset)
        if preset is not None:
            prompt = preset.apply(prompt, options.style)
            endpoint = preset.endpoint

        prompt, options = self.normalize(prompt, options, warnings)

        gateway_usable = self.gateway is not None and self.gateway.is_configured()
        credential = self.settings.credential_for(self.credential_name)
        if not gateway_usable and not credential:
            # neither path is reachable; fail before touching the network
            raise ConfigurationError(
                f"No gateway or API credential configured for {self.name}.",
                {"provider": self.name},
            )

        reference = None
        if options.reference_image and self.accepts_reference:
            reference = await encode_reference(options.reference_image)

        call = PreparedCall(prompt=prompt, options=options, endpoint=endpoint, reference=reference)

        gateway_error: RemixError | None = None
        if gateway_usable:
            try:
                response = await self.gateway.call(call.endpoint, self.gateway_payload(call))
            except RemixError as exc:
                gateway_error = exc
                logger.warning("Gateway path failed for %s, trying direct call: %s", self.name, exc)
            else:
                urls = extract_image_urls(response)
                if urls:
                    return GenerationResult(
                        image_urls=tuple(urls[: max(1, options.n)]),
                        provider=self.name,
                        source="gateway",
                        warnings=tuple(warnings),
                        metadata={"endpoint": call.endpoint},
                    )
                gateway_error = ProviderAPIError(
                    "Gateway response did not include an image URL.",
                    provider=self.name,
                    details={"keys": sorted(response)},
                )
                logger.warning("Malformed gateway response for %s, trying direct call", self.name)
        else:
            logger.debug("Gateway not configured; calling %s directly", self.name)

        if not credential:
            raise ConfigurationError(
                f"No API credential configured for {self.name}.",
                {"provider": self.name},
            ) from gateway_error

        try:
            urls = await self.call_direct(call, credential, warnings)
        except RemixError as exc:
            if gateway_error is not None:
                raise exc from gateway_error
            raise
        if not urls:
            raise ProviderAPIError(f"{self.name} returned no images.", provider=self.name) from gateway_error
        return GenerationResult(
            image_urls=tuple(urls),
            provider=self.name,
            source="direct",
            warnings=tuple(warnings),
        )

    def normalize(
        self, prompt: str, options: GenerationOptions, warnings: list[str]
    ) -> tuple[str, GenerationOptions]:
        return prompt, options

    def gateway_payload(self, call: PreparedCall) -> dict[str, Any]:
        options = call.options
        payload: dict[str, Any] = {
            "provider": self.name,
            "prompt": call.prompt,
            "aspectRatio": options.aspect_ratio,
            "size": options.size,
        }
        if options.style:
            payload["style"] = options.style
        if options.quality:
            payload["quality"] = options.quality
        if options.n > 1:
            payload["n"] = options.n
        if call.reference is not None:
            payload["referenceImageUrl"] = call.reference.gateway_value()
        elif options.reference_image and is_remote_url(options.reference_image):
            payload["referenceImageUrl"] = options.reference_image
        return payload

    async def call_direct(self, call: PreparedCall, credential: str, warnings: list[str]) -> list[str]:
        raise NotImplementedError
