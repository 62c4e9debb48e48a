"""One generation control: resolve, narrate progress, run the cascade.

At most one generation is in flight per session. Starting a new one cancels
the active one first, and cancelling stops both the progress stream and the
reasoning stream together.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Callable

from .errors import ValidationError, user_message
from .logging_config import get_logger
from .providers.base import GenerationOptions, GenerationRequest, GenerationResult, ProviderRegistry
from .runs.events import EventWriter
from .streaming.reasoning import DEFAULT_REASONING_INTERVAL_S, ReasoningSimulator
from .streaming.simulator import (
    DEFAULT_INTERVAL_S,
    DEFAULT_SETTLE_S,
    CancellationHandle,
    ProgressSimulator,
    StreamCallbacks,
)
from .tokens.resolver import ResolutionResult
from .tokens.store import PersonalizationStore

logger = get_logger("session")


@dataclass
class GenerationState:
    status: str = ""
    progress: int = 0
    reasoning: str = ""
    result: GenerationResult | None = None
    error: str | None = None
    generating: bool = False
    resolution: ResolutionResult | None = None
    warnings: list[str] = field(default_factory=list)


class GenerationSession:
    def __init__(
        self,
        store: PersonalizationStore,
        registry: ProviderRegistry,
        *,
        events: EventWriter | None = None,
        interval_s: float = DEFAULT_INTERVAL_S,
        settle_s: float = DEFAULT_SETTLE_S,
        reasoning_interval_s: float = DEFAULT_REASONING_INTERVAL_S,
        on_change: Callable[[GenerationState], None] | None = None,
    ) -> None:
        self.store = store
        self.registry = registry
        self.events = events
        self.interval_s = interval_s
        self.settle_s = settle_s
        self.reasoning_interval_s = reasoning_interval_s
        self.on_change = on_change
        self.state = GenerationState()
        self._generation_id = 0
        self._handles: list[CancellationHandle] = []
        self._streams: list[ProgressSimulator] = []

    @property
    def active(self) -> bool:
        return self.state.generating

    def start(
        self,
        prompt: str,
        provider: str,
        options: GenerationOptions | None = None,
        *,
        reasoning: bool = True,
    ) -> None:
        if self.state.generating:
            self.cancel()

        resolution = self.store.resolve_prompt(prompt)
        text = resolution.resolved_content.strip()
        if not text:
            raise ValidationError("Please enter a prompt.")
        adapter = self.registry.require(provider)
        request = GenerationRequest(prompt=text, provider=provider, options=options or GenerationOptions())

        self._generation_id += 1
        generation_id = self._generation_id
        self.state = GenerationState(generating=True, resolution=resolution, warnings=list(resolution.warnings))
        for warning in resolution.warnings:
            logger.info("Prompt resolution: %s", warning)

        narration: list[CancellationHandle] = []

        async def _on_complete() -> None:
            try:
                await self._run_generation(generation_id, adapter, request)
            finally:
                # narration has nothing left to describe once the cascade settles
                for stop in narration:
                    stop()

        simulator = ProgressSimulator(interval_s=self.interval_s, settle_s=self.settle_s)
        streams: list[ProgressSimulator] = [simulator]
        handles = [
            simulator.start(
                StreamCallbacks(
                    on_status=lambda step: self._update(generation_id, status=step),
                    on_progress=lambda value: self._update(generation_id, progress=value),
                    on_complete=_on_complete,
                )
            )
        ]
        if reasoning:
            narrator = ReasoningSimulator(text, interval_s=self.reasoning_interval_s)
            streams.append(narrator)
            narration.append(
                narrator.start(StreamCallbacks(on_status=lambda so_far: self._update(generation_id, reasoning=so_far)))
            )
            handles.extend(narration)
        self._streams = streams
        self._handles = handles
        self._emit("generation_started", provider=provider, prompt=text, resolution=_resolution_summary(resolution))

    def cancel(self) -> None:
        for handle in self._handles:
            handle()
        self._handles = []
        if not self.state.generating:
            return
        self._generation_id += 1
        self.state.generating = False
        self.state.status = "Generation cancelled"
        self._notify()
        self._emit("generation_cancelled")

    async def wait(self) -> GenerationState:
        for stream in list(self._streams):
            await stream.wait()
        return self.state

    async def generate(
        self,
        prompt: str,
        provider: str,
        options: GenerationOptions | None = None,
        *,
        reasoning: bool = True,
    ) -> GenerationState:
        self.start(prompt, provider, options, reasoning=reasoning)
        return await self.wait()

    async def _run_generation(self, generation_id: int, adapter, request: GenerationRequest) -> None:
        try:
            result = await adapter.generate(request)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            if generation_id != self._generation_id:
                return
            logger.error("Generation with %s failed: %s", request.provider, exc)
            self.state.result = None
            self.state.error = user_message(exc)
            self.state.generating = False
            self._notify()
            self._emit("generation_failed", provider=request.provider, error=str(exc), error_type=type(exc).__name__)
            return
        if generation_id != self._generation_id:
            return
        self.state.result = result
        self.state.error = None
        self.state.generating = False
        self.state.status = "Generation complete"
        self.state.warnings.extend(result.warnings)
        self._notify()
        self._emit(
            "generation_completed",
            provider=result.provider,
            source=result.source,
            images=len(result.image_urls),
            warnings=list(result.warnings),
        )

    def _update(self, generation_id: int, **changes: object) -> None:
        if generation_id != self._generation_id:
            return
        for key, value in changes.items():
            setattr(self.state, key, value)
        self._notify()

    def _notify(self) -> None:
        if self.on_change is not None:
            self.on_change(self.state)

    def _emit(self, event_type: str, **payload: object) -> None:
        if self.events is not None:
            self.events.emit(event_type, **payload)


def _resolution_summary(resolution: ResolutionResult) -> dict[str, list[str]]:
    return {
        "resolved": list(resolution.resolved_tokens),
        "missing": list(resolution.missing_tokens),
        "invalid": list(resolution.invalid_tokens),
    }
