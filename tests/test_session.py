from __future__ import annotations

import asyncio
import time
from pathlib import Path

import pytest

from remix_engine.errors import ProviderAPIError, ValidationError
from remix_engine.providers.base import GenerationRequest, GenerationResult, ProviderRegistry
from remix_engine.runs.events import EventWriter, read_events
from remix_engine.session import GenerationSession, GenerationState
from remix_engine.tokens.store import PersonalizationStore


class FakeProvider:
    def __init__(self, name: str = "fake", error: Exception | None = None, delay_s: float = 0.0) -> None:
        self.name = name
        self.error = error
        self.delay_s = delay_s
        self.requests: list[GenerationRequest] = []

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        self.requests.append(request)
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        if self.error is not None:
            raise self.error
        return GenerationResult(
            image_urls=("https://img.example/1.png",),
            provider=self.name,
            source="gateway",
            warnings=("size snapped",),
        )


def _session(provider: FakeProvider, **kwargs) -> GenerationSession:
    store = PersonalizationStore()
    store.update_tokens({"FIRSTNAME": "Sam", "COMPANY": "Initech"})
    return GenerationSession(
        store,
        ProviderRegistry([provider]),
        interval_s=0.0,
        settle_s=0.0,
        reasoning_interval_s=0.0,
        **kwargs,
    )


def test_generate_resolves_tokens_and_stores_result(tmp_path: Path) -> None:
    provider = FakeProvider()
    events_path = tmp_path / "events.jsonl"
    session = _session(provider, events=EventWriter(events_path, "run-1"))
    state = asyncio.run(session.generate("[FIRSTNAME] at [COMPANY] HQ [MYSTERY]", "fake"))

    assert provider.requests[0].prompt == "Sam at Initech HQ [MYSTERY]"
    assert state.result is not None and state.result.image_url == "https://img.example/1.png"
    assert state.error is None
    assert not state.generating
    assert state.progress == 100
    assert state.status == "Generation complete"
    assert state.reasoning.startswith("Analyzing prompt components...")
    assert state.resolution.invalid_tokens == ("MYSTERY",)
    assert "Unknown token left unresolved: MYSTERY" in state.warnings
    assert "size snapped" in state.warnings

    events = read_events(events_path)
    assert [event["type"] for event in events] == ["generation_started", "generation_completed"]
    assert events[0]["resolution"]["invalid"] == ["MYSTERY"]
    assert events[1]["source"] == "gateway"


def test_failure_sets_user_facing_error(tmp_path: Path) -> None:
    provider = FakeProvider(error=ProviderAPIError("slow down", status=429, provider="fake"))
    events_path = tmp_path / "events.jsonl"
    session = _session(provider, events=EventWriter(events_path, "run-1"))
    state = asyncio.run(session.generate("a quiet harbor", "fake", reasoning=False))
    assert state.result is None
    assert state.error == "Rate limit exceeded. Please wait a moment and try again."
    assert not state.generating
    assert read_events(events_path)[-1]["error_type"] == "ProviderAPIError"


def test_empty_resolved_prompt_is_rejected() -> None:
    provider = FakeProvider()
    session = _session(provider)

    async def _run() -> None:
        with pytest.raises(ValidationError):
            session.start("   ", "fake")

    asyncio.run(_run())
    assert provider.requests == []
    assert not session.active


def test_unknown_provider_is_rejected() -> None:
    session = _session(FakeProvider())

    async def _run() -> None:
        with pytest.raises(ValidationError):
            session.start("a quiet harbor", "nope")

    asyncio.run(_run())


def test_cancel_stops_updates_and_drops_result(tmp_path: Path) -> None:
    provider = FakeProvider()
    events_path = tmp_path / "events.jsonl"
    store = PersonalizationStore()
    session = GenerationSession(
        store,
        ProviderRegistry([provider]),
        events=EventWriter(events_path, "run-1"),
        interval_s=0.02,
        settle_s=0.0,
        reasoning_interval_s=0.02,
    )

    async def _run() -> GenerationState:
        session.start("a quiet harbor", "fake")
        await asyncio.sleep(0.05)
        session.cancel()
        progress = session.state.progress
        await session.wait()
        await asyncio.sleep(0.3)
        assert session.state.progress == progress
        return session.state

    state = asyncio.run(_run())
    assert provider.requests == []
    assert state.result is None
    assert not state.generating
    assert state.status == "Generation cancelled"
    assert [event["type"] for event in read_events(events_path)] == ["generation_started", "generation_cancelled"]


def test_starting_again_supersedes_active_generation() -> None:
    provider = FakeProvider(delay_s=0.05)
    session = _session(provider)
    seen: list[GenerationState] = []
    session.on_change = seen.append

    async def _run() -> GenerationState:
        session.start("first prompt", "fake")
        await asyncio.sleep(0)
        session.start("second prompt", "fake")
        return await session.wait()

    state = asyncio.run(_run())
    assert [request.prompt for request in provider.requests] == ["second prompt"]
    assert state.result is not None
    assert not state.generating
    assert seen


def test_narration_stops_when_generation_settles() -> None:
    provider = FakeProvider()
    store = PersonalizationStore()
    session = GenerationSession(
        store,
        ProviderRegistry([provider]),
        interval_s=0.0,
        settle_s=0.0,
        reasoning_interval_s=0.5,
    )

    async def _run() -> tuple[GenerationState, float, str]:
        started = time.monotonic()
        state = await session.generate("a quiet harbor at night", "fake")
        elapsed = time.monotonic() - started
        narration = state.reasoning
        await asyncio.sleep(0.6)
        assert session.state.reasoning == narration
        return state, elapsed, narration

    state, elapsed, narration = asyncio.run(_run())
    assert state.result is not None
    assert state.status == "Generation complete"
    assert elapsed < 0.5
    assert narration == ""
