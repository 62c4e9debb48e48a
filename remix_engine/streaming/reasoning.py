"""Reasoning narration that runs beside the generation progress stream."""

from __future__ import annotations

import asyncio
import re
from typing import Any

from .simulator import ProgressSimulator, StreamState, _maybe_await

REASONING_STEPS: tuple[str, ...] = (
    "Analyzing prompt components...",
    "Identifying key visual elements: {analysis}",
    "Determining composition and layout based on prompt context...",
    "Selecting color palette and lighting appropriate for the described scene...",
    "Planning foreground elements and focal points...",
    "Considering background details and atmosphere...",
    "Deciding on style and artistic approach based on prompt cues...",
    "Finalizing generation parameters for optimal results...",
)

DEFAULT_REASONING_INTERVAL_S = 0.7

# (pattern, element) pairs checked in order
_PROMPT_ELEMENTS: tuple[tuple[re.Pattern[str], str], ...] = tuple(
    (re.compile(pattern, re.IGNORECASE), label)
    for pattern, label in (
        (r"person|man|woman|child|boy|girl|people", "human subject"),
        (r"landscape|mountain|forest|beach|ocean|sky", "natural landscape"),
        (r"city|building|architecture|urban", "urban environment"),
        (r"realistic|photorealistic|detailed", "photorealistic style"),
        (r"painting|watercolor|oil|acrylic|artistic", "painting style"),
        (r"cartoon|anime|stylized", "stylized rendering"),
        (r"sunset|sunrise|golden hour", "warm lighting"),
        (r"night|dark|moonlight", "night setting"),
        (r"fog|mist|rain|snow|storm", "atmospheric conditions"),
    )
)


def analyze_prompt(prompt: str) -> str:
    elements = [label for pattern, label in _PROMPT_ELEMENTS if pattern.search(prompt or "")]
    if not elements:
        elements.append("general scene elements")
    return ", ".join(elements)


def reasoning_steps(prompt: str) -> tuple[str, ...]:
    analysis = analyze_prompt(prompt)
    return tuple(step.format(analysis=analysis) for step in REASONING_STEPS)


class ReasoningSimulator(ProgressSimulator):
    """Accumulating narration: ``on_status`` gets the text so far, ``on_complete`` the full text."""

    def __init__(self, prompt: str, *, interval_s: float = DEFAULT_REASONING_INTERVAL_S, **kwargs: Any) -> None:
        kwargs.setdefault("settle_s", 0.0)
        super().__init__(reasoning_steps(prompt), interval_s=interval_s, **kwargs)
        self.prompt = prompt
        self.text = ""

    async def _run(self) -> None:
        total = len(self.steps)
        narrated: list[str] = []
        for index, step in enumerate(self.steps):
            await asyncio.sleep(self._next_delay())
            if self._state is not StreamState.RUNNING:
                return
            narrated.append(step)
            self.text = "\n\n".join(narrated)
            await self._emit(self._callbacks.on_status, self.text)
            await self._set_progress(round((index + 1) / total * 100))
        if self._state is not StreamState.RUNNING:
            return
        self._state = StreamState.COMPLETED
        await _maybe_await(self._callbacks.on_complete, self.text)
