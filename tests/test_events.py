from __future__ import annotations

import json
from pathlib import Path

from remix_engine.runs.events import EventWriter, read_events


def test_event_writer(tmp_path: Path) -> None:
    path = tmp_path / "events.jsonl"
    writer = EventWriter(path, "run-123")
    writer.emit("generation_started", provider="openai")
    lines = path.read_text(encoding="utf-8").strip().splitlines()
    assert len(lines) == 1
    payload = json.loads(lines[0])
    assert payload["type"] == "generation_started"
    assert payload["run_id"] == "run-123"
    assert "ts" in payload
    assert payload["provider"] == "openai"


def test_event_writer_omits_image_payloads(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "events.jsonl"
    writer = EventWriter(path, "run-1")
    writer.emit("generation_completed", image_urls=["data:image/png;base64,AAAA"], reference_image="x")
    writer.emit("generation_failed", error="boom")
    events = read_events(path)
    assert [event["type"] for event in events] == ["generation_completed", "generation_failed"]
    assert events[0]["image_urls"] == ["<data-url:26>"]
    assert events[0]["reference_image"] == "<omitted>"


def test_read_events_missing_file(tmp_path: Path) -> None:
    assert read_events(tmp_path / "none.jsonl") == []
