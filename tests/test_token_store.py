from __future__ import annotations

import asyncio
import time
from typing import Sequence

import pytest

from remix_engine.errors import PersistenceError, ValidationError
from remix_engine.tokens.backend import TokenRow
from remix_engine.tokens.catalog import DEFAULT_TOKENS
from remix_engine.tokens.store import PersonalizationStore


class RecordingBackend:
    def __init__(self, persisted: dict[str, str] | None = None, fail: bool = False) -> None:
        self.writes: list[list[TokenRow]] = []
        self.conflict_keys: list[tuple[str, ...]] = []
        self.persisted = persisted or {}
        self.fail = fail

    def upsert(self, rows: Sequence[TokenRow], conflict_keys: Sequence[str] = ("owner_id", "token_key")) -> None:
        if self.fail:
            raise PersistenceError("disk full")
        self.writes.append(list(rows))
        self.conflict_keys.append(tuple(conflict_keys))

    def load(self, owner_id: str) -> dict[str, str]:
        if self.fail:
            raise PersistenceError("unreadable")
        return dict(self.persisted)


def test_updates_apply_synchronously() -> None:
    store = PersonalizationStore()
    store.update_token("FIRSTNAME", "Sam")
    store.update_tokens({"COMPANY": "Initech", "NEW_KEY": "x"})
    snapshot = store.get_snapshot()
    assert snapshot["FIRSTNAME"] == "Sam"
    assert snapshot["COMPANY"] == "Initech"
    assert snapshot["NEW_KEY"] == "x"
    assert store.resolve_prompt("[FIRSTNAME] at [COMPANY]").resolved_content == "Sam at Initech"


def test_snapshot_is_a_copy() -> None:
    store = PersonalizationStore()
    snapshot = store.get_snapshot()
    snapshot["FIRSTNAME"] = "changed"
    assert store.get_snapshot()["FIRSTNAME"] == DEFAULT_TOKENS["FIRSTNAME"]


def test_invalid_keys_rejected() -> None:
    store = PersonalizationStore()
    with pytest.raises(ValidationError):
        store.update_token("", "x")
    with pytest.raises(ValidationError):
        store.update_token("first name", "x")


def test_burst_of_updates_coalesces_into_one_write() -> None:
    backend = RecordingBackend()

    async def _run() -> None:
        store = PersonalizationStore("user-1", backend, delay_s=0.05)
        store.update_token("FIRSTNAME", "A")
        store.update_token("FIRSTNAME", "B")
        store.update_token("COMPANY", "C")
        assert store.has_pending_save
        await asyncio.sleep(0.2)
        assert not store.has_pending_save
        assert store.last_saved is not None

    asyncio.run(_run())
    assert len(backend.writes) == 1
    written = {row.token_key: row.token_value for row in backend.writes[0]}
    assert written["FIRSTNAME"] == "B"
    assert written["COMPANY"] == "C"
    assert backend.conflict_keys == [("owner_id", "token_key")]
    assert {row.owner_id for row in backend.writes[0]} == {"user-1"}


def test_rows_carry_categories() -> None:
    backend = RecordingBackend()

    async def _run() -> None:
        store = PersonalizationStore("user-1", backend, delay_s=0.0)
        store.update_token("EMAIL", "sam@example.com")
        await store.flush()

    asyncio.run(_run())
    categories = {row.token_key: row.category for row in backend.writes[0]}
    assert categories["EMAIL"] == "personal"
    assert categories["COMPANY"] == "company"


def test_close_cancels_pending_write() -> None:
    backend = RecordingBackend()

    async def _run() -> PersonalizationStore:
        store = PersonalizationStore("user-1", backend, delay_s=0.05)
        store.update_token("FIRSTNAME", "Sam")
        store.close()
        store.update_token("FIRSTNAME", "Later")
        await asyncio.sleep(0.15)
        return store

    store = asyncio.run(_run())
    assert backend.writes == []
    assert store.get_snapshot()["FIRSTNAME"] == "Later"


def test_persistence_failure_keeps_memory_state() -> None:
    backend = RecordingBackend(fail=True)

    async def _run() -> tuple[PersonalizationStore, bool]:
        store = PersonalizationStore("user-1", backend, delay_s=0.0)
        store.update_token("FIRSTNAME", "Sam")
        ok = await store.flush()
        return store, ok

    store, ok = asyncio.run(_run())
    assert ok is False
    assert store.get_snapshot()["FIRSTNAME"] == "Sam"
    assert store.is_saving is False


def test_reset_restores_defaults_and_schedules_save() -> None:
    backend = RecordingBackend()

    async def _run() -> PersonalizationStore:
        store = PersonalizationStore("user-1", backend, delay_s=0.01)
        store.update_token("FIRSTNAME", "Sam")
        store.reset_tokens()
        await asyncio.sleep(0.1)
        return store

    store = asyncio.run(_run())
    assert store.get_snapshot() == DEFAULT_TOKENS
    assert len(backend.writes) == 1
    assert {row.token_key: row.token_value for row in backend.writes[0]} == DEFAULT_TOKENS


def test_anonymous_store_never_persists() -> None:
    backend = RecordingBackend()

    async def _run() -> None:
        store = PersonalizationStore(None, backend, delay_s=0.0)
        store.update_token("FIRSTNAME", "Sam")
        assert not store.has_pending_save
        assert await store.flush() is False

    asyncio.run(_run())
    assert backend.writes == []


def test_load_overlays_persisted_tokens() -> None:
    backend = RecordingBackend(persisted={"FIRSTNAME": "Riley", "CUSTOM": "yes"})

    async def _run() -> dict[str, str]:
        store = PersonalizationStore("user-1", backend)
        return await store.load()

    snapshot = asyncio.run(_run())
    assert snapshot["FIRSTNAME"] == "Riley"
    assert snapshot["CUSTOM"] == "yes"
    assert snapshot["COMPANY"] == DEFAULT_TOKENS["COMPANY"]


def test_load_failure_keeps_defaults() -> None:
    backend = RecordingBackend(fail=True)

    async def _run() -> dict[str, str]:
        store = PersonalizationStore("user-1", backend)
        return await store.load()

    assert asyncio.run(_run()) == DEFAULT_TOKENS


def test_update_without_loop_stays_pending_until_flush() -> None:
    backend = RecordingBackend()
    store = PersonalizationStore("user-1", backend, delay_s=10.0)
    store.update_token("FIRSTNAME", "Sam")
    assert store.has_pending_save
    assert asyncio.run(store.flush()) is True
    assert backend.writes[0][0].owner_id == "user-1"


class SlowFirstWriteBackend(RecordingBackend):
    def __init__(self, first_write_s: float) -> None:
        super().__init__()
        self.first_write_s = first_write_s

    def upsert(self, rows: Sequence[TokenRow], conflict_keys: Sequence[str] = ("owner_id", "token_key")) -> None:
        if not self.writes and self.first_write_s:
            delay, self.first_write_s = self.first_write_s, 0.0
            time.sleep(delay)
        super().upsert(rows, conflict_keys)


def test_overlapping_writes_land_in_order() -> None:
    backend = SlowFirstWriteBackend(first_write_s=0.3)

    async def _run() -> PersonalizationStore:
        store = PersonalizationStore("user-1", backend, delay_s=0.05)
        store.update_token("FIRSTNAME", "Old")
        await asyncio.sleep(0.1)
        store.update_token("FIRSTNAME", "New")
        await asyncio.sleep(0.6)
        return store

    store = asyncio.run(_run())
    values = [{row.token_key: row.token_value for row in rows}["FIRSTNAME"] for rows in backend.writes]
    assert values == ["Old", "New"]
    assert store.is_saving is False
