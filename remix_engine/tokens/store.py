"""Live personalization token map with debounced persistence.

Updates apply to memory immediately. Persistence is coalesced: every update
restarts a single timer holding the merged snapshot, so a burst of edits
produces one write of the final state.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Mapping

from ..errors import PersistenceError, RemixError, ValidationError
from ..logging_config import get_logger
from ..utils import now_utc_iso
from .backend import CONFLICT_KEYS, TokenBackend, rows_for
from .catalog import default_tokens
from .resolver import KEY_RE, ResolutionResult, resolve

logger = get_logger("tokens.store")

DEFAULT_SAVE_DELAY_S = 1.5


@dataclass(frozen=True)
class PendingSave:
    snapshot: dict[str, str]
    scheduled_at: str


class PersonalizationStore:
    def __init__(
        self,
        owner_id: str | None = None,
        backend: TokenBackend | None = None,
        *,
        delay_s: float = DEFAULT_SAVE_DELAY_S,
        defaults: Mapping[str, str] | None = None,
    ) -> None:
        self.owner_id = owner_id or None
        self.backend = backend
        self.delay_s = max(0.0, float(delay_s))
        self._defaults = default_tokens() if defaults is None else dict(defaults)
        self._tokens = dict(self._defaults)
        self._pending: PendingSave | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._writes: set[asyncio.Task] = set()
        # one upsert at a time so an older snapshot never lands after a newer one
        self._write_lock = asyncio.Lock()
        self._closed = False
        self.is_saving = False
        self.last_saved: str | None = None

    @property
    def persistent(self) -> bool:
        return self.owner_id is not None and self.backend is not None and not self._closed

    @property
    def has_pending_save(self) -> bool:
        return self._pending is not None

    def get_snapshot(self) -> dict[str, str]:
        return dict(self._tokens)

    def update_token(self, key: str, value: str | None) -> None:
        self.update_tokens({key: value})

    def update_tokens(self, partial: Mapping[str, str | None]) -> None:
        cleaned: dict[str, str] = {}
        for key, value in partial.items():
            _check_key(key)
            cleaned[key] = "" if value is None else str(value)
        if not cleaned:
            return
        self._tokens.update(cleaned)
        self._schedule_save()

    def reset_tokens(self) -> None:
        self._tokens = dict(self._defaults)
        self._schedule_save()

    def resolve_prompt(self, text: str | None) -> ResolutionResult:
        return resolve(text, self._tokens)

    def close(self) -> None:
        """Cancel the pending save; nothing is persisted after this."""
        self._cancel_timer()
        self._pending = None
        self._closed = True

    async def load(self) -> dict[str, str]:
        if not self.persistent:
            return self.get_snapshot()
        try:
            persisted = await asyncio.to_thread(self.backend.load, self.owner_id)
        except Exception as exc:
            logger.error("Failed to load tokens for %s: %s", self.owner_id, exc)
            return self.get_snapshot()
        merged = dict(self._defaults)
        merged.update(persisted)
        self._tokens = merged
        logger.debug("Loaded %d persisted tokens for %s", len(persisted), self.owner_id)
        return self.get_snapshot()

    async def flush(self) -> bool:
        """Write the pending snapshot now. Returns True when a write succeeded."""
        self._cancel_timer()
        pending = self._pending
        self._pending = None
        if pending is None or not self.persistent:
            if self._writes:
                await asyncio.gather(*self._writes, return_exceptions=True)
            return False
        return await self._write(pending)

    def _schedule_save(self) -> None:
        if not self.persistent:
            return
        self._cancel_timer()
        self._pending = PendingSave(snapshot=dict(self._tokens), scheduled_at=now_utc_iso())
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # no loop: the snapshot stays pending until flush()
            return
        self._timer = loop.call_later(self.delay_s, self._fire)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _fire(self) -> None:
        self._timer = None
        pending = self._pending
        self._pending = None
        if pending is None or not self.persistent:
            return
        task = asyncio.get_running_loop().create_task(self._write(pending))
        self._writes.add(task)
        task.add_done_callback(self._writes.discard)

    async def _write(self, pending: PendingSave) -> bool:
        rows = rows_for(self.owner_id or "", pending.snapshot)
        async with self._write_lock:
            if not self.persistent:
                return False
            self.is_saving = True
            try:
                await asyncio.to_thread(self.backend.upsert, rows, CONFLICT_KEYS)
            except Exception as exc:
                error = exc if isinstance(exc, RemixError) else PersistenceError(str(exc))
                logger.error("Failed to persist %d tokens for %s: %s", len(rows), self.owner_id, error)
                return False
            finally:
                self.is_saving = False
        self.last_saved = now_utc_iso()
        logger.debug("Persisted %d tokens for %s", len(rows), self.owner_id)
        return True


def _check_key(key: str) -> None:
    if not isinstance(key, str) or not key.strip():
        raise ValidationError("Token key must not be empty.")
    if not KEY_RE.fullmatch(key):
        raise ValidationError(f"Invalid token key: {key}", {"key": key})
