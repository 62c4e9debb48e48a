"""SQLite-backed personalization token store."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, Sequence

from ..errors import PersistenceError
from ..utils import ensure_dir, now_utc_iso
from .catalog import category_for


CONFLICT_KEYS: tuple[str, ...] = ("owner_id", "token_key")


@dataclass(frozen=True)
class TokenRow:
    owner_id: str
    token_key: str
    token_value: str
    category: str = "general"


class TokenBackend(Protocol):
    def upsert(self, rows: Sequence[TokenRow], conflict_keys: Sequence[str] = CONFLICT_KEYS) -> None:
        ...

    def load(self, owner_id: str) -> dict[str, str]:
        ...


@dataclass
class SQLiteTokenBackend:
    path: Path

    def connect(self) -> sqlite3.Connection:
        ensure_dir(self.path.parent)
        conn = sqlite3.connect(self.path)
        conn.row_factory = sqlite3.Row
        return conn

    def init_db(self) -> None:
        try:
            with self.connect() as conn:
                conn.executescript(
                    """
                    CREATE TABLE IF NOT EXISTS personalization_tokens (
                        owner_id TEXT NOT NULL,
                        token_key TEXT NOT NULL,
                        token_value TEXT,
                        category TEXT,
                        updated_at TEXT,
                        UNIQUE (owner_id, token_key)
                    );
                    """
                )
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to initialize token store: {exc}", {"path": str(self.path)}) from exc

    def upsert(self, rows: Sequence[TokenRow], conflict_keys: Sequence[str] = CONFLICT_KEYS) -> None:
        if tuple(conflict_keys) != CONFLICT_KEYS:
            raise PersistenceError(
                "Unsupported conflict target.",
                {"conflict_keys": list(conflict_keys), "expected": list(CONFLICT_KEYS)},
            )
        if not rows:
            return
        self.init_db()
        updated_at = now_utc_iso()
        try:
            with self.connect() as conn:
                conn.executemany(
                    """
                    INSERT INTO personalization_tokens (owner_id, token_key, token_value, category, updated_at)
                    VALUES (?, ?, ?, ?, ?)
                    ON CONFLICT(owner_id, token_key) DO UPDATE SET
                        token_value=excluded.token_value,
                        category=excluded.category,
                        updated_at=excluded.updated_at
                    """,
                    [_row_params(row, updated_at) for row in rows],
                )
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to save tokens: {exc}", {"rows": len(rows)}) from exc

    def load(self, owner_id: str) -> dict[str, str]:
        self.init_db()
        try:
            with self.connect() as conn:
                rows = conn.execute(
                    """
                    SELECT token_key, token_value FROM personalization_tokens
                    WHERE owner_id = ?
                    ORDER BY token_key
                    """,
                    (owner_id,),
                ).fetchall()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to load tokens: {exc}", {"owner_id": owner_id}) from exc
        return {row["token_key"]: row["token_value"] or "" for row in rows}


def rows_for(owner_id: str, tokens: dict[str, str], categories: dict[str, str] | None = None) -> list[TokenRow]:
    """Rows for a token snapshot; categories default to the catalog."""
    lookup = categories or {}
    return [
        TokenRow(
            owner_id=owner_id,
            token_key=key,
            token_value=value,
            category=lookup.get(key) or category_for(key),
        )
        for key, value in tokens.items()
    ]


def _row_params(row: TokenRow, updated_at: str) -> tuple[str, str, str, str, str]:
    return (row.owner_id, row.token_key, row.token_value, row.category, updated_at)

