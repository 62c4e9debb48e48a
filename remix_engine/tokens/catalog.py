"""Default personalization tokens."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Token:
    key: str
    value: str
    category: str = "general"


DEFAULT_TOKENS: dict[str, str] = {
    "FIRSTNAME": "John",
    "LASTNAME": "Doe",
    "COMPANY": "Acme Corp",
    "EMAIL": "john@acme.com",
    "CHARACTER_NAME": "Alex",
    "STYLE": "heroic",
    "POSE": "action",
    "ENVIRONMENT": "urban",
}

TOKEN_CATEGORIES: dict[str, str] = {
    "FIRSTNAME": "personal",
    "LASTNAME": "personal",
    "EMAIL": "personal",
    "COMPANY": "company",
    "CHARACTER_NAME": "character",
    "POSE": "character",
    "STYLE": "style",
    "ENVIRONMENT": "style",
}


def default_tokens() -> dict[str, str]:
    return dict(DEFAULT_TOKENS)


def category_for(key: str) -> str:
    return TOKEN_CATEGORIES.get(key, "general")


def as_tokens(values: dict[str, str]) -> list[Token]:
    return [Token(key=key, value=value, category=category_for(key)) for key, value in values.items()]
