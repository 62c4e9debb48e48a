"""Token resolution for prompts, emails, SMS and marketing copy.

Markers are recognised in every style by default so a token works regardless
of whether the user typed ``[FIRSTNAME]``, ``{FIRSTNAME}``, ``__FIRSTNAME__``
or ``%FIRSTNAME%``. Resolution is a single left-to-right pass: substituted
values are never re-scanned.
"""

from __future__ import annotations

import re
from collections import Counter
from dataclasses import dataclass
from typing import Iterable, Mapping, Sequence

from ..errors import ValidationError
from .catalog import DEFAULT_TOKENS


_KEY = r"[A-Z][A-Z0-9_]*"
KEY_RE = re.compile(_KEY)

TOKEN_PATTERNS: dict[str, str] = {
    "square": rf"\[(?P<square>{_KEY})\]",
    "curly": rf"\{{(?P<curly>{_KEY})\}}",
    "underscore": r"__(?P<underscore>[A-Z][A-Z0-9]*(?:_[A-Z0-9]+)*)__",
    "percent": rf"%(?P<percent>{_KEY})%",
}

TOKEN_FORMATS: dict[str, str] = {
    "square": "[{key}]",
    "curly": "{{{key}}}",
    "underscore": "__{key}__",
    "percent": "%{key}%",
}

# content type -> marker style used when writing markers back out
CONTENT_TYPE_STYLES: dict[str, str] = {
    "prompt": "square",
    "email": "curly",
    "sms": "percent",
    "marketing": "square",
    "social": "curly",
}

ALL_STYLES: tuple[str, ...] = tuple(TOKEN_PATTERNS)

_COMPILED: dict[tuple[str, ...], re.Pattern[str]] = {}


@dataclass(frozen=True)
class ResolutionResult:
    resolved_content: str
    resolved_tokens: tuple[str, ...] = ()
    missing_tokens: tuple[str, ...] = ()
    invalid_tokens: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()

    @property
    def is_fully_resolved(self) -> bool:
        return not self.missing_tokens and not self.invalid_tokens


@dataclass(frozen=True)
class TokenValidation:
    found_tokens: tuple[str, ...]
    valid_tokens: tuple[str, ...]
    invalid_tokens: tuple[str, ...]
    suggestions: tuple[str, ...]

    @property
    def is_valid(self) -> bool:
        return not self.invalid_tokens


@dataclass(frozen=True)
class TokenUsageReport:
    total_tokens: int
    unique_tokens: tuple[str, ...]
    frequency: Mapping[str, int]
    most_used: tuple[tuple[str, int], ...]


def resolve(
    content: str | None,
    tokens: Mapping[str, str],
    *,
    styles: Sequence[str] = ALL_STYLES,
) -> ResolutionResult:
    if not content:
        return ResolutionResult(resolved_content=content or "")

    pattern = _pattern_for(styles)
    resolved: list[str] = []
    missing: list[str] = []
    invalid: list[str] = []
    warnings: list[str] = []

    def _substitute(match: re.Match[str]) -> str:
        style = match.lastgroup or ""
        key = match.group(style)
        if key not in tokens:
            if key not in invalid:
                invalid.append(key)
                warnings.append(f"Unknown token left unresolved: {key}")
            return match.group(0)
        value = tokens[key]
        if value is None or value == "":
            if key not in missing:
                missing.append(key)
                warnings.append(f"Token has no value: {key}")
            return ""
        if key not in resolved:
            resolved.append(key)
        return str(value)

    resolved_content = pattern.sub(_substitute, content)
    return ResolutionResult(
        resolved_content=resolved_content,
        resolved_tokens=tuple(resolved),
        missing_tokens=tuple(missing),
        invalid_tokens=tuple(invalid),
        warnings=tuple(warnings),
    )


def find_tokens(content: str | None, *, styles: Sequence[str] = ALL_STYLES) -> list[str]:
    if not content:
        return []
    keys: list[str] = []
    for match in _pattern_for(styles).finditer(content):
        key = match.group(match.lastgroup or "")
        if key not in keys:
            keys.append(key)
    return keys


def validate_tokens(
    content: str | None,
    known_keys: Iterable[str] | None = None,
    *,
    style: str = "square",
) -> TokenValidation:
    known = list(known_keys) if known_keys is not None else list(DEFAULT_TOKENS)
    found = find_tokens(content, styles=(style,))
    valid: list[str] = []
    invalid: list[str] = []
    suggestions: list[str] = []
    for key in found:
        if key in known:
            valid.append(key)
            continue
        invalid.append(key)
        similar = [
            candidate
            for candidate in known
            if candidate.lower() in key.lower() or key.lower() in candidate.lower()
        ]
        if similar:
            suggestions.append(f"Did you mean {similar[0]} instead of {key}?")
    return TokenValidation(
        found_tokens=tuple(found),
        valid_tokens=tuple(valid),
        invalid_tokens=tuple(invalid),
        suggestions=tuple(suggestions),
    )


def convert_token_format(content: str, from_style: str, to_style: str) -> str:
    pattern = _pattern_for((from_style,))
    target = _format_for(to_style)
    return pattern.sub(lambda match: target.format(key=match.group(from_style)), content)


def resolve_batch(
    contents: Iterable[str],
    tokens: Mapping[str, str],
    *,
    styles: Sequence[str] = ALL_STYLES,
) -> list[ResolutionResult]:
    return [resolve(content, tokens, styles=styles) for content in contents]


def token_usage_report(contents: Iterable[str], *, style: str = "square") -> TokenUsageReport:
    pattern = _pattern_for((style,))
    counter: Counter[str] = Counter()
    for content in contents:
        if not content:
            continue
        # frequency counts distinct keys per content piece
        seen = {match.group(style) for match in pattern.finditer(content)}
        counter.update(seen)
    return TokenUsageReport(
        total_tokens=sum(counter.values()),
        unique_tokens=tuple(counter),
        frequency=dict(counter),
        most_used=tuple(counter.most_common(10)),
    )


def style_for_content_type(content_type: str) -> str:
    try:
        return CONTENT_TYPE_STYLES[content_type]
    except KeyError:
        raise ValidationError(f"Unknown content type: {content_type}") from None


def _format_for(style: str) -> str:
    try:
        return TOKEN_FORMATS[style]
    except KeyError:
        raise ValidationError(f"Unknown token style: {style}") from None


def _pattern_for(styles: Sequence[str]) -> re.Pattern[str]:
    key = tuple(styles)
    cached = _COMPILED.get(key)
    if cached is not None:
        return cached
    if not key:
        raise ValidationError("At least one token style is required.")
    parts: list[str] = []
    for style in key:
        if style not in TOKEN_PATTERNS:
            raise ValidationError(f"Unknown token style: {style}")
        parts.append(TOKEN_PATTERNS[style])
    compiled = re.compile("|".join(parts))
    _COMPILED[key] = compiled
    return compiled
