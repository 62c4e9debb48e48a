from __future__ import annotations

import pytest

from remix_engine.errors import ValidationError
from remix_engine.tokens.resolver import (
    convert_token_format,
    find_tokens,
    resolve,
    resolve_batch,
    token_usage_report,
    validate_tokens,
)


def test_resolve_substitutes_known_token() -> None:
    result = resolve("A photo of [FIRSTNAME]", {"FIRSTNAME": "Sam"})
    assert result.resolved_content == "A photo of Sam"
    assert result.resolved_tokens == ("FIRSTNAME",)
    assert result.missing_tokens == ()
    assert result.invalid_tokens == ()
    assert result.is_fully_resolved


def test_resolve_reports_missing_and_invalid() -> None:
    result = resolve("Hello [FIRSTNAME] from [COMPANY]", {"FIRSTNAME": ""})
    assert result.resolved_content == "Hello  from [COMPANY]"
    assert result.missing_tokens == ("FIRSTNAME",)
    assert result.invalid_tokens == ("COMPANY",)
    assert len(result.warnings) == 2
    assert not result.is_fully_resolved


def test_resolve_without_markers_is_identity() -> None:
    content = "Just a plain prompt, 100% marker free."
    result = resolve(content, {"FIRSTNAME": "Sam"})
    assert result.resolved_content == content
    assert result.resolved_tokens == ()
    assert result.warnings == ()


def test_resolve_empty_content() -> None:
    assert resolve("", {"A": "b"}).resolved_content == ""
    assert resolve(None, {"A": "b"}).resolved_content == ""


def test_resolve_recognises_every_marker_style() -> None:
    tokens = {"FIRSTNAME": "Sam", "COMPANY": "Acme", "CHARACTER_NAME": "Alex", "POSE": "action"}
    result = resolve("[FIRSTNAME] {COMPANY} __CHARACTER_NAME__ %POSE%", tokens)
    assert result.resolved_content == "Sam Acme Alex action"
    assert result.resolved_tokens == ("FIRSTNAME", "COMPANY", "CHARACTER_NAME", "POSE")


def test_resolve_is_single_pass() -> None:
    result = resolve("[A] and [B]", {"A": "[B]", "B": "bee"})
    assert result.resolved_content == "[B] and bee"


def test_resolve_deduplicates_diagnostics() -> None:
    result = resolve("[X] [X] [Y] [X]", {"Y": "y"})
    assert result.invalid_tokens == ("X",)
    assert result.resolved_tokens == ("Y",)
    assert result.warnings == ("Unknown token left unresolved: X",)


def test_resolve_does_not_mutate_tokens_and_is_deterministic() -> None:
    tokens = {"FIRSTNAME": "Sam"}
    first = resolve("Hi [FIRSTNAME] [OTHER]", tokens)
    second = resolve("Hi [FIRSTNAME] [OTHER]", tokens)
    assert first == second
    assert tokens == {"FIRSTNAME": "Sam"}


def test_resolve_limited_to_styles() -> None:
    result = resolve("[FIRSTNAME] {FIRSTNAME}", {"FIRSTNAME": "Sam"}, styles=("curly",))
    assert result.resolved_content == "[FIRSTNAME] Sam"


def test_unknown_style_rejected() -> None:
    with pytest.raises(ValidationError):
        resolve("[A]", {"A": "a"}, styles=("angle",))


def test_lowercase_markers_are_not_tokens() -> None:
    result = resolve("[firstname] {note}", {"FIRSTNAME": "Sam"})
    assert result.resolved_content == "[firstname] {note}"
    assert result.invalid_tokens == ()


def test_find_tokens_orders_by_first_occurrence() -> None:
    assert find_tokens("%B% [A] {B} __C__") == ["B", "A", "C"]
    assert find_tokens("") == []


def test_validate_tokens_suggests_similar_keys() -> None:
    report = validate_tokens("Hi [FIRSTNAME] at [COMPANYNAME]", ["FIRSTNAME", "COMPANY"])
    assert report.valid_tokens == ("FIRSTNAME",)
    assert report.invalid_tokens == ("COMPANYNAME",)
    assert report.suggestions == ("Did you mean COMPANY instead of COMPANYNAME?",)
    assert not report.is_valid


def test_validate_tokens_defaults_to_default_catalog() -> None:
    assert validate_tokens("[FIRSTNAME] [ENVIRONMENT]").is_valid


def test_convert_token_format() -> None:
    assert convert_token_format("Hi [FIRSTNAME]!", "square", "curly") == "Hi {FIRSTNAME}!"
    assert convert_token_format("Hi {FIRSTNAME}!", "curly", "percent") == "Hi %FIRSTNAME%!"
    assert convert_token_format("Hi %FIRSTNAME%!", "percent", "underscore") == "Hi __FIRSTNAME__!"


def test_resolve_batch() -> None:
    results = resolve_batch(["[A]", "[B]"], {"A": "a"})
    assert [item.resolved_content for item in results] == ["a", "[B]"]


def test_token_usage_report_counts_per_content() -> None:
    report = token_usage_report(["[A] [A] [B]", "[A]", "none"])
    assert report.frequency == {"A": 2, "B": 1}
    assert report.total_tokens == 3
    assert report.most_used[0] == ("A", 2)
