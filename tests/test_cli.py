from __future__ import annotations

from pathlib import Path

import pytest

from remix_engine.cli import main


def _run(argv: list[str]) -> int:
    with pytest.raises(SystemExit) as excinfo:
        main(argv)
    return int(excinfo.value.code)


_ENV_KEYS = (
    "REMIX_GATEWAY_URL",
    "REMIX_DB_PATH",
    "OPENAI_API_KEY",
    "OPENAI_API_KEY_BACKUP",
    "GEMINI_API_KEY",
    "GOOGLE_API_KEY",
)


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("REMIX_SAVE_DELAY_S", "0")


def test_resolve_prints_resolved_text(capsys: pytest.CaptureFixture[str]) -> None:
    code = _run(["resolve", "Hi [FIRSTNAME] from {COMPANY}", "--token", "FIRSTNAME=Sam"])
    captured = capsys.readouterr()
    assert code == 0
    assert captured.out.strip().startswith("Hi Sam from ")


def test_resolve_strict_fails_on_unknown_token(capsys: pytest.CaptureFixture[str]) -> None:
    code = _run(["resolve", "Hi [NOBODY]", "--strict"])
    captured = capsys.readouterr()
    assert code == 2
    assert captured.out.strip() == "Hi [NOBODY]"
    assert "Unknown token left unresolved: NOBODY" in captured.err


def test_tokens_set_persists_per_owner(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    db = str(tmp_path / "tokens.sqlite")
    assert _run(["--db", db, "tokens", "set", "FIRSTNAME=Riley", "--owner", "u1"]) == 0
    capsys.readouterr()
    assert _run(["--db", db, "tokens", "show", "--owner", "u1"]) == 0
    assert "FIRSTNAME=Riley" in capsys.readouterr().out.splitlines()
    assert _run(["--db", db, "resolve", "[FIRSTNAME]", "--owner", "u1"]) == 0
    assert capsys.readouterr().out.strip() == "Riley"
    assert _run(["--db", db, "tokens", "reset", "--owner", "u1"]) == 0
    assert "FIRSTNAME=Riley" not in capsys.readouterr().out


def test_bad_pair_is_reported(capsys: pytest.CaptureFixture[str]) -> None:
    code = _run(["resolve", "x", "--token", "NOEQUALS"])
    assert code == 1
    assert "Expected KEY=VALUE" in capsys.readouterr().err


def test_generate_with_placeholder_saves_image(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    out_dir = tmp_path / "out"
    events = tmp_path / "events.jsonl"
    code = _run(
        [
            "generate",
            "a lighthouse at dusk",
            "--provider",
            "placeholder",
            "--no-reasoning",
            "--out",
            str(out_dir),
            "--events",
            str(events),
        ]
    )
    output = capsys.readouterr().out
    assert code == 0
    assert "Provider: placeholder (via placeholder)" in output
    assert len(list(out_dir.glob("remix-*.png"))) == 1
    assert events.exists()


def test_generate_without_credentials_fails_cleanly(capsys: pytest.CaptureFixture[str]) -> None:
    code = _run(["generate", "a lighthouse at dusk", "--provider", "openai", "--no-reasoning"])
    output = capsys.readouterr().out
    assert code == 1
    assert "Generation failed: Generation is not configured" in output


def test_resolve_content_type_limits_marker_style(capsys: pytest.CaptureFixture[str]) -> None:
    code = _run(["resolve", "Hi {FIRSTNAME} [FIRSTNAME]", "--token", "FIRSTNAME=Sam", "--content-type", "email"])
    assert code == 0
    assert capsys.readouterr().out.strip() == "Hi Sam [FIRSTNAME]"
