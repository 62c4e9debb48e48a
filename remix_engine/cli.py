"""Remix CLI entrypoints."""

from __future__ import annotations

import argparse
import asyncio
import base64
import sys
import time
from pathlib import Path
from typing import Sequence

from .cli_progress import ProgressDisplay
from .errors import RemixError, ValidationError, user_message
from .gateway import RemoteGateway, RetryPolicy
from .logging_config import setup_logging
from .providers import default_registry
from .providers.base import GenerationOptions
from .providers.presets import PRESETS
from .runs.events import EventWriter
from .session import GenerationSession, GenerationState
from .settings import Settings
from .tokens.backend import SQLiteTokenBackend
from .tokens.catalog import as_tokens
from .tokens.resolver import ALL_STYLES, CONTENT_TYPE_STYLES, resolve, style_for_content_type
from .tokens.store import PersonalizationStore
from .utils import load_dotenv, new_request_id


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="remix", description="Personalized image generation engine")
    parser.add_argument("--log-level", dest="log_level", help="Logging level (default from REMIX_LOG_LEVEL)")
    parser.add_argument("--verbose", action="store_true", help="Verbose log format")
    parser.add_argument("--db", help="Token database path (default from REMIX_DB_PATH)")
    sub = parser.add_subparsers(dest="command")

    resolve_cmd = sub.add_parser("resolve", help="Resolve personalization tokens in text")
    resolve_cmd.add_argument("text")
    resolve_cmd.add_argument("--token", action="append", default=[], metavar="KEY=VALUE")
    resolve_cmd.add_argument("--owner", help="Overlay the tokens saved for this owner")
    resolve_cmd.add_argument("--style", action="append", choices=ALL_STYLES, help="Marker style(s) to recognise")
    resolve_cmd.add_argument(
        "--content-type",
        dest="content_type",
        choices=sorted(CONTENT_TYPE_STYLES),
        help="Only recognise the marker style used by this kind of content",
    )
    resolve_cmd.add_argument("--strict", action="store_true", help="Exit 2 when any token is missing or unknown")

    tokens = sub.add_parser("tokens", help="Show or edit saved tokens")
    tokens_sub = tokens.add_subparsers(dest="tokens_command")
    show = tokens_sub.add_parser("show", help="Print the current token map")
    show.add_argument("--owner")
    set_cmd = tokens_sub.add_parser("set", help="Set one or more tokens")
    set_cmd.add_argument("pairs", nargs="+", metavar="KEY=VALUE")
    set_cmd.add_argument("--owner", required=True)
    reset = tokens_sub.add_parser("reset", help="Restore the default tokens")
    reset.add_argument("--owner", required=True)

    generate = sub.add_parser("generate", help="Generate an image")
    generate.add_argument("prompt")
    generate.add_argument("--provider", default="gemini")
    generate.add_argument("--owner", help="Resolve tokens saved for this owner")
    generate.add_argument("--size", default="1024x1024")
    generate.add_argument("--quality")
    generate.add_argument("--style")
    generate.add_argument("--aspect-ratio", dest="aspect_ratio", default="1:1")
    generate.add_argument("--reference", help="Reference image URL, data URL or path")
    generate.add_argument("--preset", choices=sorted(PRESETS))
    generate.add_argument("-n", type=int, default=1)
    generate.add_argument("--no-reasoning", dest="reasoning", action="store_false")
    generate.add_argument("--events", help="Path to events.jsonl")
    generate.add_argument("--out", help="Directory for decoded images")

    return parser


def _parse_pairs(values: Sequence[str]) -> dict[str, str]:
    pairs: dict[str, str] = {}
    for raw in values:
        if "=" not in raw:
            raise ValidationError(f"Expected KEY=VALUE, got: {raw}")
        key, value = raw.split("=", 1)
        pairs[key.strip()] = value
    return pairs


def _open_store(settings: Settings, owner: str | None) -> PersonalizationStore:
    backend = SQLiteTokenBackend(settings.db_path) if owner else None
    return PersonalizationStore(owner, backend, delay_s=settings.save_delay_s)


def _handle_resolve(args: argparse.Namespace, settings: Settings) -> int:
    async def _run() -> int:
        store = _open_store(settings, args.owner)
        await store.load()
        tokens = store.get_snapshot()
        tokens.update(_parse_pairs(args.token))
        if args.style:
            styles = tuple(args.style)
        elif args.content_type:
            styles = (style_for_content_type(args.content_type),)
        else:
            styles = ALL_STYLES
        result = resolve(args.text, tokens, styles=styles)
        print(result.resolved_content)
        for warning in result.warnings:
            print(f"warning: {warning}", file=sys.stderr)
        if args.strict and not result.is_fully_resolved:
            return 2
        return 0

    return asyncio.run(_run())


def _handle_tokens(args: argparse.Namespace, settings: Settings) -> int:
    async def _run() -> int:
        store = _open_store(settings, getattr(args, "owner", None))
        await store.load()
        if args.tokens_command == "set":
            store.update_tokens(_parse_pairs(args.pairs))
        elif args.tokens_command == "reset":
            store.reset_tokens()
        if store.has_pending_save and not await store.flush():
            print("Failed to save tokens.", file=sys.stderr)
            return 1
        for token in sorted(as_tokens(store.get_snapshot()), key=lambda item: (item.category, item.key)):
            print(f"{token.key}={token.value}")
        store.close()
        return 0

    if args.tokens_command not in {"show", "set", "reset"}:
        print("usage: remix tokens {show,set,reset}", file=sys.stderr)
        return 1
    return asyncio.run(_run())


def _handle_generate(args: argparse.Namespace, settings: Settings) -> int:
    return asyncio.run(_generate(args, settings))


async def _generate(args: argparse.Namespace, settings: Settings) -> int:
    gateway = RemoteGateway(
        settings.gateway_url,
        settings.gateway_token,
        anon_key=settings.gateway_anon_key,
        policy=RetryPolicy(
            max_retries=settings.max_retries,
            base_delay_s=settings.retry_base_delay_s,
            timeout_s=settings.timeout_s,
        ),
    )
    registry = default_registry(gateway, settings)
    store = _open_store(settings, args.owner)
    await store.load()
    events = EventWriter(Path(args.events), new_request_id("run")) if args.events else None
    display = ProgressDisplay()

    def _on_change(state: GenerationState) -> None:
        if state.generating and state.status:
            display.update(state.status, state.progress)

    session = GenerationSession(store, registry, events=events, on_change=_on_change)
    options = GenerationOptions(
        size=args.size,
        quality=args.quality,
        style=args.style,
        aspect_ratio=args.aspect_ratio,
        reference_image=args.reference,
        n=max(1, args.n),
        preset=args.preset,
    )
    try:
        session.start(args.prompt, args.provider, options, reasoning=args.reasoning)
        state = await session.wait()
    except asyncio.CancelledError:
        session.cancel()
        print("Generation cancelled.")
        return 130
    finally:
        store.close()
    display.finish("Generated in" if state.result else "Stopped after")

    if state.reasoning:
        print(state.reasoning)
    if state.error:
        print(f"Generation failed: {state.error}")
        return 1
    if state.result is None:
        print("Generation cancelled.")
        return 130
    for warning in state.warnings:
        print(f"warning: {warning}")
    print(f"Provider: {state.result.provider} (via {state.result.source})")
    for idx, url in enumerate(state.result.image_urls):
        if args.out and url.startswith("data:"):
            path = _write_data_url(Path(args.out), idx, url)
            print(f"Saved {path}")
        elif url.startswith("data:"):
            print(f"<inline image, {len(url)} chars; use --out to save>")
        else:
            print(url)
    return 0


def _write_data_url(out_dir: Path, idx: int, url: str) -> Path:
    header, _, payload = url.partition(",")
    mime = header[5:].split(";", 1)[0] or "image/png"
    ext = {"image/jpeg": "jpg", "image/webp": "webp"}.get(mime, "png")
    out_dir.mkdir(parents=True, exist_ok=True)
    path = out_dir / f"remix-{int(time.time() * 1000)}-{idx:02d}.{ext}"
    path.write_bytes(base64.b64decode(payload))
    return path


def main(argv: Sequence[str] | None = None) -> None:
    load_dotenv()
    parser = _build_parser()
    args = parser.parse_args(argv)
    settings = Settings.from_env()
    if args.db:
        settings.db_path = Path(args.db).expanduser()
    setup_logging(args.log_level or settings.log_level, verbose=args.verbose)
    handlers = {
        "resolve": _handle_resolve,
        "tokens": _handle_tokens,
        "generate": _handle_generate,
    }
    handler = handlers.get(args.command)
    if handler is None:
        parser.print_help()
        raise SystemExit(1)
    try:
        code = handler(args, settings)
    except KeyboardInterrupt:
        code = 130
    except RemixError as exc:
        print(user_message(exc), file=sys.stderr)
        code = 1
    raise SystemExit(code)


if __name__ == "__main__":
    main()
