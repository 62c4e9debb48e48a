"""CLI progress rendering for generation sessions."""

from __future__ import annotations

import os
import shutil
import sys
import time
from typing import TextIO

_BOLD = "\x1b[1m"
_GREY = "\x1b[38;2;150;157;165m"
_RESET = "\x1b[0m"

BAR_WIDTH = 20


def progress_line(
    label: str,
    percent: int,
    start: float | None = None,
    done: bool = False,
) -> tuple[str, float]:
    now = time.monotonic()
    origin = now if start is None else start
    elapsed = max(0, int(now - origin))
    minutes = elapsed // 60
    seconds = elapsed % 60
    suffix = "done" if done else "ctrl-c to cancel"
    return f"• {_bar(percent)} {percent:3d}% {label} ({minutes}m {seconds:02d}s • {suffix})", origin


class ProgressDisplay:
    """Redraws one status line on a TTY; prints one line per status change otherwise."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self.stream = stream or sys.stdout
        self.start: float | None = None
        self._enabled = bool(getattr(self.stream, "isatty", lambda: False)())
        self._last_label: str | None = None
        self._percent = 0
        self._open = False

    def update(self, label: str, percent: int) -> None:
        percent = max(self._percent, min(100, int(percent)))
        changed = label != self._last_label
        self._percent = percent
        self._last_label = label
        line, origin = progress_line(label, percent, self.start)
        self.start = origin
        if self._enabled:
            self._write_line(f"{_BOLD}{line}{_RESET}", newline=False)
            self._open = True
        elif changed:
            self._write_line(line, newline=True)

    def finish(self, label: str = "Generated in") -> None:
        elapsed = time.monotonic() - (self.start or time.monotonic())
        width = _resolve_terminal_width(self.stream, 100)
        styled = f"{_GREY}{_separator_line(f'{label} {_format_duration(int(max(0, elapsed)))}', width)}{_RESET}"
        if self._enabled and self._open:
            self.stream.write("\r")
            self.stream.write(styled)
            self.stream.write("\033[K\n")
        else:
            self.stream.write(f"{styled}\n")
        self.stream.flush()
        self._open = False

    def _write_line(self, line: str, newline: bool) -> None:
        if not self._enabled:
            self.stream.write(f"{line}\n")
            self.stream.flush()
            return
        self.stream.write("\r")
        self.stream.write(line)
        self.stream.write("\033[K")
        if newline:
            self.stream.write("\n")
        self.stream.flush()


def _bar(percent: int) -> str:
    filled = int(BAR_WIDTH * max(0, min(100, percent)) / 100)
    return f"[{'#' * filled}{'.' * (BAR_WIDTH - filled)}]"


def _format_duration(seconds: int) -> str:
    minutes, secs = divmod(seconds, 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}h {minutes}m {secs:02d}s"
    if minutes:
        return f"{minutes}m {secs:02d}s"
    return f"{secs}s"


def _separator_line(label: str, width: int) -> str:
    content = f" {label} "
    if width <= len(content) + 2:
        return content.strip()
    remaining = width - len(content)
    left = remaining // 2
    right = remaining - left
    return f"{'─' * left}{content}{'─' * right}"


def _resolve_terminal_width(stream: TextIO | None, fallback: int) -> int:
    if stream and hasattr(stream, "fileno"):
        try:
            return os.get_terminal_size(stream.fileno()).columns
        except (OSError, ValueError, AttributeError):
            pass
    return shutil.get_terminal_size(fallback=(fallback, 20)).columns
