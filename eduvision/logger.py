"""
Console logging for EduVision Tutor.

Every line carries a wall-clock time, the seconds since start-up and a short
category tag, coloured so a busy session (chat turns, media jobs, speech,
XP awards) can be followed at a glance:

    14:02:11.532 (+   3.4s) [ API] → chat.completions.create (model: gpt-5-mini)
    14:02:13.018 (+   4.9s) [ API] ← chat.completions.create (1486ms)
    14:02:13.020 (+   4.9s) [  XP] +20 XP → 520 total, Intermediate

Usage:
    from eduvision.logger import logger

    logger.vid_poll("video_123", 4, "in_progress")
    logger.error("Video generation failed", exc_info=True)

Set EDUVISION_DEBUG=0 to silence it (the test suite does).
"""

import os
import sys
import time
import traceback
from datetime import datetime
from typing import Optional, TextIO

# Windows consoles default to a legacy code page; the log uses ✓ ✗ → glyphs.
for _stream in (sys.stdout, sys.stderr):
    if hasattr(_stream, "reconfigure"):
        _stream.reconfigure(encoding="utf-8")


class Ansi:
    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    MAGENTA = "\033[35m"
    WHITE = "\033[37m"
    LIGHT_RED = "\033[91m"
    LIGHT_GREEN = "\033[92m"
    LIGHT_YELLOW = "\033[93m"
    LIGHT_BLUE = "\033[94m"
    LIGHT_MAGENTA = "\033[95m"
    LIGHT_CYAN = "\033[96m"


def _clip(text: str, limit: int = 60) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


class DebugLogger:
    """
    Categorized colour console logger.

    ENV   .env loading, API key, model choice
    API   every backend request and response
    IMG   image generation / editing
    VID   video jobs and their polling
    TTS   speech synthesis
    UI    widget events, mode and conversation state changes
    XP    gamification awards
    TASK  background worker threads
    OK / WARN / ERR / DBG  general status
    """

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self._started = datetime.now()

    def _stamp(self) -> str:
        now = datetime.now()
        uptime = (now - self._started).total_seconds()
        return f"{now:%H:%M:%S}.{now.microsecond // 1000:03d} (+{uptime:>6.1f}s)"

    def _emit(self, tag: str, color: str, message: str, exc_info: bool = False) -> None:
        if not self.enabled:
            return

        stamp = self._stamp()
        indent = " " * (len(stamp) + 8)
        first, *rest = str(message).split("\n")
        out: TextIO = sys.stdout

        print(f"{Ansi.DIM}{stamp}{Ansi.RESET} {color}{Ansi.BOLD}[{tag:>4}]{Ansi.RESET} {first}",
              file=out, flush=True)
        for line in rest:
            print(f"{indent}{line}", file=out, flush=True)

        if exc_info:
            for line in traceback.format_exc().splitlines():
                if line.strip():
                    print(f"{indent}{Ansi.RED}{line}{Ansi.RESET}", file=sys.stderr, flush=True)

    # ENV
    def env(self, message: str, **kwargs) -> None:
        self._emit("ENV", Ansi.MAGENTA, message, **kwargs)

    def env_success(self, message: str, **kwargs) -> None:
        self._emit("ENV", Ansi.GREEN, f"✓ {message}", **kwargs)

    def env_error(self, message: str, **kwargs) -> None:
        self._emit("ENV", Ansi.RED, f"✗ {message}", **kwargs)

    # API
    def api(self, message: str, **kwargs) -> None:
        self._emit("API", Ansi.LIGHT_CYAN, message, **kwargs)

    def api_call(self, endpoint: str, model: Optional[str] = None, **kwargs) -> None:
        suffix = f" (model: {model})" if model else ""
        self._emit("API", Ansi.LIGHT_CYAN, f"→ {endpoint}{suffix}", **kwargs)

    def api_response(self, endpoint: str, duration_ms: Optional[float] = None, **kwargs) -> None:
        suffix = f" ({duration_ms:.0f}ms)" if duration_ms else ""
        self._emit("API", Ansi.LIGHT_CYAN, f"← {endpoint}{suffix}", **kwargs)

    def api_error(self, message: str, **kwargs) -> None:
        self._emit("API", Ansi.LIGHT_RED, f"✗ {message}", **kwargs)

    # Media
    def img(self, message: str, **kwargs) -> None:
        self._emit("IMG", Ansi.YELLOW, message, **kwargs)

    def img_start(self, prompt: str, **kwargs) -> None:
        self._emit("IMG", Ansi.YELLOW, f"→ Generating: \"{_clip(prompt)}\"", **kwargs)

    def img_error(self, message: str, **kwargs) -> None:
        self._emit("IMG", Ansi.LIGHT_RED, f"✗ {message}", **kwargs)

    def vid(self, message: str, **kwargs) -> None:
        self._emit("VID", Ansi.LIGHT_MAGENTA, message, **kwargs)

    def vid_poll(self, job_id: str, attempt: int, status: str, **kwargs) -> None:
        self._emit("VID", Ansi.DIM, f"{job_id} check #{attempt}: {status}", **kwargs)

    def tts(self, message: str, **kwargs) -> None:
        self._emit("TTS", Ansi.BLUE, message, **kwargs)

    # UI / state
    def ui(self, message: str, **kwargs) -> None:
        self._emit("UI", Ansi.BLUE, message, **kwargs)

    def ui_transition(self, from_state: str, to_state: str, **kwargs) -> None:
        self._emit("UI", Ansi.LIGHT_BLUE, f"{from_state} → {to_state}", **kwargs)

    def xp(self, message: str, **kwargs) -> None:
        self._emit("XP", Ansi.LIGHT_YELLOW, message, **kwargs)

    # Worker threads
    def task_start(self, task_name: str, **kwargs) -> None:
        self._emit("TASK", Ansi.WHITE, f"▶ {task_name}", **kwargs)

    def task_complete(self, task_name: str, duration_ms: Optional[float] = None, **kwargs) -> None:
        suffix = f" in {duration_ms:.0f}ms" if duration_ms else ""
        self._emit("TASK", Ansi.LIGHT_GREEN, f"✓ {task_name} done{suffix}", **kwargs)

    def task_error(self, task_name: str, error: str, **kwargs) -> None:
        self._emit("TASK", Ansi.LIGHT_RED, f"✗ {task_name}: {error}", **kwargs)

    # Status
    def success(self, message: str, **kwargs) -> None:
        self._emit("OK", Ansi.LIGHT_GREEN, f"✓ {message}", **kwargs)

    def warning(self, message: str, **kwargs) -> None:
        self._emit("WARN", Ansi.LIGHT_YELLOW, f"⚠ {message}", **kwargs)

    def error(self, message: str, **kwargs) -> None:
        self._emit("ERR", Ansi.LIGHT_RED, f"✗ {message}", **kwargs)

    def debug(self, message: str, **kwargs) -> None:
        self._emit("DBG", Ansi.DIM, message, **kwargs)

    # Layout
    def separator(self, title: Optional[str] = None) -> None:
        """Blank-line-padded rule between conversation turns."""
        if not self.enabled:
            return
        rule = f"{'─' * 16} {title} {'─' * 16}" if title else "─" * 50
        print(f"\n{Ansi.DIM}{rule}{Ansi.RESET}", flush=True)

    def banner(self, text: str) -> None:
        if not self.enabled:
            return
        width = max(50, len(text) + 6)
        print(f"\n{Ansi.LIGHT_CYAN}{'═' * width}", flush=True)
        print(f"{Ansi.BOLD}{text.center(width)}{Ansi.RESET}", flush=True)
        print(f"{Ansi.LIGHT_CYAN}{'═' * width}{Ansi.RESET}\n", flush=True)


logger = DebugLogger(enabled=os.getenv("EDUVISION_DEBUG", "1") != "0")


class Timer:
    """Measures a `with` block; duration_ms is set on exit."""

    def __init__(self):
        self.duration_ms: float = 0.0
        self._start: Optional[float] = None

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, *exc) -> None:
        self.duration_ms = (time.perf_counter() - self._start) * 1000
