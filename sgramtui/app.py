"""Full-screen terminal viewer loop."""

from __future__ import annotations

import logging
import os
import select
import sys
import time

from rich.console import Console
from rich.live import Live

from sgramlib.pipeline import Pipeline
from sgramlib.session import FLOOR_STEP, ZOOM_STEP, Session

from .log import dbg
from .render import build_display

log = logging.getLogger(__name__)

ESC = "\x1b"

# Escape sequences the viewer understands; anything else starting with ESC
# is skipped
_SEQUENCES = {
    "\x1bOP": "f1",
    "\x1b[11~": "f1",
}


def parse_keys(buffer: str) -> tuple[list[str], str]:
    """Split raw terminal input into key names.

    Printable characters map to themselves; Esc, Enter, Backspace and F1
    map to ``"esc"``, ``"enter"``, ``"backspace"`` and ``"f1"``.  Returns
    ``(keys, rest)`` where *rest* is an incomplete escape sequence to be
    completed by the next read.
    """
    keys: list[str] = []
    while buffer:
        ch = buffer[0]
        if ch == ESC:
            if len(buffer) == 1:
                keys.append("esc")
                buffer = ""
                break
            for seq, name in _SEQUENCES.items():
                if buffer.startswith(seq):
                    keys.append(name)
                    buffer = buffer[len(seq):]
                    break
            else:
                if buffer[1] in "[O":
                    # CSI / SS3: skip through the final byte
                    end = 2
                    while end < len(buffer) and not ("@" <= buffer[end] <= "~"):
                        end += 1
                    if end >= len(buffer):
                        break
                    buffer = buffer[end + 1:]
                else:
                    keys.append("esc")
                    buffer = buffer[1:]
            continue
        if ch in ("\r", "\n"):
            keys.append("enter")
        elif ch in ("\x7f", "\x08"):
            keys.append("backspace")
        elif ch.isprintable():
            keys.append(ch)
        buffer = buffer[1:]
    return keys, buffer


class Viewer:
    """Drives a :class:`Session` from the keyboard and draws it with rich."""

    def __init__(self, session: Session, pipeline: Pipeline | None = None,
                 console: Console | None = None):
        self.session = session
        self.pipeline = pipeline
        self.console = console or Console()
        self.prompt_kind: str | None = None
        self.prompt_input = ""
        self.message: str | None = None

    # -- keys ----------------------------------------------------------------

    @property
    def prompt(self) -> str | None:
        if self.prompt_kind is None:
            return None
        return f"{self.prompt_kind.upper()} path: {self.prompt_input}"

    def handle_key(self, key: str) -> None:
        if self.prompt_kind is not None:
            self._handle_prompt_key(key)
            return

        s = self.session
        if key in ("q", "esc"):
            s.quit()
        elif key == "p":
            s.toggle_pause()
        elif key == "a":
            s.toggle_style()
        elif key in ("+", "="):
            s.adjust_zoom(ZOOM_STEP)
        elif key == "-":
            s.adjust_zoom(-ZOOM_STEP)
        elif key == "[":
            s.adjust_floor(-FLOOR_STEP)
        elif key == "]":
            s.adjust_floor(FLOOR_STEP)
        elif key == "c":
            s.next_palette()
            self.message = f"palette: {s.palette}"
        elif key == "C":
            s.prev_palette()
            self.message = f"palette: {s.palette}"
        elif key == "s":
            self.export("png")
        elif key == "w":
            self.export("csv")
        elif key in ("S", "W"):
            self.prompt_kind = "png" if key == "S" else "csv"
            self.prompt_input = ""
            dbg("Prompt opened for %s path", self.prompt_kind)
        elif key == "f":
            s.toggle_fullscreen()
        elif key == "d":
            s.toggle_details()
        elif key == "o":
            s.toggle_overview()
        elif key in ("h", "f1"):
            s.toggle_help()

    def _handle_prompt_key(self, key: str) -> None:
        if key == "esc":
            self.prompt_kind = None
        elif key == "enter":
            kind, path = self.prompt_kind, self.prompt_input.strip()
            self.prompt_kind = None
            self.export(kind, path or None)
        elif key == "backspace":
            self.prompt_input = self.prompt_input[:-1]
        elif len(key) == 1:
            self.prompt_input += key

    def export(self, kind: str, path: str | None = None) -> None:
        """Save the history; the outcome is shown in the status panel."""
        try:
            if kind == "png":
                written = self.session.save_png(path)
            else:
                written = self.session.save_csv(path)
        except (OSError, ImportError) as e:
            log.warning("%s export failed: %s", kind.upper(), e)
            self.message = f"Save failed: {e}"
            return
        if written is None:
            self.message = "Nothing to save yet"
        else:
            self.message = f"Saved {written}"
        dbg(self.message)

    # -- loop ----------------------------------------------------------------

    def _frame(self):
        size = self.console.size
        return build_display(self.session, size.width, size.height,
                             prompt=self.prompt, message=self.message)

    def run(self) -> None:
        """Run until quit; always stops the pipeline and restores the tty."""
        import termios
        import tty

        fd = sys.stdin.fileno()
        old_settings = termios.tcgetattr(fd)
        session = self.session
        interval = session.tick_interval
        pending = ""
        try:
            tty.setcbreak(fd)
            with Live(self._frame(), console=self.console, screen=True,
                      auto_refresh=False) as live:
                last_tick = time.monotonic()
                while session.running:
                    live.update(self._frame(), refresh=True)

                    timeout = max(interval - (time.monotonic() - last_tick), 0.0)
                    readable, _, _ = select.select([sys.stdin], [], [], timeout)
                    if readable:
                        chunk = os.read(fd, 64)
                        if chunk:
                            keys, pending = parse_keys(
                                pending + chunk.decode("utf-8", errors="ignore"))
                            for key in keys:
                                self.handle_key(key)

                    now = time.monotonic()
                    if now - last_tick >= interval:
                        session.tick(now)
                        last_tick = now
        finally:
            termios.tcsetattr(fd, termios.TCSADRAIN, old_settings)
            if self.pipeline is not None:
                self.pipeline.stop()
