"""Keyboard input for the interactive view.

``decode_keys`` turns raw terminal bytes into key names understood by the
presenter state: ``up``, ``down``, ``pgup``, ``pgdn``, ``home``, ``end``,
``ctrl-c``, ``escape`` and single printable characters (``q``, ``j``...).

``KeyReader`` puts stdin into cbreak mode and feeds decoded keys to a
callback from the event loop's reader hook. It does nothing when stdin is
not a terminal or on Windows.
"""

from __future__ import annotations

import asyncio
import logging
import os
import sys
from collections.abc import Callable
from typing import Any, TextIO

IS_WINDOWS = sys.platform == "win32"

if not IS_WINDOWS:
    import termios
    import tty

__all__ = ["KeyReader", "decode_keys"]

logger = logging.getLogger(__name__)

READ_SIZE = 1024

# Common xterm/vt100/rxvt variants
ESCAPE_SEQUENCES: dict[bytes, str] = {
    b"\x1b[A": "up",
    b"\x1b[B": "down",
    b"\x1b[C": "right",
    b"\x1b[D": "left",
    b"\x1bOA": "up",
    b"\x1bOB": "down",
    b"\x1bOC": "right",
    b"\x1bOD": "left",
    b"\x1b[5~": "pgup",
    b"\x1b[6~": "pgdn",
    b"\x1b[H": "home",
    b"\x1b[F": "end",
    b"\x1bOH": "home",
    b"\x1bOF": "end",
    b"\x1b[1~": "home",
    b"\x1b[4~": "end",
    b"\x1b[7~": "home",
    b"\x1b[8~": "end",
}

CONTROL_KEYS: dict[int, str] = {
    0x03: "ctrl-c",
    0x0D: "enter",
    0x0A: "enter",
}


def _csi_end(data: bytes, start: int) -> int:
    """Index just past a CSI sequence starting at ``start`` (``ESC [``)."""
    i = start + 2
    while i < len(data):
        if 0x40 <= data[i] <= 0x7E:
            return i + 1
        i += 1
    return len(data)


def decode_keys(data: bytes) -> list[str]:
    """Decode a burst of terminal input into key names.

    Unknown escape sequences are consumed whole and dropped. A lone ESC is
    reported as ``escape``.
    """
    keys: list[str] = []
    i = 0
    while i < len(data):
        byte = data[i]

        if byte == 0x1B:
            for sequence, name in ESCAPE_SEQUENCES.items():
                if data.startswith(sequence, i):
                    keys.append(name)
                    i += len(sequence)
                    break
            else:
                if data.startswith(b"\x1b[", i):
                    i = _csi_end(data, i)
                elif data.startswith(b"\x1bO", i) and i + 2 < len(data):
                    i += 3
                else:
                    keys.append("escape")
                    i += 1
            continue

        if byte in CONTROL_KEYS:
            keys.append(CONTROL_KEYS[byte])
        elif 0x20 <= byte < 0x7F:
            keys.append(chr(byte))
        i += 1

    return keys


class KeyReader:
    """Reads keys from a terminal while the context is active.

    Example:
        with KeyReader(lambda key: channel.send(KeyInput(key))):
            await render_loop()
    """

    def __init__(self, on_key: Callable[[str], Any], stream: TextIO | None = None) -> None:
        self._on_key = on_key
        self._stream = stream
        self._fd: int | None = None
        self._saved: list[Any] | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def active(self) -> bool:
        return self._fd is not None

    def __enter__(self) -> "KeyReader":
        stream = self._stream if self._stream is not None else sys.stdin
        if IS_WINDOWS or stream is None or not stream.isatty():
            logger.debug("Keyboard input disabled: stdin is not a terminal")
            return self

        fd = stream.fileno()
        try:
            self._saved = termios.tcgetattr(fd)
            tty.setcbreak(fd)
        except termios.error as e:
            logger.debug(f"Keyboard input disabled: {e}")
            self._saved = None
            return self

        self._loop = asyncio.get_running_loop()
        self._loop.add_reader(fd, self._on_readable)
        self._fd = fd
        return self

    def __exit__(self, *exc_info: object) -> None:
        if self._fd is None:
            return

        fd, self._fd = self._fd, None
        if self._loop is not None:
            self._loop.remove_reader(fd)
        if self._saved is not None:
            try:
                termios.tcsetattr(fd, termios.TCSADRAIN, self._saved)
            except termios.error as e:
                logger.warning(f"Failed to restore terminal settings: {e}")

    def _on_readable(self) -> None:
        if self._fd is None:
            return
        try:
            data = os.read(self._fd, READ_SIZE)
        except (BlockingIOError, InterruptedError):
            return
        except OSError as e:
            logger.debug(f"Keyboard read failed, detaching reader: {e}")
            if self._loop is not None:
                self._loop.remove_reader(self._fd)
            return

        for key in decode_keys(data):
            self._on_key(key)
