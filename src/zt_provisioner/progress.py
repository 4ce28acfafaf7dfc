"""!
@file progress.py
@brief Init-style step output for the operator console.
@details Each provisioning step prints a timestamped line followed by
``[  OK  ]``, ``[FAILED]`` or ``[ SKIP ]``. Output goes straight to stdout and
never through the log handlers.
"""

from __future__ import annotations

import ctypes
import os
import time

__all__ = [
    "enable_vt_mode_if_possible",
    "get_elapsed_secs",
    "progress",
    "progress_fail",
    "progress_ok",
    "progress_skip",
    "set_start_time",
]

_START_TIME: float = time.perf_counter()

_OK = "[  \033[32mOK\033[0m  ]"
_FAILED = "[\033[31mFAILED\033[0m]"
_SKIP = "[ \033[33mSKIP\033[0m ]"


def set_start_time(start_time: float) -> None:
    global _START_TIME
    _START_TIME = start_time


def get_elapsed_secs() -> float:
    return time.perf_counter() - _START_TIME


def progress(message: str, *, indent: int = 0) -> None:
    """!
    @brief Print a timestamped step line.
    @param message Step description.
    @param indent Indentation level (each level adds 2 spaces).
    """

    prefix = "  " * indent
    print(f"[{get_elapsed_secs():12.6f}] {prefix}{message}", flush=True)


def _status(marker: str, detail: str | None) -> None:
    suffix = f" ({detail})" if detail else ""
    print(f"[{get_elapsed_secs():12.6f}]  {marker}{suffix}", flush=True)


def progress_ok(detail: str | None = None) -> None:
    _status(_OK, detail)


def progress_fail(reason: str | None = None) -> None:
    _status(_FAILED, reason)


def progress_skip(reason: str | None = None) -> None:
    _status(_SKIP, reason)


def enable_vt_mode_if_possible() -> None:
    """!
    @brief Attempt to enable ANSI/VT processing on Windows consoles.
    @details Failures are ignored; the status markers then print with raw
    escape codes.
    """

    if os.name != "nt":  # pragma: no cover - Windows behaviour only
        return

    try:
        from ctypes import wintypes

        kernel32 = ctypes.windll.kernel32  # type: ignore[attr-defined]
    except (ImportError, AttributeError, OSError):  # pragma: no cover - non-Windows
        return

    for std_handle in (-11, -12):  # STD_OUTPUT_HANDLE, STD_ERROR_HANDLE
        handle = kernel32.GetStdHandle(std_handle)
        if not handle:
            continue
        mode = wintypes.DWORD()
        if kernel32.GetConsoleMode(handle, ctypes.byref(mode)):
            kernel32.SetConsoleMode(handle, mode.value | 0x0004)
