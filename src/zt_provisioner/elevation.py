"""!
@brief Elevation helpers.
@details Installing the client, writing ``HKLM`` and restarting the host all
need administrative rights. These helpers detect the current token and relaunch
the interpreter through the UAC ``runas`` verb when required.
"""
from __future__ import annotations

import ctypes
import os
import subprocess
import sys
from typing import Sequence


def is_admin() -> bool:
    """!
    @brief Determine whether the current process token has administrative rights.
    """

    if os.name != "nt":
        geteuid = getattr(os, "geteuid", None)
        return bool(callable(geteuid) and geteuid() == 0)
    try:
        shell32 = ctypes.windll.shell32  # type: ignore[attr-defined]
        return bool(shell32.IsUserAnAdmin())
    except (AttributeError, OSError):
        return False


def relaunch_as_admin(argv: Sequence[str] | None = None) -> bool:
    """!
    @brief Relaunch the current interpreter with administrative rights.
    @returns ``True`` when the relaunch request was issued successfully.
    """

    if os.name != "nt":
        return False
    try:
        shell32 = ctypes.windll.shell32  # type: ignore[attr-defined]
    except AttributeError:
        return False

    arguments = list(argv) if argv is not None else list(sys.argv)
    if getattr(sys, "frozen", False):
        params = subprocess.list2cmdline(arguments[1:])
    else:
        params = subprocess.list2cmdline(["-m", "zt_provisioner.main", *arguments[1:]])
    result = shell32.ShellExecuteW(None, "runas", sys.executable, params, None, 1)
    return int(result) > 32


__all__ = ["is_admin", "relaunch_as_admin"]
