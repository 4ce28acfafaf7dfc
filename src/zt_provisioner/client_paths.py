"""!
@brief Discovery of the vendor CLI on disk.
@details The candidate list is recomputed on every call: the primary install
location, the alternate-architecture location, then paths derived from the
installed service's ``ImagePath``. The service daemon doubles as the CLI when
invoked with ``-q``, which is how :func:`cli_command` treats a non-``.bat``
candidate.
"""
from __future__ import annotations

import os
import shlex
from pathlib import Path
from typing import List

from . import constants, logging_ext, registry_tools

DAEMON_QUERY_FLAG = "-q"


def _program_files_dirs() -> List[Path]:
    dirs: List[Path] = []
    for variable in ("ProgramFiles(x86)", "ProgramFiles"):
        value = os.environ.get(variable)
        if value and Path(value) not in dirs:
            dirs.append(Path(value))
    if not dirs:
        dirs.extend([Path(r"C:\Program Files (x86)"), Path(r"C:\Program Files")])
    return dirs


def service_executable() -> Path | None:
    """!
    @brief Return the executable registered for the client service, if any.
    """

    raw = registry_tools.get_value(constants.HKLM, constants.SERVICE_KEY, "ImagePath")
    if not raw:
        return None
    text = os.path.expandvars(str(raw).strip())
    try:
        parts = shlex.split(text, posix=False)
    except ValueError:
        parts = [text]
    if not parts:
        return None
    return Path(parts[0].strip('"'))


def candidate_paths() -> List[Path]:
    """!
    @brief Ordered CLI locations, highest priority first.
    """

    candidates = [
        base / constants.CLIENT_INSTALL_SUBDIR / constants.CLIENT_EXECUTABLE_NAME
        for base in _program_files_dirs()
    ]
    daemon = service_executable()
    if daemon is not None:
        candidates.append(daemon.parent / constants.CLIENT_EXECUTABLE_NAME)
        candidates.append(daemon)
    return candidates


def resolve_client_path() -> Path | None:
    """!
    @brief Return the first candidate that exists on disk.
    """

    human_logger = logging_ext.get_human_logger()
    machine_logger = logging_ext.get_machine_logger()

    candidates = candidate_paths()
    for candidate in candidates:
        try:
            if candidate.is_file():
                machine_logger.info(
                    "client_path_resolved",
                    extra={"event": "client_path_resolved", "path": str(candidate)},
                )
                return candidate
        except OSError:
            continue

    human_logger.debug("No client CLI found among %s", ", ".join(str(c) for c in candidates))
    machine_logger.warning(
        "client_path_missing",
        extra={"event": "client_path_missing", "candidates": [str(c) for c in candidates]},
    )
    return None


def cli_command(client_path: Path | str) -> List[str]:
    """!
    @brief Command prefix used to invoke the CLI found at ``client_path``.
    """

    path = Path(client_path)
    if path.suffix.lower() in (".bat", ".cmd") or path.name.startswith("zerotier-cli"):
        return [str(path)]
    return [str(path), DAEMON_QUERY_FLAG]


__all__ = ["candidate_paths", "cli_command", "resolve_client_path", "service_executable"]
