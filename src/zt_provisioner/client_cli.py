"""!
@brief Wrappers around the vendor CLI's query subcommands.
@details ``info`` and ``listnetworks -j`` are trusted to return quickly once the
client is installed and run through :func:`exec_utils.run_command` without a
deadline. ``join`` is driven separately by :mod:`zt_provisioner.join_loop`.
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List

from . import client_paths, exec_utils, logging_ext


def run_cli(client_path: Path | str, *args: str, event: str) -> exec_utils.CommandResult:
    """!
    @brief Invoke the CLI at ``client_path`` with ``args``.
    """

    return exec_utils.run_command(
        [*client_paths.cli_command(client_path), *args],
        event=event,
    )


def query_networks(client_path: Path | str) -> List[Dict[str, Any]] | None:
    """!
    @brief Return the parsed ``listnetworks -j`` array.
    @returns ``None`` when the command fails or its output is not a JSON array.
    """

    machine_logger = logging_ext.get_machine_logger()

    result = run_cli(client_path, "listnetworks", "-j", event="cli_listnetworks")
    if result.error or result.returncode != 0:
        return None
    try:
        payload = json.loads(result.stdout)
    except ValueError as exc:
        machine_logger.warning(
            "cli_listnetworks_unparseable",
            extra={"event": "cli_listnetworks_unparseable", "error": str(exc)},
        )
        return None
    if not isinstance(payload, list):
        return None
    return [entry for entry in payload if isinstance(entry, dict)]


def network_status(client_path: Path | str, network_id: str) -> str | None:
    """!
    @brief Return the ``status`` field for ``network_id`` (``OK``, ``ACCESS_DENIED`` ...).
    """

    networks = query_networks(client_path)
    if not networks:
        return None
    wanted = network_id.lower()
    for entry in networks:
        if str(entry.get("nwid", "")).lower() == wanted:
            status = entry.get("status")
            return str(status) if status is not None else None
    return None


__all__ = ["network_status", "query_networks", "run_cli"]
