"""!
@brief Resolve the local node's 10-hex-digit identity.
@details ``<cli> info`` is tried first; when its output does not carry the
``200 info <id>`` line, ``listnetworks -j`` is scanned for an interface-name
field shaped like a node ID. Failure is a degraded result, not an error.
"""
from __future__ import annotations

import re
import time
from pathlib import Path
from typing import Any, Iterable, Mapping

from . import client_cli, constants, logging_ext

INFO_PATTERN = re.compile(r"200 info ([0-9a-fA-F]{%d})\b" % constants.NODE_ID_LENGTH)
NODE_ID_PATTERN = re.compile(
    r"(?<![0-9a-fA-F])([0-9a-fA-F]{%d})(?![0-9a-fA-F])" % constants.NODE_ID_LENGTH
)

INTERFACE_FIELDS = ("portDeviceName", "interfaceName", "dev")


def parse_info_output(text: str) -> str | None:
    match = INFO_PATTERN.search(text)
    return match.group(1).lower() if match else None


def node_id_from_networks(networks: Iterable[Mapping[str, Any]]) -> str | None:
    """!
    @brief Scan network entries for an interface name carrying a node ID.
    """

    for entry in networks:
        for field in INTERFACE_FIELDS:
            value = entry.get(field)
            if not value:
                continue
            match = NODE_ID_PATTERN.search(str(value))
            if match:
                return match.group(1).lower()
    return None


def resolve_node_id(
    client_path: Path | str,
    *,
    settle_delay: float = constants.NODE_SETTLE_DELAY,
) -> str:
    """!
    @brief Return the node ID or :data:`constants.UNKNOWN_NODE_ID`.
    """

    human_logger = logging_ext.get_human_logger()

    if settle_delay > 0:
        time.sleep(settle_delay)

    result = client_cli.run_cli(client_path, "info", event="cli_info")
    node_id = parse_info_output(result.stdout) if not result.error else None
    if node_id:
        return node_id

    human_logger.debug("info output not parseable; falling back to listnetworks")
    networks = client_cli.query_networks(client_path)
    if networks:
        node_id = node_id_from_networks(networks)
        if node_id:
            return node_id

    human_logger.warning("Could not determine the ZeroTier node ID.")
    return constants.UNKNOWN_NODE_ID


__all__ = ["node_id_from_networks", "parse_info_output", "resolve_node_id"]
