"""!
@file main_state.py
@brief Orchestration state for a single provisioning run.
@details One :class:`OrchestrationState` is created per run and threaded
through the orchestrator; leaf modules receive it explicitly and write only
their own fields.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from pathlib import Path

from . import constants

__all__ = ["ConfigStatus", "OrchestrationState"]


class ConfigStatus(str, enum.Enum):
    """!
    @brief Outcome of the IP forwarding configuration step.
    """

    NOT_RUN = "Not run"
    ALREADY_ENABLED = "Already enabled"
    APPLIED = "Applied"
    FAILED = "Configuration failed"


@dataclass
class OrchestrationState:
    """!
    @brief Mutable run state; touched only by the orchestrating thread.
    """

    client_path: Path | None = None
    reboot_required_by_install: bool = False
    reboot_required_by_config: bool = False
    crashed: bool = False
    network_id: str | None = None
    node_id: str = constants.UNKNOWN_NODE_ID
    config_status: ConfigStatus = ConfigStatus.NOT_RUN
    access_denied: bool = False
    fatal_error: str | None = None

    @property
    def reboot_required(self) -> bool:
        return self.reboot_required_by_install or self.reboot_required_by_config

    def to_dict(self) -> dict[str, object]:
        return {
            "client_path": str(self.client_path) if self.client_path else None,
            "reboot_required_by_install": self.reboot_required_by_install,
            "reboot_required_by_config": self.reboot_required_by_config,
            "crashed": self.crashed,
            "network_id": self.network_id,
            "node_id": self.node_id,
            "config_status": self.config_status.value,
            "access_denied": self.access_denied,
            "fatal_error": self.fatal_error,
        }
