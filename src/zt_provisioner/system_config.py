"""!
@brief Idempotent host configuration.
@details Enables IPv4 forwarding (``IPEnableRouter``) so the host can route
between the overlay network and its local networks. The value only takes
effect after a reboot, so a write raises the configuration reboot flag.
"""
from __future__ import annotations

from . import constants, logging_ext, registry_tools
from .main_state import ConfigStatus, OrchestrationState


def apply_ip_forwarding(
    state: OrchestrationState,
    *,
    root: int = constants.HKLM,
    path: str = constants.TCPIP_PARAMETERS_KEY,
    value_name: str = constants.IP_FORWARDING_VALUE,
    desired: int = constants.IP_FORWARDING_ENABLED,
) -> ConfigStatus:
    """!
    @brief Ensure ``value_name`` equals ``desired``.
    @details Already-set values are left untouched and do not raise the reboot
    flag. A failed write is reported and returned, never raised.
    """

    human_logger = logging_ext.get_human_logger()
    machine_logger = logging_ext.get_machine_logger()

    current = registry_tools.get_value(root, path, value_name)
    try:
        already = current is not None and int(current) == desired
    except (TypeError, ValueError):
        already = False

    if already:
        human_logger.info("IP forwarding is already enabled.")
        status = ConfigStatus.ALREADY_ENABLED
    else:
        try:
            registry_tools.set_dword(root, path, value_name, desired)
        except OSError as exc:
            human_logger.error("Failed to enable IP forwarding: %s", exc)
            status = ConfigStatus.FAILED
        else:
            state.reboot_required_by_config = True
            human_logger.info("IP forwarding enabled; takes effect after a reboot.")
            status = ConfigStatus.APPLIED

    machine_logger.info(
        "ip_forwarding",
        extra={
            "event": "ip_forwarding",
            "previous": current,
            "status": status.value,
        },
    )
    return status


__all__ = ["apply_ip_forwarding"]
