"""!
@brief Windows service helpers.
@details Wraps ``sc.exe`` to query and start the client's background service.
Used by the join loop as a remediation step when a join attempt fails.
"""
from __future__ import annotations

import re

from . import exec_utils, logging_ext

_STATE_PATTERN = re.compile(r"STATE\s*:\s*\d+\s+(\w+)", re.IGNORECASE)


def query_service_state(service: str, *, timeout: int = 30) -> str | None:
    """!
    @brief Return the ``sc query`` state word (``RUNNING``, ``STOPPED`` ...).
    @returns ``None`` when the service is unknown or ``sc.exe`` is unavailable.
    """

    result = exec_utils.run_command(
        ["sc.exe", "query", service],
        event="service_query",
        timeout=timeout,
        extra={"service": service},
    )
    if result.returncode != 0 or result.error:
        return None
    match = _STATE_PATTERN.search(result.stdout)
    return match.group(1).upper() if match else None


def is_service_running(service: str) -> bool:
    return query_service_state(service) == "RUNNING"


def start_service(service: str, *, timeout: int = 30) -> bool:
    """!
    @brief Issue ``sc start`` for ``service``.
    @details Exit code ``1056`` (already running) counts as success.
    """

    human_logger = logging_ext.get_human_logger()

    result = exec_utils.run_command(
        ["sc.exe", "start", service],
        event="service_start",
        timeout=timeout,
        human_message=f"Starting service {service}",
        extra={"service": service},
    )

    if result.returncode == 127:
        human_logger.debug("sc.exe unavailable; cannot start %s", service)
        return False
    if result.timed_out:
        human_logger.warning("Timed out starting service %s", service)
        return False
    if result.returncode in (0, 1056) and not result.error:
        human_logger.info("Service %s started", service)
        return True
    human_logger.warning(
        "Service %s start returned %s: %s",
        service,
        result.returncode,
        (result.stdout or result.stderr).strip(),
    )
    return False


def ensure_service_running(service: str) -> bool:
    """!
    @brief Start ``service`` when it is not running.
    @returns ``True`` when a start was issued and accepted.
    """

    if is_service_running(service):
        return False
    logging_ext.get_human_logger().warning("Service %s is not running.", service)
    return start_service(service)


__all__ = ["ensure_service_running", "is_service_running", "query_service_state", "start_service"]
