"""!
@brief Network join loop.
@details Prompts for a 16-hex-digit network ID, runs ``<cli> join <id>`` under a
hard deadline, and classifies the combined output. The loop states are:

- await input: read and validate an ID; invalid input re-prompts;
- joining: one bounded ``join`` call via :func:`exec_utils.run_bounded`;
- joined: terminal, the ID is returned;
- retry: report the failure, restart the service if it is down, await input.

With ``max_attempts=None`` the loop only ends on success, which suits an
operator at the console. Unattended runs pass ``max_attempts`` (every prompt
cycle counts) and get ``None`` back once the attempts are exhausted.
"""
from __future__ import annotations

import enum
import os
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from . import client_paths, constants, exec_utils, logging_ext, services

NETWORK_ID_PATTERN = re.compile(r"^[0-9a-fA-F]{%d}$" % constants.NETWORK_ID_LENGTH)

NETWORK_ID_PROMPT = "Enter the 16-character ZeroTier network ID: "

_INVALID_ID_PATTERN = re.compile(r"invalid\s+network\s+id", re.IGNORECASE)
_DENIED_PATTERN = re.compile(r"access\s*denied|access_denied|\b40[13]\b", re.IGNORECASE)


class JoinOutcome(enum.Enum):
    JOINED = "joined"
    INVALID_ID = "invalid-id"
    DENIED = "denied"
    UNKNOWN = "unknown"
    TIMED_OUT = "timed-out"


@dataclass(frozen=True)
class JoinAttemptResult:
    """!
    @brief Output and classification of one ``join`` invocation.
    """

    raw_output: str
    outcome: JoinOutcome


def validate_network_id(raw: str) -> str | None:
    """!
    @brief Return the trimmed network ID when it is exactly 16 hex characters.
    """

    candidate = raw.strip()
    if NETWORK_ID_PATTERN.match(candidate):
        return candidate
    return None


def classify_join_output(text: str) -> JoinOutcome:
    """!
    @brief Classify combined ``join`` output.
    @details The success token wins over any surrounding noise. The remaining
    categories are best-effort substring matches.
    """

    if constants.JOIN_SUCCESS_TOKEN in text:
        return JoinOutcome.JOINED
    if _INVALID_ID_PATTERN.search(text):
        return JoinOutcome.INVALID_ID
    if _DENIED_PATTERN.search(text):
        return JoinOutcome.DENIED
    return JoinOutcome.UNKNOWN


def attempt_join(
    client_path: Path | str,
    network_id: str,
    *,
    timeout: float = constants.JOIN_TIMEOUT,
) -> JoinAttemptResult:
    """!
    @brief Run one ``join`` under ``timeout`` seconds.
    @details Output lines are rejoined with :data:`os.linesep`. On timeout the
    process has already been killed by :func:`exec_utils.run_bounded` and no
    output is kept.
    """

    result = exec_utils.run_bounded(
        [*client_paths.cli_command(client_path), "join", network_id],
        event="cli_join",
        timeout=timeout,
        human_message=f"Joining network {network_id}",
        extra={"network_id": network_id},
    )
    if result.timed_out:
        return JoinAttemptResult(raw_output="", outcome=JoinOutcome.TIMED_OUT)

    raw_output = os.linesep.join(result.stdout.splitlines())
    if result.error and not raw_output:
        raw_output = result.error
    return JoinAttemptResult(raw_output=raw_output, outcome=classify_join_output(raw_output))


def _report_failure(network_id: str, result: JoinAttemptResult, timeout: float) -> None:
    human_logger = logging_ext.get_human_logger()

    if result.outcome is JoinOutcome.TIMED_OUT:
        human_logger.warning(
            "Join of %s did not finish within %.0f seconds; the command was terminated.",
            network_id,
            timeout,
        )
    elif result.outcome is JoinOutcome.INVALID_ID:
        human_logger.warning("The client rejected %s as an invalid network ID.", network_id)
    elif result.outcome is JoinOutcome.DENIED:
        human_logger.warning("Join of %s was refused: %s", network_id, result.raw_output.strip())
    else:
        human_logger.warning(
            "Join of %s did not succeed. Client output: %s",
            network_id,
            result.raw_output.strip() or "(none)",
        )


def join_network(
    client_path: Path | str,
    *,
    input_func: Callable[[str], str] = input,
    service_name: str = constants.SERVICE_NAME,
    timeout: float = constants.JOIN_TIMEOUT,
    max_attempts: int | None = None,
    retry_delay: float = 0.0,
    service_settle: float = constants.SERVICE_START_SETTLE,
    preset_network_id: str | None = None,
) -> str | None:
    """!
    @brief Drive the join handshake until it succeeds or attempts run out.
    @param client_path CLI location.
    @param input_func Prompt function used when no preset ID is given.
    @param service_name Service restarted when a join fails and it is down.
    @param timeout Per-attempt deadline in seconds.
    @param max_attempts ``None`` for the unbounded interactive loop.
    @param retry_delay Pause between failed attempts when bounded.
    @param service_settle Pause after restarting the service.
    @param preset_network_id Use this ID instead of prompting.
    @returns The joined network ID, or ``None`` when attempts were exhausted.
    """

    human_logger = logging_ext.get_human_logger()
    machine_logger = logging_ext.get_machine_logger()

    def read_input() -> str:
        if preset_network_id is not None:
            return preset_network_id
        return input_func(NETWORK_ID_PROMPT)

    attempt = 0
    while max_attempts is None or attempt < max_attempts:
        attempt += 1
        raw = read_input()
        network_id = validate_network_id(raw)
        if network_id is None:
            human_logger.warning(
                "Invalid network ID: raw %r, trimmed %r. Expected %d hexadecimal characters.",
                raw,
                raw.strip(),
                constants.NETWORK_ID_LENGTH,
            )
            continue

        result = attempt_join(client_path, network_id, timeout=timeout)
        machine_logger.info(
            "join_attempt",
            extra={
                "event": "join_attempt",
                "attempt": attempt,
                "max_attempts": max_attempts,
                "network_id": network_id,
                "outcome": result.outcome.value,
            },
        )

        if result.outcome is JoinOutcome.JOINED:
            human_logger.info("Joined network %s.", network_id)
            return network_id

        _report_failure(network_id, result, timeout)

        if result.outcome is not JoinOutcome.TIMED_OUT:
            if services.ensure_service_running(service_name) and service_settle > 0:
                time.sleep(service_settle)

        if max_attempts is not None and retry_delay > 0 and attempt < max_attempts:
            time.sleep(retry_delay)

    human_logger.error("Giving up after %d join attempt(s).", attempt)
    machine_logger.error(
        "join_exhausted",
        extra={"event": "join_exhausted", "attempts": attempt},
    )
    return None


__all__ = [
    "JoinAttemptResult",
    "JoinOutcome",
    "NETWORK_ID_PATTERN",
    "attempt_join",
    "classify_join_output",
    "join_network",
    "validate_network_id",
]
