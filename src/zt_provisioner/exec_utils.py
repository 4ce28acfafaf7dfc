"""!
@brief Subprocess execution helpers with sanitised environments.
@details Centralises invocation of external programs (``msiexec``, ``sc``, the
vendor CLI) so callers inherit consistent telemetry and environment handling.
:func:`run_command` wraps :func:`subprocess.run` for calls that are trusted to
terminate. :func:`run_bounded` owns a deadline for calls that may hang: it
captures combined output and guarantees the child is killed and reaped before
control returns.
"""

from __future__ import annotations

import os
import subprocess
import time
from collections.abc import Mapping, MutableMapping, Sequence
from dataclasses import dataclass

from . import logging_ext

_SANITIZE_BLOCKLIST = {
    "PYTHONPATH",
    "PYTHONHOME",
    "PYTHONWARNINGS",
    "VIRTUAL_ENV",
    "PIP_REQUIRE_VIRTUALENV",
    "CONDA_PREFIX",
    "CONDA_DEFAULT_ENV",
    "PYENV_VERSION",
    "POETRY_ACTIVE",
    "__PYVENV_LAUNCHER__",
}

_REAP_TIMEOUT = 5.0
"""!
@brief Seconds to wait for pipes to drain after a forced kill.
"""


@dataclass
class CommandResult:
    """!
    @brief Outcome information from :func:`run_command` and :func:`run_bounded`.
    @details ``timed_out`` is ``True`` when the deadline elapsed and the process
    was killed; ``stdout`` is empty in that case. ``error`` carries launch
    failures (``returncode`` 127 for a missing executable).
    """

    command: Sequence[str]
    returncode: int
    stdout: str
    stderr: str
    duration: float
    timed_out: bool = False
    error: str | None = None


def _build_call_payload(
    command_list: Sequence[str],
    *,
    timeout: float | int | None,
    extra: Mapping[str, object] | None,
) -> MutableMapping[str, object]:
    payload: MutableMapping[str, object] = {
        "command": list(command_list),
        "timeout": timeout,
    }
    if extra:
        for key, value in extra.items():
            if key not in {"event", "result"}:
                payload[key] = value
    return payload


def _build_result_payload(
    *,
    return_code: int,
    duration: float,
    stdout: str,
    stderr: str,
    error: str | None = None,
    timed_out: bool = False,
) -> dict[str, object]:
    return {
        "rc": return_code,
        "duration_ms": round(duration * 1000, 3),
        "stdout": stdout,
        "stderr": stderr,
        "error": error,
        "timed_out": timed_out,
    }


def sanitize_environment(base_env: Mapping[str, str] | None = None) -> MutableMapping[str, str]:
    """!
    @brief Produce a subprocess environment stripped of virtualenv artefacts.
    @details ``base_env`` defaults to :data:`os.environ`. Sanitisation removes
    variables that commonly interfere with child processes, especially when the
    application is frozen into an executable.
    @param base_env Source mapping to copy prior to sanitisation.
    @returns Mutable mapping ready for subprocess invocation.
    """

    source = os.environ if base_env is None else base_env
    environment: MutableMapping[str, str] = {
        str(k): str(v) for k, v in source.items() if v is not None
    }

    for key in _SANITIZE_BLOCKLIST:
        environment.pop(key, None)

    return environment


def _log_failure(
    event: str,
    suffix: str,
    command_list: Sequence[str],
    *,
    timeout: float | int | None,
    extra: Mapping[str, object] | None,
    return_code: int,
    duration: float,
    error: str,
    timed_out: bool = False,
) -> None:
    machine_logger = logging_ext.get_machine_logger()
    machine_logger.error(
        f"{event}_{suffix}",
        extra={
            "event": f"{event}_{suffix}",
            "call": _build_call_payload(command_list, timeout=timeout, extra=extra),
            "result": _build_result_payload(
                return_code=return_code,
                duration=duration,
                stdout="",
                stderr="",
                error=error,
                timed_out=timed_out,
            ),
        },
    )


def run_command(
    command: Sequence[str] | str,
    *,
    event: str,
    timeout: int | float | None = None,
    human_message: str | None = None,
    extra: Mapping[str, object] | None = None,
) -> CommandResult:
    """!
    @brief Execute ``command`` with consistent logging and environment hygiene.
    @details Emits ``*_plan`` and ``*_result`` machine-log events (or
    ``*_missing``/``*_timeout``/``*_error`` on failure) and logs the optional
    human message. Launch failures are returned as results, never raised.
    @param command Sequence of command arguments.
    @param event Base name for structured log events.
    @param timeout Optional timeout (seconds) passed to :func:`subprocess.run`.
    @param human_message Optional message emitted to the human logger before
    execution.
    @param extra Additional metadata merged into machine log payloads.
    @returns :class:`CommandResult` describing the observed outcome.
    """

    human_logger = logging_ext.get_human_logger()
    machine_logger = logging_ext.get_machine_logger()

    if isinstance(command, str):
        command_list = [command]
    else:
        command_list = [str(part) for part in command]

    machine_logger.info(
        f"{event}_plan",
        extra={
            "event": f"{event}_plan",
            "call": _build_call_payload(command_list, timeout=timeout, extra=extra),
        },
    )

    if human_message:
        human_logger.info(human_message)

    sanitized_env = sanitize_environment()

    start = time.monotonic()
    try:
        completed = subprocess.run(  # noqa: S603 - intentional command execution
            command_list,
            capture_output=True,
            text=True,
            errors="replace",
            timeout=timeout,
            check=False,
            env=sanitized_env,
        )
    except FileNotFoundError as exc:
        duration = time.monotonic() - start
        human_logger.error("Command not found: %s", command_list[0])
        _log_failure(
            event,
            "missing",
            command_list,
            timeout=timeout,
            extra=extra,
            return_code=127,
            duration=duration,
            error=str(exc),
        )
        return CommandResult(
            command=command_list,
            returncode=127,
            stdout="",
            stderr="",
            duration=duration,
            error=str(exc),
        )
    except subprocess.TimeoutExpired:
        duration = time.monotonic() - start
        human_logger.error("Command timed out after %.1fs: %s", duration, command_list[0])
        _log_failure(
            event,
            "timeout",
            command_list,
            timeout=timeout,
            extra=extra,
            return_code=1,
            duration=duration,
            error="timeout",
            timed_out=True,
        )
        return CommandResult(
            command=command_list,
            returncode=1,
            stdout="",
            stderr="",
            duration=duration,
            timed_out=True,
            error="timeout",
        )
    except OSError as exc:
        duration = time.monotonic() - start
        human_logger.error("Failed to execute %s: %s", command_list[0], exc)
        _log_failure(
            event,
            "error",
            command_list,
            timeout=timeout,
            extra=extra,
            return_code=1,
            duration=duration,
            error=str(exc),
        )
        return CommandResult(
            command=command_list,
            returncode=1,
            stdout="",
            stderr="",
            duration=duration,
            error=str(exc),
        )

    duration = time.monotonic() - start
    machine_logger.info(
        f"{event}_result",
        extra={
            "event": f"{event}_result",
            "call": _build_call_payload(command_list, timeout=timeout, extra=extra),
            "result": _build_result_payload(
                return_code=completed.returncode,
                duration=duration,
                stdout=str(completed.stdout),
                stderr=str(completed.stderr),
            ),
        },
    )

    if completed.returncode != 0:
        human_logger.debug("Command %s exited with %s", command_list[0], completed.returncode)

    return CommandResult(
        command=command_list,
        returncode=completed.returncode,
        stdout=completed.stdout or "",
        stderr=completed.stderr or "",
        duration=duration,
    )


def _kill_process_tree(process: subprocess.Popen) -> None:
    """!
    @brief Forcibly terminate ``process`` and, on Windows, its children.
    @details ``.bat`` wrappers run under ``cmd.exe``; killing only the shell
    leaves the real client holding the output pipe open, so the whole tree is
    taken down with ``taskkill /T``.
    """

    if os.name == "nt":
        try:
            subprocess.run(  # noqa: S603 - fixed system utility
                ["taskkill.exe", "/PID", str(process.pid), "/T", "/F"],
                capture_output=True,
                timeout=_REAP_TIMEOUT,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired):
            pass
    if process.poll() is None:
        process.kill()


def run_bounded(
    command: Sequence[str],
    *,
    event: str,
    timeout: float,
    human_message: str | None = None,
    extra: Mapping[str, object] | None = None,
) -> CommandResult:
    """!
    @brief Run ``command`` under a hard deadline with combined output capture.
    @details ``stderr`` is merged into ``stdout``. The calling thread blocks in
    :meth:`subprocess.Popen.communicate` until the process exits or ``timeout``
    elapses. On expiry the process tree is killed and reaped inside the
    ``Popen`` context, so no child or pipe outlives this call. Output captured
    before the kill is discarded.
    @param command Command sequence to execute.
    @param event Base event identifier recorded in machine logs.
    @param timeout Deadline in seconds.
    @param human_message Optional message logged before execution.
    @param extra Mapping merged into machine log payloads.
    @returns :class:`CommandResult`; ``timed_out`` set on deadline expiry.
    """

    human_logger = logging_ext.get_human_logger()
    machine_logger = logging_ext.get_machine_logger()

    command_list = [str(part) for part in command]
    machine_logger.info(
        f"{event}_plan",
        extra={
            "event": f"{event}_plan",
            "call": _build_call_payload(command_list, timeout=timeout, extra=extra),
        },
    )
    if human_message:
        human_logger.info(human_message)

    start = time.monotonic()
    try:
        process = subprocess.Popen(  # noqa: S603 - intentional command execution
            command_list,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            errors="replace",
            env=sanitize_environment(),
        )
    except FileNotFoundError as exc:
        duration = time.monotonic() - start
        human_logger.error("Command not found: %s", command_list[0])
        _log_failure(
            event,
            "missing",
            command_list,
            timeout=timeout,
            extra=extra,
            return_code=127,
            duration=duration,
            error=str(exc),
        )
        return CommandResult(command_list, 127, "", "", duration, error=str(exc))
    except OSError as exc:
        duration = time.monotonic() - start
        human_logger.error("Failed to execute %s: %s", command_list[0], exc)
        _log_failure(
            event,
            "error",
            command_list,
            timeout=timeout,
            extra=extra,
            return_code=1,
            duration=duration,
            error=str(exc),
        )
        return CommandResult(command_list, 1, "", "", duration, error=str(exc))

    with process:
        try:
            output, _ = process.communicate(timeout=timeout)
        except subprocess.TimeoutExpired:
            _kill_process_tree(process)
            try:
                process.communicate(timeout=_REAP_TIMEOUT)
            except subprocess.TimeoutExpired:
                human_logger.debug("Output pipe of %s still open after kill", command_list[0])
            duration = time.monotonic() - start
            _log_failure(
                event,
                "timeout",
                command_list,
                timeout=timeout,
                extra=extra,
                return_code=1,
                duration=duration,
                error="timeout",
                timed_out=True,
            )
            return CommandResult(
                command=command_list,
                returncode=1,
                stdout="",
                stderr="",
                duration=duration,
                timed_out=True,
                error="timeout",
            )

    duration = time.monotonic() - start
    returncode = process.returncode if process.returncode is not None else 1
    machine_logger.info(
        f"{event}_result",
        extra={
            "event": f"{event}_result",
            "call": _build_call_payload(command_list, timeout=timeout, extra=extra),
            "result": _build_result_payload(
                return_code=returncode,
                duration=duration,
                stdout=output or "",
                stderr="",
            ),
        },
    )
    return CommandResult(
        command=command_list,
        returncode=returncode,
        stdout=output or "",
        stderr="",
        duration=duration,
    )
