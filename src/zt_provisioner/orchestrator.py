"""!
@brief Provisioning workflow.
@details Sequences detection, the optional reinstall, the fresh install, the
join loop, node identity and IP forwarding, and the post-join status check,
then prints a summary and handles the reboot decision. Leaf steps report
through return values; a fatal setup failure is raised as
:class:`ProvisioningError` and any other exception is caught by the fault
barrier in :func:`run_provisioning`, which still finalizes the run.
"""
from __future__ import annotations

import tempfile
import textwrap
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from . import (
    client_cli,
    client_paths,
    confirm,
    constants,
    detect,
    exec_utils,
    join_loop,
    logging_ext,
    msi_install,
    node_identity,
    system_config,
)
from .main_state import ConfigStatus, OrchestrationState
from .progress import progress, progress_fail, progress_ok, progress_skip


class ProvisioningError(RuntimeError):
    """!
    @brief Fatal setup failure (download, install, uninstall, missing CLI).
    """


def _default_download_dir() -> Path:
    return Path(tempfile.gettempdir()) / "zt-provisioner"


@dataclass
class ProvisionOptions:
    """!
    @brief Run configuration assembled by :mod:`zt_provisioner.main`.
    @details ``reinstall`` is ``None`` to ask the operator. ``max_join_attempts``
    is ``None`` for the unbounded interactive join loop.
    """

    log_dir: Path
    installer_url: str = constants.DEFAULT_INSTALLER_URL
    download_dir: Path = field(default_factory=_default_download_dir)
    network_id: str | None = None
    max_join_attempts: int | None = None
    join_timeout: float = constants.JOIN_TIMEOUT
    retry_delay: float = 0.0
    reinstall: bool | None = None
    configure_ip_forwarding: bool = True
    reboot_prompt: bool = True
    interactive: bool = True
    node_settle_delay: float = constants.NODE_SETTLE_DELAY
    service_settle: float = constants.SERVICE_START_SETTLE


def _install_fresh(state: OrchestrationState, options: ProvisionOptions) -> None:
    payload = Path(options.download_dir) / constants.INSTALLER_FILENAME

    progress("Downloading ZeroTier One installer...")
    if not msi_install.download_installer(options.installer_url, payload):
        progress_fail("download")
        raise ProvisioningError(f"Could not download the installer from {options.installer_url}")
    progress_ok()

    progress("Installing ZeroTier One...")
    if not msi_install.install(payload, state, log_dir=options.log_dir):
        progress_fail("install")
        raise ProvisioningError("ZeroTier One installation failed")
    progress_ok(str(state.client_path))


def _require_client_path(state: OrchestrationState) -> Path:
    if state.client_path is None:
        raise ProvisioningError("ZeroTier One was installed but its CLI could not be located")
    return state.client_path


def _wants_reinstall(
    existing: detect.ProductInstallation,
    options: ProvisionOptions,
    input_func: Callable[[str], str],
) -> bool:
    if options.reinstall is not None:
        return options.reinstall
    if not options.interactive:
        return False
    product = f"{existing.display_name} {existing.display_version}".strip()
    prompt = confirm.REINSTALL_PROMPT.format(product=product)
    return confirm.ask_yes_no(prompt, input_func=input_func)


def _prepare_client(
    state: OrchestrationState,
    options: ProvisionOptions,
    input_func: Callable[[str], str],
) -> Path:
    human_logger = logging_ext.get_human_logger()

    progress("Detecting existing ZeroTier One installation...")
    existing = detect.detect_installation()
    if existing is None:
        progress_ok("not installed")
        _install_fresh(state, options)
        return _require_client_path(state)
    progress_ok(f"{existing.display_name} {existing.display_version}".strip())

    if _wants_reinstall(existing, options, input_func):
        progress(f"Uninstalling {existing.display_name}...")
        if not msi_install.uninstall(existing, state, log_dir=options.log_dir):
            progress_fail("uninstall")
            raise ProvisioningError(f"Could not uninstall {existing.display_name}")
        progress_ok()
        _install_fresh(state, options)
        return _require_client_path(state)

    human_logger.info("Keeping the existing installation.")
    state.client_path = client_paths.resolve_client_path()
    if state.client_path is None:
        raise ProvisioningError(
            "The installed ZeroTier CLI could not be found; rerun and choose to reinstall"
        )
    return state.client_path


def _check_network_status(state: OrchestrationState) -> None:
    human_logger = logging_ext.get_human_logger()

    if state.client_path is None or state.network_id is None:
        return
    status = client_cli.network_status(state.client_path, state.network_id)
    if status is not None and status.upper() == constants.ACCESS_DENIED_STATUS:
        state.access_denied = True
        human_logger.warning(
            "Joined network %s, but access is pending: a network administrator must "
            "authorize node %s in the network controller.",
            state.network_id,
            state.node_id,
        )


def _provision(
    state: OrchestrationState,
    options: ProvisionOptions,
    input_func: Callable[[str], str],
) -> int:
    client_path = _prepare_client(state, options, input_func)

    network_id = join_loop.join_network(
        client_path,
        input_func=input_func,
        timeout=options.join_timeout,
        max_attempts=options.max_join_attempts,
        retry_delay=options.retry_delay,
        service_settle=options.service_settle,
        preset_network_id=options.network_id,
    )
    if network_id is None:
        state.fatal_error = "Join attempts exhausted"
        return constants.EXIT_JOIN_EXHAUSTED
    state.network_id = network_id

    progress("Resolving node ID...")
    state.node_id = node_identity.resolve_node_id(
        client_path, settle_delay=options.node_settle_delay
    )
    if state.node_id == constants.UNKNOWN_NODE_ID:
        progress_fail("unknown")
    else:
        progress_ok(state.node_id)

    progress("Enabling IP forwarding...")
    if options.configure_ip_forwarding:
        state.config_status = system_config.apply_ip_forwarding(state)
        if state.config_status is ConfigStatus.FAILED:
            progress_fail(state.config_status.value)
        else:
            progress_ok(state.config_status.value)
    else:
        progress_skip("disabled")

    _check_network_status(state)
    return constants.EXIT_OK


def _reboot_reasons(state: OrchestrationState) -> str:
    reasons = []
    if state.reboot_required_by_install:
        reasons.append("install")
    if state.reboot_required_by_config:
        reasons.append("configuration")
    return f"yes ({', '.join(reasons)})" if reasons else "no"


def format_summary(state: OrchestrationState) -> str:
    """!
    @brief Render the end-of-run summary shown to the operator.
    """

    body = textwrap.dedent(
        f"""
        ============== ZeroTier provisioning summary ==============
          Client CLI:      {state.client_path or "(not found)"}
          Network ID:      {state.network_id or "(not joined)"}
          Node ID:         {state.node_id}
          IP forwarding:   {state.config_status.value}
          Reboot required: {_reboot_reasons(state)}
        """
    ).strip("\n")
    if state.access_denied:
        body += "\n  Authorization:   pending (ACCESS_DENIED)"
    if state.fatal_error:
        body += f"\n  Stopped:         {state.fatal_error}"
    return body + "\n" + "-" * 59


def _trigger_restart() -> None:
    human_logger = logging_ext.get_human_logger()

    result = exec_utils.run_command(
        list(constants.RESTART_COMMAND),
        event="restart",
        human_message="Restarting the computer...",
    )
    if result.returncode != 0 or result.error:
        human_logger.error("Restart request failed; please reboot manually.")


def _finalize(
    state: OrchestrationState,
    options: ProvisionOptions,
    input_func: Callable[[str], str],
    exit_code: int,
) -> int:
    human_logger = logging_ext.get_human_logger()
    machine_logger = logging_ext.get_machine_logger()

    if state.crashed:
        exit_code = constants.EXIT_CRASHED

    print(format_summary(state))
    machine_logger.info(
        "run_summary",
        extra={"event": "run_summary", "state": state.to_dict(), "exit_code": exit_code},
    )

    if state.crashed or exit_code == constants.EXIT_SETUP_FAILED:
        human_logger.error(
            "Provisioning did not complete. Logs are in %s",
            logging_ext.get_log_directory() or options.log_dir,
        )
        if options.interactive:
            confirm.acknowledge(input_func=input_func)
        return exit_code

    if exit_code != constants.EXIT_OK:
        if state.reboot_required:
            human_logger.warning("Reboot the computer later to finish provisioning.")
        return exit_code

    if state.reboot_required:
        if (
            options.reboot_prompt
            and options.interactive
            and confirm.ask_yes_no(confirm.REBOOT_PROMPT, input_func=input_func)
        ):
            _trigger_restart()
        else:
            human_logger.warning("Reboot the computer later to finish provisioning.")
    else:
        human_logger.info("Provisioning complete.")
    return exit_code


def run_provisioning(
    options: ProvisionOptions,
    *,
    input_func: Callable[[str], str] = input,
    state: OrchestrationState | None = None,
) -> int:
    """!
    @brief Run the whole workflow and return the process exit code.
    @details ``0`` on success, ``1`` for a fatal setup failure, ``2`` when an
    unexpected error was caught, ``3`` when bounded join attempts ran out.
    @param state Optional state object to fill; a fresh one is used otherwise.
    """

    human_logger = logging_ext.get_human_logger()
    if state is None:
        state = OrchestrationState()
    exit_code = constants.EXIT_OK

    try:
        exit_code = _provision(state, options, input_func)
    except ProvisioningError as exc:
        state.fatal_error = str(exc)
        human_logger.error("%s.", exc)
        exit_code = constants.EXIT_SETUP_FAILED
    except Exception:
        state.crashed = True
        state.fatal_error = "unexpected error"
        human_logger.exception("Unexpected failure during provisioning")

    return _finalize(state, options, input_func, exit_code)


__all__ = ["ProvisionOptions", "ProvisioningError", "format_summary", "run_provisioning"]
