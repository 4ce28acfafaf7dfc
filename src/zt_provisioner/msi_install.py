"""!
@brief Silent install and uninstall of the overlay client through ``msiexec``.
@details Composes ``msiexec`` command lines, downloads the installer payload,
and classifies exit codes into success, success-with-reboot, and failure.
Removal is chosen by an :class:`UninstallStrategy`: the product-code strategy
drives ``msiexec /x`` directly, while the generic strategy rewrites the
registered ``UninstallString`` and is best-effort only. Installs and uninstalls
run to completion without a timeout and are never retried automatically.
"""
from __future__ import annotations

import datetime
import enum
import http.client
import shlex
import shutil
import urllib.error
import urllib.request
from pathlib import Path
from typing import List, Sequence

from . import client_paths, constants, exec_utils, logging_ext
from .detect import ProductInstallation
from .main_state import OrchestrationState


class InstallOutcome(enum.Enum):
    """!
    @brief Classification of an ``msiexec`` exit code.
    """

    SUCCESS = "success"
    SUCCESS_REBOOT_REQUIRED = "success-reboot-required"
    FAILURE = "failure"

    @property
    def succeeded(self) -> bool:
        return self is not InstallOutcome.FAILURE


def classify_exit_code(returncode: int) -> InstallOutcome:
    """!
    @brief Map an installer exit code to an :class:`InstallOutcome`.
    @details ``0`` and ``3010`` are the only success codes.
    """

    if returncode == constants.MSI_SUCCESS:
        return InstallOutcome.SUCCESS
    if returncode == constants.MSI_SUCCESS_REBOOT_REQUIRED:
        return InstallOutcome.SUCCESS_REBOOT_REQUIRED
    return InstallOutcome.FAILURE


def _normalise_product_code(raw: str) -> str:
    """!
    @brief Sanitise ``raw`` into the ``{GUID}`` form expected by ``msiexec``.
    """

    token = raw.strip().strip("\0")
    if not token:
        return ""
    core = token.strip("{}")
    if not core:
        return ""
    return f"{{{core.upper()}}}"


def _timestamp() -> str:
    return datetime.datetime.now(datetime.timezone.utc).strftime("%Y%m%d-%H%M%S")


def msi_log_path(log_dir: Path, action: str) -> Path:
    """!
    @brief Location of the verbose ``msiexec`` log for ``action``.
    """

    return Path(log_dir) / f"zerotier-{action}-{_timestamp()}.log"


# ---------------------------------------------------------------------------
# Uninstall strategies
# ---------------------------------------------------------------------------


class UninstallStrategy:
    """!
    @brief Builds the removal command for a detected installation.
    @details ``verified`` is ``False`` for strategies whose silence cannot be
    guaranteed; the uninstall step warns about those before running them.
    """

    name = "base"
    verified = True

    def build_command(self, info: ProductInstallation, log_path: Path) -> List[str]:
        raise NotImplementedError


class MsiProductCodeStrategy(UninstallStrategy):
    """!
    @brief ``msiexec /x <ProductCode> /qn /norestart /L*V <log>``.
    """

    name = "msi-product-code"

    def build_command(self, info: ProductInstallation, log_path: Path) -> List[str]:
        code = _normalise_product_code(info.product_code or "")
        if not code:
            raise ValueError(f"{info.display_name} has no product code")
        return [
            constants.MSIEXEC,
            "/x",
            code,
            *constants.MSI_UNINSTALL_PROPERTIES,
            "/L*V",
            str(log_path),
        ]


class GenericUninstallerStrategy(UninstallStrategy):
    """!
    @brief Rewrite the registered ``UninstallString`` into a silent form.
    @details When the executable is ``msiexec`` the ``/I``/``/X`` product
    argument is converted into ``/x <code>`` plus the standard silent flags.
    Any other executable gets :data:`constants.GENERIC_SILENT_FLAGS` appended;
    whether the vendor honours them is unverified, so the operator may still see
    uninstaller UI on this path.
    """

    name = "generic-uninstall-string"
    verified = False

    def build_command(self, info: ProductInstallation, log_path: Path) -> List[str]:
        raw = (info.uninstall_command or "").strip()
        if not raw:
            raise ValueError(f"{info.display_name} has no uninstall command")
        try:
            parts = [part.strip('"') for part in shlex.split(raw, posix=False)]
        except ValueError:
            parts = [raw.strip('"')]
        parts = [part for part in parts if part.strip()]
        if not parts:
            raise ValueError(f"{info.display_name} has an empty uninstall command")
        executable, arguments = parts[0], parts[1:]

        if Path(executable).name.lower() in ("msiexec", "msiexec.exe"):
            code = _extract_msi_code(arguments)
            if code:
                return [
                    constants.MSIEXEC,
                    "/x",
                    code,
                    *constants.MSI_UNINSTALL_PROPERTIES,
                    "/L*V",
                    str(log_path),
                ]

        lowered = {argument.lower() for argument in arguments}
        extra = [flag for flag in constants.GENERIC_SILENT_FLAGS if flag.lower() not in lowered]
        return [executable, *arguments, *extra]


def _extract_msi_code(arguments: Sequence[str]) -> str:
    """!
    @brief Pull the product code out of ``/I{GUID}``, ``/X{GUID}`` or ``/X {GUID}``.
    """

    for index, argument in enumerate(arguments):
        upper = argument.upper()
        if upper[:2] not in ("/I", "/X"):
            continue
        remainder = argument[2:].strip()
        if not remainder and index + 1 < len(arguments):
            remainder = arguments[index + 1]
        code = _normalise_product_code(remainder)
        if code:
            return code
    return ""


def select_uninstall_strategy(info: ProductInstallation) -> UninstallStrategy:
    """!
    @brief Prefer the product-code strategy; fall back to the uninstall string.
    """

    if info.product_code:
        return MsiProductCodeStrategy()
    return GenericUninstallerStrategy()


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------


def _run_transaction(
    command: Sequence[str],
    state: OrchestrationState,
    *,
    event: str,
    description: str,
    log_path: Path | None,
) -> bool:
    """!
    @brief Run an install/uninstall command and apply exit-code semantics.
    @returns ``True`` on success; ``3010`` also raises the install reboot flag.
    """

    human_logger = logging_ext.get_human_logger()
    machine_logger = logging_ext.get_machine_logger()

    result = exec_utils.run_command(
        command,
        event=event,
        human_message=description,
        extra={"log_path": str(log_path) if log_path else None},
    )

    if result.error is not None:
        human_logger.error("Could not launch %s: %s", command[0], result.error)
        return False

    outcome = classify_exit_code(result.returncode)
    machine_logger.info(
        f"{event}_outcome",
        extra={
            "event": f"{event}_outcome",
            "return_code": result.returncode,
            "outcome": outcome.value,
        },
    )

    if not outcome.succeeded:
        human_logger.error("%s failed with exit code %d.", description, result.returncode)
        if log_path is not None:
            human_logger.error("Installer log: %s", log_path)
        return False

    if outcome is InstallOutcome.SUCCESS_REBOOT_REQUIRED:
        state.reboot_required_by_install = True
        human_logger.warning("%s succeeded; a reboot is required to finish.", description)
    return True


def uninstall(info: ProductInstallation, state: OrchestrationState, *, log_dir: Path) -> bool:
    """!
    @brief Remove ``info`` silently.
    @returns ``True`` when the uninstaller reported success.
    """

    human_logger = logging_ext.get_human_logger()

    strategy = select_uninstall_strategy(info)
    log_path = msi_log_path(log_dir, "uninstall")
    try:
        command = strategy.build_command(info, log_path)
    except ValueError as exc:
        human_logger.error("Cannot uninstall %s: %s", info.display_name, exc)
        return False

    if not strategy.verified:
        human_logger.warning(
            "No product code registered for %s; using its uninstall command with "
            "best-effort silent flags. The uninstaller may still show a window.",
            info.display_name,
        )

    uses_msiexec = command[0] == constants.MSIEXEC
    return _run_transaction(
        command,
        state,
        event="msi_uninstall",
        description=f"Uninstalling {info.display_name} {info.display_version}".strip(),
        log_path=log_path if uses_msiexec else None,
    )


def _discard_partial_download(destination: Path) -> None:
    try:
        destination.unlink(missing_ok=True)
    except OSError as exc:
        logging_ext.get_human_logger().debug("Could not remove partial download %s: %s", destination, exc)


def download_installer(url: str, destination: Path) -> bool:
    """!
    @brief Fetch the installer payload from ``url`` into ``destination``.
    @details Malformed URLs, HTTP and transport errors, truncated bodies and
    filesystem errors all end in ``False``; a partially written payload is
    removed. No retry.
    """

    human_logger = logging_ext.get_human_logger()
    machine_logger = logging_ext.get_machine_logger()

    destination = Path(destination)
    human_logger.info("Downloading installer from %s", url)
    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
        request = urllib.request.Request(
            url,
            headers={"User-Agent": constants.DOWNLOAD_USER_AGENT},
        )
        with urllib.request.urlopen(request, timeout=constants.DOWNLOAD_TIMEOUT) as response:
            with destination.open("wb") as handle:
                shutil.copyfileobj(response, handle)
    except (urllib.error.URLError, http.client.HTTPException, ValueError) as exc:
        human_logger.error("Failed to download installer from %s: %s", url, str(exc) or type(exc).__name__)
        machine_logger.error(
            "download_failed",
            extra={"event": "download_failed", "url": url, "error": repr(exc)},
        )
        _discard_partial_download(destination)
        return False
    except OSError as exc:
        human_logger.error("Failed to save installer to %s: %s", destination, exc)
        machine_logger.error(
            "download_failed",
            extra={"event": "download_failed", "url": url, "error": repr(exc)},
        )
        _discard_partial_download(destination)
        return False

    size = destination.stat().st_size
    human_logger.info("Downloaded installer to %s (%d bytes)", destination, size)
    machine_logger.info(
        "download_complete",
        extra={"event": "download_complete", "url": url, "path": str(destination), "bytes": size},
    )
    return True


def build_install_command(payload: Path, log_path: Path) -> List[str]:
    """!
    @brief Compose the headless ``msiexec /i`` command line.
    """

    return [
        constants.MSIEXEC,
        "/i",
        str(payload),
        *constants.MSI_INSTALL_PROPERTIES,
        "/L*V",
        str(log_path),
    ]


def install(payload: Path, state: OrchestrationState, *, log_dir: Path) -> bool:
    """!
    @brief Install ``payload`` silently and record the CLI location.
    @details A package-manager success without a CLI on disk is reported as a
    failure; the rest of the workflow needs the CLI.
    """

    human_logger = logging_ext.get_human_logger()

    log_path = msi_log_path(log_dir, "install")
    if not _run_transaction(
        build_install_command(payload, log_path),
        state,
        event="msi_install",
        description="Installing ZeroTier One",
        log_path=log_path,
    ):
        return False

    client_path = client_paths.resolve_client_path()
    if client_path is None:
        human_logger.error(
            "Installer reported success but the ZeroTier CLI was not found. Installer log: %s",
            log_path,
        )
        return False

    state.client_path = client_path
    human_logger.info("ZeroTier CLI located at %s", client_path)
    return True


__all__ = [
    "GenericUninstallerStrategy",
    "InstallOutcome",
    "MsiProductCodeStrategy",
    "UninstallStrategy",
    "build_install_command",
    "classify_exit_code",
    "download_installer",
    "install",
    "msi_log_path",
    "select_uninstall_strategy",
    "uninstall",
]
