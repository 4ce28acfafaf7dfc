"""!
@brief Primary entry point for the ZT Provisioner CLI.
@details Parses arguments, requests administrative elevation, enables VT mode
for colored status markers, configures logging, and hands control to
:func:`zt_provisioner.orchestrator.run_provisioning`.
"""
from __future__ import annotations

import argparse
import logging
import os
import pathlib
import sys
import time
from typing import Iterable, Optional

from . import constants, elevation, join_loop, logging_ext, version
from .orchestrator import ProvisionOptions, run_provisioning
from .progress import enable_vt_mode_if_possible, set_start_time


def _network_id_arg(value: str) -> str:
    network_id = join_loop.validate_network_id(value)
    if network_id is None:
        raise argparse.ArgumentTypeError(
            f"{value!r} is not a 16-character hexadecimal network ID"
        )
    return network_id


def _positive_int(value: str) -> int:
    try:
        parsed = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"{value!r} is not an integer") from None
    if parsed < 1:
        raise argparse.ArgumentTypeError("must be at least 1")
    return parsed


def _positive_float(value: str) -> float:
    try:
        parsed = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"{value!r} is not a number") from None
    if not 0 < parsed < float("inf"):
        raise argparse.ArgumentTypeError("must be greater than 0")
    return parsed


def build_arg_parser() -> argparse.ArgumentParser:
    """!
    @brief Create the top-level argument parser.
    """

    parser = argparse.ArgumentParser(
        prog="zt-provisioner",
        description="Install ZeroTier One, join a network, and enable IP forwarding.",
    )
    metadata = version.build_info()
    parser.add_argument(
        "-V",
        "--version",
        action="version",
        version=f"{metadata['version']} ({metadata['build']})",
    )

    existing = parser.add_mutually_exclusive_group()
    existing.add_argument(
        "--reinstall",
        dest="reinstall",
        action="store_const",
        const=True,
        help="Reinstall when ZeroTier One is already present, without asking.",
    )
    existing.add_argument(
        "--keep-existing",
        dest="reinstall",
        action="store_const",
        const=False,
        help="Keep an existing installation, without asking.",
    )

    parser.add_argument(
        "--installer-url",
        metavar="URL",
        default=constants.DEFAULT_INSTALLER_URL,
        help="MSI download location.",
    )
    parser.add_argument(
        "--network-id",
        metavar="NWID",
        type=_network_id_arg,
        help="Join this network instead of prompting (unattended; bounded attempts).",
    )
    parser.add_argument(
        "--max-join-attempts",
        metavar="N",
        type=_positive_int,
        help="Stop after N join attempts (default: unlimited, or %d with --network-id)."
        % constants.UNATTENDED_JOIN_ATTEMPTS,
    )
    parser.add_argument(
        "--join-timeout",
        metavar="SEC",
        type=_positive_float,
        default=constants.JOIN_TIMEOUT,
        help="Seconds before a join attempt is terminated.",
    )
    parser.add_argument(
        "--skip-ip-forwarding",
        action="store_true",
        help="Do not enable IPEnableRouter.",
    )
    parser.add_argument(
        "--no-reboot-prompt",
        action="store_true",
        help="Never offer to reboot; only advise it.",
    )
    parser.add_argument("--logdir", metavar="DIR", help="Directory for human/JSONL log output.")
    parser.add_argument("--json", action="store_true", help="Mirror structured events to stdout.")
    parser.add_argument("--quiet", action="store_true", help="Minimal console output (errors only).")
    parser.add_argument(
        "--no-elevate",
        action="store_true",
        help="Do not relaunch with administrative rights.",
    )
    return parser


def _resolve_log_directory(candidate: Optional[str]) -> pathlib.Path:
    if candidate:
        return pathlib.Path(candidate).expanduser().resolve()
    return logging_ext.get_default_log_directory().expanduser()


def _bootstrap_logging(args: argparse.Namespace) -> tuple[logging.Logger, logging.Logger]:
    """!
    @brief Initialize human and machine loggers using :mod:`logging_ext` helpers.
    """

    logdir = _resolve_log_directory(getattr(args, "logdir", None))
    human_logger, machine_logger = logging_ext.setup_logging(
        logdir,
        json_to_stdout=getattr(args, "json", False),
    )
    args.logdir = str(logdir)
    if getattr(args, "quiet", False):
        human_logger.setLevel(logging.ERROR)
    return human_logger, machine_logger


def build_options(args: argparse.Namespace, *, interactive: bool) -> ProvisionOptions:
    """!
    @brief Translate parsed arguments into :class:`ProvisionOptions`.
    @details A preset network ID means nobody is there to retype it, so the join
    loop becomes bounded with a fixed delay between attempts.
    """

    max_attempts = args.max_join_attempts
    if max_attempts is None and args.network_id is not None:
        max_attempts = constants.UNATTENDED_JOIN_ATTEMPTS
    retry_delay = constants.UNATTENDED_RETRY_DELAY if max_attempts is not None else 0.0

    return ProvisionOptions(
        log_dir=pathlib.Path(args.logdir),
        installer_url=args.installer_url,
        network_id=args.network_id,
        max_join_attempts=max_attempts,
        join_timeout=args.join_timeout,
        retry_delay=retry_delay,
        reinstall=args.reinstall,
        configure_ip_forwarding=not args.skip_ip_forwarding,
        reboot_prompt=not args.no_reboot_prompt,
        interactive=interactive,
    )


def ensure_admin_and_relaunch_if_needed(args: argparse.Namespace) -> bool:
    """!
    @brief Relaunch elevated when running on Windows without admin rights.
    @returns ``True`` when an elevated copy was started and this one should exit.
    """

    if getattr(args, "no_elevate", False) or os.name != "nt" or elevation.is_admin():
        return False
    if not elevation.relaunch_as_admin():
        raise SystemExit("Failed to request elevation via ShellExecuteW.")
    return True


def _stdin_is_interactive() -> bool:
    stdin = getattr(sys, "stdin", None)
    isatty = getattr(stdin, "isatty", None)
    return bool(isatty and isatty())


def main(argv: Optional[Iterable[str]] = None) -> int:
    """!
    @brief Console entry point.
    @returns Process exit code integer.
    """

    set_start_time(time.perf_counter())
    parser = build_arg_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    if ensure_admin_and_relaunch_if_needed(args):
        return constants.EXIT_OK

    enable_vt_mode_if_possible()
    human_log, machine_log = _bootstrap_logging(args)
    if not elevation.is_admin():
        human_log.warning("Not running as administrator; install and registry steps may fail.")

    options = build_options(args, interactive=_stdin_is_interactive())
    machine_log.info(
        "startup",
        extra={
            "event": "startup",
            "data": {
                "interactive": options.interactive,
                "unattended_join": options.max_join_attempts is not None,
                "installer_url": options.installer_url,
            },
        },
    )
    return run_provisioning(options)


if __name__ == "__main__":  # pragma: no cover - for manual execution
    sys.exit(main())
