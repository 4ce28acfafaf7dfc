"""!
@brief Structured logging helpers for ZT Provisioner.
@details Implements the dual-stream pipeline: a human-readable text log that is
also echoed to the console for the operator, and a JSONL telemetry stream for
automation. Startup metadata sourced from :mod:`zt_provisioner.version` is
recorded so log bundles from different hosts can be correlated.
"""
from __future__ import annotations

import datetime as _dt
import json
import logging
import os
import sys
import tempfile
import uuid
from logging import handlers
from pathlib import Path
from typing import Dict, Iterable, Mapping, Tuple

from . import version

HUMAN_LOGGER_NAME = "zt_provisioner.human"
"""!
@brief Logger name for human-readable output.
"""

MACHINE_LOGGER_NAME = "zt_provisioner.machine"
"""!
@brief Logger name for JSONL telemetry output.
"""

HUMAN_LOG_FILENAME = "zt-provisioner.log"
MACHINE_LOG_FILENAME = "zt-provisioner.jsonl"

_RESERVED_RECORD_ATTRIBUTES = frozenset(
    logging.LogRecord("", logging.NOTSET, "", 0, "", (), None).__dict__
) | {"message", "asctime", "channel", "taskName"}
"""!
@brief Attributes every ``LogRecord`` carries; anything else arrived via ``extra``.
"""

_CURRENT_LOG_DIRECTORY: Path | None = None
_RUN_METADATA: Dict[str, object] | None = None


class _ChannelFilter(logging.Filter):
    """!
    @brief Tag every record passing through a logger with its stream name.
    """

    def __init__(self, channel: str) -> None:
        super().__init__()
        self._channel = channel

    def filter(self, record: logging.LogRecord) -> bool:
        record.channel = self._channel
        return True


class _JsonLineFormatter(logging.Formatter):
    """!
    @brief Render one JSONL event per record.
    @details Each line carries the UTC timestamp, level, logger, message and
    channel, followed by whatever the caller passed through ``extra``. Values
    the ``json`` module rejects are written as their ``repr``.
    """

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401 - concise override
        moment = _dt.datetime.fromtimestamp(record.created, tz=_dt.timezone.utc)
        payload: Dict[str, object] = {
            "timestamp": moment.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "channel": getattr(record, "channel", "machine"),
        }

        payload.update(_extract_extras(record))
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        try:
            return json.dumps(payload, ensure_ascii=False)
        except TypeError:
            sanitized = {key: _coerce_json(value) for key, value in payload.items()}
            return json.dumps(sanitized, ensure_ascii=False)


def _extract_extras(record: logging.LogRecord) -> Dict[str, object]:
    """!
    @brief Return the caller-supplied ``extra`` fields attached to ``record``.
    """

    return {
        key: value
        for key, value in vars(record).items()
        if key not in _RESERVED_RECORD_ATTRIBUTES
    }


def _coerce_json(value: object) -> object:
    """!
    @brief Pass ``value`` through when it serializes, otherwise use its ``repr``.
    """

    try:
        json.dumps(value)
    except TypeError:
        return repr(value)
    return value


def _configure_logger(
    logger: logging.Logger,
    handlers_to_add: Iterable[Tuple[logging.Handler, logging.Formatter]],
) -> None:
    """!
    @brief Drop existing handlers and filters, then install ``handlers_to_add``.
    """

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    for flt in list(logger.filters):
        logger.removeFilter(flt)
    for handler, formatter in handlers_to_add:
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    logger.propagate = False


def get_default_log_directory() -> Path:
    """!
    @brief Return ``%ProgramData%\\ZTProvisioner\\logs`` or a temp-dir fallback.
    """

    program_data = os.environ.get("ProgramData") or os.environ.get("PROGRAMDATA")
    if program_data:
        return Path(program_data) / "ZTProvisioner" / "logs"
    return Path(tempfile.gettempdir()) / "zt-provisioner" / "logs"


def setup_logging(
    root_dir: Path,
    *,
    json_to_stdout: bool = False,
    console: bool = True,
    level: int = logging.INFO,
) -> Tuple[logging.Logger, logging.Logger]:
    """!
    @brief Set up human and machine loggers.
    @details Returns the human-readable and structured event loggers. The
    directory is created if it does not exist and rotated files are configured
    for both streams. When ``console`` is ``True`` the human stream is echoed to
    ``stderr`` with a bare message format so operator output stays readable.
    """

    global _CURRENT_LOG_DIRECTORY

    root_dir.mkdir(parents=True, exist_ok=True)
    _CURRENT_LOG_DIRECTORY = root_dir

    human_logger = logging.getLogger(HUMAN_LOGGER_NAME)
    machine_logger = logging.getLogger(MACHINE_LOGGER_NAME)

    human_logger.setLevel(level)
    machine_logger.setLevel(level)

    human_formatter = logging.Formatter(
        "%(asctime)s %(levelname)-8s [%(channel)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    console_formatter = logging.Formatter("%(message)s")
    machine_formatter = _JsonLineFormatter()

    human_file = handlers.RotatingFileHandler(
        root_dir / HUMAN_LOG_FILENAME,
        maxBytes=1_048_576,
        backupCount=5,
        encoding="utf-8",
    )
    machine_file = handlers.RotatingFileHandler(
        root_dir / MACHINE_LOG_FILENAME,
        maxBytes=1_048_576,
        backupCount=5,
        encoding="utf-8",
    )

    human_handlers: list[Tuple[logging.Handler, logging.Formatter]] = [
        (human_file, human_formatter)
    ]
    if console:
        human_handlers.append((logging.StreamHandler(stream=sys.stderr), console_formatter))

    machine_handlers: list[Tuple[logging.Handler, logging.Formatter]] = [
        (machine_file, machine_formatter)
    ]
    if json_to_stdout:
        machine_handlers.append((logging.StreamHandler(stream=sys.stdout), machine_formatter))

    _configure_logger(human_logger, human_handlers)
    _configure_logger(machine_logger, machine_handlers)

    human_logger.addFilter(_ChannelFilter("human"))
    machine_logger.addFilter(_ChannelFilter("machine"))

    _emit_run_metadata(human_logger, machine_logger)

    return human_logger, machine_logger


def get_human_logger() -> logging.Logger:
    """!
    @brief Operator-facing text logger.
    """

    return logging.getLogger(HUMAN_LOGGER_NAME)


def get_machine_logger() -> logging.Logger:
    """!
    @brief JSONL event logger.
    """

    return logging.getLogger(MACHINE_LOGGER_NAME)


def get_log_directory() -> Path | None:
    """!
    @brief Directory passed to the last :func:`setup_logging` call, or ``None``.
    """

    return _CURRENT_LOG_DIRECTORY


def get_run_metadata() -> Mapping[str, object] | None:
    """!
    @brief Return the most recent run metadata payload.
    @details The structure contains ``run_id`` (UUID4 hex), ``timestamp`` in
    ISO-8601 UTC form, and version/build identifiers sourced from
    :mod:`zt_provisioner.version`.
    """

    return dict(_RUN_METADATA) if _RUN_METADATA is not None else None


def _emit_run_metadata(human_logger: logging.Logger, machine_logger: logging.Logger) -> None:
    """!
    @brief Record the run identity and announce it on both streams.
    @details Stores a fresh ``run_id`` with version, interpreter and log
    directory details for :func:`get_run_metadata`, then writes a ``run_start``
    event so JSONL consumers can group every later event by run.
    """

    global _RUN_METADATA

    moment = _dt.datetime.now(tz=_dt.timezone.utc)
    _RUN_METADATA = {
        "run_id": uuid.uuid4().hex,
        "timestamp": moment.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
        "version": version.__version__,
        "build": version.__build__,
        "python": sys.version.split()[0],
        "logdir": str(_CURRENT_LOG_DIRECTORY) if _CURRENT_LOG_DIRECTORY else None,
    }

    human_logger.debug(
        "ZT Provisioner %s (%s) starting, run %s",
        version.__version__,
        version.__build__,
        _RUN_METADATA["run_id"],
    )
    if _CURRENT_LOG_DIRECTORY is not None:
        human_logger.info("Logs directory: %s", _CURRENT_LOG_DIRECTORY)

    machine_logger.info("run_start", extra={"event": "run_start", "run": dict(_RUN_METADATA)})
