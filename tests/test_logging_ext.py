"""!
@brief Tests for :mod:`zt_provisioner.logging_ext`.
"""
from __future__ import annotations

import json
import logging
import pathlib
import sys

import pytest

PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from zt_provisioner import logging_ext, version  # noqa: E402


@pytest.fixture(autouse=True)
def _reset_logging_state() -> None:
    """!
    @brief Reset logging between tests to avoid handler leakage.
    """

    yield
    for name in (logging_ext.HUMAN_LOGGER_NAME, logging_ext.MACHINE_LOGGER_NAME):
        logger = logging.getLogger(name)
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()
        for flt in list(logger.filters):
            logger.removeFilter(flt)


def _flush(logger: logging.Logger) -> None:
    for handler in logger.handlers:
        handler.flush()


def _read_events(path: pathlib.Path) -> list[dict]:
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines() if line.strip()]


def test_setup_logging_creates_files_and_formats(tmp_path) -> None:
    """!
    @brief Setup creates both files, records run metadata, and tags channels.
    """

    human_logger, machine_logger = logging_ext.setup_logging(tmp_path / "logs", console=False)
    human_logger.info("hello world")
    machine_logger.info("join_attempt", extra={"event": "join_attempt", "attempt": 1})
    _flush(human_logger)
    _flush(machine_logger)

    human_text = (tmp_path / "logs" / logging_ext.HUMAN_LOG_FILENAME).read_text(encoding="utf-8")
    assert "[human] hello world" in human_text

    events = _read_events(tmp_path / "logs" / logging_ext.MACHINE_LOG_FILENAME)
    assert events[0]["event"] == "run_start"
    assert events[0]["run"]["version"] == version.__version__
    assert events[-1]["event"] == "join_attempt"
    assert events[-1]["attempt"] == 1
    assert events[-1]["channel"] == "machine"
    assert logging_ext.get_log_directory() == tmp_path / "logs"


def test_run_metadata_is_exposed(tmp_path) -> None:
    logging_ext.setup_logging(tmp_path, console=False)

    metadata = logging_ext.get_run_metadata()

    assert metadata is not None
    assert len(str(metadata["run_id"])) == 32
    assert metadata["logdir"] == str(tmp_path)


def test_json_events_mirrored_to_stdout(tmp_path, capsys) -> None:
    _, machine_logger = logging_ext.setup_logging(tmp_path, json_to_stdout=True, console=False)
    machine_logger.info("ip_forwarding", extra={"event": "ip_forwarding", "status": "Applied"})

    lines = [line for line in capsys.readouterr().out.splitlines() if line.strip()]

    assert json.loads(lines[-1])["status"] == "Applied"


def test_console_echo_goes_to_stderr(tmp_path, capsys) -> None:
    human_logger, _ = logging_ext.setup_logging(tmp_path)
    human_logger.warning("authorize this node")

    captured = capsys.readouterr()

    assert "authorize this node" in captured.err
    assert "authorize this node" not in captured.out


def test_unserializable_extras_are_coerced(tmp_path) -> None:
    _, machine_logger = logging_ext.setup_logging(tmp_path, console=False)
    machine_logger.info("odd", extra={"event": "odd", "path": object()})
    _flush(machine_logger)

    events = _read_events(tmp_path / logging_ext.MACHINE_LOG_FILENAME)

    assert events[-1]["path"].startswith("<object object")


def test_default_log_directory_uses_program_data(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    monkeypatch.setenv("ProgramData", str(tmp_path))

    assert logging_ext.get_default_log_directory() == tmp_path / "ZTProvisioner" / "logs"


def test_json_lines_carry_only_caller_extras(tmp_path) -> None:
    """!
    @brief Built-in record attributes stay out of the event; unserializable extras become ``repr``.
    """

    _, machine_logger = logging_ext.setup_logging(tmp_path, console=False)
    machine_logger.info("join_result", extra={"event": "join_result", "client": pathlib.Path("zt.bat")})
    _flush(machine_logger)

    event = _read_events(tmp_path / logging_ext.MACHINE_LOG_FILENAME)[-1]

    assert event["event"] == "join_result"
    assert event["client"] == repr(pathlib.Path("zt.bat"))
    assert event["channel"] == "machine"
    for reserved in ("pathname", "lineno", "args", "msg", "levelno", "taskName"):
        assert reserved not in event
