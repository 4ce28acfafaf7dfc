"""!
@brief Install, uninstall, and download tests.
@details ``msiexec`` is never launched: :func:`exec_utils.run_command` is
replaced with recorders returning fabricated :class:`CommandResult` objects.
"""

from __future__ import annotations

import http.client
import io
import sys
import urllib.error
from pathlib import Path
from typing import Iterable, List

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from zt_provisioner import constants, exec_utils, msi_install  # noqa: E402
from zt_provisioner.detect import ProductInstallation  # noqa: E402
from zt_provisioner.main_state import OrchestrationState  # noqa: E402

PRODUCT_CODE = "{A1B2C3D4-0000-1111-2222-333344445555}"


def _command_result(command: Iterable[str], returncode: int = 0, *, error: str | None = None) -> exec_utils.CommandResult:
    """!
    @brief Fabricate :class:`CommandResult` objects for command interception.
    """

    return exec_utils.CommandResult(
        command=[str(part) for part in command],
        returncode=returncode,
        stdout="",
        stderr="",
        duration=0.0,
        error=error,
    )


def _install_recorder(monkeypatch: pytest.MonkeyPatch, returncode: int = 0) -> List[List[str]]:
    calls: List[List[str]] = []

    def fake_run(command, *, event, **kwargs):
        calls.append([str(part) for part in command])
        return _command_result(command, returncode)

    monkeypatch.setattr(msi_install.exec_utils, "run_command", fake_run)
    return calls


@pytest.mark.parametrize(
    ("returncode", "expected"),
    [
        (0, msi_install.InstallOutcome.SUCCESS),
        (3010, msi_install.InstallOutcome.SUCCESS_REBOOT_REQUIRED),
        (1603, msi_install.InstallOutcome.FAILURE),
        (1618, msi_install.InstallOutcome.FAILURE),
    ],
)
def test_classify_exit_code(returncode: int, expected) -> None:
    assert msi_install.classify_exit_code(returncode) is expected


def test_install_command_is_headless(tmp_path: Path) -> None:
    """!
    @brief The install command carries the quiet, service, and logging switches.
    """

    command = msi_install.build_install_command(tmp_path / "zt.msi", tmp_path / "install.log")

    assert command[:3] == [constants.MSIEXEC, "/i", str(tmp_path / "zt.msi")]
    for switch in ("/qn", "RUN_SERVICE=1", "START_SERVICE_AFTER_INSTALL=1", "ZTHEADLESS=Yes", "/norestart"):
        assert switch in command
    assert command[-2:] == ["/L*V", str(tmp_path / "install.log")]


def test_product_code_strategy_preferred() -> None:
    info = ProductInstallation(
        display_name="ZeroTier One",
        display_version="1.12.2",
        product_code=PRODUCT_CODE.lower(),
        uninstall_command="whatever.exe",
    )

    strategy = msi_install.select_uninstall_strategy(info)
    command = strategy.build_command(info, Path("u.log"))

    assert isinstance(strategy, msi_install.MsiProductCodeStrategy)
    assert strategy.verified is True
    assert command[:3] == [constants.MSIEXEC, "/x", PRODUCT_CODE]
    assert "/qn" in command and "/norestart" in command


def test_generic_strategy_rewrites_msiexec_uninstall_string() -> None:
    """!
    @brief ``MsiExec.exe /I{GUID}`` becomes a quiet ``/x`` removal.
    """

    info = ProductInstallation(
        display_name="ZeroTier One",
        display_version="1.12.2",
        uninstall_command=f"MsiExec.exe /I{PRODUCT_CODE}",
    )

    strategy = msi_install.select_uninstall_strategy(info)
    command = strategy.build_command(info, Path("u.log"))

    assert isinstance(strategy, msi_install.GenericUninstallerStrategy)
    assert strategy.verified is False
    assert command[:3] == [constants.MSIEXEC, "/x", PRODUCT_CODE]
    assert "/qn" in command


def test_generic_strategy_appends_silent_flags_to_vendor_uninstaller() -> None:
    info = ProductInstallation(
        display_name="ZeroTier One",
        display_version="1.0",
        uninstall_command='"C:\\Program Files\\ZeroTier\\uninst.exe" /S',
    )

    command = msi_install.GenericUninstallerStrategy().build_command(info, Path("u.log"))

    assert command[0] == "C:\\Program Files\\ZeroTier\\uninst.exe"
    assert command.count("/S") == 1
    assert "/norestart" in command


def test_uninstall_reboot_code_sets_install_flag(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """!
    @brief ``3010`` is success and raises the install reboot flag.
    """

    calls = _install_recorder(monkeypatch, returncode=3010)
    state = OrchestrationState()
    info = ProductInstallation("ZeroTier One", "1.12.2", product_code=PRODUCT_CODE)

    assert msi_install.uninstall(info, state, log_dir=tmp_path) is True
    assert state.reboot_required_by_install is True
    assert calls[0][1] == "/x"
    assert calls[0][-2] == "/L*V"
    assert calls[0][-1].startswith(str(tmp_path))


def test_uninstall_failure_leaves_flag_clear(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    _install_recorder(monkeypatch, returncode=1603)
    state = OrchestrationState()
    info = ProductInstallation("ZeroTier One", "1.12.2", product_code=PRODUCT_CODE)

    assert msi_install.uninstall(info, state, log_dir=tmp_path) is False
    assert state.reboot_required_by_install is False


def test_install_success_records_client_path(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """!
    @brief A successful install resolves and stores the CLI location.
    """

    calls = _install_recorder(monkeypatch, returncode=0)
    cli = tmp_path / "zerotier-cli.bat"
    monkeypatch.setattr(msi_install.client_paths, "resolve_client_path", lambda: cli)
    state = OrchestrationState()

    assert msi_install.install(tmp_path / "zt.msi", state, log_dir=tmp_path) is True
    assert state.client_path == cli
    assert state.reboot_required_by_install is False
    assert calls[0][1] == "/i"


def test_install_failure_does_not_resolve_client(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    _install_recorder(monkeypatch, returncode=1603)

    def fail_resolve():  # pragma: no cover - must not be reached
        raise AssertionError("client path should not be resolved after a failed install")

    monkeypatch.setattr(msi_install.client_paths, "resolve_client_path", fail_resolve)
    state = OrchestrationState()

    assert msi_install.install(tmp_path / "zt.msi", state, log_dir=tmp_path) is False
    assert state.client_path is None


def test_install_success_without_cli_is_failure(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    _install_recorder(monkeypatch, returncode=0)
    monkeypatch.setattr(msi_install.client_paths, "resolve_client_path", lambda: None)
    state = OrchestrationState()

    assert msi_install.install(tmp_path / "zt.msi", state, log_dir=tmp_path) is False


def test_install_launch_error_is_failure(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    def fake_run(command, *, event, **kwargs):
        return _command_result(command, 127, error="not found")

    monkeypatch.setattr(msi_install.exec_utils, "run_command", fake_run)

    assert msi_install.install(tmp_path / "zt.msi", OrchestrationState(), log_dir=tmp_path) is False


def test_download_installer_writes_payload(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """!
    @brief The response body is streamed to the destination file.
    """

    seen = {}

    def fake_urlopen(request, timeout):
        seen["url"] = request.full_url
        seen["timeout"] = timeout
        return io.BytesIO(b"MSI-PAYLOAD")

    monkeypatch.setattr(msi_install.urllib.request, "urlopen", fake_urlopen)
    destination = tmp_path / "nested" / "zt.msi"

    assert msi_install.download_installer("https://example.invalid/zt.msi", destination) is True
    assert destination.read_bytes() == b"MSI-PAYLOAD"
    assert seen == {"url": "https://example.invalid/zt.msi", "timeout": constants.DOWNLOAD_TIMEOUT}


def test_download_installer_failure_returns_false(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    def fake_urlopen(request, timeout):
        raise urllib.error.URLError("unreachable")

    monkeypatch.setattr(msi_install.urllib.request, "urlopen", fake_urlopen)
    destination = tmp_path / "zt.msi"

    assert msi_install.download_installer("https://example.invalid/zt.msi", destination) is False
    assert not destination.exists()


class _TruncatedResponse:
    """!
    @brief Response whose body stops short of its advertised length.
    """

    def __init__(self) -> None:
        self._chunks = [b"MSI-PART"]

    def __enter__(self) -> "_TruncatedResponse":
        return self

    def __exit__(self, *exc_info: object) -> None:
        return None

    def read(self, size: int = -1) -> bytes:
        if self._chunks:
            return self._chunks.pop(0)
        raise http.client.IncompleteRead(b"", 4096)


def test_download_installer_truncated_body_removes_partial_file(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    """!
    @brief A body cut off mid-transfer is a failure and leaves no payload behind.
    """

    monkeypatch.setattr(msi_install.urllib.request, "urlopen", lambda request, timeout: _TruncatedResponse())
    destination = tmp_path / "zt.msi"

    assert msi_install.download_installer("https://example.invalid/zt.msi", destination) is False
    assert not destination.exists()


def test_download_installer_rejects_malformed_url(tmp_path: Path) -> None:
    destination = tmp_path / "zt.msi"

    assert msi_install.download_installer("not-a-url", destination) is False
    assert not destination.exists()


def test_download_installer_write_error_removes_partial_file(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    def fake_urlopen(request, timeout):
        return io.BytesIO(b"MSI-PAYLOAD")

    def failing_copy(source, target):
        target.write(b"MSI")
        raise TimeoutError("read timed out")

    monkeypatch.setattr(msi_install.urllib.request, "urlopen", fake_urlopen)
    monkeypatch.setattr(msi_install.shutil, "copyfileobj", failing_copy)
    destination = tmp_path / "zt.msi"

    assert msi_install.download_installer("https://example.invalid/zt.msi", destination) is False
    assert not destination.exists()


@pytest.mark.parametrize("uninstall_command", ['""', '" "'])
def test_generic_strategy_rejects_empty_quoted_command(uninstall_command: str) -> None:
    info = ProductInstallation("ZeroTier One", "1.0", uninstall_command=uninstall_command)

    with pytest.raises(ValueError, match="empty uninstall command"):
        msi_install.GenericUninstallerStrategy().build_command(info, Path("u.log"))


def test_uninstall_with_empty_quoted_command_fails_without_running(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    """!
    @brief A registered uninstall string of ``""`` is reported, not executed.
    """

    calls = _install_recorder(monkeypatch)
    state = OrchestrationState()

    info = ProductInstallation("ZeroTier One", "1.0", uninstall_command='""')

    assert msi_install.uninstall(info, state, log_dir=tmp_path) is False
    assert calls == []
    assert state.reboot_required_by_install is False


def test_outcome_success_property() -> None:
    assert msi_install.InstallOutcome.SUCCESS.succeeded is True
    assert msi_install.InstallOutcome.SUCCESS_REBOOT_REQUIRED.succeeded is True
    assert msi_install.InstallOutcome.FAILURE.succeeded is False
