"""!
@brief CLI discovery tests.
@details Program Files locations are pointed at temporary directories and the
service ``ImagePath`` lookup is replaced so candidate order can be checked.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from zt_provisioner import client_paths, constants  # noqa: E402


@pytest.fixture
def program_files(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> tuple[Path, Path]:
    x86 = tmp_path / "pf86"
    native = tmp_path / "pf"
    monkeypatch.setenv("ProgramFiles(x86)", str(x86))
    monkeypatch.setenv("ProgramFiles", str(native))
    monkeypatch.setattr(client_paths.registry_tools, "get_value", lambda *args, **kwargs: None)
    return x86, native


def _touch_cli(base: Path) -> Path:
    path = base / constants.CLIENT_INSTALL_SUBDIR / constants.CLIENT_EXECUTABLE_NAME
    path.parent.mkdir(parents=True)
    path.write_text("@echo off\n", encoding="utf-8")
    return path


def test_primary_location_wins(program_files) -> None:
    """!
    @brief The first existing candidate is returned.
    """

    x86, native = program_files
    expected = _touch_cli(x86)
    _touch_cli(native)

    assert client_paths.resolve_client_path() == expected


def test_alternate_location_used(program_files) -> None:
    _, native = program_files
    expected = _touch_cli(native)

    assert client_paths.resolve_client_path() == expected


def test_nothing_found(program_files) -> None:
    assert client_paths.resolve_client_path() is None


def test_service_image_path_fallback(monkeypatch: pytest.MonkeyPatch, program_files, tmp_path: Path) -> None:
    """!
    @brief The registered service binary is the last resort.
    """

    daemon = tmp_path / "svc" / "zerotier-one_x64.exe"
    daemon.parent.mkdir()
    daemon.write_bytes(b"MZ")
    monkeypatch.setattr(
        client_paths.registry_tools,
        "get_value",
        lambda root, path, name, default=None: f'"{daemon}" -service' if name == "ImagePath" else default,
    )

    candidates = client_paths.candidate_paths()

    assert candidates[-1] == daemon
    assert candidates[-2] == daemon.parent / constants.CLIENT_EXECUTABLE_NAME
    assert client_paths.resolve_client_path() == daemon


def test_cli_command_for_wrapper_and_daemon() -> None:
    assert client_paths.cli_command("C:/ZeroTier/One/zerotier-cli.bat") == ["C:/ZeroTier/One/zerotier-cli.bat"]
    assert client_paths.cli_command(Path("zerotier-one_x64.exe")) == ["zerotier-one_x64.exe", "-q"]
