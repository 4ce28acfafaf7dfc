"""!
@brief Elevation helper tests.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from zt_provisioner import elevation  # noqa: E402


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX semantics")
def test_is_admin_follows_effective_uid(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(elevation.os, "geteuid", lambda: 0)
    assert elevation.is_admin() is True

    monkeypatch.setattr(elevation.os, "geteuid", lambda: 1000)
    assert elevation.is_admin() is False


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX semantics")
def test_relaunch_is_unavailable_off_windows() -> None:
    assert elevation.relaunch_as_admin(["zt-provisioner"]) is False
