"""!
@brief Console progress line tests.
"""

from __future__ import annotations

import sys
import time
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from zt_provisioner import progress, version  # noqa: E402


def test_step_and_status_lines(capsys) -> None:
    progress.set_start_time(time.perf_counter())

    progress.progress("Installing ZeroTier One...", indent=1)
    progress.progress_ok("C:/zerotier-cli.bat")
    progress.progress_fail("install")
    progress.progress_skip()

    lines = capsys.readouterr().out.splitlines()

    assert lines[0].endswith("   Installing ZeroTier One...")
    assert "OK" in lines[1] and lines[1].endswith("(C:/zerotier-cli.bat)")
    assert "FAILED" in lines[2] and lines[2].endswith("(install)")
    assert "SKIP" in lines[3]


def test_elapsed_time_is_monotonic() -> None:
    progress.set_start_time(time.perf_counter() - 5)

    assert progress.get_elapsed_secs() >= 5


def test_build_info_matches_packaged_version() -> None:
    assert version.build_info() == {"version": version.__version__, "build": version.__build__}
    assert version.__version__.count(".") == 2
