"""!
@brief Static data for ZT Provisioner.
@details Centralises registry locations, msiexec arguments, exit codes, vendor
CLI tokens, and timing defaults so detection, installation, and the join loop
work from a single source of truth.
"""
from __future__ import annotations

import os
from typing import Tuple

try:  # pragma: no cover - Windows registry handles are optional on test hosts.
    import winreg
except ImportError:  # pragma: no cover - non-Windows hosts use the documented values.
    winreg = None  # type: ignore[assignment]


if winreg is not None:  # pragma: no branch - deterministic assignments.
    HKLM = winreg.HKEY_LOCAL_MACHINE
else:  # pragma: no cover - exercised implicitly in non-Windows CI.
    HKLM = 0x80000002


# ---------------------------------------------------------------------------
# Product inventory
# ---------------------------------------------------------------------------

PRODUCT_NAME_PREFIX = "ZeroTier One"
"""!
@brief ``DisplayName`` prefix identifying the overlay client in the inventory.
"""

UNINSTALL_ROOTS: Tuple[Tuple[int, str], ...] = (
    (HKLM, r"SOFTWARE\Microsoft\Windows\CurrentVersion\Uninstall"),
    (HKLM, r"SOFTWARE\WOW6432Node\Microsoft\Windows\CurrentVersion\Uninstall"),
)
"""!
@brief Native and 32-bit uninstall registration roots, scanned in order.
"""

# ---------------------------------------------------------------------------
# msiexec
# ---------------------------------------------------------------------------

MSIEXEC = "msiexec.exe"

MSI_SUCCESS = 0
MSI_SUCCESS_REBOOT_REQUIRED = 3010
"""!
@brief ``ERROR_SUCCESS_REBOOT_REQUIRED``; treated as success with a reboot flag.
"""

MSI_HEADLESS_PROPERTY = "ZTHEADLESS=Yes"
"""!
@brief Installs the service and CLI without the tray UI.
"""

MSI_INSTALL_PROPERTIES: Tuple[str, ...] = (
    "/qn",
    "RUN_SERVICE=1",
    "START_SERVICE_AFTER_INSTALL=1",
    MSI_HEADLESS_PROPERTY,
    "/norestart",
)

MSI_UNINSTALL_PROPERTIES: Tuple[str, ...] = ("/qn", "/norestart")

GENERIC_SILENT_FLAGS: Tuple[str, ...] = ("/S", "/norestart")
"""!
@brief Flags appended to non-msiexec uninstallers. Unverified per vendor.
"""

DEFAULT_INSTALLER_URL = "https://download.zerotier.com/dist/ZeroTier%20One.msi"
INSTALLER_FILENAME = "ZeroTierOne.msi"
DOWNLOAD_TIMEOUT = 60
DOWNLOAD_USER_AGENT = "ZTProvisioner/1.0"

# ---------------------------------------------------------------------------
# Client binaries and service
# ---------------------------------------------------------------------------

CLIENT_EXECUTABLE_NAME = "zerotier-cli.bat"
CLIENT_INSTALL_SUBDIR = os.path.join("ZeroTier", "One")

SERVICE_NAME = "ZeroTierOneService"
SERVICE_KEY = r"SYSTEM\CurrentControlSet\Services\ZeroTierOneService"

# ---------------------------------------------------------------------------
# Vendor CLI contract
# ---------------------------------------------------------------------------

JOIN_SUCCESS_TOKEN = "200 join OK"
JOIN_TIMEOUT = 30.0
"""!
@brief Seconds a single ``join`` invocation may run before it is killed.
"""

NETWORK_ID_LENGTH = 16
NODE_ID_LENGTH = 10
UNKNOWN_NODE_ID = "Unknown"
ACCESS_DENIED_STATUS = "ACCESS_DENIED"

NODE_SETTLE_DELAY = 3.0
"""!
@brief Seconds to let the service settle before querying ``info``.
"""

SERVICE_START_SETTLE = 5.0
"""!
@brief Pause after starting the service before the next join attempt.
"""

UNATTENDED_JOIN_ATTEMPTS = 5
UNATTENDED_RETRY_DELAY = 10.0

# ---------------------------------------------------------------------------
# System configuration
# ---------------------------------------------------------------------------

TCPIP_PARAMETERS_KEY = r"SYSTEM\CurrentControlSet\Services\Tcpip\Parameters"
IP_FORWARDING_VALUE = "IPEnableRouter"
IP_FORWARDING_ENABLED = 1

# ---------------------------------------------------------------------------
# Exit codes
# ---------------------------------------------------------------------------

EXIT_OK = 0
EXIT_SETUP_FAILED = 1
EXIT_CRASHED = 2
EXIT_JOIN_EXHAUSTED = 3

RESTART_COMMAND: Tuple[str, ...] = ("shutdown.exe", "/r", "/t", "0")
