"""!
@brief Detection of an existing overlay client installation.
@details Scans the Windows ``Uninstall`` registration roots for an entry whose
``DisplayName`` starts with the product prefix and returns a structured
:class:`ProductInstallation` describing how it can be removed.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Mapping, Tuple

from . import constants, logging_ext, registry_tools

_GUID_PATTERN = re.compile(r"^\{[0-9A-Fa-f]{8}(-[0-9A-Fa-f]{4}){3}-[0-9A-Fa-f]{12}\}$")


@dataclass(frozen=True)
class ProductInstallation:
    """!
    @brief Installed product as registered in the inventory store.
    @details At least one removal handle (``product_code`` or
    ``uninstall_command``) is always present.
    """

    display_name: str
    display_version: str
    product_code: str | None = None
    uninstall_command: str | None = None
    registry_handle: str = ""

    def __post_init__(self) -> None:
        if not self.product_code and not self.uninstall_command:
            raise ValueError(
                f"{self.display_name!r} has neither a product code nor an uninstall command"
            )

    def to_dict(self) -> Dict[str, object]:
        """!
        @brief Convert the record to a JSON-serialisable dictionary.
        """

        payload: Dict[str, object] = {
            "display_name": self.display_name,
            "display_version": self.display_version,
            "registry_handle": self.registry_handle,
        }
        if self.product_code:
            payload["product_code"] = self.product_code
        if self.uninstall_command:
            payload["uninstall_command"] = self.uninstall_command
        return payload


def _compose_handle(root: int, path: str) -> str:
    return f"{registry_tools.hive_name(root)}\\{path}"


def _build_installation(
    subkey: str, values: Mapping[str, Any], handle: str
) -> ProductInstallation:
    product_code = str(values.get("ProductCode") or "").strip() or None
    if product_code is None and _GUID_PATTERN.match(subkey):
        product_code = subkey.upper()
    uninstall_command = str(values.get("UninstallString") or "").strip() or None
    return ProductInstallation(
        display_name=str(values.get("DisplayName") or "").strip(),
        display_version=str(values.get("DisplayVersion") or "").strip(),
        product_code=product_code,
        uninstall_command=uninstall_command,
        registry_handle=handle,
    )


def detect_installation(
    prefix: str = constants.PRODUCT_NAME_PREFIX,
    roots: Iterable[Tuple[int, str]] = constants.UNINSTALL_ROOTS,
) -> ProductInstallation | None:
    """!
    @brief Return the first installed product whose display name starts with ``prefix``.
    @details Roots are scanned in order and the scan stops at the first hit.
    Entries that cannot be read, or that lack both removal handles, are logged
    and skipped. A missing root is skipped silently.
    @param prefix Case-insensitive ``DisplayName`` prefix.
    @param roots ``(hive, path)`` pairs to scan.
    @returns The matching installation or ``None``.
    """

    human_logger = logging_ext.get_human_logger()
    machine_logger = logging_ext.get_machine_logger()
    needle = prefix.lower()

    for hive, base in roots:
        try:
            subkeys = list(registry_tools.iter_subkeys(hive, base))
        except OSError as exc:
            human_logger.debug("Uninstall root %s unavailable: %s", _compose_handle(hive, base), exc)
            continue

        for subkey in subkeys:
            key_path = f"{base}\\{subkey}"
            handle = _compose_handle(hive, key_path)
            try:
                values = dict(registry_tools.iter_values(hive, key_path))
            except OSError as exc:
                human_logger.warning("Skipping unreadable inventory entry %s: %s", handle, exc)
                machine_logger.warning(
                    "detect_entry_unreadable",
                    extra={"event": "detect_entry_unreadable", "handle": handle, "error": str(exc)},
                )
                continue

            display_name = str(values.get("DisplayName") or "")
            if not display_name.lower().startswith(needle):
                continue

            try:
                installation = _build_installation(subkey, values, handle)
            except ValueError as exc:
                human_logger.warning("Skipping inventory entry %s: %s", handle, exc)
                machine_logger.warning(
                    "detect_entry_incomplete",
                    extra={"event": "detect_entry_incomplete", "handle": handle, "error": str(exc)},
                )
                continue

            machine_logger.info(
                "detect_match",
                extra={"event": "detect_match", "installation": installation.to_dict()},
            )
            return installation

    machine_logger.info("detect_none", extra={"event": "detect_none", "prefix": prefix})
    return None


__all__ = ["ProductInstallation", "detect_installation"]
