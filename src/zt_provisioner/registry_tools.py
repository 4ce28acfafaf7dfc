"""!
@brief Registry helpers.
@details Thin ``winreg`` wrappers used by installation detection, client path
discovery, and the IP forwarding configuration step. Handles are always closed
through :func:`open_key`.
"""
from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator, Tuple

try:  # pragma: no cover - exercised through mocks on non-Windows platforms.
    import winreg
except ImportError:  # pragma: no cover - handled gracefully during tests.
    winreg = None  # type: ignore[assignment]


def _ensure_winreg() -> None:
    """!
    @brief Raise an informative error when ``winreg`` is unavailable.
    """

    if winreg is None:  # pragma: no cover - simplifies non-Windows test runs.
        raise FileNotFoundError("Windows registry APIs are unavailable on this platform")


@contextmanager
def open_key(root: int, path: str, access: int | None = None) -> Iterator[Any]:
    """!
    @brief Context manager that mirrors ``winreg.OpenKey`` while ensuring
    handles are closed correctly.
    """

    _ensure_winreg()
    access_mask = access if access is not None else winreg.KEY_READ  # type: ignore[union-attr]
    handle = winreg.OpenKey(root, path, 0, access_mask)  # type: ignore[union-attr]
    try:
        yield handle
    finally:
        winreg.CloseKey(handle)  # type: ignore[union-attr]


def iter_subkeys(root: int, path: str) -> Iterator[str]:
    """!
    @brief Yield subkey names for ``root``/``path``.
    """

    _ensure_winreg()
    with open_key(root, path) as handle:
        subkey_count, _, _ = winreg.QueryInfoKey(handle)  # type: ignore[union-attr]
        for index in range(subkey_count):
            yield winreg.EnumKey(handle, index)  # type: ignore[union-attr]


def iter_values(root: int, path: str) -> Iterator[Tuple[str, Any]]:
    """!
    @brief Yield value name/value pairs for ``root``/``path``.
    """

    _ensure_winreg()
    with open_key(root, path) as handle:
        _, value_count, _ = winreg.QueryInfoKey(handle)  # type: ignore[union-attr]
        for index in range(value_count):
            name, value, _ = winreg.EnumValue(handle, index)  # type: ignore[union-attr]
            yield name, value


def get_value(root: int, path: str, value_name: str, default: Any | None = None) -> Any | None:
    """!
    @brief Read ``value_name`` beneath ``root``/``path``.
    """

    try:
        _ensure_winreg()
        with open_key(root, path) as handle:
            value, _ = winreg.QueryValueEx(handle, value_name)  # type: ignore[union-attr]
            return value
    except OSError:
        return default


def set_dword(root: int, path: str, value_name: str, value: int) -> None:
    """!
    @brief Write ``value`` as ``REG_DWORD`` beneath ``root``/``path``.
    @details Raises :class:`OSError` (including ``PermissionError``) when the key
    cannot be opened for writing; callers decide whether that is fatal.
    """

    _ensure_winreg()
    with open_key(root, path, winreg.KEY_SET_VALUE) as handle:  # type: ignore[union-attr]
        winreg.SetValueEx(handle, value_name, 0, winreg.REG_DWORD, int(value))  # type: ignore[union-attr]


def hive_name(root: int) -> str:
    """!
    @brief Provide a friendly identifier for a registry hive.
    """

    mapping = {
        getattr(winreg, "HKEY_LOCAL_MACHINE", 0x80000002): "HKLM",
        getattr(winreg, "HKEY_CURRENT_USER", 0x80000001): "HKCU",
        getattr(winreg, "HKEY_USERS", 0x80000003): "HKU",
        getattr(winreg, "HKEY_CLASSES_ROOT", 0x80000000): "HKCR",
    }
    return mapping.get(root, hex(root))


__all__ = [
    "get_value",
    "hive_name",
    "iter_subkeys",
    "iter_values",
    "open_key",
    "set_dword",
]
