from __future__ import annotations
import asyncio
from asyncio.subprocess import PIPE
from typing import Optional

from ..states import AdapterPresence

# Global lock to serialize BlueZ discovery across chooser runs in one process
scan_lock = asyncio.Lock()

# Substrings of BlueZ / CoreBluetooth / WinRT error texts, lowercased
_UNAUTHORIZED_HINTS = ("notauthorized", "not authorized", "unauthorized", "notpermitted", "permission", "denied")
_POWERED_OFF_HINTS = ("notready", "powered off", "not powered", "turned off")
_ABSENT_HINTS = ("no bluetooth adapters", "no such adapter", "adapter not found", "does not exist")


async def bluez_scan_off() -> None:
    """Best-effort: stop any bluetoothctl discovery to avoid BlueZ InProgress.

    Failures (no bluetoothctl, no BlueZ) are ignored.
    """
    try:
        proc = await asyncio.create_subprocess_exec("bluetoothctl", "--timeout", "1", "scan", "off", stdout=PIPE, stderr=PIPE)
        await proc.communicate()
    except OSError:
        pass


def classify_adapter_error(exc: BaseException) -> Optional[AdapterPresence]:
    """Map a scanner start failure to the adapter presence it implies, if any."""
    text = str(exc).lower()
    if any(h in text for h in _UNAUTHORIZED_HINTS):
        return AdapterPresence.UNAUTHORIZED
    if any(h in text for h in _POWERED_OFF_HINTS):
        return AdapterPresence.POWERED_OFF
    if any(h in text for h in _ABSENT_HINTS):
        return AdapterPresence.ABSENT
    return None
