from __future__ import annotations
from typing import List, Optional

from .chooser import OneShotResolver
from .registry import DeviceInfo


class TargetPolicy:
    """Select the device matching a configured MAC or name.

    Without a target nothing is intercepted and the session auto-selects.
    With a target every offer is intercepted: a matching device is chosen right
    away, otherwise the newest resolver is held until a later offer matches or
    cancel() gives up.
    """

    def __init__(self, mac: Optional[str] = None, name: Optional[str] = None):
        self.mac = (mac or "").strip().lower() or None
        self.name = (name or "").strip().lower() or None
        self.pending: Optional[OneShotResolver] = None

    @property
    def has_target(self) -> bool:
        return bool(self.mac or self.name)

    def matches(self, device: DeviceInfo) -> bool:
        if self.mac and device.device_id.lower() == self.mac:
            return True
        if self.name and self.name in (device.device_name or "").lower():
            return True
        return False

    def offer_selection(self, devices: List[DeviceInfo], resolver: OneShotResolver) -> bool:
        if not self.has_target:
            return False
        for d in devices:
            if self.matches(d):
                self.pending = None
                resolver(d.device_id)
                return True
        self.pending = resolver
        return True

    def cancel(self) -> bool:
        """Resolve the held offer as cancelled. False when nothing was held."""
        resolver, self.pending = self.pending, None
        if resolver is None:
            return False
        return resolver("")
