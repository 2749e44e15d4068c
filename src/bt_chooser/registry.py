from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional


@dataclass(frozen=True)
class DeviceInfo:
    device_id: str
    device_name: str

    def as_dict(self) -> dict:
        return {"deviceId": self.device_id, "deviceName": self.device_name}


class DeviceRegistry:
    """Devices seen during one chooser session, in first-sighting order.

    Entries are never removed; a session's registry only grows.
    """

    def __init__(self) -> None:
        self._names: Dict[str, str] = {}

    def add_or_update(self, device_id: str, name: str, update_name: bool) -> bool:
        """Insert or rename a device. Returns True when the registry changed."""
        if device_id not in self._names:
            self._names[device_id] = name
            return True
        if update_name:
            self._names[device_id] = name
            return True
        return False

    def name_of(self, device_id: str) -> Optional[str]:
        return self._names.get(device_id)

    def first_id(self) -> Optional[str]:
        return next(iter(self._names), None)

    def lowest_id(self) -> Optional[str]:
        return min(self._names, default=None)

    def devices(self) -> List[DeviceInfo]:
        return [DeviceInfo(k, v) for k, v in self._names.items()]

    def __contains__(self, device_id: object) -> bool:
        return device_id in self._names

    def __iter__(self) -> Iterator[str]:
        return iter(self._names)

    def __len__(self) -> int:
        return len(self._names)
