from __future__ import annotations
from dataclasses import dataclass
from enum import Enum


class AdapterPresence(Enum):
    ABSENT = "absent"
    POWERED_OFF = "powered_off"
    UNAUTHORIZED = "unauthorized"
    POWERED_ON = "powered_on"


class DiscoveryState(Enum):
    FAILED_TO_START = "failed_to_start"
    IDLE = "idle"
    DISCOVERING = "discovering"


class RefreshPhase(Enum):
    """Progress of a rescan as reported by consecutive DISCOVERING states.

    The first DISCOVERING marks a rescan starting (device events are replayed
    by the scan, so they are dropped); the next one marks steady-state scanning.
    """
    NOT_REFRESHING = "not_refreshing"
    RESCAN_STARTED = "rescan_started"


class ChooserEvent(Enum):
    SELECTED = "selected"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class Outcome:
    event: ChooserEvent
    device_id: str = ""

    @classmethod
    def selected(cls, device_id: str) -> "Outcome":
        return cls(ChooserEvent.SELECTED, device_id)

    @classmethod
    def cancelled(cls) -> "Outcome":
        return cls(ChooserEvent.CANCELLED, "")

    @property
    def is_selected(self) -> bool:
        return self.event is ChooserEvent.SELECTED
