from __future__ import annotations
import threading
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Protocol, Union

from .registry import DeviceInfo, DeviceRegistry
from .states import AdapterPresence, DiscoveryState, Outcome, RefreshPhase

FALLBACK_FIRST = "first"
FALLBACK_LOWEST_ID = "lowest_id"
FALLBACKS = (FALLBACK_FIRST, FALLBACK_LOWEST_ID)


@dataclass
class ChooserParams:
    # IDLE with an empty registry rescans this many times, then cancels
    max_scan_retries: int = 5
    # registry entry auto-selected on IDLE when the policy does not intercept
    fallback: str = FALLBACK_FIRST


class OneShotResolver:
    """Device-id callback handed to the selection policy.

    Only the first call is forwarded; later calls return False and do nothing.
    May be called from any thread, at any later time.
    """

    def __init__(self, fn: Callable[[str], None]):
        self._fn = fn
        self._lock = threading.Lock()
        self._used = False

    @property
    def used(self) -> bool:
        return self._used

    def __call__(self, device_id: str) -> bool:
        with self._lock:
            if self._used:
                return False
            self._used = True
        self._fn(device_id)
        return True


class SelectionPolicy(Protocol):
    def offer_selection(self, devices: List[DeviceInfo], resolver: OneShotResolver) -> bool: ...


PolicyLike = Union[SelectionPolicy, Callable[[List[DeviceInfo], OneShotResolver], bool]]


class ChooserSession:
    """One device-selection request, from first event to its single outcome.

    Upstream events come in through adapter_presence_changed(),
    discovery_state_changed() and device_sighted(), one at a time. The session
    answers with at most one call to ``event_handler(outcome)``, and with
    ``on_rescan()`` whenever discovery went idle without finding anything.
    Everything delivered after the outcome is ignored.
    """

    def __init__(
        self,
        event_handler: Callable[[Outcome], None],
        *,
        policy: Optional[PolicyLike] = None,
        on_rescan: Optional[Callable[[], None]] = None,
        params: Optional[ChooserParams] = None,
        logger: Optional[Any] = None,
    ):
        self.params = params or ChooserParams()
        self.registry = DeviceRegistry()
        self.presence: Optional[AdapterPresence] = None
        self.discovery: Optional[DiscoveryState] = None
        self.refresh = RefreshPhase.NOT_REFRESHING
        self.num_retries = 0
        self.outcome: Optional[Outcome] = None
        self._event_handler = event_handler
        self._policy = policy
        self._on_rescan = on_rescan
        self._log = logger
        # guards the ACTIVE -> TERMINAL flip only; events are serialized upstream
        self._latch = threading.Lock()

    @property
    def resolved(self) -> bool:
        return self.outcome is not None

    @property
    def refreshing(self) -> bool:
        return self.refresh is RefreshPhase.RESCAN_STARTED

    def _write(self, typ: str, msg: str, **data: Any) -> None:
        if self._log is not None:
            self._log.write({"type": typ, "msg": msg, "data": data})

    def _ignore_if_resolved(self, msg: str, **data: Any) -> bool:
        if self.outcome is None:
            return False
        self._write("debug", "ignored_after_outcome", event=msg, **data)
        return True

    # ---- upstream events

    def adapter_presence_changed(self, presence: AdapterPresence) -> None:
        if self._ignore_if_resolved("adapter_presence", presence=presence.value):
            return
        self.presence = presence
        self._write("debug", "adapter_presence", presence=presence.value)
        if presence is AdapterPresence.UNAUTHORIZED:
            self._resolve(Outcome.cancelled(), reason="unauthorized")
        elif presence in (AdapterPresence.ABSENT, AdapterPresence.POWERED_OFF, AdapterPresence.POWERED_ON):
            pass
        else:
            raise ValueError(f"unknown adapter presence {presence!r}")

    def discovery_state_changed(self, state: DiscoveryState) -> None:
        if self._ignore_if_resolved("discovery_state", state=state.value):
            return
        self.discovery = state
        self._write("debug", "discovery_state", state=state.value, refresh=self.refresh.value)

        if state is DiscoveryState.FAILED_TO_START:
            self.refresh = RefreshPhase.NOT_REFRESHING
            self._resolve(Outcome.cancelled(), reason="failed_to_start")

        elif state is DiscoveryState.IDLE:
            self.refresh = RefreshPhase.NOT_REFRESHING
            if not self.registry:
                self.num_retries += 1
                if self.num_retries > self.params.max_scan_retries:
                    self._write("info", "scan_retries_exhausted",
                                retries=self.num_retries, max_scan_retries=self.params.max_scan_retries)
                    self._resolve(Outcome.cancelled(), reason="retries_exhausted")
                else:
                    self._write("info", "rescan", attempt=self.num_retries)
                    if self._on_rescan is not None:
                        self._on_rescan()
            elif not self.offer_selection():
                self._resolve(Outcome.selected(self._fallback_id()), reason="fallback")

        elif state is DiscoveryState.DISCOVERING:
            # Fired once when a rescan starts and again once scanning is steady.
            if self.refresh is RefreshPhase.NOT_REFRESHING:
                self.refresh = RefreshPhase.RESCAN_STARTED
            else:
                self.refresh = RefreshPhase.NOT_REFRESHING

        else:
            raise ValueError(f"unknown discovery state {state!r}")

    def device_sighted(self, device_id: str, should_update_name: bool, name: str) -> None:
        if self._ignore_if_resolved("device_sighted", device_id=device_id):
            return
        if self.refreshing:
            self._write("debug", "device_ignored_refreshing", device_id=device_id, name=name)
            return
        if not self.registry.add_or_update(device_id, name, should_update_name):
            return
        self._write("debug", "device_changed", device_id=device_id, name=name, devices=len(self.registry))
        if not self.offer_selection():
            self._resolve(Outcome.selected(device_id), reason="sighted")

    # ---- resolution

    def offer_selection(self) -> bool:
        """Show the current registry to the policy. True when it intercepted."""
        if self._policy is None:
            return False
        devices = self.registry.devices()
        offer = getattr(self._policy, "offer_selection", self._policy)
        intercepted = bool(offer(devices, OneShotResolver(self._on_device_chosen)))
        self._write("debug", "offer_selection", devices=[d.as_dict() for d in devices], intercepted=intercepted)
        return intercepted

    def _on_device_chosen(self, device_id: str) -> None:
        self._write("info", "device_chosen", device_id=device_id)
        if device_id:
            self._resolve(Outcome.selected(device_id), reason="policy")
        else:
            self._resolve(Outcome.cancelled(), reason="policy")

    def _fallback_id(self) -> str:
        if self.params.fallback == FALLBACK_LOWEST_ID:
            return self.registry.lowest_id() or ""
        return self.registry.first_id() or ""

    def _resolve(self, outcome: Outcome, reason: str) -> bool:
        with self._latch:
            first = self.outcome is None
            if first:
                self.outcome = outcome
        if not first:
            self._write("debug", "resolution_ignored", event=outcome.event.value,
                        device_id=outcome.device_id, reason=reason)
            return False
        self._write("event", outcome.event.value, device_id=outcome.device_id, reason=reason)
        self._event_handler(outcome)
        return True
