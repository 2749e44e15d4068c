from __future__ import annotations
import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional

from bleak import BleakScanner
from bleak.exc import BleakError

from ..chooser import ChooserSession
from ..states import AdapterPresence, DiscoveryState
from .util import scan_lock, bluez_scan_off, classify_adapter_error


class BleakDiscoverySource:
    """Feed a ChooserSession from bleak discovery passes.

    Each pass reports DISCOVERING twice (pass starting, scanner running), then
    forwards detections as sightings and reports IDLE when the pass times out.
    A rescan requested by the session during IDLE starts another pass.
    """

    def __init__(
        self,
        session: ChooserSession,
        adapter: str = "hci0",
        scan_timeout_s: float = 8.0,
        scanner_factory: Optional[Callable[..., Any]] = None,
        scan_off: Optional[Callable[[], Awaitable[None]]] = None,
    ):
        self.session = session
        self.adapter = adapter
        self.scan_timeout_s = scan_timeout_s
        self._factory = scanner_factory or BleakScanner
        self._scan_off = scan_off or bluez_scan_off
        self._rescan = False
        self._stop_evt = asyncio.Event()
        # last name reported per address, to flag renames
        self._names: Dict[str, str] = {}
        self.passes = 0

    def request_rescan(self):
        self._rescan = True

    def stop(self):
        self._stop_evt.set()

    @property
    def stopped(self) -> bool:
        return self._stop_evt.is_set()

    async def run(self):
        self._rescan = True
        while self._rescan and not self.session.resolved and not self.stopped:
            self._rescan = False
            await self._scan_pass()

    async def _scan_pass(self):
        self.passes += 1
        await self._scan_off()
        self.session.discovery_state_changed(DiscoveryState.DISCOVERING)
        scanner = self._factory(detection_callback=self._on_detect, adapter=self.adapter)
        async with scan_lock:
            try:
                await scanner.start()
            except (BleakError, OSError) as e:
                presence = classify_adapter_error(e)
                if presence is not None:
                    self.session.adapter_presence_changed(presence)
                self.session.discovery_state_changed(DiscoveryState.FAILED_TO_START)
                return
            self.session.adapter_presence_changed(AdapterPresence.POWERED_ON)
            self.session.discovery_state_changed(DiscoveryState.DISCOVERING)
            try:
                await asyncio.wait_for(self._stop_evt.wait(), timeout=self.scan_timeout_s)
            except asyncio.TimeoutError:
                pass
            finally:
                try:
                    await scanner.stop()
                except BleakError:
                    # scanner already gone with the adapter; nothing left to stop
                    pass
        if not self.stopped:
            self.session.discovery_state_changed(DiscoveryState.IDLE)

    def _on_detect(self, device: Any, adv: Any):
        address = device.address
        name = getattr(adv, "local_name", None) or device.name or ""
        previous = self._names.get(address)
        # the session drops sightings mid-refresh; keep the old name so a
        # rename is still flagged once the refresh is over
        if not self.session.refreshing:
            self._names[address] = name
        self.session.device_sighted(address, previous is not None and previous != name, name)
