from __future__ import annotations
import asyncio
from typing import Any, Callable, Optional

from .config import AppCfg, load_config, default_config
from .logs import NdjsonLogger
from .chooser import ChooserSession
from .policy import TargetPolicy
from .states import Outcome
from .ble.source import BleakDiscoverySource


class ChooserHost:
    """Wire one chooser session to bleak discovery, a target policy and logs."""

    def __init__(self, cfg: AppCfg, scanner_factory: Optional[Callable[..., Any]] = None, scan_off=None):
        self.cfg = cfg
        lc = cfg.logging
        self.logger = NdjsonLogger(lc.dir, lc.file_prefix, dual_file=lc.dual_file, debug_subdir=lc.debug_subdir)
        self.logger.mode = lc.mode
        if lc.verbose_whitelist:
            self.logger.verbose_whitelist = set(lc.verbose_whitelist)
        self.policy = TargetPolicy(cfg.target.mac, cfg.target.name)
        self.session = ChooserSession(
            self._on_outcome,
            policy=self.policy,
            on_rescan=lambda: self.source.request_rescan(),
            params=cfg.chooser.params(),
            logger=self.logger,
        )
        self.source = BleakDiscoverySource(
            self.session,
            adapter=cfg.scan.adapter,
            scan_timeout_s=cfg.scan.scan_timeout_s,
            scanner_factory=scanner_factory,
            scan_off=scan_off,
        )
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._done: Optional[asyncio.Future] = None

    def _on_outcome(self, outcome: Outcome):
        # The policy may resolve from another thread; hop onto the loop.
        if self._loop is None or self._done is None:
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self._loop:
            self._settle(outcome)
        else:
            self._loop.call_soon_threadsafe(self._settle, outcome)

    def _settle(self, outcome: Outcome):
        if self._done is not None and not self._done.done():
            self._done.set_result(outcome)
        self.source.stop()

    async def choose(self) -> Outcome:
        self._loop = asyncio.get_running_loop()
        self._done = self._loop.create_future()
        self.logger.write({"type": "info", "msg": "chooser_start", "data": {
            "adapter": self.cfg.scan.adapter,
            "target_mac": self.cfg.target.mac,
            "target_name": self.cfg.target.name,
        }})
        scan_task = asyncio.create_task(self._scan())
        try:
            outcome = await asyncio.wait_for(asyncio.shield(self._done), timeout=self.cfg.scan.settle_timeout_s)
        except asyncio.TimeoutError:
            outcome = self._give_up()
        finally:
            self.source.stop()
            await scan_task
        self.logger.write({"type": "info", "msg": "chooser_done", "data": {
            "event": outcome.event.value,
            "device_id": outcome.device_id,
            "devices": len(self.session.registry),
            "retries": self.session.num_retries,
        }})
        return outcome

    async def _scan(self):
        try:
            await self.source.run()
            # A held offer keeps discovery going until the target shows up or
            # the settle timeout cancels it.
            while self.policy.pending is not None and not self.session.resolved and not self.source.stopped:
                await self.source.run()
        except Exception as e:
            self.logger.write({"type": "error", "msg": "scan_failed", "data": {"error": repr(e)}})
            if self._done is not None and not self._done.done():
                self._done.set_exception(e)

    def _give_up(self) -> Outcome:
        self.logger.write({"type": "info", "msg": "settle_timeout", "data": {
            "settle_timeout_s": self.cfg.scan.settle_timeout_s,
            "policy_pending": self.policy.pending is not None,
        }})
        self.policy.cancel()
        # Either the held offer just resolved, or nothing could have resolved it.
        return self.session.outcome or Outcome.cancelled()

    def close(self):
        self.logger.close()


async def run(config_path: Optional[str] = None, **overrides: Any) -> Outcome:
    cfg = load_config(config_path) if config_path else default_config()
    for key, value in overrides.items():
        if value is None:
            continue
        if key in ("mac", "name"):
            setattr(cfg.target, key, value)
        elif key in ("adapter", "scan_timeout_s", "settle_timeout_s"):
            setattr(cfg.scan, key, value)
        else:
            raise TypeError(f"unknown override {key!r}")
    host = ChooserHost(cfg)
    try:
        return await host.choose()
    finally:
        host.close()
