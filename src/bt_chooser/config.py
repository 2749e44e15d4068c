from __future__ import annotations
import yaml
from dataclasses import dataclass, field
from typing import Optional, List, Any, Dict

from .chooser import ChooserParams, FALLBACKS, FALLBACK_FIRST

@dataclass
class ChooserCfg:
    max_scan_retries: int = 5
    # 'first' (registry order) or 'lowest_id'
    fallback: str = FALLBACK_FIRST

    def params(self) -> ChooserParams:
        return ChooserParams(max_scan_retries=self.max_scan_retries, fallback=self.fallback)

@dataclass
class ScanCfg:
    adapter: str = "hci0"
    # length of one discovery pass before IDLE is reported
    scan_timeout_s: float = 8.0
    # host-side limit on the whole request, including a policy holding the offer
    settle_timeout_s: float = 60.0

@dataclass
class TargetCfg:
    # With neither set, the first device found is selected.
    mac: Optional[str] = None
    name: Optional[str] = None

@dataclass
class LoggingCfg:
    dir: str = "./logs"
    file_prefix: str = "chooser"
    # 'regular' drops debug records from the main file unless whitelisted;
    # 'verbose' emits everything.
    mode: str = "regular"
    verbose_whitelist: Optional[List[str]] = None
    # Dual-file logging: compact main log in `dir`, full debug log in
    # `dir/debug_subdir`.
    dual_file: bool = True
    debug_subdir: Optional[str] = "debug"

@dataclass
class AppCfg:
    chooser: ChooserCfg = field(default_factory=ChooserCfg)
    scan: ScanCfg = field(default_factory=ScanCfg)
    target: TargetCfg = field(default_factory=TargetCfg)
    logging: LoggingCfg = field(default_factory=LoggingCfg)


def _as_float(d: Dict[str, Any], key: str, default: float) -> float:
    v = d.get(key, default)
    try:
        return float(v)
    except (TypeError, ValueError):
        return default

def _as_int(d: Dict[str, Any], key: str, default: int) -> int:
    v = d.get(key, default)
    try:
        return int(v)
    except (TypeError, ValueError):
        return default

def _as_str(d: Dict[str, Any], key: str, default: Optional[str]) -> Optional[str]:
    v = d.get(key, default)
    if v is None:
        return None
    # YAML reads bare MACs with colons fine, but names like 1234 arrive as ints
    return str(v)


def default_config() -> AppCfg:
    return AppCfg()


def parse_config(raw: Optional[Dict[str, Any]]) -> AppCfg:
    raw = raw or {}

    ch_raw = dict(raw.get("chooser") or {})
    fallback = str(ch_raw.get("fallback", FALLBACK_FIRST))
    if fallback not in FALLBACKS:
        fallback = FALLBACK_FIRST
    chooser = ChooserCfg(
        max_scan_retries=_as_int(ch_raw, "max_scan_retries", ChooserCfg.max_scan_retries),
        fallback=fallback,
    )

    sc_raw = dict(raw.get("scan") or {})
    scan = ScanCfg(
        adapter=_as_str(sc_raw, "adapter", ScanCfg.adapter) or ScanCfg.adapter,
        scan_timeout_s=_as_float(sc_raw, "scan_timeout_s", ScanCfg.scan_timeout_s),
        settle_timeout_s=_as_float(sc_raw, "settle_timeout_s", ScanCfg.settle_timeout_s),
    )

    tg_raw = dict(raw.get("target") or {})
    target = TargetCfg(mac=_as_str(tg_raw, "mac", None), name=_as_str(tg_raw, "name", None))

    log = LoggingCfg(**(raw.get("logging") or {}))
    return AppCfg(chooser=chooser, scan=scan, target=target, logging=log)


def load_config(path: str) -> AppCfg:
    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)
    return parse_config(raw)
