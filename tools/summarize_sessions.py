import argparse
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional


@dataclass
class SessionSummary:
    session_id: str
    outcome: Optional[str] = None
    device_id: str = ""
    reason: Optional[str] = None
    rescans: int = 0
    records: int = 0
    late_events: int = 0
    errors: List[str] = field(default_factory=list)


def parse_ndjson_lines(path: Path) -> Iterable[Dict[str, Any]]:
    with path.open("r", encoding="utf-8") as f:
        for ln, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                yield json.loads(line)
            except json.JSONDecodeError as e:
                print(f"WARN: Failed to parse line {ln}: {e}")


def summarize_sessions(records: Iterable[Dict[str, Any]]) -> List[SessionSummary]:
    by_sid: Dict[str, SessionSummary] = {}
    for rec in records:
        sid = rec.get("session_id")
        if not isinstance(sid, str) or not sid:
            continue
        s = by_sid.get(sid)
        if s is None:
            s = by_sid[sid] = SessionSummary(session_id=sid)
        s.records += 1
        rtype = rec.get("type")
        msg = rec.get("msg")
        data = rec.get("data") if isinstance(rec.get("data"), dict) else {}
        if rtype == "event" and msg in ("selected", "cancelled") and s.outcome is None:
            s.outcome = msg
            s.device_id = data.get("device_id") or ""
            s.reason = data.get("reason")
        elif rtype == "info" and msg == "rescan":
            s.rescans += 1
        elif msg in ("ignored_after_outcome", "resolution_ignored"):
            s.late_events += 1
        elif rtype == "error":
            s.errors.append(str(data.get("error") or msg))
    return list(by_sid.values())


def format_summary(s: SessionSummary) -> str:
    outcome = s.outcome or "pending"
    dev = f" device={s.device_id}" if s.device_id else ""
    why = f" reason={s.reason}" if s.reason else ""
    errs = f" errors={len(s.errors)}" if s.errors else ""
    return f"{s.session_id} {outcome}{dev}{why} rescans={s.rescans} late={s.late_events} records={s.records}{errs}"


def main() -> None:
    ap = argparse.ArgumentParser(description="One line per chooser session in an NDJSON log")
    ap.add_argument("paths", nargs="+", type=Path)
    ap.add_argument("--session", default=None, help="only print this session_id")
    args = ap.parse_args()

    records: List[Dict[str, Any]] = []
    for p in args.paths:
        records.extend(parse_ndjson_lines(p))
    for s in summarize_sessions(records):
        if args.session and s.session_id != args.session:
            continue
        print(format_summary(s))


if __name__ == "__main__":
    main()
