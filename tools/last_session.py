import argparse
import json
from pathlib import Path
from typing import Optional, Tuple


def latest_ndjson_path(logs_dir: Path, prefix: str = "chooser") -> Optional[Path]:
    # Skip the daily alias (prefix_YYYYMMDD.ndjson); it links to a time-coded file
    candidates = [p for p in logs_dir.glob(f"{prefix}_*_*.ndjson")]
    candidates.sort(key=lambda p: p.stat().st_mtime, reverse=True)
    return candidates[0] if candidates else None


def extract_last_session(path: Path) -> Tuple[Optional[str], Optional[str]]:
    """Return (session_id, outcome) of the last session written to *path*."""
    last_sid: Optional[str] = None
    outcome: Optional[str] = None
    try:
        with path.open("r", encoding="utf-8") as f:
            for line in f:
                if not line.strip():
                    continue
                try:
                    rec = json.loads(line)
                except json.JSONDecodeError:
                    continue
                sid = rec.get("session_id")
                if isinstance(sid, str) and sid:
                    if sid != last_sid:
                        outcome = None
                    last_sid = sid
                if rec.get("type") == "event" and rec.get("msg") in ("selected", "cancelled") and outcome is None:
                    data = rec.get("data") or {}
                    outcome = rec["msg"] if rec["msg"] == "cancelled" else f"selected:{data.get('device_id', '')}"
    except FileNotFoundError:
        return None, None
    return last_sid, outcome


def main() -> None:
    ap = argparse.ArgumentParser(description="Print latest chooser session_id (and outcome) or the latest NDJSON path")
    ap.add_argument("--path", type=Path, default=None, help="Explicit NDJSON path; if omitted, use latest under --logs")
    ap.add_argument("--logs", type=Path, default=Path("logs"))
    ap.add_argument("--prefix", default="chooser")
    ap.add_argument("--print-path", action="store_true", help="Print the NDJSON path instead of session_id")
    args = ap.parse_args()

    target = args.path or latest_ndjson_path(args.logs, args.prefix)
    if not target:
        print("")
        return
    if args.print_path:
        print(str(target))
        return
    sid, outcome = extract_last_session(target)
    print(f"{sid or ''} {outcome or 'pending'}".strip())


if __name__ == "__main__":
    main()
