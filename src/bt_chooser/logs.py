from __future__ import annotations
import os, json, time, pathlib, uuid
from typing import Optional, IO

class NdjsonLogger:
    def __init__(self, directory: str, file_prefix: str, *, dual_file: bool = False, debug_subdir: Optional[str] = None):
        self.dir = pathlib.Path(directory)
        self.dir.mkdir(parents=True, exist_ok=True)
        self.prefix = file_prefix
        # Dual-file config
        self.dual_file = bool(dual_file)
        self.debug_subdir = debug_subdir or "debug"
        self._debug_dir: Optional[pathlib.Path] = None
        self.seq = 0
        self._fh: Optional[IO[str]] = None
        self._rot_day: Optional[str] = None
        self._path: Optional[pathlib.Path] = None
        self._debug_fh: Optional[IO[str]] = None
        self._debug_path: Optional[pathlib.Path] = None
        # Logging mode: 'regular' or 'verbose'. In regular mode, debug records
        # (offers, ignored sightings, raw discovery states) are dropped from the
        # main file unless their msg is whitelisted.
        self.mode: str = os.getenv("LOG_MODE", "regular")
        wl = os.getenv("LOG_VERBOSE_WHITELIST", "")
        self.verbose_whitelist = set([s.strip() for s in wl.split(",") if s.strip()])
        # Per-run identifiers; one chooser run writes one session_id
        self.session_id: str = os.getenv("SESSION_ID") or uuid.uuid4().hex[:12]
        self.pid: int = os.getpid()
        self.rotate()

    @property
    def path(self) -> Optional[pathlib.Path]:
        return self._path

    @property
    def debug_path(self) -> Optional[pathlib.Path]:
        return self._debug_path

    def _close_handles(self):
        for fh in (self._fh, self._debug_fh):
            if fh:
                try:
                    fh.close()
                except OSError:
                    pass
        self._fh = None
        self._debug_fh = None

    def rotate(self):
        self._close_handles()

        # Time-coded filename, e.g. chooser_YYYYMMDD_HHMMSS.ndjson
        stamp = time.strftime("%Y%m%d_%H%M%S", time.localtime(time.time()))
        day = stamp[:8]
        path = self.dir / f"{self.prefix}_{stamp}.ndjson"
        self._fh = open(path, "a", buffering=1, encoding="utf-8")
        self._path = path
        if self.dual_file:
            self._debug_dir = self.dir / self.debug_subdir
            self._debug_dir.mkdir(parents=True, exist_ok=True)
            dpath = self._debug_dir / f"{self.prefix}_debug_{stamp}.ndjson"
            self._debug_fh = open(dpath, "a", buffering=1, encoding="utf-8")
            self._debug_path = dpath
        self._rot_day = day

        # Daily alias (prefix_YYYYMMDD.ndjson) so tools can find today's log
        self._link_alias(path, self.dir / f"{self.prefix}_{day}.ndjson")
        if self.dual_file and self._debug_dir and self._debug_path:
            self._link_alias(self._debug_path, self._debug_dir / f"{self.prefix}_debug_{day}.ndjson")

    @staticmethod
    def _link_alias(target: pathlib.Path, alias: pathlib.Path):
        # Non-fatal: a missing alias only affects convenience tooling
        try:
            if alias.exists() or alias.is_symlink():
                alias.unlink()
            # Prefer hardlink (same filesystem); fallback to symlink
            try:
                os.link(target, alias)
            except OSError:
                os.symlink(str(target), alias)
        except OSError:
            pass

    def _suppressed(self, obj: dict) -> bool:
        if self.mode != "regular":
            return False
        if obj.get("type") != "debug":
            return False
        msg = obj.get("msg")
        return not (msg and msg in self.verbose_whitelist)

    def write(self, obj: dict):
        obj = dict(obj)
        self.seq += 1
        now = time.time()
        lt = time.localtime(now)
        msec = int((now % 1.0) * 1000)
        obj.setdefault("hms", time.strftime("%H:%M:%S", lt) + f".{msec:03d}")
        # Never write machine timestamps; callers occasionally attach them
        obj.pop("ts_ms", None)
        obj.pop("t_iso", None)
        obj.setdefault("seq", self.seq)
        obj.setdefault("schema", "v1")
        obj.setdefault("session_id", self.session_id)
        obj.setdefault("pid", self.pid)
        if time.strftime("%Y%m%d", lt) != self._rot_day:
            self.rotate()

        line = json.dumps(obj, default=str) + "\n"
        # Debug file always gets the full record
        if self.dual_file and self._debug_fh:
            self._debug_fh.write(line)
        if self._fh and not self._suppressed(obj):
            self._fh.write(line)

    def close(self):
        self._close_handles()
