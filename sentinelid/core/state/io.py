from __future__ import annotations

import json
import os
import shutil
import tempfile
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple


@dataclass(frozen=True)
class StatePaths:
    state_dir: str = "state"
    state_file: str = "state.json"

    @property
    def state_path(self) -> str:
        return os.path.join(self.state_dir, self.state_file)

    @property
    def backups_dir(self) -> str:
        return os.path.join(self.state_dir, "backups")

    @property
    def last_known_good_dir(self) -> str:
        return os.path.join(self.state_dir, "last_known_good")

    @property
    def last_known_good_path(self) -> str:
        return os.path.join(self.last_known_good_dir, self.state_file)


def _ts() -> str:
    return time.strftime("%Y%m%d_%H%M%S", time.gmtime())


def ensure_dirs(paths: StatePaths) -> None:
    os.makedirs(paths.state_dir, exist_ok=True)
    os.makedirs(paths.backups_dir, exist_ok=True)
    os.makedirs(paths.last_known_good_dir, exist_ok=True)


def read_json(path: str) -> Tuple[bool, Dict[str, Any], Optional[str]]:
    """
    Returns (ok, data, error). error is "missing" for an absent file,
    otherwise a short description of why the content is unusable.
    """
    if not os.path.exists(path):
        return False, {}, "missing"
    try:
        with open(path, "r", encoding="utf-8") as f:
            obj = json.load(f)
    except json.JSONDecodeError as e:
        return False, {}, f"corrupt_json:{e}"
    except (OSError, UnicodeDecodeError) as e:
        return False, {}, f"unreadable:{e}"
    if not isinstance(obj, dict):
        return False, {}, "not_object"
    return True, obj, None


def atomic_write_json(path: str, obj: Dict[str, Any], *, backups_dir: str, keep: int = 20, prefix: str = "state") -> None:
    """
    Write `obj` next to `path` in a temp file, fsync, then os.replace.
    The previous file (if any) is copied into `backups_dir` first.
    Raises OSError/TypeError/ValueError; the target is untouched on failure.
    """
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    payload = json.dumps(obj, indent=2, ensure_ascii=False, sort_keys=True) + "\n"

    if os.path.exists(path) and keep > 0:
        os.makedirs(backups_dir, exist_ok=True)
        b = os.path.join(backups_dir, f"{prefix}.{_ts()}.{time.time_ns() % 1_000_000:06d}.json")
        try:
            shutil.copy2(path, b)
        except OSError:
            pass
        _enforce_backup_retention(backups_dir, keep=keep, prefix=prefix)

    fd, tmp = tempfile.mkstemp(prefix=".tmp_state_", suffix=".json", dir=os.path.dirname(path) or ".")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(payload)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    finally:
        try:
            if os.path.exists(tmp):
                os.remove(tmp)
        except OSError:
            pass


def _enforce_backup_retention(backups_dir: str, *, keep: int, prefix: str = "state") -> None:
    try:
        files = [
            os.path.join(backups_dir, f)
            for f in os.listdir(backups_dir)
            if f.startswith(f"{prefix}.") and f.endswith(".json") and not f.endswith(".corrupt.json")
        ]
    except OSError:
        return
    files.sort(key=lambda p: os.path.getmtime(p), reverse=True)
    for p in files[int(keep) :]:
        try:
            os.remove(p)
        except OSError:
            pass


def write_last_known_good(paths: StatePaths) -> None:
    try:
        if os.path.exists(paths.state_path):
            os.makedirs(paths.last_known_good_dir, exist_ok=True)
            shutil.copy2(paths.state_path, paths.last_known_good_path)
    except OSError:
        return


def quarantine_corrupt(paths: StatePaths) -> Optional[str]:
    """
    Move an unusable state file to backups/state.<ts>.corrupt.json so the
    next save does not overwrite the evidence. Returns the new path.
    """
    if not os.path.exists(paths.state_path):
        return None
    os.makedirs(paths.backups_dir, exist_ok=True)
    dst = os.path.join(paths.backups_dir, f"state.{_ts()}.corrupt.json")
    try:
        shutil.move(paths.state_path, dst)
    except OSError:
        return None
    return dst
