from __future__ import annotations

import json
import logging
import os
import re
import tempfile
import threading
from pathlib import Path
from typing import List, Optional

from platformdirs import PlatformDirs

from .errors import MalformedRecordError
from .record import SnapshotRecord

logger = logging.getLogger(__name__)

APP_NAME = "graphsnap"
SUFFIX = ".snapshot.json"
_SLOT_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


def default_snapshot_dir() -> Path:
    d = PlatformDirs(appname=APP_NAME, appauthor=False)
    return Path(d.user_data_dir) / "snapshots"


def atomic_write_text(path: Path, text: str) -> None:
    """Write ``text`` to ``path`` so readers see either the old or the new file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=path.name, dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    finally:
        if os.path.exists(tmp_name):
            os.remove(tmp_name)


def read_record(path: Path, *, validate: bool = True) -> SnapshotRecord:
    """Read a snapshot record from a JSON file."""
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise MalformedRecordError(f"Invalid JSON in {path}: {e}") from e
    return SnapshotRecord.from_dict(data, validate=validate)


class SnapshotStore:
    """Named snapshot slots stored as JSON files in one directory."""

    def __init__(self, base_dir: Optional[Path] = None, *, validate: bool = True) -> None:
        self.base_dir = Path(base_dir) if base_dir is not None else default_snapshot_dir()
        self.validate = validate
        self._lock = threading.RLock()

    def path_for(self, name: str) -> Path:
        if not _SLOT_RE.match(name):
            raise ValueError(f"Invalid snapshot slot name: {name!r}")
        return self.base_dir / f"{name}{SUFFIX}"

    def save(self, name: str, record: SnapshotRecord) -> Path:
        path = self.path_for(name)
        text = json.dumps(record.to_dict(), ensure_ascii=False, separators=(",", ":"))
        with self._lock:
            atomic_write_text(path, text)
        logger.info("Saved snapshot %r to %s", name, path)
        return path

    def load(self, name: str) -> SnapshotRecord:
        path = self.path_for(name)
        with self._lock:
            if not path.exists():
                raise FileNotFoundError(path)
            record = read_record(path, validate=self.validate)
        logger.info("Loaded snapshot %r from %s", name, path)
        return record

    def exists(self, name: str) -> bool:
        return self.path_for(name).exists()

    def delete(self, name: str) -> bool:
        path = self.path_for(name)
        with self._lock:
            if not path.exists():
                return False
            path.unlink()
        logger.debug("Deleted snapshot %r", name)
        return True

    def list(self) -> List[str]:
        if not self.base_dir.exists():
            return []
        return sorted(p.name[: -len(SUFFIX)] for p in self.base_dir.glob(f"*{SUFFIX}"))
