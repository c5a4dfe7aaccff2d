"""Atomic file I/O for the conversation store and the audit log.

Writes to one path are serialized with an ``asyncio.Lock`` and go through a
temp file in the same directory (fsync, then ``os.replace``), so a crash
never leaves a half-written conversation behind.
"""

import asyncio
import json
import os
import tempfile
from collections import defaultdict
from pathlib import Path
from typing import Any

from loguru import logger


class AtomicWriteError(OSError):
    """A file could not be replaced; the previous content is intact."""


class AtomicFileWriter:
    def __init__(self) -> None:
        self._locks: defaultdict[Path, asyncio.Lock] = defaultdict(asyncio.Lock)

    def _lock_for(self, path: Path) -> asyncio.Lock:
        return self._locks[path.resolve()]

    async def write_json(self, path: Path, data: Any) -> None:
        """Replace *path* with *data* as pretty-printed UTF-8 JSON.

        Raises:
            AtomicWriteError: serialization or the filesystem failed.
        """
        try:
            payload = (json.dumps(data, indent=2, ensure_ascii=False) + "\n").encode("utf-8")
        except (TypeError, ValueError) as exc:
            raise AtomicWriteError(f"cannot serialize {path.name}: {exc}") from exc

        async with self._lock_for(path):
            tmp: str | None = None
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
                with os.fdopen(fd, "wb") as fh:
                    fh.write(payload)
                    fh.flush()
                    os.fsync(fh.fileno())
                os.replace(tmp, path)
                tmp = None
            except OSError as exc:
                logger.error(f"Atomic write failed for {path}: {exc}")
                raise AtomicWriteError(f"atomic write failed for {path}: {exc}") from exc
            finally:
                if tmp:
                    Path(tmp).unlink(missing_ok=True)

    async def append_json_line(self, path: Path, record: Any) -> bool:
        """Append *record* as one JSONL line; False on failure, never raises."""
        try:
            line = json.dumps(record, ensure_ascii=False, default=str)
        except (TypeError, ValueError) as exc:
            logger.error(f"Cannot serialize record for {path}: {exc}")
            return False
        async with self._lock_for(path):
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                with path.open("a", encoding="utf-8") as fh:
                    fh.write(line + "\n")
            except OSError as exc:
                logger.error(f"Append failed for {path}: {exc}")
                return False
        return True
