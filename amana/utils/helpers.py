"""Small filesystem and clock helpers."""

import re
from datetime import datetime
from pathlib import Path
from zoneinfo import ZoneInfo

_UNSAFE_KEY_RE = re.compile(r"[^A-Za-z0-9_\-]")


def ensure_dir(path: Path) -> Path:
    """Create *path* (and parents) if missing; return it."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def safe_filename(key: str) -> str:
    """Map an arbitrary conversation key to a filesystem-safe stem."""
    return _UNSAFE_KEY_RE.sub("_", str(key))


def now_in(tz_name: str) -> datetime:
    """Timezone-aware 'now' in the given IANA zone."""
    return datetime.now(ZoneInfo(tz_name))
