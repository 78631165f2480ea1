"""Cache backends and default on-disk locations for extracted rates."""

from __future__ import annotations

from pathlib import Path
from typing import Final

__all__ = ["DEFAULT_CACHE_DIR", "DEFAULT_JSON_CACHE_PATH", "DEFAULT_SQLITE_CACHE_PATH"]

DEFAULT_CACHE_DIR: Final[Path] = Path.home() / ".cache" / "perdiem_rates"
DEFAULT_JSON_CACHE_PATH: Final[Path] = DEFAULT_CACHE_DIR / "per-diem-cache.json"
DEFAULT_SQLITE_CACHE_PATH: Final[Path] = DEFAULT_CACHE_DIR / "perdiem.db"
