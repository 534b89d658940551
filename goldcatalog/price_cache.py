"""Process-wide cached gold price."""

import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional


SOURCE_SCRAPED = "scraped"
SOURCE_FALLBACK = "fallback"


@dataclass(frozen=True)
class PriceSnapshot:
    """An immutable committed gold price."""

    value: float
    source: str
    updated_at: datetime

    def as_dict(self) -> Dict[str, Any]:
        return {
            "price": self.value,
            "source": self.source,
            "updated_at": self.updated_at.isoformat(),
        }


class CachedPrice:
    """Single-writer cell holding the current gold price.

    Readers get whichever snapshot was last committed; a commit replaces the
    snapshot reference in one assignment, so a reader never observes a
    partially written value. The write lock only serializes writers.
    Once set, the cell is never reset to unset.
    """

    def __init__(self):
        self._snapshot: Optional[PriceSnapshot] = None
        self._write_lock = threading.Lock()

    @property
    def is_set(self) -> bool:
        return self._snapshot is not None

    def snapshot(self) -> Optional[PriceSnapshot]:
        return self._snapshot

    def get(self) -> Optional[float]:
        snapshot = self._snapshot
        return snapshot.value if snapshot is not None else None

    def set(self, value: float, source: str = SOURCE_SCRAPED) -> PriceSnapshot:
        if value is None or value < 0:
            raise ValueError(f"Invalid gold price: {value!r}")
        snapshot = PriceSnapshot(value=float(value), source=source, updated_at=datetime.now(timezone.utc))
        with self._write_lock:
            self._snapshot = snapshot
        return snapshot

    def set_default_if_unset(self, default: float) -> bool:
        """Commit ``default`` only when no price was ever committed.

        Returns:
            True if the default was applied.
        """
        with self._write_lock:
            if self._snapshot is not None:
                return False
            self._snapshot = PriceSnapshot(
                value=float(default),
                source=SOURCE_FALLBACK,
                updated_at=datetime.now(timezone.utc),
            )
            return True
