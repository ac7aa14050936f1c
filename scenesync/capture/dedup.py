"""
Capture event deduplication.

Hosts often fire the same notification several times for one user action
(for example a property change reported by both the entity and an undo
waypoint). DedupWindow collapses identical (path, action, detail) events
that arrive within a short window into one.

Invariants:
    - A suppressed event does not refresh the stored timestamp, so a steady
      stream of duplicates is let through once per window
    - The cache is bounded by the sweep: entries older than 10x the window
      are removed
"""

from __future__ import annotations

import logging
from typing import Dict, Optional, Tuple

logger = logging.getLogger(__name__)

SWEEP_AGE_FACTOR = 10

EventKey = Tuple[str, str, str]


class DedupWindow:
    """Time-window deduplication cache.

    Attributes:
        window: Seconds within which identical events collapse
        sweep_interval: Seconds between cache sweeps
    """

    def __init__(self, window: float = 0.1, sweep_interval: float = 30.0) -> None:
        self.window = window
        self.sweep_interval = sweep_interval
        self._last_seen: Dict[EventKey, float] = {}
        self._last_sweep = 0.0
        self._suppressed = 0

    def should_suppress(
        self,
        path: str,
        action: str,
        detail: Optional[str],
        now: float,
    ) -> bool:
        """Check an event and record it if it is let through.

        Returns:
            True if an identical event was seen less than `window` ago
        """
        key = (path, action, detail or "")
        previous = self._last_seen.get(key)
        if previous is not None and now - previous < self.window:
            self._suppressed += 1
            return True
        self._last_seen[key] = now
        return False

    def sweep(self, now: float) -> int:
        """Remove entries older than 10x the window.

        Returns:
            Number of entries removed
        """
        max_age = self.window * SWEEP_AGE_FACTOR
        stale = [key for key, seen in self._last_seen.items() if now - seen > max_age]
        for key in stale:
            del self._last_seen[key]
        self._last_sweep = now
        if stale:
            logger.debug(f"Cleaned {len(stale)} old deduplication entries")
        return len(stale)

    def maybe_sweep(self, now: float) -> int:
        """Sweep if sweep_interval has elapsed since the last sweep."""
        if now - self._last_sweep > self.sweep_interval:
            return self.sweep(now)
        return 0

    def __len__(self) -> int:
        return len(self._last_seen)

    @property
    def stats(self) -> Dict[str, int]:
        return {"entries": len(self._last_seen), "suppressed": self._suppressed}
