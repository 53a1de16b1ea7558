"""Per-key notification cooldown with atomic check-and-set.

One instance suppresses whale sub-signal notifications (60s, keyed by
symbol); a separate instance throttles directional alerts (keyed by
symbol and direction). Entries are created on first alert, overwritten on
each later one, and never deleted: the map is bounded by symbol count.
"""

import asyncio
import time


class CooldownTracker:
    """Tracks the last alert time per key.

    Uses asyncio.Lock so concurrent per-symbol tasks cannot both pass the
    check for the same key.
    """

    def __init__(self, cooldown_seconds: float) -> None:
        self._cooldown = cooldown_seconds
        self._last_alert: dict[str, float] = {}
        self._lock = asyncio.Lock()

    @property
    def cooldown_seconds(self) -> float:
        return self._cooldown

    async def should_alert(self, key: str, now: float | None = None) -> bool:
        """Return True and record ``now`` if ``key`` is outside its cooldown.

        A cooldown of 0 (or less) always allows.
        """
        at = now if now is not None else time.time()
        async with self._lock:
            last = self._last_alert.get(key)
            if self._cooldown > 0 and last is not None and at - last < self._cooldown:
                return False
            self._last_alert[key] = at
            return True

    async def last_alert_at(self, key: str) -> float | None:
        async with self._lock:
            return self._last_alert.get(key)
