from __future__ import annotations

import threading
import time
from typing import Callable

DEFAULT_PRESENCE_TTL_SECONDS = 20.0


def _now_ms() -> int:
    return int(time.time() * 1000)


class PresenceTracker:
    """In-memory heartbeat registry keyed by (room, participant).

    Entries are never garbage collected; staleness is decided at read time
    against the TTL. State is advisory and is lost on restart.
    """

    def __init__(
        self,
        *,
        ttl_seconds: float = DEFAULT_PRESENCE_TTL_SECONDS,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self.ttl_ms = int(ttl_seconds * 1000)
        self._clock = clock
        self._lock = threading.Lock()
        self._last_seen: dict[tuple[str, str], int] = {}

    def touch(self, room_id: str, participant_id: str) -> dict[str, object]:
        if not room_id or not participant_id:
            return {"ok": False}
        timestamp = self._clock()
        with self._lock:
            self._last_seen[(room_id, participant_id)] = timestamp
        return {"ok": True, "timestamp": timestamp}

    def leave(self, room_id: str, participant_id: str) -> dict[str, object]:
        with self._lock:
            self._last_seen.pop((room_id, participant_id), None)
        return {"ok": True}

    purge = leave

    def last_seen(self, room_id: str, participant_id: str) -> int:
        if not room_id or not participant_id:
            return 0
        with self._lock:
            return self._last_seen.get((room_id, participant_id), 0)

    def _entry(self, room_id: str, participant_id: str, now: int) -> dict[str, object]:
        last_seen = self.last_seen(room_id, participant_id)
        return {"last_seen": last_seen, "online": bool(last_seen) and now - last_seen < self.ttl_ms}

    def summary(self, room_id: str, participant_id: str, partner_id: str | None = None) -> dict[str, object]:
        now = self._clock()
        return {
            "self": self._entry(room_id, participant_id, now),
            "partner": self._entry(room_id, partner_id, now) if partner_id else None,
        }

    def clear(self) -> None:
        with self._lock:
            self._last_seen.clear()
