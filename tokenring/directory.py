import threading
from typing import Dict, List, Optional

from models import ActorEntry, ConfigurationError
from simlog import log_event, LogEntry, EventType, PhaseType, LogLevel


class RingDirectory:
    """One actor's view of the ring: entries by index plus their liveness flags.

    Entries never change after bootstrap; only the active flags flip, once,
    from True to False.
    """

    def __init__(self, entries: List[ActorEntry], owner: Optional[int] = None):
        ordered = sorted(entries, key=lambda entry: entry.index)
        if not ordered:
            raise ConfigurationError("Ring directory needs at least one actor")
        if [entry.index for entry in ordered] != list(range(len(ordered))):
            raise ConfigurationError("Actor indices must be exactly 0..N-1")
        identities = [entry.identity for entry in ordered]
        if len(set(identities)) != len(identities):
            raise ConfigurationError("Actor identities must be distinct")

        self.owner = owner
        self._entries = ordered
        self._by_identity: Dict[int, int] = {
            entry.identity: entry.index for entry in ordered
        }
        self._active = [True] * len(ordered)
        self._live_count = len(ordered)
        self._lock = threading.Lock()

    @property
    def size(self) -> int:
        return len(self._entries)

    @property
    def live_count(self) -> int:
        return self._live_count

    def address_of(self, index: int) -> str:
        return self._entries[index].address

    def identity_of(self, index: int) -> int:
        return self._entries[index].identity

    def index_of(self, identity: int) -> Optional[int]:
        return self._by_identity.get(identity)

    def is_active(self, index: int) -> bool:
        return self._active[index]

    def active_indices(self) -> List[int]:
        return [i for i, active in enumerate(self._active) if active]

    def sole_survivor(self) -> Optional[int]:
        """Index of the only active entry, or None while more than one remains."""
        active = self.active_indices()
        return active[0] if len(active) == 1 else None

    def next_active(self, from_index: int) -> Optional[int]:
        """Next active index clockwise from `from_index`, wrapping at most once.

        Returns None when no other entry is active.
        """
        n = len(self._entries)
        flags = list(self._active)  # snapshot
        for step in range(1, n):
            candidate = (from_index + step) % n
            if flags[candidate]:
                return candidate
        return None

    def mark_inactive(self, index: int) -> bool:
        """Flip `index` to inactive. Idempotent.

        Returns True only when this call brought the live-count to exactly 1.
        """
        with self._lock:
            if not self._active[index]:
                return False
            self._active[index] = False
            self._live_count -= 1
            live_count = self._live_count

        log_event(
            LogEntry(
                phase=PhaseType.PLAY,
                event_type=EventType.MARKED_INACTIVE,
                actor_index=self.owner,
                payload={"index": index, "live_count": live_count},
                message=f"Actor {self.owner} view: actor {index} inactive, {live_count} live",
                level=LogLevel.DEBUG,
            )
        )
        return live_count == 1
