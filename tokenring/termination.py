import threading
from typing import Callable, Optional

from directory import RingDirectory
from models import WinnerMessage
from transport import Transport
from simlog import log_event, LogEntry, EventType, PhaseType, LogLevel


class TerminationDetector:
    """Declares the winner once the live-count reaches exactly 1.

    `announce_winner` is guarded by a one-shot latch: the Winner broadcast
    and the local callback fire at most once per game for this actor.
    """

    def __init__(
        self,
        owner: int,
        directory: RingDirectory,
        transport: Transport,
        on_winner: Callable[[int], None],
    ):
        self.owner = owner
        self.directory = directory
        self.transport = transport
        self.on_winner = on_winner
        self.winner_index: Optional[int] = None
        self._latch = threading.Lock()
        self._fired = False

    @property
    def fired(self) -> bool:
        return self._fired

    def check(self) -> bool:
        """Announce the sole survivor if only one actor is left. Returns True if it did."""
        survivor = self.directory.sole_survivor()
        if survivor is None:
            return False
        return self.announce_winner(survivor)

    def announce_winner(self, winner_index: int) -> bool:
        """Broadcast the winner to every other actor, dead or alive, then signal the owner."""
        with self._latch:
            if self._fired:
                return False
            self._fired = True
        self.winner_index = winner_index

        log_event(
            LogEntry(
                phase=PhaseType.TERMINATION,
                event_type=EventType.WINNER_ANNOUNCED,
                actor_index=self.owner,
                payload={"winner_index": winner_index},
                message=f"Actor {self.owner} announces actor {winner_index} as winner",
            )
        )

        message = WinnerMessage(winner_index=winner_index, sender=self.owner)
        unreachable = []
        for index in range(self.directory.size):
            if index == self.owner:
                continue
            if not self.transport.send(index, message):
                unreachable.append(index)
        if unreachable:
            log_event(
                LogEntry(
                    phase=PhaseType.TERMINATION,
                    event_type=EventType.DELIVERY_FAILURE,
                    actor_index=self.owner,
                    payload={"unreachable": unreachable},
                    message=f"Winner notice not delivered to {unreachable} (already gone)",
                    level=LogLevel.DEBUG,
                )
            )

        self.on_winner(winner_index)
        return True
