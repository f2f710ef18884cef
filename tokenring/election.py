"""
Ring-based leader election (Chang-Roberts) over the active sub-ring.

Candidates are compared by identity, never by ring index. A candidate
message travels clockwise; stronger actors absorb weaker candidates and put
their own forward, so only the maximum identity's message completes the
loop and its owner announces itself.
"""

from typing import Callable, Optional

from directory import RingDirectory
from models import ElectionMessage, ElectionState, LeaderMessage, Message
from simlog import log_event, LogEntry, EventType, PhaseType, LogLevel


class LeaderElection:
    def __init__(
        self,
        owner: int,
        identity: int,
        directory: RingDirectory,
        forward: Callable[[Message], Optional[int]],
        broadcast: Callable[[Message], None],
        on_elected: Callable[[], None],
    ):
        self.owner = owner
        self.identity = identity
        self.directory = directory
        self._forward = forward
        self._broadcast = broadcast
        self._on_elected = on_elected

        self.state = ElectionState.IDLE
        self.leader_identity: Optional[int] = None
        self.round = 0

    @property
    def is_leader(self) -> bool:
        return (
            self.state is ElectionState.LEADER_KNOWN
            and self.leader_identity == self.identity
        )

    @property
    def leader_index(self) -> Optional[int]:
        if self.leader_identity is None:
            return None
        return self.directory.index_of(self.leader_identity)

    def _leader_alive(self) -> bool:
        index = self.leader_index
        return (
            self.state is ElectionState.LEADER_KNOWN
            and index is not None
            and self.directory.is_active(index)
        )

    def _log(self, event_type: EventType, message: str, payload=None, level=LogLevel.DEBUG):
        log_event(
            LogEntry(
                phase=PhaseType.ELECTION,
                event_type=event_type,
                actor_index=self.owner,
                payload=payload,
                message=message,
                level=level,
            )
        )

    def record_leader(self, leader_identity: int) -> None:
        """Adopt a leader without an election (bootstrap opening)."""
        self.state = ElectionState.LEADER_KNOWN
        self.leader_identity = leader_identity

    def leader_lost(self, index: int) -> bool:
        """True if losing `index` leaves this actor without a confirmed leader."""
        if self.leader_identity is None:
            return True
        return self.directory.identity_of(index) == self.leader_identity

    def on_peer_lost(self, index: int) -> bool:
        """React to actor `index` leaving the ring. Returns True if a new round began.

        While electing, only the loss of a stronger actor matters: this actor
        may have deferred to it, so it puts a fresh candidacy on the ring.
        """
        if self.state is ElectionState.ELECTING:
            if self.directory.identity_of(index) > self.identity:
                return self._begin_round()
            return False
        if self.leader_lost(index):
            return self.start()
        return False

    def start(self) -> bool:
        """Put this actor's own candidacy on the ring. No-op while already electing."""
        if self.state is ElectionState.ELECTING:
            return False
        return self._begin_round()

    def _begin_round(self) -> bool:
        self.state = ElectionState.ELECTING
        self.leader_identity = None
        self.round += 1
        self._log(
            EventType.ELECTION_START,
            f"Actor {self.owner} starts election round {self.round} (identity {self.identity})",
            {"identity": self.identity, "round": self.round},
            level=LogLevel.INFO,
        )
        self._forward(
            ElectionMessage(
                candidate_identity=self.identity, round=self.round, sender=self.owner
            )
        )
        return True

    def on_election_message(self, message: ElectionMessage, participating: bool = True) -> None:
        candidate = message.candidate_identity
        relayed = message.model_copy(update={"sender": self.owner})

        candidate_index = self.directory.index_of(candidate)
        if candidate_index is None or not self.directory.is_active(candidate_index):
            self._log(
                EventType.ELECTION_STALE,
                f"Actor {self.owner} drops candidacy of departed identity {candidate}",
                {"candidate": candidate},
            )
            return

        if not participating:
            # Eliminated actors only keep the ring connected
            self._forward(relayed)
            return

        if candidate > self.identity:
            if not self._leader_alive():
                self.state = ElectionState.ELECTING
                self.leader_identity = None
            self._log(
                EventType.ELECTION_FORWARD,
                f"Actor {self.owner} defers to candidate {candidate}",
                {"candidate": candidate},
            )
            self._forward(relayed)
        elif candidate < self.identity:
            if self.state is ElectionState.ELECTING or self._leader_alive():
                self._log(
                    EventType.ELECTION_ABSORBED,
                    f"Actor {self.owner} absorbs weaker candidate {candidate}",
                    {"candidate": candidate, "state": self.state.value},
                )
                return
            self._log(
                EventType.ELECTION_ABSORBED,
                f"Actor {self.owner} supersedes weaker candidate {candidate}",
                {"candidate": candidate},
            )
            self.start()
        else:
            if self.state is ElectionState.ELECTING and message.round == self.round:
                self.announce()
            else:
                self._log(
                    EventType.ELECTION_STALE,
                    f"Actor {self.owner} drops stale own candidacy (round {message.round})",
                    {"round": message.round, "current_round": self.round},
                )

    def announce(self) -> None:
        """Declare this actor leader, tell every other active actor, resume play."""
        self.state = ElectionState.LEADER_KNOWN
        self.leader_identity = self.identity
        self._log(
            EventType.LEADER_ANNOUNCED,
            f"Actor {self.owner} is the new leader (identity {self.identity})",
            {"identity": self.identity, "round": self.round},
            level=LogLevel.INFO,
        )
        self._broadcast(LeaderMessage(leader_identity=self.identity, sender=self.owner))
        self._on_elected()

    def on_leader_message(self, message: LeaderMessage) -> None:
        leader_index = self.directory.index_of(message.leader_identity)
        if leader_index is None or not self.directory.is_active(leader_index):
            self._log(
                EventType.ELECTION_STALE,
                f"Actor {self.owner} ignores leader {message.leader_identity}, no longer active",
                {"leader_identity": message.leader_identity},
            )
            return

        was_leader = self.is_leader
        self.state = ElectionState.LEADER_KNOWN
        self.leader_identity = message.leader_identity
        self._log(
            EventType.LEADER_RECORDED,
            f"Actor {self.owner} records leader actor {leader_index}",
            {"leader_identity": message.leader_identity, "leader_index": leader_index},
        )
        if message.leader_identity == self.identity and not was_leader:
            self._on_elected()
