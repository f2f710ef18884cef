"""Core data models for the token ring elimination game."""
from enum import Enum
from typing import Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

# Upper bound on ring size
MAX_PEERS = 100


class ConfigurationError(ValueError):
    """Raised when a game cannot be configured; fatal before any actor exists."""


class PlayState(str, Enum):
    """Token game state of a single actor."""

    PLAYING = "playing"
    ELIMINATED = "eliminated"
    WON = "won"


class ElectionState(str, Enum):
    """Leader election state of a single actor."""

    IDLE = "idle"
    ELECTING = "electing"
    LEADER_KNOWN = "leader_known"


class Outcome(str, Enum):
    """Completion signal reported by each actor to its owner."""

    WON = "won"
    LOST = "lost"
    GAME_ENDED = "game_ended"


class MessageKind(str, Enum):
    TOKEN = "token"
    ELIMINATED = "eliminated"
    ELECTION = "election"
    LEADER = "leader"
    WINNER = "winner"
    UNDELIVERED = "undelivered"


class TokenMessage(BaseModel):
    """Carries the current token value to the next active actor."""
    model_config = ConfigDict(frozen=True)

    kind: Literal[MessageKind.TOKEN] = MessageKind.TOKEN
    value: int
    generation: int = 0  # bumped by every leader restart
    sender: Optional[int] = None


class EliminatedMessage(BaseModel):
    """Broadcast when actor `index` leaves the ring."""
    model_config = ConfigDict(frozen=True)

    kind: Literal[MessageKind.ELIMINATED] = MessageKind.ELIMINATED
    index: int
    token_lost: bool = True  # False when the actor was found unreachable with no token in hand
    generation: int = 0  # generation of the lost token
    sender: Optional[int] = None


class ElectionMessage(BaseModel):
    """Candidate identity circulating during a leader election."""
    model_config = ConfigDict(frozen=True)

    kind: Literal[MessageKind.ELECTION] = MessageKind.ELECTION
    candidate_identity: int
    round: int = 1  # originator's election round
    sender: Optional[int] = None


class LeaderMessage(BaseModel):
    """Announces the elected leader."""
    model_config = ConfigDict(frozen=True)

    kind: Literal[MessageKind.LEADER] = MessageKind.LEADER
    leader_identity: int
    sender: Optional[int] = None


class WinnerMessage(BaseModel):
    """Terminal broadcast; ends the game."""
    model_config = ConfigDict(frozen=True)

    kind: Literal[MessageKind.WINNER] = MessageKind.WINNER
    winner_index: int
    sender: Optional[int] = None


GameMessage = Union[
    TokenMessage, EliminatedMessage, ElectionMessage, LeaderMessage, WinnerMessage
]


class UndeliveredMessage(BaseModel):
    """Hands a message back to its sender when the target closed with it still queued."""
    model_config = ConfigDict(frozen=True)

    kind: Literal[MessageKind.UNDELIVERED] = MessageKind.UNDELIVERED
    target: int
    message: GameMessage
    sender: Optional[int] = None


Message = Union[GameMessage, UndeliveredMessage]


class GameConfig(BaseModel):
    """Immutable game parameters supplied at start."""
    model_config = ConfigDict(frozen=True)

    peer_count: int = Field(ge=1, le=MAX_PEERS)
    initial_token: int = Field(ge=1)
    max_decrement: int = Field(ge=1)


class TransportConfig(BaseModel):
    """Delivery settings for the in-process transport."""
    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(default=3, ge=1, le=10)
    retry_backoff: float = Field(default=0.01, ge=0, le=1.0)
    mailbox_capacity: int = Field(default=0, ge=0)  # 0 means unbounded
    poll_interval: float = Field(default=0.05, gt=0)


class SimulationConfig(BaseModel):
    """Run-level settings for one game."""
    model_config = ConfigDict(frozen=True)

    seed: Optional[int] = None
    identity: Literal["random", "index"] = "random"
    opening: Literal["first", "election"] = "first"
    max_duration: Optional[float] = Field(default=30.0, gt=0)


class ActorEntry(BaseModel):
    """Bootstrap record for one actor: ring position, identity and address."""
    model_config = ConfigDict(frozen=True)

    index: int = Field(ge=0)
    identity: int
    address: str
    seed: Optional[int] = None


class Roster(BaseModel):
    """Complete address table handed to every actor before the game starts."""
    model_config = ConfigDict(frozen=True)

    entries: List[ActorEntry]

    def addresses(self) -> Dict[int, str]:
        """Map ring index to address."""
        return {entry.index: entry.address for entry in self.entries}


class ActorReport(BaseModel):
    """Per-actor completion record collected by the owner."""

    index: int
    identity: int
    outcome: Outcome
    eliminated: bool = False
    crashed: bool = False
    tokens_handled: int = 0
    last_token: Optional[int] = None
    winner_index: Optional[int] = None


class GameResult(BaseModel):
    """Overall outcome of one game."""

    sim_id: Optional[str] = None
    winner_index: Optional[int] = None
    reports: List[ActorReport] = []
    messages_sent: Dict[str, int] = {}
    delivery_failures: int = 0
    duration_s: float = 0.0
    timed_out: bool = False

    def outcome_of(self, index: int) -> Outcome:
        """Get the completion signal reported by one actor."""
        return self.reports[index].outcome

    def serialize_for_snapshot(self) -> dict:
        """Serialize result for database storage."""
        import json

        return {
            "sim_id": self.sim_id,
            "winner_index": self.winner_index,
            "duration_s": self.duration_s,
            "timed_out": self.timed_out,
            "delivery_failures": self.delivery_failures,
            "messages_sent": json.dumps(self.messages_sent),
            "reports": json.dumps([report.model_dump(mode="json") for report in self.reports]),
        }
