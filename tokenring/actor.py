"""
Ring actor: one logical thread of control per ring position.

Each actor blocks on its own mailbox and runs one handler at a time. All
cross-actor interaction is a one-way notification; every handler tolerates
duplicate and out-of-order delivery.
"""

import random
import threading
from typing import Callable, Dict, List, Optional

from directory import RingDirectory
from election import LeaderElection
from models import (
    ActorEntry,
    ActorReport,
    ElectionMessage,
    EliminatedMessage,
    GameConfig,
    LeaderMessage,
    Message,
    MessageKind,
    Outcome,
    PlayState,
    TokenMessage,
    UndeliveredMessage,
    WinnerMessage,
)
from termination import TerminationDetector
from transport import Mailbox, Transport
from simlog import log_event, logger, LogEntry, EventType, PhaseType, LogLevel


class RingActor:
    def __init__(
        self,
        entry: ActorEntry,
        directory: RingDirectory,
        transport: Transport,
        mailbox: Mailbox,
        config: GameConfig,
        rng: Optional[random.Random] = None,
        poll_interval: float = 0.05,
        opening: str = "first",
    ):
        self.entry = entry
        self.index = entry.index
        self.identity = entry.identity
        self.directory = directory
        self.transport = transport
        self.mailbox = mailbox
        self.config = config
        # Seed None draws from OS entropy; the Primer hands out distinct seeds
        self.rng = rng if rng is not None else random.Random(entry.seed)
        self.poll_interval = poll_interval
        self.opening = opening

        self.state = PlayState.PLAYING
        self.token: Optional[int] = None
        self.outcome: Optional[Outcome] = None
        self.winner_index: Optional[int] = None
        self.tokens_handled = 0
        self.token_history: List[int] = []
        # Newest token generation seen; the first token a leader starts is generation 0
        self.generation = -1
        self.steps = 0
        self.crashed = False
        self._stop = threading.Event()

        self.election = LeaderElection(
            owner=self.index,
            identity=self.identity,
            directory=directory,
            forward=self._forward_along_ring,
            broadcast=self._broadcast,
            on_elected=self.resume_play,
        )
        self.detector = TerminationDetector(
            owner=self.index,
            directory=directory,
            transport=transport,
            on_winner=self._finish,
        )

        self._handlers: Dict[MessageKind, Callable[[Message], None]] = {
            MessageKind.TOKEN: self.on_token_message,
            MessageKind.ELIMINATED: self.on_eliminated_message,
            MessageKind.ELECTION: self.on_election_message,
            MessageKind.LEADER: self.on_leader_message,
            MessageKind.WINNER: self.on_winner_message,
            MessageKind.UNDELIVERED: self.on_undelivered_message,
        }

    def __repr__(self):
        return f"RingActor(index={self.index}, identity={self.identity}, state={self.state.value})"

    @property
    def finished(self) -> bool:
        return self.outcome is not None

    def _log(self, phase, event_type, message, payload=None, level=LogLevel.DEBUG):
        log_event(
            LogEntry(
                step=self.steps,
                phase=phase,
                event_type=event_type,
                actor_index=self.index,
                payload=payload,
                message=message,
                level=level,
            )
        )

    # ------------------------------------------------------------------
    # Receive loop
    # ------------------------------------------------------------------

    def run(self) -> None:
        """Blocking receive loop; returns once the game is over or the actor is stopped."""
        self._log(
            PhaseType.SETUP,
            EventType.ACTOR_START,
            f"Actor {self.index} started (identity {self.identity})",
            {"identity": self.identity, "address": self.entry.address},
        )
        try:
            if not self._stop.is_set():
                self.open_game()
            while not self._stop.is_set():
                message = self.mailbox.get(timeout=self.poll_interval)
                if message is None:
                    continue
                self.handle(message)
        except Exception:
            logger.exception(f"Actor {self.index} failed while handling step {self.steps}")
            raise
        finally:
            if self.outcome is None:
                self.outcome = Outcome.GAME_ENDED
            self._log(
                PhaseType.TERMINATION,
                EventType.ACTOR_EXIT,
                f"Actor {self.index} exits: {self.outcome.value}",
                {"outcome": self.outcome.value, "steps": self.steps},
            )

    def open_game(self) -> None:
        """First action of every actor once the address table is in place."""
        if self.detector.check():
            return

        if self.opening == "election":
            self.election.start()
            return

        self.election.record_leader(self.directory.identity_of(0))
        if self.index == 0:
            self.resume_play()

    def handle(self, message: Message) -> None:
        if self.finished:
            logger.debug(f"[IGNORED] Actor {self.index} already finished, drops {message.kind.value}")
            return
        self.steps += 1
        self._handlers[message.kind](message)

    def stop(self) -> None:
        """Cancellation signal: unblocks the receive loop."""
        self._stop.set()
        self.mailbox.interrupt()

    def crash(self) -> None:
        """Vanish without telling anyone.

        Later sends to this actor fail, and whatever was still queued for it
        goes back to the senders as undelivered.
        """
        self.crashed = True
        self._log(
            PhaseType.PLAY,
            EventType.ACTOR_CRASHED,
            f"Actor {self.index} crashed",
            level=LogLevel.WARNING,
        )
        self.stop()
        self.transport.close_mailbox(self.index)

    # ------------------------------------------------------------------
    # Token game
    # ------------------------------------------------------------------

    def _is_stale(self, message: TokenMessage) -> bool:
        """True for a token older than one this actor has already seen; such a token is dropped."""
        if message.generation < self.generation:
            self._log(
                PhaseType.PLAY,
                EventType.TOKEN_STALE,
                f"Actor {self.index} drops stale token {message.value} "
                f"(generation {message.generation} < {self.generation})",
                {"value": message.value, "generation": message.generation, "current": self.generation},
            )
            return True
        self.generation = message.generation
        return False

    def on_token_message(self, message: TokenMessage) -> None:
        if self._is_stale(message):
            return
        if self.state is PlayState.ELIMINATED:
            self._log(
                PhaseType.PLAY,
                EventType.TOKEN_RELAYED,
                f"Actor {self.index} is out, relays token {message.value}",
                {"value": message.value, "from": message.sender},
            )
            self._relay_token(message)
            return
        self.on_token(message.value)

    def _relay_token(self, message: TokenMessage) -> None:
        self._forward_along_ring(
            message.model_copy(update={"sender": self.index}), token_lost=True
        )

    def on_token(self, value: int) -> None:
        decrement = self.rng.randrange(self.config.max_decrement)
        result = value - decrement
        self.tokens_handled += 1
        self.token_history.append(value)

        self._log(
            PhaseType.PLAY,
            EventType.TOKEN_RECEIVED,
            f"Actor {self.index}; token received: {value}; token result: {result}",
            {"received": value, "decrement": decrement, "result": result},
            level=LogLevel.INFO,
        )

        if result < 0:
            self._eliminate_self()
            return

        self.token = result
        self._pass_token(result)

    def _pass_token(self, value: int) -> None:
        nxt = self._forward_along_ring(
            TokenMessage(value=value, generation=self.generation, sender=self.index),
            token_lost=True,
        )
        if nxt is not None:
            self._log(
                PhaseType.PLAY,
                EventType.TOKEN_FORWARDED,
                f"Actor {self.index} passes token {value} to actor {nxt}",
                {"value": value, "to": nxt},
            )

    def resume_play(self) -> None:
        """Start a fresh token with the initial value (leader duty)."""
        if self.state is not PlayState.PLAYING or self.finished:
            return
        if self.detector.check():
            return
        self.generation += 1
        self._log(
            PhaseType.PLAY,
            EventType.TOKEN_RESTARTED,
            f"Actor {self.index} starts token generation {self.generation} at {self.config.initial_token}",
            {"value": self.config.initial_token, "generation": self.generation},
            level=LogLevel.INFO,
        )
        self.on_token(self.config.initial_token)

    # ------------------------------------------------------------------
    # Elimination & broadcast
    # ------------------------------------------------------------------

    def _eliminate_self(self) -> None:
        self.state = PlayState.ELIMINATED
        self.token = None
        self._log(
            PhaseType.PLAY,
            EventType.ACTOR_ELIMINATED,
            f"Actor {self.index} is eliminated",
            {"tokens_handled": self.tokens_handled},
            level=LogLevel.INFO,
        )

        if self.directory.mark_inactive(self.index):
            # The survivor is already known here; the Winner broadcast replaces the notice
            self.detector.check()
            return

        self._broadcast(
            EliminatedMessage(
                index=self.index, token_lost=True, generation=self.generation, sender=self.index
            )
        )

    def on_eliminated_message(self, message: EliminatedMessage) -> None:
        if message.index == self.index:
            return
        self._log(
            PhaseType.PLAY,
            EventType.ELIMINATION_NOTICE,
            f"Actor {self.index} learns actor {message.index} is out",
            {"index": message.index, "token_lost": message.token_lost, "from": message.sender},
        )
        self._apply_elimination(message.index, message.token_lost, message.generation)

    def _apply_elimination(self, index: int, token_lost: bool, generation: int = 0) -> None:
        if not self.directory.is_active(index):
            return
        if self.directory.live_count <= 1:
            return

        if self.directory.mark_inactive(index):
            self.detector.check()
            return

        if self.state is not PlayState.PLAYING:
            return

        if self.election.on_peer_lost(index):
            return

        if token_lost and self.election.is_leader:
            if generation < self.generation:
                logger.debug(
                    f"[LEADER] Actor {self.index} ignores loss of generation {generation}, "
                    f"generation {self.generation} is in play"
                )
                return
            logger.debug(f"[LEADER] Actor {self.index} replaces token lost with actor {index}")
            self.resume_play()

    def _peer_lost(self, index: int, token_lost: bool, generation: int = 0) -> None:
        """Treat an unreachable peer exactly like an elimination, and tell the others."""
        if self.finished or not self.directory.is_active(index):
            return

        self._log(
            PhaseType.PLAY,
            EventType.PEER_UNREACHABLE,
            f"Actor {self.index} cannot reach actor {index}, treating it as eliminated",
            {"index": index, "token_lost": token_lost},
            level=LogLevel.WARNING,
        )
        self._apply_elimination(index, token_lost, generation)
        if not self.finished:
            self._broadcast(
                EliminatedMessage(
                    index=index, token_lost=token_lost, generation=generation, sender=self.index
                )
            )

    def _broadcast(self, message: Message) -> None:
        """Send `message` to every other actor this actor still believes active."""
        for target in self.directory.active_indices():
            if target == self.index or not self.directory.is_active(target):
                continue
            if self.finished:
                return
            if not self.transport.send(target, message):
                self._peer_lost(target, token_lost=False)

    def _forward_along_ring(self, message: Message, token_lost: bool = False) -> Optional[int]:
        """Deliver to the next active successor, skipping hops that turn out dead.

        A token that cannot be delivered is dropped (the leader restarts play);
        anything else is re-routed to the following successor.
        """
        while not self.finished:
            nxt = self.directory.next_active(self.index)
            if nxt is None:
                if self.state is PlayState.PLAYING:
                    self.detector.announce_winner(self.index)
                else:
                    self.detector.check()
                return None

            if self.transport.send(nxt, message):
                return nxt

            if token_lost:
                self._log(
                    PhaseType.PLAY,
                    EventType.TOKEN_LOST,
                    f"Token from actor {self.index} lost at actor {nxt}",
                    {"to": nxt},
                    level=LogLevel.WARNING,
                )
                self._peer_lost(nxt, token_lost=True, generation=message.generation)
                return None
            self._peer_lost(nxt, token_lost=False)
        return None

    def on_undelivered_message(self, message: UndeliveredMessage) -> None:
        """A message this actor sent was still queued when its target went away.

        The target is lost like any unreachable peer. A returned token is
        carried on to the next live successor, as the target would have done
        with it; a returned candidacy is re-routed the same way.
        """
        original = message.message
        self._log(
            PhaseType.PLAY,
            EventType.DELIVERY_RETURNED,
            f"Actor {self.index} gets back {original.kind.value} never read by actor {message.target}",
            {"target": message.target, "kind": original.kind.value},
            level=LogLevel.INFO,
        )
        self._peer_lost(message.target, token_lost=False)
        if self.finished:
            return

        if original.kind is MessageKind.TOKEN:
            if not self._is_stale(original):
                self._relay_token(original)
        elif original.kind is MessageKind.ELECTION:
            self._forward_along_ring(original)

    # ------------------------------------------------------------------
    # Election & termination
    # ------------------------------------------------------------------

    def on_election_message(self, message: ElectionMessage) -> None:
        self.election.on_election_message(
            message, participating=self.state is PlayState.PLAYING
        )

    def on_leader_message(self, message: LeaderMessage) -> None:
        self.election.on_leader_message(message)

    def on_winner_message(self, message: WinnerMessage) -> None:
        self._log(
            PhaseType.TERMINATION,
            EventType.WINNER_RECEIVED,
            f"Actor {self.index} told actor {message.winner_index} won",
            {"winner_index": message.winner_index, "from": message.sender},
        )
        self._finish(message.winner_index)

    def _finish(self, winner_index: int) -> None:
        if self.finished:
            return
        self.winner_index = winner_index
        if winner_index == self.index:
            self.state = PlayState.WON
            self.outcome = Outcome.WON
        elif self.state is PlayState.ELIMINATED:
            self.outcome = Outcome.LOST
        else:
            self.outcome = Outcome.GAME_ENDED
        logger.debug(f"[DONE] Actor {self.index} finished: {self.outcome.value}")
        self.stop()

    def report(self) -> ActorReport:
        return ActorReport(
            index=self.index,
            identity=self.identity,
            outcome=self.outcome or Outcome.GAME_ENDED,
            eliminated=self.state is PlayState.ELIMINATED,
            crashed=self.crashed,
            tokens_handled=self.tokens_handled,
            last_token=self.token,
            winner_index=self.winner_index,
        )
