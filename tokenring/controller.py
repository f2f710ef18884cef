"""Controller for running one token ring game and collecting its outcome."""

import threading
import time
from typing import Dict, List, Optional

from actor import RingActor
from directory import RingDirectory
from models import (
    GameConfig,
    GameResult,
    Outcome,
    Roster,
    SimulationConfig,
    TransportConfig,
)
from transport import Transport
from simlog import EventType, LogEntry, LogLevel, PhaseType, log_event, logger


class Controller:
    """Owning collaborator: builds the actors, runs them, reports the winner."""

    def __init__(
        self,
        game_config: GameConfig,
        transport_config: Optional[TransportConfig] = None,
        simulation_config: Optional[SimulationConfig] = None,
        sim_id: Optional[str] = None,
    ):
        self.game_config = game_config
        self.transport_config = transport_config or TransportConfig()
        self.simulation_config = simulation_config or SimulationConfig()
        self.sim_id = sim_id
        self.roster: Optional[Roster] = None
        self.transport: Optional[Transport] = None
        self.directories: Dict[int, RingDirectory] = {}
        self.actors: List[RingActor] = []
        self._winner_latch = threading.Lock()
        self._winner_reported = False

    def configure(self, roster: Roster, transport: Optional[Transport] = None) -> None:
        """Wire one directory view, one mailbox and one actor per roster entry."""
        if len(roster.entries) != self.game_config.peer_count:
            raise ValueError(
                f"Roster has {len(roster.entries)} entries, game expects {self.game_config.peer_count}"
            )

        self.roster = roster
        self.transport = transport or Transport(roster.addresses(), self.transport_config)
        self.directories = {}
        self.actors = []

        for entry in roster.entries:
            directory = RingDirectory(roster.entries, owner=entry.index)
            mailbox = self.transport.open_mailbox(entry.index)
            self.directories[entry.index] = directory
            self.actors.append(
                RingActor(
                    entry=entry,
                    directory=directory,
                    transport=self.transport,
                    mailbox=mailbox,
                    config=self.game_config,
                    poll_interval=self.transport_config.poll_interval,
                    opening=self.simulation_config.opening,
                )
            )

    def run(self, announce: bool = True) -> GameResult:
        """Run every actor on its own thread until they have all exited.

        With `announce` False the caller emits the final winner line itself
        through `announce_winner`.
        """
        if not self.actors:
            raise RuntimeError("No actors configured.")

        log_event(
            LogEntry(
                phase=PhaseType.SETUP,
                event_type=EventType.GAME_START,
                payload={
                    "peers": self.game_config.peer_count,
                    "initial_token": self.game_config.initial_token,
                    "max_decrement": self.game_config.max_decrement,
                    "opening": self.simulation_config.opening,
                },
                message=(
                    f"Game start: {self.game_config.peer_count} actors, "
                    f"token {self.game_config.initial_token}, max decrement {self.game_config.max_decrement}"
                ),
            )
        )

        started = time.monotonic()
        threads = [
            threading.Thread(target=actor.run, name=actor.entry.address, daemon=True)
            for actor in self.actors
        ]
        for thread in threads:
            thread.start()

        max_duration = self.simulation_config.max_duration
        deadline = None if max_duration is None else started + max_duration
        for thread in threads:
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            thread.join(remaining)

        timed_out = any(thread.is_alive() for thread in threads)
        if timed_out:
            log_event(
                LogEntry(
                    phase=PhaseType.TERMINATION,
                    event_type=EventType.GAME_TIMEOUT,
                    payload={"max_duration": max_duration},
                    message=f"Game still running after {max_duration}s, cancelling actors",
                    level=LogLevel.WARNING,
                )
            )
            for actor in self.actors:
                actor.stop()
            for thread in threads:
                thread.join(self.transport_config.poll_interval * 10)
                if thread.is_alive():
                    logger.warning(f"{thread.name} did not stop")

        for actor in self.actors:
            actor.mailbox.close()

        duration = time.monotonic() - started
        reports = [actor.report() for actor in self.actors]
        winner_index = self._resolve_winner(reports)
        if announce and winner_index is not None:
            self.announce_winner(winner_index)

        result = GameResult(
            sim_id=self.sim_id,
            winner_index=winner_index,
            reports=reports,
            messages_sent=self.transport.stats(),
            delivery_failures=self.transport.failures,
            duration_s=round(duration, 4),
            timed_out=timed_out and winner_index is None,
        )

        log_event(
            LogEntry(
                phase=PhaseType.TERMINATION,
                event_type=EventType.GAME_COMPLETE,
                payload={
                    "winner_index": winner_index,
                    "duration_s": result.duration_s,
                    "messages_sent": result.messages_sent,
                    "delivery_failures": result.delivery_failures,
                },
                message=f"Game complete in {result.duration_s:.3f}s, {sum(result.messages_sent.values())} messages",
            )
        )
        return result

    def _resolve_winner(self, reports) -> Optional[int]:
        for report in reports:
            if report.outcome is Outcome.WON:
                return report.index
        claimed = {report.winner_index for report in reports if report.winner_index is not None}
        if len(claimed) > 1:
            logger.error(f"Actors disagree on the winner: {sorted(claimed)}")
            return None
        return claimed.pop() if claimed else None

    def announce_winner(self, winner_index: int) -> None:
        """Emit the final line for the whole game, once."""
        with self._winner_latch:
            if self._winner_reported:
                return
            self._winner_reported = True
        log_event(
            LogEntry(
                phase=PhaseType.TERMINATION,
                event_type=EventType.WINNER_ANNOUNCED,
                payload={"winner_index": winner_index},
                message=f"Winner resolved: actor {winner_index}",
            )
        )
        print(f"Actor {winner_index} is the winner", flush=True)

    def crash(self, index: int) -> None:
        """Crash-inject actor `index`; used by tests and demos."""
        self.actors[index].crash()
