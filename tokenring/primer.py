from models import ActorEntry, ConfigurationError, GameConfig, Roster, SimulationConfig
import random
from typing import Optional
from simlog import log_event, logger, LogEntry, EventType, PhaseType, LogLevel

# Identities are drawn from the classic 16-bit process id range
IDENTITY_LOW = 300
IDENTITY_HIGH = 32768


class Primer:
    """Primer class to generate the bootstrap address table for one game."""

    def __init__(self, game_config: GameConfig, simulation_config: Optional[SimulationConfig] = None):
        self.gc = game_config
        self.sc = simulation_config or SimulationConfig()

    def generate_roster(self, seed: Optional[int] = None) -> Roster:
        """Assigns index, address, identity and decrement seed to every actor.

        With `seed` None identities and decrements come from OS entropy;
        otherwise actor i gets seed `seed + i`, so no two actors share a stream.
        """
        rng = random.Random(seed)  # Use isolated random instance
        n = self.gc.peer_count

        identities = self._generate_identities(rng, n)

        entries = [
            ActorEntry(
                index=i,
                identity=identities[i],
                address=f"actor-{i}",
                seed=None if seed is None else seed + i,
            )
            for i in range(n)
        ]

        leader_index = max(entries, key=lambda entry: entry.identity).index
        log_event(
            LogEntry(
                phase=PhaseType.SETUP,
                event_type=EventType.ROSTER_GENERATED,
                payload={
                    "peers": n,
                    "identity_mode": self.sc.identity,
                    "identities": identities,
                    "strongest": leader_index,
                },
                message=f"Roster ready: {n} actors, strongest identity at actor {leader_index}",
                level=LogLevel.DEBUG,
            )
        )
        for entry in entries:
            logger.debug(f"[Roster] {entry.address} identity={entry.identity} seed={entry.seed}")

        return Roster(entries=entries)

    def _generate_identities(self, rng: random.Random, n: int) -> list:
        if self.sc.identity == "index":
            return list(range(n))
        if n > IDENTITY_HIGH - IDENTITY_LOW:
            raise ConfigurationError(f"Cannot draw {n} distinct identities")
        return rng.sample(range(IDENTITY_LOW, IDENTITY_HIGH), n)
