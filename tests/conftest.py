"""Shared fixtures and a thread-free harness for driving whole rings from a test."""

import random

import pytest
from loguru import logger

from actor import RingActor
from directory import RingDirectory
from models import ActorEntry, GameConfig, Outcome, Roster, TransportConfig
from transport import Transport


@pytest.fixture(autouse=True)
def silence_logs():
    """Keep protocol chatter out of test output; simlog tests install their own sinks."""
    logger.remove()
    yield
    logger.remove()


class ScriptedRng:
    """Replays fixed decrements, then keeps returning `default`."""

    def __init__(self, decrements=(), default=0):
        self.decrements = list(decrements)
        self.default = default
        self.calls = []

    def randrange(self, stop):
        self.calls.append(stop)
        value = self.decrements.pop(0) if self.decrements else self.default
        assert 0 <= value < stop
        return value


class RecordingTransport(Transport):
    """Transport that remembers every successful send as (target, message)."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.log = []

    def send(self, target_index, message):
        delivered = super().send(target_index, message)
        if delivered:
            self.log.append((target_index, message))
        return delivered

    def sent_of(self, kind):
        return [(target, msg) for target, msg in self.log if msg.kind.value == kind]


def make_roster(identities):
    return Roster(
        entries=[
            ActorEntry(index=i, identity=identity, address=f"actor-{i}")
            for i, identity in enumerate(identities)
        ]
    )


class Ring:
    """Deterministic harness: every actor lives in the test thread.

    `step()` takes one pending message from a randomly chosen mailbox and
    dispatches it, so different seeds explore different interleavings.
    """

    def __init__(
        self,
        identities,
        initial_token=20,
        max_decrement=10,
        rngs=None,
        opening="first",
        seed=0,
        transport_config=None,
    ):
        self.roster = make_roster(identities)
        self.config = GameConfig(
            peer_count=len(identities),
            initial_token=initial_token,
            max_decrement=max_decrement,
        )
        self.sleeps = []
        self.transport = RecordingTransport(
            self.roster.addresses(),
            transport_config or TransportConfig(),
            sleep=self.sleeps.append,
        )
        rngs = rngs or {}
        self.actors = []
        for entry in self.roster.entries:
            self.actors.append(
                RingActor(
                    entry=entry,
                    directory=RingDirectory(self.roster.entries, owner=entry.index),
                    transport=self.transport,
                    mailbox=self.transport.open_mailbox(entry.index),
                    config=self.config,
                    rng=rngs.get(entry.index, random.Random(seed * 1000 + entry.index)),
                    opening=opening,
                )
            )
        self.order = random.Random(seed)
        self.steps = 0

    def __getitem__(self, index):
        return self.actors[index]

    def open(self):
        for actor in self.actors:
            if not actor.crashed:
                actor.open_game()

    def ready(self):
        return [
            actor
            for actor in self.actors
            if not actor.crashed and not actor.finished and actor.mailbox.pending()
        ]

    def step(self):
        candidates = self.ready()
        if not candidates:
            return False
        actor = self.order.choice(candidates)
        message = actor.mailbox.get_nowait()
        if message is not None:
            actor.handle(message)
        self.steps += 1
        return True

    def run(self, max_steps=20000):
        """Dispatch until no live actor has mail left."""
        for _ in range(max_steps):
            if not self.step():
                return self.steps
        raise AssertionError(f"Ring still busy after {max_steps} steps")

    def run_until(self, predicate, max_steps=20000):
        for _ in range(max_steps):
            if predicate():
                return self.steps
            if not self.step():
                break
        assert predicate(), "Ring went quiet before the condition held"
        return self.steps

    def winners(self):
        return [actor.index for actor in self.actors if actor.outcome is Outcome.WON]


@pytest.fixture
def ring_factory():
    return Ring
