from directory import RingDirectory
from models import GameConfig, SimulationConfig
from primer import IDENTITY_HIGH, IDENTITY_LOW, Primer


def game(n):
    return GameConfig(peer_count=n, initial_token=10, max_decrement=5)


def test_random_identities_are_distinct_and_pid_like():
    roster = Primer(game(50)).generate_roster(seed=11)
    identities = [entry.identity for entry in roster.entries]
    assert len(set(identities)) == 50
    assert all(IDENTITY_LOW <= identity < IDENTITY_HIGH for identity in identities)
    # A valid roster is accepted by the directory
    RingDirectory(roster.entries)


def test_indices_addresses_and_seeds():
    roster = Primer(game(4)).generate_roster(seed=100)
    assert [entry.index for entry in roster.entries] == [0, 1, 2, 3]
    assert roster.addresses() == {i: f"actor-{i}" for i in range(4)}
    assert [entry.seed for entry in roster.entries] == [100, 101, 102, 103]


def test_same_seed_same_roster():
    primer = Primer(game(6))
    assert primer.generate_roster(seed=5) == primer.generate_roster(seed=5)


def test_no_seed_leaves_actor_seeds_to_entropy():
    roster = Primer(game(3)).generate_roster()
    assert all(entry.seed is None for entry in roster.entries)


def test_index_identity_mode():
    roster = Primer(game(5), SimulationConfig(identity="index")).generate_roster(seed=1)
    assert [entry.identity for entry in roster.entries] == [0, 1, 2, 3, 4]
    assert roster.entries[4].identity == 4
