"""End-to-end games on real actor threads."""

import pytest

from controller import Controller
from models import GameConfig, Outcome, SimulationConfig, TransportConfig
from primer import Primer


def play(peers, token=10, decrement=8, seed=1, opening="first", max_duration=20.0, crash=None):
    game = GameConfig(peer_count=peers, initial_token=token, max_decrement=decrement)
    simulation = SimulationConfig(seed=seed, opening=opening, max_duration=max_duration)
    controller = Controller(game, TransportConfig(poll_interval=0.01), simulation, sim_id="test")
    controller.configure(Primer(game, simulation).generate_roster(seed))
    if crash is not None:
        controller.crash(crash)
    return controller, controller.run()


@pytest.mark.parametrize("seed", [1, 2, 3])
@pytest.mark.parametrize("opening", ["first", "election"])
def test_five_actors_one_winner(seed, opening, capsys):
    controller, result = play(5, seed=seed, opening=opening)

    assert result.winner_index is not None
    assert not result.timed_out
    outcomes = [result.outcome_of(i) for i in range(5)]
    assert outcomes.count(Outcome.WON) == 1
    assert outcomes.count(Outcome.LOST) == 4
    assert outcomes[result.winner_index] is Outcome.WON
    assert all(report.winner_index == result.winner_index for report in result.reports)
    assert result.messages_sent["winner"] >= 4

    lines = capsys.readouterr().out.splitlines()
    assert lines.count(f"Actor {result.winner_index} is the winner") == 1


def test_single_actor_game():
    controller, result = play(1)
    assert result.winner_index == 0
    assert result.reports[0].outcome is Outcome.WON
    assert result.messages_sent == {}


def test_winner_line_emitted_once(capsys):
    controller, result = play(3, seed=4)
    controller.announce_winner(result.winner_index)
    controller.announce_winner(result.winner_index)
    out = capsys.readouterr().out
    assert out.count("is the winner") == 1


def test_deferred_announcement(capsys):
    game = GameConfig(peer_count=3, initial_token=10, max_decrement=8)
    simulation = SimulationConfig(seed=9)
    controller = Controller(game, TransportConfig(poll_interval=0.01), simulation)
    controller.configure(Primer(game, simulation).generate_roster(9))
    result = controller.run(announce=False)
    assert "is the winner" not in capsys.readouterr().out
    controller.announce_winner(result.winner_index)
    assert capsys.readouterr().out.strip() == f"Actor {result.winner_index} is the winner"


def test_crashed_actor_is_routed_around():
    controller, result = play(4, seed=6, crash=2)
    assert result.winner_index is not None
    assert result.winner_index != 2
    assert result.reports[2].crashed
    assert result.reports[2].outcome is Outcome.GAME_ENDED
    assert result.delivery_failures >= 1


def test_endless_game_is_cancelled():
    # Zero decrement: nobody is ever eliminated
    controller, result = play(3, token=5, decrement=1, max_duration=0.3)
    assert result.timed_out
    assert result.winner_index is None
    assert all(report.outcome is Outcome.GAME_ENDED for report in result.reports)
    assert result.messages_sent["token"] > 0


def test_configure_rejects_mismatched_roster():
    game = GameConfig(peer_count=3, initial_token=10, max_decrement=8)
    roster = Primer(GameConfig(peer_count=2, initial_token=10, max_decrement=8)).generate_roster(1)
    with pytest.raises(ValueError):
        Controller(game).configure(roster)


def test_run_requires_configuration():
    with pytest.raises(RuntimeError):
        Controller(GameConfig(peer_count=2, initial_token=1, max_decrement=1)).run()
