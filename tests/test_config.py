import argparse

import pytest
import yaml

import config as config_module
from config import (
    DEFAULT_CONFIG_PATH,
    build_game_config,
    build_simulation_config,
    build_transport_config,
    get_config_with_args,
    load_config,
    merge_cli_args,
)
from models import ConfigurationError, MAX_PEERS


def cli(**overrides):
    fields = dict(
        peers=None,
        token=None,
        max_decrement=None,
        seed=None,
        identity=None,
        opening=None,
        max_duration=None,
        no_forensics=False,
    )
    fields.update(overrides)
    return argparse.Namespace(**fields)


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "game": {"peers": 4, "initial_token": 15, "max_decrement": 6},
                "transport": {"max_attempts": 2},
                "simulation": {"seed": 3, "opening": "election"},
            }
        )
    )
    return path


def test_default_config_builds():
    config = load_config(DEFAULT_CONFIG_PATH)
    game = build_game_config(config)
    assert game.peer_count >= 1
    assert build_transport_config(config).max_attempts >= 1
    assert build_simulation_config(config).opening in ("first", "election")


def test_missing_file():
    with pytest.raises(FileNotFoundError):
        load_config("does/not/exist.yaml")


def test_file_values(config_file):
    config = get_config_with_args(str(config_file))
    game = build_game_config(config)
    assert (game.peer_count, game.initial_token, game.max_decrement) == (4, 15, 6)
    assert build_transport_config(config).max_attempts == 2
    assert build_simulation_config(config).seed == 3


def test_cli_takes_precedence(config_file):
    config = get_config_with_args(str(config_file), cli(peers=9, max_decrement=2, opening="first"))
    game = build_game_config(config)
    assert game.peer_count == 9
    assert game.initial_token == 15
    assert game.max_decrement == 2
    assert build_simulation_config(config).opening == "first"


def test_no_forensics_flag():
    config = merge_cli_args({"logging": {"forensic": True}}, cli(no_forensics=True))
    assert config["logging"]["forensic"] is False


@pytest.mark.parametrize(
    "game",
    [
        {"peers": 0, "initial_token": 10, "max_decrement": 3},
        {"peers": MAX_PEERS + 1, "initial_token": 10, "max_decrement": 3},
        {"peers": 3, "initial_token": 0, "max_decrement": 3},
        {"peers": 3, "initial_token": 10, "max_decrement": 0},
        {"peers": 3, "initial_token": -5, "max_decrement": 3},
        {"peers": 3, "initial_token": 10},
    ],
)
def test_invalid_game_is_configuration_error(game):
    with pytest.raises(ConfigurationError):
        build_game_config({"game": game})


def test_missing_game_section():
    with pytest.raises(ConfigurationError):
        build_game_config({})


def test_bad_simulation_values():
    with pytest.raises(ConfigurationError):
        build_simulation_config({"simulation": {"opening": "whoever"}})
    with pytest.raises(ConfigurationError):
        build_transport_config({"transport": {"max_attempts": 0}})


def test_missing_default_file_leaves_cli_arguments(monkeypatch, tmp_path):
    monkeypatch.setattr(config_module, "DEFAULT_CONFIG_PATH", tmp_path / "absent.yaml")
    config = get_config_with_args(None, cli(peers=3, token=10, max_decrement=5))
    game = build_game_config(config)
    assert (game.peer_count, game.initial_token, game.max_decrement) == (3, 10, 5)
    assert build_simulation_config(config).opening == "first"


def test_explicit_missing_file_is_still_an_error(tmp_path):
    with pytest.raises(FileNotFoundError):
        get_config_with_args(str(tmp_path / "absent.yaml"), cli(peers=3, token=10, max_decrement=5))
