import re

import pytest
import yaml

import config
from simulator import EXIT_CONFIG_ERROR, EXIT_NO_WINNER, EXIT_WINNER, main, parse_arguments


@pytest.fixture
def config_path(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "game": {"peers": 4, "initial_token": 10, "max_decrement": 8},
                "transport": {"poll_interval": 0.01},
                "simulation": {"seed": 5, "max_duration": 20.0},
                "logging": {"forensic": True, "db_dir": str(tmp_path / "db")},
            }
        )
    )
    return path


def test_short_options():
    args = parse_arguments(["-p", "6", "-t", "30", "-M", "7", "-vv"])
    assert (args.peers, args.token, args.max_decrement, args.verbose) == (6, 30, 7, 2)


def test_game_ends_with_the_winner_line(config_path, tmp_path, capsys):
    status = main(["--config", str(config_path), "-q", "--sim-id", "cli-1"])
    assert status == EXIT_WINNER

    lines = capsys.readouterr().out.strip().splitlines()
    assert "=== Game Summary ===" in lines
    assert re.fullmatch(r"Actor [0-3] is the winner", lines[-1])
    assert sum("is the winner" in line for line in lines) == 1
    assert (tmp_path / "db" / "cli-1.sqlite3").exists()


def test_cli_overrides_config(config_path, capsys):
    status = main(["--config", str(config_path), "-q", "-p", "2", "--opening", "election", "--no-forensics"])
    assert status == EXIT_WINNER
    assert "Actors: 2" in capsys.readouterr().out


@pytest.mark.parametrize("bad", [["-p", "0"], ["-p", "101"], ["-t", "0"], ["-M", "0"]])
def test_invalid_configuration_exits_before_play(config_path, bad, capsys):
    status = main(["--config", str(config_path), "-q", *bad])
    assert status == EXIT_CONFIG_ERROR
    captured = capsys.readouterr()
    assert "Configuration error" in captured.err
    assert "is the winner" not in captured.out


def test_missing_config_file(tmp_path):
    assert main(["--config", str(tmp_path / "nope.yaml")]) == EXIT_CONFIG_ERROR


def test_timeout_reports_no_winner(config_path, capsys):
    status = main(["--config", str(config_path), "-q", "-M", "1", "--max-duration", "0.2", "--no-forensics"])
    assert status == EXIT_NO_WINNER
    assert "No winner" in capsys.readouterr().out


def test_cli_arguments_suffice_without_a_config_file(monkeypatch, tmp_path, capsys):
    monkeypatch.setattr(config, "DEFAULT_CONFIG_PATH", tmp_path / "absent.yaml")
    status = main(["-p", "3", "-t", "10", "-M", "5", "-q", "--no-forensics"])
    assert status == EXIT_WINNER
    lines = capsys.readouterr().out.strip().splitlines()
    assert "Actors: 3  Token: 10  Max decrement: 5" in lines
    assert re.fullmatch(r"Actor [0-2] is the winner", lines[-1])
