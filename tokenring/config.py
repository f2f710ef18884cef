"""
Configuration loading module for the token ring elimination game.

Loads YAML configuration with command line argument precedence and validates
the result into the immutable models the game runs on.
"""

import sys
import yaml
import argparse
from typing import Dict, Any, Optional
from pathlib import Path

from pydantic import ValidationError

from models import ConfigurationError, GameConfig, SimulationConfig, TransportConfig


def _default_config_path() -> Path:
    """config.yaml beside this module in a checkout, else the copy installed under <prefix>/share."""
    beside = Path(__file__).with_name("config.yaml")
    if beside.exists():
        return beside
    return Path(sys.prefix) / "share" / "tokenring" / "config.yaml"


DEFAULT_CONFIG_PATH = _default_config_path()

# CLI destination -> (config section, config key)
CLI_OVERRIDES = {
    "peers": ("game", "peers"),
    "token": ("game", "initial_token"),
    "max_decrement": ("game", "max_decrement"),
    "seed": ("simulation", "seed"),
    "identity": ("simulation", "identity"),
    "opening": ("simulation", "opening"),
    "max_duration": ("simulation", "max_duration"),
}


def load_config(config_path: str = DEFAULT_CONFIG_PATH) -> Dict[str, Any]:
    """Load configuration from YAML file.

    Args:
        config_path: Path to configuration file

    Returns:
        Configuration dictionary

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If config file is invalid YAML
    """
    config_file = Path(config_path)
    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_file, "r") as f:
        config = yaml.safe_load(f)

    return config or {}


def merge_cli_args(config: Dict[str, Any], args: argparse.Namespace) -> Dict[str, Any]:
    """Override config values with command line arguments.

    CLI arguments take precedence over config file values.

    Args:
        config: Configuration dictionary from file
        args: Parsed command line arguments

    Returns:
        Updated configuration dictionary
    """
    for dest, (section, key) in CLI_OVERRIDES.items():
        value = getattr(args, dest, None)
        if value is not None:
            config.setdefault(section, {})[key] = value

    if getattr(args, "no_forensics", False):
        config.setdefault("logging", {})["forensic"] = False

    return config


def get_config_with_args(
    config_path: Optional[str] = None, args: Optional[argparse.Namespace] = None
) -> Dict[str, Any]:
    """Load configuration and apply CLI argument overrides.

    Without an explicit path the bundled config.yaml is used when it can be
    found; otherwise the game runs on CLI arguments and model defaults alone.

    Args:
        config_path: Path to config file (default: the bundled config.yaml)
        args: CLI arguments to override config values

    Returns:
        Final configuration dictionary with CLI precedence applied
    """
    if config_path is None:
        config = load_config(DEFAULT_CONFIG_PATH) if DEFAULT_CONFIG_PATH.exists() else {}
    else:
        config = load_config(config_path)

    if args is not None:
        config = merge_cli_args(config, args)

    return config


def _section(config: Dict[str, Any], name: str) -> Dict[str, Any]:
    section = config.get(name)
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise ConfigurationError(f"Config section '{name}' must be a mapping")
    return section


def build_game_config(config: Dict[str, Any]) -> GameConfig:
    """Validate the `game` section; raises ConfigurationError on bad values."""
    game = _section(config, "game")
    missing = [key for key in ("peers", "initial_token", "max_decrement") if game.get(key) is None]
    if missing:
        raise ConfigurationError(f"Missing game settings: {', '.join(missing)}")

    try:
        return GameConfig(
            peer_count=game["peers"],
            initial_token=game["initial_token"],
            max_decrement=game["max_decrement"],
        )
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid game configuration: {exc}") from exc


def build_transport_config(config: Dict[str, Any]) -> TransportConfig:
    try:
        return TransportConfig(**_section(config, "transport"))
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid transport configuration: {exc}") from exc


def build_simulation_config(config: Dict[str, Any]) -> SimulationConfig:
    try:
        return SimulationConfig(**_section(config, "simulation"))
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid simulation configuration: {exc}") from exc
