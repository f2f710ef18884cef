"""Command line runner for the token ring elimination game."""

import argparse
import sys
import time

from models import ConfigurationError, MAX_PEERS
from primer import Primer
from controller import Controller
from config import (
    DEFAULT_CONFIG_PATH,
    build_game_config,
    build_simulation_config,
    build_transport_config,
    get_config_with_args,
)
from simlog import (
    setup_logging,
    generate_sim_id,
    save_game_result,
    log_event,
    logger,
    LogEntry,
    EventType,
    PhaseType,
    LogLevel,
)

EXIT_WINNER = 0
EXIT_NO_WINNER = 1
EXIT_CONFIG_ERROR = 2


def parse_arguments(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Token Ring Elimination Game",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "-p",
        "--peers",
        type=int,
        default=None,
        help=f"Number of actors in the ring, 1..{MAX_PEERS} (default: from config file)",
    )

    parser.add_argument(
        "-t",
        "--token",
        type=int,
        default=None,
        help="Initial token value (default: from config file)",
    )

    parser.add_argument(
        "-M",
        "--max-decrement",
        type=int,
        default=None,
        help="Upper bound (exclusive) of the random decrement (default: from config file)",
    )

    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Seed for identities and decrements (default: OS entropy)",
    )

    parser.add_argument(
        "--identity",
        choices=["random", "index"],
        default=None,
        help="Election identity per actor: random process-id style, or the ring index",
    )

    parser.add_argument(
        "--opening",
        choices=["first", "election"],
        default=None,
        help="Who starts play: actor 0, or the winner of an opening election",
    )

    parser.add_argument(
        "--max-duration",
        type=float,
        default=None,
        help="Seconds before an unfinished game is cancelled (default: from config file)",
    )

    parser.add_argument(
        "--sim-id",
        type=str,
        help="Custom simulation ID (default: auto-generated yymmddHH-N)",
    )

    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help=f"Configuration file path (default: {DEFAULT_CONFIG_PATH}, if present)",
    )

    parser.add_argument(
        "--no-forensics",
        action="store_true",
        help="Do not write the SQLite event database",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v for INFO, shows every token hop; -vv for DEBUG)",
    )

    parser.add_argument(
        "--quiet",
        "-q",
        action="store_true",
        help="Quiet mode: suppress logging, show only summary",
    )

    return parser.parse_args(argv)


def main(argv=None) -> int:
    """Run one game; returns the process exit status."""
    args = parse_arguments(argv)

    try:
        config = get_config_with_args(args.config, args)
        game_config = build_game_config(config)
        transport_config = build_transport_config(config)
        simulation_config = build_simulation_config(config)
    except (ConfigurationError, FileNotFoundError) as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    logging_config = config.get("logging") or {}
    forensic = logging_config.get("forensic", True)
    db_dir = logging_config.get("db_dir")

    sim_id = args.sim_id or generate_sim_id(db_dir)
    effective_verbosity = -1 if args.quiet else args.verbose
    sim_logger = setup_logging(sim_id, effective_verbosity, db_dir, forensic)

    try:
        logger.info(
            f"Starting game {sim_id}: config={args.config or DEFAULT_CONFIG_PATH} seed={simulation_config.seed} "
            f"identity={simulation_config.identity} opening={simulation_config.opening}"
        )

        started = time.time()
        primer = Primer(game_config, simulation_config)
        roster = primer.generate_roster(simulation_config.seed)

        controller = Controller(game_config, transport_config, simulation_config, sim_id=sim_id)
        controller.configure(roster)
        result = controller.run(announce=False)
        total_time = time.time() - started

        save_game_result(result.serialize_for_snapshot())

        # Always show the summary (even in quiet mode)
        print("=== Game Summary ===")
        print(f"Simulation ID: {sim_id}")
        print(
            f"Actors: {game_config.peer_count}  Token: {game_config.initial_token}  "
            f"Max decrement: {game_config.max_decrement}"
        )
        print(f"Seed: {simulation_config.seed}  Opening: {simulation_config.opening}")
        eliminated = [report.index for report in result.reports if report.eliminated]
        print(f"Eliminated: {eliminated}")
        print(f"Messages: {dict(sorted(result.messages_sent.items()))}")
        print(f"Delivery failures: {result.delivery_failures}")
        print(f"Total Runtime: {total_time:.3f}s")

        if not args.quiet:
            for report in result.reports:
                logger.info(
                    f"actor-{report.index} identity={report.identity} outcome={report.outcome.value} "
                    f"tokens={report.tokens_handled}"
                )

        if result.winner_index is None:
            print("No winner: game cancelled")
            return EXIT_NO_WINNER
        controller.announce_winner(result.winner_index)
        return EXIT_WINNER

    except Exception as exc:
        log_event(
            LogEntry(
                phase=PhaseType.TERMINATION,
                event_type=EventType.GAME_ERROR,
                payload={"sim_id": sim_id, "error": str(exc)},
                message=f"Game failed: {exc}",
                level=LogLevel.ERROR,
            )
        )
        raise
    finally:
        # Clean shutdown of logging
        sim_logger.close()


if __name__ == "__main__":
    sys.exit(main())
