"""
Simulation Logging Infrastructure

Provides structured logging with forensic SQLite capture and rich console output.
Designed as a pure observer with zero impact on the ring protocol itself.
"""

import sqlite3
import json
from pathlib import Path
from typing import Optional, Dict, Any
from datetime import datetime
from enum import Enum

from pydantic import BaseModel
from loguru import logger
from rich.console import Console
from rich.logging import RichHandler


class EventType(str, Enum):
    """Event types for structured logging"""

    # Game Lifecycle
    GAME_START = "game_start"
    GAME_COMPLETE = "game_complete"
    GAME_TIMEOUT = "game_timeout"
    GAME_ERROR = "game_error"
    ROSTER_GENERATED = "roster_generated"

    # Actor Lifecycle
    ACTOR_START = "actor_start"
    ACTOR_EXIT = "actor_exit"
    ACTOR_CRASHED = "actor_crashed"

    # Token Game
    TOKEN_RECEIVED = "token_received"
    TOKEN_FORWARDED = "token_forwarded"
    TOKEN_RELAYED = "token_relayed"
    TOKEN_RESTARTED = "token_restarted"
    TOKEN_LOST = "token_lost"
    TOKEN_STALE = "token_stale"

    # Elimination
    ACTOR_ELIMINATED = "actor_eliminated"
    ELIMINATION_NOTICE = "elimination_notice"
    PEER_UNREACHABLE = "peer_unreachable"
    MARKED_INACTIVE = "marked_inactive"

    # Transport
    DELIVERY_RETRY = "delivery_retry"
    DELIVERY_FAILURE = "delivery_failure"
    DELIVERY_RETURNED = "delivery_returned"

    # Leader Election
    ELECTION_START = "election_start"
    ELECTION_FORWARD = "election_forward"
    ELECTION_ABSORBED = "election_absorbed"
    ELECTION_STALE = "election_stale"
    LEADER_ANNOUNCED = "leader_announced"
    LEADER_RECORDED = "leader_recorded"

    # Termination
    WINNER_ANNOUNCED = "winner_announced"
    WINNER_RECEIVED = "winner_received"


class PhaseType(str, Enum):
    """Protocol phase an event belongs to"""

    SETUP = "SETUP"
    PLAY = "PLAY"
    ELECTION = "ELECTION"
    TERMINATION = "TERMINATION"


class LogLevel(str, Enum):
    """Log levels for structured logging"""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


class LogEntry(BaseModel):
    """Structured log entry with full type safety"""

    step: Optional[int] = None
    phase: Optional[PhaseType] = None
    event_type: EventType
    actor_index: Optional[int] = None
    payload: Optional[Dict[str, Any]] = None
    message: str
    level: LogLevel = LogLevel.INFO


class SQLiteSink:
    """Custom loguru sink for SQLite event storage."""

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        # Actor threads all write through this connection; loguru serialises sink calls
        self.connection = sqlite3.connect(str(db_path), check_same_thread=False)
        self._init_tables()

    def _init_tables(self):
        """Initialize the events table with the required schema."""
        self.connection.execute(
            """
            CREATE TABLE IF NOT EXISTS events (
                id INTEGER PRIMARY KEY,
                step INTEGER,
                phase TEXT,
                actor_index INTEGER,
                event_type TEXT,
                message TEXT,
                payload TEXT
            )
        """
        )

        self.connection.execute(
            """
            CREATE TABLE IF NOT EXISTS game_results (
                id INTEGER PRIMARY KEY,
                sim_id TEXT,
                winner_index INTEGER,
                duration_s REAL,
                timed_out BOOLEAN,
                delivery_failures INTEGER,
                messages_sent TEXT,
                reports TEXT,
                timestamp DATETIME DEFAULT CURRENT_TIMESTAMP
            )
        """
        )
        self.connection.commit()

    def write(self, message):
        """Write a log record to SQLite."""
        record = message.record

        event_dict = record.get("extra", {}).get("event_dict", {})

        self.connection.execute(
            """
            INSERT INTO events (step, phase, actor_index, event_type, message, payload)
            VALUES (?, ?, ?, ?, ?, ?)
        """,
            (
                event_dict.get("step"),
                event_dict.get("phase"),
                event_dict.get("actor_index"),
                event_dict.get("event_type"),
                record["message"],
                (
                    json.dumps(event_dict.get("payload"))
                    if event_dict.get("payload")
                    else None
                ),
            ),
        )
        self.connection.commit()

    def save_game_result(self, result_data: dict):
        """Save the final game result to the database."""
        self.connection.execute(
            """
            INSERT INTO game_results (
                sim_id, winner_index, duration_s, timed_out,
                delivery_failures, messages_sent, reports
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
        """,
            (
                result_data["sim_id"],
                result_data["winner_index"],
                result_data["duration_s"],
                result_data["timed_out"],
                result_data["delivery_failures"],
                result_data["messages_sent"],
                result_data["reports"],
            ),
        )
        self.connection.commit()

    def close(self):
        """Close the SQLite connection."""
        if self.connection:
            self.connection.close()
            self.connection = None


class SimulationLogger:
    """Main logging coordinator for simulations."""

    def __init__(
        self,
        sim_id: str,
        verbosity: int,
        db_dir: Optional[Path] = None,
        forensic: bool = True,
    ):
        self.sim_id = sim_id
        self.verbosity = verbosity
        self.db_dir = Path(db_dir) if db_dir is not None else default_db_dir()
        self.db_path = self.db_dir / f"{sim_id}.sqlite3"
        self.forensic = forensic
        self.sqlite_sink: Optional[SQLiteSink] = None
        self._handler_ids = []
        self.console = Console(stderr=True)

        self._setup_logging()

    def _add_forensic_symbol(self, record):
        """Add forensic symbol to record extra data."""
        is_forensic = "event_dict" in record["extra"]
        record["extra"]["symbol"] = "🔬" if is_forensic else "💬"
        return True

    def _setup_logging(self):
        """Configure loguru with rich console and SQLite sinks."""
        logger.remove()

        log_level = self._get_log_level()
        self._handler_ids.append(
            logger.add(
                RichHandler(console=self.console, rich_tracebacks=True),
                level=log_level,
                format="{time:HH:mm:ss.SSS} | {thread.name: <9} | {extra[symbol]} {message}",
                filter=self._add_forensic_symbol,
            )
        )

        if self.forensic:
            self.sqlite_sink = SQLiteSink(self.db_path)
            self._handler_ids.append(
                logger.add(
                    self.sqlite_sink.write,
                    level="DEBUG",  # Capture everything to SQLite
                    format="{message}",
                    filter=lambda record: "event_dict" in record["extra"],
                )
            )

        logger.info(f"Simulation logging initialized: {self.sim_id}")
        if self.forensic:
            logger.info(f"Database: {self.db_path}")
        logger.info(f"Console verbosity: {log_level}")

    def _get_log_level(self) -> str:
        """Map verbosity level to loguru level."""
        level_map = {
            -1: "ERROR",  # Quiet mode
            0: "WARNING",
            1: "INFO",
            2: "DEBUG",
            3: "TRACE",
        }
        return level_map.get(min(self.verbosity, 3), "INFO")

    def close(self):
        """Clean shutdown of logging infrastructure."""
        logger.info(f"Simulation logging closed: {self.sim_id}")
        for handler_id in self._handler_ids:
            logger.remove(handler_id)
        self._handler_ids = []
        if self.sqlite_sink:
            self.sqlite_sink.close()


def default_db_dir() -> Path:
    return Path(__file__).parent / "db"


def setup_logging(
    sim_id: str,
    verbosity: int,
    db_dir: Optional[Path] = None,
    forensic: bool = True,
) -> SimulationLogger:
    """
    Initialize structured logging for a game run.

    Args:
        sim_id: Unique simulation identifier
        verbosity: Console verbosity level (-1 quiet .. 3 trace)
        db_dir: Directory for the forensic database (default: tokenring/db)
        forensic: If False, only the console sink is installed

    Returns:
        SimulationLogger instance for cleanup
    """
    global _current_sim_logger
    _current_sim_logger = SimulationLogger(sim_id, verbosity, db_dir, forensic)
    return _current_sim_logger


def generate_sim_id(db_dir: Optional[Path] = None) -> str:
    """
    Generate a unique simulation ID in yymmddHH-N format.

    Returns:
        Unique simulation ID string
    """
    now = datetime.now()
    base_id = now.strftime("%y%m%d%H")

    db_dir = Path(db_dir) if db_dir is not None else default_db_dir()
    if not db_dir.exists():
        return f"{base_id}-1"

    existing_files = list(db_dir.glob(f"{base_id}-*.sqlite3"))
    if not existing_files:
        return f"{base_id}-1"

    suffixes = []
    for file in existing_files:
        try:
            suffix = int(file.stem.split("-")[1])
            suffixes.append(suffix)
        except (IndexError, ValueError):
            continue

    next_suffix = max(suffixes) + 1 if suffixes else 1
    return f"{base_id}-{next_suffix}"


# Global reference to current simulation logger
_current_sim_logger: Optional[SimulationLogger] = None


def log_event(entry: LogEntry, forensic: bool = True):
    """
    Log a structured event with type safety and forensic capture.

    Args:
        entry: LogEntry with structured event data
        forensic: If True, captures to SQLite database (default: True)
    """
    if forensic:
        logger.opt(depth=1).bind(
            event_dict={
                "step": entry.step,
                "phase": entry.phase.value if entry.phase else None,
                "event_type": entry.event_type.value,
                "actor_index": entry.actor_index,
                "payload": entry.payload,
            }
        ).log(entry.level.value, entry.message)
    else:
        if entry.level == LogLevel.DEBUG:
            logger.opt(depth=1).debug(entry.message)
        elif entry.level == LogLevel.WARNING:
            logger.opt(depth=1).warning(entry.message)
        elif entry.level == LogLevel.ERROR:
            logger.opt(depth=1).error(entry.message)
        else:
            logger.opt(depth=1).info(entry.message)


def save_game_result(result_data: dict):
    """Save a game result using the current simulation logger."""
    global _current_sim_logger
    if _current_sim_logger and _current_sim_logger.sqlite_sink:
        _current_sim_logger.sqlite_sink.save_game_result(result_data)
