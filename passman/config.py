"""
passman - Configuration

Settings come from environment variables, falling back to defaults:

    PASSMAN_DB          path to the SQLite database
                        (default: ~/.passman/database.db)
    PASSMAN_LOG_LEVEL   logging level name for the "passman" logger
                        (default: WARNING)
"""

import os
import logging

DEFAULT_DB_PATH = os.path.join(os.path.expanduser("~"), ".passman", "database.db")
DEFAULT_LOG_LEVEL = "WARNING"

logger = logging.getLogger("passman")


def get_db_path(override: str = None) -> str:
    """Resolve the database path: explicit override > PASSMAN_DB > default."""
    return override or os.environ.get("PASSMAN_DB") or DEFAULT_DB_PATH


def ensure_db_dir(path: str) -> None:
    """Create the parent directory of `path` if it is missing."""
    d = os.path.dirname(path)
    if d and not os.path.exists(d):
        os.makedirs(d, exist_ok=True)


def get_log_level(verbose: bool = False) -> int:
    """
    Resolve the log level.

    `verbose` forces DEBUG. Unknown names in PASSMAN_LOG_LEVEL raise ValueError.
    """
    if verbose:
        return logging.DEBUG
    name = os.environ.get("PASSMAN_LOG_LEVEL", DEFAULT_LOG_LEVEL).upper()
    level = logging.getLevelName(name)
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level in PASSMAN_LOG_LEVEL: {name}")
    return level


def configure_logging(verbose: bool = False) -> None:
    """Attach a stderr handler to the "passman" logger."""
    level = get_log_level(verbose)
    logging.basicConfig(format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logger.setLevel(level)
    logger.debug("Log level set to %s", logging.getLevelName(level))
