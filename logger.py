# logger.py
"""
Logging configuration for the Spy Card scoring engine.

This module provides centralized logging setup. The setup_logging() function
should be called once at process startup (e.g., in recalculate_spy_cards.py).

All app modules should use the "app" namespace:
    import logging
    logger = logging.getLogger("app.module_name")

This keeps third-party library logs quiet while allowing granular control
over the app's own logging level via the LOG_LEVEL environment variable.
"""

import logging
import os
import sys

# App namespace prefix - all app loggers should use this
APP_LOGGER_NAME = "app"


def level_from_env(default: int = logging.INFO) -> int:
    """Reads LOG_LEVEL (e.g. "DEBUG") from the environment.

    Unknown names fall back to the default.
    """
    name = os.environ.get("LOG_LEVEL", "").strip().upper()
    if not name:
        return default
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else default


def setup_logging(app_level: int | None = None) -> None:
    """
    Configure logging for the application.

    - Root logger is set to WARNING (keeps supabase/httpx/google noise quiet)
    - App namespace logger ("app.*") is set to the specified level

    This should be called ONCE at process startup (entry point).

    Args:
        app_level: The logging level for app modules (default: LOG_LEVEL or INFO)
    """
    if app_level is None:
        app_level = level_from_env()

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.WARNING)

    # Avoid adding duplicate handlers if setup is called multiple times
    if not root_logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(logging.DEBUG)  # Handler accepts all; loggers filter

        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )
        handler.setFormatter(formatter)

        root_logger.addHandler(handler)

    app_logger = logging.getLogger(APP_LOGGER_NAME)
    app_logger.setLevel(app_level)


def log_profile_delta(
    logger: logging.Logger,
    username: str,
    modifier: float,
    overall_delta: int,
    ability_deltas: dict,
    new_total: int,
    new_rank,
) -> None:
    """
    Log a Spy Card delta application in a consistent format.

    Args:
        logger: Logger instance to use
        username: Owner of the Spy Card
        modifier: Rank modifier applied to the raw differences
        overall_delta: Signed change applied to the overall total
        ability_deltas: Signed change per ability (only non-zero entries)
        new_total: Overall total after the write
        new_rank: Rank tier after the write
    """
    logger.debug("Spy Card '%s': modifier %.1f", username, modifier)
    logger.debug("  Overall delta: %+d -> total %d", overall_delta, new_total)
    if ability_deltas:
        logger.debug(
            "  Ability deltas: %s",
            {ability.value: delta for ability, delta in ability_deltas.items()},
        )
    logger.debug("  Rank: %s", getattr(new_rank, "name", new_rank))
