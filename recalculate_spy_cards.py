#!/usr/bin/env python3
"""
Spy Card Recalculation Script.

This standalone script rebuilds Spy Cards from the complete mission history.
For each user it fetches every completed mission record, rescales the scores
with the modifier of the rank their unscaled sum reaches and overwrites the
stored totals and rank. Use it to repair cards whose incremental update failed.

Usage:
    python recalculate_spy_cards.py [username ...]

With no usernames, every user owning a Spy Card is recalculated.

Requirements:
    - SUPABASE_URL and SUPABASE_KEY in .streamlit/secrets.toml
"""

import argparse
import logging

from app_types import RecalculationResult
from database import SpyCardDB
from exceptions import SpyCardAppError
from logger import setup_logging
from mission_service import recalculate_profile_from_history

# Configure logging using matching app pattern
setup_logging()
logger = logging.getLogger("app.recalculate_spy_cards")


def recalculate_spy_cards(usernames: list[str] | None = None) -> list[RecalculationResult]:
    """Rebuild the Spy Cards of the given users (default: all)."""

    logger.info("=== Starting Spy Card Recalculation ===")

    if not usernames:
        logger.info("Fetching Spy Card owners from database...")
        usernames = SpyCardDB.get_all_usernames()
    logger.info(f"  Recalculating {len(usernames)} Spy Card(s)")

    results: list[RecalculationResult] = []
    failed = 0
    for username in usernames:
        try:
            result = recalculate_profile_from_history(username)
        except SpyCardAppError as e:
            logger.error(f"  {username}: recalculation failed ({e})")
            failed += 1
            continue

        if not result.found:
            logger.info(f"  {username}: no completed missions, skipped")
        results.append(result)

    logger.info(
        f"=== Spy Card Recalculation Complete ({len(results)} ok, {failed} failed) ==="
    )

    # Print summary
    print("\n--- Spy Card Summary ---")
    ranked = sorted(
        (r for r in results if r.found), key=lambda r: r.total_score, reverse=True
    )
    for i, r in enumerate(ranked, 1):
        print(
            f"{i:2}. {r.username:20} total={r.total_score:6}  "
            f"rank={r.overall_rank.name}  missions={r.mission_count}"
        )

    return results


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("usernames", nargs="*", help="Users to recalculate")
    args = parser.parse_args()
    recalculate_spy_cards(args.usernames)
