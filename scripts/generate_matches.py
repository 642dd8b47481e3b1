"""Run the gift exchange draw against a users file"""

import argparse
import random
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from loguru import logger
from src.config import settings
from src.data.user_store import NotAllReadyError, UserStore
from src.matching import MatchingEngine, MatchingError


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Generate Secret Santa matches across family groups")
    parser.add_argument("--users", type=str, default=str(settings.users_file),
                        help="Path to the users JSON file")
    parser.add_argument("--max-retries", type=int, default=settings.max_retries,
                        help="Number of shuffled attempts before giving up")
    parser.add_argument("--seed", type=int, default=settings.random_seed,
                        help="Random seed for a reproducible draw")
    parser.add_argument("--allow-unready", action="store_true",
                        help="Draw among ready participants even if others are not ready")
    parser.add_argument("--dry-run", action="store_true",
                        help="Print the matches without saving them")

    args = parser.parse_args(argv)

    store = UserStore(args.users)
    engine = MatchingEngine(rng=random.Random(args.seed), max_retries=args.max_retries)
    require_all_ready = settings.require_all_ready and not args.allow_unready

    try:
        result = store.run_matching(
            engine,
            require_all_ready=require_all_ready,
            persist=not args.dry_run
        )
    except (MatchingError, NotAllReadyError) as e:
        logger.error(f"Match generation failed: {e}")
        return 1

    users_by_id = {user.id: user for user in result.updated_users}
    for match in result.matches:
        giver = users_by_id[match.giver_id]
        receiver = users_by_id[match.receiver_id]
        print(f"{giver.label} -> {receiver.label}")

    if args.dry_run:
        logger.info("Dry run, nothing saved")
    else:
        logger.info(f"✅ Saved {len(result.matches)} matches to {args.users}")

    return 0


if __name__ == "__main__":
    logger.remove()
    logger.add(sys.stderr, level=settings.log_level)
    sys.exit(main())
