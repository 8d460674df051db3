import argparse
import asyncio
import json
import sys
from datetime import date
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from loguru import logger

from app.core.config import get_settings
from app.db import SessionLocal, init_db
from app.errors import AuthorizationError
from app.repositories import SqlKeyValueStore
from ingestion.aggregator import Aggregator
from pipelines.daily_set import DailySetService


def _parse_date(value: str) -> str:
    try:
        return date.fromisoformat(value).isoformat()
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected YYYY-MM-DD, got {value!r}") from exc


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Show or build the shared daily set")
    parser.add_argument(
        "--date",
        type=_parse_date,
        default=None,
        help="Date key (YYYY-MM-DD); defaults to today in the configured daily timezone",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Regenerate even if a set is already stored (requires the admin token)",
    )
    parser.add_argument(
        "--admin-token",
        default=None,
        help="Admin token for --force; falls back to ADMIN_TOKEN from the environment",
    )
    return parser.parse_args()


async def run(args: argparse.Namespace) -> int:
    settings = get_settings()
    init_db()
    service = DailySetService(SqlKeyValueStore(SessionLocal), Aggregator(), settings=settings)
    date_key = args.date or service.today_key()

    if args.force:
        try:
            daily = await service.force_create(date_key, args.admin_token or settings.admin_token)
        except AuthorizationError as exc:
            logger.error("Refusing to regenerate {}: {}", date_key, exc)
            return 1
        created = True
    else:
        daily, created = await service.get_or_create(date_key)

    logger.info("Daily set {} ({}; {} items)", date_key, "created" if created else "cached", daily.count)
    print(json.dumps({"date": daily.date, **daily.to_payload()}, indent=2))
    return 0


def main() -> None:
    raise SystemExit(asyncio.run(run(parse_args())))


if __name__ == "__main__":
    main()
