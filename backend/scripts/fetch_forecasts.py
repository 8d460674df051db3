import argparse
import asyncio
import json
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from loguru import logger

from app.errors import InvalidRequestError
from ingestion.aggregator import Aggregator
from ingestion.registry import parse_keywords, parse_sources


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Fetch and merge forecasts from all providers")
    parser.add_argument("--source", default="all", help="Source tag(s), comma-separated, or 'all'")
    parser.add_argument("--q", default=None, help="Comma-separated keywords to match")
    parser.add_argument("--limit", type=int, default=50, help="Per-source result cap")
    return parser.parse_args()


async def run(args: argparse.Namespace) -> int:
    try:
        sources = parse_sources(args.source)
    except InvalidRequestError as exc:
        logger.error("{}", exc)
        return 2

    result = await Aggregator().aggregate(sources, parse_keywords(args.q), max(args.limit, 1))
    print(
        json.dumps(
            {
                "updated_at": result.updated_at,
                "count": result.count,
                "results": [market.to_dict() for market in result.results],
                "failed_sources": [tag.value for tag in result.failed_sources],
            },
            indent=2,
        )
    )
    return 0


def main() -> None:
    raise SystemExit(asyncio.run(run(parse_args())))


if __name__ == "__main__":
    main()
