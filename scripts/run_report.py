"""Create a report job from a local spreadsheet and drive it to completion."""

from __future__ import annotations

import argparse
import asyncio
import logging
import pathlib

from dotenv import load_dotenv

from pricewatch.db.migrate import run_migrations
from pricewatch.db.session import create_engine_from_env
from pricewatch.jobs.runner import build_runner
from pricewatch.utils.dates import parse_iso_date
from pricewatch.utils.logging import configure_logging

logger = logging.getLogger("run_report")


async def run(args: argparse.Namespace) -> int:
    engine = create_engine_from_env()
    run_migrations(engine)
    runner = build_runner(engine)
    path = pathlib.Path(args.file)
    job = runner.create(
        path.read_bytes(),
        path.name,
        parse_iso_date(args.period_from),
        parse_iso_date(args.period_to),
        include_stats=not args.prices_only,
    )
    logger.info("Job %s: %s rows", job.id, job.total)
    try:
        while not job.status.terminal:
            job = await runner.step(job.id)
            logger.info("%s/%s (%s)", job.processed, job.total, job.status.value)
    except asyncio.CancelledError:
        runner.stop(job.id)
        raise
    finally:
        if runner.extractor.ai_client is not None:
            await runner.extractor.ai_client.close()
    print(runner.storage.download_url(job.result_file) or job.result_file or "no report")
    return 0 if job.status.value == "done" else 1


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("file", help="xlsx or csv with article and brand columns")
    parser.add_argument("--from", dest="period_from", required=True, help="YYYY-MM-DD")
    parser.add_argument("--to", dest="period_to", required=True, help="YYYY-MM-DD")
    parser.add_argument("--prices-only", action="store_true", help="skip the statistics page")
    args = parser.parse_args()

    load_dotenv()
    configure_logging()
    raise SystemExit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
