"""
Interaction event retention.

Deletes interaction_events rows older than the retention window
(settings.event_retention_days). Persona scores are cumulative and are
not touched: they already hold everything the events contributed.

Entry point:
    async def run_event_cleanup(pool, retention_days=None, now=None)
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Any

from services.intent.config import settings
from services.intent.events.ingest import EventStore

logger = logging.getLogger(__name__)


async def run_event_cleanup(
    pool: Any,
    retention_days: int | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    days = settings.event_retention_days if retention_days is None else retention_days
    if days <= 0:
        raise ValueError(f"retention_days must be positive, got {days}")

    cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=days)
    start_ts = time.monotonic()
    deleted = await EventStore(pool).purge_before(cutoff)
    duration_ms = int((time.monotonic() - start_ts) * 1000)

    logger.info(
        "event_cleanup: deleted=%d cutoff=%s duration_ms=%d", deleted, cutoff.isoformat(), duration_ms,
    )
    return {"deleted": deleted, "cutoff": cutoff.isoformat(), "duration_ms": duration_ms}


# ---------------------------------------------------------------------------
# Standalone entry point
# ---------------------------------------------------------------------------

async def main(argv: list[str] | None = None) -> None:
    """Standalone entry point for running from cron."""
    import asyncpg

    parser = argparse.ArgumentParser(description="Purge old interaction events")
    parser.add_argument("--retention-days", type=int, default=settings.event_retention_days)
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    pool = await asyncpg.create_pool(settings.database_url, min_size=1, max_size=3)
    try:
        result = await run_event_cleanup(pool, args.retention_days)
        print(f"event_cleanup complete: {result}")
    finally:
        await pool.close()


def cli() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    cli()
