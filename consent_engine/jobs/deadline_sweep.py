"""
Deadline Sweep: closes polls whose deadline has passed.

Deadlines are never fired by the engine itself; a poll past its deadline
only refuses ballots until something closes it. This job is that something
for polls nobody reads. Each poll is closed in its own transaction through
the same path as a facilitator close, with no acting member.

Typical cron schedule: */5 * * * * (every five minutes)
"""

import asyncio
import logging
import os
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from ..core.config import to_async_url
from ..models import Message, ToolType
from ..schemas.tools import VotingTool, load_tool
from ..services.errors import ConcurrencyError, EngineError
from ..services.voting_engine import VotingEngine

logger = logging.getLogger(__name__)


async def find_overdue_polls(session: AsyncSession, now: datetime) -> list[UUID]:
    """Ids of open polls whose deadline is at or before ``now``."""
    result = await session.execute(
        select(Message.id, Message.embedded_tool).where(Message.tool_type == ToolType.VOTING)
    )
    overdue = []
    for message_id, data in result.all():
        tool = load_tool(data)
        if isinstance(tool, VotingTool) and not tool.is_closed and tool.is_past_deadline(now):
            overdue.append(message_id)
    return overdue


async def run_deadline_sweep(
    database_url: str | None = None,
    now: datetime | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> dict[str, Any]:
    """
    Close every open poll whose deadline passed.

    Args:
        database_url: Database connection string (ignored when a session
            factory is given)
        now: Evaluation time, defaults to the current UTC time
        session_factory: Existing session factory to use

    Returns:
        Job result summary
    """
    now = now or datetime.now(timezone.utc)
    logger.info(f"Starting deadline sweep at {now.isoformat()}")

    engine = None
    if session_factory is None:
        engine = create_async_engine(database_url)
        session_factory = async_sessionmaker(engine, expire_on_commit=False)

    results: dict[str, Any] = {
        "evaluated_at": now.isoformat(),
        "overdue": 0,
        "closed": [],
        "skipped": [],
        "errors": [],
    }

    try:
        async with session_factory() as session:
            overdue = await find_overdue_polls(session, now)
        results["overdue"] = len(overdue)

        for message_id in overdue:
            try:
                async with session_factory() as session:
                    async with session.begin():
                        closed = await VotingEngine(session).close_if_expired(message_id, now)
            except ConcurrencyError as e:
                # Closed concurrently by a facilitator or a results read
                logger.info(f"Poll {message_id} skipped: {e}")
                results["skipped"].append(str(message_id))
                continue
            except EngineError as e:
                logger.error(f"Poll {message_id} could not be closed: {e}")
                results["errors"].append(f"{message_id}: {e}")
                continue

            if closed:
                results["closed"].append(str(message_id))
            else:
                results["skipped"].append(str(message_id))
    finally:
        if engine is not None:
            await engine.dispose()

    logger.info(
        f"Deadline sweep closed {len(results['closed'])} of {results['overdue']} overdue poll(s)"
    )
    return results


# =============================================================================
# CLI ENTRY POINT
# =============================================================================


def main():
    """CLI entry point for the deadline sweep."""
    import argparse

    parser = argparse.ArgumentParser(description="Close polls whose deadline has passed")
    parser.add_argument(
        "--database-url",
        default=os.environ.get("DATABASE_URL"),
        help="Database connection string",
    )
    args = parser.parse_args()

    if not args.database_url:
        print("Error: DATABASE_URL is required")
        raise SystemExit(1)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        results = asyncio.run(run_deadline_sweep(database_url=to_async_url(args.database_url)))
        print(f"Sweep completed: {results}")
    except Exception as e:
        print(f"Sweep failed: {e}")
        raise SystemExit(1)


if __name__ == "__main__":
    main()
