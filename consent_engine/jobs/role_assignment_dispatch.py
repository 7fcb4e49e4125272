"""
Role Assignment Dispatch: delivers elected members to the directory.

Elections that fill a role leave a pending RoleAssignmentRequest next to
their decision record. This job posts each pending request to the
directory's webhook. A 2xx answer marks the request sent; anything else
counts an attempt, and a request that used up its attempts is marked
failed and left for an operator.

Typical cron schedule: * * * * * (every minute)
"""

import asyncio
import logging
import os
from datetime import datetime, timezone
from typing import Any

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from ..core.config import get_settings, to_async_url
from ..models import AssignmentStatus, RoleAssignmentRequest

logger = logging.getLogger(__name__)


def build_payload(request: RoleAssignmentRequest) -> dict[str, Any]:
    return {
        "event": "role.assigned",
        "request_id": str(request.id),
        "decision_id": str(request.decision_id),
        "organization_id": str(request.organization_id),
        "role_id": str(request.role_id),
        "member_id": str(request.member_id),
        "attempt": request.attempts + 1,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


async def dispatch_pending_assignments(
    session: AsyncSession,
    client: httpx.AsyncClient,
    webhook_url: str,
    max_attempts: int,
) -> tuple[int, int, list[str]]:
    """
    Deliver all pending requests once.

    Returns:
        (sent count, failed count, error messages)
    """
    result = await session.execute(
        select(RoleAssignmentRequest)
        .where(RoleAssignmentRequest.status == AssignmentStatus.PENDING)
        .order_by(RoleAssignmentRequest.created_at)
    )
    pending = result.scalars().all()

    sent = 0
    failed = 0
    errors: list[str] = []

    for request in pending:
        try:
            response = await client.post(webhook_url, json=build_payload(request), timeout=10)
            response.raise_for_status()
        except httpx.HTTPError as e:
            request.attempts += 1
            request.last_error = str(e)[:500]
            errors.append(f"{request.id}: {e}")
            if request.attempts >= max_attempts:
                request.status = AssignmentStatus.FAILED
                failed += 1
                logger.warning(
                    f"Role assignment {request.id} failed after {request.attempts} attempt(s): {e}"
                )
            else:
                logger.warning(f"Role assignment {request.id} attempt {request.attempts} rejected: {e}")
            continue

        request.attempts += 1
        request.status = AssignmentStatus.SENT
        request.sent_at = datetime.now(timezone.utc)
        request.last_error = None
        sent += 1
        logger.info(f"Role assignment {request.id} delivered (role {request.role_id})")

    await session.flush()
    return sent, failed, errors


async def run_role_assignment_dispatch(
    database_url: str | None = None,
    webhook_url: str | None = None,
    max_attempts: int | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> dict[str, Any]:
    """
    Main entry point for the dispatch job.

    Args:
        database_url: Database connection string (ignored when a session
            factory is given)
        webhook_url: Directory endpoint, defaults to the configured one
        max_attempts: Attempts before a request is marked failed
        session_factory: Existing session factory to use
        transport: Optional httpx transport

    Returns:
        Job result summary
    """
    settings = get_settings()
    webhook_url = webhook_url or settings.role_assignment_webhook_url
    max_attempts = max_attempts or settings.role_assignment_max_attempts

    results: dict[str, Any] = {"sent": 0, "failed": 0, "errors": []}
    if not webhook_url:
        logger.warning("Role assignment webhook not configured; nothing dispatched")
        return results

    engine = None
    if session_factory is None:
        engine = create_async_engine(database_url)
        session_factory = async_sessionmaker(engine, expire_on_commit=False)

    try:
        async with httpx.AsyncClient(transport=transport) as client:
            async with session_factory() as session:
                async with session.begin():
                    sent, failed, errors = await dispatch_pending_assignments(
                        session, client, webhook_url, max_attempts
                    )
    finally:
        if engine is not None:
            await engine.dispose()

    results.update(sent=sent, failed=failed, errors=errors)
    logger.info(f"Role assignment dispatch: {sent} sent, {failed} failed")
    return results


# =============================================================================
# CLI ENTRY POINT
# =============================================================================


def main():
    """CLI entry point for the dispatch job."""
    import argparse

    parser = argparse.ArgumentParser(description="Deliver pending role assignments")
    parser.add_argument(
        "--database-url",
        default=os.environ.get("DATABASE_URL"),
        help="Database connection string",
    )
    parser.add_argument(
        "--webhook-url",
        default=os.environ.get("ROLE_ASSIGNMENT_WEBHOOK_URL"),
        help="Directory endpoint receiving assignments",
    )
    parser.add_argument(
        "--max-attempts",
        type=int,
        default=None,
        help="Attempts before a request is marked failed",
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
        results = asyncio.run(run_role_assignment_dispatch(
            database_url=to_async_url(args.database_url),
            webhook_url=args.webhook_url,
            max_attempts=args.max_attempts,
        ))
        print(f"Dispatch completed: {results}")
    except Exception as e:
        print(f"Dispatch failed: {e}")
        raise SystemExit(1)


if __name__ == "__main__":
    main()
