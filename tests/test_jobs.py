"""
Tests for the background jobs.

Verifies:
1. The deadline sweep closes overdue polls only, each with a decision record
2. Role assignment requests are delivered, retried and finally marked failed
"""

from datetime import datetime, timedelta, timezone

import httpx
import pytest
from sqlalchemy import select

from consent_engine.jobs import run_deadline_sweep, run_role_assignment_dispatch
from consent_engine.jobs.deadline_sweep import find_overdue_polls
from consent_engine.models import AssignmentStatus, Message, RoleAssignmentRequest
from consent_engine.schemas.tools import DirectiveAction, PhaseDirective, load_tool
from consent_engine.services import GovernanceEngine

NOW = datetime(2026, 5, 4, 12, 0, tzinfo=timezone.utc)
WEBHOOK_URL = "http://directory.test/role-assignments"

OPTIONS = [{"id": "yes", "label": "Yes"}, {"id": "no", "label": "No"}]


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
async def elected_election(session, governance: GovernanceEngine, org):
    """A finished election that filled the treasurer role with carol."""
    message, _ = await governance.create_election(
        org.team_channel, org.leader, "", org.team_id, role_id=org.role_id
    )
    for action in (DirectiveAction.OPEN_DISCUSSION, DirectiveAction.OPEN_CHANGE_ROUND):
        await governance.advance_phase(message.id, org.leader, PhaseDirective(action=action))
    await governance.advance_phase(
        message.id,
        org.leader,
        PhaseDirective(action=DirectiveAction.OPEN_CONSENT, candidate_id=org.carol),
    )
    await governance.advance_phase(
        message.id, org.leader, PhaseDirective(action=DirectiveAction.RESOLVE)
    )
    await session.commit()
    return message


async def assignment_requests(session_factory) -> list[RoleAssignmentRequest]:
    async with session_factory() as session:
        result = await session.execute(select(RoleAssignmentRequest))
        return list(result.scalars().all())


# =============================================================================
# TEST: DEADLINE SWEEP
# =============================================================================


class TestDeadlineSweep:
    """Closing polls past their deadline."""

    async def test_closes_only_overdue_polls(
        self, session, session_factory, governance: GovernanceEngine, org
    ):
        overdue, _ = await governance.create_voting(
            org.team_channel, org.alice, "Overdue?", OPTIONS,
            deadline=NOW + timedelta(hours=1), now=NOW,
        )
        later, _ = await governance.create_voting(
            org.team_channel, org.alice, "Later?", OPTIONS,
            deadline=NOW + timedelta(days=3), now=NOW,
        )
        open_ended, _ = await governance.create_voting(
            org.team_channel, org.alice, "Whenever?", OPTIONS, now=NOW,
        )
        await governance.submit_ballot(overdue.id, org.bob, ["yes"], now=NOW)
        await session.commit()

        results = await run_deadline_sweep(
            now=NOW + timedelta(hours=2), session_factory=session_factory
        )

        assert results["overdue"] == 1
        assert results["closed"] == [str(overdue.id)]
        assert results["errors"] == []

        async with session_factory() as check:
            for message_id, closed in (
                (overdue.id, True),
                (later.id, False),
                (open_ended.id, False),
            ):
                message = await check.get(Message, message_id)
                tool = load_tool(message.embedded_tool)
                assert tool.is_closed is closed
            message = await check.get(Message, overdue.id)
            tool = load_tool(message.embedded_tool)
            assert tool.tally.winners == ["yes"]
            assert tool.decision_id is not None

    async def test_second_sweep_finds_nothing(
        self, session, session_factory, governance: GovernanceEngine, org
    ):
        await governance.create_voting(
            org.team_channel, org.alice, "Overdue?", OPTIONS,
            deadline=NOW + timedelta(hours=1), now=NOW,
        )
        await session.commit()

        await run_deadline_sweep(now=NOW + timedelta(hours=2), session_factory=session_factory)
        results = await run_deadline_sweep(
            now=NOW + timedelta(hours=3), session_factory=session_factory
        )

        assert results["overdue"] == 0
        assert results["closed"] == []

    async def test_find_overdue_respects_deadline(
        self, session, governance: GovernanceEngine, org
    ):
        message, _ = await governance.create_voting(
            org.team_channel, org.alice, "Overdue?", OPTIONS,
            deadline=NOW + timedelta(hours=1), now=NOW,
        )

        assert await find_overdue_polls(session, NOW) == []
        assert await find_overdue_polls(session, NOW + timedelta(hours=1)) == [message.id]


# =============================================================================
# TEST: ROLE ASSIGNMENT DISPATCH
# =============================================================================


class TestRoleAssignmentDispatch:
    """Delivering elected members to the directory."""

    async def test_delivers_pending_request(self, session_factory, org, elected_election):
        received = []

        def handler(request: httpx.Request) -> httpx.Response:
            received.append(request)
            return httpx.Response(200, json={"ok": True})

        results = await run_role_assignment_dispatch(
            webhook_url=WEBHOOK_URL,
            session_factory=session_factory,
            transport=httpx.MockTransport(handler),
        )

        assert results["sent"] == 1
        assert results["failed"] == 0
        assert len(received) == 1
        assert str(received[0].url) == WEBHOOK_URL

        [request] = await assignment_requests(session_factory)
        assert request.status == AssignmentStatus.SENT
        assert request.attempts == 1
        assert request.sent_at is not None
        assert request.member_id == org.carol

    async def test_rejection_counts_attempt(self, session_factory, elected_election):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503)

        results = await run_role_assignment_dispatch(
            webhook_url=WEBHOOK_URL,
            max_attempts=3,
            session_factory=session_factory,
            transport=httpx.MockTransport(handler),
        )

        assert results["sent"] == 0
        assert results["failed"] == 0
        assert len(results["errors"]) == 1

        [request] = await assignment_requests(session_factory)
        assert request.status == AssignmentStatus.PENDING
        assert request.attempts == 1
        assert request.last_error

    async def test_marked_failed_after_max_attempts(self, session_factory, elected_election):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500)

        transport = httpx.MockTransport(handler)
        for _ in range(2):
            results = await run_role_assignment_dispatch(
                webhook_url=WEBHOOK_URL,
                max_attempts=2,
                session_factory=session_factory,
                transport=transport,
            )

        assert results["failed"] == 1
        [request] = await assignment_requests(session_factory)
        assert request.status == AssignmentStatus.FAILED
        assert request.attempts == 2

        # Failed requests are left for an operator
        results = await run_role_assignment_dispatch(
            webhook_url=WEBHOOK_URL,
            max_attempts=2,
            session_factory=session_factory,
            transport=transport,
        )
        assert results == {"sent": 0, "failed": 0, "errors": []}

    async def test_without_webhook_nothing_is_sent(self, session_factory, elected_election):
        results = await run_role_assignment_dispatch(session_factory=session_factory)

        assert results == {"sent": 0, "failed": 0, "errors": []}
        [request] = await assignment_requests(session_factory)
        assert request.status == AssignmentStatus.PENDING
