"""
Tests for the participation ledger.

Verifies:
1. Resubmitted responses and ballots replace the row, never add one
2. Responses are kept per consent round
3. Clarifications and answers keep insertion order
"""

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from consent_engine.models import ConsentResponse, ConsentValue, Vote
from consent_engine.schemas.tools import TopicTool
from consent_engine.services import GovernanceEngine, ParticipationLedger


# =============================================================================
# FIXTURES
# =============================================================================


async def count_rows(session: AsyncSession, model, **criteria) -> int:
    query = select(func.count()).select_from(model)
    for column, value in criteria.items():
        query = query.where(getattr(model, column) == value)
    return (await session.execute(query)).scalar_one()


# =============================================================================
# TEST: UPSERTS
# =============================================================================


class TestResponseUpsert:
    """At most one response per member and round."""

    async def test_resubmission_replaces_response(
        self, session: AsyncSession, governance: GovernanceEngine, org
    ):
        message, _ = await governance.create_topic(
            org.team_channel, org.alice, "Budget", "Spend 500 on tools"
        )
        ledger = ParticipationLedger(session)

        first = await ledger.upsert_response(message, org.bob, 1, ConsentValue.CONSENT, None)
        second = await ledger.upsert_response(
            message, org.bob, 1, ConsentValue.OBJECTION, "Too expensive"
        )

        assert first.id == second.id
        assert second.response == ConsentValue.OBJECTION
        assert second.reason == "Too expensive"
        assert await count_rows(session, ConsentResponse, message_id=message.id) == 1

    async def test_rounds_are_separate(
        self, session: AsyncSession, governance: GovernanceEngine, org
    ):
        message, _ = await governance.create_topic(
            org.team_channel, org.alice, "Budget", "Spend 500 on tools"
        )
        ledger = ParticipationLedger(session)

        await ledger.upsert_response(message, org.bob, 1, ConsentValue.OBJECTION, "No")
        await ledger.upsert_response(message, org.bob, 2, ConsentValue.CONSENT, None)

        assert await ledger.count_objections(message.id, 1) == 1
        assert await ledger.count_objections(message.id, 2) == 0
        assert len(await ledger.list_responses(message.id)) == 2
        assert len(await ledger.list_responses(message.id, round=2)) == 1


class TestVoteUpsert:
    """At most one ballot per member."""

    async def test_resubmission_replaces_ballot(
        self, session: AsyncSession, governance: GovernanceEngine, org
    ):
        message, _ = await governance.create_voting(
            org.team_channel,
            org.alice,
            "Lunch?",
            [{"id": "a", "label": "Pizza"}, {"id": "b", "label": "Pasta"}],
        )

        await governance.submit_ballot(message.id, org.bob, ["a"])
        vote = await governance.submit_ballot(message.id, org.bob, ["b"])

        assert vote.choices == ["b"]
        assert await count_rows(session, Vote, message_id=message.id) == 1

    async def test_every_ballot_bumps_message_version(
        self, governance: GovernanceEngine, org
    ):
        message, _ = await governance.create_voting(
            org.team_channel,
            org.alice,
            "Lunch?",
            [{"id": "a", "label": "Pizza"}, {"id": "b", "label": "Pasta"}],
        )
        version = message.version

        await governance.submit_ballot(message.id, org.bob, ["a"])

        assert message.version == version + 1


class TestClarificationOrder:
    """Append-only clarifications in insertion order."""

    async def test_positions_follow_insertion(
        self, governance: GovernanceEngine, org
    ):
        message, _ = await governance.create_topic(
            org.team_channel, org.alice, "Budget", "Spend 500 on tools"
        )

        first = await governance.submit_clarification(message.id, org.bob, "Which tools?")
        second = await governance.submit_clarification(message.id, org.carol, "From which budget?")
        await governance.submit_answer(first.id, org.alice, "Drills")
        await governance.submit_answer(first.id, org.alice, "And saws")

        listed = await governance.list_clarifications(message.id, org.bob)

        assert [c.id for c in listed] == [first.id, second.id]
        assert [c.position for c in listed] == [1, 2]
        assert [a.answer for a in listed[0].answers] == ["Drills", "And saws"]
        assert listed[1].answers == []

    async def test_tool_state_is_typed(self, governance: GovernanceEngine, org):
        message, tool = await governance.create_topic(
            org.team_channel, org.alice, "Budget", "Spend 500 on tools"
        )
        _, loaded = await governance.get_tool(message.id, org.bob)

        assert isinstance(tool, TopicTool)
        assert loaded == tool
