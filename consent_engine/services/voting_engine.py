"""
Voting Engine: ballots, closing and results for polls.

A poll is open until it is closed; closing is one-way and freezes the
tally into the tool and the decision record. Deadlines are not scheduled:
a poll past its deadline refuses ballots, and the next results read (or
the deadline sweep job) performs the close.
"""

import logging
from datetime import datetime
from typing import Any
from uuid import UUID

from ..models import AuditAction, Message, Vote
from ..schemas.tools import TallyResult, VoteOption, VotingMode, VotingTool
from .base import ToolEngine, build_tool, utcnow
from .errors import (
    AlreadyClosedError,
    InvalidInputError,
    InvalidPhaseError,
    VotingClosedError,
)
from .tally import compute_tally, validate_choices

logger = logging.getLogger(__name__)


class VotingEngine(ToolEngine[VotingTool]):
    """Collects ballots and computes poll results."""

    tool_class = VotingTool

    async def create_voting(
        self,
        channel_id: UUID,
        author_id: UUID,
        question: str,
        options: list[VoteOption | dict[str, Any]],
        mode: VotingMode = VotingMode.SINGLE,
        is_anonymous: bool = False,
        deadline: datetime | None = None,
        now: datetime | None = None,
    ) -> tuple[Message, VotingTool]:
        now = utcnow(now)
        if deadline is not None and utcnow(deadline) <= now:
            raise InvalidInputError("The deadline must be in the future")

        tool = build_tool(
            VotingTool,
            question=(question or "").strip(),
            options=[
                o.model_dump() if isinstance(o, VoteOption) else dict(o) for o in options
            ],
            mode=mode,
            is_anonymous=is_anonymous,
            deadline=deadline,
        )
        message = await self.create_message(channel_id, author_id, tool.question, tool)
        return message, tool

    async def submit_ballot(
        self,
        message_id: UUID,
        member_id: UUID,
        choices: list[str],
        now: datetime | None = None,
    ) -> Vote:
        """Record or replace a member's ballot while the poll accepts them."""
        message, tool = await self.load(message_id)
        await self.directory.require_participant(message, member_id)

        if not tool.accepts_ballots(utcnow(now)):
            raise VotingClosedError(f"Poll {message_id} no longer accepts ballots")

        choices = list(choices)
        validate_choices(choices, tool.mode, tool.option_ids)

        vote = await self.ledger.upsert_vote(message, member_id, choices)
        await self.save(message, tool)

        self.audit.log_event(
            organization_id=message.organization_id,
            action=AuditAction.VOTE,
            resource_type="voting",
            resource_id=message.id,
            member_id=member_id,
            details={"choice_count": len(choices)},
        )
        logger.debug(f"Ballot of {member_id} recorded on poll {message_id}")
        return vote

    async def close_voting(
        self,
        message_id: UUID,
        actor_id: UUID,
        now: datetime | None = None,
    ) -> TallyResult:
        """Close the poll and return its tally.

        Closing a closed poll raises AlreadyClosedError carrying the tally
        frozen by the first close.
        """
        message, tool = await self.load(message_id)
        await self.require_facilitator(message, actor_id)

        if tool.is_closed:
            raise AlreadyClosedError(f"Poll {message_id} is already closed", tally=tool.tally)

        closed = await self._close(message, tool, actor_id, utcnow(now))
        return closed.tally

    async def get_voting_results(
        self,
        message_id: UUID,
        viewer_id: UUID,
        now: datetime | None = None,
    ) -> TallyResult:
        message, tool = await self.load(message_id)
        await self.directory.require_participant(message, viewer_id)

        if tool.is_closed:
            return tool.tally

        now = utcnow(now)
        if tool.is_past_deadline(now):
            closed = await self._close(message, tool, None, now)
            return closed.tally

        raise InvalidPhaseError(f"Poll {message_id} is still open")

    async def close_if_expired(self, message_id: UUID, now: datetime | None = None) -> bool:
        """Close a poll whose deadline passed; returns whether it was closed."""
        message, tool = await self.load(message_id)
        now = utcnow(now)
        if tool.is_closed or not tool.is_past_deadline(now):
            return False
        await self._close(message, tool, None, now)
        return True

    async def _close(
        self,
        message: Message,
        tool: VotingTool,
        actor_id: UUID | None,
        now: datetime,
    ) -> VotingTool:
        votes = await self.ledger.list_votes(message.id)
        tally = compute_tally(tool, ((v.member_id, v.choices) for v in votes))

        after = tool.evolve(is_closed=True, tally=tally.model_dump())
        after = await self.finish(message, tool, after, actor_id)

        self.audit.log_event(
            organization_id=message.organization_id,
            action=AuditAction.CLOSE,
            resource_type="voting",
            resource_id=message.id,
            member_id=actor_id,
            details={
                "total_ballots": tally.total_ballots,
                "winners": tally.winners,
                "past_deadline": tool.is_past_deadline(now),
            },
        )
        logger.info(
            f"Poll {message.id} closed with {tally.total_ballots} ballot(s), "
            f"winners: {', '.join(tally.winners) or 'none'}"
        )
        return after
