"""
Governance Engine: the service boundary consumed by the chat service.

Routes each submission to the engine of the tool the message carries.
Dispatch is exhaustive over the three tool variants; a message carrying
another tool (or none) is rejected with ToolMismatchError.

Submissions and directives that lose a race on the message version are
rolled back and re-run against the fresh state, a bounded number of
times, before the conflict reaches the caller.
"""

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any, Sequence, TypeVar
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import Settings, get_settings
from ..models import (
    ConsentResponse,
    ConsentValue,
    ElectionNomination,
    Message,
    TopicAnswer,
    TopicClarification,
    Vote,
)
from ..schemas.tools import (
    ElectionTool,
    PhaseDirective,
    TallyResult,
    TopicTool,
    VoteOption,
    VotingMode,
    VotingTool,
    load_tool,
)
from .directory import Directory
from .election_engine import ElectionEngine, NominationListing
from .errors import ConcurrencyError, InvalidTransitionError, ToolMismatchError
from .outcome_sink import RoleAssignmentNotifier
from .participation import ParticipationLedger
from .topic_engine import TopicEngine
from .voting_engine import VotingEngine

logger = logging.getLogger(__name__)

T = TypeVar("T")


class GovernanceEngine:
    """Entry point for all decision-tool operations of one transaction."""

    def __init__(
        self,
        session: AsyncSession,
        settings: Settings | None = None,
        notifier: RoleAssignmentNotifier | None = None,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.topics = TopicEngine(session, settings, notifier)
        self.votings = VotingEngine(session, settings, notifier)
        self.elections = ElectionEngine(session, settings, notifier)
        self.directory = Directory(session)
        self.ledger = ParticipationLedger(session)

    # =========================================================================
    # CREATION
    # =========================================================================

    async def create_topic(
        self, channel_id: UUID, author_id: UUID, title: str, description: str
    ) -> tuple[Message, TopicTool]:
        return await self.topics.create_topic(channel_id, author_id, title, description)

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
        return await self.votings.create_voting(
            channel_id, author_id, question, options, mode, is_anonymous, deadline, now
        )

    async def create_election(
        self,
        channel_id: UUID,
        author_id: UUID,
        role_title: str,
        team_id: UUID,
        role_id: UUID | None = None,
    ) -> tuple[Message, ElectionTool]:
        return await self.elections.create_election(
            channel_id, author_id, role_title, team_id, role_id
        )

    # =========================================================================
    # SUBMISSIONS
    # =========================================================================

    async def submit_clarification(
        self, message_id: UUID, author_id: UUID, question: str
    ) -> TopicClarification:
        return await self._retrying(
            self.topics.submit_clarification, message_id, author_id, question
        )

    async def submit_answer(
        self, clarification_id: UUID, author_id: UUID, answer: str
    ) -> TopicAnswer:
        return await self._retrying(
            self.topics.submit_answer, clarification_id, author_id, answer
        )

    async def submit_consent_response(
        self,
        message_id: UUID,
        member_id: UUID,
        response: ConsentValue,
        reason: str | None = None,
    ) -> ConsentResponse:
        """Consent, object or stand aside on a topic or an election candidate."""
        return await self._retrying(
            self._submit_consent_response, message_id, member_id, response, reason
        )

    async def submit_ballot(
        self,
        message_id: UUID,
        member_id: UUID,
        choices: list[str],
        now: datetime | None = None,
    ) -> Vote:
        return await self._retrying(
            self.votings.submit_ballot, message_id, member_id, choices, now
        )

    async def propose_candidate(
        self, message_id: UUID, nominator_id: UUID, candidate_id: UUID
    ) -> ElectionTool:
        return await self._retrying(
            self.elections.propose_candidate, message_id, nominator_id, candidate_id
        )

    async def submit_nomination(
        self, message_id: UUID, nominator_id: UUID, nominee_id: UUID, reason: str
    ) -> ElectionNomination:
        return await self._retrying(
            self.elections.submit_nomination, message_id, nominator_id, nominee_id, reason
        )

    async def change_nomination(
        self, message_id: UUID, nominator_id: UUID, nominee_id: UUID, reason: str
    ) -> ElectionNomination:
        return await self._retrying(
            self.elections.change_nomination, message_id, nominator_id, nominee_id, reason
        )

    # =========================================================================
    # FACILITATION
    # =========================================================================

    async def advance_phase(
        self,
        message_id: UUID,
        actor_id: UUID,
        directive: PhaseDirective,
    ) -> str:
        """Apply a facilitator directive and return the resulting phase."""
        return await self._retrying(self._advance_phase, message_id, actor_id, directive)

    async def close_voting(
        self, message_id: UUID, actor_id: UUID, now: datetime | None = None
    ) -> TallyResult:
        return await self._retrying(self.votings.close_voting, message_id, actor_id, now)


    # =========================================================================
    # READS
    # =========================================================================

    async def get_tool(
        self, message_id: UUID, viewer_id: UUID
    ) -> tuple[Message, TopicTool | VotingTool | ElectionTool]:
        message = await self.directory.get_message(message_id)
        tool = await self._tool_of(message_id)
        await self._require_viewer(message, tool, viewer_id)
        return message, tool

    async def list_clarifications(
        self, message_id: UUID, viewer_id: UUID
    ) -> Sequence[TopicClarification]:
        message, _ = await self.topics.load(message_id)
        await self.directory.require_participant(message, viewer_id)
        return await self.ledger.list_clarifications(message_id)

    async def list_responses(
        self,
        message_id: UUID,
        viewer_id: UUID,
        round: int | None = None,
    ) -> Sequence[ConsentResponse]:
        """Responses of ``round``, by default the tool's current round."""
        message, tool = await self.get_tool(message_id, viewer_id)
        if isinstance(tool, VotingTool):
            raise ToolMismatchError("Polls have no consent responses")
        return await self.ledger.list_responses(
            message.id, round if round is not None else tool.consent_round
        )

    async def get_voting_results(
        self, message_id: UUID, viewer_id: UUID, now: datetime | None = None
    ) -> TallyResult:
        """Frozen tally of a poll; an overdue poll is closed by this read."""
        return await self._retrying(
            self.votings.get_voting_results, message_id, viewer_id, now
        )

    async def list_nominations(self, message_id: UUID, viewer_id: UUID) -> NominationListing:
        return await self.elections.list_nominations(message_id, viewer_id)

    # =========================================================================
    # INTERNAL HELPERS
    # =========================================================================

    async def _retrying(self, operation: Callable[..., Awaitable[T]], *args: Any) -> T:
        """Run ``operation``, re-running it after a rollback on a concurrency conflict.

        The rollback discards everything the session did since its last
        commit, so one GovernanceEngine call must be the whole unit of work.
        """
        attempts = self.settings.concurrency_retry_attempts
        for attempt in range(1, attempts):
            try:
                return await operation(*args)
            except ConcurrencyError as e:
                await self.session.rollback()
                logger.info(
                    f"Retrying {operation.__name__} after a conflict "
                    f"(attempt {attempt}/{attempts}): {e}"
                )
        return await operation(*args)

    async def _submit_consent_response(
        self,
        message_id: UUID,
        member_id: UUID,
        response: ConsentValue,
        reason: str | None,
    ) -> ConsentResponse:
        tool = await self._tool_of(message_id)
        if isinstance(tool, TopicTool):
            return await self.topics.submit_response(message_id, member_id, response, reason)
        if isinstance(tool, ElectionTool):
            return await self.elections.submit_response(message_id, member_id, response, reason)
        if isinstance(tool, VotingTool):
            raise ToolMismatchError("Polls take ballots, not consent responses")
        raise ToolMismatchError(f"Unsupported tool: {type(tool).__name__}")

    async def _advance_phase(
        self,
        message_id: UUID,
        actor_id: UUID,
        directive: PhaseDirective,
    ) -> str:
        tool = await self._tool_of(message_id)
        if isinstance(tool, TopicTool):
            after = await self.topics.advance(message_id, actor_id, directive)
            return after.phase.value
        if isinstance(tool, ElectionTool):
            after = await self.elections.advance(message_id, actor_id, directive)
            return after.phase.value
        if isinstance(tool, VotingTool):
            raise InvalidTransitionError("Polls have no phases; close them instead")
        raise ToolMismatchError(f"Unsupported tool: {type(tool).__name__}")

    async def _tool_of(self, message_id: UUID) -> TopicTool | VotingTool | ElectionTool:
        message = await self.directory.get_message(message_id)
        if message.embedded_tool is None:
            raise ToolMismatchError(f"Message {message_id} carries no decision tool")
        return load_tool(message.embedded_tool)

    async def _require_viewer(
        self,
        message: Message,
        tool: TopicTool | VotingTool | ElectionTool,
        viewer_id: UUID,
    ) -> None:
        team_id = tool.team_id if isinstance(tool, ElectionTool) else None
        if await self.directory.can_facilitate(message, viewer_id, team_id):
            return
        await self.directory.require_participant(message, viewer_id, team_id)
