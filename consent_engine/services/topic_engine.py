"""
Topic Engine: consent-based decisions on a proposal.

Phases run proposition -> clarification -> consent -> resolved. The only
backward move is an explicit reopen from consent to proposition, which
starts a new consent round. Resolving computes the outcome from the
responses of the current round:

- no objection: accepted (the facilitator may still withdraw)
- objections and a revision from the proposer: modified
- objections without a revision: the facilitator must choose withdrawn,
  or reopen instead
"""

import logging
from uuid import UUID

from ..models import AuditAction, ConsentResponse, ConsentValue, Message, TopicAnswer, TopicClarification
from ..schemas.tools import DirectiveAction, PhaseDirective, TopicOutcome, TopicPhase, TopicTool
from .base import ToolEngine, build_tool
from .errors import (
    InvalidInputError,
    InvalidPhaseError,
    InvalidTransitionError,
    NotAuthorizedError,
    OutcomeRequiredError,
    ToolClosedError,
)

logger = logging.getLogger(__name__)

CLARIFICATION_PHASES = (TopicPhase.PROPOSITION, TopicPhase.CLARIFICATION)


class TopicEngine(ToolEngine[TopicTool]):
    """Drives topic tools through their consent workflow."""

    tool_class = TopicTool

    async def create_topic(
        self,
        channel_id: UUID,
        author_id: UUID,
        title: str,
        description: str,
    ) -> tuple[Message, TopicTool]:
        tool = build_tool(
            TopicTool,
            title=(title or "").strip(),
            description=(description or "").strip(),
        )
        message = await self.create_message(channel_id, author_id, tool.title, tool)
        return message, tool

    # =========================================================================
    # CLARIFICATIONS
    # =========================================================================

    async def submit_clarification(
        self,
        message_id: UUID,
        author_id: UUID,
        question: str,
    ) -> TopicClarification:
        """Ask a question; the first one moves a proposition into clarification."""
        message, tool = await self.load(message_id)
        await self.directory.require_participant(message, author_id)

        if tool.is_terminal:
            raise ToolClosedError(f"Topic {message_id} is resolved")
        if tool.phase not in CLARIFICATION_PHASES:
            raise InvalidPhaseError(f"Clarifications are closed ({tool.phase.value})")

        question = (question or "").strip()
        if not question:
            raise InvalidInputError("A clarification needs a question")

        clarification = await self.ledger.add_clarification(message, author_id, question)

        after = tool
        if tool.phase == TopicPhase.PROPOSITION:
            after = tool.evolve(phase=TopicPhase.CLARIFICATION)
            self.log_transition(message, author_id, tool.phase.value, after.phase.value)
        await self.save(message, after)

        self.audit.log_event(
            organization_id=message.organization_id,
            action=AuditAction.CLARIFY,
            resource_type="clarification",
            resource_id=clarification.id,
            member_id=author_id,
            details={"message_id": str(message.id)},
        )
        return clarification

    async def submit_answer(
        self,
        clarification_id: UUID,
        author_id: UUID,
        answer: str,
    ) -> TopicAnswer:
        clarification = await self.ledger.get_clarification(clarification_id)
        message, tool = await self.load(clarification.message_id)
        await self.directory.require_participant(message, author_id)

        if tool.is_terminal:
            raise ToolClosedError(f"Topic {message.id} is resolved")

        answer = (answer or "").strip()
        if not answer:
            raise InvalidInputError("An answer cannot be empty")

        row = await self.ledger.add_answer(clarification, author_id, answer)
        await self.save(message, tool)

        self.audit.log_event(
            organization_id=message.organization_id,
            action=AuditAction.ANSWER,
            resource_type="clarification",
            resource_id=clarification.id,
            member_id=author_id,
            details={"message_id": str(message.id), "answer_id": str(row.id)},
        )
        return row

    # =========================================================================
    # CONSENT
    # =========================================================================

    async def submit_response(
        self,
        message_id: UUID,
        member_id: UUID,
        response: ConsentValue,
        reason: str | None = None,
    ) -> ConsentResponse:
        message, tool = await self.load(message_id)
        await self.directory.require_participant(message, member_id)

        if tool.is_terminal:
            raise ToolClosedError(f"Topic {message_id} is resolved")
        if tool.phase != TopicPhase.CONSENT:
            raise InvalidPhaseError(f"Topic is not in consent ({tool.phase.value})")

        return await self.record_consent(message, tool, member_id, response, reason)

    # =========================================================================
    # PHASE TRANSITIONS
    # =========================================================================

    async def advance(
        self,
        message_id: UUID,
        actor_id: UUID,
        directive: PhaseDirective,
    ) -> TopicTool:
        message, tool = await self.load(message_id)
        await self.require_facilitator(message, actor_id)

        if tool.is_terminal:
            raise InvalidTransitionError(f"Topic {message_id} is already resolved")

        action = directive.action
        if action == DirectiveAction.OPEN_CLARIFICATION:
            self._expect(tool, TopicPhase.PROPOSITION, action)
            after = tool.evolve(phase=TopicPhase.CLARIFICATION)
        elif action == DirectiveAction.OPEN_CONSENT:
            self._expect(tool, TopicPhase.CLARIFICATION, action)
            after = tool.evolve(phase=TopicPhase.CONSENT)
        elif action == DirectiveAction.REOPEN:
            self._expect(tool, TopicPhase.CONSENT, action)
            after = tool.evolve(
                phase=TopicPhase.PROPOSITION,
                consent_round=tool.consent_round + 1,
            )
        elif action == DirectiveAction.RESOLVE:
            self._expect(tool, TopicPhase.CONSENT, action)
            return await self._resolve(message, tool, actor_id, directive)
        else:
            raise InvalidTransitionError(f"'{action.value}' is not a topic directive")

        self.log_transition(message, actor_id, tool.phase.value, after.phase.value)
        return await self.save(message, after)

    async def _resolve(
        self,
        message: Message,
        tool: TopicTool,
        actor_id: UUID,
        directive: PhaseDirective,
    ) -> TopicTool:
        objections = await self.ledger.count_objections(message.id, tool.consent_round)
        revision = (directive.revision or "").strip() or None
        if revision and actor_id != message.author_id:
            raise NotAuthorizedError("Only the proposer can attach a revised proposal")
        outcome = resolve_outcome(objections, revision, directive.outcome)

        after = tool.evolve(phase=TopicPhase.RESOLVED, outcome=outcome, revision=revision)
        after = await self.finish(message, tool, after, actor_id)

        self.audit.log_event(
            organization_id=message.organization_id,
            action=AuditAction.RESOLVE,
            resource_type="topic",
            resource_id=message.id,
            member_id=actor_id,
            details={
                "outcome": outcome.value,
                "objections": objections,
                "round": tool.consent_round,
            },
        )
        logger.info(f"Topic {message.id} resolved as {outcome.value}")
        return after

    @staticmethod
    def _expect(tool: TopicTool, phase: TopicPhase, action: DirectiveAction) -> None:
        if tool.phase != phase:
            raise InvalidTransitionError(
                f"'{action.value}' requires phase {phase.value}, topic is in {tool.phase.value}"
            )


def resolve_outcome(
    objections: int,
    revision: str | None,
    chosen: TopicOutcome | None,
) -> TopicOutcome:
    """Outcome of a consent round given its standing objections."""
    if not objections:
        if revision:
            raise InvalidTransitionError("A revision can only answer standing objections")
        if chosen in (None, TopicOutcome.ACCEPTED):
            return TopicOutcome.ACCEPTED
        if chosen == TopicOutcome.WITHDRAWN:
            return TopicOutcome.WITHDRAWN
        raise InvalidTransitionError("Without objections a topic cannot be modified")

    if revision:
        if chosen not in (None, TopicOutcome.MODIFIED):
            raise InvalidTransitionError("A revised topic resolves as modified")
        return TopicOutcome.MODIFIED

    if chosen is None:
        raise OutcomeRequiredError(
            "Objections stand without a revision: resolve as withdrawn or reopen"
        )
    if chosen == TopicOutcome.MODIFIED:
        raise InvalidTransitionError("A modified outcome needs the revised proposal")
    if chosen == TopicOutcome.ACCEPTED:
        raise InvalidTransitionError("A topic with standing objections cannot be accepted")
    return TopicOutcome.WITHDRAWN
