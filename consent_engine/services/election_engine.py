"""
Election Engine: consent-based elections filling a role in a team.

Phases run nomination -> discussion -> change_round -> consent -> elected.
A failed consent round may loop back to change_round (retry) so another
candidate can be proposed without restarting nomination. ``elected`` is
the only terminal phase; its outcome is either ``elected`` or
``no_election``.

Nominations are secret while the election is in nomination.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from uuid import UUID

from ..models import AuditAction, ConsentResponse, ConsentValue, ElectionNomination, Message
from ..schemas.tools import (
    DirectiveAction,
    ElectionOutcome,
    ElectionPhase,
    ElectionTool,
    PhaseDirective,
)
from .base import ToolEngine, build_tool
from .errors import (
    CandidateConflictError,
    InvalidInputError,
    InvalidPhaseError,
    InvalidTransitionError,
    NotFoundError,
    ToolClosedError,
)

logger = logging.getLogger(__name__)

CANDIDATE_PHASES = (ElectionPhase.NOMINATION, ElectionPhase.CHANGE_ROUND)


@dataclass
class NominationListing:
    """What a viewer may see of an election's nominations."""
    revealed: bool
    count: int
    has_nominated: bool
    nominations: list[ElectionNomination] = field(default_factory=list)
    tally: dict[UUID, int] = field(default_factory=dict)


class ElectionEngine(ToolEngine[ElectionTool]):
    """Drives election tools from nomination to a terminal outcome."""

    tool_class = ElectionTool

    async def create_election(
        self,
        channel_id: UUID,
        author_id: UUID,
        role_title: str,
        team_id: UUID,
        role_id: UUID | None = None,
    ) -> tuple[Message, ElectionTool]:
        channel = await self.directory.get_channel(channel_id)
        team = await self.directory.get_team(channel.organization_id, team_id)
        if team is None:
            raise InvalidInputError("Team does not belong to this organization")

        if role_id is not None:
            role = await self.directory.get_role(role_id)
            if role is None or role.team_id != team.id:
                raise InvalidInputError("Role does not belong to the election's team")
            role_title = (role_title or "").strip() or role.title

        tool = build_tool(
            ElectionTool,
            role_title=(role_title or "").strip(),
            role_id=role_id,
            team_id=team.id,
        )
        message = await self.create_message(
            channel_id, author_id, f"Election: {tool.role_title}", tool
        )
        return message, tool

    # =========================================================================
    # CANDIDATES AND NOMINATIONS
    # =========================================================================

    async def propose_candidate(
        self,
        message_id: UUID,
        nominator_id: UUID,
        candidate_id: UUID,
    ) -> ElectionTool:
        """Set the proposed candidate.

        A standing candidate is only replaced by a facilitator; anyone else
        gets CandidateConflictError.
        """
        message, tool = await self.load(message_id)
        facilitator = await self.directory.can_facilitate(message, nominator_id, tool.team_id)
        if not facilitator:
            await self.directory.require_participant(message, nominator_id, tool.team_id)

        self._require_open(tool)
        if tool.phase not in CANDIDATE_PHASES:
            raise InvalidPhaseError(
                f"Candidates cannot be proposed during {tool.phase.value}"
            )
        await self.directory.get_member(message.organization_id, candidate_id)

        current = tool.proposed_candidate_id
        if current is not None and current != candidate_id and not facilitator:
            raise CandidateConflictError(
                "A candidate is already proposed; only a facilitator may replace it"
            )

        after = tool.evolve(proposed_candidate_id=candidate_id)
        await self.save(message, after)

        self.audit.log_event(
            organization_id=message.organization_id,
            action=AuditAction.PROPOSE,
            resource_type="election",
            resource_id=message.id,
            member_id=nominator_id,
            details={
                "candidate_id": str(candidate_id),
                "replaced": str(current) if current and current != candidate_id else None,
            },
        )
        logger.info(f"Election {message.id}: candidate {candidate_id} proposed")
        return after

    async def submit_nomination(
        self,
        message_id: UUID,
        nominator_id: UUID,
        nominee_id: UUID,
        reason: str,
    ) -> ElectionNomination:
        message, tool = await self.load(message_id)
        await self.directory.require_participant(message, nominator_id, tool.team_id)

        self._require_open(tool)
        if tool.phase != ElectionPhase.NOMINATION:
            raise InvalidPhaseError(f"Nominations are closed ({tool.phase.value})")
        reason = self._nomination_reason(reason)
        await self.directory.get_member(message.organization_id, nominee_id)

        if await self.ledger.get_nomination(message.id, nominator_id):
            raise InvalidPhaseError(
                "Already nominated; a nomination can only be changed in the change round"
            )

        nomination = await self.ledger.add_nomination(message, nominator_id, nominee_id, reason)
        await self.save(message, tool)
        self._log_nomination(message, nominator_id, nomination, changed=False)
        return nomination

    async def change_nomination(
        self,
        message_id: UUID,
        nominator_id: UUID,
        nominee_id: UUID,
        reason: str,
    ) -> ElectionNomination:
        message, tool = await self.load(message_id)
        await self.directory.require_participant(message, nominator_id, tool.team_id)

        self._require_open(tool)
        if tool.phase != ElectionPhase.CHANGE_ROUND:
            raise InvalidPhaseError("Nominations can only be changed in the change round")
        reason = self._nomination_reason(reason)
        await self.directory.get_member(message.organization_id, nominee_id)

        nomination = await self.ledger.get_nomination(message.id, nominator_id)
        if nomination is None:
            raise NotFoundError(f"Member {nominator_id} has no nomination to change")

        nomination = await self.ledger.change_nomination(nomination, nominee_id, reason)
        await self.save(message, tool)
        self._log_nomination(message, nominator_id, nomination, changed=True)
        return nomination

    async def list_nominations(self, message_id: UUID, viewer_id: UUID) -> NominationListing:
        message, tool = await self.load(message_id)
        if not await self.directory.can_facilitate(message, viewer_id, tool.team_id):
            await self.directory.require_participant(message, viewer_id, tool.team_id)

        nominations = list(await self.ledger.list_nominations(message.id))
        has_nominated = any(n.nominator_id == viewer_id for n in nominations)

        if tool.phase == ElectionPhase.NOMINATION:
            return NominationListing(
                revealed=False,
                count=len(nominations),
                has_nominated=has_nominated,
            )

        return NominationListing(
            revealed=True,
            count=len(nominations),
            has_nominated=has_nominated,
            nominations=nominations,
            tally=dict(Counter(n.nominee_id for n in nominations)),
        )

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
        """Register a position on the current candidate."""
        message, tool = await self.load(message_id)
        await self.directory.require_participant(message, member_id, tool.team_id)

        self._require_open(tool)
        if tool.phase != ElectionPhase.CONSENT:
            raise InvalidPhaseError(f"Election is not in consent ({tool.phase.value})")

        return await self.record_consent(message, tool, member_id, response, reason)

    # =========================================================================
    # PHASE TRANSITIONS
    # =========================================================================

    async def advance(
        self,
        message_id: UUID,
        actor_id: UUID,
        directive: PhaseDirective,
    ) -> ElectionTool:
        message, tool = await self.load(message_id)
        await self.require_facilitator(message, actor_id, tool.team_id)

        if tool.is_terminal:
            raise InvalidTransitionError(f"Election {message_id} is already finished")

        action = directive.action
        if action == DirectiveAction.OPEN_DISCUSSION:
            self._expect(tool, ElectionPhase.NOMINATION, action)
            after = tool.evolve(phase=ElectionPhase.DISCUSSION)
        elif action == DirectiveAction.OPEN_CHANGE_ROUND:
            self._expect(tool, ElectionPhase.DISCUSSION, action)
            after = tool.evolve(phase=ElectionPhase.CHANGE_ROUND)
        elif action == DirectiveAction.OPEN_CONSENT:
            self._expect(tool, ElectionPhase.CHANGE_ROUND, action)
            candidate_id = directive.candidate_id or tool.proposed_candidate_id
            if candidate_id is None:
                raise InvalidTransitionError("A consent round needs a proposed candidate")
            await self.directory.get_member(message.organization_id, candidate_id)
            after = tool.evolve(phase=ElectionPhase.CONSENT, proposed_candidate_id=candidate_id)
        elif action == DirectiveAction.RETRY:
            self._expect(tool, ElectionPhase.CONSENT, action)
            after = tool.evolve(
                phase=ElectionPhase.CHANGE_ROUND,
                proposed_candidate_id=None,
                consent_round=tool.consent_round + 1,
            )
        elif action == DirectiveAction.RESOLVE:
            self._expect(tool, ElectionPhase.CONSENT, action)
            objections = await self.ledger.count_objections(message.id, tool.consent_round)
            if objections:
                raise InvalidTransitionError(
                    f"{objections} objection(s) stand; retry or end without election"
                )
            after = tool.evolve(
                phase=ElectionPhase.ELECTED,
                outcome=ElectionOutcome.ELECTED,
                elected_member_id=tool.proposed_candidate_id,
            )
            return await self._terminate(message, tool, after, actor_id)
        elif action == DirectiveAction.NO_ELECTION:
            after = tool.evolve(
                phase=ElectionPhase.ELECTED,
                outcome=ElectionOutcome.NO_ELECTION,
                elected_member_id=None,
            )
            return await self._terminate(message, tool, after, actor_id)
        else:
            raise InvalidTransitionError(f"'{action.value}' is not an election directive")

        self.log_transition(message, actor_id, tool.phase.value, after.phase.value)
        return await self.save(message, after)

    async def _terminate(
        self,
        message: Message,
        tool: ElectionTool,
        after: ElectionTool,
        actor_id: UUID,
    ) -> ElectionTool:
        after = await self.finish(message, tool, after, actor_id)

        self.audit.log_event(
            organization_id=message.organization_id,
            action=AuditAction.RESOLVE,
            resource_type="election",
            resource_id=message.id,
            member_id=actor_id,
            details={
                "outcome": after.outcome.value,
                "elected_member_id": (
                    str(after.elected_member_id) if after.elected_member_id else None
                ),
                "round": tool.consent_round,
            },
        )
        logger.info(f"Election {message.id} finished: {after.outcome.value}")
        return after

    # =========================================================================
    # INTERNAL HELPERS
    # =========================================================================

    @staticmethod
    def _require_open(tool: ElectionTool) -> None:
        if tool.is_terminal:
            raise ToolClosedError("The election is finished")

    @staticmethod
    def _expect(tool: ElectionTool, phase: ElectionPhase, action: DirectiveAction) -> None:
        if tool.phase != phase:
            raise InvalidTransitionError(
                f"'{action.value}' requires phase {phase.value}, election is in {tool.phase.value}"
            )

    @staticmethod
    def _nomination_reason(reason: str) -> str:
        reason = (reason or "").strip()
        if not reason:
            raise InvalidInputError("A nomination needs a reason")
        return reason

    def _log_nomination(
        self,
        message: Message,
        nominator_id: UUID,
        nomination: ElectionNomination,
        changed: bool,
    ) -> None:
        # Nominee stays out of the audit details while nominations are secret
        self.audit.log_event(
            organization_id=message.organization_id,
            action=AuditAction.NOMINATE,
            resource_type="election",
            resource_id=message.id,
            member_id=nominator_id,
            details={"nomination_id": str(nomination.id), "changed": changed},
        )
