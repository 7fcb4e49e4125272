"""
Participation Ledger: records of participant input on embedded tools.

- Clarifications and answers are append-only; insertion order is kept in an
  explicit per-parent ``position``.
- Consent responses and ballots are indexed upserts keyed by
  (message, member[, round]): a resubmission replaces the row's content and
  never adds a second row, so consent and tally reads stay O(participants).
- Two writers racing on the same key collide on the unique constraint and
  surface as ConcurrencyError; the transaction is retried by the caller.
"""

import logging
from typing import Sequence
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.exc import StaleDataError

from ..models import (
    ConsentResponse,
    ConsentValue,
    ElectionNomination,
    Message,
    TopicAnswer,
    TopicClarification,
    Vote,
)
from .errors import ClarificationNotFoundError, ConcurrencyError

logger = logging.getLogger(__name__)


class ParticipationLedger:
    """Reads and writes the ledger rows attached to one organization's messages."""

    def __init__(self, session: AsyncSession):
        self._session = session

    # =========================================================================
    # CLARIFICATIONS
    # =========================================================================

    async def add_clarification(
        self,
        message: Message,
        author_id: UUID,
        question: str,
    ) -> TopicClarification:
        position = await self._next_position(
            TopicClarification.message_id == message.id, TopicClarification
        )
        clarification = TopicClarification(
            message_id=message.id,
            organization_id=message.organization_id,
            author_id=author_id,
            question=question,
            position=position,
        )
        await self._insert(clarification)
        return clarification

    async def get_clarification(self, clarification_id: UUID) -> TopicClarification:
        clarification = await self._session.get(TopicClarification, clarification_id)
        if not clarification:
            raise ClarificationNotFoundError(f"Clarification {clarification_id} not found")
        return clarification

    async def add_answer(
        self,
        clarification: TopicClarification,
        author_id: UUID,
        answer: str,
    ) -> TopicAnswer:
        position = await self._next_position(
            TopicAnswer.clarification_id == clarification.id, TopicAnswer
        )
        row = TopicAnswer(
            clarification_id=clarification.id,
            message_id=clarification.message_id,
            organization_id=clarification.organization_id,
            author_id=author_id,
            answer=answer,
            position=position,
        )
        await self._insert(row)
        return row

    async def list_clarifications(self, message_id: UUID) -> Sequence[TopicClarification]:
        """Clarifications in discussion order, answers eagerly loaded."""
        result = await self._session.execute(
            select(TopicClarification)
            .where(TopicClarification.message_id == message_id)
            .options(selectinload(TopicClarification.answers))
            .order_by(TopicClarification.position)
            .execution_options(populate_existing=True)
        )
        return result.scalars().all()

    # =========================================================================
    # CONSENT RESPONSES
    # =========================================================================

    async def upsert_response(
        self,
        message: Message,
        member_id: UUID,
        round: int,
        response: ConsentValue,
        reason: str | None,
    ) -> ConsentResponse:
        """Latest submission wins; an identical resubmission writes nothing."""
        existing = await self.get_response(message.id, member_id, round)

        if existing:
            if existing.response == response and existing.reason == reason:
                return existing
            existing.response = response
            existing.reason = reason
            await self._flush()
            logger.debug(f"Replaced response of {member_id} on {message.id} (round {round})")
            return existing

        row = ConsentResponse(
            message_id=message.id,
            organization_id=message.organization_id,
            member_id=member_id,
            round=round,
            response=response,
            reason=reason,
        )
        await self._insert(row)
        logger.debug(f"Recorded response of {member_id} on {message.id} (round {round})")
        return row

    async def get_response(
        self, message_id: UUID, member_id: UUID, round: int
    ) -> ConsentResponse | None:
        result = await self._session.execute(
            select(ConsentResponse).where(
                ConsentResponse.message_id == message_id,
                ConsentResponse.member_id == member_id,
                ConsentResponse.round == round,
            )
        )
        return result.scalar_one_or_none()

    async def list_responses(
        self, message_id: UUID, round: int | None = None
    ) -> Sequence[ConsentResponse]:
        query = select(ConsentResponse).where(ConsentResponse.message_id == message_id)
        if round is not None:
            query = query.where(ConsentResponse.round == round)
        result = await self._session.execute(
            query.order_by(ConsentResponse.round, ConsentResponse.created_at)
        )
        return result.scalars().all()

    async def count_objections(self, message_id: UUID, round: int) -> int:
        result = await self._session.execute(
            select(func.count()).where(
                ConsentResponse.message_id == message_id,
                ConsentResponse.round == round,
                ConsentResponse.response == ConsentValue.OBJECTION,
            )
        )
        return result.scalar_one()

    # =========================================================================
    # BALLOTS
    # =========================================================================

    async def upsert_vote(
        self,
        message: Message,
        member_id: UUID,
        choices: list[str],
    ) -> Vote:
        result = await self._session.execute(
            select(Vote).where(Vote.message_id == message.id, Vote.member_id == member_id)
        )
        existing = result.scalar_one_or_none()

        if existing:
            if existing.choices != choices:
                existing.choices = list(choices)
                await self._flush()
            return existing

        vote = Vote(
            message_id=message.id,
            organization_id=message.organization_id,
            member_id=member_id,
            choices=list(choices),
        )
        await self._insert(vote)
        return vote

    async def get_vote(self, message_id: UUID, member_id: UUID) -> Vote | None:
        result = await self._session.execute(
            select(Vote).where(Vote.message_id == message_id, Vote.member_id == member_id)
        )
        return result.scalar_one_or_none()

    async def list_votes(self, message_id: UUID) -> Sequence[Vote]:
        result = await self._session.execute(
            select(Vote).where(Vote.message_id == message_id).order_by(Vote.created_at)
        )
        return result.scalars().all()

    # =========================================================================
    # NOMINATIONS
    # =========================================================================

    async def get_nomination(
        self, message_id: UUID, nominator_id: UUID
    ) -> ElectionNomination | None:
        result = await self._session.execute(
            select(ElectionNomination).where(
                ElectionNomination.message_id == message_id,
                ElectionNomination.nominator_id == nominator_id,
            )
        )
        return result.scalar_one_or_none()

    async def add_nomination(
        self,
        message: Message,
        nominator_id: UUID,
        nominee_id: UUID,
        reason: str,
    ) -> ElectionNomination:
        nomination = ElectionNomination(
            message_id=message.id,
            organization_id=message.organization_id,
            nominator_id=nominator_id,
            nominee_id=nominee_id,
            reason=reason,
        )
        await self._insert(nomination)
        return nomination

    async def change_nomination(
        self,
        nomination: ElectionNomination,
        nominee_id: UUID,
        reason: str,
    ) -> ElectionNomination:
        nomination.nominee_id = nominee_id
        nomination.reason = reason
        await self._flush()
        return nomination

    async def list_nominations(self, message_id: UUID) -> Sequence[ElectionNomination]:
        result = await self._session.execute(
            select(ElectionNomination)
            .where(ElectionNomination.message_id == message_id)
            .order_by(ElectionNomination.created_at)
        )
        return result.scalars().all()

    # =========================================================================
    # INTERNAL HELPERS
    # =========================================================================

    async def _next_position(self, criterion, model) -> int:
        result = await self._session.execute(
            select(func.coalesce(func.max(model.position), 0) + 1).where(criterion)
        )
        return result.scalar_one()

    async def _insert(self, row) -> None:
        self._session.add(row)
        await self._flush()

    async def _flush(self) -> None:
        try:
            await self._session.flush()
        except IntegrityError as e:
            raise ConcurrencyError(f"Concurrent submission collided: {e.orig}") from e
        except StaleDataError as e:
            raise ConcurrencyError(f"Message changed concurrently: {e}") from e
