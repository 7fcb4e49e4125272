"""Decision record queries and integrity checks."""

import json
from typing import Sequence
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.security import verify_content_hash
from ..models import DecisionRecord, RoleAssignmentRequest, ToolType
from .errors import NotFoundError


class DecisionRecordService:
    """Read access to the write-once decision records of an organization."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_decisions(
        self,
        organization_id: UUID,
        tool_type: ToolType | None = None,
        outcome: str | None = None,
        team_id: UUID | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[Sequence[DecisionRecord], int]:
        """List decision records, newest first."""
        query = select(DecisionRecord).where(DecisionRecord.organization_id == organization_id)

        if tool_type:
            query = query.where(DecisionRecord.tool_type == tool_type)
        if outcome:
            query = query.where(DecisionRecord.outcome == outcome)
        if team_id:
            query = query.where(DecisionRecord.team_id == team_id)

        count_query = select(func.count()).select_from(query.subquery())
        total = (await self.session.execute(count_query)).scalar_one()

        query = query.order_by(DecisionRecord.created_at.desc()).limit(limit).offset(offset)
        result = await self.session.execute(query)
        return result.scalars().all(), total

    async def get_decision(self, organization_id: UUID, decision_id: UUID) -> DecisionRecord:
        record = await self.session.get(DecisionRecord, decision_id)
        if not record or record.organization_id != organization_id:
            raise NotFoundError(f"Decision {decision_id} not found")
        return record

    async def get_assignment(self, decision_id: UUID) -> RoleAssignmentRequest | None:
        result = await self.session.execute(
            select(RoleAssignmentRequest).where(RoleAssignmentRequest.decision_id == decision_id)
        )
        return result.scalar_one_or_none()

    @staticmethod
    def verify(record: DecisionRecord) -> bool:
        """Check the stored payload against its content hash."""
        return verify_content_hash(json.dumps(record.payload, sort_keys=True), record.content_hash)
