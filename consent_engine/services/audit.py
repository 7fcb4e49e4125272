"""Audit service: append-only activity trail for governance actions."""

from typing import Any, Sequence
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import AuditAction, AuditLog


class AuditService:
    """Service for audit logging and retrieval."""

    def __init__(self, session: AsyncSession):
        self.session = session

    def log_event(
        self,
        organization_id: UUID,
        action: AuditAction,
        resource_type: str,
        resource_id: UUID,
        member_id: UUID | None = None,
        details: dict[str, Any] | None = None,
    ) -> AuditLog:
        """Add an audit row to the current transaction (no flush)."""
        entry = AuditLog(
            organization_id=organization_id,
            member_id=member_id,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            details=details or {},
        )
        self.session.add(entry)
        return entry

    async def get_audit_log(
        self,
        organization_id: UUID,
        member_id: UUID | None = None,
        action: AuditAction | None = None,
        resource_type: str | None = None,
        resource_id: UUID | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[Sequence[AuditLog], int]:
        """Query the audit log with filters."""
        query = select(AuditLog).where(AuditLog.organization_id == organization_id)

        if member_id:
            query = query.where(AuditLog.member_id == member_id)
        if action:
            query = query.where(AuditLog.action == action)
        if resource_type:
            query = query.where(AuditLog.resource_type == resource_type)
        if resource_id:
            query = query.where(AuditLog.resource_id == resource_id)

        count_query = select(func.count()).select_from(query.subquery())
        total = (await self.session.execute(count_query)).scalar_one()

        query = query.order_by(AuditLog.created_at.desc()).limit(limit).offset(offset)
        result = await self.session.execute(query)

        return result.scalars().all(), total
