"""API routes for the audit trail."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends

from ..core import OwnerDep, PaginationDep, SessionDep
from ..models import AuditAction
from ..schemas import AuditLogEntry, AuditLogResponse
from ..services import AuditService

router = APIRouter(prefix="/audit", tags=["audit"])


def get_audit_service(session: SessionDep) -> AuditService:
    return AuditService(session)


AuditServiceDep = Annotated[AuditService, Depends(get_audit_service)]


@router.get("", response_model=AuditLogResponse)
async def get_audit_log(
    current_member: OwnerDep,  # Only the organization owner reads the trail
    service: AuditServiceDep,
    pagination: PaginationDep,
    member_id: UUID | None = None,
    action: AuditAction | None = None,
    resource_type: str | None = None,
    resource_id: UUID | None = None,
):
    """Query the audit log with filters."""
    entries, total = await service.get_audit_log(
        organization_id=current_member.organization_id,
        member_id=member_id,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        limit=pagination.page_size,
        offset=pagination.offset,
    )

    return AuditLogResponse.create(
        items=[AuditLogEntry.model_validate(e) for e in entries],
        total=total,
        page=pagination.page,
        page_size=pagination.page_size,
    )
