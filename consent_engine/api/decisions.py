"""Decision record API Routes: the durable outcomes of finished workflows."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from ..core import CurrentMemberDep, PaginationDep, SessionDep
from ..models import ToolType
from ..schemas import DecisionListResponse, DecisionRecordResponse, RoleAssignmentView
from ..services import DecisionRecordService

router = APIRouter(prefix="/decisions", tags=["decisions"])


def get_decision_service(session: SessionDep) -> DecisionRecordService:
    return DecisionRecordService(session)


DecisionServiceDep = Annotated[DecisionRecordService, Depends(get_decision_service)]


@router.get(
    "",
    response_model=DecisionListResponse,
    summary="List decision records",
)
async def list_decisions(
    current_member: CurrentMemberDep,
    service: DecisionServiceDep,
    pagination: PaginationDep,
    tool_type: ToolType | None = Query(default=None, description="Filter by tool type"),
    outcome: str | None = Query(default=None, description="Filter by outcome"),
    team_id: UUID | None = Query(default=None, description="Filter by team"),
):
    """List the organization's decision records, newest first."""
    records, total = await service.list_decisions(
        organization_id=current_member.organization_id,
        tool_type=tool_type,
        outcome=outcome,
        team_id=team_id,
        limit=pagination.page_size,
        offset=pagination.offset,
    )

    return DecisionListResponse.create(
        items=[DecisionRecordResponse.model_validate(r) for r in records],
        total=total,
        page=pagination.page,
        page_size=pagination.page_size,
    )


@router.get(
    "/{decision_id}",
    response_model=DecisionRecordResponse,
    summary="Get a decision record",
    description="""
    Fetch one decision record with its integrity check (the stored payload
    re-hashed against `content_hash`) and, for elections filling a role,
    the delivery state of the role assignment.
    """,
)
async def get_decision(
    decision_id: UUID,
    current_member: CurrentMemberDep,
    service: DecisionServiceDep,
):
    record = await service.get_decision(current_member.organization_id, decision_id)
    assignment = await service.get_assignment(record.id)

    response = DecisionRecordResponse.model_validate(record)
    response.integrity_verified = service.verify(record)
    if assignment:
        response.role_assignment = RoleAssignmentView.model_validate(assignment)
    return response
