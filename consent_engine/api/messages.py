"""
Message API Routes: posting decision tools and driving their phases.

1. POST /messages/topics | /messages/votings | /messages/elections
2. GET /messages/{id}/tool - current state of the embedded tool
3. POST /messages/{id}/advance - facilitator directive
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, status

from ..core import CurrentMemberDep, SessionDep
from ..models import Message
from ..schemas import (
    ElectionCreate,
    PhaseDirective,
    PhaseResponse,
    ToolMessageResponse,
    TopicCreate,
    VotingCreate,
    dump_tool,
)
from ..services import GovernanceEngine

router = APIRouter(prefix="/messages", tags=["messages"])


# =============================================================================
# DEPENDENCIES
# =============================================================================


def get_governance_engine(session: SessionDep) -> GovernanceEngine:
    return GovernanceEngine(session)


GovernanceDep = Annotated[GovernanceEngine, Depends(get_governance_engine)]


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================


def build_tool_message_response(message: Message, tool) -> ToolMessageResponse:
    return ToolMessageResponse(
        id=message.id,
        channel_id=message.channel_id,
        organization_id=message.organization_id,
        author_id=message.author_id,
        text=message.text,
        tool_type=message.tool_type,
        version=message.version,
        created_at=message.created_at,
        tool=dump_tool(tool),
    )


# =============================================================================
# ENDPOINTS
# =============================================================================


@router.post(
    "/topics",
    response_model=ToolMessageResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Post a topic",
)
async def create_topic(
    request: TopicCreate,
    current_member: CurrentMemberDep,
    engine: GovernanceDep,
):
    """Post a message carrying a topic; it starts in the proposition phase."""
    message, tool = await engine.create_topic(
        channel_id=request.channel_id,
        author_id=current_member.id,
        title=request.title,
        description=request.description,
    )
    return build_tool_message_response(message, tool)


@router.post(
    "/votings",
    response_model=ToolMessageResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Post a poll",
)
async def create_voting(
    request: VotingCreate,
    current_member: CurrentMemberDep,
    engine: GovernanceDep,
):
    message, tool = await engine.create_voting(
        channel_id=request.channel_id,
        author_id=current_member.id,
        question=request.question,
        options=request.options,
        mode=request.mode,
        is_anonymous=request.is_anonymous,
        deadline=request.deadline,
    )
    return build_tool_message_response(message, tool)


@router.post(
    "/elections",
    response_model=ToolMessageResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Post an election",
)
async def create_election(
    request: ElectionCreate,
    current_member: CurrentMemberDep,
    engine: GovernanceDep,
):
    message, tool = await engine.create_election(
        channel_id=request.channel_id,
        author_id=current_member.id,
        role_title=request.role_title,
        team_id=request.team_id,
        role_id=request.role_id,
    )
    return build_tool_message_response(message, tool)


@router.get(
    "/{message_id}/tool",
    response_model=ToolMessageResponse,
    summary="Get a message's decision tool",
)
async def get_tool(
    message_id: UUID,
    current_member: CurrentMemberDep,
    engine: GovernanceDep,
):
    message, tool = await engine.get_tool(message_id, current_member.id)
    return build_tool_message_response(message, tool)


@router.post(
    "/{message_id}/advance",
    response_model=PhaseResponse,
    summary="Apply a facilitator directive",
    description="""
    Move a topic or an election to its next phase.

    Topic directives: `open_clarification`, `open_consent`, `resolve`
    (optional `revision`, from the proposer only, optional `outcome`), `reopen`.

    Election directives: `open_discussion`, `open_change_round`,
    `open_consent` (optional `candidate_id`), `resolve`, `retry`,
    `no_election`.

    Resolving a topic with standing objections and no revision requires
    `outcome=withdrawn`; otherwise the call fails with `outcome_required`.
    """,
)
async def advance_phase(
    message_id: UUID,
    directive: PhaseDirective,
    current_member: CurrentMemberDep,
    engine: GovernanceDep,
):
    phase = await engine.advance_phase(message_id, current_member.id, directive)
    return PhaseResponse(message_id=message_id, phase=phase)
