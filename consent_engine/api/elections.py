"""Election API Routes: candidates and secret nominations."""

from uuid import UUID

from fastapi import APIRouter, status

from ..core import CurrentMemberDep
from ..schemas import (
    CandidateProposal,
    NominationListingResponse,
    NominationSubmit,
    NominationView,
    ToolMessageResponse,
)
from .messages import GovernanceDep, build_tool_message_response

router = APIRouter(prefix="/messages", tags=["elections"])


@router.post(
    "/{message_id}/candidate",
    response_model=ToolMessageResponse,
    summary="Propose a candidate",
    description="""
    Propose the candidate for the election's role. Allowed in the nomination
    and change rounds. A standing candidate can only be replaced by a
    facilitator (409 `candidate_conflict` otherwise).
    """,
)
async def propose_candidate(
    message_id: UUID,
    request: CandidateProposal,
    current_member: CurrentMemberDep,
    engine: GovernanceDep,
):
    tool = await engine.propose_candidate(message_id, current_member.id, request.candidate_id)
    message, _ = await engine.get_tool(message_id, current_member.id)
    return build_tool_message_response(message, tool)


@router.post(
    "/{message_id}/nominations",
    response_model=NominationView,
    status_code=status.HTTP_201_CREATED,
    summary="Nominate a member",
)
async def submit_nomination(
    message_id: UUID,
    request: NominationSubmit,
    current_member: CurrentMemberDep,
    engine: GovernanceDep,
):
    nomination = await engine.submit_nomination(
        message_id, current_member.id, request.nominee_id, request.reason
    )
    return NominationView.model_validate(nomination)


@router.put(
    "/{message_id}/nominations",
    response_model=NominationView,
    summary="Change a nomination during the change round",
)
async def change_nomination(
    message_id: UUID,
    request: NominationSubmit,
    current_member: CurrentMemberDep,
    engine: GovernanceDep,
):
    nomination = await engine.change_nomination(
        message_id, current_member.id, request.nominee_id, request.reason
    )
    return NominationView.model_validate(nomination)


@router.get(
    "/{message_id}/nominations",
    response_model=NominationListingResponse,
    summary="List nominations",
    description="""
    While the election is collecting nominations only the count and whether
    the caller has nominated are returned. Afterwards all nominations and a
    per-nominee tally are revealed.
    """,
)
async def list_nominations(
    message_id: UUID,
    current_member: CurrentMemberDep,
    engine: GovernanceDep,
):
    listing = await engine.list_nominations(message_id, current_member.id)
    return NominationListingResponse(
        revealed=listing.revealed,
        count=listing.count,
        has_nominated=listing.has_nominated,
        nominations=[NominationView.model_validate(n) for n in listing.nominations],
        tally=listing.tally,
    )
