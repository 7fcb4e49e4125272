"""Voting API Routes: ballots, closing and results."""

from uuid import UUID

from fastapi import APIRouter, HTTPException, status

from ..core import CurrentMemberDep
from ..schemas import BallotReceipt, BallotSubmit, TallyResult
from ..services import AlreadyClosedError
from .messages import GovernanceDep

router = APIRouter(prefix="/messages", tags=["voting"])


@router.put(
    "/{message_id}/ballot",
    response_model=BallotReceipt,
    summary="Cast or replace a ballot",
    description="""
    Cast the caller's ballot. A later ballot from the same member replaces
    the earlier one.

    - single: exactly one option id
    - approval: one or more distinct option ids
    - ranked: distinct option ids in preference order
    """,
)
async def submit_ballot(
    message_id: UUID,
    request: BallotSubmit,
    current_member: CurrentMemberDep,
    engine: GovernanceDep,
):
    vote = await engine.submit_ballot(message_id, current_member.id, request.choices)
    return BallotReceipt.model_validate(vote)


@router.post(
    "/{message_id}/close",
    response_model=TallyResult,
    summary="Close a poll",
    description="""
    Close the poll and compute its tally. Closing is one-way; closing again
    answers 409 `already_closed` with the tally frozen by the first close.
    """,
)
async def close_voting(
    message_id: UUID,
    current_member: CurrentMemberDep,
    engine: GovernanceDep,
):
    try:
        return await engine.close_voting(message_id, current_member.id)
    except AlreadyClosedError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "error": e.code,
                "message": str(e),
                "tally": e.tally.model_dump(mode="json") if e.tally else None,
            },
        )


@router.get(
    "/{message_id}/results",
    response_model=TallyResult,
    summary="Get poll results",
    description="""
    Results of a closed poll. An open poll past its deadline is closed by
    this read; an open poll before its deadline answers 409 `invalid_phase`.
    """,
)
async def get_results(
    message_id: UUID,
    current_member: CurrentMemberDep,
    engine: GovernanceDep,
):
    return await engine.get_voting_results(message_id, current_member.id)
