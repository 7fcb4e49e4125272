"""Topic API Routes: clarifications, answers and consent responses."""

from uuid import UUID

from fastapi import APIRouter, Query, status

from ..core import CurrentMemberDep
from ..schemas import (
    AnswerCreate,
    AnswerResponse,
    ClarificationCreate,
    ClarificationResponse,
    ConsentResponseView,
    ConsentSubmit,
)
from .messages import GovernanceDep

router = APIRouter(tags=["topics"])


@router.post(
    "/messages/{message_id}/clarifications",
    response_model=ClarificationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Ask a clarifying question",
)
async def submit_clarification(
    message_id: UUID,
    request: ClarificationCreate,
    current_member: CurrentMemberDep,
    engine: GovernanceDep,
):
    clarification = await engine.submit_clarification(
        message_id, current_member.id, request.question
    )
    return ClarificationResponse(
        id=clarification.id,
        message_id=clarification.message_id,
        author_id=clarification.author_id,
        question=clarification.question,
        position=clarification.position,
        created_at=clarification.created_at,
        answers=[],
    )


@router.get(
    "/messages/{message_id}/clarifications",
    response_model=list[ClarificationResponse],
    summary="List clarifications in discussion order",
)
async def list_clarifications(
    message_id: UUID,
    current_member: CurrentMemberDep,
    engine: GovernanceDep,
):
    clarifications = await engine.list_clarifications(message_id, current_member.id)
    return [ClarificationResponse.model_validate(c) for c in clarifications]


@router.post(
    "/clarifications/{clarification_id}/answers",
    response_model=AnswerResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Answer a clarification",
)
async def submit_answer(
    clarification_id: UUID,
    request: AnswerCreate,
    current_member: CurrentMemberDep,
    engine: GovernanceDep,
):
    answer = await engine.submit_answer(clarification_id, current_member.id, request.answer)
    return AnswerResponse.model_validate(answer)


@router.put(
    "/messages/{message_id}/response",
    response_model=ConsentResponseView,
    summary="Consent, object or stand aside",
    description="""
    Register the caller's position in the current consent round of a topic
    or an election. Resubmitting replaces the earlier position.
    """,
)
async def submit_consent_response(
    message_id: UUID,
    request: ConsentSubmit,
    current_member: CurrentMemberDep,
    engine: GovernanceDep,
):
    row = await engine.submit_consent_response(
        message_id, current_member.id, request.response, request.reason
    )
    return ConsentResponseView.model_validate(row)


@router.get(
    "/messages/{message_id}/responses",
    response_model=list[ConsentResponseView],
    summary="List consent responses",
)
async def list_responses(
    message_id: UUID,
    current_member: CurrentMemberDep,
    engine: GovernanceDep,
    round: int | None = Query(default=None, ge=1, description="Defaults to the current round"),
):
    rows = await engine.list_responses(message_id, current_member.id, round)
    return [ConsentResponseView.model_validate(r) for r in rows]
