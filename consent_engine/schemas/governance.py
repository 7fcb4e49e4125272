"""Pydantic schemas for the governance API: requests and ledger views."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from ..models import AssignmentStatus, AuditAction, ConsentValue, ToolType
from .base import EngineBaseModel, PaginatedResponse
from .tools import EmbeddedTool, VoteOption, VotingMode


# =============================================================================
# TOOL CREATION
# =============================================================================


class TopicCreate(BaseModel):
    """Post a message carrying a topic."""

    channel_id: UUID
    title: str = Field(..., min_length=1, max_length=500)
    description: str = Field(..., min_length=1)


class VotingCreate(BaseModel):
    """Post a message carrying a poll."""

    channel_id: UUID
    question: str = Field(..., min_length=1, max_length=500)
    options: list[VoteOption] = Field(..., min_length=2)
    mode: VotingMode = VotingMode.SINGLE
    is_anonymous: bool = False
    deadline: datetime | None = None


class ElectionCreate(BaseModel):
    """Post a message carrying an election for a role in a team."""

    channel_id: UUID
    team_id: UUID
    role_title: str = Field(default="", max_length=255)
    role_id: UUID | None = None


class ToolMessageResponse(EngineBaseModel):
    """A message together with its embedded tool."""

    id: UUID
    channel_id: UUID
    organization_id: UUID
    author_id: UUID
    text: str
    tool_type: ToolType
    version: int
    created_at: datetime
    tool: EmbeddedTool


# =============================================================================
# PARTICIPATION
# =============================================================================


class ClarificationCreate(BaseModel):
    question: str = Field(..., min_length=1)


class AnswerCreate(BaseModel):
    answer: str = Field(..., min_length=1)


class AnswerResponse(EngineBaseModel):
    id: UUID
    clarification_id: UUID
    author_id: UUID
    answer: str
    position: int
    created_at: datetime


class ClarificationResponse(EngineBaseModel):
    id: UUID
    message_id: UUID
    author_id: UUID
    question: str
    position: int
    created_at: datetime
    answers: list[AnswerResponse] = []


class ConsentSubmit(BaseModel):
    """A member's position in the current consent round."""

    response: ConsentValue
    reason: str | None = Field(default=None, max_length=2000)


class ConsentResponseView(EngineBaseModel):
    id: UUID
    message_id: UUID
    member_id: UUID
    round: int
    response: ConsentValue
    reason: str | None = None


class BallotSubmit(BaseModel):
    choices: list[str] = Field(..., min_length=1)


class BallotReceipt(EngineBaseModel):
    """Acknowledges the caller's current ballot."""

    message_id: UUID
    member_id: UUID
    choices: list[str]


class CandidateProposal(BaseModel):
    candidate_id: UUID


class NominationSubmit(BaseModel):
    nominee_id: UUID
    reason: str = Field(..., min_length=1, max_length=2000)


class NominationView(EngineBaseModel):
    id: UUID
    nominator_id: UUID
    nominee_id: UUID
    reason: str
    created_at: datetime


class NominationListingResponse(EngineBaseModel):
    """Nominations are hidden while the election is still collecting them."""

    revealed: bool
    count: int
    has_nominated: bool
    nominations: list[NominationView] = []
    tally: dict[UUID, int] = {}


class PhaseResponse(BaseModel):
    """Result of a facilitator directive."""

    message_id: UUID
    phase: str


# =============================================================================
# DECISION RECORDS
# =============================================================================


class RoleAssignmentView(EngineBaseModel):
    id: UUID
    role_id: UUID
    member_id: UUID
    status: AssignmentStatus
    attempts: int
    last_error: str | None = None
    sent_at: datetime | None = None


class DecisionRecordResponse(EngineBaseModel):
    """Durable record of a finished decision workflow."""

    id: UUID
    organization_id: UUID
    message_id: UUID | None = None
    tool_type: ToolType
    outcome: str
    team_id: UUID | None = None
    role_id: UUID | None = None
    elected_member_id: UUID | None = None
    recorded_by: UUID | None = None
    payload: dict[str, Any]
    content_hash: str
    created_at: datetime

    # Populated on the detail view
    integrity_verified: bool | None = None
    role_assignment: RoleAssignmentView | None = None


class DecisionListResponse(PaginatedResponse):
    items: list[DecisionRecordResponse]


# =============================================================================
# AUDIT
# =============================================================================


class AuditLogEntry(EngineBaseModel):
    """A single audit log entry."""

    id: UUID
    organization_id: UUID
    member_id: UUID | None = None  # None for system actions
    action: AuditAction
    resource_type: str
    resource_id: UUID
    details: dict
    created_at: datetime


class AuditLogResponse(PaginatedResponse):
    """Paginated audit log response."""

    items: list[AuditLogEntry]
