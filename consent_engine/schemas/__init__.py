"""Consent Engine API Schemas.

Schemas are organized by domain:
- base: common config, pagination, errors
- tools: the embedded decision tool union and its vocabulary
- governance: request bodies and ledger/decision/audit views
"""

from .base import (
    EngineBaseModel,
    ErrorDetail,
    ErrorResponse,
    PaginatedResponse,
    PaginationParams,
)
from .governance import (
    AnswerCreate,
    AnswerResponse,
    AuditLogEntry,
    AuditLogResponse,
    BallotReceipt,
    BallotSubmit,
    CandidateProposal,
    ClarificationCreate,
    ClarificationResponse,
    ConsentResponseView,
    ConsentSubmit,
    DecisionListResponse,
    DecisionRecordResponse,
    ElectionCreate,
    NominationListingResponse,
    NominationSubmit,
    NominationView,
    PhaseResponse,
    RoleAssignmentView,
    ToolMessageResponse,
    TopicCreate,
    VotingCreate,
)
from .tools import (
    DirectiveAction,
    ElectionOutcome,
    ElectionPhase,
    ElectionTool,
    EmbeddedTool,
    OptionResult,
    PhaseDirective,
    TallyResult,
    TopicOutcome,
    TopicPhase,
    TopicTool,
    VoteOption,
    VotingMode,
    VotingTool,
    dump_tool,
    load_tool,
)

__all__ = [
    # Base
    "EngineBaseModel",
    "PaginatedResponse",
    "PaginationParams",
    "ErrorDetail",
    "ErrorResponse",
    # Tools
    "EmbeddedTool",
    "TopicTool",
    "VotingTool",
    "ElectionTool",
    "VoteOption",
    "TopicPhase",
    "TopicOutcome",
    "VotingMode",
    "ElectionPhase",
    "ElectionOutcome",
    "DirectiveAction",
    "PhaseDirective",
    "OptionResult",
    "TallyResult",
    "load_tool",
    "dump_tool",
    # Governance
    "TopicCreate",
    "VotingCreate",
    "ElectionCreate",
    "ToolMessageResponse",
    "ClarificationCreate",
    "ClarificationResponse",
    "AnswerCreate",
    "AnswerResponse",
    "ConsentSubmit",
    "ConsentResponseView",
    "BallotSubmit",
    "BallotReceipt",
    "CandidateProposal",
    "NominationSubmit",
    "NominationView",
    "NominationListingResponse",
    "PhaseResponse",
    "RoleAssignmentView",
    "DecisionRecordResponse",
    "DecisionListResponse",
    "AuditLogEntry",
    "AuditLogResponse",
]
