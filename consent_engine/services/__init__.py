"""Business logic services for the consent engine."""

from .audit import AuditService
from .decisions import DecisionRecordService
from .directory import Directory
from .election_engine import ElectionEngine, NominationListing
from .errors import (
    AlreadyClosedError,
    CandidateConflictError,
    ChannelNotFoundError,
    ClarificationNotFoundError,
    ConcurrencyError,
    EngineError,
    InvalidChoiceSetError,
    InvalidInputError,
    InvalidPhaseError,
    InvalidTransitionError,
    MemberNotFoundError,
    MessageNotFoundError,
    NotAuthorizedError,
    NotEligibleError,
    NotFoundError,
    OutcomeRequiredError,
    ToolClosedError,
    ToolMismatchError,
    VotingClosedError,
)
from .governance import GovernanceEngine
from .outcome_sink import OutboxRoleAssignmentNotifier, OutcomeSink, RoleAssignmentNotifier
from .participation import ParticipationLedger
from .tally import compute_tally, ranked_points, validate_choices
from .topic_engine import TopicEngine
from .voting_engine import VotingEngine

__all__ = [
    # Facade
    "GovernanceEngine",
    # Engines
    "TopicEngine",
    "VotingEngine",
    "ElectionEngine",
    "NominationListing",
    # Ledger, directory, outcomes
    "ParticipationLedger",
    "Directory",
    "OutcomeSink",
    "RoleAssignmentNotifier",
    "OutboxRoleAssignmentNotifier",
    "DecisionRecordService",
    "AuditService",
    # Tally
    "compute_tally",
    "ranked_points",
    "validate_choices",
    # Errors
    "EngineError",
    "NotFoundError",
    "MessageNotFoundError",
    "ChannelNotFoundError",
    "ClarificationNotFoundError",
    "MemberNotFoundError",
    "NotEligibleError",
    "NotAuthorizedError",
    "InvalidInputError",
    "ToolMismatchError",
    "InvalidPhaseError",
    "CandidateConflictError",
    "InvalidTransitionError",
    "OutcomeRequiredError",
    "ToolClosedError",
    "VotingClosedError",
    "AlreadyClosedError",
    "InvalidChoiceSetError",
    "ConcurrencyError",
]
