"""Domain errors raised by the governance engines.

Every error is scoped to a single submission and is raised before any row
is written, so a rejected call leaves the message and the ledger untouched.
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..schemas.tools import TallyResult


class EngineError(Exception):
    """Base exception for governance operations."""

    code = "engine_error"


class NotFoundError(EngineError):
    """Referenced message, channel, clarification or member does not exist."""

    code = "not_found"


class MessageNotFoundError(NotFoundError):
    pass


class ChannelNotFoundError(NotFoundError):
    pass


class ClarificationNotFoundError(NotFoundError):
    pass


class MemberNotFoundError(NotFoundError):
    pass


class NotEligibleError(EngineError):
    """Actor lacks standing in the team or organization."""

    code = "not_eligible"


class NotAuthorizedError(EngineError):
    """Actor is not a facilitator of this tool."""

    code = "not_authorized"


class InvalidInputError(EngineError):
    """Submission content is malformed (empty text, bad options...)."""

    code = "invalid_input"


class ToolMismatchError(EngineError):
    """Message carries no tool, or a tool of another type."""

    code = "tool_mismatch"


class InvalidPhaseError(EngineError):
    """Action is not legal in the tool's current phase."""

    code = "invalid_phase"


class CandidateConflictError(InvalidPhaseError):
    """A candidate is already proposed; only a facilitator may replace it."""

    code = "candidate_conflict"


class InvalidTransitionError(EngineError):
    """Requested phase transition is not allowed."""

    code = "invalid_transition"


class OutcomeRequiredError(InvalidTransitionError):
    """Objections stand without a revision; the facilitator must choose."""

    code = "outcome_required"


class ToolClosedError(EngineError):
    """Tool reached a terminal state and accepts no further writes."""

    code = "tool_closed"


class VotingClosedError(ToolClosedError):
    """Poll is closed or past its deadline."""

    code = "voting_closed"


class AlreadyClosedError(ToolClosedError):
    """Poll was already closed; carries the tally frozen at close."""

    code = "already_closed"

    def __init__(self, message: str, tally: "TallyResult | None" = None):
        super().__init__(message)
        self.tally = tally


class InvalidChoiceSetError(EngineError):
    """Ballot cardinality or option ids do not fit the voting mode."""

    code = "invalid_choice_set"


class ConcurrencyError(EngineError):
    """Concurrent modification detected; retry the transaction."""

    code = "concurrency_conflict"
