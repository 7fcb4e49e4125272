"""Embedded decision tools.

A message carries at most one tool. The three variants form a closed,
tagged union keyed by ``type``; each variant only carries its own fields,
and the invariants between phase and outcome are checked on every
construction, so a tool can never be persisted in an inconsistent state.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator


# =============================================================================
# PHASE / OUTCOME VOCABULARY
# =============================================================================


class TopicPhase(str, Enum):
    PROPOSITION = "proposition"
    CLARIFICATION = "clarification"
    CONSENT = "consent"
    RESOLVED = "resolved"


class TopicOutcome(str, Enum):
    ACCEPTED = "accepted"
    MODIFIED = "modified"
    WITHDRAWN = "withdrawn"


class VotingMode(str, Enum):
    SINGLE = "single"
    APPROVAL = "approval"
    RANKED = "ranked"


class ElectionPhase(str, Enum):
    NOMINATION = "nomination"
    DISCUSSION = "discussion"
    CHANGE_ROUND = "change_round"
    CONSENT = "consent"
    ELECTED = "elected"


class ElectionOutcome(str, Enum):
    ELECTED = "elected"
    NO_ELECTION = "no_election"


class DirectiveAction(str, Enum):
    """Facilitator directives accepted by ``advance_phase``."""

    # Topic
    OPEN_CLARIFICATION = "open_clarification"
    OPEN_CONSENT = "open_consent"
    RESOLVE = "resolve"
    REOPEN = "reopen"
    # Election
    OPEN_DISCUSSION = "open_discussion"
    OPEN_CHANGE_ROUND = "open_change_round"
    RETRY = "retry"
    NO_ELECTION = "no_election"


# =============================================================================
# TALLY
# =============================================================================


class OptionResult(BaseModel):
    """Per-option result of a closed poll."""

    option_id: str
    label: str
    count: int = 0
    score: int = 0
    voters: list[UUID] | None = None  # None when the poll is anonymous


class TallyResult(BaseModel):
    """Computed result of all ballots at close."""

    mode: VotingMode
    total_ballots: int
    results: list[OptionResult]
    winners: list[str] = Field(default_factory=list)
    is_tie: bool = False


# =============================================================================
# TOOL VARIANTS
# =============================================================================


class _ToolModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    def evolve(self, **changes: Any):
        """Return a validated copy with ``changes`` applied."""
        return type(self).model_validate({**self.model_dump(), **changes})


class TopicTool(_ToolModel):
    """A proposal routed through clarification and a consent round."""

    type: Literal["topic"] = "topic"
    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    phase: TopicPhase = TopicPhase.PROPOSITION
    outcome: TopicOutcome | None = None
    revision: str | None = None
    consent_round: int = Field(default=1, ge=1)
    decision_id: UUID | None = None

    @model_validator(mode="after")
    def _outcome_only_when_resolved(self) -> "TopicTool":
        if (self.outcome is None) != (self.phase != TopicPhase.RESOLVED):
            raise ValueError("A topic has an outcome if and only if it is resolved")
        return self

    @property
    def is_terminal(self) -> bool:
        return self.phase == TopicPhase.RESOLVED


class VoteOption(BaseModel):
    id: str = Field(..., min_length=1)
    label: str = Field(..., min_length=1)


class VotingTool(_ToolModel):
    """A poll with a fixed option list and a one-way close."""

    type: Literal["voting"] = "voting"
    question: str = Field(..., min_length=1)
    options: list[VoteOption] = Field(..., min_length=2)
    mode: VotingMode = VotingMode.SINGLE
    is_anonymous: bool = False
    deadline: datetime | None = None
    is_closed: bool = False
    tally: TallyResult | None = None
    decision_id: UUID | None = None

    @field_validator("options")
    @classmethod
    def _unique_option_ids(cls, v: list[VoteOption]) -> list[VoteOption]:
        seen: set[str] = set()
        for option in v:
            if option.id in seen:
                raise ValueError(f"Duplicate option id: {option.id}")
            seen.add(option.id)
        return v

    @field_validator("deadline")
    @classmethod
    def _aware_deadline(cls, v: datetime | None) -> datetime | None:
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @model_validator(mode="after")
    def _tally_only_when_closed(self) -> "VotingTool":
        if self.tally is not None and not self.is_closed:
            raise ValueError("An open poll cannot carry a tally")
        return self

    @property
    def option_ids(self) -> list[str]:
        return [o.id for o in self.options]

    @property
    def is_terminal(self) -> bool:
        return self.is_closed

    def is_past_deadline(self, now: datetime) -> bool:
        return self.deadline is not None and now >= self.deadline

    def accepts_ballots(self, now: datetime) -> bool:
        return not self.is_closed and not self.is_past_deadline(now)


class ElectionTool(_ToolModel):
    """A consent-based election filling a role in a team."""

    type: Literal["election"] = "election"
    role_title: str = Field(..., min_length=1)
    role_id: UUID | None = None
    team_id: UUID
    phase: ElectionPhase = ElectionPhase.NOMINATION
    proposed_candidate_id: UUID | None = None
    elected_member_id: UUID | None = None
    outcome: ElectionOutcome | None = None
    consent_round: int = Field(default=1, ge=1)
    decision_id: UUID | None = None

    @model_validator(mode="after")
    def _terminal_fields(self) -> "ElectionTool":
        terminal = self.phase == ElectionPhase.ELECTED
        if (self.outcome is None) == terminal:
            raise ValueError("An election has an outcome if and only if it is terminal")
        if self.outcome == ElectionOutcome.ELECTED and self.elected_member_id is None:
            raise ValueError("An elected outcome requires the elected member")
        if self.outcome != ElectionOutcome.ELECTED and self.elected_member_id is not None:
            raise ValueError("Only an elected outcome carries an elected member")
        return self

    @property
    def is_terminal(self) -> bool:
        return self.phase == ElectionPhase.ELECTED


EmbeddedTool = Annotated[
    Union[TopicTool, VotingTool, ElectionTool],
    Field(discriminator="type"),
]

_tool_adapter: TypeAdapter[EmbeddedTool] = TypeAdapter(EmbeddedTool)


def load_tool(data: dict[str, Any]) -> TopicTool | VotingTool | ElectionTool:
    """Parse a stored tool document into its variant."""
    return _tool_adapter.validate_python(data)


def dump_tool(tool: TopicTool | VotingTool | ElectionTool) -> dict[str, Any]:
    """Serialize a tool for the message JSON column."""
    return tool.model_dump(mode="json")


class PhaseDirective(BaseModel):
    """A facilitator's request to move a tool to its next phase."""

    action: DirectiveAction
    outcome: TopicOutcome | None = Field(
        default=None,
        description="Facilitator choice when objections stand without a revision",
    )
    revision: str | None = Field(
        default=None,
        description="Revised proposal text; only the proposer may attach one when resolving a topic",
    )
    candidate_id: UUID | None = Field(
        default=None,
        description="Candidate to put to consent when opening an election consent round",
    )
