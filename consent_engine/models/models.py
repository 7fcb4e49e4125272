"""SQLAlchemy ORM Models for the consent engine.

The directory tables (organizations, teams, members, roles, channels,
messages) are the read model the engine needs from the chat service. The
participation ledger, decision records and the role-assignment outbox are
owned by the engine itself.
"""

from datetime import datetime
from enum import Enum as PyEnum
from typing import Any
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from .base import Base, JSONType, TimestampMixin, UUIDMixin, utcnow


def _enum(enum_cls: type[PyEnum], name: str) -> Enum:
    return Enum(enum_cls, name=name, values_callable=lambda x: [e.value for e in x])


# =============================================================================
# ENUMS
# =============================================================================


class ChannelKind(str, PyEnum):
    ORGA = "orga"
    TEAM = "team"
    DM = "dm"


class RoleType(str, PyEnum):
    LEADER = "leader"
    SECRETARY = "secretary"
    REFEREE = "referee"


class ToolType(str, PyEnum):
    TOPIC = "topic"
    VOTING = "voting"
    ELECTION = "election"


class ConsentValue(str, PyEnum):
    """A participant's position in a consent round."""
    CONSENT = "consent"
    OBJECTION = "objection"
    STAND_ASIDE = "stand_aside"


class AuditAction(str, PyEnum):
    CREATE = "create"
    CLARIFY = "clarify"
    ANSWER = "answer"
    RESPOND = "respond"
    VOTE = "vote"
    NOMINATE = "nominate"
    PROPOSE = "propose"
    ADVANCE = "advance"
    RESOLVE = "resolve"
    CLOSE = "close"
    ASSIGN = "assign"


class AssignmentStatus(str, PyEnum):
    """Delivery status of a role assignment request."""
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


# =============================================================================
# DIRECTORY MODELS (read model of the chat service)
# =============================================================================


class Organization(Base, UUIDMixin):
    """Multi-tenant organization."""

    __tablename__ = "organizations"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    owner_member_id: Mapped[UUID | None] = mapped_column(
        nullable=True,
        comment="Member who owns the organization",
    )
    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )

    teams: Mapped[list["Team"]] = relationship(back_populates="organization")
    members: Mapped[list["Member"]] = relationship(back_populates="organization")


class Team(Base, UUIDMixin):
    """Team within an organization."""

    __tablename__ = "teams"

    organization_id: Mapped[UUID] = mapped_column(
        ForeignKey("organizations.id"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    organization: Mapped["Organization"] = relationship(back_populates="teams")
    roles: Mapped[list["Role"]] = relationship(back_populates="team")

    __table_args__ = (
        Index("idx_teams_org", "organization_id"),
    )


class Member(Base, UUIDMixin):
    """A person's membership in one organization."""

    __tablename__ = "members"

    organization_id: Mapped[UUID] = mapped_column(
        ForeignKey("organizations.id"), nullable=False
    )
    firstname: Mapped[str] = mapped_column(String(255), nullable=False)
    surname: Mapped[str] = mapped_column(String(255), default="")
    email: Mapped[str | None] = mapped_column(String(255))

    organization: Mapped["Organization"] = relationship(back_populates="members")
    roles: Mapped[list["Role"]] = relationship(back_populates="member")

    __table_args__ = (
        Index("idx_members_org", "organization_id"),
    )

    @property
    def display_name(self) -> str:
        return f"{self.firstname} {self.surname}".strip()


class Role(Base, UUIDMixin):
    """A role within a team, optionally held by a member."""

    __tablename__ = "roles"

    organization_id: Mapped[UUID] = mapped_column(
        ForeignKey("organizations.id"), nullable=False
    )
    team_id: Mapped[UUID] = mapped_column(ForeignKey("teams.id"), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    role_type: Mapped[RoleType | None] = mapped_column(
        _enum(RoleType, "role_type"), nullable=True
    )
    member_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("members.id"), nullable=True, comment="Current holder, if any"
    )

    team: Mapped["Team"] = relationship(back_populates="roles")
    member: Mapped["Member | None"] = relationship(back_populates="roles")

    __table_args__ = (
        Index("idx_roles_team_type", "team_id", "role_type"),
        Index("idx_roles_member", "member_id"),
    )


class Channel(Base, UUIDMixin):
    """Container for messages."""

    __tablename__ = "channels"

    organization_id: Mapped[UUID] = mapped_column(
        ForeignKey("organizations.id"), nullable=False
    )
    kind: Mapped[ChannelKind] = mapped_column(
        _enum(ChannelKind, "channel_kind"), nullable=False
    )
    name: Mapped[str | None] = mapped_column(String(255))
    team_id: Mapped[UUID | None] = mapped_column(ForeignKey("teams.id"))
    dm_member_a_id: Mapped[UUID | None] = mapped_column(ForeignKey("members.id"))
    dm_member_b_id: Mapped[UUID | None] = mapped_column(ForeignKey("members.id"))
    is_archived: Mapped[bool] = mapped_column(default=False)
    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )

    __table_args__ = (
        CheckConstraint(
            "kind != 'team' OR (team_id IS NOT NULL "
            "AND dm_member_a_id IS NULL AND dm_member_b_id IS NULL)",
            name="team_reference",
        ),
        CheckConstraint(
            "kind != 'dm' OR (team_id IS NULL AND dm_member_a_id IS NOT NULL "
            "AND dm_member_b_id IS NOT NULL AND dm_member_a_id < dm_member_b_id)",
            name="dm_pair",
        ),
        CheckConstraint(
            "kind != 'orga' OR (team_id IS NULL "
            "AND dm_member_a_id IS NULL AND dm_member_b_id IS NULL)",
            name="orga_no_reference",
        ),
        UniqueConstraint("dm_member_a_id", "dm_member_b_id", name="uq_channels_dm_pair"),
        Index("idx_channels_org", "organization_id"),
    )

    @staticmethod
    def dm_pair(member_a: UUID, member_b: UUID) -> tuple[UUID, UUID]:
        """Canonical ordering of a DM pair: lexicographically smaller first."""
        if member_a == member_b:
            raise ValueError("A direct message channel needs two distinct members")
        return (member_a, member_b) if str(member_a) < str(member_b) else (member_b, member_a)


class Message(Base, UUIDMixin):
    """A chat message, optionally carrying one embedded decision tool.

    ``tool_type`` is fixed when the tool is attached; only the fields inside
    ``embedded_tool`` change as the workflow progresses.
    """

    __tablename__ = "messages"

    channel_id: Mapped[UUID] = mapped_column(ForeignKey("channels.id"), nullable=False)
    organization_id: Mapped[UUID] = mapped_column(
        ForeignKey("organizations.id"), nullable=False
    )
    author_id: Mapped[UUID] = mapped_column(ForeignKey("members.id"), nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    thread_parent_id: Mapped[UUID | None] = mapped_column(ForeignKey("messages.id"))
    tool_type: Mapped[ToolType | None] = mapped_column(
        _enum(ToolType, "tool_type"), nullable=True
    )
    embedded_tool: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )

    channel: Mapped["Channel"] = relationship()
    author: Mapped["Member"] = relationship()
    clarifications: Mapped[list["TopicClarification"]] = relationship(
        back_populates="message",
        cascade="all, delete-orphan",
        order_by="TopicClarification.position",
    )
    responses: Mapped[list["ConsentResponse"]] = relationship(
        cascade="all, delete-orphan"
    )
    votes: Mapped[list["Vote"]] = relationship(cascade="all, delete-orphan")
    nominations: Mapped[list["ElectionNomination"]] = relationship(
        cascade="all, delete-orphan"
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("idx_messages_channel", "channel_id", "created_at"),
        Index("idx_messages_org", "organization_id"),
    )

    @validates("tool_type")
    def _validate_tool_type(self, key: str, value: ToolType | None) -> ToolType | None:
        if self.tool_type is not None and value != self.tool_type:
            raise ValueError(
                f"Embedded tool type is immutable (was {self.tool_type.value})"
            )
        return value


# =============================================================================
# PARTICIPATION LEDGER
# =============================================================================


class TopicClarification(Base, UUIDMixin):
    """A clarifying question asked on a topic."""

    __tablename__ = "topic_clarifications"

    message_id: Mapped[UUID] = mapped_column(
        ForeignKey("messages.id", ondelete="CASCADE"), nullable=False
    )
    organization_id: Mapped[UUID] = mapped_column(
        ForeignKey("organizations.id"), nullable=False
    )
    author_id: Mapped[UUID] = mapped_column(ForeignKey("members.id"), nullable=False)
    question: Mapped[str] = mapped_column(Text, nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )

    message: Mapped["Message"] = relationship(back_populates="clarifications")
    answers: Mapped[list["TopicAnswer"]] = relationship(
        back_populates="clarification",
        cascade="all, delete-orphan",
        order_by="TopicAnswer.position",
    )

    __table_args__ = (
        # Insertion order is discussion order
        UniqueConstraint("message_id", "position", name="uq_topic_clarifications_position"),
        Index("idx_topic_clarifications_message", "message_id"),
    )


class TopicAnswer(Base, UUIDMixin):
    """An answer to one clarification."""

    __tablename__ = "topic_answers"

    clarification_id: Mapped[UUID] = mapped_column(
        ForeignKey("topic_clarifications.id", ondelete="CASCADE"), nullable=False
    )
    message_id: Mapped[UUID] = mapped_column(
        ForeignKey("messages.id", ondelete="CASCADE"), nullable=False
    )
    organization_id: Mapped[UUID] = mapped_column(
        ForeignKey("organizations.id"), nullable=False
    )
    author_id: Mapped[UUID] = mapped_column(ForeignKey("members.id"), nullable=False)
    answer: Mapped[str] = mapped_column(Text, nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )

    clarification: Mapped["TopicClarification"] = relationship(back_populates="answers")

    __table_args__ = (
        UniqueConstraint("clarification_id", "position", name="uq_topic_answers_position"),
        Index("idx_topic_answers_clarification", "clarification_id"),
    )


class ConsentResponse(Base, UUIDMixin, TimestampMixin):
    """A member's current position in one consent round of a topic or election.

    One row per (message, member, round); resubmission replaces the content.
    """

    __tablename__ = "consent_responses"

    message_id: Mapped[UUID] = mapped_column(
        ForeignKey("messages.id", ondelete="CASCADE"), nullable=False
    )
    organization_id: Mapped[UUID] = mapped_column(
        ForeignKey("organizations.id"), nullable=False
    )
    member_id: Mapped[UUID] = mapped_column(ForeignKey("members.id"), nullable=False)
    round: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    response: Mapped[ConsentValue] = mapped_column(
        _enum(ConsentValue, "consent_value"), nullable=False
    )
    reason: Mapped[str | None] = mapped_column(Text)

    __table_args__ = (
        UniqueConstraint(
            "message_id", "member_id", "round", name="uq_consent_responses_member_round"
        ),
        Index("idx_consent_responses_message", "message_id", "round"),
    )


class Vote(Base, UUIDMixin, TimestampMixin):
    """A member's current ballot on a voting tool."""

    __tablename__ = "votes"

    message_id: Mapped[UUID] = mapped_column(
        ForeignKey("messages.id", ondelete="CASCADE"), nullable=False
    )
    organization_id: Mapped[UUID] = mapped_column(
        ForeignKey("organizations.id"), nullable=False
    )
    member_id: Mapped[UUID] = mapped_column(ForeignKey("members.id"), nullable=False)
    choices: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)

    __table_args__ = (
        UniqueConstraint("message_id", "member_id", name="uq_votes_member"),
        Index("idx_votes_message", "message_id"),
    )


class ElectionNomination(Base, UUIDMixin, TimestampMixin):
    """A secret nomination; one per nominator per election."""

    __tablename__ = "election_nominations"

    message_id: Mapped[UUID] = mapped_column(
        ForeignKey("messages.id", ondelete="CASCADE"), nullable=False
    )
    organization_id: Mapped[UUID] = mapped_column(
        ForeignKey("organizations.id"), nullable=False
    )
    nominator_id: Mapped[UUID] = mapped_column(ForeignKey("members.id"), nullable=False)
    nominee_id: Mapped[UUID] = mapped_column(ForeignKey("members.id"), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (
        UniqueConstraint("message_id", "nominator_id", name="uq_election_nominations_nominator"),
        Index("idx_election_nominations_message", "message_id"),
    )


# =============================================================================
# OUTCOMES
# =============================================================================


class DecisionRecord(Base, UUIDMixin):
    """Write-once record of a finished workflow."""

    __tablename__ = "decision_records"

    organization_id: Mapped[UUID] = mapped_column(
        ForeignKey("organizations.id"), nullable=False
    )
    message_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("messages.id", ondelete="SET NULL"), nullable=True
    )
    tool_type: Mapped[ToolType] = mapped_column(_enum(ToolType, "tool_type"), nullable=False)
    outcome: Mapped[str] = mapped_column(String(30), nullable=False)
    team_id: Mapped[UUID | None] = mapped_column(ForeignKey("teams.id"))
    role_id: Mapped[UUID | None] = mapped_column(ForeignKey("roles.id"))
    elected_member_id: Mapped[UUID | None] = mapped_column(ForeignKey("members.id"))
    recorded_by: Mapped[UUID | None] = mapped_column(
        ForeignKey("members.id"), comment="Facilitator, or NULL for the deadline sweep"
    )
    payload: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict)
    content_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("message_id", name="uq_decision_records_message"),
        Index("idx_decision_records_org_time", "organization_id", "created_at"),
    )


class RoleAssignmentRequest(Base, UUIDMixin):
    """Outbox row asking the directory to assign an elected member to a role."""

    __tablename__ = "role_assignment_requests"

    organization_id: Mapped[UUID] = mapped_column(
        ForeignKey("organizations.id"), nullable=False
    )
    decision_id: Mapped[UUID] = mapped_column(
        ForeignKey("decision_records.id"), nullable=False, unique=True
    )
    role_id: Mapped[UUID] = mapped_column(ForeignKey("roles.id"), nullable=False)
    member_id: Mapped[UUID] = mapped_column(ForeignKey("members.id"), nullable=False)
    status: Mapped[AssignmentStatus] = mapped_column(
        _enum(AssignmentStatus, "assignment_status"),
        default=AssignmentStatus.PENDING,
        nullable=False,
    )
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_error: Mapped[str | None] = mapped_column(Text)
    sent_at: Mapped[datetime | None] = mapped_column()
    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )

    decision: Mapped["DecisionRecord"] = relationship()

    __table_args__ = (
        Index("idx_role_assignment_requests_status", "status"),
    )


# =============================================================================
# AUDIT MODELS
# =============================================================================


class AuditLog(Base, UUIDMixin):
    """Append-only audit trail."""

    __tablename__ = "audit_log"

    organization_id: Mapped[UUID] = mapped_column(
        ForeignKey("organizations.id"), nullable=False
    )
    member_id: Mapped[UUID | None] = mapped_column(ForeignKey("members.id"))
    action: Mapped[AuditAction] = mapped_column(
        _enum(AuditAction, "audit_action"), nullable=False
    )
    resource_type: Mapped[str] = mapped_column(String(50), nullable=False)
    resource_id: Mapped[UUID] = mapped_column(nullable=False)
    details: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("idx_audit_log_org_time", "organization_id", "created_at"),
        Index("idx_audit_log_member", "member_id", "created_at"),
        Index("idx_audit_log_resource", "resource_type", "resource_id"),
    )
