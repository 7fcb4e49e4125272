"""SQLAlchemy ORM Models for the consent engine."""

from .base import Base, JSONType, TimestampMixin, UUIDMixin
from .models import (
    # Enums
    AssignmentStatus,
    AuditAction,
    ChannelKind,
    ConsentValue,
    RoleType,
    ToolType,
    # Directory
    Channel,
    Member,
    Message,
    Organization,
    Role,
    Team,
    # Participation ledger
    ConsentResponse,
    ElectionNomination,
    TopicAnswer,
    TopicClarification,
    Vote,
    # Outcomes
    DecisionRecord,
    RoleAssignmentRequest,
    # Audit
    AuditLog,
)

__all__ = [
    # Base
    "Base",
    "JSONType",
    "UUIDMixin",
    "TimestampMixin",
    # Enums
    "AssignmentStatus",
    "AuditAction",
    "ChannelKind",
    "ConsentValue",
    "RoleType",
    "ToolType",
    # Directory
    "Organization",
    "Team",
    "Member",
    "Role",
    "Channel",
    "Message",
    # Participation ledger
    "TopicClarification",
    "TopicAnswer",
    "ConsentResponse",
    "Vote",
    "ElectionNomination",
    # Outcomes
    "DecisionRecord",
    "RoleAssignmentRequest",
    # Audit
    "AuditLog",
]
