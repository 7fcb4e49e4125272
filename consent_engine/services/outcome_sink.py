"""
Outcome Sink: durable decision records for finished workflows.

A tool may only reach a terminal phase in the same transaction that writes
its DecisionRecord. Records are write-once per message (unique constraint);
a second terminal write for the same message fails as a concurrency
conflict instead of producing a duplicate.

Elections that fill a role also hand the assignment to the directory. The
default notifier writes an outbox row in the same transaction; delivery
happens later in ``jobs.role_assignment_dispatch``.
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import Any
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.security import hash_content
from ..models import (
    AssignmentStatus,
    AuditAction,
    DecisionRecord,
    Message,
    RoleAssignmentRequest,
    ToolType,
)
from ..schemas.tools import ElectionOutcome, ElectionTool, TopicTool, VotingTool, dump_tool
from .audit import AuditService
from .errors import ConcurrencyError

logger = logging.getLogger(__name__)


# =============================================================================
# ROLE ASSIGNMENT NOTIFIERS
# =============================================================================


class RoleAssignmentNotifier(ABC):
    """Collaborator responsible for assigning an elected member to a role."""

    @abstractmethod
    async def request_assignment(
        self,
        record: DecisionRecord,
        role_id: UUID,
        member_id: UUID,
    ) -> None:
        """Register the assignment inside the current transaction."""


class OutboxRoleAssignmentNotifier(RoleAssignmentNotifier):
    """Writes a pending RoleAssignmentRequest next to the decision record."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def request_assignment(
        self,
        record: DecisionRecord,
        role_id: UUID,
        member_id: UUID,
    ) -> None:
        self._session.add(
            RoleAssignmentRequest(
                organization_id=record.organization_id,
                decision_id=record.id,
                role_id=role_id,
                member_id=member_id,
                status=AssignmentStatus.PENDING,
            )
        )
        AuditService(self._session).log_event(
            organization_id=record.organization_id,
            action=AuditAction.ASSIGN,
            resource_type="role",
            resource_id=role_id,
            member_id=record.recorded_by,
            details={"member_id": str(member_id), "decision_id": str(record.id)},
        )


# =============================================================================
# OUTCOME SINK
# =============================================================================


class OutcomeSink:
    """Writes the decision record that accompanies every terminal transition."""

    def __init__(
        self,
        session: AsyncSession,
        notifier: RoleAssignmentNotifier | None = None,
    ):
        self._session = session
        self._notifier = notifier or OutboxRoleAssignmentNotifier(session)

    async def record(
        self,
        message: Message,
        before: TopicTool | VotingTool | ElectionTool,
        after: TopicTool | VotingTool | ElectionTool,
        recorded_by: UUID | None,
        team_id: UUID | None = None,
    ) -> DecisionRecord:
        """Persist the record for ``message`` moving from ``before`` to ``after``.

        ``after`` must be terminal. Returns the flushed record so the caller
        can link it from the tool before saving the message.
        """
        if not after.is_terminal:
            raise ValueError("Decision records are only written for terminal tools")

        payload: dict[str, Any] = {
            "type": after.type,
            "before": _snapshot(before),
            "after": _snapshot(after),
        }
        role_id = None
        elected_member_id = None
        if isinstance(after, ElectionTool):
            role_id = after.role_id
            elected_member_id = after.elected_member_id
            team_id = after.team_id

        outcome = _outcome_of(after)
        content_hash = hash_content(json.dumps(payload, sort_keys=True))

        record = DecisionRecord(
            organization_id=message.organization_id,
            message_id=message.id,
            tool_type=ToolType(after.type),
            outcome=outcome,
            team_id=team_id,
            role_id=role_id,
            elected_member_id=elected_member_id,
            recorded_by=recorded_by,
            payload=payload,
            content_hash=content_hash,
        )
        self._session.add(record)
        try:
            await self._session.flush()
        except IntegrityError as e:
            raise ConcurrencyError(
                f"Message {message.id} already has a decision record"
            ) from e

        if (
            isinstance(after, ElectionTool)
            and after.outcome == ElectionOutcome.ELECTED
            and role_id is not None
        ):
            await self._notifier.request_assignment(record, role_id, elected_member_id)

        logger.info(
            f"Decision record {record.id} written for {after.type} "
            f"message {message.id}: {outcome}"
        )
        return record


def _snapshot(tool: TopicTool | VotingTool | ElectionTool) -> dict[str, Any]:
    data = dump_tool(tool)
    data.pop("decision_id", None)
    return data


def _outcome_of(tool: TopicTool | VotingTool | ElectionTool) -> str:
    if isinstance(tool, TopicTool):
        return tool.outcome.value
    if isinstance(tool, ElectionTool):
        return tool.outcome.value
    if isinstance(tool, VotingTool):
        return "closed"
    raise TypeError(f"Unknown tool type: {type(tool).__name__}")
