"""Shared plumbing for the three tool engines.

Each engine loads a message with its typed tool, validates the submission,
writes ledger rows and then saves the tool back onto the message. Saving
always bumps the message version, so every accepted submission on a
message conflicts with any concurrent one and one of them is retried.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Generic, TypeVar
from uuid import UUID

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import flag_modified
from sqlalchemy.orm.exc import StaleDataError

from ..core.config import Settings, get_settings
from ..models import AuditAction, ConsentResponse, ConsentValue, Message, ToolType
from ..schemas.tools import ElectionTool, TopicTool, VotingTool, dump_tool, load_tool
from .audit import AuditService
from .directory import Directory
from .errors import (
    ConcurrencyError,
    InvalidInputError,
    NotAuthorizedError,
    NotEligibleError,
    ToolMismatchError,
)
from .outcome_sink import OutcomeSink, RoleAssignmentNotifier
from .participation import ParticipationLedger

logger = logging.getLogger(__name__)

ToolT = TypeVar("ToolT", TopicTool, VotingTool, ElectionTool)


def utcnow(now: datetime | None = None) -> datetime:
    """Resolve the evaluation time; naive datetimes are taken as UTC."""
    if now is None:
        return datetime.now(timezone.utc)
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now


def build_tool(tool_class: type[ToolT], **fields: Any) -> ToolT:
    """Construct a tool, reporting schema violations as InvalidInputError."""
    try:
        return tool_class(**fields)
    except ValidationError as e:
        problems = "; ".join(err["msg"] for err in e.errors())
        raise InvalidInputError(problems) from e


class ToolEngine(Generic[ToolT]):
    """Base class for engines operating on one tool variant."""

    tool_class: type[ToolT]

    def __init__(
        self,
        session: AsyncSession,
        settings: Settings | None = None,
        notifier: RoleAssignmentNotifier | None = None,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.directory = Directory(session)
        self.ledger = ParticipationLedger(session)
        self.audit = AuditService(session)
        self.sink = OutcomeSink(session, notifier)

    # =========================================================================
    # LOAD / SAVE
    # =========================================================================

    async def load(self, message_id: UUID) -> tuple[Message, ToolT]:
        """Load a message and its tool, which must be of this engine's variant."""
        message = await self.directory.get_message(message_id)
        if message.embedded_tool is None:
            raise ToolMismatchError(f"Message {message_id} carries no decision tool")

        tool = load_tool(message.embedded_tool)
        if not isinstance(tool, self.tool_class):
            raise ToolMismatchError(
                f"Message {message_id} carries a {tool.type} tool, "
                f"not a {self.tool_class.model_fields['type'].default}"
            )
        return message, tool

    async def save(self, message: Message, tool: ToolT) -> ToolT:
        if message.tool_type is None or message.tool_type.value != tool.type:
            raise ToolMismatchError("The embedded tool type cannot change")

        message.embedded_tool = dump_tool(tool)
        flag_modified(message, "embedded_tool")
        try:
            await self.session.flush()
        except StaleDataError as e:
            raise ConcurrencyError(
                f"Message {message.id} was modified concurrently"
            ) from e
        return tool

    async def finish(
        self,
        message: Message,
        before: ToolT,
        after: ToolT,
        actor_id: UUID | None,
    ) -> ToolT:
        """Write the decision record and the terminal tool in one step.

        The record is filed under the channel's team; elections override it
        with their target team.
        """
        channel = await self.directory.get_channel(message.channel_id)
        record = await self.sink.record(
            message, before, after, actor_id, team_id=channel.team_id
        )
        return await self.save(message, after.evolve(decision_id=record.id))

    async def create_message(
        self,
        channel_id: UUID,
        author_id: UUID,
        text: str,
        tool: ToolT,
    ) -> Message:
        channel = await self.directory.get_channel(channel_id)
        if channel.is_archived:
            raise InvalidInputError("Channel is archived and read-only")
        if not await self.directory.is_channel_participant(channel, author_id):
            raise NotEligibleError(f"Member {author_id} cannot post in channel {channel_id}")

        message = Message(
            channel_id=channel.id,
            organization_id=channel.organization_id,
            author_id=author_id,
            text=text,
            tool_type=ToolType(tool.type),
            embedded_tool=dump_tool(tool),
        )
        self.session.add(message)
        await self.session.flush()

        self.audit.log_event(
            organization_id=message.organization_id,
            action=AuditAction.CREATE,
            resource_type=tool.type,
            resource_id=message.id,
            member_id=author_id,
            details={"channel_id": str(channel.id)},
        )
        logger.info(f"Created {tool.type} message {message.id} in channel {channel.id}")
        return message

    # =========================================================================
    # SHARED CHECKS
    # =========================================================================

    async def require_facilitator(
        self,
        message: Message,
        actor_id: UUID,
        team_id: UUID | None = None,
    ) -> None:
        if not await self.directory.can_facilitate(message, actor_id, team_id):
            raise NotAuthorizedError(
                f"Member {actor_id} cannot facilitate message {message.id}"
            )

    async def record_consent(
        self,
        message: Message,
        tool: TopicTool | ElectionTool,
        member_id: UUID,
        response: ConsentValue,
        reason: str | None,
    ) -> ConsentResponse:
        """Upsert a consent response for the tool's current round."""
        reason = (reason or "").strip() or None
        if (
            response == ConsentValue.OBJECTION
            and self.settings.require_objection_reason
            and not reason
        ):
            raise InvalidInputError("An objection needs a reason")

        row = await self.ledger.upsert_response(
            message, member_id, tool.consent_round, response, reason
        )
        await self.save(message, tool)

        self.audit.log_event(
            organization_id=message.organization_id,
            action=AuditAction.RESPOND,
            resource_type=tool.type,
            resource_id=message.id,
            member_id=member_id,
            details={"response": response.value, "round": tool.consent_round},
        )
        return row

    def log_transition(self, message: Message, actor_id: UUID | None, old: str, new: str) -> None:
        self.audit.log_event(
            organization_id=message.organization_id,
            action=AuditAction.ADVANCE,
            resource_type=message.tool_type.value,
            resource_id=message.id,
            member_id=actor_id,
            details={"from": old, "to": new},
        )
        logger.info(f"{message.tool_type.value.capitalize()} {message.id}: {old} -> {new}")
