"""Directory lookups: who may take part in a tool, and who may facilitate it."""

import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import (
    Channel,
    ChannelKind,
    Member,
    Message,
    Organization,
    Role,
    RoleType,
    Team,
)
from .errors import (
    ChannelNotFoundError,
    MemberNotFoundError,
    MessageNotFoundError,
    NotEligibleError,
)

logger = logging.getLogger(__name__)

FACILITATOR_ROLE_TYPES = (RoleType.LEADER, RoleType.SECRETARY)


class Directory:
    """Read-only view of organizations, teams, roles and channels."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_message(self, message_id: UUID) -> Message:
        message = await self._session.get(Message, message_id)
        if not message:
            raise MessageNotFoundError(f"Message {message_id} not found")
        return message

    async def get_channel(self, channel_id: UUID) -> Channel:
        channel = await self._session.get(Channel, channel_id)
        if not channel:
            raise ChannelNotFoundError(f"Channel {channel_id} not found")
        return channel

    async def get_member(self, organization_id: UUID, member_id: UUID) -> Member:
        """Get a member of the organization or raise MemberNotFoundError."""
        member = await self._session.get(Member, member_id)
        if not member or member.organization_id != organization_id:
            raise MemberNotFoundError(
                f"Member {member_id} not found in organization {organization_id}"
            )
        return member

    async def get_team(self, organization_id: UUID, team_id: UUID) -> Team | None:
        team = await self._session.get(Team, team_id)
        if not team or team.organization_id != organization_id:
            return None
        return team

    async def get_role(self, role_id: UUID) -> Role | None:
        return await self._session.get(Role, role_id)

    async def holds_role_in_team(self, member_id: UUID, team_id: UUID) -> bool:
        result = await self._session.execute(
            select(Role.id).where(Role.team_id == team_id, Role.member_id == member_id).limit(1)
        )
        return result.first() is not None

    async def is_channel_participant(self, channel: Channel, member_id: UUID) -> bool:
        """A member may act in a channel according to its kind."""
        member = await self._session.get(Member, member_id)
        if not member or member.organization_id != channel.organization_id:
            return False

        if channel.kind == ChannelKind.TEAM:
            return await self.holds_role_in_team(member_id, channel.team_id)
        if channel.kind == ChannelKind.DM:
            return member_id in (channel.dm_member_a_id, channel.dm_member_b_id)
        return True

    async def require_participant(
        self,
        message: Message,
        member_id: UUID,
        team_id: UUID | None = None,
    ) -> None:
        """Raise NotEligibleError unless the member has standing on the message.

        ``team_id`` scopes eligibility to a specific team (an election's
        target team) instead of the channel.
        """
        if team_id is not None:
            member = await self._session.get(Member, member_id)
            eligible = (
                member is not None
                and member.organization_id == message.organization_id
                and await self.holds_role_in_team(member_id, team_id)
            )
        else:
            channel = await self.get_channel(message.channel_id)
            eligible = await self.is_channel_participant(channel, member_id)

        if not eligible:
            raise NotEligibleError(
                f"Member {member_id} has no standing on message {message.id}"
            )

    async def can_facilitate(
        self,
        message: Message,
        member_id: UUID,
        team_id: UUID | None = None,
    ) -> bool:
        """Facilitators: the author, the organization owner, and the team's
        leader or secretary."""
        if message.author_id == member_id:
            return True

        organization = await self._session.get(Organization, message.organization_id)
        if organization and organization.owner_member_id == member_id:
            return True

        if team_id is None:
            channel = await self.get_channel(message.channel_id)
            team_id = channel.team_id
        if team_id is None:
            return False

        result = await self._session.execute(
            select(Role.id).where(
                Role.team_id == team_id,
                Role.member_id == member_id,
                Role.role_type.in_(FACILITATOR_ROLE_TYPES),
            ).limit(1)
        )
        return result.first() is not None
