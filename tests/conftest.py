"""Shared fixtures: an in-memory database and a small organization."""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret-key")

from dataclasses import dataclass
from uuid import UUID

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from consent_engine.core.config import Settings
from consent_engine.models import (
    Base,
    Channel,
    ChannelKind,
    Member,
    Organization,
    Role,
    RoleType,
    Team,
)
from consent_engine.services import GovernanceEngine


@dataclass
class OrgFixture:
    """Ids of the seeded organization.

    - owner: organization owner, holds no team role
    - leader: leader of the team
    - alice, bob, carol: hold plain roles in the team
    - dave: organization member outside the team
    """
    organization_id: UUID
    team_id: UUID
    other_team_id: UUID
    role_id: UUID
    owner: UUID
    leader: UUID
    alice: UUID
    bob: UUID
    carol: UUID
    dave: UUID
    team_channel: UUID
    orga_channel: UUID
    dm_channel: UUID
    archived_channel: UUID


# =============================================================================
# DATABASE
# =============================================================================


@pytest.fixture
async def db_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def settings() -> Settings:
    return Settings(require_objection_reason=True)


@pytest.fixture
def governance(session: AsyncSession, settings: Settings) -> GovernanceEngine:
    return GovernanceEngine(session, settings)


# =============================================================================
# ORGANIZATION
# =============================================================================


@pytest.fixture
async def org(session: AsyncSession) -> OrgFixture:
    organization = Organization(name="Cooperative")
    session.add(organization)
    await session.flush()

    def member(firstname: str) -> Member:
        m = Member(
            organization_id=organization.id,
            firstname=firstname,
            surname="Tester",
            email=f"{firstname.lower()}@example.org",
        )
        session.add(m)
        return m

    owner = member("Olivia")
    leader = member("Leo")
    alice = member("Alice")
    bob = member("Bob")
    carol = member("Carol")
    dave = member("Dave")
    await session.flush()
    organization.owner_member_id = owner.id

    team = Team(organization_id=organization.id, name="Circle")
    other_team = Team(organization_id=organization.id, name="Outreach")
    session.add_all([team, other_team])
    await session.flush()

    session.add(
        Role(
            organization_id=organization.id,
            team_id=team.id,
            title="Lead link",
            role_type=RoleType.LEADER,
            member_id=leader.id,
        )
    )
    for holder in (alice, bob, carol):
        session.add(
            Role(
                organization_id=organization.id,
                team_id=team.id,
                title=f"Member {holder.firstname}",
                member_id=holder.id,
            )
        )
    treasurer = Role(organization_id=organization.id, team_id=team.id, title="Treasurer")
    session.add(treasurer)

    dm_a, dm_b = Channel.dm_pair(alice.id, dave.id)
    team_channel = Channel(
        organization_id=organization.id, kind=ChannelKind.TEAM, name="circle", team_id=team.id
    )
    orga_channel = Channel(organization_id=organization.id, kind=ChannelKind.ORGA, name="all")
    dm_channel = Channel(
        organization_id=organization.id,
        kind=ChannelKind.DM,
        dm_member_a_id=dm_a,
        dm_member_b_id=dm_b,
    )
    archived_channel = Channel(
        organization_id=organization.id,
        kind=ChannelKind.ORGA,
        name="old",
        is_archived=True,
    )
    session.add_all([team_channel, orga_channel, dm_channel, archived_channel])
    await session.commit()

    return OrgFixture(
        organization_id=organization.id,
        team_id=team.id,
        other_team_id=other_team.id,
        role_id=treasurer.id,
        owner=owner.id,
        leader=leader.id,
        alice=alice.id,
        bob=bob.id,
        carol=carol.id,
        dave=dave.id,
        team_channel=team_channel.id,
        orga_channel=orga_channel.id,
        dm_channel=dm_channel.id,
        archived_channel=archived_channel.id,
    )
