"""FastAPI dependencies for authentication and request context."""

import logging
from typing import Annotated
from uuid import UUID

from fastapi import Depends, HTTPException, Query, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import Member, Organization
from ..schemas.base import PaginationParams
from .database import get_session
from .security import decode_token

logger = logging.getLogger(__name__)

# Security scheme
bearer_scheme = HTTPBearer(auto_error=False)


class CurrentMember:
    """The authenticated member and the organization they act in."""

    def __init__(self, member: Member):
        self.member = member

    @property
    def id(self) -> UUID:
        return self.member.id

    @property
    def organization_id(self) -> UUID:
        return self.member.organization_id


async def get_current_member(
    credentials: Annotated[
        HTTPAuthorizationCredentials | None, Depends(bearer_scheme)
    ],
    session: Annotated[AsyncSession, Depends(get_session)],
) -> CurrentMember:
    """Dependency to get the current authenticated member.

    The token's ``sub`` names the member and ``org`` the organization; the
    member must belong to that organization.
    """
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = decode_token(credentials.credentials)
    if not payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if payload.type != "access":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token type",
        )

    try:
        member_id = UUID(payload.sub)
        org_id = UUID(payload.org)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Malformed token subject",
        )

    member = await session.get(Member, member_id)
    if not member:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Member not found",
        )

    if member.organization_id != org_id:
        logger.warning(f"Member {member_id} presented a token for organization {org_id}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not a member of this organization",
        )

    return CurrentMember(member)


async def require_owner(
    current_member: Annotated[CurrentMember, Depends(get_current_member)],
    session: Annotated[AsyncSession, Depends(get_session)],
) -> CurrentMember:
    """Require the organization owner."""
    organization = await session.get(Organization, current_member.organization_id)
    if not organization or organization.owner_member_id != current_member.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Owner privileges required",
        )
    return current_member


def get_pagination(
    page: int = Query(default=1, ge=1, description="Page number (1-indexed)"),
    page_size: int = Query(default=20, ge=1, le=100, description="Items per page"),
) -> PaginationParams:
    return PaginationParams(page=page, page_size=page_size)


# Type aliases for cleaner dependency injection
CurrentMemberDep = Annotated[CurrentMember, Depends(get_current_member)]
OwnerDep = Annotated[CurrentMember, Depends(require_owner)]
SessionDep = Annotated[AsyncSession, Depends(get_session)]
PaginationDep = Annotated[PaginationParams, Depends(get_pagination)]
