"""Core application utilities."""

from .config import Settings, get_settings
from .database import (
    async_session_factory,
    close_db,
    engine,
    get_session,
    init_db,
)
from .dependencies import (
    CurrentMember,
    CurrentMemberDep,
    OwnerDep,
    PaginationDep,
    SessionDep,
    get_current_member,
    get_pagination,
    require_owner,
)
from .security import (
    TokenPayload,
    create_access_token,
    decode_token,
    hash_content,
    verify_content_hash,
)

__all__ = [
    # Config
    "Settings",
    "get_settings",
    # Database
    "engine",
    "async_session_factory",
    "get_session",
    "init_db",
    "close_db",
    # Dependencies
    "CurrentMember",
    "get_current_member",
    "CurrentMemberDep",
    "OwnerDep",
    "require_owner",
    "SessionDep",
    "PaginationDep",
    "get_pagination",
    # Security
    "TokenPayload",
    "create_access_token",
    "decode_token",
    "hash_content",
    "verify_content_hash",
]
