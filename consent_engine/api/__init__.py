"""API routes for the consent engine."""

from fastapi import APIRouter

from .audit import router as audit_router
from .decisions import router as decisions_router
from .elections import router as elections_router
from .messages import router as messages_router
from .topics import router as topics_router
from .voting import router as voting_router

# Main API router
api_router = APIRouter()

# Decision tools embedded in messages
api_router.include_router(messages_router)
api_router.include_router(topics_router)
api_router.include_router(voting_router)
api_router.include_router(elections_router)

# Outcomes and trail
api_router.include_router(decisions_router)
api_router.include_router(audit_router)

__all__ = ["api_router"]
