"""Shared FastAPI dependencies."""

import logging

from fastapi import Request
from pydantic import ValidationError

from .auth.schemas import SessionUser
from .errors import PortalError
from .integrations.cache import CacheService
from .integrations.strapi import StrapiClient

logger = logging.getLogger(__name__)


def get_cache(request: Request) -> CacheService:
    """Get the cache service from app state."""
    return request.app.state.cache


def get_strapi(request: Request) -> StrapiClient:
    """Get the CMS client from app state; refuse to serve when it has no URL."""
    client: StrapiClient = request.app.state.strapi
    if not client.configured:
        raise PortalError("Strapi API is not configured", status_code=500)
    return client


def get_session_user(request: Request) -> SessionUser | None:
    """The session user, or None for anonymous callers or a stale cookie."""
    raw = request.session.get("user")
    if not raw:
        return None
    try:
        return SessionUser.model_validate(raw)
    except ValidationError:
        logger.warning("Discarding malformed session cookie")
        request.session.clear()
        return None
