"""Authentication service: credential check against the CMS users-permissions API."""

import logging

from ..errors import BadRequest, Forbidden, UpstreamError
from ..integrations.strapi import StrapiClient
from .schemas import SessionUser

logger = logging.getLogger(__name__)


def _user_type(client: StrapiClient, user: dict, jwt: str) -> str:
    """Role name from the user's ``type`` field, else from its users-permissions role."""
    if user.get("type"):
        return str(user["type"]).lower()

    envelope = client.get("users/me", params={"populate": "role"}, token=jwt)
    if not envelope.ok:
        logger.warning("Could not read role for user %s: %d", user.get("id"), envelope.status_code)
        return ""
    # users/me is not wrapped in a data envelope
    me = envelope.body
    role = me.get("role") if isinstance(me.get("role"), dict) else {}
    return str(me.get("type") or role.get("type") or role.get("name") or "").lower()


def authenticate(client: StrapiClient, identifier: str, password: str) -> SessionUser:
    """Verify credentials and return the session user, or raise."""
    if not identifier or not password:
        raise BadRequest("Email and password are required")

    envelope = client.request("POST", "auth/local", body={"identifier": identifier, "password": password})
    if not envelope.ok:
        logger.info("Login failed for %s: %d", identifier, envelope.status_code)
        raise UpstreamError(envelope.error_message or "Invalid credentials", status_code=envelope.status_code)

    jwt = envelope.body.get("jwt") or ""
    user = envelope.body.get("user") or {}
    if not jwt or not user.get("id"):
        raise UpstreamError("Unexpected login response from CMS", status_code=502)

    if user.get("confirmed") is False:
        raise Forbidden(
            "Please confirm your email address before logging in.",
            details={"requiresConfirmation": True, "email": user.get("email", "")},
        )
    if user.get("blocked"):
        raise Forbidden("Your account has been blocked. Please contact support.")

    return SessionUser(
        user_id=user["id"],
        email=user.get("email") or "",
        first_name=user.get("firstName") or user.get("username") or "",
        user_type=_user_type(client, user, jwt),
        jwt=jwt,
    )
