"""Authentication routes."""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from ..config import settings
from ..dependencies import get_session_user, get_strapi
from ..integrations.strapi import StrapiClient
from ..rate_limit import limiter
from .schemas import LoginRequest, SessionUser
from .service import authenticate

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])


@router.post("/login")
@limiter.limit(settings.rate_limit_login)
def login(
    request: Request,
    body: LoginRequest,
    strapi: StrapiClient = Depends(get_strapi),
):
    user = authenticate(strapi, body.identifier.strip(), body.password)
    request.session["user"] = user.model_dump()
    logger.info("User %d logged in as %s", user.user_id, user.user_type or "unknown role")
    return JSONResponse({"success": True, "message": "Login successful", "user": user.public()})


@router.post("/auth/logout")
def logout(request: Request):
    request.session.clear()
    return JSONResponse({"success": True, "message": "Logged out"})


@router.get("/auth/session")
def session_info(user: SessionUser | None = Depends(get_session_user)):
    if user is None:
        return JSONResponse({"authenticated": False, "user": None})
    return JSONResponse({"authenticated": True, "user": user.public()})
