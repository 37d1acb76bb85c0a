"""Profile routes: one GET/POST/PUT trio per profile kind."""

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from ..auth.schemas import SessionUser
from ..config import settings
from ..dependencies import get_session_user, get_strapi
from ..integrations.strapi import StrapiClient
from ..rate_limit import limiter
from .models import CANDIDATE, EMPLOYER, STUDENT
from .schemas import ProfileWriteRequest
from .service import get_profiles, update_profile, upsert_profile

router = APIRouter(tags=["profiles"])


def _populate_pairs(request: Request) -> list[tuple[str, str]]:
    return [(key, value) for key, value in request.query_params.multi_items() if key.startswith("populate")]


# ── Student ───────────────────────────────────────────────────────────


@router.get("/student-profiles")
def get_student_profile(
    request: Request,
    strapi: StrapiClient = Depends(get_strapi),
    user: SessionUser | None = Depends(get_session_user),
):
    return JSONResponse(get_profiles(strapi, user, STUDENT, populate=_populate_pairs(request)))


@router.post("/student-profiles")
@limiter.limit(settings.rate_limit_writes)
def save_student_profile(
    request: Request,
    body: ProfileWriteRequest,
    strapi: StrapiClient = Depends(get_strapi),
    user: SessionUser | None = Depends(get_session_user),
):
    result = upsert_profile(strapi, user, STUDENT, body.data)
    return JSONResponse(result.to_response(), status_code=result.status_code)


@router.put("/student-profiles")
@limiter.limit(settings.rate_limit_writes)
def update_student_profile(
    request: Request,
    body: ProfileWriteRequest,
    strapi: StrapiClient = Depends(get_strapi),
    user: SessionUser | None = Depends(get_session_user),
):
    result = update_profile(strapi, user, STUDENT, body.data)
    return JSONResponse(result.to_response())


# ── Candidate ─────────────────────────────────────────────────────────


@router.get("/candidate-profiles")
def get_candidate_profiles(
    profile_id: str | None = Query(None, alias="id"),
    document_id: str | None = Query(None, alias="documentId"),
    my_profile: bool = Query(False, alias="myProfile"),
    strapi: StrapiClient = Depends(get_strapi),
    user: SessionUser | None = Depends(get_session_user),
):
    return JSONResponse(
        get_profiles(
            strapi, user, CANDIDATE, profile_id=profile_id, document_id=document_id, my_profile=my_profile
        )
    )


@router.post("/candidate-profiles")
@limiter.limit(settings.rate_limit_writes)
def save_candidate_profile(
    request: Request,
    body: ProfileWriteRequest,
    strapi: StrapiClient = Depends(get_strapi),
    user: SessionUser | None = Depends(get_session_user),
):
    result = upsert_profile(strapi, user, CANDIDATE, body.data)
    return JSONResponse(result.to_response(), status_code=result.status_code)


@router.put("/candidate-profiles")
@limiter.limit(settings.rate_limit_writes)
def update_candidate_profile(
    request: Request,
    body: ProfileWriteRequest,
    strapi: StrapiClient = Depends(get_strapi),
    user: SessionUser | None = Depends(get_session_user),
):
    result = update_profile(strapi, user, CANDIDATE, body.data)
    return JSONResponse(result.to_response())


# ── Employer ──────────────────────────────────────────────────────────


@router.get("/employer-profiles")
def get_employer_profiles(
    profile_id: str | None = Query(None, alias="id"),
    my_profile: bool = Query(False, alias="myProfile"),
    strapi: StrapiClient = Depends(get_strapi),
    user: SessionUser | None = Depends(get_session_user),
):
    return JSONResponse(get_profiles(strapi, user, EMPLOYER, profile_id=profile_id, my_profile=my_profile))


@router.post("/employer-profiles")
@limiter.limit(settings.rate_limit_writes)
def save_employer_profile(
    request: Request,
    body: ProfileWriteRequest,
    strapi: StrapiClient = Depends(get_strapi),
    user: SessionUser | None = Depends(get_session_user),
):
    result = upsert_profile(strapi, user, EMPLOYER, body.data)
    return JSONResponse(result.to_response(), status_code=result.status_code)


@router.put("/employer-profiles")
@limiter.limit(settings.rate_limit_writes)
def update_employer_profile(
    request: Request,
    body: ProfileWriteRequest,
    strapi: StrapiClient = Depends(get_strapi),
    user: SessionUser | None = Depends(get_session_user),
):
    result = update_profile(strapi, user, EMPLOYER, body.data)
    return JSONResponse(result.to_response())
