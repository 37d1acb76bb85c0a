"""Job routes."""

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from ..auth.schemas import SessionUser
from ..config import settings
from ..dependencies import get_cache, get_session_user, get_strapi
from ..integrations.cache import CacheService
from ..integrations.strapi import StrapiClient
from ..rate_limit import limiter
from .schemas import JobWriteRequest
from .service import create_job, get_jobs, list_categories, update_job

router = APIRouter(tags=["jobs"])


@router.get("/jobs")
def read_jobs(
    job_id: str | None = Query(None, alias="id"),
    categories: bool = Query(False),
    strapi: StrapiClient = Depends(get_strapi),
    user: SessionUser | None = Depends(get_session_user),
    cache: CacheService = Depends(get_cache),
):
    if categories:
        return JSONResponse(list_categories(strapi, cache))
    return JSONResponse(get_jobs(strapi, user, job_id))


@router.post("/jobs")
@limiter.limit(settings.rate_limit_writes)
def post_job(
    request: Request,
    body: JobWriteRequest,
    strapi: StrapiClient = Depends(get_strapi),
    user: SessionUser | None = Depends(get_session_user),
):
    return JSONResponse(create_job(strapi, user, body.data), status_code=201)


@router.put("/jobs")
@limiter.limit(settings.rate_limit_writes)
def put_job(
    request: Request,
    body: JobWriteRequest,
    strapi: StrapiClient = Depends(get_strapi),
    user: SessionUser | None = Depends(get_session_user),
):
    return JSONResponse(update_job(strapi, user, body.data))
