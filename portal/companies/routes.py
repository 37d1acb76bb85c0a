"""Company routes."""

from typing import Any

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..auth.schemas import SessionUser
from ..config import settings
from ..dependencies import get_session_user, get_strapi
from ..integrations.strapi import StrapiClient
from ..rate_limit import limiter
from .service import create_company, get_companies, update_company

router = APIRouter(tags=["companies"])


class CompanyWriteRequest(BaseModel):
    data: dict[str, Any]


@router.get("/companies")
def read_companies(
    company_id: str | None = Query(None, alias="id"),
    strapi: StrapiClient = Depends(get_strapi),
):
    return JSONResponse(get_companies(strapi, company_id))


@router.post("/companies")
@limiter.limit(settings.rate_limit_writes)
def post_company(
    request: Request,
    body: CompanyWriteRequest,
    strapi: StrapiClient = Depends(get_strapi),
    user: SessionUser | None = Depends(get_session_user),
):
    result, created = create_company(strapi, user, body.data)
    return JSONResponse(result, status_code=201 if created else 200)


@router.put("/companies")
@limiter.limit(settings.rate_limit_writes)
def put_company(
    request: Request,
    body: CompanyWriteRequest,
    strapi: StrapiClient = Depends(get_strapi),
    user: SessionUser | None = Depends(get_session_user),
):
    return JSONResponse(update_company(strapi, user, body.data))
