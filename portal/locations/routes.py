"""Location lookup routes used by the address pickers."""

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from ..auth.schemas import SessionUser
from ..dependencies import get_cache, get_session_user, get_strapi
from ..integrations.cache import CacheService
from ..integrations.strapi import StrapiClient
from .service import list_locations

router = APIRouter(tags=["locations"])


@router.get("/locations/{level}")
def read_locations(
    level: str,
    country_id: str | None = Query(None, alias="countryId"),
    region_id: str | None = Query(None, alias="regionId"),
    zone_id: str | None = Query(None, alias="zoneId"),
    strapi: StrapiClient = Depends(get_strapi),
    cache: CacheService = Depends(get_cache),
    user: SessionUser | None = Depends(get_session_user),
):
    parent_id = {"regions": country_id, "zones": region_id, "woredas": zone_id}.get(level)
    return JSONResponse(list_locations(strapi, cache, user, level, parent_id))
