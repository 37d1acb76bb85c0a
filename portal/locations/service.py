"""Location reference data (country > region > zone > woreda), cached per parent."""

import logging

from ..auth.schemas import SessionUser
from ..config import settings
from ..errors import NotFound, Unauthorized
from ..integrations.cache import CacheService
from ..integrations.strapi import CredentialTier, StrapiClient, expect_ok

logger = logging.getLogger(__name__)

# level -> parent relation on that collection
LEVELS: dict[str, str | None] = {
    "countries": None,
    "regions": "country",
    "zones": "region",
    "woredas": "zone",
}


def list_locations(
    client: StrapiClient,
    cache: CacheService,
    session: SessionUser | None,
    level: str,
    parent_id: str | None = None,
) -> dict:
    if session is None:
        raise Unauthorized()
    if level not in LEVELS:
        raise NotFound(f"Unknown location level: {level}")

    parent = LEVELS[level]
    cache_key = f"locations:{level}:{parent_id or 'all'}"
    cached = cache.get_json(cache_key)
    if cached is not None:
        logger.debug("Cache hit for %s", cache_key)
        return cached

    params: dict = {"pagination": {"pageSize": 100}}
    if parent is not None and parent_id:
        params["filters"] = {parent: {"id": {"$eq": parent_id}}}
    envelope = client.get(level, params=params, token=client.token_for(CredentialTier.SERVICE, session.jwt))
    result = expect_ok(envelope, f"Failed to fetch {level}").payload()
    cache.set_json(cache_key, result, settings.location_cache_ttl)
    return result
