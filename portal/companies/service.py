"""Companies: public listing, name-deduplicated creation and employer updates."""

import logging
from typing import Any

from ..auth.schemas import SessionUser
from ..errors import BadRequest, Forbidden, NotFound, Unauthorized
from ..integrations.strapi import CredentialTier, StrapiClient, expect_ok, is_record_id, record_path, user_filter
from ..integrations.write_policy import CREATE_POLICY, RECORD_UPDATE_POLICY, raise_for_outcome, run_write
from ..slugs import slugify, timestamped

logger = logging.getLogger(__name__)

COMPANY_POPULATE = {"logo": "*", "socialLinks": "*"}
COMPANY_FIELDS = ("name", "website", "industry", "companySize", "location", "description", "tagline")
MAX_SLUG_PROBES = 10


def _require_employer(session: SessionUser | None, action: str) -> SessionUser:
    if session is None:
        raise Unauthorized()
    if not session.has_role("employer"):
        raise Forbidden(f"Access denied. Only employers can {action} companies.")
    return session


def _single_media(value: Any) -> Any:
    if isinstance(value, list):
        return value[0] if value else None
    if isinstance(value, dict):
        return value.get("id")
    return value or None


def _clean_links(links: Any) -> list[dict]:
    if not isinstance(links, list):
        return []
    cleaned = []
    for link in links:
        if not isinstance(link, dict):
            continue
        entry: dict[str, Any] = {"label": link.get("label") or "", "url": link.get("url") or ""}
        if link.get("id"):
            entry["id"] = link["id"]
        cleaned.append(entry)
    return cleaned


def get_companies(client: StrapiClient, company_id: str | None = None) -> dict:
    token = client.token_for(CredentialTier.SERVICE)
    if company_id:
        envelope = client.get(record_path("companies", company_id), params={"populate": COMPANY_POPULATE}, token=token)
        if envelope.status_code == 404:
            raise NotFound("Company not found")
        return expect_ok(envelope, "Failed to fetch company").payload()
    envelope = client.get("companies", params={"populate": COMPANY_POPULATE}, token=token)
    return expect_ok(envelope, "Failed to fetch companies").payload()


def _slug_taken(client: StrapiClient, slug: str, exclude: str | None = None) -> bool | None:
    """True/False when the CMS answered, None when the check itself failed."""
    filters: dict[str, Any] = {"slug": {"$eq": slug}}
    if exclude is not None:
        id_field = "id" if str(exclude).isdigit() else "documentId"
        filters[id_field] = {"$ne": exclude}
    envelope = client.get(
        "companies",
        params={"filters": filters, "pagination": {"limit": 1}},
        token=client.token_for(CredentialTier.SERVICE),
    )
    if not envelope.ok:
        return None
    return bool(envelope.items)


def unique_slug(client: StrapiClient, name: str) -> str:
    base = slugify(name)
    slug = base
    for _ in range(MAX_SLUG_PROBES):
        if not _slug_taken(client, slug):
            break
        slug = timestamped(base)
    return slug


def create_company(client: StrapiClient, session: SessionUser | None, data: dict) -> tuple[dict, bool]:
    """Create a company, or return the one already registered under the same name.

    Returns the response body and whether a record was created.
    """
    session = _require_employer(session, "create")
    name = data.get("name")
    if not name:
        raise BadRequest("Company name is required")

    existing = client.get(
        "companies",
        params={"filters": {"name": {"$eq": name}}, "pagination": {"limit": 1}},
        token=client.token_for(CredentialTier.SERVICE),
    )
    if existing.ok and existing.first is not None:
        logger.info("Company %r already exists, reusing %s", name, existing.first.get("id"))
        return {"data": existing.first, "message": "Using existing company"}, False

    company: dict[str, Any] = {"name": name, "slug": unique_slug(client, name), "owner": session.user_id}
    for field in COMPANY_FIELDS[1:]:
        if data.get(field):
            company[field] = data[field]
    if "logo" in data:
        company["logo"] = _single_media(data["logo"])
    if "socialLinks" in data:
        company["socialLinks"] = _clean_links(data["socialLinks"])

    outcome = run_write(client, "POST", "companies", company, user_jwt=session.jwt, policy=CREATE_POLICY, label="company")
    raise_for_outcome(
        outcome, collection="companies", method="POST", user_id=session.user_id, default_message="Failed to create company"
    )
    return outcome.envelope.payload(), True


def update_company(client: StrapiClient, session: SessionUser | None, data: dict) -> dict:
    session = _require_employer(session, "update")
    identifier = data.get("documentId") or data.get("id")
    if not identifier:
        raise BadRequest("Missing identifier")
    if not is_record_id(identifier):
        raise BadRequest("Invalid identifier")

    profiles = client.get(
        "employer-profiles",
        params={"filters": user_filter(session.user_id), "pagination": {"limit": 1}},
        token=client.token_for(CredentialTier.SERVICE, session.jwt),
    )
    profile = profiles.first if profiles.ok else None

    changes: dict[str, Any] = {field: data[field] for field in COMPANY_FIELDS if field in data}
    if "logo" in data:
        changes["logo"] = _single_media(data["logo"])
    if "socialLinks" in data:
        changes["socialLinks"] = _clean_links(data["socialLinks"])
    if profile is not None:
        changes["employers"] = [profile.get("documentId") or profile.get("id")]
    else:
        logger.warning("User %d has no employer profile to link to company %s", session.user_id, identifier)

    if changes.get("name"):
        slug = slugify(changes["name"])
        if _slug_taken(client, slug, exclude=str(identifier)):
            slug = timestamped(slug)
        changes["slug"] = slug

    outcome = run_write(
        client,
        "PUT",
        "companies",
        changes,
        user_jwt=session.jwt,
        policy=RECORD_UPDATE_POLICY,
        record_id=identifier,
        label="company",
    )
    raise_for_outcome(outcome, collection="companies", method="PUT", user_id=session.user_id, default_message="Update failed")
    return outcome.envelope.payload()
