"""Job postings: listing, creation and owner-only updates for employers."""

import logging
from typing import Any

from ..auth.schemas import SessionUser
from ..config import settings
from ..errors import BadRequest, Forbidden, NotFound, Unauthorized
from ..integrations.cache import CacheService
from ..integrations.strapi import CredentialTier, StrapiClient, expect_ok, record_path, user_filter
from ..integrations.write_policy import CREATE_POLICY, RECORD_UPDATE_POLICY, raise_for_outcome, run_write
from ..slugs import slugify

logger = logging.getLogger(__name__)

JOB_POPULATE = {"categories": "*", "salary": "*"}
SCALAR_FIELDS = ("description", "location", "jobType", "deadline", "workplaceType", "isFeatured", "experience")
CATEGORIES_CACHE_KEY = "jobs:categories"


def _require_employer(session: SessionUser | None, action: str) -> SessionUser:
    if session is None:
        raise Unauthorized()
    if not session.has_role("employer"):
        raise Forbidden(f"Access denied. Only employers can {action} job postings.")
    return session


def list_categories(client: StrapiClient, cache: CacheService) -> dict:
    cached = cache.get_json(CATEGORIES_CACHE_KEY)
    if cached is not None:
        return cached
    envelope = client.get(
        "categories", params={"populate": "*"}, token=client.token_for(CredentialTier.SERVICE)
    )
    expect_ok(envelope, "Failed to fetch categories")
    result = {"data": envelope.items}
    cache.set_json(CATEGORIES_CACHE_KEY, result, settings.location_cache_ttl)
    return result


def get_jobs(client: StrapiClient, session: SessionUser | None, job_id: str | None = None) -> dict:
    """One job (employers only) or the job list, narrowed to the caller's own for employers."""
    token = client.token_for(CredentialTier.SERVICE)
    if job_id:
        if session is None or not session.has_role("employer"):
            raise Unauthorized()
        envelope = client.get(record_path("jobs", job_id), params={"populate": JOB_POPULATE}, token=token)
        if envelope.status_code == 404:
            raise NotFound("Job not found")
        return expect_ok(envelope, "Failed to fetch job").payload()

    params: dict[str, Any] = {"populate": JOB_POPULATE}
    if session is not None and session.has_role("employer"):
        params["filters"] = user_filter(session.user_id)
    envelope = client.get("jobs", params=params, token=token)
    return expect_ok(envelope, "Failed to fetch jobs").payload()


def _amount(value: Any) -> Any:
    # Blank form fields mean "not given"; 0 is a real amount.
    return None if value is None or value == "" else value


def resolve_salary(client: StrapiClient, salary: dict, user_jwt: str) -> int | str | None:
    """Reuse a salary record with the same (min, max, currency, isNegotiable), else create one."""
    if _amount(salary.get("min")) is None and _amount(salary.get("max")) is None:
        return None
    key = {
        "min": _amount(salary.get("min")),
        "max": _amount(salary.get("max")),
        "currency": salary.get("currency") or "ETB",
        "isNegotiable": bool(salary.get("isNegotiable")),
    }
    filters = {field: ({"$null": True} if value is None else {"$eq": value}) for field, value in key.items()}
    envelope = client.get(
        "salaries",
        params={"filters": filters, "pagination": {"limit": 1}},
        token=client.token_for(CredentialTier.SERVICE),
    )
    if envelope.ok and envelope.first is not None:
        return envelope.first.get("id")

    outcome = run_write(client, "POST", "salaries", key, user_jwt=user_jwt, policy=CREATE_POLICY, label="salary")
    if not outcome.ok or outcome.envelope.first is None:
        logger.warning("Salary could not be saved, job is stored without one")
        return None
    created = outcome.envelope.first
    return created.get("id") or created.get("documentId")


def create_job(client: StrapiClient, session: SessionUser | None, data: dict) -> dict:
    session = _require_employer(session, "create")
    title = data.get("title")
    if not title or not data.get("description") or not data.get("deadline"):
        raise BadRequest("Title, description, and deadline are required")

    job: dict[str, Any] = {
        "title": title,
        "slug": slugify(title),
        "description": data["description"],
        "deadline": data["deadline"],
        "workplaceType": data.get("workplaceType") or "On Site",
        "isFeatured": bool(data.get("isFeatured")),
        "experience": data.get("experience") or "Entry",
        "user": session.user_id,
        "approvalStatus": "Pending",
    }
    for field in ("location", "jobType"):
        if data.get(field):
            job[field] = data[field]
    if isinstance(data.get("salary"), dict):
        salary_id = resolve_salary(client, data["salary"], session.jwt)
        if salary_id is not None:
            job["salary"] = salary_id
    if isinstance(data.get("categories"), list) and data["categories"]:
        job["categories"] = data["categories"]

    outcome = run_write(client, "POST", "jobs", job, user_jwt=session.jwt, policy=CREATE_POLICY, label="job")
    raise_for_outcome(
        outcome, collection="jobs", method="POST", user_id=session.user_id, default_message="Failed to create job posting"
    )
    logger.info("Job %r created by user %d", title, session.user_id)
    return outcome.envelope.payload()


def update_job(client: StrapiClient, session: SessionUser | None, data: dict) -> dict:
    session = _require_employer(session, "update")
    job_id = data.get("id")
    if not job_id:
        raise BadRequest("Job ID is required for updates")

    current = client.get(
        record_path("jobs", job_id),
        params={"populate": {"user": {"fields": ["id"]}}},
        token=client.token_for(CredentialTier.SERVICE),
    )
    if current.status_code == 404:
        raise NotFound("Job not found")
    expect_ok(current, "Failed to fetch job")
    owner = (current.first or {}).get("user") or {}
    if owner.get("id") != session.user_id:
        raise Forbidden("Access denied. You can only update your own job postings.")

    changes: dict[str, Any] = {}
    if "title" in data:
        changes["title"] = data["title"]
        changes["slug"] = slugify(data["title"] or "")
    for field in SCALAR_FIELDS:
        if field in data:
            changes[field] = data[field]
    if isinstance(data.get("salary"), dict):
        salary_id = resolve_salary(client, data["salary"], session.jwt)
        if salary_id is not None:
            changes["salary"] = salary_id
    if isinstance(data.get("categories"), list):
        changes["categories"] = data["categories"]

    outcome = run_write(
        client,
        "PUT",
        "jobs",
        changes,
        user_jwt=session.jwt,
        policy=RECORD_UPDATE_POLICY,
        record_id=job_id,
        label="job",
    )
    raise_for_outcome(
        outcome, collection="jobs", method="PUT", user_id=session.user_id, default_message="Failed to update job posting"
    )
    return outcome.envelope.payload()
