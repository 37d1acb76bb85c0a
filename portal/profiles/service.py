"""Profile reconciliation service.

Turns a submitted profile form into a single CMS write per (user, role):
resolves the caller's existing profile, reconciles linked child records,
cleans embedded components and runs the write through the fallback policy.
"""

import logging
from typing import Any

from pydantic import BaseModel, Field

from ..auth.schemas import SessionUser
from ..errors import BadRequest, ChildRecordError, Forbidden, NotFound, Unauthorized, UpstreamError
from ..integrations.strapi import CredentialTier, StrapiClient, encode_query, expect_ok, record_path, user_filter
from ..integrations.write_policy import (
    CREATE_POLICY,
    PROFILE_UPDATE_POLICY,
    WriteAttempt,
    raise_for_outcome,
    run_write,
)
from .components import clean_component, clean_repeatable, known_component_id, media_id
from .models import ProfileKind
from .relations import RecordRef, reconcile_relation, record_ref

logger = logging.getLogger(__name__)

SYSTEM_FIELDS = frozenset({"id", "documentId", "user", "email", "createdAt", "updatedAt", "publishedAt", "locale"})

Populate = dict | str | list[tuple[str, str]]


class UpsertResult(BaseModel):
    data: dict | None = None
    created: bool = False
    resolved: dict[str, list[RecordRef]] = Field(default_factory=dict)
    failed: dict[str, list[str]] = Field(default_factory=dict)
    attempts: list[WriteAttempt] = Field(default_factory=list)

    @property
    def status_code(self) -> int:
        return 201 if self.created else 200

    def to_response(self) -> dict:
        meta: dict[str, Any] = {"created": self.created, "resolved": self.resolved}
        if self.failed:
            meta["failed"] = self.failed
        return {"data": self.data, "meta": meta}


# ── Lookup ────────────────────────────────────────────────────────────


def _owner_id(record: dict) -> int | None:
    user = record.get("user")
    if isinstance(user, dict) and isinstance(user.get("data"), dict):
        user = user["data"]
    if isinstance(user, dict):
        return user.get("id")
    if isinstance(user, int):
        return user
    return None


def _lookup_params(user_id: int, populate: Populate) -> list[tuple[str, str]]:
    params = encode_query({"filters": user_filter(user_id)})
    if isinstance(populate, list):
        # The owner check needs the user id whatever the caller populated.
        owner = ("populate[user][fields][0]", "id")
        return params + populate + ([] if owner in populate else [owner])
    return params + encode_query({"populate": populate})


def find_user_profile(
    client: StrapiClient,
    kind: ProfileKind,
    user_id: int,
    token: str,
    populate: Populate | None = None,
    strict: bool = True,
) -> dict | None:
    """Resolve the caller's profile through the user-filtered collection read.

    Strict mode (writes) refuses to continue when the filter returned records
    but none of them is verifiably owned by ``user_id``. Lenient mode (reads)
    also accepts a record whose owner was not populated, but never one owned
    by somebody else.
    """
    envelope = client.get(
        kind.collection,
        params=_lookup_params(user_id, populate if populate is not None else kind.lookup_populate),
        token=token,
    )
    expect_ok(envelope, f"Failed to load {kind.label.lower()}")

    for record in envelope.items:
        if _owner_id(record) == user_id:
            return record
    if not envelope.items:
        return None

    owners = [_owner_id(record) for record in envelope.items]
    logger.warning(
        "%s lookup for user %d returned records owned by %s", kind.collection, user_id, owners
    )
    if strict:
        raise Forbidden(f"Access denied. The {kind.label.lower()} found does not belong to you.")
    unowned = [record for record in envelope.items if _owner_id(record) is None]
    return unowned[0] if unowned else None


# ── Writes ────────────────────────────────────────────────────────────


def _authorize_owner(session: SessionUser | None, kind: ProfileKind) -> SessionUser:
    if session is None:
        raise Unauthorized()
    if not session.has_role(*kind.owner_roles):
        raise Forbidden(f"Only {' or '.join(kind.owner_roles)} users can manage a {kind.label.lower()}")
    return session


def _compose_payload(
    client: StrapiClient,
    session: SessionUser,
    kind: ProfileKind,
    data: dict,
    existing: dict | None,
) -> tuple[dict, dict[str, list[RecordRef]], dict[str, list[str]]]:
    updating = existing is not None
    payload: dict[str, Any] = {}
    resolved: dict[str, list[RecordRef]] = {}
    failures: dict[str, list[str]] = {}
    fatal: dict[str, list[str]] = {}

    for key, value in data.items():
        if key in SYSTEM_FIELDS or not kind.accepts(key):
            continue
        spec = kind.relation(key)
        if spec is not None:
            result = reconcile_relation(client, spec, value, user_jwt=session.jwt)
            resolved[key] = result.ids
            if result.failures:
                failures[key] = result.failures
                if spec.failures_abort:
                    fatal[key] = result.failures
                # A failed singular child leaves the current link untouched.
                if not spec.many and not result.ids:
                    continue
            payload[key] = result.value
        elif key in kind.components:
            known_id = known_component_id(existing, key, value) if updating else None
            payload[key] = clean_component(value, known_id)
        elif key in kind.repeatable_components:
            payload[key] = clean_repeatable(value, (existing or {}).get(key), updating)
        elif key in kind.media_fields:
            payload[key] = media_id(value)
        else:
            payload[key] = value

    if fatal:
        logger.warning("%s for user %d not saved, child failures: %s", kind.label, session.user_id, fatal)
        raise ChildRecordError(fatal)
    if failures:
        logger.warning(
            "%s for user %d saved without failed children: %s", kind.label, session.user_id, failures
        )

    payload["user"] = session.user_id
    return payload, resolved, failures


def _write_profile(
    client: StrapiClient,
    session: SessionUser,
    kind: ProfileKind,
    data: dict,
    existing: dict | None,
) -> UpsertResult:
    payload, resolved, failed = _compose_payload(client, session, kind, data, existing)

    if existing is not None:
        record_id = record_ref(existing)

        def refresh() -> RecordRef | None:
            current = find_user_profile(
                client,
                kind,
                session.user_id,
                client.token_for(CredentialTier.SERVICE, session.jwt),
                populate={"user": {"fields": ["id"]}},
                strict=False,
            )
            return record_ref(current)

        method = "PUT"
        outcome = run_write(
            client,
            method,
            kind.collection,
            payload,
            user_jwt=session.jwt,
            policy=PROFILE_UPDATE_POLICY,
            record_id=record_id,
            refresh=refresh,
            label=kind.collection,
        )
    else:
        record_id = None
        method = "POST"
        outcome = run_write(
            client,
            method,
            kind.collection,
            payload,
            user_jwt=session.jwt,
            policy=CREATE_POLICY,
            label=kind.collection,
        )

    raise_for_outcome(
        outcome,
        collection=kind.collection,
        method=method,
        user_id=session.user_id,
        default_message=f"Failed to save {kind.label.lower()}",
    )

    written = outcome.envelope.first
    echoed = record_ref(written)
    if record_id is not None and echoed is not None and str(echoed) != str(outcome.record_id):
        logger.warning(
            "%s write for user %d echoed id %s, canonical id is %s",
            kind.collection, session.user_id, echoed, outcome.record_id,
        )

    try:
        profile = find_user_profile(
            client,
            kind,
            session.user_id,
            client.token_for(CredentialTier.USER, session.jwt),
            populate=kind.populate,
            strict=False,
        )
    except UpstreamError as exc:
        logger.warning("Re-fetching %s for user %d failed: %s", kind.collection, session.user_id, exc.message)
        profile = None

    logger.info(
        "%s %s for user %d", kind.label, "updated" if existing is not None else "created", session.user_id
    )
    return UpsertResult(
        data=profile or written,
        created=existing is None,
        resolved=resolved,
        failed=failed,
        attempts=outcome.attempts,
    )


def upsert_profile(
    client: StrapiClient, session: SessionUser | None, kind: ProfileKind, data: dict
) -> UpsertResult:
    """Create the caller's profile, or update it when one already exists."""
    session = _authorize_owner(session, kind)
    if not isinstance(data, dict):
        raise BadRequest("Invalid request body")

    existing = find_user_profile(
        client, kind, session.user_id, client.token_for(CredentialTier.USER, session.jwt)
    )
    if existing is None:
        missing = [field for field in kind.required_on_create if not data.get(field)]
        if missing:
            raise BadRequest(f"{', '.join(missing)} is required")
    return _write_profile(client, session, kind, data, existing)


def update_profile(
    client: StrapiClient, session: SessionUser | None, kind: ProfileKind, data: dict
) -> UpsertResult:
    """Update the caller's profile; the payload must name it by id or documentId."""
    session = _authorize_owner(session, kind)
    if not isinstance(data, dict):
        raise BadRequest("Invalid request body")

    identifier = data.get("id") or data.get("documentId")
    if not identifier:
        raise BadRequest("Missing profile identifier")

    existing = find_user_profile(
        client, kind, session.user_id, client.token_for(CredentialTier.USER, session.jwt)
    )
    if existing is None:
        raise NotFound(f"{kind.label} not found")
    if str(identifier) not in {str(existing.get("id")), str(existing.get("documentId"))}:
        logger.warning(
            "User %d tried to update %s %s, owns %s",
            session.user_id, kind.collection, identifier, record_ref(existing),
        )
        raise Forbidden("Access denied. You can only update your own profile.")
    return _write_profile(client, session, kind, data, existing)


# ── Reads ─────────────────────────────────────────────────────────────


def get_profiles(
    client: StrapiClient,
    session: SessionUser | None,
    kind: ProfileKind,
    *,
    profile_id: str | None = None,
    document_id: str | None = None,
    my_profile: bool = False,
    populate: list[tuple[str, str]] | None = None,
) -> dict:
    """Read profiles of ``kind`` as allowed by the caller's role."""
    if session is None:
        raise Unauthorized()
    token = client.token_for(CredentialTier.USER, session.jwt)

    if kind.self_only or my_profile:
        if not session.has_role(*kind.owner_roles):
            raise Forbidden(f"Only {' or '.join(kind.owner_roles)} users have a {kind.label.lower()}")
        if kind.self_only:
            lookup_populate: Populate = populate or [("populate", "*")]
        else:
            lookup_populate = kind.populate
        profile = find_user_profile(client, kind, session.user_id, token, populate=lookup_populate, strict=False)
        return {"data": profile, "meta": {}}

    if kind.viewer_roles is not None and not session.has_role(*kind.viewer_roles):
        raise Forbidden(f"You are not allowed to view {kind.label.lower()}s")

    params = {"populate": kind.populate}
    if profile_id:
        envelope = client.get(record_path(kind.collection, profile_id), params=params, token=token)
        if envelope.status_code == 404:
            raise NotFound(f"{kind.label} not found")
        return expect_ok(envelope, f"Failed to load {kind.label.lower()}").payload()

    if document_id:
        envelope = client.get(
            kind.collection,
            params={**params, "filters": {"documentId": {"$eq": document_id}}},
            token=token,
        )
        expect_ok(envelope, f"Failed to load {kind.label.lower()}")
        if envelope.first is None:
            raise NotFound(f"{kind.label} not found")
        return {"data": envelope.first, "meta": envelope.meta}

    envelope = client.get(kind.collection, params=params, token=token)
    return expect_ok(envelope, f"Failed to load {kind.label.lower()}s").payload()
