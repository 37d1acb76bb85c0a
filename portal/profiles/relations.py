"""Reconciliation of relation fields into child records.

Each submitted relation value is reduced to a reference: bare ids are kept,
dicts carrying an id update the child, dicts without one are matched by
natural key or created. Failures are collected per child so the caller can
report every problem at once.
"""

import logging
from typing import Any

from pydantic import BaseModel, Field

from ..errors import UpstreamError, UpstreamUnavailable
from ..integrations.strapi import CredentialTier, StrapiClient
from ..integrations.write_policy import CREATE_POLICY, RECORD_UPDATE_POLICY, run_write
from .components import clean_relation_fields, media_id
from .models import RelationSpec

logger = logging.getLogger(__name__)

CHILD_SYSTEM_FIELDS = ("id", "documentId", "createdAt", "updatedAt", "publishedAt", "locale")

RecordRef = int | str


class RelationResult(BaseModel):
    value: Any = None
    ids: list[RecordRef] = Field(default_factory=list)
    failures: list[str] = Field(default_factory=list)


def record_ref(record: dict | None) -> RecordRef | None:
    """Numeric id when present, documentId otherwise."""
    if not record:
        return None
    if record.get("id") is not None:
        return record["id"]
    return record.get("documentId")


def _bare_ref(value: Any) -> RecordRef | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip():
        text = value.strip()
        return int(text) if text.isdigit() else text
    return None


def _child_payload(spec: RelationSpec, item: dict) -> dict:
    payload = {key: value for key, value in item.items() if key not in CHILD_SYSTEM_FIELDS}
    if spec.clean_locations:
        payload = clean_relation_fields(payload)
    for field in spec.media_fields:
        if field in payload:
            payload[field] = media_id(payload[field])
    return payload


def _find_by_natural_key(client: StrapiClient, spec: RelationSpec, item: dict) -> dict | None:
    filters = {key: {"$eq": item.get(key)} for key in spec.natural_key}
    envelope = client.get(
        spec.collection,
        params={"filters": filters, "pagination": {"pageSize": 25}},
        token=client.token_for(CredentialTier.SERVICE),
    )
    if not envelope.ok:
        logger.warning("%s lookup failed with %d, creating a new record", spec.noun, envelope.status_code)
        return None
    # Upstream $eq may be case-insensitive; the key match must not be.
    for record in envelope.items:
        if all(record.get(key) == item.get(key) for key in spec.natural_key):
            return record
    return None


def _reconcile_item(
    client: StrapiClient, spec: RelationSpec, item: dict, label: str, user_jwt: str
) -> RecordRef | None:
    existing_ref = _bare_ref(item.get("id")) or _bare_ref(item.get("documentId"))

    if existing_ref is not None and (spec.reference_only or spec.natural_key):
        return existing_ref
    if spec.reference_only:
        logger.warning("%s reference without an id: %s", spec.noun, label)
        return None

    if existing_ref is not None:
        outcome = run_write(
            client,
            "PUT",
            spec.collection,
            _child_payload(spec, item),
            user_jwt=user_jwt,
            policy=RECORD_UPDATE_POLICY,
            record_id=existing_ref,
            label=label,
        )
        return existing_ref if outcome.ok else None

    if any(not item.get(key) for key in spec.required_fields):
        logger.warning("%s is missing required fields %s", label, spec.required_fields)
        return None

    if spec.natural_key:
        match = _find_by_natural_key(client, spec, item)
        if match is not None:
            logger.info("Reusing %s %s for %s", spec.noun, record_ref(match), label)
            return record_ref(match)

    outcome = run_write(
        client,
        "POST",
        spec.collection,
        _child_payload(spec, item),
        user_jwt=user_jwt,
        policy=CREATE_POLICY,
        label=label,
    )
    if not outcome.ok:
        return None
    return record_ref(outcome.envelope.first)


def _reference(spec: RelationSpec, ref: RecordRef) -> dict | RecordRef:
    if not spec.wrap:
        return ref
    return {"id": ref} if isinstance(ref, int) else {"documentId": ref}


def reconcile_relation(
    client: StrapiClient, spec: RelationSpec, raw: Any, *, user_jwt: str = ""
) -> RelationResult:
    """Resolve one relation field of a profile payload to child references."""
    if raw is None and not spec.many:
        return RelationResult(value={"set": []} if spec.wrap else None)

    items = raw if isinstance(raw, list) else ([] if raw is None else [raw])
    result = RelationResult()

    for index, item in enumerate(items):
        bare = _bare_ref(item)
        if bare is not None:
            ref = bare
        elif isinstance(item, dict):
            label = spec.child_label(item, index) if (spec.many or spec.label_fields) else spec.field
            try:
                ref = _reconcile_item(client, spec, item, label, user_jwt)
            except (UpstreamError, UpstreamUnavailable) as exc:
                logger.error("Saving %s failed: %s", label, exc.message)
                ref = None
            if ref is None:
                result.failures.append(label)
                # A child that failed to update still exists; keep it linked.
                ref = _bare_ref(item.get("id")) or _bare_ref(item.get("documentId"))
                if ref is None:
                    continue
        else:
            logger.warning("Ignoring unsupported %s value at index %d", spec.field, index)
            continue

        if ref not in result.ids:
            result.ids.append(ref)

    references = [_reference(spec, ref) for ref in result.ids]
    if spec.many:
        result.value = {"set": references} if spec.wrap else references
    elif spec.wrap:
        result.value = {"set": references[:1]}
    else:
        result.value = references[0] if references else None
    return result
