"""Ordered fallback policy for CMS writes.

Each write walks a table of ``WriteStep`` rows (credential tier x target
identifier). A row is taken only when the previous attempt was rejected with
one of its ``retry_on`` statuses. Every attempt is logged and kept on the
returned ``WriteOutcome`` so failures can be reported with their history.
"""

import logging
from collections.abc import Callable
from enum import Enum
from typing import NamedTuple

from pydantic import BaseModel, Field

from ..errors import UpstreamError, UpstreamPermissionError
from .strapi import CredentialTier, StrapiClient, StrapiEnvelope, record_path

logger = logging.getLogger(__name__)

RETRYABLE = frozenset({403, 404})


class Target(str, Enum):
    RESOLVED = "resolved"
    REFRESHED = "refreshed"


class WriteStep(NamedTuple):
    tier: CredentialTier
    target: Target
    retry_on: frozenset[int] | None = None


# First row always runs; later rows only after a matching rejection.
PROFILE_UPDATE_POLICY = (
    WriteStep(CredentialTier.USER, Target.RESOLVED),
    WriteStep(CredentialTier.SERVICE, Target.RESOLVED, RETRYABLE),
    WriteStep(CredentialTier.SERVICE, Target.REFRESHED, RETRYABLE),
)

RECORD_UPDATE_POLICY = (
    WriteStep(CredentialTier.USER, Target.RESOLVED),
    WriteStep(CredentialTier.SERVICE, Target.RESOLVED, RETRYABLE),
)

CREATE_POLICY = (
    WriteStep(CredentialTier.USER, Target.RESOLVED),
    WriteStep(CredentialTier.SERVICE, Target.RESOLVED, frozenset({403})),
)


class WriteAttempt(BaseModel):
    step: int
    tier: str
    method: str
    path: str
    status: int | None = None
    outcome: str


class WriteOutcome(BaseModel):
    envelope: StrapiEnvelope | None = None
    record_id: int | str | None = None
    attempts: list[WriteAttempt] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.envelope is not None and self.envelope.ok

    @property
    def status_code(self) -> int:
        return self.envelope.status_code if self.envelope is not None else 500


def run_write(
    client: StrapiClient,
    method: str,
    collection: str,
    data: dict,
    *,
    user_jwt: str = "",
    policy: tuple[WriteStep, ...] = CREATE_POLICY,
    record_id: int | str | None = None,
    refresh: Callable[[], int | str | None] | None = None,
    label: str = "",
) -> WriteOutcome:
    """Execute ``policy`` against ``collection`` until one attempt succeeds.

    ``record_id`` addresses an existing record (PUT); ``None`` targets the
    collection itself (POST). ``refresh`` re-resolves the canonical id for
    ``Target.REFRESHED`` rows.
    """
    outcome = WriteOutcome(record_id=record_id)
    tried: set[tuple[str, str]] = set()
    label = label or collection

    for index, step in enumerate(policy, 1):
        last = outcome.envelope
        if last is not None and (step.retry_on is None or last.status_code not in step.retry_on):
            break

        target_id = outcome.record_id
        if step.target is Target.REFRESHED:
            if refresh is None:
                continue
            target_id = refresh()
            if target_id is None:
                logger.warning("write %s step=%d: re-resolve found no record", label, index)
                break

        path = collection if target_id is None else record_path(collection, target_id)
        token = client.token_for(step.tier, user_jwt)
        if (token, path) in tried:
            outcome.attempts.append(
                WriteAttempt(step=index, tier=step.tier.value, method=method, path=path, outcome="skipped")
            )
            logger.info(
                "write %s step=%d tier=%s %s %s outcome=skipped", label, index, step.tier.value, method, path
            )
            continue
        tried.add((token, path))

        envelope = client.request(method, path, data=data, token=token)
        result = "ok" if envelope.ok else "rejected"
        outcome.attempts.append(
            WriteAttempt(
                step=index,
                tier=step.tier.value,
                method=method,
                path=path,
                status=envelope.status_code,
                outcome=result,
            )
        )
        logger.info(
            "write %s step=%d tier=%s %s %s status=%d outcome=%s",
            label, index, step.tier.value, method, path, envelope.status_code, result,
        )
        outcome.envelope = envelope
        outcome.record_id = target_id
        if envelope.ok:
            break

    return outcome


def permission_diagnostic(collection: str, method: str, status: int, record_id: int | str | None, user_id: int) -> str:
    """Operator-facing explanation for a write the CMS keeps rejecting."""
    action = "update" if method == "PUT" else "create"
    found = (
        "The record is visible through the user filter but every direct write by id was rejected. "
        if record_id is not None
        else ""
    )
    return (
        f"Cannot {action} {collection}: the CMS answered {status} to every attempt "
        f"(user credential, service credential{', refreshed id' if record_id is not None else ''}). "
        f"{found}"
        "This points to a CMS permission configuration issue. Check:\n"
        f"1. API token permissions: the token in STRAPI_API_TOKEN needs '{action}' on '{collection}', "
        "not only 'find'/'findOne'.\n"
        f"2. Users & Permissions > Roles > Authenticated: '{collection}' must allow '{action}'.\n"
        "3. Record lookup: a record readable by filter but answering 404 by id usually means the "
        "id is not exposed to this role or the draft/publish state hides it.\n"
        f"Record id: {record_id if record_id is not None else 'n/a'}, user id: {user_id}."
    )


def raise_for_outcome(outcome: WriteOutcome, *, collection: str, method: str, user_id: int, default_message: str) -> None:
    """Turn a failed ``WriteOutcome`` into the matching portal error."""
    if outcome.ok:
        return
    envelope = outcome.envelope
    details: dict = {"attempts": [attempt.model_dump() for attempt in outcome.attempts]}
    if envelope is not None and envelope.body.get("error"):
        details["upstream"] = envelope.body["error"]

    status = outcome.status_code
    if status in RETRYABLE:
        raise UpstreamPermissionError(
            permission_diagnostic(collection, method, status, outcome.record_id, user_id),
            status_code=status,
            details=details,
        )
    message = envelope.error_message if envelope is not None else ""
    raise UpstreamError(message or default_message, status_code=status, details=details)
