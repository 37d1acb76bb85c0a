"""Strapi REST client.

Thin adapter over httpx: encodes bracket-style query parameters, picks the
bearer credential for a call and normalizes every response into a
``StrapiEnvelope`` so callers never inspect the raw ``data`` shape.
"""

import logging
import re
from enum import Enum
from typing import Any

import httpx
from pydantic import BaseModel, Field

from ..config import settings
from ..errors import BadRequest, UpstreamError, UpstreamUnavailable

logger = logging.getLogger(__name__)

QueryParams = dict[str, Any] | list[tuple[str, str]]

# Numeric ids and documentIds are the only values allowed in a record path.
RECORD_ID_RE = re.compile(r"[A-Za-z0-9]+")


class CredentialTier(str, Enum):
    """Which bearer token a call is made with."""

    USER = "user"
    SERVICE = "service"


# ── Response envelope ─────────────────────────────────────────────────


class StrapiEnvelope(BaseModel):
    """A CMS response with ``data`` normalized to a list of records."""

    status_code: int
    items: list[dict] = Field(default_factory=list)
    is_collection: bool = False
    meta: dict = Field(default_factory=dict)
    body: dict = Field(default_factory=dict)
    error_message: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def first(self) -> dict | None:
        return self.items[0] if self.items else None

    def payload(self) -> dict:
        """Client-facing JSON mirroring the upstream shape."""
        data: list[dict] | dict | None = self.items if self.is_collection else self.first
        return {"data": data, "meta": self.meta}


def _unwrap_data(data: Any) -> Any:
    # Some plugins nest the envelope once more: {"data": {"data": ..., "meta": ...}}
    if isinstance(data, dict) and "data" in data and set(data) <= {"data", "meta"}:
        return data["data"]
    return data


def _error_message(body: dict) -> str:
    error = body.get("error")
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    if isinstance(error, str) and error:
        return error
    message = body.get("message")
    if isinstance(message, str):
        return message
    return ""


def normalize_response(response: httpx.Response) -> StrapiEnvelope:
    """Build a ``StrapiEnvelope`` from any CMS response, JSON or not."""
    try:
        body = response.json()
    except ValueError:
        body = {"error": response.text} if response.text else {}
    if not isinstance(body, dict):
        body = {"data": body}

    data = _unwrap_data(body.get("data"))
    if isinstance(data, list):
        items = [item for item in data if isinstance(item, dict)]
        is_collection = True
    elif isinstance(data, dict):
        items = [data]
        is_collection = False
    else:
        items = []
        is_collection = False

    meta = body.get("meta") if isinstance(body.get("meta"), dict) else {}
    return StrapiEnvelope(
        status_code=response.status_code,
        items=items,
        is_collection=is_collection,
        meta=meta,
        body=body,
        error_message="" if response.is_success else _error_message(body),
    )


# ── Query encoding ────────────────────────────────────────────────────


def encode_query(params: QueryParams | None) -> list[tuple[str, str]]:
    """Flatten nested dicts/lists into ``filters[user][id][$eq]=42`` pairs."""
    if not params:
        return []
    if isinstance(params, list):
        return list(params)

    pairs: list[tuple[str, str]] = []

    def _append(key: str, value: Any) -> None:
        if value is None:
            return
        if isinstance(value, dict):
            for child_key, child_value in value.items():
                _append(f"{key}[{child_key}]", child_value)
        elif isinstance(value, (list, tuple)):
            for index, item in enumerate(value):
                _append(f"{key}[{index}]", item)
        elif isinstance(value, bool):
            pairs.append((key, "true" if value else "false"))
        else:
            pairs.append((key, str(value)))

    for key, value in params.items():
        _append(key, value)
    return pairs


def user_filter(user_id: int) -> dict:
    return {"user": {"id": {"$eq": user_id}}}


def is_record_id(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        return False
    return RECORD_ID_RE.fullmatch(str(value)) is not None


def record_path(collection: str, record_id: Any) -> str:
    """``collection/record_id``, refusing identifiers that are not an id or documentId."""
    if not is_record_id(record_id):
        logger.warning("Rejected %s identifier %r", collection, record_id)
        raise BadRequest("Invalid identifier")
    return f"{collection}/{record_id}"


# ── Client ────────────────────────────────────────────────────────────


class StrapiClient:
    """Synchronous CMS client; one instance per application."""

    def __init__(
        self,
        base_url: str,
        api_token: str = "",
        timeout: float = 15.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_token = api_token
        self._http = httpx.Client(
            base_url=self.base_url or "http://cms.invalid",
            timeout=timeout,
            transport=transport,
        )

    @property
    def configured(self) -> bool:
        return bool(self.base_url)

    def token_for(self, tier: CredentialTier, user_jwt: str = "") -> str:
        """User tier prefers the session jwt, service tier the API token."""
        if tier is CredentialTier.USER:
            return user_jwt or self.api_token
        return self.api_token or user_jwt

    def request(
        self,
        method: str,
        path: str,
        *,
        params: QueryParams | None = None,
        data: dict | None = None,
        body: dict | None = None,
        token: str = "",
    ) -> StrapiEnvelope:
        """Send one call under ``/api``. Writes wrap ``data`` in the envelope."""
        url = "/api/" + path.lstrip("/")
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        json_body = {"data": data} if data is not None else body

        try:
            response = self._http.request(
                method,
                url,
                params=encode_query(params),
                json=json_body,
                headers=headers,
            )
        except httpx.HTTPError as exc:
            logger.error("CMS %s %s failed: %s", method, url, exc)
            raise UpstreamUnavailable(f"CMS request failed: {exc}") from exc

        envelope = normalize_response(response)
        if envelope.ok:
            logger.debug("CMS %s %s -> %d", method, url, envelope.status_code)
        else:
            logger.warning(
                "CMS %s %s -> %d: %s", method, url, envelope.status_code, envelope.error_message or "no message"
            )
        return envelope

    def get(self, path: str, *, params: QueryParams | None = None, token: str = "") -> StrapiEnvelope:
        return self.request("GET", path, params=params, token=token)

    def post(self, path: str, data: dict, *, token: str = "") -> StrapiEnvelope:
        return self.request("POST", path, data=data, token=token)

    def put(self, path: str, data: dict, *, token: str = "") -> StrapiEnvelope:
        return self.request("PUT", path, data=data, token=token)

    def ping(self) -> bool:
        """True when the CMS health endpoint answers without a server error."""
        if not self.configured:
            return False
        try:
            response = self._http.get("/_health")
        except httpx.HTTPError:
            return False
        return response.status_code < 500

    def close(self) -> None:
        self._http.close()


def expect_ok(envelope: StrapiEnvelope, default_message: str) -> StrapiEnvelope:
    """Raise ``UpstreamError`` with the CMS message unless the call succeeded."""
    if not envelope.ok:
        raise UpstreamError(
            envelope.error_message or default_message,
            status_code=envelope.status_code,
            details={"upstream": envelope.body.get("error")} if envelope.body.get("error") else None,
        )
    return envelope


def create_strapi_client() -> StrapiClient:
    """Factory: build the client from application settings."""
    if not settings.strapi_base_url:
        logger.warning("STRAPI_URL is not set; CMS-backed endpoints will answer 500")
    return StrapiClient(
        settings.strapi_base_url,
        api_token=settings.strapi_api_token,
        timeout=settings.strapi_timeout,
    )
