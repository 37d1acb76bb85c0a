"""Shared test fixtures.

The CMS is replaced by ``FakeStrapi``: an in-memory store speaking enough of
the Strapi REST dialect (data envelope, bracket filters, numeric id and
documentId) for the services under test, served through ``httpx.MockTransport``.
"""

import copy
import json
import re
from typing import NamedTuple

import httpx
import pytest

from portal.auth.schemas import SessionUser
from portal.integrations.cache import NullCacheService
from portal.integrations.strapi import StrapiClient

_BRACKETS = re.compile(r"\[([^\]]*)\]")

USER_JWT = "user-jwt"
SERVICE_TOKEN = "service-token"


class Call(NamedTuple):
    method: str
    path: str
    token: str
    params: list[tuple[str, str]]
    json: dict | None


class Denial(NamedTuple):
    method: str
    path: str
    token: str | None
    status: int


def _as_query_text(value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _field_value(record: dict, path: list[str]):
    value = record
    for part in path:
        if isinstance(value, dict):
            value = value.get(part)
        elif isinstance(value, int) and part == "id":
            continue
        else:
            return None
    return value


class FakeStrapi:
    def __init__(self) -> None:
        self.collections: dict[str, list[dict]] = {}
        self.calls: list[Call] = []
        self.denials: list[Denial] = []
        # Collections whose list reads ignore filters, like a broken permission layer.
        self.unfiltered: set[str] = set()
        self.users: dict[str, tuple[str, dict]] = {}
        self.healthy = True
        self._next_id = 1
        self._next_component_id = 1000

    # ── Test helpers ──────────────────────────────────────────────────

    def seed(self, collection: str, **fields) -> dict:
        record = {"id": self._new_id(), **fields}
        record.setdefault("documentId", f"doc{record['id']}")
        self.collections.setdefault(collection, []).append(record)
        return record

    def records(self, collection: str) -> list[dict]:
        return self.collections.get(collection, [])

    def deny(self, method: str, path: str, token: str | None = None, status: int = 403) -> None:
        """Reject ``method`` on ``path`` (and its sub-paths) for ``token`` (any when None)."""
        self.denials.append(Denial(method, path, token, status))

    def add_user(self, identifier: str, password: str, **user) -> dict:
        user.setdefault("confirmed", True)
        user.setdefault("blocked", False)
        self.users[identifier] = (password, user)
        return user

    def writes(self, method: str | None = None, collection: str | None = None) -> list[Call]:
        return [
            call
            for call in self.calls
            if call.method in ("POST", "PUT")
            and (method is None or call.method == method)
            and (collection is None or call.path.split("/")[0] == collection)
        ]

    def calls_to(self, method: str, collection: str) -> list[Call]:
        return [c for c in self.calls if c.method == method and c.path.split("/")[0] == collection]

    # ── Transport ─────────────────────────────────────────────────────

    def handler(self, request: httpx.Request) -> httpx.Response:
        auth = request.headers.get("Authorization", "")
        token = auth.removeprefix("Bearer ").strip()
        params = list(request.url.params.multi_items())
        body = json.loads(request.content) if request.content else None

        if request.url.path == "/_health":
            return httpx.Response(204 if self.healthy else 503)

        path = request.url.path.removeprefix("/api/")
        self.calls.append(Call(request.method, path, token, params, body))

        for denial in self.denials:
            if (
                denial.method == request.method
                and (path == denial.path or path.startswith(denial.path + "/"))
                and (denial.token is None or denial.token == token)
            ):
                return _error(denial.status, "Forbidden" if denial.status == 403 else "Not Found")

        if path == "auth/local":
            return self._login(body or {})
        if path == "users/me":
            return self._me(token)

        collection, _, record_id = path.partition("/")
        if request.method == "GET":
            if record_id:
                record = self._find(collection, record_id)
                if record is None:
                    return _error(404, "Not Found")
                return httpx.Response(200, json={"data": _serialize(record), "meta": {}})
            return self._list(collection, params)
        if request.method == "POST":
            return self._create(collection, (body or {}).get("data") or {})
        if request.method == "PUT":
            return self._update(collection, record_id, (body or {}).get("data") or {})
        return _error(405, "Method Not Allowed")

    # ── Internals ─────────────────────────────────────────────────────

    def _new_id(self) -> int:
        value = self._next_id
        self._next_id += 1
        return value

    def _find(self, collection: str, record_id: str) -> dict | None:
        for record in self.records(collection):
            if str(record["id"]) == record_id or record.get("documentId") == record_id:
                return record
        return None

    def _list(self, collection: str, params: list[tuple[str, str]]) -> httpx.Response:
        filters = []
        for key, value in params:
            if not key.startswith("filters"):
                continue
            parts = _BRACKETS.findall(key)
            filters.append((parts[:-1], parts[-1], value))

        matches = []
        for record in self.records(collection):
            if collection not in self.unfiltered and not all(
                _matches(record, path, op, value) for path, op, value in filters
            ):
                continue
            matches.append(_serialize(record))
        meta = {"pagination": {"page": 1, "pageSize": 25, "pageCount": 1, "total": len(matches)}}
        return httpx.Response(200, json={"data": matches, "meta": meta})

    def _assign_component_ids(self, data: dict) -> None:
        for key, value in data.items():
            if isinstance(value, dict) and not ({"set", "connect", "disconnect"} & set(value)):
                if "id" not in value:
                    value["id"] = self._next_component_id
                    self._next_component_id += 1
            elif isinstance(value, list):
                for entry in value:
                    if isinstance(entry, dict) and "id" not in entry and "set" not in entry:
                        entry["id"] = self._next_component_id
                        self._next_component_id += 1

    def _create(self, collection: str, data: dict) -> httpx.Response:
        data = copy.deepcopy(data)
        self._assign_component_ids(data)
        record = self.seed(collection, **data)
        return httpx.Response(201, json={"data": _serialize(record), "meta": {}})

    def _update(self, collection: str, record_id: str, data: dict) -> httpx.Response:
        record = self._find(collection, record_id)
        if record is None:
            return _error(404, "Not Found")
        data = copy.deepcopy(data)
        self._assign_component_ids(data)
        record.update(data)
        return httpx.Response(200, json={"data": _serialize(record), "meta": {}})

    def _login(self, body: dict) -> httpx.Response:
        entry = self.users.get(body.get("identifier", ""))
        if entry is None or entry[0] != body.get("password"):
            return _error(400, "Invalid identifier or password")
        user = entry[1]
        return httpx.Response(200, json={"jwt": f"jwt-{user['id']}", "user": user})

    def _me(self, token: str) -> httpx.Response:
        for _, user in self.users.values():
            if token == f"jwt-{user['id']}":
                return httpx.Response(200, json=user)
        return _error(401, "Missing or invalid credentials")


def _matches(record: dict, path: list[str], op: str, expected: str) -> bool:
    actual = _field_value(record, path)
    if op == "$eq":
        return actual is not None and _as_query_text(actual) == expected
    if op == "$ne":
        return actual is None or _as_query_text(actual) != expected
    if op == "$null":
        return (actual is None) == (expected == "true")
    raise AssertionError(f"FakeStrapi does not support filter operator {op}")


def _serialize(record: dict) -> dict:
    out = copy.deepcopy(record)
    if isinstance(out.get("user"), int):
        out["user"] = {"id": out["user"]}
    return out


def _error(status: int, message: str) -> httpx.Response:
    return httpx.Response(status, json={"data": None, "error": {"status": status, "message": message}})


# ── Fixtures ──────────────────────────────────────────────────────────


@pytest.fixture
def fake_strapi():
    return FakeStrapi()


@pytest.fixture
def strapi_client(fake_strapi):
    client = StrapiClient(
        "http://cms.test",
        api_token=SERVICE_TOKEN,
        transport=httpx.MockTransport(fake_strapi.handler),
    )
    yield client
    client.close()


@pytest.fixture
def candidate_session():
    return SessionUser(user_id=42, email="jane@example.com", first_name="Jane", user_type="candidate", jwt=USER_JWT)


@pytest.fixture
def student_session():
    return SessionUser(user_id=7, email="abebe@example.com", first_name="Abebe", user_type="student", jwt=USER_JWT)


@pytest.fixture
def employer_session():
    return SessionUser(user_id=55, email="hr@acme.example", first_name="Hana", user_type="employer", jwt=USER_JWT)


@pytest.fixture
def null_cache():
    """No-op cache for testing."""
    return NullCacheService()


class DictCache:
    """In-process stand-in for Redis, recording what was stored."""

    def __init__(self) -> None:
        self.store: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self.store.get(key)

    def set(self, key: str, value: str, ttl: int) -> None:
        self.store[key] = value

    def get_json(self, key: str) -> dict | None:
        raw = self.get(key)
        return json.loads(raw) if raw is not None else None

    def set_json(self, key: str, data: dict, ttl: int) -> None:
        self.set(key, json.dumps(data), ttl)


@pytest.fixture
def dict_cache():
    return DictCache()
