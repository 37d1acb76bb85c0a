"""Cleaning of embedded components, location references and media fields."""

from typing import Any

LOCATION_FIELDS = ("country", "region", "zone", "woreda")


def _positive_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, str) and value.strip().isdigit():
        number = int(value.strip())
        return number if number > 0 else None
    return None


def coerce_location_id(value: Any) -> int | None:
    """Reduce any accepted location reference shape to a bare positive int.

    Accepts ``7``, ``"7"``, ``{"id": 7}`` and ``{"set": [7]}`` / ``{"connect": [{"id": 7}]}``.
    """
    number = _positive_int(value)
    if number is not None:
        return number
    if isinstance(value, dict):
        if "id" in value:
            return _positive_int(value["id"])
        for key in ("set", "connect"):
            refs = value.get(key)
            if isinstance(refs, list) and refs:
                return coerce_location_id(refs[0])
    if isinstance(value, list) and value:
        return coerce_location_id(value[0])
    return None


def clean_relation_fields(record: dict) -> dict:
    """Return a copy with location fields as bare ints, recursing into nested dicts.

    Unparseable references are dropped; an explicit ``None`` clears the field.
    """
    cleaned: dict = {}
    for key, value in record.items():
        if key in LOCATION_FIELDS:
            if value is None:
                cleaned[key] = None
                continue
            location_id = coerce_location_id(value)
            if location_id is not None:
                cleaned[key] = location_id
        elif isinstance(value, dict):
            cleaned[key] = clean_relation_fields(value)
        else:
            cleaned[key] = value
    return cleaned


def clean_component(value: Any, known_id: int | None = None) -> Any:
    """Strip identifiers from a component, re-adding ``known_id`` on update."""
    if not isinstance(value, dict):
        return value
    cleaned = clean_relation_fields(value)
    cleaned.pop("id", None)
    cleaned.pop("documentId", None)
    if known_id is not None:
        cleaned["id"] = known_id
    return cleaned


def known_component_id(existing: dict | None, field: str, submitted: Any) -> int | None:
    """The id to carry for a single component on update.

    The resolved profile's own component wins; the submitted id is used only
    when the lookup did not return the component.
    """
    current = (existing or {}).get(field)
    if isinstance(current, dict) and current.get("id") is not None:
        return _positive_int(current["id"])
    if isinstance(submitted, dict):
        return _positive_int(submitted.get("id"))
    return None


def clean_repeatable(values: Any, existing: list | None, updating: bool) -> Any:
    """Clean every entry of a repeatable component list.

    On update an entry keeps its id only if it belongs to the resolved
    profile (or the profile's entries were not returned by the lookup).
    """
    if not isinstance(values, list):
        return values
    owned: set[int] | None = None
    if isinstance(existing, list):
        owned = {entry["id"] for entry in existing if isinstance(entry, dict) and isinstance(entry.get("id"), int)}

    cleaned = []
    for entry in values:
        if not isinstance(entry, dict):
            continue
        entry_id = _positive_int(entry.get("id")) if updating else None
        if entry_id is not None and owned is not None and entry_id not in owned:
            entry_id = None
        cleaned.append(clean_component(entry, entry_id))
    return cleaned


def media_id(value: Any) -> Any:
    """Reduce an uploaded-file reference (or list of them) to ids."""
    if value is None:
        return None
    if isinstance(value, list):
        ids = [media_id(item) for item in value]
        return [item for item in ids if item is not None]
    if isinstance(value, dict):
        if "id" in value:
            return _positive_int(value["id"])
        data = value.get("data")
        if data is not None:
            return media_id(data)
        return None
    return _positive_int(value)
