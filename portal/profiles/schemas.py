"""Profile request schemas."""

from typing import Any

from pydantic import BaseModel


class ProfileWriteRequest(BaseModel):
    """Form submission: the profile fields live under ``data`` like the CMS envelope."""

    data: dict[str, Any]
