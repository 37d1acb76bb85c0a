"""Job request schemas."""

from typing import Any

from pydantic import BaseModel


class JobWriteRequest(BaseModel):
    data: dict[str, Any]
