"""Authentication request/response schemas."""

from pydantic import BaseModel, Field


class LoginRequest(BaseModel):
    identifier: str = Field("", max_length=255)
    password: str = Field("", max_length=255)


class SessionUser(BaseModel):
    """What the signed session cookie remembers about the caller."""

    user_id: int
    email: str = ""
    first_name: str = ""
    user_type: str = ""
    jwt: str = ""

    def public(self) -> dict:
        return self.model_dump(exclude={"jwt"})

    def has_role(self, *roles: str) -> bool:
        return self.user_type in roles
