from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator


class User(BaseModel):
    id: str | None = None
    name: str
    email: str

    def to_wire(self) -> dict[str, Any]:
        """JSON body for this user; `id` is left out until the store assigns one."""

        body: dict[str, Any] = {}
        if self.id:
            body["id"] = self.id
        body["name"] = self.name
        body["email"] = self.email
        return body


class UserPayload(BaseModel):
    """Request body for create/update. Missing fields decode to empty strings."""

    model_config = ConfigDict(extra="ignore", strict=True)

    name: str = ""
    email: str = ""

    @field_validator("name", "email", mode="before")
    @classmethod
    def _null_as_empty(cls, value: Any) -> Any:
        # JSON null leaves the field at its zero value, same as omitting it.
        return "" if value is None else value


class MessageResponse(BaseModel):
    message: str


class ErrorResponse(BaseModel):
    error: str
