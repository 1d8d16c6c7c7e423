"""Shared schema base and the error envelope."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class BaseSchema(BaseModel):
    """Base for every request and response body."""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


class ErrorDetail(BaseSchema):
    code: str
    message: str
    details: dict[str, Any] = Field(default_factory=dict)


class ErrorResponse(BaseSchema):
    """Body of every non-2xx response."""

    success: bool = False
    error: ErrorDetail

    @classmethod
    def build(cls, code: str, message: str, details: dict[str, Any] | None = None) -> dict:
        return cls(error=ErrorDetail(code=code, message=message, details=details or {})).model_dump()


# OpenAPI documentation of the envelope, attached to the API routers
ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    status: {"model": ErrorResponse, "description": description}
    for status, description in (
        (400, "Unreadable upload"),
        (404, "Referenced record does not exist"),
        (409, "Write conflicts with stored results"),
        (422, "Rejected input"),
    )
}


class MessageResponse(BaseSchema):
    """Plain acknowledgement."""

    message: str
