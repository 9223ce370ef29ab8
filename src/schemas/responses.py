"""Error envelope schemas shared by every router."""

from pydantic import BaseModel, Field


class ErrorDetail(BaseModel):
    """A field-level or contextual error detail (e.g. the failing order id)."""

    model_config = {"extra": "allow"}

    field: str | None = None
    message: str | None = None


class ErrorBody(BaseModel):
    code: str
    message: str
    details: list[ErrorDetail] = []
    request_id: str = Field(alias="requestId")

    model_config = {"populate_by_name": True}


class ErrorResponse(BaseModel):
    """Top-level error envelope."""

    error: ErrorBody


ERROR_RESPONSES = {
    401: {"model": ErrorResponse, "description": "Webhook secret missing or wrong"},
    404: {"model": ErrorResponse, "description": "Order or portal not found"},
    409: {"model": ErrorResponse, "description": "TMS id conflict or concurrent update"},
    422: {"model": ErrorResponse, "description": "Malformed request or TMS snapshot"},
    502: {"model": ErrorResponse, "description": "TMS unavailable"},
}
