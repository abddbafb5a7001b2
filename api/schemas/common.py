"""Common Pydantic schemas shared across the API."""

from typing import Any, Optional
from pydantic import BaseModel, Field, field_validator


class PaginationParams(BaseModel):
    """Pagination query parameters."""

    page: int = Field(default=1, ge=1, description="Page number (1-indexed)")
    page_size: int = Field(default=20, ge=1, le=100, description="Items per page")

    @property
    def offset(self) -> int:
        """Calculate offset from page and page_size."""
        return (self.page - 1) * self.page_size


class ErrorBody(BaseModel):
    code: str = Field(description="Error code for programmatic handling")
    message: str = Field(description="Human readable message")
    details: Optional[Any] = Field(None, description="Field errors or extra context")
    path: str
    method: str
    request_id: Optional[str] = None


class ErrorResponse(BaseModel):
    """Error envelope returned for every failed request."""

    error: ErrorBody


class MessageResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None


class StrippedModel(BaseModel):
    """Strips surrounding whitespace from every string field."""

    @field_validator("*", mode="before")
    @classmethod
    def strip_strings(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip()
        return v


def to_service_data(model: BaseModel) -> dict:
    """Fields the client actually sent, as plain JSON-compatible values."""
    return model.model_dump(mode="json", exclude_unset=True)
