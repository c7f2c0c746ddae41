"""
Pydantic models for stored records and request/response validation.
"""
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class Record(BaseModel):
    """Metadata stored for a paste, keyed by slug."""
    model_config = ConfigDict(frozen=True)

    slug: str = Field(..., description="Unique paste identifier")
    filename: str = Field(..., description="Display name of the paste")
    language: str = Field("text", description="Free-form language tag")
    storage_link: str = Field(..., description="Backend link to the stored content")
    created_at: str = Field(..., description="Creation timestamp (ISO 8601)")


class CreatePasteResponse(BaseModel):
    """Schema for paste creation response."""
    model_config = ConfigDict(populate_by_name=True)

    ok: bool = True
    slug: str = Field(..., description="Unique paste ID")
    url: str = Field(..., description="Shareable URL to view the paste")
    backend_url: str = Field(..., alias="backendUrl", description="Storage backend link")


class ErrorResponse(BaseModel):
    """Schema for a failed API call."""
    ok: bool = False
    error: str = Field(..., description="Human readable error message")


class HealthCheck(BaseModel):
    """Schema for health check response."""
    ok: bool = Field(..., description="Is the application healthy?")
    store: bool = Field(..., description="Is the record store reachable?")
    backend: Optional[str] = Field(None, description="Storage backend state")
