"""Pydantic schemas for the HTTP API."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from object_vault.models import IndexState


class ObjectOut(BaseModel):
    """Catalog entry as returned to clients."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(validation_alias="object_id")
    owner_id: UUID
    content_type: str
    content_size: int
    file_name: str
    content_hash: str
    slug: str | None = None
    is_public: bool
    flags: int
    index_state: IndexState
    uploaded_at: datetime


class DeleteObjectsRequest(BaseModel):
    files: list[UUID] = Field(description="Ids of the objects to delete")


class DeleteObjectsResponse(BaseModel):
    deleted: list[UUID]


class PublishObjectRequest(BaseModel):
    id: UUID
