from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field


class DocumentUpload(BaseModel):
    name: str = Field(min_length=1, max_length=400)
    content: str
    agent_id: UUID | None = None
    metadata: dict[str, Any] = {}


class UploadedChunk(BaseModel):
    id: UUID
    name: str

    class Config:
        from_attributes = True


class UploadResponse(BaseModel):
    success: bool
    chunks_created: int
    documents: list[UploadedChunk]


class SearchRequest(BaseModel):
    query: str = Field(min_length=1)
    agent_id: UUID | None = None
    limit: int | None = Field(None, ge=1)
    threshold: float | None = Field(None, ge=0, le=1)
    user_session: str | None = None


class SearchHit(BaseModel):
    id: UUID
    name: str
    content: str
    metadata: dict[str, Any]
    similarity: float
    embedding_model: str


class SearchResponse(BaseModel):
    query: str
    results: list[SearchHit]


class DocumentListResponse(BaseModel):
    documents: list[dict[str, Any]]
    pagination: dict[str, Any]


class DeleteResponse(BaseModel):
    success: bool
    chunks_deleted: int
