"""
Knowledge base API: tenant documents, similarity search and search analytics.

Endpoints:
  POST   /knowledge/{tenant_id}/documents         : upload (chunked + embedded)
  GET    /knowledge/{tenant_id}/documents         : list, grouped by original file
  DELETE /knowledge/{tenant_id}/documents/{name}  : delete every chunk of a file
  POST   /knowledge/{tenant_id}/search            : similarity search
  GET    /knowledge/{tenant_id}/analytics         : search statistics
"""
from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, status

from zapta.api.deps import KnowledgeDep
from zapta.auth.deps import require_tenant_access
from zapta.schemas.knowledge import (
    DeleteResponse,
    DocumentListResponse,
    DocumentUpload,
    SearchHit,
    SearchRequest,
    SearchResponse,
    UploadedChunk,
    UploadResponse,
)

router = APIRouter(
    prefix="/knowledge", tags=["knowledge"], dependencies=[Depends(require_tenant_access)]
)


@router.post("/{tenant_id}/documents", response_model=UploadResponse, status_code=status.HTTP_201_CREATED)
def upload_document(tenant_id: uuid.UUID, body: DocumentUpload, knowledge: KnowledgeDep):
    result = knowledge.upload_document(
        tenant_id, body.agent_id, body.name, body.content, body.metadata
    )
    if not result.success:
        raise HTTPException(status_code=400, detail=result.error)
    return UploadResponse(
        success=True,
        chunks_created=result.chunks_created,
        documents=[UploadedChunk.model_validate(doc) for doc in result.documents],
    )


@router.get("/{tenant_id}/documents", response_model=DocumentListResponse)
def list_documents(
    tenant_id: uuid.UUID,
    knowledge: KnowledgeDep,
    agent_id: uuid.UUID | None = None,
    page: int = Query(1, ge=1),
    page_size: int | None = Query(None, ge=1),
):
    result = knowledge.get_documents(tenant_id, agent_id, page, page_size)
    if not result.success:
        raise HTTPException(status_code=500, detail=result.error)
    return DocumentListResponse(documents=result.documents, pagination=result.pagination)


@router.delete("/{tenant_id}/documents/{name}", response_model=DeleteResponse)
def delete_document(tenant_id: uuid.UUID, name: str, knowledge: KnowledgeDep):
    result = knowledge.delete_document(tenant_id, name)
    if not result.success:
        code = 404 if result.error == "Document not found" else 500
        raise HTTPException(status_code=code, detail=result.error)
    return DeleteResponse(success=True, chunks_deleted=result.chunks_deleted)


@router.post("/{tenant_id}/search", response_model=SearchResponse)
def search(tenant_id: uuid.UUID, body: SearchRequest, knowledge: KnowledgeDep):
    result = knowledge.search_documents(
        tenant_id,
        body.query,
        agent_id=body.agent_id,
        limit=body.limit,
        threshold=body.threshold,
        user_session=body.user_session,
    )
    if not result.success:
        raise HTTPException(status_code=502, detail=result.error)
    return SearchResponse(
        query=body.query,
        results=[
            SearchHit(
                id=doc.id,
                name=doc.name,
                content=doc.content,
                metadata=doc.metadata,
                similarity=doc.similarity,
                embedding_model=doc.embedding_model,
            )
            for doc in result.documents
        ],
    )


@router.get("/{tenant_id}/analytics")
def search_analytics(
    tenant_id: uuid.UUID,
    knowledge: KnowledgeDep,
    agent_id: uuid.UUID | None = None,
    days_back: int = Query(30, ge=1, le=365),
):
    return knowledge.analytics.get_search_stats(tenant_id, agent_id, days_back)
