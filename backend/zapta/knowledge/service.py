"""
Knowledge base: chunked document upload, similarity search and listing.

Every public method returns a result object instead of raising, so the agent
pipeline and the HTTP layer decide themselves how to degrade.
"""
from __future__ import annotations

import logging
import math
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from zapta.billing.storage import StorageLedger
from zapta.config.settings import Settings, get_settings
from zapta.embeddings.providers import EmbeddingResult, EmbeddingService
from zapta.errors import ZaptaError
from zapta.knowledge.analytics import KnowledgeAnalytics
from zapta.knowledge.chunking import chunk_document
from zapta.persistence.models import HAS_PGVECTOR, Document, as_utc

logger = logging.getLogger(__name__)

_EMBED_WORKERS = 8


@dataclass
class UploadResult:
    success: bool
    documents: list[Document] = field(default_factory=list)
    chunks_created: int = 0
    error: str | None = None


@dataclass
class DocumentMatch:
    id: uuid.UUID
    name: str
    content: str
    metadata: dict[str, Any]
    similarity: float
    embedding_model: str
    embedding_dimensions: int

    @property
    def source_name(self) -> str:
        return self.metadata.get("originalFileName") or "Unknown"


@dataclass
class SearchResult:
    success: bool
    documents: list[DocumentMatch] = field(default_factory=list)
    error: str | None = None


@dataclass
class DocumentPage:
    success: bool
    documents: list[dict[str, Any]]
    pagination: dict[str, Any]
    error: str | None = None


@dataclass
class DeleteResult:
    success: bool
    chunks_deleted: int = 0
    error: str | None = None


def cosine_similarity(a: list[float], b: list[float]) -> float:
    if len(a) != len(b):
        return 0.0
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


class KnowledgeService:
    def __init__(
        self,
        db: Session,
        embeddings: EmbeddingService,
        analytics: KnowledgeAnalytics | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.db = db
        self.embeddings = embeddings
        self.settings = settings or get_settings()
        self.analytics = analytics or KnowledgeAnalytics(db, self.settings)
        self.storage = StorageLedger(db)

    # ── Upload ────────────────────────────────────────────────────────────────

    def _embed_chunks(self, chunks: list[str]) -> list[EmbeddingResult]:
        if len(chunks) == 1:
            return [self.embeddings.embed(chunks[0])]
        with ThreadPoolExecutor(max_workers=min(_EMBED_WORKERS, len(chunks))) as pool:
            return list(pool.map(self.embeddings.embed, chunks))

    def upload_document(
        self,
        tenant_id: uuid.UUID,
        agent_id: uuid.UUID | None,
        name: str,
        content: str,
        metadata: dict[str, Any] | None = None,
    ) -> UploadResult:
        cfg = self.settings.knowledge
        size_bytes = len(content.encode("utf-8"))
        if size_bytes > cfg.max_file_size:
            return UploadResult(
                success=False,
                error=f"File too large ({size_bytes} bytes, max {cfg.max_file_size})",
            )

        try:
            quota = self.storage.check_storage_limit(tenant_id, size_bytes)
            if not quota.allowed:
                return UploadResult(
                    success=False,
                    error=(
                        f"Storage limit reached ({quota.current_mb}/{quota.limit_mb} MB). "
                        "Please upgrade your plan to continue."
                    ),
                )

            chunks = chunk_document(content, cfg.chunk_size)
            if not chunks:
                return UploadResult(success=False, error="Document is empty")

            embedded = self._embed_chunks(chunks)
            upload_id = str(uuid.uuid4())
            rows = [
                Document(
                    tenant_id=tenant_id,
                    agent_id=agent_id,
                    name=f"{name} (Part {index + 1})" if len(chunks) > 1 else name,
                    content=chunk,
                    embedding=result.embedding,
                    embedding_model=result.model_key,
                    embedding_dimensions=result.dimensions,
                    meta={
                        **(metadata or {}),
                        "chunkIndex": index,
                        "totalChunks": len(chunks),
                        "originalFileName": name,
                        "embeddingProvider": result.provider,
                        "fileSizeBytes": size_bytes,
                        "uploadId": upload_id,
                    },
                )
                for index, (chunk, result) in enumerate(zip(chunks, embedded))
            ]
            self.db.add_all(rows)
            self.db.commit()
            self.storage.increment_storage_usage(tenant_id, size_bytes)
        except (ZaptaError, SQLAlchemyError) as exc:
            logger.error("Document upload failed for tenant %s: %s", tenant_id, exc)
            return UploadResult(success=False, error=str(exc))

        logger.info(
            "Uploaded %s as %d chunk(s) via %s",
            name, len(rows), rows[0].meta["embeddingProvider"],
            extra={"tenant_id": tenant_id},
        )
        return UploadResult(success=True, documents=rows, chunks_created=len(rows))

    # ── Search ────────────────────────────────────────────────────────────────

    def _uses_sql_similarity(self) -> bool:
        return HAS_PGVECTOR and self.db.get_bind().dialect.name == "postgresql"

    def _match(
        self,
        tenant_id: uuid.UUID,
        agent_id: uuid.UUID | None,
        query: EmbeddingResult,
        limit: int,
        threshold: float,
    ) -> list[DocumentMatch]:
        filters = [
            Document.tenant_id == tenant_id,
            Document.embedding_model == query.model_key,
            Document.embedding.is_not(None),
        ]
        if agent_id:
            filters.append(Document.agent_id == agent_id)

        if self._uses_sql_similarity():
            distance = Document.embedding.cosine_distance(query.embedding)
            rows = self.db.execute(
                select(Document, (1 - distance).label("similarity"))
                .where(*filters, (1 - distance) > threshold)
                .order_by(distance)
                .limit(limit)
            ).all()
            scored = [(doc, float(similarity)) for doc, similarity in rows]
        else:
            candidates = self.db.execute(select(Document).where(*filters)).scalars().all()
            scored = [
                (doc, cosine_similarity(query.embedding, list(doc.embedding)))
                for doc in candidates
            ]
            scored = [item for item in scored if item[1] > threshold]
            scored.sort(key=lambda item: item[1], reverse=True)
            scored = scored[:limit]

        return [
            DocumentMatch(
                id=doc.id,
                name=doc.name,
                content=doc.content,
                metadata=dict(doc.meta or {}),
                similarity=similarity,
                embedding_model=doc.embedding_model,
                embedding_dimensions=doc.embedding_dimensions,
            )
            for doc, similarity in scored
        ]

    def search_documents(
        self,
        tenant_id: uuid.UUID,
        query: str,
        agent_id: uuid.UUID | None = None,
        limit: int | None = None,
        threshold: float | None = None,
        user_session: str | None = None,
    ) -> SearchResult:
        cfg = self.settings.knowledge
        limit = min(limit or cfg.search_limit, cfg.search_max_limit)
        threshold = cfg.search_threshold if threshold is None else threshold
        started = time.perf_counter()

        try:
            query_embedding = self.embeddings.embed(query)
            matches = self._match(tenant_id, agent_id, query_embedding, limit, threshold)
        except (ZaptaError, SQLAlchemyError) as exc:
            logger.warning("Knowledge search failed for tenant %s: %s", tenant_id, exc)
            self.analytics.track_search_query(
                tenant_id, agent_id, query, 0, None, self._elapsed_ms(started), user_session
            )
            return SearchResult(success=False, error=str(exc))

        self.analytics.track_search_query(
            tenant_id,
            agent_id,
            query,
            len(matches),
            matches[0].similarity if matches else None,
            self._elapsed_ms(started),
            user_session,
        )
        for match in matches:
            self.analytics.track_search_hit(
                tenant_id, agent_id, match.id, query, match.similarity, user_session
            )
        return SearchResult(success=True, documents=matches)

    @staticmethod
    def _elapsed_ms(started: float) -> int:
        return int((time.perf_counter() - started) * 1000)

    # ── Listing / deletion ───────────────────────────────────────────────────

    def get_documents(
        self,
        tenant_id: uuid.UUID,
        agent_id: uuid.UUID | None = None,
        page: int = 1,
        page_size: int | None = None,
    ) -> DocumentPage:
        cfg = self.settings.knowledge
        page = max(page, 1)
        page_size = min(page_size or cfg.docs_page_size, cfg.docs_max_page_size)

        stmt = (
            select(Document)
            .where(Document.tenant_id == tenant_id)
            .order_by(Document.created_at.desc(), Document.name)
        )
        if agent_id:
            stmt = stmt.where(Document.agent_id == agent_id)

        try:
            chunks = self.db.execute(stmt).scalars().all()
        except SQLAlchemyError as exc:
            logger.error("Listing documents failed for tenant %s: %s", tenant_id, exc)
            return DocumentPage(
                success=False,
                documents=[],
                pagination=_pagination(1, cfg.docs_page_size, 0),
                error=str(exc),
            )

        grouped: dict[str, dict[str, Any]] = {}
        for chunk in chunks:
            meta = chunk.meta or {}
            original = meta.get("originalFileName") or chunk.name
            if original not in grouped:
                grouped[original] = {
                    "id": chunk.id,
                    "name": original,
                    "total_chunks": meta.get("totalChunks") or 1,
                    "chunks": [],
                    "created_at": as_utc(chunk.created_at),
                    "agent_id": chunk.agent_id,
                }
            grouped[original]["chunks"].append(
                {
                    "id": chunk.id,
                    "name": chunk.name,
                    "content": chunk.content,
                    "metadata": meta,
                    "embedding_model": chunk.embedding_model,
                }
            )

        documents = list(grouped.values())
        start = (page - 1) * page_size
        return DocumentPage(
            success=True,
            documents=documents[start:start + page_size],
            pagination=_pagination(page, page_size, len(documents)),
        )

    def delete_document(self, tenant_id: uuid.UUID, name: str) -> DeleteResult:
        try:
            chunks = [
                doc
                for doc in self.db.execute(
                    select(Document).where(Document.tenant_id == tenant_id)
                ).scalars()
                if (doc.meta or {}).get("originalFileName", doc.name) == name
            ]
            if not chunks:
                return DeleteResult(success=False, error="Document not found")

            freed = _uploaded_bytes(chunks)
            self.db.execute(delete(Document).where(Document.id.in_([doc.id for doc in chunks])))
            self.db.commit()
            self.storage.decrement_storage_usage(tenant_id, freed)
        except (ZaptaError, SQLAlchemyError) as exc:
            logger.error("Deleting %s failed for tenant %s: %s", name, tenant_id, exc)
            return DeleteResult(success=False, error=str(exc))
        logger.info("Deleted %s (%d chunks)", name, len(chunks), extra={"tenant_id": tenant_id})
        return DeleteResult(success=True, chunks_deleted=len(chunks))


def _uploaded_bytes(chunks: list[Document]) -> int:
    """Bytes charged for these chunks, counting each upload of a file once."""
    uploads: dict[str, list[Document]] = {}
    for doc in chunks:
        key = (doc.meta or {}).get("uploadId") or str(doc.id)
        uploads.setdefault(key, []).append(doc)
    total = 0
    for docs in uploads.values():
        size = (docs[0].meta or {}).get("fileSizeBytes")
        total += size or sum(len(doc.content.encode("utf-8")) for doc in docs)
    return total


def _pagination(page: int, page_size: int, total: int) -> dict[str, Any]:
    total_pages = math.ceil(total / page_size) if page_size else 0
    return {
        "page": page,
        "page_size": page_size,
        "total_documents": total,
        "total_pages": total_pages,
        "has_more": page < total_pages,
    }
