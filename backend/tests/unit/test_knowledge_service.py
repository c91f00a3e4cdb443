from __future__ import annotations

from sqlalchemy import select

from zapta.billing.storage import BYTES_PER_MB
from zapta.config.settings import KnowledgeSettings, Settings
from zapta.embeddings.providers import EmbeddingService, HashEmbeddingProvider
from zapta.errors import EmbeddingError
from zapta.knowledge.analytics import METRIC_HITS, METRIC_SEARCHES
from zapta.knowledge.service import KnowledgeService, cosine_similarity
from zapta.persistence.models import (
    DocumentAnalytics,
    DocumentEventType,
    SearchAnalytics,
    Tenant,
    UsageMetric,
)

REFUND = "Refunds are issued within thirty days of purchase"
SHIPPING = "Parcels leave our warehouse every weekday morning"


class _BrokenEmbeddings(EmbeddingService):
    def __init__(self) -> None:
        super().__init__([])

    def embed(self, text):  # noqa: ANN001
        raise EmbeddingError("All embedding providers failed:\nOpenAI: down")


def _service(db_session, **knowledge) -> KnowledgeService:
    settings = Settings(knowledge=KnowledgeSettings(**knowledge))
    return KnowledgeService(db_session, EmbeddingService([HashEmbeddingProvider()]), settings=settings)


def test_cosine_similarity():
    assert cosine_similarity([1.0, 0.0], [1.0, 0.0]) == 1.0
    assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == 0.0
    assert cosine_similarity([1.0], [1.0, 2.0]) == 0.0
    assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0


def test_upload_single_chunk(db_session, make_tenant):
    tenant = make_tenant("free")
    service = _service(db_session)

    result = service.upload_document(tenant.id, None, "refunds.txt", REFUND, {"source": "faq"})

    assert result.success is True
    assert result.chunks_created == 1
    doc = result.documents[0]
    assert doc.name == "refunds.txt"
    assert doc.embedding_model == "hash"
    assert doc.embedding_dimensions == 256
    assert doc.meta["originalFileName"] == "refunds.txt"
    assert doc.meta["chunkIndex"] == 0
    assert doc.meta["totalChunks"] == 1
    assert doc.meta["embeddingProvider"] == "Hash"
    assert doc.meta["source"] == "faq"

    db_session.expire_all()
    assert db_session.get(Tenant, tenant.id).usage_storage_bytes == len(REFUND.encode("utf-8"))


def test_upload_multiple_chunks_are_named_by_part(db_session, make_tenant):
    tenant = make_tenant("free")
    service = _service(db_session, chunk_size=60)

    result = service.upload_document(tenant.id, None, "policy.md", f"{REFUND}\n\n{SHIPPING}")

    assert result.chunks_created == 2
    assert [d.name for d in result.documents] == ["policy.md (Part 1)", "policy.md (Part 2)"]
    assert all(d.meta["totalChunks"] == 2 for d in result.documents)


def test_upload_rejected_when_storage_is_full(db_session, make_tenant):
    tenant = make_tenant("free", storage_bytes=10 * BYTES_PER_MB)

    result = _service(db_session).upload_document(tenant.id, None, "a.txt", "one more byte")

    assert result.success is False
    assert result.error == (
        "Storage limit reached (10.0/10 MB). Please upgrade your plan to continue."
    )


def test_upload_rejected_when_file_too_large(db_session, make_tenant):
    tenant = make_tenant("free")

    result = _service(db_session, max_file_size=10).upload_document(
        tenant.id, None, "big.txt", "x" * 11
    )

    assert result.success is False
    assert result.error == "File too large (11 bytes, max 10)"


def test_search_returns_matches_above_threshold(db_session, make_tenant):
    tenant = make_tenant("free")
    service = _service(db_session)
    service.upload_document(tenant.id, None, "refunds.txt", REFUND)
    service.upload_document(tenant.id, None, "shipping.txt", SHIPPING)

    result = service.search_documents(tenant.id, REFUND, threshold=0.5, user_session="s-1")

    assert result.success is True
    assert [d.source_name for d in result.documents] == ["refunds.txt"]
    assert result.documents[0].similarity > 0.99

    searches = db_session.execute(select(SearchAnalytics)).scalars().all()
    assert [(s.query, s.results_count, s.user_session) for s in searches] == [(REFUND, 1, "s-1")]
    hits = db_session.execute(select(DocumentAnalytics)).scalars().all()
    assert [h.event_type for h in hits] == [DocumentEventType.search_hit]
    metrics = {m.metric: m.count for m in db_session.execute(select(UsageMetric)).scalars()}
    assert metrics == {METRIC_SEARCHES: 1, METRIC_HITS: 1}


def test_search_filters_by_agent(db_session, make_tenant, make_agent):
    tenant = make_tenant("free")
    agent = make_agent(tenant)
    service = _service(db_session)
    service.upload_document(tenant.id, None, "shared.txt", REFUND)
    service.upload_document(tenant.id, agent.id, "agent.txt", REFUND)

    scoped = service.search_documents(tenant.id, REFUND, agent_id=agent.id, threshold=0.5)
    unscoped = service.search_documents(tenant.id, REFUND, threshold=0.5)

    assert [d.source_name for d in scoped.documents] == ["agent.txt"]
    assert sorted(d.source_name for d in unscoped.documents) == ["agent.txt", "shared.txt"]


def test_search_isolated_per_tenant(db_session, make_tenant):
    owner = make_tenant("free")
    other = make_tenant("free")
    service = _service(db_session)
    service.upload_document(owner.id, None, "refunds.txt", REFUND)

    result = service.search_documents(other.id, REFUND, threshold=0.5)

    assert result.success is True
    assert result.documents == []


def test_search_failure_is_reported_not_raised(db_session, make_tenant):
    tenant = make_tenant("free")
    service = KnowledgeService(db_session, _BrokenEmbeddings(), settings=Settings())

    result = service.search_documents(tenant.id, "anything")

    assert result.success is False
    assert result.documents == []
    assert "All embedding providers failed" in result.error


def test_get_documents_groups_chunks(db_session, make_tenant):
    tenant = make_tenant("free")
    service = _service(db_session, chunk_size=60)
    service.upload_document(tenant.id, None, "policy.md", f"{REFUND}\n\n{SHIPPING}")
    service.upload_document(tenant.id, None, "hours.txt", "Open nine to five")

    first = service.get_documents(tenant.id)
    second = service.get_documents(tenant.id)

    assert first.success is True
    assert sorted(d["name"] for d in first.documents) == ["hours.txt", "policy.md"]
    policy = next(d for d in first.documents if d["name"] == "policy.md")
    assert policy["total_chunks"] == 2
    assert len(policy["chunks"]) == 2
    assert first.pagination["total_documents"] == 2
    assert first.pagination["has_more"] is False
    assert first.documents == second.documents


def test_get_documents_paginates(db_session, make_tenant):
    tenant = make_tenant("free")
    service = _service(db_session)
    for name in ("a.txt", "b.txt", "c.txt"):
        service.upload_document(tenant.id, None, name, f"content of {name}")

    page = service.get_documents(tenant.id, page=2, page_size=2)

    assert len(page.documents) == 1
    assert page.pagination == {
        "page": 2,
        "page_size": 2,
        "total_documents": 3,
        "total_pages": 2,
        "has_more": False,
    }


def test_delete_document_frees_storage(db_session, make_tenant):
    tenant = make_tenant("free")
    service = _service(db_session, chunk_size=60)
    content = f"{REFUND}\n\n{SHIPPING}"
    service.upload_document(tenant.id, None, "policy.md", content)
    service.upload_document(tenant.id, None, "hours.txt", "Open nine to five")

    result = service.delete_document(tenant.id, "policy.md")

    assert result.success is True
    assert result.chunks_deleted == 2
    db_session.expire_all()
    assert db_session.get(Tenant, tenant.id).usage_storage_bytes == len(b"Open nine to five")
    assert [d["name"] for d in service.get_documents(tenant.id).documents] == ["hours.txt"]


def test_delete_reuploaded_document_frees_every_upload(db_session, make_tenant):
    tenant = make_tenant("free")
    service = _service(db_session, chunk_size=60)
    service.upload_document(tenant.id, None, "faq.txt", "short")
    service.upload_document(tenant.id, None, "faq.txt", f"{REFUND}\n\n{SHIPPING}")

    result = service.delete_document(tenant.id, "faq.txt")

    assert result.success is True
    assert result.chunks_deleted == 3
    db_session.expire_all()
    assert db_session.get(Tenant, tenant.id).usage_storage_bytes == 0


def test_delete_missing_document(db_session, make_tenant):
    tenant = make_tenant("free")

    result = _service(db_session).delete_document(tenant.id, "ghost.txt")

    assert result.success is False
    assert result.error == "Document not found"


def test_search_stats(db_session, make_tenant):
    tenant = make_tenant("free")
    service = _service(db_session)
    service.upload_document(tenant.id, None, "refunds.txt", REFUND)
    service.search_documents(tenant.id, REFUND, threshold=0.5)
    service.search_documents(tenant.id, "zebra crossing", threshold=0.5)

    stats = service.analytics.get_search_stats(tenant.id)

    assert stats["total_searches"] == 2
    assert stats["successful_searches"] == 1
    assert stats["success_rate"] == 0.5
    assert stats["top_queries"][0]["count"] == 1
    assert len(stats["most_used_documents"]) == 1
