from __future__ import annotations

import logging
import uuid
from datetime import date, timedelta
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from zapta.config.settings import Settings, get_settings
from zapta.persistence.models import (
    DocumentAnalytics,
    DocumentEventType,
    SearchAnalytics,
    UsageMetric,
    now_utc,
)

logger = logging.getLogger(__name__)

METRIC_SEARCHES = "knowledge_searches"
METRIC_HITS = "knowledge_hits"


class KnowledgeAnalytics:
    """Search and document-usage tracking. Tracking never raises to the caller."""

    def __init__(self, db: Session, settings: Settings | None = None) -> None:
        self.db = db
        self.settings = settings or get_settings()

    def track_search_query(
        self,
        tenant_id: uuid.UUID,
        agent_id: uuid.UUID | None,
        query: str,
        results_count: int,
        top_similarity: float | None,
        execution_time_ms: int,
        user_session: str | None = None,
    ) -> bool:
        if not self.settings.knowledge.track_searches:
            return False
        try:
            self.db.add(
                SearchAnalytics(
                    tenant_id=tenant_id,
                    agent_id=agent_id,
                    query=query,
                    results_count=results_count,
                    top_similarity=top_similarity,
                    execution_time_ms=execution_time_ms,
                    user_session=user_session,
                )
            )
            self.db.commit()
            self.increment_usage_metric(tenant_id, METRIC_SEARCHES)
            if results_count > 0:
                self.increment_usage_metric(tenant_id, METRIC_HITS)
        except SQLAlchemyError:
            logger.warning("Failed to track search query", exc_info=True)
            self.db.rollback()
            return False
        return True

    def track_search_hit(
        self,
        tenant_id: uuid.UUID,
        agent_id: uuid.UUID | None,
        document_id: uuid.UUID,
        query: str,
        similarity: float,
        user_session: str | None = None,
    ) -> bool:
        return self._track_document_event(
            DocumentEventType.search_hit, tenant_id, agent_id, document_id, query, similarity, user_session
        )

    def track_context_usage(
        self,
        tenant_id: uuid.UUID,
        agent_id: uuid.UUID | None,
        document_id: uuid.UUID,
        query: str,
        similarity: float,
        user_session: str | None = None,
    ) -> bool:
        return self._track_document_event(
            DocumentEventType.context_used, tenant_id, agent_id, document_id, query, similarity, user_session
        )

    def _track_document_event(
        self,
        event_type: DocumentEventType,
        tenant_id: uuid.UUID,
        agent_id: uuid.UUID | None,
        document_id: uuid.UUID,
        query: str,
        similarity: float,
        user_session: str | None,
    ) -> bool:
        if not self.settings.knowledge.track_document_usage:
            return False
        try:
            self.db.add(
                DocumentAnalytics(
                    tenant_id=tenant_id,
                    agent_id=agent_id,
                    document_id=document_id,
                    event_type=event_type,
                    query=query,
                    similarity_score=similarity,
                    user_session=user_session,
                )
            )
            self.db.commit()
        except SQLAlchemyError:
            logger.warning("Failed to track %s", event_type.value, exc_info=True)
            self.db.rollback()
            return False
        return True

    def increment_usage_metric(self, tenant_id: uuid.UUID, metric: str, day: date | None = None) -> None:
        day = day or now_utc().date()
        result = self.db.execute(
            update(UsageMetric)
            .where(
                UsageMetric.tenant_id == tenant_id,
                UsageMetric.metric == metric,
                UsageMetric.day == day,
            )
            .values(count=UsageMetric.count + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            self.db.add(UsageMetric(tenant_id=tenant_id, metric=metric, day=day, count=1))
        self.db.commit()

    def get_search_stats(
        self, tenant_id: uuid.UUID, agent_id: uuid.UUID | None = None, days_back: int = 30
    ) -> dict[str, Any]:
        since = now_utc() - timedelta(days=days_back)
        filters = [SearchAnalytics.tenant_id == tenant_id, SearchAnalytics.created_at >= since]
        if agent_id:
            filters.append(SearchAnalytics.agent_id == agent_id)

        total, successful, avg_results, avg_top, avg_ms = self.db.execute(
            select(
                func.count(SearchAnalytics.id),
                func.count(SearchAnalytics.id).filter(SearchAnalytics.results_count > 0),
                func.avg(SearchAnalytics.results_count),
                func.avg(SearchAnalytics.top_similarity),
                func.avg(SearchAnalytics.execution_time_ms),
            ).where(*filters)
        ).one()

        top_queries = self.db.execute(
            select(SearchAnalytics.query, func.count(SearchAnalytics.id).label("n"))
            .where(*filters)
            .group_by(SearchAnalytics.query)
            .order_by(func.count(SearchAnalytics.id).desc(), SearchAnalytics.query)
            .limit(5)
        ).all()

        doc_filters = [
            DocumentAnalytics.tenant_id == tenant_id,
            DocumentAnalytics.created_at >= since,
        ]
        if agent_id:
            doc_filters.append(DocumentAnalytics.agent_id == agent_id)
        most_used = self.db.execute(
            select(
                DocumentAnalytics.document_id,
                func.count(DocumentAnalytics.id).label("uses"),
                func.avg(DocumentAnalytics.similarity_score).label("avg_similarity"),
            )
            .where(*doc_filters)
            .group_by(DocumentAnalytics.document_id)
            .order_by(func.count(DocumentAnalytics.id).desc())
            .limit(5)
        ).all()

        return {
            "total_searches": total,
            "successful_searches": successful,
            "success_rate": round(successful / total, 4) if total else 0.0,
            "avg_results_count": float(avg_results or 0),
            "avg_similarity_score": float(avg_top or 0),
            "avg_execution_time_ms": float(avg_ms or 0),
            "top_queries": [{"query": q, "count": n} for q, n in top_queries],
            "most_used_documents": [
                {
                    "document_id": str(doc_id),
                    "usage_count": uses,
                    "avg_similarity": float(avg_sim or 0),
                }
                for doc_id, uses, avg_sim in most_used
            ],
        }
