from typing import Annotated

from fastapi import Depends
from sqlalchemy.orm import Session

from zapta.agents.pipeline import AgentPipeline, build_agent_pipeline
from zapta.billing.usage import UsageLedger
from zapta.embeddings.providers import get_embedding_service
from zapta.knowledge.service import KnowledgeService
from zapta.persistence.database import get_db

DbDep = Annotated[Session, Depends(get_db)]


def get_pipeline(db: DbDep) -> AgentPipeline:
    return build_agent_pipeline(db)


def get_knowledge_service(db: DbDep) -> KnowledgeService:
    return KnowledgeService(db, get_embedding_service())


def get_usage_ledger(db: DbDep) -> UsageLedger:
    return UsageLedger(db)


PipelineDep = Annotated[AgentPipeline, Depends(get_pipeline)]
KnowledgeDep = Annotated[KnowledgeService, Depends(get_knowledge_service)]
LedgerDep = Annotated[UsageLedger, Depends(get_usage_ledger)]
