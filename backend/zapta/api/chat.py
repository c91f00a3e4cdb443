"""
Widget chat API.

Endpoints:
  POST /chat/{agent_id}: one chat turn; the exchange is stored on the session

Called by the embeddable widget without a bearer token; only active agents
are served.
"""
from __future__ import annotations

import logging
import uuid

from fastapi import APIRouter, HTTPException
from sqlalchemy.exc import SQLAlchemyError

from zapta.agents.memory import ConversationHistory
from zapta.api.deps import DbDep, PipelineDep
from zapta.persistence.models import Agent, AgentStatus
from zapta.schemas.agent import ChatInput, ChatRequest, ChatResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat", tags=["chat"])


@router.post("/{agent_id}", response_model=ChatResponse)
def chat(agent_id: uuid.UUID, body: ChatRequest, db: DbDep, pipeline: PipelineDep):
    if not body.message.strip():
        raise HTTPException(status_code=400, detail="Message is required")

    agent = db.get(Agent, agent_id)
    if agent is None:
        raise HTTPException(status_code=404, detail="Agent not found")
    if agent.status != AgentStatus.active:
        raise HTTPException(status_code=503, detail="Agent is not available")

    session_id = body.session_id or str(uuid.uuid4())
    output = pipeline.execute(agent_id, ChatInput(message=body.message, user_session=session_id))

    try:
        ConversationHistory(db).save_exchange(
            agent, session_id, body.message, output.message, history=body.history
        )
    except SQLAlchemyError:
        logger.error("Failed to save conversation for session %s", session_id, exc_info=True)
        db.rollback()

    return ChatResponse(message=output.message, session_id=session_id, sources=output.sources)
