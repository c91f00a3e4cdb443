"""
Agent execution API.

Endpoints:
  POST /agents/{agent_id}/execute: run the pipeline on one typed input
"""
from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends

from zapta.api.deps import PipelineDep
from zapta.auth.deps import require_agent_access
from zapta.schemas.agent import AgentInput, AgentOutput

router = APIRouter(
    prefix="/agents", tags=["agents"], dependencies=[Depends(require_agent_access)]
)


@router.post("/{agent_id}/execute", response_model=AgentOutput)
def execute_agent(agent_id: uuid.UUID, body: AgentInput, pipeline: PipelineDep):
    return pipeline.execute(agent_id, body)
