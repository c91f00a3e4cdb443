"""
AgentPipeline: one agent invocation from input to logged, notified output.

Stages run strictly in order:

  load → policy gate (chat only) → retrieval (chat only) → context →
  prompt → model selection → tools (business assistants only) →
  generation → legacy actions (customer assistants only) → log → notify

Any stage may raise; the failure is logged and announced to the tenant's
webhooks, then the original exception propagates to the caller. Retrieval
and legacy actions degrade instead of raising.
"""
from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from zapta.agents.actions import process_agent_actions
from zapta.agents.execution_log import ExecutionLog
from zapta.agents.memory import ConversationHistory
from zapta.agents.models import resolve_model
from zapta.agents.prompts import PromptContext, build_system_prompt, build_user_prompt
from zapta.agents.tools import ToolContext, create_tools
from zapta.billing.plans import can_use_model, format_allowed_models
from zapta.billing.usage import UsageLedger
from zapta.config.settings import Settings, get_settings
from zapta.embeddings.providers import get_embedding_service
from zapta.errors import (
    AgentNotFoundError,
    MessageLimitError,
    ModelNotAllowedError,
    SubscriptionInvalidError,
)
from zapta.integrations.registry import IntegrationRegistry
from zapta.knowledge.service import DocumentMatch, KnowledgeService
from zapta.monitoring.metrics import AGENT_EXECUTION_SECONDS, AGENT_EXECUTIONS, TOOL_CALLS
from zapta.persistence.models import Agent, AgentType
from zapta.providers.base import GenerationResult
from zapta.providers.factory import ModelClientFactory
from zapta.schemas.agent import AgentConfig, AgentOutput, ChatInput, EmailInput, parse_agent_input
from zapta.webhooks.triggers import WebhookNotifier

logger = logging.getLogger(__name__)

TEMPERATURE = 0.7
MAX_TOOL_STEPS = 5
HISTORY_LIMIT = 10
RAG_SEPARATOR = "\n\n---\n\n"


@dataclass
class RetrievalResult:
    context: str = ""
    sources: list[str] = field(default_factory=list)
    documents: list[DocumentMatch] = field(default_factory=list)
    error: str | None = None

    @property
    def has_context(self) -> bool:
        return bool(self.documents)


def format_rag_context(documents: list[DocumentMatch]) -> str:
    return RAG_SEPARATOR.join(f"[Document: {doc.source_name}]\n{doc.content}" for doc in documents)


class AgentPipeline:
    def __init__(
        self,
        db: Session,
        *,
        ledger: UsageLedger,
        knowledge: KnowledgeService,
        registry: IntegrationRegistry,
        models: ModelClientFactory,
        notifier: WebhookNotifier,
        settings: Settings | None = None,
        history: ConversationHistory | None = None,
        execution_log: ExecutionLog | None = None,
    ) -> None:
        self.db = db
        self.ledger = ledger
        self.knowledge = knowledge
        self.registry = registry
        self.models = models
        self.notifier = notifier
        self.settings = settings or get_settings()
        self.history = history or ConversationHistory(db)
        self.execution_log = execution_log or ExecutionLog(db)

    # ── Stages ────────────────────────────────────────────────────────────────

    def _load_agent(self, agent_id: uuid.UUID | str) -> Agent:
        try:
            key = agent_id if isinstance(agent_id, uuid.UUID) else uuid.UUID(str(agent_id))
        except ValueError:
            raise AgentNotFoundError(agent_id) from None
        agent = self.db.execute(
            select(Agent).options(joinedload(Agent.tenant)).where(Agent.id == key)
        ).scalar_one_or_none()
        if agent is None:
            raise AgentNotFoundError(agent_id)
        return agent

    def _policy_gate(self, agent: Agent, config: AgentConfig) -> None:
        tenant_id = agent.tenant_id
        plan_id = self.ledger.resolve_plan_id(agent.tenant)
        logger.info("Tenant %s plan detected: %s", tenant_id, plan_id)

        check = self.ledger.validate_subscription(tenant_id)
        if not check.valid:
            raise SubscriptionInvalidError(check.subscription_status, check.reason)

        if not can_use_model(plan_id, config.model):
            raise ModelNotAllowedError(config.model, plan_id, format_allowed_models(plan_id))

        usage = self.ledger.check_message_limit(tenant_id)
        if not usage.allowed:
            raise MessageLimitError(usage.current, usage.limit)

        self.ledger.increment_message_usage(tenant_id)

    def _retrieve(self, agent: Agent, agent_input: Any) -> RetrievalResult:
        if not isinstance(agent_input, ChatInput) or not agent_input.message:
            return RetrievalResult()

        cfg = self.settings.knowledge
        try:
            result = self.knowledge.search_documents(
                agent.tenant_id,
                agent_input.message,
                agent_id=agent.id,
                limit=cfg.rag_context_limit,
                threshold=cfg.rag_context_threshold,
                user_session=agent_input.user_session,
            )
        except Exception as exc:
            logger.warning("RAG search error for agent %s: %s", agent.id, exc)
            return RetrievalResult(error=str(exc))

        if not result.success:
            logger.warning("RAG search error for agent %s: %s", agent.id, result.error)
            return RetrievalResult(error=result.error)
        if not result.documents:
            return RetrievalResult()

        for doc in result.documents:
            self.knowledge.analytics.track_context_usage(
                agent.tenant_id,
                agent.id,
                doc.id,
                agent_input.message,
                doc.similarity or 0,
                agent_input.user_session,
            )
        logger.info("Found %d relevant documents for agent %s", len(result.documents), agent.id)
        return RetrievalResult(
            context=format_rag_context(result.documents),
            sources=[doc.source_name for doc in result.documents],
            documents=list(result.documents),
        )

    def _recent_messages(self, agent: Agent, agent_input: Any) -> list[dict[str, str]] | None:
        if not isinstance(agent_input, (ChatInput, EmailInput)):
            return None
        return self.history.recent_messages(agent, limit=HISTORY_LIMIT)

    def _provision_tools(self, agent: Agent) -> dict[str, Any]:
        if agent.type != AgentType.business_assistant:
            return {}
        integration_map = self.registry.get_integration_map(agent.tenant_id, agent.id)
        tools = create_tools(
            ToolContext(integration_map=integration_map, tenant_id=agent.tenant_id, agent_id=agent.id)
        )
        logger.info("Loaded %d tools for business assistant %s", len(tools), agent.id)
        return tools

    def _record_tool_calls(self, agent: Agent, generation: GenerationResult) -> None:
        if not generation.tool_calls:
            return
        for call in generation.tool_calls:
            TOOL_CALLS.labels(tool=call.tool_name, status="error" if call.failed else "success").inc()
        self.execution_log.log_tool_calls(agent.id, agent.tenant_id, generation.tool_calls)

    # ── Entry point ───────────────────────────────────────────────────────────

    def execute(self, agent_id: uuid.UUID | str, agent_input: Any) -> AgentOutput:
        if isinstance(agent_input, dict):
            agent_input = parse_agent_input(agent_input)
        started = time.perf_counter()
        agent: Agent | None = None
        try:
            agent = self._load_agent(agent_id)
            config = AgentConfig.from_row(agent.config)

            if isinstance(agent_input, ChatInput):
                self._policy_gate(agent, config)

            retrieval = self._retrieve(agent, agent_input)
            messages = self._recent_messages(agent, agent_input)

            system = build_system_prompt(
                agent.name,
                config.instructions,
                config.tone,
                PromptContext(
                    tenant=agent.tenant.name if agent.tenant else None,
                    input_type=agent_input.type,
                    messages=messages,
                    knowledge_documents=len(retrieval.documents),
                ),
                retrieval.context or None,
            )
            conversation = [*(messages or []), {"role": "user", "content": build_user_prompt(agent_input)}]

            resolved = resolve_model(config.model)
            tools = self._provision_tools(agent)
            client = self.models.for_family(resolved.family)
            generation = client.generate(
                model=resolved.model,
                system=system,
                messages=conversation,
                tools=tools or None,
                temperature=TEMPERATURE,
                max_steps=MAX_TOOL_STEPS if tools else 1,
            )
            self._record_tool_calls(agent, generation)

            actions: list[dict[str, Any]] = []
            if agent.type == AgentType.customer_assistant:
                actions = process_agent_actions(self.registry, agent, agent_input, generation.text)

            duration_ms = int((time.perf_counter() - started) * 1000)
            output = {"message": generation.text, "actions": actions}
            self.execution_log.log_execution(
                agent.id, agent.tenant_id, agent_input.log_payload(), output, duration_ms=duration_ms
            )
            self.notifier.trigger_agent_completed_event(
                agent.tenant_id, agent.id, agent.name, agent_input, output, duration_ms
            )
        except Exception as exc:
            self._fail(agent_id, agent, agent_input, exc, started)
            raise
        finally:
            AGENT_EXECUTION_SECONDS.observe(time.perf_counter() - started)

        AGENT_EXECUTIONS.labels(status="success").inc()
        return AgentOutput(
            message=generation.text,
            actions=actions,
            sources=retrieval.sources if retrieval.has_context else None,
            metadata={
                "model": resolved.model,
                "family": resolved.family.value,
                "duration_ms": duration_ms,
                "tool_calls": len(generation.tool_calls),
            },
        )

    def _fail(
        self,
        agent_id: uuid.UUID | str,
        agent: Agent | None,
        agent_input: Any,
        exc: Exception,
        started: float,
    ) -> None:
        AGENT_EXECUTIONS.labels(status="error").inc()
        message = str(exc) or "Unknown error"
        logger.error("Agent execution error for %s: %s", agent_id, message)
        if isinstance(exc, SQLAlchemyError):
            self.db.rollback()

        tenant_id = agent.tenant_id if agent is not None else None
        self.execution_log.log_execution(
            agent_id,
            tenant_id,
            agent_input.log_payload(),
            {"message": ""},
            error=message,
            duration_ms=int((time.perf_counter() - started) * 1000),
        )
        if tenant_id is None:
            logger.debug("Tenant unknown; skipping agent.failed webhook for %s", agent_id)
            return
        self.notifier.trigger_agent_failed_event(
            tenant_id, agent_id, agent.name, agent_input, message
        )


def build_agent_pipeline(db: Session, settings: Settings | None = None) -> AgentPipeline:
    """Wire the pipeline with its production collaborators."""
    settings = settings or get_settings()
    registry = IntegrationRegistry(db)
    return AgentPipeline(
        db,
        ledger=UsageLedger(db),
        knowledge=KnowledgeService(db, get_embedding_service(), settings=settings),
        registry=registry,
        models=ModelClientFactory(settings),
        notifier=WebhookNotifier(registry),
        settings=settings,
    )
