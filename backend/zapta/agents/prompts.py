from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from zapta.persistence.models import now_utc
from zapta.schemas.agent import ChatInput, EmailInput, SlackInput, SmsInput, WebhookInput

TONE_DIRECTIVES: dict[str, str] = {
    "professional": "Maintain a professional and courteous tone in all responses.",
    "friendly": "Be warm, friendly, and approachable while remaining helpful and informative.",
    "casual": "Use a casual, conversational tone as if chatting with a friend.",
    "formal": "Use formal language and maintain a serious, respectful tone throughout.",
}

GUIDELINES = (
    "\n\nGuidelines:\n"
    "- Be helpful and accurate\n"
    "- Stay in character as defined\n"
    "- Use available context when relevant\n"
    "- If you don't know something, admit it clearly\n"
    "- Keep responses concise but complete"
)


@dataclass
class PromptContext:
    tenant: str | None
    input_type: str
    # None when no conversation history was loaded at all
    messages: list[dict[str, str]] | None = None
    knowledge_documents: int = 0
    extra: dict[str, Any] = field(default_factory=dict)


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def build_system_prompt(
    name: str,
    instructions: str,
    tone: str,
    context: PromptContext | None,
    rag_context: str | None = None,
) -> str:
    tone_line = TONE_DIRECTIVES.get(tone, TONE_DIRECTIVES["professional"])

    context_section = ""
    if context is not None:
        recent = (
            f"- Recent Messages: {len(context.messages)} messages"
            if context.messages is not None
            else ""
        )
        knowledge = (
            f"- Knowledge Base: {context.knowledge_documents} documents available"
            if context.knowledge_documents > 0
            else ""
        )
        context_section = (
            "\n\nCONTEXT:\n"
            f"- Tenant: {_text(context.tenant)}\n"
            f"- Agent Type: {context.input_type}\n"
            f"{recent}\n"
            f"{knowledge}"
            "\n\nUse this context to inform your responses."
        )

    rag_section = ""
    if rag_context:
        rag_section = (
            f"\n\nKNOWLEDGE BASE CONTEXT:\n{rag_context}\n\n"
            "Use the above information from the knowledge base to provide accurate, "
            "context-specific answers. If the answer is in the knowledge base, use it. "
            "If not, provide general assistance."
        )

    return (
        f"You are {name}, an AI assistant.\n\n{instructions}\n\n{tone_line}"
        f"{context_section}{rag_section}{GUIDELINES}"
    )


def _attachment_name(attachment: Any) -> str:
    if isinstance(attachment, dict):
        return _text(attachment.get("filename"))
    return _text(attachment)


def build_user_prompt(agent_input: ChatInput | EmailInput | WebhookInput | SlackInput | SmsInput) -> str:
    if isinstance(agent_input, EmailInput):
        to = agent_input.to
        recipients = ", ".join(to) if isinstance(to, list) else _text(to)
        attachments = (
            "Attachments: " + ", ".join(_attachment_name(a) for a in agent_input.attachments)
            if agent_input.attachments
            else ""
        )
        return (
            f"From: {_text(agent_input.from_)}\n"
            f"To: {recipients}\n"
            f"Subject: {_text(agent_input.subject)}\n"
            f"{attachments}\n\n"
            f"{_text(agent_input.body)}"
        )
    if isinstance(agent_input, WebhookInput):
        payload = (
            json.dumps(agent_input.payload, indent=2, default=str)
            if agent_input.payload
            else "No payload"
        )
        timestamp = agent_input.timestamp or now_utc().isoformat()
        return f"Webhook Event: {payload}\nTimestamp: {timestamp}"
    if isinstance(agent_input, SlackInput):
        return (
            "Slack Message\n"
            f"Channel: {_text(agent_input.to)}\n"
            f"User: {_text(agent_input.from_)}\n"
            f"Message: {_text(agent_input.message)}"
        )
    if isinstance(agent_input, SmsInput):
        return (
            f"SMS From: {_text(agent_input.from_)}\n"
            f"To: {_text(agent_input.to)}\n"
            f"Message: {_text(agent_input.message)}"
        )
    return agent_input.message or ""
