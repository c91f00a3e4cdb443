"""
Conversation memory: recent messages for the prompt and widget session storage.
"""
from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from zapta.persistence.models import Agent, Conversation

logger = logging.getLogger(__name__)

RECENT_CONVERSATIONS = 10


class ConversationHistory:
    def __init__(self, db: Session) -> None:
        self.db = db

    def recent_messages(self, agent: Agent, limit: int = 10) -> list[dict[str, str]] | None:
        """Last `limit` messages across the agent's most recent conversations.

        Returns None when the agent has no conversations at all, which is
        distinct from conversations that hold no messages.
        """
        conversations = list(
            self.db.execute(
                select(Conversation)
                .where(
                    Conversation.agent_id == agent.id,
                    Conversation.tenant_id == agent.tenant_id,
                )
                .order_by(Conversation.created_at.desc())
                .limit(RECENT_CONVERSATIONS)
            ).scalars()
        )
        if not conversations:
            return None

        flattened = [m for conv in conversations for m in (conv.messages or [])]
        return [
            {"role": m.get("role"), "content": m.get("content")}
            for m in flattened[-limit:]
        ]

    def find_session(self, agent_id: Any, session_id: str) -> Conversation | None:
        return self.db.execute(
            select(Conversation)
            .where(Conversation.agent_id == agent_id, Conversation.session_id == session_id)
            .limit(1)
        ).scalar_one_or_none()

    def save_exchange(
        self,
        agent: Agent,
        session_id: str,
        user_text: str,
        assistant_text: str,
        history: list[dict[str, str]] | None = None,
    ) -> Conversation:
        """Append one user/assistant exchange to the session's conversation.

        A new session is seeded with the caller-supplied `history`.
        """
        exchange = [
            {"role": "user", "content": user_text},
            {"role": "assistant", "content": assistant_text},
        ]
        conversation = self.find_session(agent.id, session_id)
        if conversation is None:
            conversation = Conversation(
                agent_id=agent.id,
                tenant_id=agent.tenant_id,
                session_id=session_id,
                messages=list(history or []) + exchange,
                meta={"sessionId": session_id},
            )
            self.db.add(conversation)
        else:
            # reassign so the JSON column is flagged dirty
            conversation.messages = list(conversation.messages or []) + exchange
        self.db.commit()
        logger.debug("Saved exchange for agent %s session %s", agent.id, session_id)
        return conversation
