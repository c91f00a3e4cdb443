from __future__ import annotations

from datetime import timedelta

from sqlalchemy import select

from zapta.agents.execution_log import ExecutionLog
from zapta.agents.memory import ConversationHistory
from zapta.persistence.models import AgentExecution, Conversation, ExecutionStatus, now_utc
from zapta.providers.base import ToolCallRecord


def test_no_conversations_means_no_history(db_session, make_tenant, make_agent):
    agent = make_agent(make_tenant())

    assert ConversationHistory(db_session).recent_messages(agent) is None


def test_empty_conversation_is_empty_history(db_session, make_tenant, make_agent):
    agent = make_agent(make_tenant())
    db_session.add(Conversation(agent_id=agent.id, tenant_id=agent.tenant_id, messages=[]))
    db_session.commit()

    assert ConversationHistory(db_session).recent_messages(agent) == []


def test_recent_messages_are_capped(db_session, make_tenant, make_agent):
    agent = make_agent(make_tenant())
    history = ConversationHistory(db_session)
    for i in range(6):
        history.save_exchange(agent, "s-1", f"question {i}", f"answer {i}")

    messages = history.recent_messages(agent, limit=4)

    assert [m["content"] for m in messages] == ["question 4", "answer 4", "question 5", "answer 5"]


def test_recent_messages_are_agent_scoped(db_session, make_tenant, make_agent):
    tenant = make_tenant()
    mine, other = make_agent(tenant), make_agent(tenant, name="Otto")
    ConversationHistory(db_session).save_exchange(other, "s-1", "hi", "hello")

    assert ConversationHistory(db_session).recent_messages(mine) is None


def test_save_exchange_seeds_new_session_and_appends(db_session, make_tenant, make_agent):
    agent = make_agent(make_tenant())
    history = ConversationHistory(db_session)

    created = history.save_exchange(
        agent, "s-7", "second", "reply two", history=[{"role": "user", "content": "first"}]
    )
    history.save_exchange(agent, "s-7", "third", "reply three")

    db_session.expire_all()
    stored = history.find_session(agent.id, "s-7")
    assert stored.id == created.id
    assert stored.meta == {"sessionId": "s-7"}
    assert [m["content"] for m in stored.messages] == [
        "first", "second", "reply two", "third", "reply three",
    ]
    assert db_session.execute(select(Conversation)).scalars().all() == [stored]


def test_history_flattens_newest_conversation_first(db_session, make_tenant, make_agent):
    agent = make_agent(make_tenant())
    history = ConversationHistory(db_session)
    older = history.save_exchange(agent, "old", "old question", "old answer")
    older.created_at = now_utc() - timedelta(days=1)
    db_session.commit()
    history.save_exchange(agent, "new", "new question", "new answer")

    contents = [m["content"] for m in history.recent_messages(agent)]

    assert contents == ["new question", "new answer", "old question", "old answer"]


def test_execution_log_rows(db_session, make_tenant, make_agent):
    agent = make_agent(make_tenant())
    log = ExecutionLog(db_session)

    assert log.log_execution(agent.id, agent.tenant_id, {"type": "chat"}, {"message": "ok"}, duration_ms=12)
    assert log.log_tool_calls(
        agent.id,
        agent.tenant_id,
        [ToolCallRecord("getPage", {"pageId": "p1"}, {"error": "Notion integration not connected"})],
    )
    assert log.log_tool_calls(agent.id, agent.tenant_id, []) is True

    rows = db_session.execute(
        select(AgentExecution).where(AgentExecution.agent_id == agent.id)
    ).scalars().all()
    by_kind = {("tool" if "tool" in r.input else "run"): r for r in rows}
    assert len(rows) == 2
    assert by_kind["run"].status == ExecutionStatus.success
    assert by_kind["run"].duration_ms == 12
    assert by_kind["tool"].status == ExecutionStatus.error
    assert by_kind["tool"].input == {"tool": "getPage", "args": {"pageId": "p1"}}
    assert by_kind["tool"].error == "Notion integration not connected"
