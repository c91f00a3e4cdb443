from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from zapta.providers.base import (
    GenerationResult,
    ModelClient,
    ProviderError,
    post_json,
    run_tool,
    tool_result_text,
)

if TYPE_CHECKING:
    from zapta.agents.tools import Tool

logger = logging.getLogger(__name__)

ANTHROPIC_VERSION = "2023-06-01"
MAX_TOKENS = 4096


def _anthropic_messages(messages: list[dict[str, str]]) -> list[dict[str, Any]]:
    """Keep user/assistant turns only, starting with a user turn."""
    turns = [
        {"role": m["role"], "content": m["content"]}
        for m in messages
        if m.get("role") in ("user", "assistant") and m.get("content")
    ]
    while turns and turns[0]["role"] != "user":
        turns.pop(0)
    return turns


class AnthropicClient(ModelClient):
    """Messages API (`stop_reason == "tool_use"`, tool_result content blocks)."""

    family = "claude"

    def _headers(self) -> dict[str, str]:
        if not self.api_key:
            raise ProviderError("Anthropic api_key is required")
        return {
            "x-api-key": self.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "Content-Type": "application/json",
        }

    def generate(
        self,
        *,
        model: str,
        system: str,
        messages: list[dict[str, str]],
        tools: dict[str, "Tool"] | None = None,
        temperature: float = 0.7,
        max_steps: int = 1,
    ) -> GenerationResult:
        headers = self._headers()
        convo = _anthropic_messages(messages)
        result = GenerationResult(text="", model=model, steps=0)
        rounds = max_steps if tools else 1

        for _ in range(rounds):
            payload: dict[str, Any] = {
                "model": model,
                "max_tokens": MAX_TOKENS,
                "system": system,
                "messages": convo,
                "temperature": temperature,
            }
            if tools:
                payload["tools"] = [tool.anthropic_schema() for tool in tools.values()]

            data = post_json(
                f"{self.base_url}/v1/messages",
                payload=payload,
                headers=headers,
                timeout=self.timeout,
                label="Anthropic",
            )
            result.steps += 1
            usage = data.get("usage") or {}
            result.input_tokens += int(usage.get("input_tokens") or 0)
            result.output_tokens += int(usage.get("output_tokens") or 0)

            blocks = data.get("content") or []
            result.text = "".join(b.get("text", "") for b in blocks if b.get("type") == "text")
            tool_uses = [b for b in blocks if b.get("type") == "tool_use"]
            if not tools or data.get("stop_reason") != "tool_use" or not tool_uses:
                return result

            convo.append({"role": "assistant", "content": blocks})
            tool_results = []
            for block in tool_uses:
                record = run_tool(tools, block["name"], block.get("input") or {})
                result.tool_calls.append(record)
                tool_results.append(
                    {
                        "type": "tool_result",
                        "tool_use_id": block["id"],
                        "content": tool_result_text(record),
                        "is_error": record.failed,
                    }
                )
            convo.append({"role": "user", "content": tool_results})

        logger.info("Anthropic tool loop stopped after %d steps", result.steps)
        return result
