from __future__ import annotations

import json
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


class OpenAIClient(ModelClient):
    """Chat Completions API (`finish_reason == "tool_calls"`, role="tool" follow-ups)."""

    family = "openai"

    def _headers(self) -> dict[str, str]:
        if not self.api_key:
            raise ProviderError("OpenAI api_key is required")
        return {"Content-Type": "application/json", "Authorization": f"Bearer {self.api_key}"}

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
        convo: list[dict[str, Any]] = [{"role": "system", "content": system}, *messages]
        result = GenerationResult(text="", model=model, steps=0)
        rounds = max_steps if tools else 1

        for _ in range(rounds):
            payload: dict[str, Any] = {
                "model": model,
                "messages": convo,
                "temperature": temperature,
            }
            if tools:
                payload["tools"] = [tool.openai_schema() for tool in tools.values()]
                payload["tool_choice"] = "auto"

            data = post_json(
                f"{self.base_url}/chat/completions",
                payload=payload,
                headers=headers,
                timeout=self.timeout,
                label="OpenAI",
            )
            result.steps += 1
            usage = data.get("usage") or {}
            result.input_tokens += int(usage.get("prompt_tokens") or 0)
            result.output_tokens += int(usage.get("completion_tokens") or 0)

            choice = data["choices"][0]
            assistant_msg = choice["message"]
            result.text = assistant_msg.get("content") or ""
            tool_calls = assistant_msg.get("tool_calls") or []
            if not tools or choice.get("finish_reason") != "tool_calls" or not tool_calls:
                return result

            convo.append(assistant_msg)
            for tc in tool_calls:
                name = tc["function"]["name"]
                try:
                    args = json.loads(tc["function"].get("arguments") or "{}")
                except json.JSONDecodeError:
                    args = {}
                record = run_tool(tools, name, args)
                result.tool_calls.append(record)
                convo.append(
                    {"role": "tool", "tool_call_id": tc["id"], "content": tool_result_text(record)}
                )

        logger.info("OpenAI tool loop stopped after %d steps", result.steps)
        return result
