from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from zapta.providers.base import GenerationResult, ModelClient, ProviderError, post_json, run_tool

if TYPE_CHECKING:
    from zapta.agents.tools import Tool

logger = logging.getLogger(__name__)


def _gemini_contents(messages: list[dict[str, str]]) -> list[dict[str, Any]]:
    # Gemini roles are user/model
    return [
        {
            "role": "model" if m["role"] == "assistant" else "user",
            "parts": [{"text": m["content"]}],
        }
        for m in messages
        if m.get("role") in ("user", "assistant") and m.get("content")
    ]


class GeminiClient(ModelClient):
    """generateContent API (functionCall / functionResponse parts)."""

    family = "gemini"

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
        if not self.api_key:
            raise ProviderError("Gemini api_key is required")
        url = f"{self.base_url}/models/{model}:generateContent?key={self.api_key}"
        contents = _gemini_contents(messages)
        result = GenerationResult(text="", model=model, steps=0)
        rounds = max_steps if tools else 1

        for _ in range(rounds):
            payload: dict[str, Any] = {
                "contents": contents,
                "systemInstruction": {"parts": [{"text": system}]},
                "generationConfig": {"temperature": temperature},
            }
            if tools:
                payload["tools"] = [
                    {"functionDeclarations": [tool.gemini_schema() for tool in tools.values()]}
                ]

            data = post_json(
                url,
                payload=payload,
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
                label="Gemini",
            )
            result.steps += 1
            usage = data.get("usageMetadata") or {}
            result.input_tokens += int(usage.get("promptTokenCount") or 0)
            result.output_tokens += int(usage.get("candidatesTokenCount") or 0)

            candidate = (data.get("candidates") or [{}])[0]
            parts = (candidate.get("content") or {}).get("parts") or []
            result.text = "".join(p.get("text", "") for p in parts if "text" in p)
            calls = [p["functionCall"] for p in parts if "functionCall" in p]
            if not tools or not calls:
                return result

            contents.append({"role": "model", "parts": parts})
            responses = []
            for call in calls:
                record = run_tool(tools, call["name"], call.get("args") or {})
                result.tool_calls.append(record)
                responses.append(
                    {
                        "functionResponse": {
                            "name": call["name"],
                            "response": {"result": json.loads(json.dumps(record.result, default=str))},
                        }
                    }
                )
            contents.append({"role": "user", "parts": responses})

        logger.info("Gemini tool loop stopped after %d steps", result.steps)
        return result
