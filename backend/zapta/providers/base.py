from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import httpx

from zapta.errors import ZaptaError

if TYPE_CHECKING:
    from zapta.agents.tools import Tool

logger = logging.getLogger(__name__)


class ProviderError(ZaptaError):
    """Domain-level provider exception."""


class TransientProviderError(ProviderError):
    """Rate limits, 503s and network failures: safe to retry."""


def post_json(
    url: str,
    *,
    payload: dict[str, Any],
    headers: dict[str, str],
    timeout: float,
    label: str,
) -> Any:
    """POST a JSON body and decode the JSON reply, mapping httpx errors to ProviderError."""
    try:
        with httpx.Client(timeout=timeout) as client:
            resp = client.post(url, headers=headers, json=payload)
            resp.raise_for_status()
            return resp.json()
    except httpx.HTTPStatusError as exc:
        status = exc.response.status_code
        message = f"{label} API {status}: {exc.response.text}"
        if status in (429, 503):
            raise TransientProviderError(message) from exc
        raise ProviderError(message) from exc
    except httpx.RequestError as exc:
        raise TransientProviderError(f"{label} request failed: {exc}") from exc


@dataclass
class ToolCallRecord:
    tool_name: str
    args: dict[str, Any]
    result: Any

    @property
    def failed(self) -> bool:
        return isinstance(self.result, dict) and bool(self.result.get("error"))


@dataclass
class GenerationResult:
    text: str
    model: str
    steps: int = 1
    tool_calls: list[ToolCallRecord] = field(default_factory=list)
    input_tokens: int = 0
    output_tokens: int = 0


def run_tool(tools: dict[str, "Tool"], name: str, args: dict[str, Any]) -> ToolCallRecord:
    """Execute one model-requested tool call.

    Tool failures are handed back to the model as `{"error": ...}` so it can
    recover; they are also what marks the call as failed in the execution log.
    """
    tool = tools.get(name)
    if tool is None:
        return ToolCallRecord(name, args, {"error": f"Unknown tool: {name}"})
    try:
        result = tool.run(args)
    except Exception as exc:
        logger.warning("Tool %s failed: %s", name, exc)
        result = {"error": str(exc)}
    logger.info("Tool %s(%s) → %s", name, list(args.keys()), str(result)[:80])
    return ToolCallRecord(name, args, result)


def tool_result_text(record: ToolCallRecord) -> str:
    try:
        return json.dumps(record.result, default=str)
    except (TypeError, ValueError):
        return str(record.result)


class ModelClient(ABC):
    """One LLM family: plain generation plus a bounded tool-calling loop."""

    family: str = "base"

    def __init__(self, api_key: str | None, base_url: str, timeout: float = 120) -> None:
        self.api_key = api_key or ""
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    @abstractmethod
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
        """Run one generation. With tools, at most `max_steps` model rounds are made."""
