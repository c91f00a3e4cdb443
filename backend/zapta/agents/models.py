"""
Model selection: configured model id -> (provider family, provider model id).

Lookups are exact against MODEL_TABLE; ids missing from the table fall back
by family prefix, and anything else is the explicit unknown case.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)


class ModelFamily(str, enum.Enum):
    GEMINI = "gemini"
    CLAUDE = "claude"
    OPENAI = "openai"


DEFAULT_AGENT_MODEL = "gemini-2.0-flash"
GEMINI_FALLBACK = "gemini-2.0-flash"
CLAUDE_FALLBACK = "claude-sonnet-4-5"
UNKNOWN_MODEL_FALLBACK = "gemini-2.0-flash-exp"

MODEL_TABLE: dict[str, tuple[ModelFamily, str]] = {
    # gemini
    "gemini-3-pro": (ModelFamily.GEMINI, "gemini-3-pro-preview"),
    "gemini-3-pro-preview": (ModelFamily.GEMINI, "gemini-3-pro-preview"),
    "gemini-2.5-pro": (ModelFamily.GEMINI, "gemini-2.5-pro"),
    "gemini-2.5-flash": (ModelFamily.GEMINI, "gemini-2.5-flash"),
    "gemini-2.5-flash-lite": (ModelFamily.GEMINI, "gemini-2.5-flash-lite"),
    "gemini-2.0-flash": (ModelFamily.GEMINI, "gemini-2.0-flash"),
    "gemini-2.0-flash-exp": (ModelFamily.GEMINI, "gemini-2.0-flash-exp"),
    "gemini-2.0-flash-thinking": (ModelFamily.GEMINI, "gemini-2.0-flash-thinking-exp"),
    "gemini-1.5-flash": (ModelFamily.GEMINI, "gemini-1.5-flash-latest"),
    "gemini-1.5-flash-8b": (ModelFamily.GEMINI, "gemini-1.5-flash-8b-latest"),
    "gemini-1.5-pro": (ModelFamily.GEMINI, "gemini-1.5-pro-latest"),
    "gemini-pro": (ModelFamily.GEMINI, "gemini-1.5-pro-latest"),
    # claude
    "claude-sonnet-4-5": (ModelFamily.CLAUDE, "claude-sonnet-4-5"),
    "claude-4-sonnet": (ModelFamily.CLAUDE, "claude-sonnet-4-5"),
    "claude-3.5-sonnet": (ModelFamily.CLAUDE, "claude-3-5-sonnet-20241022"),
    "claude-3.5-haiku": (ModelFamily.CLAUDE, "claude-3-5-haiku-20241022"),
    "claude-3-sonnet": (ModelFamily.CLAUDE, "claude-3-sonnet-20240229"),
    "claude-3-opus": (ModelFamily.CLAUDE, "claude-3-opus-20240229"),
    "claude-3-haiku": (ModelFamily.CLAUDE, "claude-3-haiku-20240307"),
    # openai
    "gpt-4o": (ModelFamily.OPENAI, "gpt-4o"),
    "gpt-4o-mini": (ModelFamily.OPENAI, "gpt-4o-mini"),
    "gpt-4-turbo": (ModelFamily.OPENAI, "gpt-4-turbo"),
    "gpt-4": (ModelFamily.OPENAI, "gpt-4"),
    "gpt-3.5-turbo": (ModelFamily.OPENAI, "gpt-3.5-turbo"),
}

_PREFIX_FALLBACKS: tuple[tuple[str, ModelFamily, str | None], ...] = (
    ("gemini-", ModelFamily.GEMINI, GEMINI_FALLBACK),
    ("claude-", ModelFamily.CLAUDE, CLAUDE_FALLBACK),
    # None: pass the id through unchanged
    ("gpt-", ModelFamily.OPENAI, None),
    ("o1-", ModelFamily.OPENAI, None),
)


@dataclass(frozen=True)
class ResolvedModel:
    family: ModelFamily
    model: str
    requested: str
    known: bool = True


def resolve_model(model_id: str | None) -> ResolvedModel:
    requested = model_id or DEFAULT_AGENT_MODEL
    entry = MODEL_TABLE.get(requested)
    if entry is not None:
        family, model = entry
        return ResolvedModel(family, model, requested)

    for prefix, family, fallback in _PREFIX_FALLBACKS:
        if requested.startswith(prefix):
            resolved = ResolvedModel(family, fallback or requested, requested)
            logger.info("Model %s not in table; using %s", requested, resolved.model)
            return resolved

    logger.warning("Unknown model %s; using %s", requested, UNKNOWN_MODEL_FALLBACK)
    return ResolvedModel(ModelFamily.GEMINI, UNKNOWN_MODEL_FALLBACK, requested, known=False)
