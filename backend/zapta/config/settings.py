import logging
import secrets
from dataclasses import dataclass, field
from functools import lru_cache
from os import getenv
from typing import Literal

logger = logging.getLogger(__name__)

_INSECURE_DEFAULTS = {"change-me", ""}


@dataclass
class KnowledgeSettings:
    chunk_size: int = 1000
    search_threshold: float = 0.7
    search_limit: int = 5
    search_max_limit: int = 50
    rag_context_limit: int = 3
    rag_context_threshold: float = 0.7
    max_file_size: int = 10 * 1024 * 1024
    docs_page_size: int = 50
    docs_max_page_size: int = 100
    track_searches: bool = True
    track_document_usage: bool = True


@dataclass
class Settings:
    app_name: str = "Zapta"
    app_env: Literal["dev", "test", "prod"] = "dev"
    app_version: str = "0.1.0"
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    log_level: str = "INFO"
    cors_origins: str = ""

    database_url: str = "sqlite:///./zapta.db"

    jwt_secret: str = ""
    jwt_algorithm: str = "HS256"
    access_token_ttl_minutes: int = 60

    google_api_key: str | None = None
    anthropic_api_key: str | None = None
    openai_api_key: str | None = None
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    anthropic_base_url: str = "https://api.anthropic.com"
    openai_base_url: str = "https://api.openai.com/v1"
    llm_timeout_seconds: float = 120.0

    cohere_api_key: str | None = None
    huggingface_api_key: str | None = None
    voyage_api_key: str | None = None
    embedding_timeout_seconds: float = 30.0

    webhook_timeout_seconds: float = 10.0

    knowledge: KnowledgeSettings = field(default_factory=KnowledgeSettings)


def _as_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    knowledge = KnowledgeSettings(
        chunk_size=int(getenv("KNOWLEDGE_CHUNK_SIZE", "1000")),
        search_threshold=float(getenv("KNOWLEDGE_SEARCH_THRESHOLD", "0.7")),
        search_limit=int(getenv("KNOWLEDGE_SEARCH_LIMIT", "5")),
        search_max_limit=int(getenv("KNOWLEDGE_SEARCH_MAX_LIMIT", "50")),
        rag_context_limit=int(getenv("KNOWLEDGE_RAG_CONTEXT_LIMIT", "3")),
        rag_context_threshold=float(getenv("KNOWLEDGE_RAG_CONTEXT_THRESHOLD", "0.7")),
        max_file_size=int(getenv("KNOWLEDGE_MAX_FILE_SIZE", str(10 * 1024 * 1024))),
        docs_page_size=int(getenv("KNOWLEDGE_DOCS_PAGE_SIZE", "50")),
        docs_max_page_size=int(getenv("KNOWLEDGE_DOCS_MAX_PAGE_SIZE", "100")),
        track_searches=_as_bool(getenv("KNOWLEDGE_TRACK_SEARCHES"), True),
        track_document_usage=_as_bool(getenv("KNOWLEDGE_TRACK_DOCUMENT_USAGE"), True),
    )
    app_env = getenv("APP_ENV", "dev")

    jwt_secret = getenv("JWT_SECRET", "")
    if jwt_secret in _INSECURE_DEFAULTS:
        if app_env == "prod":
            raise RuntimeError(
                "JWT_SECRET is not set or uses an insecure default. "
                "Generate one with: openssl rand -hex 32"
            )
        jwt_secret = secrets.token_hex(32)
        logger.warning("JWT_SECRET not set: using an auto-generated value (not suitable for production)")

    return Settings(
        app_name=getenv("APP_NAME", "Zapta"),
        app_env=app_env,
        app_version=getenv("APP_VERSION", "0.1.0"),
        app_host=getenv("APP_HOST", "0.0.0.0"),
        app_port=int(getenv("APP_PORT", "8000")),
        log_level=getenv("LOG_LEVEL", "INFO"),
        cors_origins=getenv("CORS_ORIGINS", ""),
        database_url=getenv("DATABASE_URL", "sqlite:///./zapta.db"),
        jwt_secret=jwt_secret,
        jwt_algorithm=getenv("JWT_ALGORITHM", "HS256"),
        access_token_ttl_minutes=int(getenv("ACCESS_TOKEN_TTL_MINUTES", "60")),
        google_api_key=getenv("GOOGLE_API_KEY"),
        anthropic_api_key=getenv("ANTHROPIC_API_KEY"),
        openai_api_key=getenv("OPENAI_API_KEY"),
        gemini_base_url=getenv(
            "GEMINI_BASE_URL", "https://generativelanguage.googleapis.com/v1beta"
        ),
        anthropic_base_url=getenv("ANTHROPIC_BASE_URL", "https://api.anthropic.com"),
        openai_base_url=getenv("OPENAI_BASE_URL", "https://api.openai.com/v1"),
        llm_timeout_seconds=float(getenv("LLM_TIMEOUT_SECONDS", "120")),
        cohere_api_key=getenv("COHERE_API_KEY"),
        huggingface_api_key=getenv("HUGGINGFACE_API_KEY"),
        voyage_api_key=getenv("VOYAGE_API_KEY"),
        embedding_timeout_seconds=float(getenv("EMBEDDING_TIMEOUT_SECONDS", "30")),
        webhook_timeout_seconds=float(getenv("WEBHOOK_TIMEOUT_SECONDS", "10")),
        knowledge=knowledge,
    )


def validate_knowledge_settings(settings: Settings) -> list[str]:
    """Return a list of problems with the knowledge-base settings (empty when valid)."""
    cfg = settings.knowledge
    problems: list[str] = []
    if cfg.chunk_size <= 0:
        problems.append("KNOWLEDGE_CHUNK_SIZE must be positive")
    for label, value in (
        ("KNOWLEDGE_SEARCH_THRESHOLD", cfg.search_threshold),
        ("KNOWLEDGE_RAG_CONTEXT_THRESHOLD", cfg.rag_context_threshold),
    ):
        if not 0 <= value <= 1:
            problems.append(f"{label} must be between 0 and 1")
    if cfg.search_limit <= 0 or cfg.search_max_limit <= 0:
        problems.append("Search limits must be positive")
    if cfg.search_limit > cfg.search_max_limit:
        problems.append("KNOWLEDGE_SEARCH_LIMIT cannot exceed KNOWLEDGE_SEARCH_MAX_LIMIT")
    if cfg.rag_context_limit <= 0:
        problems.append("KNOWLEDGE_RAG_CONTEXT_LIMIT must be positive")
    if cfg.max_file_size <= 0:
        problems.append("KNOWLEDGE_MAX_FILE_SIZE must be positive")
    if cfg.docs_page_size > cfg.docs_max_page_size:
        problems.append("KNOWLEDGE_DOCS_PAGE_SIZE cannot exceed KNOWLEDGE_DOCS_MAX_PAGE_SIZE")
    return problems
