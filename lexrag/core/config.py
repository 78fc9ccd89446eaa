"""Application settings loaded from environment / .env file."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="LEXRAG_",
        extra="ignore",
    )

    # ── Storage ───────────────────────────────────────────
    database_url: str = "sqlite:///./lexrag.db"

    # ── LLM ───────────────────────────────────────────────
    default_llm_model: str = "gemini/gemini-2.0-flash"
    llm_api_key: str = ""  # falls back to provider env vars (GEMINI_API_KEY, ...)
    llm_timeout: float = 30.0

    # ── Ingestion ─────────────────────────────────────────
    max_chunk_size: int = 800
    min_chunk_size: int = 50
    chunk_overlap: int = 100
    min_extracted_chars: int = 10
    max_file_size: int = 10 * 1024 * 1024  # 10 MB

    # ── Retrieval ─────────────────────────────────────────
    search_top_k: int = 3
    chat_top_k: int = 2
    fallback_top_k: int = 2

    # ── Error handling / logging ──────────────────────────
    enable_fallback_mode: bool = False
    enable_error_logging: bool = True
    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    return Settings()
