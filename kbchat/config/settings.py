"""Application settings loaded from environment variables via pydantic-settings.

# ─── HOW SETTINGS WORK ────────────────────────────────────────────────
#
# pydantic-settings reads configuration from two sources, in priority order:
#
#   1. Environment variables  -- e.g. MEILISEARCH_URL=http://search:7700
#   2. .env file              -- key=value lines in the project root
#
# Field ``meilisearch_url`` maps to env var ``MEILISEARCH_URL``.  Defaults
# below are used when neither source sets a value.  The LLM and embedding
# servers speak the OpenAI wire protocol, so each only needs a base URL
# (and a key when the server enforces one).
# ──────────────────────────────────────────────────────────────────────
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """kbchat application settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === Search engine ===
    meilisearch_url: str = "http://localhost:7700"
    meilisearch_api_key: str = ""
    meilisearch_index: str = "rag_documents"
    meilisearch_task_timeout: float = 30.0
    semantic_ratio: float = 0.5
    retrieval_limit: int = 5

    # === Embedding server (OpenAI-compatible, e.g. TEI) ===
    embedding_api_url: str = "http://localhost:8081/v1"
    embedding_api_key: str = "not-needed"
    embedding_model: str = "embeddinggemma-300m"
    embedding_dimensions: int = 768
    # 0 = one embedding call per chunk; N > 0 = batches of N chunks.
    embedding_batch_size: int = 0

    # === LLM server (OpenAI-compatible, e.g. llama.cpp) ===
    llm_api_url: str = "http://localhost:8082/v1"
    llm_api_key: str = "not-needed"
    llm_model: str = "gemma-2-2b-it"
    llm_temperature: float = 0.7
    llm_max_tokens: int = 2048
    llm_timeout: float = 120.0

    # === Chunking ===
    chunk_size: int = 512
    chunk_overlap: int = 50
    # Empty = whitespace token counting; otherwise a HuggingFace tokenizer id.
    chunk_tokenizer: str = ""

    # === Ingestion workers ===
    ingestion_workers: int = 4
    ingestion_queue_size: int = 100

    # === Streaming ===
    sse_heartbeat_seconds: int = 15

    # === App Config ===
    app_host: str = "0.0.0.0"
    app_port: int = 8080
    app_env: str = "development"
    log_level: str = "INFO"
    cors_origins: str = "*"

    def get_cors_origins(self) -> list[str]:
        """Return the comma-separated ``CORS_ORIGINS`` value as a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]
