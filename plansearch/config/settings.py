"""Application settings loaded from environment variables via pydantic-settings.

Values come from two sources, in priority order:

  1. Environment variables (e.g. ``OPENAI_API_KEY=sk-...``)
  2. A ``.env`` file in the working directory

Field ``openai_api_key`` maps to env var ``OPENAI_API_KEY``; defaults apply
when neither source sets a value.  Static defaults that operators tune per
deployment also live in ``config/config.yaml`` (see :mod:`plansearch.config.loader`).
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """plansearch application settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === LLM / Embedding Providers ===
    # Empty string = "not configured"; provider selection in bootstrap.py skips
    # providers with empty keys and falls through to the next one.
    openai_api_key: str = ""
    openai_base_url: str = ""
    openai_text_model: str = ""
    openai_vision_model: str = ""
    openai_embedding_model: str = ""
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-20250514"
    ollama_base_url: str = "http://localhost:11434"
    ollama_text_model: str = "llama3.1"
    ollama_vision_model: str = "llava"
    ollama_embedding_model: str = "nomic-embed-text"
    ollama_embedding_max_chars: int = 4000

    # === Storage ===
    database_path: str = "data/plansearch.db"
    page_image_dir: str = "data/page_images"
    render_page_images: bool = True
    page_image_dpi: int = 150

    # === Ingestion ===
    allowed_mime_types: list[str] = Field(
        default_factory=lambda: ["application/pdf", "text/plain"]
    )
    max_upload_bytes: int = 50 * 1024 * 1024
    page_concurrency: int = 4
    combined_page_embeddings: bool = True
    fact_extraction_enabled: bool = True
    report_cache_size: int = 256

    # === Chunking (characters) ===
    chunk_target_size: int = 800
    chunk_min_size: int = 150
    chunk_max_size: int = 1000
    chunk_overlap: int = 100
    chunk_floor: int = 50

    # === Retrieval ===
    search_top_k: int = 10
    search_similarity_threshold: float = 0.3

    # === Classification ===
    classification_max_pages: int = 3
    classification_excerpt_chars: int = 500

    # === Status polling ===
    status_poll_interval: float = 3.0

    # === Application ===
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_env: str = "development"
    log_level: str = "INFO"

    def get_available_llm_providers(self) -> list[str]:
        """Return names of LLM providers that have credentials configured.

        Ollama is always listed because it needs no key.
        """
        providers: list[str] = []
        if self.anthropic_api_key:
            providers.append("anthropic")
        if self.openai_api_key:
            providers.append("openai")
        providers.append("ollama")
        return providers
