from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict


class AiSourceSettings(BaseModel):
    """One configured AI backend, as provided through AI_SOURCES (JSON)."""

    id: str
    name: str = ""
    provider: str = "gemini"
    api_key: str = ""
    model: str = ""
    enabled: bool = True
    traits: str | None = None
    base_url: str | None = None


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = "dev"
    log_level: str = "INFO"

    scan_concurrency: int = 4
    retry_max_attempts: int = 5
    retry_initial_delay_seconds: float = 5.0

    ai_sources: list[AiSourceSettings] = []
    active_source_id: str | None = None

    gemini_base_url: str = "https://generativelanguage.googleapis.com"
    gemini_thinking_budget: int = -1
    gemini_timeout_seconds: int = 120

    openai_timeout_seconds: int = 30
    openai_streaming: bool = True
    openai_poll_interval_seconds: float = 1.0
    openai_max_poll_seconds: float = 30.0

    pdf_engine: str = "pymupdf"
    pdf_rasterize: bool = False
    pdf_rasterize_dpi: int = 144
