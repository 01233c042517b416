"""Application configuration managed via environment variables."""
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "Bito Transformer Backend"
    debug: bool = False
    log_level: str = "INFO"
    database_url: str = "postgresql+psycopg2://bito@localhost:5432/bito"
    opik_enabled: bool = False
    opik_api_key: str | None = None
    opik_project: str = "bito-transformer"
    openai_api_key: str | None = None
    openai_base_url: str | None = None
    transformer_model: str = "gpt-4o-mini"
    transformer_generation_temperature: float = 0.7
    transformer_generation_max_tokens: int = 3000
    transformer_parse_max_tokens: int = 600
    transformer_refine_max_tokens: int = 2000
    transformer_max_refinements: int = 5
    dossier_max_chars: int = 3000


@lru_cache
def get_settings() -> Settings:
    """Return a cached Settings instance."""
    return Settings()


settings = get_settings()
