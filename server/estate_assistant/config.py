from functools import lru_cache
from pydantic import AnyHttpUrl
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Optional


class Settings(BaseSettings):
    server_port: int = 8000
    # Allow both localhost and 127.0.0.1 for local development
    allowed_origins: List[AnyHttpUrl] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]  # type: ignore

    # Gemini
    gemini_api_key: Optional[str] = None
    google_api_key: Optional[str] = None
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    chat_model: str = "gemini-2.0-flash"
    attachment_model: str = "gemini-1.5-flash"
    # Echo provider for local development without an API key
    mock_llm: bool = False
    request_timeout: float = 120.0
    log_level: str = "INFO"

    # Hosted relational store (Supabase Postgres in production)
    database_url: str = "sqlite+aiosqlite:///./estate_assistant.db"
    memory_mode: bool = False

    # Supabase access tokens
    supabase_jwt_secret: Optional[str] = None
    supabase_jwt_audience: str = "authenticated"

    # Client side: where the chat/upload endpoints live
    api_base_url: str = "http://localhost:8000"

    # pydantic-settings v2 style config: load env from both ../.env (repo root) and .env
    model_config = SettingsConfigDict(
        env_prefix="",
        case_sensitive=False,
        env_file=("../.env", ".env"),
        extra="ignore",  # ignore env vars not defined as fields
    )

    @property
    def llm_api_key(self) -> Optional[str]:
        return self.gemini_api_key or self.google_api_key


@lru_cache()
def get_settings() -> Settings:
    return Settings()
