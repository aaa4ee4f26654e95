"""
Configuration management for the trip sync engine.
Supports multiple search providers: OpenAI, OpenRouter, Ollama, Gemini.
"""
from pydantic_settings import BaseSettings
from typing import Literal


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Namespace shared by every collection key
    app_id: str = "cologne-trip"

    # Search / LLM Configuration
    llm_provider: Literal["openai", "openrouter", "ollama", "gemini", "mock"] = "mock"
    llm_api_key: str = ""
    llm_base_url: str = ""
    llm_model: str = "gemini-2.5-flash"
    llm_temperature: float = 0.7
    llm_max_tokens: int = 2000

    # Search prompt context
    search_city: str = "Köln"
    search_audience: str = "Teenager (14 Jahre)"
    search_timeout_seconds: float = 20.0
    transit_search_term: str = "KVB Haltestelle"

    # Presence
    position_min_interval_seconds: float = 0.0
    position_high_accuracy: bool = True
    presence_min_write_interval_seconds: float = 0.0

    # Server Configuration
    host: str = "127.0.0.1"
    port: int = 8000
    debug: bool = True

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


# Global settings instance
settings = Settings()


def get_llm_config() -> dict:
    """Get LLM configuration based on provider."""
    config = {
        "provider": settings.llm_provider,
        "api_key": settings.llm_api_key,
        "model": settings.llm_model,
        "temperature": settings.llm_temperature,
        "max_tokens": settings.llm_max_tokens,
    }

    # Set base URL based on provider
    if settings.llm_provider == "ollama":
        config["base_url"] = settings.llm_base_url or "http://localhost:11434/v1"
    elif settings.llm_provider == "openrouter":
        config["base_url"] = settings.llm_base_url or "https://openrouter.ai/api/v1"
    elif settings.llm_provider == "gemini":
        config["base_url"] = settings.llm_base_url or "https://generativelanguage.googleapis.com/v1beta"
    else:  # openai
        config["base_url"] = settings.llm_base_url or "https://api.openai.com/v1"

    return config
