from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # Database
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_db: str = "chatbot"
    postgres_user: str = "chatbot"
    db_password: str = "changeme"

    # Providers (OpenAI-compatible chat completion APIs)
    xai_api_key: str = ""
    xai_base_url: str = "https://api.x.ai/v1"
    xai_model: str = "grok-4"
    groq_api_key: str = ""
    groq_base_url: str = "https://api.groq.com/openai/v1"
    groq_model: str = "llama-3.1-70b-versatile"
    provider_timeout: float = 120.0

    # Chat defaults, used when a request carries no settings
    default_model: str = "grok"
    default_temperature: float = 0.7
    default_max_tokens: int = 2048
    default_system_prompt: str = (
        "You are a helpful, friendly, and knowledgeable AI assistant. "
        "Provide clear, accurate, and engaging responses. "
        "Be conversational but professional."
    )

    # Context assembly
    history_limit: int = 10
    memory_limit: int = 10

    # App
    log_level: str = "INFO"
    cors_origins: list[str] = ["http://localhost:5173", "http://localhost:3000"]

    class Config:
        env_file = ".env"
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
