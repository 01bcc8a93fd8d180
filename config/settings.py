"""
Centralized configuration for the chat backend.

All settings are loaded from environment variables via .env file.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # LLM provider selection
    llm_provider: str = Field(default="openai")  # openai | azure
    max_tokens: int = Field(default=1024)
    temperature: float = Field(default=0.3)

    # OpenAI
    openai_api_key: Optional[str] = Field(default=None)
    openai_base_url: Optional[str] = Field(default=None)
    openai_llm_model: str = Field(default="gpt-4o-mini")

    # Azure OpenAI
    azure_openai_endpoint: Optional[str] = Field(default=None)
    azure_openai_key: Optional[str] = Field(default=None)
    azure_openai_api_version: str = Field(default="2024-06-01")
    azure_openai_model_name: Optional[str] = Field(default=None)

    # Transcript store; in-memory when unset
    database_url: Optional[str] = Field(default=None)
    db_pool_size: int = Field(default=5)
    db_max_overflow: int = Field(default=10)
    conversation_page_size: int = Field(default=100)

    # API
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8080, validation_alias=AliasChoices("api_port", "port"))
    api_title: str = Field(default="Chat History API")
    api_version: str = Field(default="1.0.0")
    cors_origins: str = Field(default="*")

    # Logging
    log_level: str = Field(default="INFO")
    debug: bool = Field(default=False)

    @property
    def is_azure(self) -> bool:
        return self.llm_provider.lower() == "azure"

    @property
    def llm_model_id(self) -> str:
        if self.is_azure and self.azure_openai_model_name:
            return self.azure_openai_model_name
        return self.openai_llm_model

    @property
    def cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


@lru_cache()
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
