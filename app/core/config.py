"""Application configuration using Pydantic Settings V2."""

from functools import cached_property
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from app.core.settings import (
    AppConfig,
    AuthConfig,
    CacheConfig,
    ConversationConfig,
    DatabaseConfig,
    LLMConfig,
    ServerConfig,
    SummarizationConfig,
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Flat fields are loaded directly from environment variables.
    Domain properties provide grouped access (e.g. settings.llm.provider).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # LLM Provider
    llm_provider: Literal["openai", "anthropic"] = Field(
        default="anthropic",
        description="LLM provider to use",
    )
    llm_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        le=300,
        description="Caller-enforced timeout for a single LLM call",
    )

    # OpenAI
    openai_api_key: SecretStr = Field(
        default=SecretStr(""),
        description="OpenAI API key",
    )
    openai_model: str = Field(
        default="gpt-4o",
        description="OpenAI advisor model name",
    )
    openai_summary_model: str = Field(
        default="gpt-4o-mini",
        description="OpenAI model for summaries, objectives and notifications",
    )

    # Anthropic
    anthropic_api_key: SecretStr = Field(
        default=SecretStr(""),
        description="Anthropic API key",
    )
    anthropic_model: str = Field(
        default="claude-sonnet-4-20250514",
        description="Anthropic advisor model name",
    )
    anthropic_summary_model: str = Field(
        default="claude-3-5-haiku-latest",
        description="Anthropic model for summaries, objectives and notifications",
    )

    # App
    app_name: str = Field(
        default="advisor-context-service",
        description="Application name",
    )
    app_env: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Application environment",
    )
    debug: bool = Field(
        default=True,
        description="Debug mode",
    )

    # Server
    host: str = Field(
        default="0.0.0.0",
        description="Server host",
    )
    port: int = Field(
        default=8004,
        ge=1,
        le=65535,
        description="Server port",
    )

    # JWT Auth (verification only; tokens are issued elsewhere)
    jwt_secret_key: SecretStr = Field(
        description="JWT secret key for token verification",
    )
    jwt_algorithm: str = Field(
        default="HS256",
        description="JWT signing algorithm",
    )

    # Database
    database_url: SecretStr = Field(
        description="Async database URL (mysql+aiomysql://...)",
    )

    # Conversation lifecycle
    conversation_active_window_minutes: int = Field(
        default=240,
        ge=1,
        le=7 * 24 * 60,
        description="Minutes after the last message a conversation stays resumable",
    )

    # Caches
    context_cache_ttl_seconds: int = Field(
        default=600,
        ge=1,
        le=86400,
        description="TTL for assembled advisor context",
    )
    profile_cache_ttl_seconds: int = Field(
        default=300,
        ge=1,
        le=86400,
        description="TTL for the greeting profile snapshot",
    )

    # Summarization
    summarization_batch_size: int = Field(
        default=5,
        ge=1,
        le=100,
        description="Conversations summarized per catch-up sweep",
    )
    summarization_sweep_interval_seconds: int = Field(
        default=300,
        ge=5,
        le=86400,
        description="Seconds between catch-up sweeps",
    )
    summarization_sweep_enabled: bool = Field(
        default=True,
        description="Run the periodic catch-up sweep in the app lifespan",
    )
    summarization_recent_summaries: int = Field(
        default=3,
        ge=0,
        le=10,
        description="Prior conversation summaries fed to the master-summary merge",
    )

    # --- Domain properties ---

    @cached_property
    def llm(self) -> LLMConfig:
        """LLM provider configuration."""
        return LLMConfig(
            provider=self.llm_provider,
            openai_api_key=self.openai_api_key,
            openai_model=self.openai_model,
            openai_summary_model=self.openai_summary_model,
            anthropic_api_key=self.anthropic_api_key,
            anthropic_model=self.anthropic_model,
            anthropic_summary_model=self.anthropic_summary_model,
            timeout_seconds=self.llm_timeout_seconds,
        )

    @cached_property
    def app(self) -> AppConfig:
        """Application environment configuration."""
        return AppConfig(
            name=self.app_name,
            env=self.app_env,
            debug=self.debug,
        )

    @cached_property
    def server(self) -> ServerConfig:
        """Server configuration."""
        return ServerConfig(
            host=self.host,
            port=self.port,
        )

    @cached_property
    def auth(self) -> AuthConfig:
        """JWT verification configuration."""
        return AuthConfig(
            secret_key=self.jwt_secret_key,
            algorithm=self.jwt_algorithm,
        )

    @cached_property
    def database(self) -> DatabaseConfig:
        """Database connection configuration."""
        return DatabaseConfig(url=self.database_url)

    @cached_property
    def conversation(self) -> ConversationConfig:
        """Conversation lifecycle configuration."""
        return ConversationConfig(
            active_window_minutes=self.conversation_active_window_minutes,
        )

    @cached_property
    def cache(self) -> CacheConfig:
        """Per-student cache configuration."""
        return CacheConfig(
            context_ttl_seconds=self.context_cache_ttl_seconds,
            profile_ttl_seconds=self.profile_cache_ttl_seconds,
        )

    @cached_property
    def summarization(self) -> SummarizationConfig:
        """Background summarization configuration."""
        return SummarizationConfig(
            batch_size=self.summarization_batch_size,
            sweep_interval_seconds=self.summarization_sweep_interval_seconds,
            sweep_enabled=self.summarization_sweep_enabled,
            recent_summaries=self.summarization_recent_summaries,
        )

    # --- Convenience properties (delegate to domain configs) ---

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app.is_development


# Global settings instance
settings = Settings()
