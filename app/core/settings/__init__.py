"""Domain-specific configuration models."""

from app.core.settings.app_config import AppConfig
from app.core.settings.auth_config import AuthConfig
from app.core.settings.cache_config import CacheConfig
from app.core.settings.conversation_config import ConversationConfig
from app.core.settings.database_config import DatabaseConfig
from app.core.settings.llm_config import LLMConfig
from app.core.settings.server_config import ServerConfig
from app.core.settings.summarization_config import SummarizationConfig

__all__ = [
    "AppConfig",
    "AuthConfig",
    "CacheConfig",
    "ConversationConfig",
    "DatabaseConfig",
    "LLMConfig",
    "ServerConfig",
    "SummarizationConfig",
]
