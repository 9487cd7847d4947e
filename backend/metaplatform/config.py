"""
Environment configuration
Loads settings from environment variables and the .env file via Pydantic Settings.
"""
from typing import List, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings"""

    # Application
    app_name: str = "Meta Platform"
    app_version: str = "0.1.0"
    environment: str = "development"

    # Database
    database_url: str = "sqlite:///./metaplatform.db"
    database_pool_size: int = 20
    database_max_overflow: int = 40
    database_echo: bool = False

    # Redis
    redis_url: str = "redis://localhost:6379/0"
    redis_max_connections: int = 50

    # LLM
    anthropic_api_key: str = ""
    default_llm_model: str = "claude-sonnet-4-5-20250929"
    llm_temperature: float = 0.7
    llm_max_tokens: int = 4096
    llm_timeout: int = 60

    # Queues
    app_builds_queue: str = "app_builds"
    bot_messages_queue: str = "bot_messages"
    bot_responses_queue: str = "bot_responses"
    bot_errors_queue: str = "bot_errors"
    worker_poll_interval: float = 1.0
    chat_relay_enabled: bool = True

    # Application builds
    generated_apps_dir: str = "/app/generated-apps"
    build_docker_images: bool = True

    # Bot tools
    tool_http_timeout: float = 10.0
    tool_shell_cwd: str = "/app"
    tool_shell_timeout_ms: int = 30000
    tool_file_allowed_dirs: str = "/app/data,/tmp"

    # CORS
    cors_origins: str = "http://localhost:3000,http://localhost:5173"
    cors_allow_credentials: bool = True

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"

    # Monitoring
    metrics_enabled: bool = True
    sentry_dsn: Optional[str] = None
    sentry_traces_sample_rate: float = 0.1
    sentry_profiles_sample_rate: float = 0.1

    @property
    def cors_origins_list(self) -> List[str]:
        """CORS origins as a list"""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def tool_file_allowed_dirs_list(self) -> List[str]:
        return [d.strip() for d in self.tool_file_allowed_dirs.split(",") if d.strip()]

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


# Global settings instance
settings = Settings()
