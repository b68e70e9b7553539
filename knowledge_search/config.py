"""Configuration management using pydantic-settings."""

from enum import Enum
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Application environments."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Elasticsearch Configuration
    es_url: str = Field(..., description="Elasticsearch cluster URL")
    api_key: str = Field(..., description="Elasticsearch API key")
    index_name: str = Field(..., description="Index holding the searchable documents")
    usage_index: str = Field(
        default="gaig-usage",
        description="Index receiving telemetry events",
    )
    inference_id: str = Field(
        default=".rainbow-sprinkles-elastic",
        description="Inference endpoint used for chat completions",
    )
    request_timeout: float = Field(
        default=60.0,
        description="Timeout in seconds for upstream requests",
    )

    # Search Configuration
    query_template_path: Path = Field(
        default=Path("./elasticsearch/main.query"),
        description="JSON query template containing the {{query}} placeholder",
    )
    default_result_size: int = Field(default=10, description="Results returned when size is omitted")
    max_result_size: int = Field(default=100, description="Upper bound for the requested result size")
    facet_size: int = Field(default=5, description="Buckets returned per facet field")

    # Content Configuration
    system_prompt_path: Path = Field(
        default=Path("./system-prompt.txt"),
        description="System prompt served to the browser client",
    )
    questions_path: Path = Field(
        default=Path("./Questions.json"),
        description="Sample questions grouped by category",
    )

    # Server Configuration
    host: str = Field(default="0.0.0.0", description="Interface the web server binds to")
    port: int = Field(default=3000, description="Port the web server listens on")

    # Application Configuration
    telemetry_enabled: bool = Field(default=True, description="Record usage events")
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Application environment",
    )

    @field_validator("api_key")
    @classmethod
    def strip_placeholder_prefix(cls, value: str) -> str:
        """Drop the ``your_`` prefix left over from the sample .env file."""
        return value.removeprefix("your_")

    @field_validator("es_url")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @property
    def inference_stream_path(self) -> str:
        """Get the streaming chat completion path for the inference endpoint."""
        return f"/_inference/chat_completion/{self.inference_id}/_stream"


# Global settings instance - lazy loaded
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
