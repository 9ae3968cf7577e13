"""Service configuration loaded from the environment."""

from typing import Annotated, Any, Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

DEFAULT_API_KEY_PREFIXES = ["sk-", "sk-proj-", "sk-None-", "sk-svcacct-"]
DEFAULT_ALLOWED_EXTENSIONS = ["pdf", "txt", "md", "docx", "xlsx", "pptx", "json", "csv"]
DEFAULT_MAX_FILE_SIZE = 512 * 1024 * 1024


class ServiceConfig(BaseSettings):
    """Service configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",  # Ignore extra environment variables
        populate_by_name=True,  # Allow both field names and validation aliases
    )

    # Environment configuration
    environment: Literal["development", "production"] = Field(
        default="development",
        description="The environment the service is running in",
        validation_alias="ENVIRONMENT",
    )

    # GCP configuration
    project_id: str = Field(default="", description="GCP project ID", validation_alias="PROJECT_ID")
    bucket_id: str = Field(default="", description="GCS bucket holding the record store", validation_alias="BUCKET_ID")
    client_id: str = Field(
        default="", description="Prefix for record store objects and secret names", validation_alias="CLIENT_ID"
    )

    # Deployment identity the secret key is derived from
    server_name: str = Field(default="localhost", validation_alias="SERVER_NAME")
    document_root: str = Field(default="/", validation_alias="DOCUMENT_ROOT")

    # OpenAI configuration
    openai_base_url: Optional[str] = Field(default=None, validation_alias="OPENAI_BASE_URL")
    api_key_prefixes: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: list(DEFAULT_API_KEY_PREFIXES),
        description="Accepted API key prefixes",
        validation_alias="API_KEY_PREFIXES",
    )
    key_validation_timeout: float = Field(default=10.0, gt=0, validation_alias="KEY_VALIDATION_TIMEOUT")

    # Run polling
    run_poll_interval: float = Field(default=1.0, ge=0, validation_alias="RUN_POLL_INTERVAL")
    run_max_poll_attempts: int = Field(default=60, gt=0, validation_alias="RUN_MAX_POLL_ATTEMPTS")

    # File ingestion
    upload_root: str = Field(default="./files", validation_alias="UPLOAD_ROOT")
    allowed_extensions: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: list(DEFAULT_ALLOWED_EXTENSIONS), validation_alias="ALLOWED_EXTENSIONS"
    )
    max_file_size: int = Field(default=DEFAULT_MAX_FILE_SIZE, gt=0, validation_alias="MAX_FILE_SIZE")
    idempotency_ttl: int = Field(default=300, gt=0, validation_alias="IDEMPOTENCY_TTL")

    # Chat widget rate limits, seconds per session
    send_rate_limit: float = Field(default=2.0, ge=0, validation_alias="SEND_RATE_LIMIT")
    token_rate_limit: float = Field(default=10.0, ge=0, validation_alias="TOKEN_RATE_LIMIT")

    # Local record store snapshot file, empty keeps it in memory only
    local_store_path: str = Field(default="", validation_alias="LOCAL_STORE_PATH")

    @field_validator("api_key_prefixes", "allowed_extensions", mode="before")
    @classmethod
    def _split_csv(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @field_validator("allowed_extensions")
    @classmethod
    def _normalize_extensions(cls, value: list[str]) -> list[str]:
        return [ext.lower().lstrip(".") for ext in value]

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production" and bool(self.project_id) and bool(self.bucket_id)

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return not self.is_production
