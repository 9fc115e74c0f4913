"""Configuration management with pydantic-settings and validation."""

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings


# Fields that are optional (gateway starts without them)
OPTIONAL_FIELDS = {
    "kroger_client_id",
    "kroger_client_secret",
    "kroger_redirect_uri",
    "kroger_location_id",
    "anthropic_api_key",
}


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database Configuration
    database_url: str

    # Kroger API (optional, endpoints report not_configured without them)
    kroger_client_id: str = ""
    kroger_client_secret: str = ""
    kroger_redirect_uri: str = ""
    kroger_location_id: str = ""
    kroger_scopes: str = "cart.basic:write product.compact profile.compact"
    kroger_timeout_seconds: float = 15.0
    product_cache_ttl_hours: int = 24

    # Anthropic Configuration (meal planner)
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-5-20250929"

    # HTTP surface
    cors_origins: str = "*"
    frontend_url: str = "http://localhost:3000"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @field_validator("database_url", mode="before")
    @classmethod
    def fix_database_url(cls, v):
        """Hosted Postgres hands out postgres:// but SQLAlchemy requires postgresql://."""
        if isinstance(v, str) and v.startswith("postgres://"):
            return v.replace("postgres://", "postgresql://", 1)
        return v

    @field_validator("database_url", mode="before")
    @classmethod
    def check_not_empty(cls, v):
        """Validate that required environment variables are not empty."""
        if v is None:
            raise ValueError("Required environment variable is not set")
        if isinstance(v, str) and v.strip() == "":
            raise ValueError("Required environment variable is empty")
        return v

    @field_validator(*OPTIONAL_FIELDS, mode="before")
    @classmethod
    def strip_optional(cls, v):
        """Credentials pasted into .env files often carry stray whitespace."""
        if v is None:
            return ""
        return v.strip() if isinstance(v, str) else v

    @property
    def kroger_configured(self) -> bool:
        return bool(self.kroger_client_id and self.kroger_client_secret)

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


@lru_cache
def get_settings() -> Settings:
    """Load and validate settings from environment once per process.

    Raises:
        ValidationError: If required environment variables are missing or invalid.
    """
    return Settings()
