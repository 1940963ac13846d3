"""
Configuration management for the chat relay.

Handles environment-based configuration for development and production.
"""
import os
from pathlib import Path
from typing import Optional
from pydantic_settings import BaseSettings
from pydantic import field_validator, model_validator


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Debug - handle non-boolean values gracefully
    debug: bool = False

    @field_validator("debug", mode="before")
    @classmethod
    def parse_debug(cls, v):
        """Parse debug from environment, handling non-boolean values."""
        if isinstance(v, bool):
            return v
        if isinstance(v, str):
            return v.lower() in ("true", "1", "yes")
        debug_env = os.getenv("DEBUG", "false").lower()
        return debug_env in ("true", "1", "yes")

    # API
    api_host: str = os.getenv("API_HOST", "0.0.0.0")
    api_port: int = int(os.getenv("API_PORT", "8080"))

    # Database (single file in the working directory by default)
    database_path: str = os.getenv("DATABASE_PATH", "chat.db")
    database_echo: bool = os.getenv("DATABASE_ECHO", "false").lower() == "true"

    # CORS (comma-separated)
    cors_origins: str = os.getenv("CORS_ORIGINS", "*")

    # History
    history_limit: int = int(os.getenv("HISTORY_LIMIT", "10"))

    # Hub / session tunables (seconds)
    queue_capacity: int = int(os.getenv("QUEUE_CAPACITY", "128"))
    ping_interval: float = float(os.getenv("PING_INTERVAL", "25"))
    read_timeout: float = float(os.getenv("READ_TIMEOUT", "60"))
    write_timeout: float = float(os.getenv("WRITE_TIMEOUT", "10"))
    max_frame_bytes: int = int(os.getenv("MAX_FRAME_BYTES", str(1 << 20)))

    # Field bounds in code points after sanitize
    max_name_length: int = 32
    max_message_length: int = 512

    @model_validator(mode="after")
    def check_ping_interval(self):
        """Pings must arrive before the read deadline lapses."""
        if self.ping_interval >= self.read_timeout:
            raise ValueError(
                f"ping_interval ({self.ping_interval}) must be less than read_timeout ({self.read_timeout})"
            )
        return self

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"  # Ignore extra fields in .env file


# Global settings instance
settings = Settings()


def get_database_url(database_path: Optional[str] = None) -> str:
    """Get SQLite database URL."""
    db_path = Path(database_path or settings.database_path)
    if db_path.parent != Path("."):
        db_path.parent.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{db_path}"
