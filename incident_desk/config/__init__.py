"""
Configuration Module
====================

Application settings and configuration management using Pydantic.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="incident-desk", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/incidents",
        description="Database connection URL (async driver)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)
    store_max_retries: int = Field(
        default=5,
        description="Compare-and-swap retries before a write gives up",
        ge=1
    )

    # ========== Keyword / User Directory Files ==========
    keywords_path: Path = Field(
        default=Path("keywords.yaml"),
        description="Path to the keyword vocabulary YAML file"
    )
    users_path: Path = Field(
        default=Path("users.yaml"),
        description="Path to the user directory YAML file"
    )

    # ========== Chat Channels ==========
    primary_channel_id: str = Field(
        default="incidents@g.us",
        description="Primary incident channel (reports and summaries)"
    )
    team_channels: Dict[str, str] = Field(
        default_factory=lambda: {
            "it": "it@g.us",
            "man": "man@g.us",
            "ama": "ama@g.us",
            "rs": "rs@g.us",
            "seg": "seg@g.us",
        },
        description="Destination channel per team code"
    )

    # ========== Chat Transport ==========
    transport_webhook_url: Optional[str] = Field(
        default=None,
        description="Chat gateway webhook URL for outbound messages"
    )
    transport_timeout_seconds: float = Field(
        default=5.0,
        description="Timeout for chat gateway calls",
        ge=0.1,
        le=30
    )
    notification_concurrency: int = Field(
        default=4,
        description="Max concurrent deliveries per fan-out",
        ge=1
    )

    # ========== Reminders ==========
    reminder_interval_seconds: int = Field(
        default=3600,
        description="Seconds between reminder runs (0 disables)",
        ge=0
    )
    reminder_after_minutes: int = Field(
        default=60,
        description="Minimum ticket age before a reminder is sent",
        ge=0
    )
    display_timezone: str = Field(
        default="America/Hermosillo",
        description="IANA timezone used when rendering dates in messages"
    )

    # ========== CORS ==========
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:8080"],
        description="Allowed CORS origins"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "staging", "production"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @field_validator("team_channels")
    @classmethod
    def normalize_team_channels(cls, v: Dict[str, str]) -> Dict[str, str]:
        """Team codes are stored lowercase."""
        return {team.strip().lower(): channel for team, channel in v.items()}


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


# ========== Constants ==========

class TeamCode(str):
    """Department codes a ticket can be routed to."""
    IT = "it"               # Sistemas
    MAINTENANCE = "man"     # Mantenimiento
    HOUSEKEEPING = "ama"    # Ama de llaves (HSKP)
    ROOM_SERVICE = "rs"     # Room service
    SECURITY = "seg"        # Seguridad


class TicketStateValue(str):
    """Persisted ticket states."""
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class UserRole(str):
    """Roles in the user directory."""
    ADMIN = "admin"
    USER = "user"


# Pseudo-team used for comments written from the reporting side
ORIGIN_TEAM = "origin"


# ========== Team tables ==========

TEAM_CODES = [
    TeamCode.IT, TeamCode.MAINTENANCE, TeamCode.HOUSEKEEPING,
    TeamCode.ROOM_SERVICE, TeamCode.SECURITY
]

TEAM_LABELS = {
    TeamCode.IT: "IT (Sistemas)",
    TeamCode.MAINTENANCE: "Mantenimiento",
    TeamCode.HOUSEKEEPING: "Ama de llaves (HSKP)",
    TeamCode.ROOM_SERVICE: "Room service",
    TeamCode.SECURITY: "Seguridad",
}

TEAM_TAGS = {
    TeamCode.IT: "💻IT",
    TeamCode.MAINTENANCE: "🔧MANT",
    TeamCode.HOUSEKEEPING: "🔑HSKP",
    TeamCode.ROOM_SERVICE: "🍽️RS",
    TeamCode.SECURITY: "🛡️SEG",
}

# Unambiguous trigger words per team (matched before any fuzzy scoring)
DEFAULT_REFERENCES = {
    TeamCode.IT: ["it", "sistemas"],
    TeamCode.MAINTENANCE: ["mantenimiento", "manto", "mant"],
    TeamCode.HOUSEKEEPING: ["hskp", "ama de llaves"],
    TeamCode.ROOM_SERVICE: ["roomservice", "room service"],
    TeamCode.SECURITY: ["seguridad"],
}
