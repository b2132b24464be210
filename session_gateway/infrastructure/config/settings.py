"""
Unified Configuration Settings - Single Source of Truth
=======================================================
All application configuration using Pydantic Settings.
Created once at the composition root and passed down explicitly.
"""

from pydantic_settings import BaseSettings
from pydantic import Field, field_validator, model_validator
from typing import List, Optional
from enum import Enum


class LogLevel(str, Enum):
    """Logging levels"""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


class TransportMode(str, Enum):
    """Which transport client implementation backs each session"""
    SIMULATED = "simulated"
    BRIDGE = "bridge"


class Environment(str, Enum):
    DEVELOPMENT = "development"
    PRODUCTION = "production"


# === SESSION LIFECYCLE CONFIGURATION ===

class SessionSettings(BaseSettings):
    """Credential lifetime and blocking-wait bounds"""
    credential_ttl_seconds: float = Field(default=60.0, gt=0, description="Lifetime of an issued credential")
    creation_timeout_seconds: float = Field(default=30.0, gt=0, description="Max wait for credential/connected on create")
    refresh_timeout_seconds: float = Field(default=15.0, gt=0, description="Max wait for a regenerated credential on read")
    strict_refresh_timeout: bool = Field(
        default=False,
        description="Raise a timeout to the reader when refresh times out instead of returning the stale credential"
    )

    class Config:
        env_prefix = "SESSION_"


# === WEBHOOK CONFIGURATION ===

class WebhookSettings(BaseSettings):
    """Event delivery target"""
    enabled: bool = Field(default=False, description="Enable webhook delivery")
    url: str = Field(default="", description="Delivery endpoint URL")
    retry_attempts: int = Field(default=3, ge=1, description="Total delivery attempts per event")
    retry_delay_seconds: float = Field(default=1.0, ge=0, description="Base delay, multiplied by attempt number")
    request_timeout_seconds: float = Field(default=10.0, gt=0, description="Per-attempt HTTP timeout")
    recent_events_capacity: int = Field(default=10, ge=1, description="Size of the recent-events ring buffer")

    @property
    def is_active(self) -> bool:
        return self.enabled and bool(self.url)

    class Config:
        env_prefix = "WEBHOOK_"


# === TRANSPORT CONFIGURATION ===

class TransportSettings(BaseSettings):
    """Transport client selection and tuning"""
    mode: TransportMode = Field(default=TransportMode.SIMULATED)

    # Bridge transport
    bridge_url: str = Field(default="ws://localhost:8085", description="Protocol bridge WebSocket base URL")
    bridge_send_timeout_seconds: float = Field(default=30.0, gt=0)
    bridge_ping_interval_seconds: float = Field(default=20.0, gt=0)

    # Simulated transport
    simulated_credential_delay_seconds: float = Field(default=0.1, ge=0)
    simulated_connect_delay_seconds: Optional[float] = Field(
        default=2.0, description="Delay before the simulated account connects; None never connects"
    )
    simulated_account_id: str = Field(default="1234567890")
    simulated_display_name: str = Field(default="Test User")

    @model_validator(mode='after')
    def validate_bridge_url(self):
        if self.mode == TransportMode.BRIDGE and not self.bridge_url.startswith(("ws://", "wss://")):
            raise ValueError(f"Bridge transport requires a ws:// or wss:// URL, got '{self.bridge_url}'")
        return self

    class Config:
        env_prefix = "TRANSPORT_"


# === PERSISTENCE CONFIGURATION ===

class PersistenceSettings(BaseSettings):
    """Metadata and credential material location"""
    data_path: str = Field(default="sessions_data", description="Root directory for metadata and credential material")
    metadata_filename: str = Field(default="sessions-metadata.json")

    @field_validator('metadata_filename')
    @classmethod
    def validate_filename(cls, v):
        if not v or '/' in v or '\\' in v:
            raise ValueError(f"metadata_filename must be a bare file name, got '{v}'")
        return v

    class Config:
        env_prefix = "PERSISTENCE_"


# === API CONFIGURATION ===

class ApiSettings(BaseSettings):
    """HTTP layer configuration"""
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3000)
    api_key: Optional[str] = Field(default=None, description="Require this key on all routes except /health")
    environment: Environment = Field(default=Environment.DEVELOPMENT)
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])

    class Config:
        env_prefix = "API_"


# === LOGGING CONFIGURATION ===

class LoggingSettings(BaseSettings):
    """Logging configuration"""
    level: LogLevel = Field(default=LogLevel.INFO)
    file_enabled: bool = Field(default=False)
    console_enabled: bool = Field(default=True)
    structured_logging: bool = Field(default=True)
    log_dir: str = Field(default="logs")
    max_file_size_mb: int = Field(default=100)
    backup_count: int = Field(default=5)

    class Config:
        env_prefix = "LOG_"


# === MAIN APPLICATION SETTINGS ===

class AppSettings(BaseSettings):
    """Main application settings - Single Source of Truth"""

    app_name: str = Field(default="Session Gateway")
    version: str = Field(default="1.0.0")
    debug: bool = Field(default=False)

    sessions: SessionSettings = Field(default_factory=SessionSettings)
    webhook: WebhookSettings = Field(default_factory=WebhookSettings)
    transport: TransportSettings = Field(default_factory=TransportSettings)
    persistence: PersistenceSettings = Field(default_factory=PersistenceSettings)
    api: ApiSettings = Field(default_factory=ApiSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    class Config:
        env_file = ".env"
        env_nested_delimiter = "__"  # Allows WEBHOOK__URL=https://...
        case_sensitive = False
        extra = "ignore"
