"""
Configuration Settings.

This module defines the agent loop configuration using Pydantic's BaseSettings.
It automatically loads all configuration from environment variables and .env file
without explicit dotenv loading.
"""

from typing import Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# =====================================================================
# Grouped Configuration Models
# =====================================================================


class LoggingConfig(BaseModel):
    """Console and file logging configuration."""

    level: str = Field(
        default="INFO",
        alias="AGENT_LOOP_LOG_LEVEL",
        description="Console log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    format: str = Field(
        default="detailed",
        alias="AGENT_LOOP_LOG_FORMAT",
        description="Line format: simple, detailed or json",
    )
    file_dir: str = Field(default="logs", alias="AGENT_LOOP_LOG_FILE_DIR", description="Directory of agent_loop.log")
    enable_file: bool = Field(
        default=False,
        alias="AGENT_LOOP_ENABLE_FILE_LOGGING",
        description="Also write every record at DEBUG to a log file",
    )

    model_config = {"populate_by_name": True}


class ReflectionPolicy(BaseModel):
    """Heuristics used by the reflect phase to score a turn and decide on continuation."""

    success_confidence: float = Field(
        default=0.9,
        ge=0.0,
        le=1.0,
        alias="AGENT_LOOP_SUCCESS_CONFIDENCE",
        description="Confidence when every tool of the turn succeeded",
    )
    error_confidence: float = Field(
        default=0.3,
        ge=0.0,
        le=1.0,
        alias="AGENT_LOOP_ERROR_CONFIDENCE",
        description="Confidence when at least one tool of the turn failed",
    )
    no_tools_confidence: float = Field(
        default=0.7,
        ge=0.0,
        le=1.0,
        alias="AGENT_LOOP_NO_TOOLS_CONFIDENCE",
        description="Confidence when the turn invoked no tools",
    )
    default_confidence: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        alias="AGENT_LOOP_DEFAULT_CONFIDENCE",
        description="Confidence when tools were invoked but none has completed yet",
    )
    continue_below: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        alias="AGENT_LOOP_CONTINUE_BELOW",
        description="A turn with errors asks for another turn when its confidence is below this value",
    )

    model_config = {"populate_by_name": True}


class RedisLockConfig(BaseModel):
    """Distributed per-session turn lock configuration."""

    ttl_ms: int = Field(
        default=60000, gt=0, alias="AGENT_LOOP_LOCK_TTL_MS", description="Lock expiry time in milliseconds"
    )
    timeout_ms: int = Field(
        default=60000,
        gt=0,
        alias="AGENT_LOOP_LOCK_TIMEOUT_MS",
        description="Maximum time to wait for lock acquisition in milliseconds",
    )
    retry_interval_ms: int = Field(
        default=500,
        gt=0,
        alias="AGENT_LOOP_LOCK_RETRY_INTERVAL_MS",
        description="Interval between lock acquisition attempts in milliseconds",
    )

    model_config = {"populate_by_name": True}


# =====================================================================
# Main Settings Class
# =====================================================================


class Settings(BaseSettings):
    """
    Agent loop settings model.

    All properties are automatically bound from environment variables and .env file.
    Pydantic's BaseSettings handles dotenv loading automatically via model_config.
    """

    # =====================================================================
    # Pydantic Configuration
    # =====================================================================
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=True,
        populate_by_name=True,
    )

    # =====================================================================
    # Logging Configuration
    # =====================================================================
    log_level: str = Field(
        default="INFO",
        description="Agent loop logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
        alias="AGENT_LOOP_LOG_LEVEL",
    )
    log_format: str = Field(default="detailed", alias="AGENT_LOOP_LOG_FORMAT")
    log_file_dir: str = Field(default="logs", alias="AGENT_LOOP_LOG_FILE_DIR")
    enable_file_logging: bool = Field(default=False, alias="AGENT_LOOP_ENABLE_FILE_LOGGING")

    # =====================================================================
    # Persistence Configuration
    # =====================================================================
    redis_url: Optional[str] = Field(
        default=None,
        description="Redis connection URL. When unset, session state lives in an in-process registry",
        alias="AGENT_LOOP_REDIS_URL",
    )
    key_prefix: str = Field(
        default="agent-loop",
        description="Prefix of the store keys holding session state",
        alias="AGENT_LOOP_KEY_PREFIX",
    )
    state_ttl_seconds: int = Field(
        default=3600,
        gt=0,
        description="Time-to-live of a persisted session state, refreshed on every write",
        alias="AGENT_LOOP_STATE_TTL_SECONDS",
    )

    # =====================================================================
    # Cleanup Sweeper Configuration
    # =====================================================================
    staleness_seconds: int = Field(
        default=1800,
        gt=0,
        description="Inactive sessions not updated for this long are deleted by the sweeper",
        alias="AGENT_LOOP_STALENESS_SECONDS",
    )
    sweep_interval_seconds: int = Field(
        default=600,
        gt=0,
        description="Interval between two cleanup sweeps",
        alias="AGENT_LOOP_SWEEP_INTERVAL_SECONDS",
    )

    # =====================================================================
    # Flat fields backing the grouped configurations below
    # =====================================================================
    lock_ttl_ms: int = Field(default=60000, alias="AGENT_LOOP_LOCK_TTL_MS")
    lock_timeout_ms: int = Field(default=60000, alias="AGENT_LOOP_LOCK_TIMEOUT_MS")
    lock_retry_interval_ms: int = Field(default=500, alias="AGENT_LOOP_LOCK_RETRY_INTERVAL_MS")

    success_confidence: float = Field(default=0.9, alias="AGENT_LOOP_SUCCESS_CONFIDENCE")
    error_confidence: float = Field(default=0.3, alias="AGENT_LOOP_ERROR_CONFIDENCE")
    no_tools_confidence: float = Field(default=0.7, alias="AGENT_LOOP_NO_TOOLS_CONFIDENCE")
    default_confidence: float = Field(default=0.5, alias="AGENT_LOOP_DEFAULT_CONFIDENCE")
    continue_below: float = Field(default=0.5, alias="AGENT_LOOP_CONTINUE_BELOW")

    # =====================================================================
    # Computed Properties (Grouped Configurations)
    # =====================================================================

    @property
    def logging(self) -> LoggingConfig:
        """Get the logging configuration from environment variables."""
        return LoggingConfig.model_validate(self.model_dump(by_alias=True))

    @property
    def reflection(self) -> ReflectionPolicy:
        """Get the reflect phase heuristics from environment variables."""
        return ReflectionPolicy.model_validate(self.model_dump(by_alias=True))

    @property
    def redis_lock(self) -> RedisLockConfig:
        """Get the distributed lock configuration from environment variables."""
        return RedisLockConfig.model_validate(self.model_dump(by_alias=True))


settings = Settings()
