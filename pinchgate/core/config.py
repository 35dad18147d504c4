"""
Configuration Settings.

This module defines the pinchgate configuration using Pydantic's BaseSettings.
All values are read from environment variables (``PINCHGATE_*``) and an optional
``.env`` file; grouped views are exposed as properties so components receive a
small, typed config object instead of the whole settings model.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# =====================================================================
# Grouped Configuration Models
# =====================================================================


class GatewayConfig(BaseModel):
    """AI gateway connection settings."""

    url: Optional[str] = Field(default=None, alias="PINCHGATE_GATEWAY_URL", description="AI gateway base URL")
    token: Optional[str] = Field(default=None, alias="PINCHGATE_GATEWAY_TOKEN", description="Bearer token for the gateway")
    session_key: str = Field(
        default="pinchgate", alias="PINCHGATE_GATEWAY_SESSION_KEY", description="Default gateway session key"
    )
    timeout: float = Field(
        default=30.0, gt=0.0, alias="PINCHGATE_GATEWAY_TIMEOUT", description="Per-request timeout in seconds"
    )

    model_config = {"populate_by_name": True}


class WebhookConfig(BaseModel):
    """Outbound webhook delivery settings."""

    url: Optional[str] = Field(
        default=None,
        alias="PINCHGATE_WEBHOOK_URL",
        description="Webhook endpoint; defaults to <gateway url>/hooks/agent when unset",
    )
    token: Optional[str] = Field(default=None, alias="PINCHGATE_WEBHOOK_TOKEN", description="Bearer token for webhooks")
    channel: Optional[str] = Field(default=None, alias="PINCHGATE_WEBHOOK_CHANNEL", description="Delivery channel name")
    session_key: str = Field(
        default="pinchgate-webhooks", alias="PINCHGATE_WEBHOOK_SESSION_KEY", description="Webhook session key"
    )
    timeout: float = Field(default=5.0, gt=0.0, alias="PINCHGATE_WEBHOOK_TIMEOUT", description="Timeout in seconds")
    rate_limit_per_minute: int = Field(
        default=30, ge=1, alias="PINCHGATE_WEBHOOK_RATE_LIMIT", description="Maximum dispatches per minute"
    )

    model_config = {"populate_by_name": True}


class ApprovalConfig(BaseModel):
    """Approval queue settings."""

    ttl_seconds: float = Field(
        default=900.0,
        gt=0.0,
        le=7 * 86400.0,
        alias="PINCHGATE_APPROVAL_TTL_SECONDS",
        description="How long a queued invocation waits for a decision",
    )
    exempt_actors: List[str] = Field(
        default_factory=list,
        alias="PINCHGATE_APPROVAL_EXEMPT_ACTORS",
        description="Actor ids that bypass the approval gate",
    )

    model_config = {"populate_by_name": True}


class CircuitConfig(BaseModel):
    """Circuit breaker settings for the AI gateway."""

    failure_threshold: int = Field(
        default=3, ge=1, alias="PINCHGATE_CIRCUIT_FAILURE_THRESHOLD", description="Consecutive failures before opening"
    )
    open_duration: float = Field(
        default=60.0, gt=0.0, alias="PINCHGATE_CIRCUIT_OPEN_SECONDS", description="Cooldown before a trial call"
    )

    model_config = {"populate_by_name": True}


class GovernanceConfig(BaseModel):
    """Governance task limits."""

    max_items: int = Field(
        default=50, ge=1, le=200, alias="PINCHGATE_GOVERNANCE_MAX_ITEMS", description="Per-task unit-of-work cap"
    )
    time_budget: float = Field(
        default=120.0,
        gt=0.0,
        alias="PINCHGATE_GOVERNANCE_TIME_BUDGET",
        description="Soft per-task time budget in seconds; tasks stop gathering after it",
    )
    task_timeout: float = Field(
        default=300.0, gt=0.0, alias="PINCHGATE_GOVERNANCE_TASK_TIMEOUT", description="Hard per-task timeout in seconds"
    )
    ai_sample_size: int = Field(
        default=10, ge=1, alias="PINCHGATE_GOVERNANCE_AI_SAMPLE_SIZE", description="Items sent to the AI per run"
    )
    stale_after_days: int = Field(
        default=180, ge=1, alias="PINCHGATE_GOVERNANCE_STALE_AFTER_DAYS", description="Content freshness threshold"
    )

    model_config = {"populate_by_name": True}


class MonitoringConfig(BaseModel):
    """Logfire monitoring settings."""

    enabled: bool = Field(default=False, alias="PINCHGATE_LOGFIRE_ENABLED", description="Enable Logfire tracing")
    token: Optional[str] = Field(default=None, alias="PINCHGATE_LOGFIRE_TOKEN", description="Logfire write token")
    service_name: str = Field(default="pinchgate", alias="PINCHGATE_LOGFIRE_SERVICE_NAME", description="Service name")
    environment: str = Field(
        default="development", alias="PINCHGATE_LOGFIRE_ENVIRONMENT", description="Deployment environment"
    )

    model_config = {"populate_by_name": True}


# =====================================================================
# Main Settings Class
# =====================================================================


class Settings(BaseSettings):
    """
    Application settings model.

    Every property is bound from environment variables and the ``.env`` file.
    Grouped views (``gateway``, ``webhook`` ...) re-validate the flat field set
    into the smaller config models above.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=True,
        populate_by_name=True,
    )

    # =====================================================================
    # Process
    # =====================================================================
    database_url: str = Field(
        default="sqlite+aiosqlite:///pinchgate.db",
        alias="PINCHGATE_DATABASE_URL",
        description="Async SQLAlchemy URL for queue items, circuit state, options and audit records",
    )
    log_level: str = Field(default="INFO", alias="PINCHGATE_LOG_LEVEL", description="Console log level")
    log_format: str = Field(default="detailed", alias="PINCHGATE_LOG_FORMAT", description="simple, detailed or json")
    log_file_dir: Optional[str] = Field(
        default=None, alias="PINCHGATE_LOG_FILE_DIR", description="Directory for the log file; unset disables it"
    )
    abilities_factory: Optional[str] = Field(
        default=None,
        alias="PINCHGATE_ABILITIES",
        description="Dotted path 'module:callable' returning the abilities to register",
    )
    content_store_factory: Optional[str] = Field(
        default=None,
        alias="PINCHGATE_CONTENT_STORE",
        description="Dotted path 'module:callable' returning the content store used by governance tasks",
    )

    # =====================================================================
    # AI Gateway / Webhooks
    # =====================================================================
    gateway_url: Optional[str] = Field(default=None, alias="PINCHGATE_GATEWAY_URL")
    gateway_token: Optional[str] = Field(default=None, alias="PINCHGATE_GATEWAY_TOKEN")
    gateway_session_key: str = Field(default="pinchgate", alias="PINCHGATE_GATEWAY_SESSION_KEY")
    gateway_timeout: float = Field(default=30.0, alias="PINCHGATE_GATEWAY_TIMEOUT")
    webhook_url: Optional[str] = Field(default=None, alias="PINCHGATE_WEBHOOK_URL")
    webhook_token: Optional[str] = Field(default=None, alias="PINCHGATE_WEBHOOK_TOKEN")
    webhook_channel: Optional[str] = Field(default=None, alias="PINCHGATE_WEBHOOK_CHANNEL")
    webhook_session_key: str = Field(default="pinchgate-webhooks", alias="PINCHGATE_WEBHOOK_SESSION_KEY")
    webhook_timeout: float = Field(default=5.0, alias="PINCHGATE_WEBHOOK_TIMEOUT")
    webhook_rate_limit: int = Field(default=30, alias="PINCHGATE_WEBHOOK_RATE_LIMIT")

    # =====================================================================
    # Approvals / Circuit Breaker / Governance
    # =====================================================================
    approval_ttl_seconds: float = Field(default=900.0, alias="PINCHGATE_APPROVAL_TTL_SECONDS")
    approval_exempt_actors: List[str] = Field(default_factory=list, alias="PINCHGATE_APPROVAL_EXEMPT_ACTORS")
    circuit_failure_threshold: int = Field(default=3, alias="PINCHGATE_CIRCUIT_FAILURE_THRESHOLD")
    circuit_open_seconds: float = Field(default=60.0, alias="PINCHGATE_CIRCUIT_OPEN_SECONDS")
    governance_max_items: int = Field(default=50, alias="PINCHGATE_GOVERNANCE_MAX_ITEMS")
    governance_time_budget: float = Field(default=120.0, alias="PINCHGATE_GOVERNANCE_TIME_BUDGET")
    governance_task_timeout: float = Field(default=300.0, alias="PINCHGATE_GOVERNANCE_TASK_TIMEOUT")
    governance_ai_sample_size: int = Field(default=10, alias="PINCHGATE_GOVERNANCE_AI_SAMPLE_SIZE")
    governance_stale_after_days: int = Field(default=180, alias="PINCHGATE_GOVERNANCE_STALE_AFTER_DAYS")

    # =====================================================================
    # Monitoring
    # =====================================================================
    logfire_enabled: bool = Field(default=False, alias="PINCHGATE_LOGFIRE_ENABLED")
    logfire_token: Optional[str] = Field(default=None, alias="PINCHGATE_LOGFIRE_TOKEN")
    logfire_service_name: str = Field(default="pinchgate", alias="PINCHGATE_LOGFIRE_SERVICE_NAME")
    logfire_environment: str = Field(default="development", alias="PINCHGATE_LOGFIRE_ENVIRONMENT")

    # =====================================================================
    # Computed Properties (Grouped Configurations)
    # =====================================================================

    @property
    def gateway(self) -> GatewayConfig:
        """Get AI gateway configuration."""
        return GatewayConfig.model_validate(self.model_dump(by_alias=True))

    @property
    def webhook(self) -> WebhookConfig:
        """Get webhook configuration; the URL falls back to the gateway hook endpoint."""
        cfg = WebhookConfig.model_validate(self.model_dump(by_alias=True))
        if cfg.url is None and self.gateway_url:
            cfg = cfg.model_copy(update={"url": f"{self.gateway_url.rstrip('/')}/hooks/agent"})
        if cfg.token is None and self.gateway_token:
            cfg = cfg.model_copy(update={"token": self.gateway_token})
        return cfg

    @property
    def approvals(self) -> ApprovalConfig:
        """Get approval queue configuration."""
        return ApprovalConfig.model_validate(self.model_dump(by_alias=True))

    @property
    def circuit(self) -> CircuitConfig:
        """Get circuit breaker configuration."""
        return CircuitConfig.model_validate(self.model_dump(by_alias=True))

    @property
    def governance(self) -> GovernanceConfig:
        """Get governance task limits."""
        return GovernanceConfig.model_validate(self.model_dump(by_alias=True))

    @property
    def monitoring(self) -> MonitoringConfig:
        """Get Logfire monitoring configuration."""
        return MonitoringConfig.model_validate(self.model_dump(by_alias=True))


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()
