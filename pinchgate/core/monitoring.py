"""
Monitoring and Tracing Configuration Module.

Optional Logfire integration: when enabled it traces outbound HTTP calls (AI
gateway and webhooks) and SQLAlchemy statements. Monitoring never affects the
behavior of the components it observes; every failure here is logged and
swallowed.
"""

import logging
from typing import Optional

from .config import MonitoringConfig

logger = logging.getLogger(__name__)

# Set once Logfire has been configured for this process
_LOGFIRE_ACTIVE = False


def initialize_monitoring(config: MonitoringConfig) -> bool:
    """
    Initialize Logfire for monitoring and tracing.

    Args:
        config: Monitoring settings (``Settings.monitoring``).

    Returns:
        True when Logfire was configured, otherwise False.
    """
    global _LOGFIRE_ACTIVE

    if not config.enabled:
        logger.debug("Logfire monitoring is disabled. Set PINCHGATE_LOGFIRE_ENABLED=true to enable.")
        return False

    if not config.token:
        logger.warning(
            "Logfire is enabled but PINCHGATE_LOGFIRE_TOKEN is not set. "
            "Monitoring will not work until a token is provided."
        )
        return False

    try:
        import logfire

        logfire.configure(
            token=config.token,
            service_name=config.service_name,
            environment=config.environment,
        )

        try:
            logfire.instrument_httpx()
            logger.info("Logfire: HTTPX instrumentation enabled")
        except Exception as e:
            logger.warning(f"Failed to instrument HTTPX: {e}")

        try:
            logfire.instrument_sqlalchemy()
            logger.info("Logfire: SQLAlchemy instrumentation enabled")
        except Exception as e:
            logger.warning(f"Failed to instrument SQLAlchemy: {e}")

        logger.info(f"Logfire monitoring initialized: service={config.service_name}, environment={config.environment}")
        _LOGFIRE_ACTIVE = True
        return True
    except Exception as e:
        logger.error(f"Failed to initialize Logfire: {e}", exc_info=True)
        return False


def log_governance_run(task_key: str, status: str, finding_count: int, duration_ms: Optional[float] = None) -> None:
    """
    Emit a Logfire event for one governance task run.

    Args:
        task_key: The task catalog key
        status: The run status (delivered, empty, skipped, failed, delivery_failed)
        finding_count: Number of findings produced
        duration_ms: Wall time of the run in milliseconds
    """
    if not _LOGFIRE_ACTIVE:
        return

    try:
        import logfire

        logfire.info(
            "Governance task finished",
            task_key=task_key,
            status=status,
            finding_count=finding_count,
            duration_ms=duration_ms,
        )
    except Exception:
        logger.debug(f"Could not log governance run to Logfire: task={task_key}")
