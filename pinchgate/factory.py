"""Application wiring.

``create_application`` builds every component from ``Settings`` and returns
them as one ``Application`` bundle. Hosts pass their abilities and content
store directly, or name factories for them in settings
(``PINCHGATE_ABILITIES`` / ``PINCHGATE_CONTENT_STORE`` as ``module:callable``).
"""

from __future__ import annotations

import importlib
import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncEngine

from .abilities.base import Ability
from .abilities.cache import AbilityResultCache
from .abilities.dispatcher import AbilityDispatcher
from .abilities.executor import AbilityExecutor
from .abilities.registry import AbilityRegistry
from .abilities.toggles import AbilityToggles
from .approvals.queue import ApprovalQueue
from .audit.log import AuditLog
from .core.config import Settings, get_settings
from .features import FeatureFlags
from .gateway.client import GatewayClient
from .governance.base import GovernanceTask
from .governance.catalog import build_default_catalog
from .governance.content import ContentStore
from .governance.delivery import FindingsDelivery
from .governance.runner import GovernanceRunner
from .repos.sql import SqlRepoBundle, build_sql_repos, create_all, create_engine, create_sessionmaker
from .resilience.circuit_breaker import CircuitBreaker
from .scheduler import Scheduler
from .webhooks.dispatcher import WebhookDispatcher

logger = logging.getLogger(__name__)

GATEWAY_CIRCUIT = "ai_gateway"


def load_object(path: str) -> Any:
    """Import ``module:attribute`` (or ``module.attribute``) and return the attribute."""
    module_name, sep, attr = path.partition(":")
    if not sep:
        module_name, _, attr = path.rpartition(".")
    if not module_name or not attr:
        raise ValueError(f"expected 'module:attribute', got {path!r}")
    return getattr(importlib.import_module(module_name), attr)


@dataclass
class Application:
    """Every wired component, plus the resources to release on shutdown."""

    settings: Settings
    engine: AsyncEngine
    repos: SqlRepoBundle
    audit: AuditLog
    flags: FeatureFlags
    registry: AbilityRegistry
    toggles: AbilityToggles
    cache: AbilityResultCache
    breaker: CircuitBreaker
    gateway: GatewayClient
    webhooks: WebhookDispatcher
    executor: AbilityExecutor
    queue: ApprovalQueue
    dispatcher: AbilityDispatcher
    governance: GovernanceRunner
    scheduler: Scheduler
    http: httpx.AsyncClient

    async def aclose(self) -> None:
        await self.governance.aclose()
        await self.http.aclose()
        await self.engine.dispose()


async def create_application(
    settings: Optional[Settings] = None,
    *,
    abilities: Optional[Iterable[Ability]] = None,
    content_store: Optional[ContentStore] = None,
    tasks: Optional[Iterable[GovernanceTask]] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    engine: Optional[AsyncEngine] = None,
) -> Application:
    """
    Build and return a fully wired ``Application``.

    Args:
        settings: Settings to use; defaults to ``get_settings()``.
        abilities: Abilities to register; defaults to ``settings.abilities_factory``.
        content_store: Content collaborator; defaults to ``settings.content_store_factory``.
        tasks: Governance catalog; defaults to ``build_default_catalog()``.
        http_client: Shared HTTP client for the gateway, webhooks and link probes.
        engine: Pre-built async engine; one is created from ``settings.database_url`` otherwise.
    """
    settings = settings or get_settings()

    if abilities is None and settings.abilities_factory:
        abilities = load_object(settings.abilities_factory)()
    if content_store is None and settings.content_store_factory:
        content_store = load_object(settings.content_store_factory)()

    engine = engine or create_engine(settings.database_url)
    await create_all(engine)
    repos = build_sql_repos(session_factory=create_sessionmaker(engine))

    http = http_client or httpx.AsyncClient(timeout=settings.gateway.timeout, follow_redirects=False)
    audit = AuditLog(repos.audit)
    flags = FeatureFlags(repos.options)
    registry = AbilityRegistry(abilities or ())
    toggles = AbilityToggles(repos.options, registry)
    cache = AbilityResultCache(repos.options)

    circuit_cfg = settings.circuit
    breaker = CircuitBreaker(
        GATEWAY_CIRCUIT,
        repos.circuits,
        failure_threshold=circuit_cfg.failure_threshold,
        open_duration=circuit_cfg.open_duration,
        audit=audit,
    )
    gateway_cfg = settings.gateway
    gateway = GatewayClient(
        gateway_cfg.url,
        breaker=breaker,
        auth_token=gateway_cfg.token,
        session_key=gateway_cfg.session_key,
        timeout=gateway_cfg.timeout,
        client=http,
    )
    webhook_cfg = settings.webhook
    webhooks = WebhookDispatcher(
        webhook_cfg.url,
        auth_token=webhook_cfg.token,
        channel=webhook_cfg.channel,
        session_key=webhook_cfg.session_key,
        timeout=webhook_cfg.timeout,
        rate_limit_per_minute=webhook_cfg.rate_limit_per_minute,
        client=http,
        audit=audit,
    )

    executor = AbilityExecutor(audit=audit, flags=flags, cache=cache, webhooks=webhooks)
    approvals_cfg = settings.approvals
    queue = ApprovalQueue(
        repos.queue,
        registry=registry,
        executor=executor,
        audit=audit,
        ttl_seconds=approvals_cfg.ttl_seconds,
    )
    dispatcher = AbilityDispatcher(
        registry=registry,
        executor=executor,
        queue=queue,
        toggles=toggles,
        flags=flags,
        exempt_actors=approvals_cfg.exempt_actors,
    )

    gov_cfg = settings.governance
    governance = GovernanceRunner(
        tasks if tasks is not None else build_default_catalog(),
        delivery=FindingsDelivery(audit=audit, webhooks=webhooks),
        options=repos.options,
        audit=audit,
        content=content_store,
        gateway=gateway,
        http=http,
        flags=flags,
        max_items=gov_cfg.max_items,
        time_budget=gov_cfg.time_budget,
        task_timeout=gov_cfg.task_timeout,
        ai_sample_size=gov_cfg.ai_sample_size,
        stale_after_days=gov_cfg.stale_after_days,
    )
    scheduler = Scheduler(governance, queue)

    logger.debug(f"Application wired: {len(registry)} abilities, {len(governance.catalog())} governance tasks")
    return Application(
        settings=settings,
        engine=engine,
        repos=repos,
        audit=audit,
        flags=flags,
        registry=registry,
        toggles=toggles,
        cache=cache,
        breaker=breaker,
        gateway=gateway,
        webhooks=webhooks,
        executor=executor,
        queue=queue,
        dispatcher=dispatcher,
        governance=governance,
        scheduler=scheduler,
        http=http,
    )
