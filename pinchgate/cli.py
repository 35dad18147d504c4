"""pinchgate administrative CLI.

Commands:
- abilities: list, enable, disable, run
- approvals: list, approve, reject, sweep
- audit: list, stats
- cache: flush
- features: list, get, enable, disable, reset
- governance: list, run, enable, disable
- schedule: run the scheduler loop (or one tick)
- status: gateway circuit, pending approvals and flags
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, TypeVar

import click
from tabulate import tabulate

from .core.config import get_settings
from .core.errors import AlreadyProcessedError, NotFoundError, PinchGateError
from .core.logging_config import setup_logging
from .core.monitoring import initialize_monitoring
from .factory import Application, create_application
from .schemas.domain import Actor, AuditSource, QueueStatus

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _run(ctx: click.Context, fn: Callable[[Application], Awaitable[T]]) -> T:
    """Build the application, run ``fn`` against it and release resources."""
    factory = (ctx.obj or {}).get("app_factory", create_application)

    async def _main() -> T:
        app = await factory()
        try:
            return await fn(app)
        finally:
            await app.aclose()

    try:
        return asyncio.run(_main())
    except AlreadyProcessedError as e:
        click.echo(f"✗ Already processed: {e}", err=True)
        raise click.Abort()
    except NotFoundError as e:
        click.echo(f"✗ Not found: {e}", err=True)
        raise click.Abort()
    except PinchGateError as e:
        click.echo(f"✗ Error: {e}", err=True)
        raise click.Abort()


def _fmt_time(value: Any) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S") if value is not None else "-"


@click.group()
@click.option("--log-level", default=None, help="Console log level (default: PINCHGATE_LOG_LEVEL)")
@click.pass_context
def cli(ctx: click.Context, log_level: str | None):
    """pinchgate: approvals, circuit breaking, governance and audit for abilities."""
    ctx.ensure_object(dict)
    if not ctx.obj.get("app_factory"):
        settings = get_settings()
        setup_logging(log_level or settings.log_level, settings.log_format, settings.log_file_dir)
        initialize_monitoring(settings.monitoring)


# =====================================================================
# Abilities
# =====================================================================


@cli.group()
def abilities():
    """List, toggle and run abilities."""
    pass


@abilities.command("list")
@click.pass_context
def abilities_list(ctx: click.Context):
    """List registered abilities."""

    async def _list(app: Application):
        disabled = set(await app.toggles.disabled())
        return [
            [
                d.name,
                d.required_capability,
                "yes" if d.requires_approval else "no",
                "yes" if d.read_only else "no",
                "disabled" if d.name in disabled else "enabled",
            ]
            for d in app.registry.descriptors()
        ]

    rows = _run(ctx, _list)
    if not rows:
        click.echo("No abilities registered.")
        return
    click.echo(tabulate(rows, headers=["Ability", "Capability", "Approval", "Read-only", "State"], tablefmt="simple"))


@abilities.command("enable")
@click.argument("name")
@click.pass_context
def abilities_enable(ctx: click.Context, name: str):
    """Enable an ability."""
    _run(ctx, lambda app: app.toggles.enable(name))
    click.echo(f"✓ Ability '{name}' enabled.")


@abilities.command("disable")
@click.argument("name")
@click.pass_context
def abilities_disable(ctx: click.Context, name: str):
    """Disable an ability."""
    _run(ctx, lambda app: app.toggles.disable(name))
    click.echo(f"✓ Ability '{name}' disabled.")


@abilities.command("run")
@click.argument("name")
@click.option("--input", "input_json", default="{}", help="Ability input as a JSON object")
@click.option("--actor", default="cli", help="Actor id to run as")
@click.option("--capability", "capabilities", multiple=True, help="Capability held by the actor (repeatable)")
@click.pass_context
def abilities_run(ctx: click.Context, name: str, input_json: str, actor: str, capabilities: tuple[str, ...]):
    """Dispatch an ability through the normal authorization and approval path."""
    try:
        args = json.loads(input_json)
    except ValueError as e:
        click.echo(f"✗ Error: --input is not valid JSON: {e}", err=True)
        raise click.Abort()
    if not isinstance(args, dict):
        click.echo("✗ Error: --input must be a JSON object", err=True)
        raise click.Abort()

    who = Actor(id=actor, capabilities=list(capabilities))
    result = _run(ctx, lambda app: app.dispatcher.dispatch(name, args, who))
    if result.deferred:
        click.echo(f"⏸ Queued for approval: {result.queue_id}")
    elif result.ok:
        click.echo(json.dumps(result.output, indent=2, default=str))
    else:
        click.echo(f"✗ Error: {result.error}", err=True)
        raise click.Abort()


# =====================================================================
# Approvals
# =====================================================================


@cli.group()
def approvals():
    """Review queued ability invocations."""
    pass


@approvals.command("list")
@click.pass_context
def approvals_list(ctx: click.Context):
    """List pending approvals, oldest first."""
    items = _run(ctx, lambda app: app.queue.list_pending())
    if not items:
        click.echo("No pending approvals.")
        return
    rows = [
        [i.id, i.ability_name, i.requested_by.id, _fmt_time(i.queued_at), _fmt_time(i.expires_at)] for i in items
    ]
    click.echo(tabulate(rows, headers=["ID", "Ability", "Requested by", "Queued", "Expires"], tablefmt="simple"))


@approvals.command("approve")
@click.argument("queue_id")
@click.option("--by", "decided_by", default="cli", help="Who is approving")
@click.pass_context
def approvals_approve(ctx: click.Context, queue_id: str, decided_by: str):
    """Approve a queued invocation and run it."""
    result = _run(ctx, lambda app: app.queue.approve(queue_id, decided_by=decided_by))
    if result.ok:
        click.echo(f"✓ Approved and executed {queue_id} ({result.ability}).")
    else:
        click.echo(f"✗ Approved {queue_id} but execution failed: {result.error}", err=True)
        raise click.Abort()


@approvals.command("reject")
@click.argument("queue_id")
@click.option("--by", "decided_by", default="cli", help="Who is rejecting")
@click.pass_context
def approvals_reject(ctx: click.Context, queue_id: str, decided_by: str):
    """Reject a queued invocation."""

    async def _reject(app: Application):
        if await app.queue.reject(queue_id, decided_by=decided_by):
            return True, None
        return False, await app.queue.get(queue_id)

    rejected, item = _run(ctx, _reject)
    if rejected:
        click.echo(f"✓ Rejected {queue_id}.")
        return
    if item is None:
        click.echo(f"✗ Not found: Queue item '{queue_id}' not found.", err=True)
    elif item.status is QueueStatus.pending:
        click.echo(f"✗ Not found: Queue item '{queue_id}' has expired.", err=True)
    else:
        click.echo(f"✗ Already processed: Queue item '{queue_id}' is {item.status.value}.", err=True)
    raise click.Abort()


@approvals.command("sweep")
@click.pass_context
def approvals_sweep(ctx: click.Context):
    """Expire overdue approvals now."""
    count = _run(ctx, lambda app: app.queue.sweep_expired())
    click.echo(f"✓ Expired {count} item(s).")


# =====================================================================
# Audit
# =====================================================================


@cli.group()
def audit():
    """Query the audit log."""
    pass


@audit.command("list")
@click.option("--event", "event_type", default=None, help="Filter by event type")
@click.option("--source", type=click.Choice([s.value for s in AuditSource]), default=None, help="Filter by source")
@click.option("--search", default=None, help="Substring to find in messages")
@click.option("--limit", default=20, type=int, help="Rows to show (default: 20)")
@click.option("--offset", default=0, type=int, help="Rows to skip")
@click.option("--json", "as_json", is_flag=True, help="Print records as JSON lines")
@click.pass_context
def audit_list(
    ctx: click.Context,
    event_type: str | None,
    source: str | None,
    search: str | None,
    limit: int,
    offset: int,
    as_json: bool,
):
    """List audit records, newest first."""
    records, total = _run(
        ctx,
        lambda app: app.audit.query(event_type=event_type, source=source, search=search, limit=limit, offset=offset),
    )
    if as_json:
        for r in records:
            click.echo(r.model_dump_json())
        return
    if not records:
        click.echo("No audit records.")
        return
    rows = [[r.id, _fmt_time(r.created_at), r.event_type, r.source.value, r.message[:80]] for r in records]
    click.echo(tabulate(rows, headers=["ID", "Time", "Event", "Source", "Message"], tablefmt="simple"))
    click.echo(f"\nShowing {len(records)} of {total}")


@audit.command("stats")
@click.option("--days", default=30, type=int, help="Look-back window in days (default: 30)")
@click.pass_context
def audit_stats(ctx: click.Context, days: int):
    """Show ability executions per ability."""
    stats = _run(ctx, lambda app: app.audit.usage_stats(days=days))
    if not stats:
        click.echo(f"No ability executions in the last {days} days.")
        return
    click.echo(tabulate(list(stats.items()), headers=["Ability", "Executions"], tablefmt="simple"))


# =====================================================================
# Cache
# =====================================================================


@cli.group()
def cache():
    """Manage the read-only ability result cache."""
    pass


@cache.command("flush")
@click.pass_context
def cache_flush(ctx: click.Context):
    """Flush cached ability results in every process sharing the database."""
    _run(ctx, lambda app: app.cache.flush())
    click.echo("✓ Ability result cache flushed.")


# =====================================================================
# Feature flags
# =====================================================================


@cli.group()
def features():
    """Inspect and toggle feature flags."""
    pass


@features.command("list")
@click.pass_context
def features_list(ctx: click.Context):
    """List feature flags and their effective values."""
    flags = _run(ctx, lambda app: app.flags.get_all())
    rows = [[name, "on" if value else "off"] for name, value in sorted(flags.items())]
    click.echo(tabulate(rows, headers=["Flag", "Value"], tablefmt="simple"))


@features.command("get")
@click.argument("name")
@click.pass_context
def features_get(ctx: click.Context, name: str):
    """Show one flag."""
    value = _run(ctx, lambda app: app.flags.is_enabled(name))
    click.echo(f"{name}: {'on' if value else 'off'}")


@features.command("enable")
@click.argument("name")
@click.pass_context
def features_enable(ctx: click.Context, name: str):
    """Turn a flag on."""
    _run(ctx, lambda app: app.flags.enable(name))
    click.echo(f"✓ {name}: on")


@features.command("disable")
@click.argument("name")
@click.pass_context
def features_disable(ctx: click.Context, name: str):
    """Turn a flag off."""
    _run(ctx, lambda app: app.flags.disable(name))
    click.echo(f"✓ {name}: off")


@features.command("reset")
@click.argument("name")
@click.pass_context
def features_reset(ctx: click.Context, name: str):
    """Restore a flag's default."""
    _run(ctx, lambda app: app.flags.reset(name))
    click.echo(f"✓ {name}: default restored")


# =====================================================================
# Governance
# =====================================================================


@cli.group()
def governance():
    """List and run governance tasks."""
    pass


@governance.command("list")
@click.pass_context
def governance_list(ctx: click.Context):
    """List governance tasks."""

    async def _list(app: Application):
        enabled = set(await app.governance.enabled_keys())
        return [
            [
                d.key,
                d.label,
                f"{d.interval_seconds // 3600}h",
                "yes" if d.ai_assisted else "no",
                "enabled" if d.key in enabled else "disabled",
            ]
            for d in app.governance.catalog()
        ]

    rows = _run(ctx, _list)
    click.echo(tabulate(rows, headers=["Task", "Label", "Interval", "AI", "State"], tablefmt="simple"))


@governance.command("run")
@click.argument("keys", nargs=-1)
@click.option("--all", "run_all", is_flag=True, help="Run every enabled task")
@click.pass_context
def governance_run(ctx: click.Context, keys: tuple[str, ...], run_all: bool):
    """Run governance tasks now.

    Examples:
        pinchgate governance run broken_links comment_sweep
        pinchgate governance run --all
    """
    if not keys and not run_all:
        click.echo("✗ Error: name at least one task or pass --all", err=True)
        raise click.Abort()

    if run_all:
        reports = _run(ctx, lambda app: app.governance.run_all_enabled())
    else:
        reports = _run(ctx, lambda app: app.governance.run_tasks(keys))

    for report in reports:
        if report.error == "unknown task":
            click.echo(f"⚠ Unknown task '{report.key}' skipped", err=True)
    rows = [[r.key, r.status.value, r.finding_count, r.error or r.summary] for r in reports]
    click.echo(tabulate(rows, headers=["Task", "Status", "Findings", "Summary"], tablefmt="simple"))


@governance.command("enable")
@click.argument("key")
@click.pass_context
def governance_enable(ctx: click.Context, key: str):
    """Enable a governance task."""
    _run(ctx, lambda app: app.governance.enable_task(key))
    click.echo(f"✓ Task '{key}' enabled.")


@governance.command("disable")
@click.argument("key")
@click.pass_context
def governance_disable(ctx: click.Context, key: str):
    """Disable a governance task."""
    _run(ctx, lambda app: app.governance.disable_task(key))
    click.echo(f"✓ Task '{key}' disabled.")


# =====================================================================
# Scheduler / status
# =====================================================================


@cli.command("schedule")
@click.option("--once", is_flag=True, help="Run a single tick and exit")
@click.pass_context
def schedule(ctx: click.Context, once: bool):
    """Run due governance tasks and expire approvals on a timer."""

    async def _schedule(app: Application):
        if once:
            return await app.scheduler.tick()
        await app.scheduler.run_forever()
        return []

    reports = _run(ctx, _schedule)
    for r in reports:
        click.echo(f"{r.key}: {r.status.value} ({r.finding_count} findings)")


@cli.command("status")
@click.pass_context
def status(ctx: click.Context):
    """Show gateway circuit state, pending approvals and feature flags."""

    async def _status(app: Application):
        return await app.gateway.status(), len(await app.queue.list_pending()), await app.flags.get_all()

    gateway, pending, flags = _run(ctx, _status)
    rows = [
        ["Gateway configured", "yes" if gateway["configured"] else "no"],
        ["Circuit state", gateway["circuit_state"]],
        ["Consecutive failures", gateway["consecutive_failures"]],
        ["Retry after (s)", gateway["retry_after"]],
        ["Pending approvals", pending],
    ]
    rows.extend([[f"Flag {name}", "on" if value else "off"] for name, value in sorted(flags.items())])
    click.echo(tabulate(rows, tablefmt="simple"))


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
