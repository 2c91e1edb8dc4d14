#!/usr/bin/env python
"""
CLI management commands for Uniflow Platform Services.
"""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any

import click

from uniflow.platform.billing.catalog.service import PlanCatalog
from uniflow.platform.billing.money_utils import create_money, format_money
from uniflow.platform.billing.subscriptions.lifecycle import SubscriptionLifecycleManager
from uniflow.platform.db import create_all_tables_async, get_async_db
from uniflow.platform.partner_management.commission import CommissionLedger


@dataclass
class CLIDependencies:
    """Bundle of injectable dependencies used by CLI commands."""

    session_factory: Callable[[], Any]
    init_db: Callable[[], Any]


def _get_cli_dependencies() -> CLIDependencies:
    """Return the default dependency bundle for CLI commands."""
    return CLIDependencies(session_factory=get_async_db, init_db=create_all_tables_async)


def _amount(amount: Decimal, currency: str) -> str:
    return format_money(create_money(amount, currency))


@click.group()
def cli() -> None:
    """Uniflow Platform Services CLI."""
    pass


@cli.command()
def init_database() -> None:
    """Create every table of the subscription engine."""
    deps = _get_cli_dependencies()
    click.echo("Initializing database...")
    asyncio.run(deps.init_db())
    click.echo("Database initialized successfully!")


@cli.command()
def seed_plans() -> None:
    """Insert or refresh the default plan tiers."""
    deps = _get_cli_dependencies()

    async def _seed() -> None:
        async with deps.session_factory() as session:
            plans = await PlanCatalog(session).seed_default_plans()
        for plan in plans:
            click.echo(f"  {plan.name:<14} {_amount(plan.price.monthly, plan.currency)}/month")
        click.echo(f"Seeded {len(plans)} plans")

    asyncio.run(_seed())


@cli.command()
def reconcile() -> None:
    """Persist expiry for every subscription whose window has lapsed."""
    deps = _get_cli_dependencies()

    async def _reconcile() -> int:
        async with deps.session_factory() as session:
            return await SubscriptionLifecycleManager(session).reconcile_all()

    changed = asyncio.run(_reconcile())
    click.echo(f"Reconciled {changed} subscription(s)")


@cli.command()
@click.argument("reseller_id")
@click.option(
    "--as-of",
    type=click.DateTime(formats=["%Y-%m-%d", "%Y-%m-%dT%H:%M:%S"]),
    default=None,
    help="Evaluation time (UTC), defaults to now",
)
def reseller_stats(reseller_id: str, as_of: datetime | None) -> None:
    """Show monthly revenue and commission for a reseller."""
    deps = _get_cli_dependencies()

    async def _stats() -> None:
        async with deps.session_factory() as session:
            stats = await CommissionLedger(session).get_reseller_stats(reseller_id, as_of)
        click.echo(f"Reseller:           {stats.reseller_id}")
        click.echo(f"As of:              {stats.as_of.isoformat()}")
        click.echo(f"Tenants:            {stats.active_tenants} active / {stats.total_tenants}")
        click.echo(f"Monthly revenue:    {_amount(stats.monthly_revenue, stats.currency)}")
        click.echo(f"Monthly commission: {_amount(stats.monthly_commission, stats.currency)}")

    asyncio.run(_stats())


if __name__ == "__main__":
    cli()
