"""
Command line interface.

Usage:
    strava-monthly login
    strava-monthly callback "http://localhost/exchange_token?code=...&scope=read,activity:read_all"
    strava-monthly status
    strava-monthly activities --page 2
    strava-monthly monthly --months 3 --details
    strava-monthly logout --revoke
"""

import asyncio
import logging
import sys
import time
import webbrowser
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional

import click
from pydantic import ValidationError

from strava_monthly.config import settings
from strava_monthly.db.session import create_engine_for, create_session_factory, init_db
from strava_monthly.features.strava import (
    ActivityPager,
    ActivitySummary,
    AuthRequired,
    CredentialStore,
    MonthlyAggregator,
    RemoteError,
    SQLCredentialStore,
    StravaClient,
    StravaError,
    StravaOAuth,
    StravaOAuthError,
    StravaOAuthFlow,
    TokenRefreshManager,
    load_credentials,
)
from strava_monthly.shared.formatters import (
    format_distance_km,
    format_duration,
    format_elevation,
    format_month_label,
)

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Wired-up components for one command invocation."""

    store: CredentialStore
    flow: StravaOAuthFlow
    tokens: TokenRefreshManager
    client: StravaClient
    pager: ActivityPager


def build_services(store: CredentialStore, oauth: Optional[StravaOAuth] = None, **client_kwargs) -> Services:
    """Wire the Strava components around a credential store."""
    oauth = oauth or StravaOAuth()
    tokens = TokenRefreshManager(store, oauth)
    client = StravaClient(tokens, **client_kwargs)
    return Services(
        store=store,
        flow=StravaOAuthFlow(store, oauth),
        tokens=tokens,
        client=client,
        pager=ActivityPager(client),
    )


@asynccontextmanager
async def open_services(database_url: Optional[str] = None) -> AsyncIterator[Services]:
    """Open the credential database and yield wired services."""
    engine = create_engine_for(database_url)
    try:
        await init_db(engine)
        yield build_services(SQLCredentialStore(create_session_factory(engine)))
    finally:
        await engine.dispose()


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout),
        ]
    )


def _fail(message: str) -> None:
    click.echo(message, err=True)
    sys.exit(1)


def _report_error(error: StravaError) -> None:
    """Turn a Strava error into a user-facing message and exit."""
    if isinstance(error, AuthRequired):
        _fail("Not logged in to Strava. Run `strava-monthly login` first.")
    if isinstance(error, RemoteError) and error.is_permission_error:
        _fail(
            "Strava did not grant permission to read activities. "
            "Run `strava-monthly login` again and allow activity access."
        )
    if isinstance(error, RemoteError) and error.is_auth_error:
        _fail("Strava rejected the stored token. Run `strava-monthly login` again.")
    logger.debug(f"Strava error details: {error!r}")
    _fail(f"Failed to fetch data: {error}")


def _activity_line(activity: ActivitySummary) -> str:
    start = activity.local_start.strftime("%Y-%m-%d %H:%M")
    name = activity.name or "(unnamed)"
    kind = activity.sport_type or activity.type or "Activity"
    return (
        f"{start}  {kind:<12} {name:<30.30} "
        f"{format_distance_km(activity.distance):>10} "
        f"{format_duration(activity.moving_time):>10} "
        f"{format_elevation(activity.total_elevation_gain):>8}"
    )


# =============================================================================
# Commands
# =============================================================================

@click.group()
@click.option("--database-url", default=None, help="Credential database URL (default: settings)")
@click.option("--log-level", default=None, help="Logging level (default: settings)")
@click.pass_context
def cli(ctx, database_url, log_level):
    """Strava login, activity list and monthly totals."""
    _setup_logging(log_level or settings.log_level)
    ctx.ensure_object(dict)
    ctx.obj["database_url"] = database_url


@cli.command()
@click.option("--no-browser", is_flag=True, help="Only print the authorization URL")
@click.pass_context
def login(ctx, no_browser):
    """Open the Strava authorization page."""

    async def _run():
        async with open_services(ctx.obj["database_url"]) as services:
            url = services.flow.initiate(open_url=None if no_browser else webbrowser.open)
        click.echo("Authorize access in your browser:")
        click.echo(url)
        click.echo("\nThen pass the URL you were redirected to:")
        click.echo('  strava-monthly callback "<redirect url>"')

    try:
        asyncio.run(_run())
    except StravaOAuthError as e:
        _fail(str(e))


@cli.command()
@click.argument("redirect_url")
@click.pass_context
def callback(ctx, redirect_url):
    """Finish login with the redirect URL Strava sent you to."""

    async def _run() -> bool:
        async with open_services(ctx.obj["database_url"]) as services:
            ok = await services.flow.handle_redirect(redirect_url)
            athlete = services.flow.athlete
        if ok:
            who = f" as {athlete.get('firstname', '')} {athlete.get('lastname', '')}".rstrip() if athlete else ""
            click.echo(f"Logged in to Strava{who}.")
        return ok

    if not asyncio.run(_run()):
        _fail("Login failed: no authorization code was exchanged. Run `strava-monthly login` again.")


@cli.command()
@click.pass_context
def status(ctx):
    """Show whether credentials are stored and when they expire."""

    async def _run():
        async with open_services(ctx.obj["database_url"]) as services:
            state = await services.flow.load()
            record = await load_credentials(services.store)
        click.echo(f"State: {state.value}")
        if record is not None:
            remaining = record.expires_at - int(time.time())
            if remaining > 0:
                click.echo(f"Access token valid for {format_duration(remaining)}")
            else:
                click.echo("Access token expired, it will be refreshed on next use")

    asyncio.run(_run())


@cli.command()
@click.option("--page", default=1, type=click.IntRange(min=1), help="Page number")
@click.option("--per-page", default=None, type=click.IntRange(1, 200), help="Activities per page")
@click.option("--all", "fetch_all", is_flag=True, help="Fetch every page")
@click.pass_context
def activities(ctx, page, per_page, fetch_all):
    """List activities, newest first."""

    async def _run():
        async with open_services(ctx.obj["database_url"]) as services:
            if fetch_all:
                return await services.pager.fetch_all(per_page)
            return await services.pager.fetch_page(page, per_page)

    try:
        records = asyncio.run(_run())
    except StravaError as e:
        _report_error(e)
        return

    if not records:
        click.echo("No activities found")
        return
    try:
        summaries = [ActivitySummary.model_validate(record) for record in records]
    except ValidationError as e:
        _fail(f"Malformed activity in Strava response: {e.error_count()} error(s)")
        return
    for summary in summaries:
        click.echo(_activity_line(summary))


@cli.command()
@click.option("--months", default=None, type=click.IntRange(min=1), help="Number of months, current included")
@click.option("--details", is_flag=True, help="List the activities of each month")
@click.option("--max-pages", default=None, type=click.IntRange(min=1), help="Stop after this many pages")
@click.pass_context
def monthly(ctx, months, details, max_pages):
    """Show distance, moving time and elevation per month."""

    async def _run():
        async with open_services(ctx.obj["database_url"]) as services:
            aggregator = MonthlyAggregator(services.pager, max_pages=max_pages)
            return await aggregator.aggregate(months)

    result = asyncio.run(_run())

    for totals in result.aggregates:
        click.echo(
            f"{format_month_label(totals.month):<16} "
            f"{format_distance_km(totals.total_distance):>10} "
            f"{format_duration(totals.total_time):>10} "
            f"{format_elevation(totals.total_elevation_gain):>8} "
            f"({totals.activity_count} activities)"
        )
        if details:
            for activity in result.activities_for(totals.month):
                click.echo("    " + _activity_line(activity))

    for month in result.missing_months:
        click.echo(f"{format_month_label(month):<16} no activities")

    if result.diagnostic is not None:
        diagnostic = result.diagnostic
        if diagnostic.error is not None and diagnostic.requires_reauth:
            _report_error(diagnostic.error)
        click.echo(f"\nResults may be incomplete: {diagnostic.message}", err=True)


@cli.command()
@click.option("--revoke", is_flag=True, help="Also deauthorize this app on Strava")
@click.pass_context
def logout(ctx, revoke):
    """Delete the stored Strava credentials."""

    async def _run():
        async with open_services(ctx.obj["database_url"]) as services:
            await services.flow.logout(revoke=revoke)

    asyncio.run(_run())
    click.echo("Logged out of Strava.")


if __name__ == "__main__":
    cli()
