"""policybot CLI — audit an organization for workflow drift and open PRs to fix it."""

from __future__ import annotations

import asyncio

import click
from rich.console import Console
from rich.table import Table

from policybot import __version__
from policybot.config import Settings
from policybot.errors import CatalogError, PolicyBotError
from policybot.models import Policy

console = Console()

EXIT_DRIFT = 1
EXIT_ABORTED = 2


@click.group()
@click.version_option(version=__version__)
@click.option("--log-level", default=None, help="Logging level (default: POLICYBOT_LOG_LEVEL or INFO)")
@click.pass_context
def main(ctx: click.Context, log_level: str | None):
    """policybot — workflow policy drift detection and remediation.

    Every repository of an organization is checked against a catalog of
    workflow policies. Missing or stale workflows are fixed through one pull
    request per policy, on a branch named chore/<policy>.
    """
    from policybot.utils.log import setup_logging

    try:
        settings = Settings.from_env()
    except ValueError as e:
        raise click.UsageError(str(e)) from e

    settings = settings.with_overrides(log_level=log_level)
    setup_logging(settings.log_level)
    ctx.obj = settings


def fleet_options(func):
    """Options shared by every command that walks the fleet."""
    options = [
        click.option("--org", default=None, help="Organization to audit (POLICYBOT_ORG)"),
        click.option(
            "--policies", "-p", "policies_path", default=None,
            type=click.Path(dir_okay=False), help="Policy catalog file (POLICYBOT_POLICIES)",
        ),
        click.option("--token", "github_token", default=None, help="GitHub token (POLICYBOT_GITHUB_TOKEN)"),
        click.option("--api-url", default=None, help="GitHub API base URL"),
        click.option("--timeout", type=float, default=None, help="Per-request timeout in seconds"),
        click.option("--concurrency", type=int, default=None, help="Repositories processed at once"),
        click.option("--deadline", type=float, default=None, help="Abort the whole run after N seconds"),
        click.option("--output", "-o", default=None, help="Write a JSON report to this path"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


# ── Run ──────────────────────────────────────────────────────────────


@main.command()
@fleet_options
@click.pass_obj
def run(settings: Settings, deadline: float | None, output: str | None, **overrides):
    """Detect drift and open or update pull requests to fix it."""
    settings = _resolve(settings, overrides, require_token=True)
    policies = _load_policies(settings)

    console.print(f"\n[bold blue]policybot[/] — Remediating {settings.org} ({len(policies)} policies)\n")

    report = _execute(_sweep(settings, policies, remediate=True), deadline)
    _print_outcomes(report)
    _print_failures(report)
    _maybe_write(report, output)

    if report.has_failures:
        raise SystemExit(EXIT_DRIFT)


# ── Audit ────────────────────────────────────────────────────────────


@main.command()
@fleet_options
@click.pass_obj
def audit(settings: Settings, deadline: float | None, output: str | None, **overrides):
    """Report drift without changing anything. Exits 1 when drift is found."""
    settings = _resolve(settings, overrides, require_token=False)
    policies = _load_policies(settings)

    console.print(f"\n[bold blue]policybot[/] — Auditing {settings.org} ({len(policies)} policies)\n")

    report = _execute(_sweep(settings, policies, remediate=False), deadline)

    if report.deviations:
        table = Table(title=f"Drift ({len(report.deviations)} deviations)")
        table.add_column("Repository", style="cyan")
        table.add_column("Policy")
        table.add_column("Action", style="yellow")
        table.add_column("Target")
        for deviation in report.deviations:
            table.add_row(
                deviation.repository.full_name,
                deviation.policy.name,
                deviation.action.value,
                deviation.target_path,
            )
        console.print(table)
    else:
        console.print(f"[green]No drift across {report.repositories_checked} repositories.[/]")

    _print_failures(report)
    _maybe_write(report, output)

    if report.deviations or report.failures:
        raise SystemExit(EXIT_DRIFT)


# ── Policies ─────────────────────────────────────────────────────────


@main.command()
@click.argument("catalog_path", type=click.Path(dir_okay=False))
def policies(catalog_path: str):
    """Validate a policy catalog and list its policies."""
    from policybot.policies.catalog import load_catalog

    try:
        catalog = load_catalog(catalog_path)
    except CatalogError as e:
        console.print("[red]Catalog validation FAILED:[/]")
        for issue in e.issues:
            console.print(f"  [red]x[/] {issue}")
        raise SystemExit(EXIT_DRIFT)

    if not catalog:
        console.print("[yellow]Catalog is empty.[/]")
        return

    table = Table(title=f"Policies ({len(catalog)})")
    table.add_column("Name", style="cyan")
    table.add_column("Match")
    table.add_column("Target")
    table.add_column("Source", style="dim")
    for policy in catalog:
        table.add_row(policy.name, policy.match_pattern, policy.target_path, policy.source_url)
    console.print(table)


# ── Workflows ────────────────────────────────────────────────────────


@main.command()
@click.argument("repo")
@click.option("--org", default=None, help="Organization owning the repository")
@click.option("--token", "github_token", default=None, help="GitHub token")
@click.option("--api-url", default=None, help="GitHub API base URL")
@click.pass_obj
def workflows(settings: Settings, repo: str, **overrides):
    """List the workflow files a repository currently carries."""
    from policybot.sync.content import BEGIN_MARKER
    from policybot.sync.workflows import WorkflowInventory

    settings = _resolve(settings, overrides, require_token=False)

    async def scan():
        async with _gateway(settings) as gateway:
            return await WorkflowInventory(gateway).scan(repo)

    files = _execute(scan(), deadline=None)
    if not files:
        console.print(f"[yellow]No workflows found in {repo}.[/]")
        return

    table = Table(title=f"Workflows in {settings.org}/{repo}")
    table.add_column("Path", style="cyan")
    table.add_column("Managed", justify="center")
    table.add_column("Size", justify="right")
    for wf in files:
        managed = "[green]Y[/]" if wf.content.startswith(BEGIN_MARKER) else "[dim]N[/]"
        table.add_row(wf.path, managed, str(len(wf.content)))
    console.print(table)


# ── Helpers ──────────────────────────────────────────────────────────


def _resolve(settings: Settings, overrides: dict, require_token: bool) -> Settings:
    settings = settings.with_overrides(**overrides)
    issues = settings.validate(require_token=require_token)
    if issues:
        raise click.UsageError("; ".join(issues))
    return settings


def _load_policies(settings: Settings) -> list[Policy]:
    from policybot.policies.catalog import load_catalog

    if not settings.policies_path:
        raise click.UsageError("a policy catalog is required (--policies or POLICYBOT_POLICIES)")
    try:
        return load_catalog(settings.policies_path)
    except CatalogError as e:
        raise click.ClickException(str(e)) from e


def _gateway(settings: Settings):
    from policybot.gateway.github import GitHubGateway

    return GitHubGateway(
        org=settings.org,
        token=settings.github_token,
        api_url=settings.api_url,
        timeout=settings.timeout,
        backoff_base=settings.backoff_base,
    )


async def _sweep(settings: Settings, policies: list[Policy], remediate: bool):
    from policybot.sync.content import ContentFetcher
    from policybot.sync.drift import DriftDetector
    from policybot.sync.orchestrator import FleetOrchestrator
    from policybot.sync.remediation import RemediationEngine

    async with _gateway(settings) as gateway, ContentFetcher(timeout=settings.timeout) as fetcher:
        detector = DriftDetector(gateway, policies, fetcher)
        engine = RemediationEngine(gateway, fetcher) if remediate else None
        orchestrator = FleetOrchestrator(
            gateway, detector, engine, concurrency=settings.concurrency
        )
        if remediate:
            return await orchestrator.run_report()
        return await orchestrator.audit_report()


def _execute(coro, deadline: float | None):
    """Run ``coro`` to completion, bounded by ``deadline`` seconds when given."""
    try:
        if deadline:
            return asyncio.run(asyncio.wait_for(coro, deadline))
        return asyncio.run(coro)
    except asyncio.TimeoutError:
        console.print(f"[red]Run aborted:[/] deadline of {deadline}s exceeded")
        raise SystemExit(EXIT_ABORTED)
    except PolicyBotError as e:
        console.print(f"[red]Run aborted:[/] {e}")
        raise SystemExit(EXIT_ABORTED)


def _print_outcomes(report) -> None:
    if not report.outcomes:
        console.print(f"[green]No drift across {report.repositories_checked} repositories.[/]")
        return

    table = Table(title=f"Remediation ({len(report.outcomes)} deviations)")
    table.add_column("Repository", style="cyan")
    table.add_column("Policy")
    table.add_column("Result")
    table.add_column("Pull request / error")
    for outcome in report.outcomes:
        if outcome.succeeded:
            result = f"[green]{outcome.action.value}[/]"
            detail = outcome.pull_request_url
        else:
            result = "[red]failed[/]"
            detail = str(outcome.error)
        table.add_row(
            outcome.deviation.repository.full_name,
            outcome.deviation.policy.name,
            result,
            detail,
        )
    console.print(table)


def _print_failures(report) -> None:
    if not report.failures:
        return
    console.print(f"\n[yellow]Skipped repositories ({len(report.failures)}):[/]")
    for failure in report.failures:
        console.print(f"  [yellow]![/] {failure.repository.full_name} ({failure.stage}): {failure.error}")


def _maybe_write(report, output: str | None) -> None:
    if not output:
        return
    from policybot.sync.report import write_report

    path = write_report(report, output)
    console.print(f"\n[green]Report written to:[/] {path}")


if __name__ == "__main__":
    main()
