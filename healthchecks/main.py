"""Entry point for the healthchecks CLI."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

import httpx
import uvicorn
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from healthchecks.checks.registry import CheckSet, ConfigurationError, load_checks
from healthchecks.config import settings
from healthchecks.health.engine import AggregateResult, CheckExecutor
from healthchecks.health.resolver import RequestContext

console = Console()


def _load_or_exit(filename: str) -> CheckSet:
    try:
        return load_checks(filename)
    except ConfigurationError as e:
        console.print(f"[bold red]Invalid checks file:[/bold red] {e}")
        sys.exit(1)


def run_server(filename: str) -> None:
    """Start the FastAPI server."""
    from healthchecks.api.server import create_app

    checks = _load_or_exit(filename)
    console.print(Panel(
        f"Serving {len(checks)} checks on {settings.checks_path}",
        title="healthchecks",
        style="bold green",
    ))
    # Probes need the scheme of the listening socket, not the forwarded one
    uvicorn.run(
        create_app(settings, checks=checks),
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
        proxy_headers=False,
    )


def validate(filename: str) -> None:
    """Parse a checks file and list what it contains."""
    checks = _load_or_exit(filename)

    table = Table(title=f"{filename} — {len(checks)} checks")
    table.add_column("URL", style="cyan")
    table.add_column("Expected")
    for check in checks:
        table.add_row(check.url, "\n".join(check.expected) or "[dim]—[/dim]")
    console.print(table)


def print_result(result: AggregateResult) -> None:
    table = Table(title="Health checks")
    table.add_column("", width=2)
    table.add_column("Check")
    table.add_column("Status", justify="right")
    table.add_column("Elapsed", justify="right", style="dim")
    for outcome in result.failed:
        table.add_row("[red]✗[/red]", str(outcome), str(outcome.status_code or "—"), f"{outcome.elapsed_ms}ms")
    for outcome in result.passed:
        table.add_row("[green]✓[/green]", outcome.url, str(outcome.status_code), f"{outcome.elapsed_ms}ms")
    console.print(table)
    console.print(f"[bold]{len(result.passed)} passed, {len(result.failed)} failed[/bold]")


def run_once(filename: str, base_url: str) -> None:
    """Run all checks once against ``base_url`` and exit non-zero on failure."""
    checks = _load_or_exit(filename)
    target = httpx.URL(base_url)
    context = RequestContext(
        protocol=target.scheme or "http",
        host=target.host or "127.0.0.1",
        port=target.port or (443 if target.scheme == "https" else 80),
    )
    executor = CheckExecutor(
        checks,
        timeout=settings.check_timeout,
        user_agent=settings.user_agent,
        verify_tls=settings.verify_tls,
    )

    with console.status("[bold green]Running checks..."):
        result = asyncio.run(executor.run(context))

    print_result(result)
    sys.exit(0 if result.ok else 1)


def main() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )

    parser = argparse.ArgumentParser(description="Aggregated HTTP health checks")
    sub = parser.add_subparsers(dest="command")

    serve_parser = sub.add_parser("serve", help="Start the API server")
    serve_parser.add_argument("checks_file", nargs="?", default=settings.checks_file)

    validate_parser = sub.add_parser("validate", help="Validate a checks file")
    validate_parser.add_argument("checks_file", nargs="?", default=settings.checks_file)

    run_parser = sub.add_parser("run", help="Run checks once against a server")
    run_parser.add_argument("checks_file", nargs="?", default=settings.checks_file)
    run_parser.add_argument("--base-url", default=f"http://127.0.0.1:{settings.api_port}")

    args = parser.parse_args()

    if args.command == "serve":
        run_server(args.checks_file)
    elif args.command == "validate":
        validate(args.checks_file)
    elif args.command == "run":
        run_once(args.checks_file, args.base_url)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
