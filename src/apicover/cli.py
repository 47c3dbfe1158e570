from __future__ import annotations

import logging
from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from apicover.config.nginx import DEFAULT_NGINX_CONFIG, DEFAULT_NGINX_TEMPLATE
from apicover.config.settings import DEFAULT_PORT, CoverageConfig, load_config
from apicover.domain.models import OpenapiSource, Runtime
from apicover.errors import ApicoverError
from apicover.evaluator.compare import compare_endpoints
from apicover.orchestrator.pipeline import RunResult, prepare, run_evaluation, run_nginx
from apicover.parser.access_log import DEFAULT_ACCESS_LOG
from apicover.parser.openapi import parse_openapi_path


app = typer.Typer(no_args_is_help=True, add_completion=False)

console = Console()
err_console = Console(stderr=True)


def configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def _fail(exc: ApicoverError) -> NoReturn:
    err_console.print(f"[bold red]Error:[/bold red] {escape(exc.message)}")
    raise typer.Exit(code=1)


def _load(debug: bool) -> CoverageConfig:
    configure_logging(debug)
    config = load_config()
    if config.debug and not debug:
        configure_logging(True)
    return config


@app.command()
def run(
    root: str = typer.Option(".", help="Directory the OpenAPI sources are relative to"),
    access_log: str = typer.Option(str(DEFAULT_ACCESS_LOG), help="nginx access log to evaluate"),
    nginx_config: str = typer.Option(str(DEFAULT_NGINX_CONFIG), help="nginx config to fill in"),
    debug: bool = typer.Option(False, "--debug", help="Verbose output"),
) -> None:
    """Proxy traffic through nginx until it stops, then report coverage."""
    try:
        config = _load(debug)
        prepared = prepare(config, Path(root).expanduser().resolve())
        run_nginx(config, Path(nginx_config))
        result = run_evaluation(config, prepared, Path(access_log))
    except ApicoverError as exc:
        _fail(exc)

    _report(result, "table")


@app.command()
def evaluate(
    root: str = typer.Option(".", help="Directory the OpenAPI sources are relative to"),
    access_log: str = typer.Option(str(DEFAULT_ACCESS_LOG), help="nginx access log to evaluate"),
    format: str = typer.Option("table", help="Output format: table|json"),
    debug: bool = typer.Option(False, "--debug", help="Verbose output"),
) -> None:
    """Report coverage of an existing access log."""
    fmt = format.lower().strip()
    if fmt not in ("table", "json"):
        raise typer.BadParameter("format must be one of: table, json")

    try:
        config = _load(debug)
        prepared = prepare(config, Path(root).expanduser().resolve())
        result = run_evaluation(config, prepared, Path(access_log))
    except ApicoverError as exc:
        _fail(exc)

    _report(result, fmt)


@app.command()
def diff(
    old: str = typer.Argument(..., help="First OpenAPI document"),
    new: str = typer.Argument(..., help="Second OpenAPI document"),
) -> None:
    """List endpoints declared by only one of two OpenAPI documents."""
    runtime = Runtime(
        openapi_source=OpenapiSource(location="diff"),
        app_base_url="http://localhost/",
        port=DEFAULT_PORT,
    )
    try:
        old_endpoints = parse_openapi_path(Path(old).expanduser(), runtime)
        new_endpoints = parse_openapi_path(Path(new).expanduser(), runtime)
    except ApicoverError as exc:
        _fail(exc)

    residual = compare_endpoints(old_endpoints, new_endpoints)
    if not residual:
        console.print("[bold green]No differences[/bold green]")
        return

    old_set = set(old_endpoints)
    table = Table(show_header=True, header_style="bold")
    table.add_column("SIDE", no_wrap=True)
    table.add_column("METHOD", no_wrap=True)
    table.add_column("PATH")
    table.add_column("STATUS", no_wrap=True)
    for e in residual:
        side = "old" if e in old_set else "new"
        table.add_row(side, e.method, escape(e.path.source), str(e.status_code))

    console.print(f"[bold]Differences:[/bold] {len(residual)}")
    console.print(table)
    raise typer.Exit(code=1)


@app.command("nginx-template")
def nginx_template() -> None:
    """Print an nginx config template with the access log format apicover reads."""
    console.print(DEFAULT_NGINX_TEMPLATE, markup=False, highlight=False)


def _report(result: RunResult, fmt: str) -> None:
    ev = result.evaluation

    if fmt == "json":
        console.print_json(
            data={
                "test_coverage": ev.test_coverage,
                "required_coverage": result.required_coverage,
                "passed": result.passed,
                "has_gateway_issues": ev.has_gateway_issues,
                "declared": result.declared_count,
                "observed": result.observed_count,
                "endpoints_not_covered": [
                    {"method": e.method, "path": e.path.source, "status_code": e.status_code}
                    for e in ev.endpoints_not_covered
                ],
            }
        )
    else:
        if ev.has_gateway_issues:
            console.print(
                "[bold yellow]WARNING:[/bold yellow] an unusual amount of 502 status codes were "
                "found, your setup might have gateway issues."
            )

        console.print(f"Test Coverage: [bold]{ev.test_coverage * 100:.1f}%[/bold]")
        console.print(f"Required: {result.required_coverage * 100:.1f}%")

        if ev.endpoints_not_covered:
            console.print("")
            console.print("The following endpoints were missed:")
            table = Table(show_header=True, header_style="bold")
            table.add_column("PATH")
            table.add_column("METHOD", no_wrap=True)
            table.add_column("STATUS", no_wrap=True)
            for e in ev.endpoints_not_covered:
                table.add_row(escape(e.path.source), e.method, str(e.status_code))
            console.print(table)

    if not result.passed:
        raise typer.Exit(code=1)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
