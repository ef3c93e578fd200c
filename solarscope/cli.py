"""
SolarScope CLI.

Command-line interface for rooftop solar viability analysis.
"""

from __future__ import annotations

import json
from dataclasses import replace
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .analysis.service import AnalysisRequest, AnalysisService
from .core.config import settings
from .core.errors import ApiErrorRecord, ErrorCode, describe
from .core.models import AnalysisRecord, FinancialInputs, Verdict
from .geo.footprint_resolver import FootprintResolver, footprint_to_dict
from .utils.logging_config import setup_logging
from .utils.retry import retry_with_backoff
from .utils.validation import ValidationError, validate_address, validate_coordinates

app = typer.Typer(
    name="solarscope",
    help="SolarScope - rooftop solar viability analysis",
    add_completion=False,
)
console = Console()

VERDICT_COLORS = {
    Verdict.APT: "green",
    Verdict.PARTIAL: "yellow",
    Verdict.NOT_APT: "red",
}


def _print_error(error: ApiErrorRecord) -> None:
    console.print(f"[red]{error.user_message}[/red]")
    console.print(f"[dim]{error.code.value} | action: {error.action.value}[/dim]")


def _print_record(record: AnalysisRecord) -> None:
    color = VERDICT_COLORS[record.verdict]
    console.print(Panel.fit(
        f"[bold {color}]{record.verdict.value}[/bold {color}]\n"
        f"Confiança: {record.confidence.value}",
        title=f"Análise {record.id}",
        border_style=color,
    ))

    table = Table(title="Resultado")
    table.add_column("Métrica", style="cyan")
    table.add_column("Valor", style="green")
    table.add_column("Fonte", style="dim")

    table.add_row("Área útil", f"{record.usable_area_m2:,.1f} m²", record.area_source.value)
    table.add_row("Irradiação", f"{record.annual_irradiation:,.0f} kWh/m²/ano", record.irradiation_source)
    table.add_row("Perda por sombreamento", f"{record.shading_loss_percent}%", record.shading_source.value)
    table.add_row("Produção estimada", f"{record.estimated_production_kwh:,.0f} kWh/ano", "")
    system = record.system_config
    table.add_row(
        "Sistema sugerido",
        f"{system.system_power_kwp:.2f} kWp ({system.panel_count} módulos)",
        "",
    )
    if record.azimuth_deg is not None:
        table.add_row("Orientação", f"{record.azimuth_deg:.0f}°", "")
    if record.tilt_deg is not None:
        table.add_row("Inclinação", f"{record.tilt_deg:.0f}°", "")
    if record.financials is not None:
        money = record.financials
        table.add_row("Custo líquido", f"{money.net_system_cost:,.0f}", "")
        table.add_row("Economia anual", f"{money.annual_savings:,.0f}", "")
        if money.simple_payback_years is not None:
            table.add_row("Payback", f"{money.simple_payback_years:.1f} anos", "")
    console.print(table)

    for title, lines, style in (
        ("Motivos", record.reasons, "white"),
        ("Recomendações", record.recommendations, "cyan"),
        ("Avisos", record.warnings, "yellow"),
    ):
        if lines:
            console.print(f"\n[bold]{title}:[/bold]")
            for line in lines:
                console.print(f"  [{style}]- {line}[/{style}]")


@app.command()
def analyze(
    lat: Optional[float] = typer.Option(None, "--lat", help="Latitude"),
    lng: Optional[float] = typer.Option(None, "--lng", help="Longitude"),
    address: Optional[str] = typer.Option(None, "--address", "-a", help="Street address"),
    energy_cost: Optional[float] = typer.Option(None, "--energy-cost", help="Energy tariff per kWh"),
    cost_per_watt: Optional[float] = typer.Option(None, "--cost-per-watt", help="Installed cost per Wp"),
    retries: int = typer.Option(2, "--retries", help="Retries on transient upstream errors"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the JSON response here"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """
    Analyze a rooftop by coordinate or address.
    """
    setup_logging(level="DEBUG" if verbose else None)

    try:
        if lat is not None and lng is not None:
            request = AnalysisRequest(coordinate=validate_coordinates(lat, lng))
        elif address:
            request = AnalysisRequest(address=validate_address(address))
        else:
            raise ValidationError("Provide --lat and --lng, or --address", field="coordinates")
        if energy_cost is not None or cost_per_watt is not None:
            if not energy_cost or not cost_per_watt or energy_cost <= 0 or cost_per_watt <= 0:
                raise ValidationError("--energy-cost and --cost-per-watt must both be positive", field="financial")
            request = replace(request, financial=FinancialInputs(energy_cost, cost_per_watt))
    except ValidationError as e:
        console.print(f"[red]Invalid input:[/red] {e}")
        for suggestion in e.suggestions:
            console.print(f"  [dim]{suggestion}[/dim]")
        raise typer.Exit(2)

    service = AnalysisService()

    def on_retry(error: ApiErrorRecord, attempt: int) -> None:
        console.print(f"[yellow]{error.code.value}, retrying ({attempt + 1}/{retries})...[/yellow]")

    run = retry_with_backoff(service.analyze, max_retries=retries, on_retry=on_retry)

    with console.status("[bold]Analyzing rooftop...[/bold]"):
        outcome = run(request)

    if output:
        output.write_text(json.dumps(AnalysisService.respond(outcome), indent=2, ensure_ascii=False))
        console.print(f"[green]Saved to {output}[/green]")

    if isinstance(outcome, ApiErrorRecord):
        _print_error(outcome)
        raise typer.Exit(1)
    _print_record(outcome)


@app.command()
def footprint(
    lat: float = typer.Option(..., "--lat", help="Latitude"),
    lng: float = typer.Option(..., "--lng", help="Longitude"),
):
    """Look up the roof footprint for a coordinate."""
    setup_logging()
    try:
        coordinate = validate_coordinates(lat, lng)
    except ValidationError as e:
        console.print(f"[red]Invalid input:[/red] {e}")
        raise typer.Exit(2)

    console.print(f"[cyan]Searching footprint around ({lat}, {lng})...[/cyan]")
    result = FootprintResolver().resolve(coordinate)
    if isinstance(result, ApiErrorRecord):
        _print_error(result)
        raise typer.Exit(1)

    if not result.found:
        console.print("[yellow]Nenhum footprint encontrado.[/yellow]")
        if result.advisory:
            console.print(f"  {result.advisory.user_message}")
        return

    console.print(f"[green]Found footprint from {result.source}[/green]")
    console.print(f"  Area: {result.area_m2:,.1f} m²")
    console.print(f"  Confidence: {result.confidence.value}")
    if result.azimuth_deg is not None:
        console.print(f"  Azimuth: {result.azimuth_deg:.0f}°")
    console.print_json(data=footprint_to_dict(result))


@app.command()
def errors(
    code: Optional[str] = typer.Argument(None, help="Error code to describe"),
):
    """List error codes with their messages and recovery actions."""
    codes = list(ErrorCode)
    if code:
        if code not in ErrorCode.__members__:
            console.print(f"[red]Unknown error code: {code}[/red]")
            raise typer.Exit(1)
        codes = [ErrorCode[code]]

    table = Table(title="Error codes")
    table.add_column("Code", style="cyan")
    table.add_column("Action", style="magenta")
    table.add_column("Message")

    for error_code in codes:
        record = describe(error_code)
        table.add_row(record.code.value, record.action.value, record.user_message)
    console.print(table)


@app.command()
def serve(
    port: int = typer.Option(settings.api_port, "--port", "-p", help="Server port"),
    host: str = typer.Option("0.0.0.0", "--host", help="Bind address"),
):
    """Start the REST API server."""
    import uvicorn

    setup_logging()
    console.print(f"[bold]Starting SolarScope API on {host}:{port}...[/bold]")
    uvicorn.run("solarscope.api.main:app", host=host, port=port)


@app.command()
def version():
    """Show version information."""
    from . import __version__
    console.print(f"SolarScope v{__version__}")


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
