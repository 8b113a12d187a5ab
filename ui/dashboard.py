"""
Rich-based terminal dashboard for speedlog results.

All formatting helpers live in ``speedprobe.stats`` -- this module only does
presentation via the ``rich`` library.
"""
from __future__ import annotations

import statistics
from typing import Any, Dict, List, Optional

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from speedprobe.errors import MeasurementError, Stage
from speedprobe.history import format_history_table, sparkline
from speedprobe.progress import ProgressObserver
from speedprobe.stats import format_latency, format_rate, format_size

console = Console()


# ---------------------------------------------------------------------------
# Histogram helper
# ---------------------------------------------------------------------------

_BARS = "▁▂▃▄▅▆▇█"


def create_histogram(values: List[float], height: int = 5) -> str:
    """Return a single-line Unicode bar-chart."""
    if not values:
        return "No data"

    lo, hi = min(values), max(values)
    span = hi - lo if hi > lo else 1.0
    norm = [(v - lo) / span * height for v in values]
    return "".join(_BARS[min(int(n * (len(_BARS) - 1) / height), len(_BARS) - 1)] for n in norm)


# ---------------------------------------------------------------------------
# Print helpers
# ---------------------------------------------------------------------------

def print_header() -> None:
    console.print()
    console.print(
        Panel.fit(
            "[bold cyan]speedlog[/bold cyan]\n"
            "[dim]Latency, download and upload against your own endpoint[/dim]",
            border_style="cyan",
        )
    )
    console.print()


def print_endpoint_info(url: str, label: str) -> None:
    table = Table(show_header=False, box=None, padding=(0, 1))
    table.add_column(style="dim")
    table.add_column(style="bold")
    table.add_row("Server:", label)
    table.add_row("URL:", url)
    console.print(Panel(table, title="[bold]Endpoint[/bold]", border_style="blue"))


def print_latency_details(estimate) -> None:  # noqa: ANN001 (LatencyEstimate)
    """Print latency statistics and a histogram of the samples."""
    table = Table(title="Latency Details", box=box.ROUNDED)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")

    samples = list(estimate.samples)
    if samples:
        table.add_row("Min", format_latency(min(samples)))
        table.add_row("Max", format_latency(max(samples)))
        table.add_row("Median", format_latency(statistics.median(samples)))
    table.add_row("Mean", format_latency(estimate.mean_ms))
    table.add_row("Jitter", f"{estimate.jitter_ms:.1f} ms")
    table.add_row("Samples", str(len(samples)))
    if estimate.failed_attempts:
        table.add_row("Failed", f"[red]{estimate.failed_attempts}[/red]")
    console.print(table)

    if len(samples) > 1:
        console.print(
            Panel(
                f"[cyan]{create_histogram(samples)}[/cyan]\n"
                f"[dim]Min: {min(samples):.1f} ms  Max: {max(samples):.1f} ms[/dim]",
                title="Ping Histogram",
            )
        )


def print_speed_result(estimate, title: str, color: str = "green") -> None:  # noqa: ANN001
    """Print a download or upload estimate with its per-leg breakdown."""
    table = Table(title=title, box=box.ROUNDED)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")

    table.add_row("Speed", f"[bold {color}]{format_rate(estimate.bits_per_second)}[/bold {color}]")
    table.add_row("Data Transferred", format_size(estimate.total_bytes))
    table.add_row("Duration", f"{estimate.total_seconds:.2f} s")
    table.add_row("Legs", f"{len(estimate.legs)} ok / {estimate.failed_legs} failed")
    console.print(table)

    if estimate.legs:
        lt = Table(title="Per-Leg Stats", box=box.SIMPLE)
        lt.add_column("Size", justify="right")
        lt.add_column("Time", justify="right")
        lt.add_column("Speed", justify="right")
        for leg in estimate.legs:
            lt.add_row(
                format_size(leg.size),
                f"{leg.seconds:.3f} s",
                format_rate(leg.bits_per_second),
            )
        console.print(lt)


def print_final_results(result) -> None:  # noqa: ANN001 (MeasurementResult)
    console.print()
    console.print(
        Panel.fit(
            f"[bold cyan]Server:[/bold cyan] {result.server_label}\n\n"
            f"[bold white]   Ping:[/bold white]  [bold yellow]{result.latency_ms:.1f} ms[/bold yellow]  "
            f"[dim](jitter: {result.jitter_ms:.1f} ms)[/dim]\n"
            f"[bold white]   Download:[/bold white]  [bold green]{format_rate(result.download_bps)}[/bold green]\n"
            f"[bold white]   Upload:[/bold white]  [bold blue]{format_rate(result.upload_bps)}[/bold blue]",
            title="[bold]Results[/bold]",
            border_style="cyan",
        )
    )
    console.print()


def print_error(exc: MeasurementError) -> None:
    """Name the failing stage and reason, and point at the manual retry."""
    console.print(
        Panel.fit(
            f"[bold red]{exc.stage.value.capitalize()} stage failed[/bold red] "
            f"([red]{exc.reason.value}[/red])\n"
            f"[dim]{exc.message}[/dim]\n\n"
            "Run the test again to retry.",
            title="[bold]Speed test failed[/bold]",
            border_style="red",
        )
    )


def print_history(entries: List[Dict[str, Any]]) -> None:
    if not entries:
        console.print("[dim]No saved results yet.[/dim]")
        return

    table = Table(title="Test History", box=box.ROUNDED)
    table.add_column("When", style="dim")
    table.add_column("Server")
    table.add_column("Ping", justify="right")
    table.add_column("Jitter", justify="right")
    table.add_column("Download", justify="right", style="green")
    table.add_column("Upload", justify="right", style="blue")

    rows = format_history_table(entries)
    for row in rows:
        table.add_row(
            row["timestamp"],
            row["server"],
            f"{row['ping'] or 0:.1f} ms",
            f"{row['jitter'] or 0:.1f} ms",
            format_rate(row["download"] or 0),
            format_rate(row["upload"] or 0),
        )
    console.print(table)

    if len(rows) > 1:
        console.print(f"  Download trend: [green]{sparkline([r['download'] for r in rows])}[/green]")
        console.print(f"  Upload trend:   [blue]{sparkline([r['upload'] for r in rows])}[/blue]")


def print_summary(summary: Dict[str, Any]) -> None:
    def _fmt(value: Optional[float], unit: str) -> str:
        return "-" if value is None else f"{value:.2f} {unit}"

    table = Table(title=f"Last {summary['days']} days", box=box.ROUNDED)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Tests", str(summary["totalTests"]))
    table.add_row("Avg Download", _fmt(summary["avgDownload"], "Mbps"))
    table.add_row("Avg Upload", _fmt(summary["avgUpload"], "Mbps"))
    table.add_row("Avg Ping", _fmt(summary["avgPing"], "ms"))
    table.add_row("Avg Jitter", _fmt(summary["avgJitter"], "ms"))
    table.add_row("Max Download", _fmt(summary["maxDownload"], "Mbps"))
    table.add_row("Max Upload", _fmt(summary["maxUpload"], "Mbps"))
    table.add_row("Min Ping", _fmt(summary["minPing"], "ms"))
    console.print(table)


# ---------------------------------------------------------------------------
# Progress display
# ---------------------------------------------------------------------------

_STAGE_LABELS = {
    Stage.LATENCY: "Ping",
    Stage.DOWNLOAD: "Downloading",
    Stage.UPLOAD: "Uploading",
}


class ProgressDisplay(ProgressObserver):
    """Drives a ``rich`` progress bar per stage from measurement callbacks."""

    def __init__(self) -> None:
        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold]{task.description}"),
            BarColumn(bar_width=40),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            TextColumn("[bold cyan]{task.fields[detail]}[/bold cyan]"),
            TimeElapsedColumn(),
            console=console,
        )
        self._tasks: Dict[Stage, TaskID] = {}
        self._started = False

    def start(self) -> None:
        self.progress.start()
        self._started = True

    def stop(self) -> None:
        if self._started:
            self.progress.stop()
            self._started = False

    # -- ProgressObserver ---------------------------------------------------

    def on_stage(self, stage: Stage) -> None:
        if stage not in self._tasks:
            self._tasks[stage] = self.progress.add_task(
                _STAGE_LABELS[stage], total=100, detail="..."
            )

    def on_progress(self, stage: Stage, current: float, total: float, rate: Optional[float]) -> None:
        task_id = self._tasks.get(stage)
        if task_id is None or not total:
            return

        if stage is Stage.LATENCY:
            detail = f"{current:.0f}/{total:.0f}  " + (f"{rate:.0f} ms" if rate is not None else "failed")
        elif stage is Stage.DOWNLOAD:
            detail = f"{format_size(int(current))} of {format_size(int(total))}  {format_rate(rate or 0.0)}"
        else:
            detail = f"leg {current:.0f}/{total:.0f}  {format_rate(rate or 0.0)}"

        # Download progress restarts with every leg; show it per leg.
        completed = min(current / total, 1.0) * 100
        self.progress.update(task_id, completed=completed, detail=detail)
