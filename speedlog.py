#!/usr/bin/env python3
"""
speedlog -- measure and log internet speed against your own endpoint.

Usage::

    python speedlog.py                          # rich dashboard, default server
    python speedlog.py --server http://host:3000
    python speedlog.py --simple                 # plain text
    python speedlog.py --json                   # JSON to stdout
    python speedlog.py -o result.json           # save to file
    python speedlog.py --csv log.csv            # append CSV row
    python speedlog.py --user alice             # save to history as alice
    python speedlog.py --history                # show past results
    python speedlog.py --stats --days 7         # averages over the last week
    python speedlog.py --repeat 5 --interval 60 # repeat 5 times
    python speedlog.py --serve --port 3000      # run the transfer endpoint
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
import time
from typing import Any, Dict, Optional

from rich.logging import RichHandler

from speedprobe.config import load_config
from speedprobe.constants import (
    DEFAULT_SERVE_HOST,
    DEFAULT_SERVE_PORT,
    MAX_PING_ATTEMPTS,
    MAX_PING_INTERVAL_MS,
    MAX_TIMEOUT,
    MIN_PING_ATTEMPTS,
    MIN_TIMEOUT,
)
from speedprobe.endpoint import Endpoint, TransferClient
from speedprobe.errors import MeasurementError
from speedprobe.history import load_history, save_result, summarize
from speedprobe.orchestrator import MeasurementOrchestrator, MeasurementResult
from speedprobe.throughput import UploadTiming
from ui.dashboard import (
    ProgressDisplay,
    console,
    print_endpoint_info,
    print_error,
    print_final_results,
    print_header,
    print_history,
    print_latency_details,
    print_speed_result,
    print_summary,
)
from ui.output import append_csv, create_result_json, format_text_result, save_json

logger = logging.getLogger("speedlog")


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

def configure_logging(verbose: bool = False) -> None:
    """Route library logging through rich on the shared console."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(name)s - %(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
    )
    logging.getLogger("aiohttp").setLevel(logging.WARNING)


# ---------------------------------------------------------------------------
# Parameter validation
# ---------------------------------------------------------------------------

def _validate(
    ping_attempts: int,
    ping_interval_ms: int,
    timeout: float,
    download_legs: list,
    upload_legs: list,
) -> None:
    """Raise ``ValueError`` if any parameter is out of range."""
    if not MIN_PING_ATTEMPTS <= ping_attempts <= MAX_PING_ATTEMPTS:
        raise ValueError(f"Ping attempts must be between {MIN_PING_ATTEMPTS} and {MAX_PING_ATTEMPTS}")
    if not 0 <= ping_interval_ms <= MAX_PING_INTERVAL_MS:
        raise ValueError(f"Ping interval must be between 0 and {MAX_PING_INTERVAL_MS} ms")
    if not MIN_TIMEOUT <= timeout <= MAX_TIMEOUT:
        raise ValueError(f"Timeout must be between {MIN_TIMEOUT} and {MAX_TIMEOUT} s")
    for name, legs in (("Download", download_legs), ("Upload", upload_legs)):
        if not legs or any(int(size) <= 0 for size in legs):
            raise ValueError(f"{name} legs must be a non-empty list of positive byte counts")


# ---------------------------------------------------------------------------
# Core test runner
# ---------------------------------------------------------------------------

async def run_speedtest(
    endpoint: Endpoint,
    *,
    json_output: bool = False,
    output_file: Optional[str] = None,
    csv_file: Optional[str] = None,
    simple: bool = False,
    user: Optional[str] = None,
    ping_attempts: int,
    ping_interval_ms: int,
    timeout: float,
    upload_timing: UploadTiming,
    download_legs: list,
    upload_legs: list,
) -> Optional[Dict[str, Any]]:
    """Execute one measurement run and return a JSON-serialisable dict."""

    show_ui = not json_output and not simple

    if show_ui:
        print_header()
        print_endpoint_info(endpoint.base_url, endpoint.label)

    progress = ProgressDisplay() if show_ui else None

    async with TransferClient(endpoint) as client:
        orchestrator = MeasurementOrchestrator(
            client,
            endpoint.label,
            ping_attempts=ping_attempts,
            ping_interval_ms=ping_interval_ms,
            download_legs=download_legs,
            upload_legs=upload_legs,
            timeout=timeout,
            upload_timing=upload_timing,
            observer=progress,
        )

        if progress:
            progress.start()
        try:
            result: MeasurementResult = await orchestrator.run()
        finally:
            if progress:
                progress.stop()

    # -- Presentation -------------------------------------------------------
    if show_ui:
        if result.latency:
            print_latency_details(result.latency)
        if result.download:
            print_speed_result(result.download, "Download Results", "green")
        if result.upload:
            print_speed_result(result.upload, "Upload Results", "blue")
        print_final_results(result)
    elif simple:
        print(format_text_result(result))

    # -- History ------------------------------------------------------------
    record_id = None
    if user:
        record_id = save_result(result, user)
        if show_ui:
            console.print(f"[green]Saved to history as[/green] {user} [dim]({record_id})[/dim]")

    result_json = create_result_json(result, endpoint.to_dict(), record_id)

    if json_output:
        print(json.dumps(result_json, indent=2))

    if output_file:
        save_json(result_json, output_file)
        if not json_output:
            console.print(f"\n[green]Results saved to:[/green] {output_file}")

    if csv_file:
        append_csv(csv_file, result)
        if not json_output:
            console.print(f"[green]CSV row appended to:[/green] {csv_file}")

    return result_json


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="speedlog -- latency, download and upload measurement",
    )
    # Output modes
    parser.add_argument("--json", "-j", action="store_true", help="Output results as JSON")
    parser.add_argument("--output", "-o", type=str, metavar="FILE", help="Save results to JSON file")
    parser.add_argument("--csv", type=str, metavar="FILE", help="Append results as CSV row")
    parser.add_argument("--simple", "-s", action="store_true", help="Simple output mode (no dashboard)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    # Endpoint
    parser.add_argument("--server", type=str, metavar="URL", help="Transfer endpoint base URL")
    parser.add_argument("--label", type=str, help="Server label stored with the result")

    # Test parameters
    parser.add_argument("--attempts", type=int, metavar="N", help="Number of ping attempts (default: 5)")
    parser.add_argument("--interval-ms", type=int, metavar="MS", help="Delay between ping attempts (default: 300)")
    parser.add_argument("--timeout", type=float, metavar="SECS", help="Per-operation timeout (default: 10)")
    parser.add_argument(
        "--upload-timing",
        choices=[t.value for t in UploadTiming],
        help="Time uploads with the server-reported duration or the client clock (default: server)",
    )

    # Repeat mode
    parser.add_argument("--repeat", type=int, default=1, metavar="N", help="Run the test N times (default: 1)")
    parser.add_argument("--interval", type=float, default=60.0, metavar="SECS", help="Seconds between repeated tests (default: 60)")

    # History
    parser.add_argument("--user", type=str, help="Save results to history under this identity")
    parser.add_argument("--history", action="store_true", help="Show past test results and exit")
    parser.add_argument("--stats", action="store_true", help="Show history averages and exit")
    parser.add_argument("--days", type=int, default=30, help="Window for --stats (default: 30)")

    # Server mode
    parser.add_argument("--serve", action="store_true", help="Run the transfer endpoint instead of a test")
    parser.add_argument("--host", type=str, default=DEFAULT_SERVE_HOST, help="Bind address for --serve")
    parser.add_argument("--port", type=int, default=DEFAULT_SERVE_PORT, help="Port for --serve")
    return parser


def _pick(cli_value: Any, config: Dict[str, Any], key: str) -> Any:
    return cli_value if cli_value is not None else config[key]


def main(argv: Optional[list] = None) -> None:
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)
    config = load_config()
    user = _pick(args.user, config, "user") or None

    # Server mode
    if args.serve:
        from speedprobe.server import serve
        serve(host=args.host, port=args.port)
        return

    # History modes
    if args.history:
        print_history(load_history(user_identity=user))
        return
    if args.stats:
        print_summary(summarize(load_history(limit=0, user_identity=user), days=args.days))
        return

    # Validate
    try:
        ping_attempts = _pick(args.attempts, config, "ping_attempts")
        ping_interval_ms = _pick(args.interval_ms, config, "ping_interval_ms")
        timeout = float(_pick(args.timeout, config, "timeout"))
        upload_timing = UploadTiming(_pick(args.upload_timing, config, "upload_timing"))
        download_legs = list(config["download_legs"])
        upload_legs = list(config["upload_legs"])
        _validate(ping_attempts, ping_interval_ms, timeout, download_legs, upload_legs)
        endpoint = Endpoint.from_url(
            _pick(args.server, config, "server_url"),
            label=args.label or config.get("server_label") or None,
        )
    except ValueError as exc:
        console.print(f"[red]Error: {exc}[/red]")
        sys.exit(1)

    if args.repeat < 1:
        console.print("[red]Error: --repeat must be >= 1[/red]")
        sys.exit(1)

    csv_file = args.csv or config.get("csv_file") or None

    # Normal run (with repeat support)
    try:
        for run_idx in range(args.repeat):
            if args.repeat > 1 and not args.json:
                console.print(f"\n[bold cyan]--- Run {run_idx + 1}/{args.repeat} ---[/bold cyan]")

            asyncio.run(
                run_speedtest(
                    endpoint,
                    json_output=args.json,
                    output_file=args.output,
                    csv_file=csv_file,
                    simple=args.simple,
                    user=user,
                    ping_attempts=ping_attempts,
                    ping_interval_ms=ping_interval_ms,
                    timeout=timeout,
                    upload_timing=upload_timing,
                    download_legs=download_legs,
                    upload_legs=upload_legs,
                )
            )

            # Wait between runs (but not after the last one)
            if run_idx < args.repeat - 1:
                if not args.json:
                    console.print(f"[dim]Next run in {args.interval:.0f}s...[/dim]")
                time.sleep(args.interval)

    except MeasurementError as exc:
        if args.json:
            print(json.dumps({"error": exc.to_dict()}, indent=2))
        else:
            print_error(exc)
        sys.exit(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Test cancelled by user[/yellow]")
        sys.exit(1)
    except Exception as exc:
        logger.debug("Unexpected failure", exc_info=True)
        console.print(f"\n[red]Error: {exc}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
