"""
Console flows behind the CLI commands.

Each coroutine owns its monitor and/or controller for its whole lifetime and
tears them down on the way out, including on cancellation (Ctrl-C).
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

import httpx
from rich.console import Console
from rich.live import Live
from rich.markup import escape

from ..config import LoadscopeConfig
from ..loadtest.controller import LoadTestController, LoadTestRun, RunStatus
from ..loadtest.recorder import RunTranscriptRecorder
from ..metrics.monitor import MetricsMonitor
from .render import render_dashboard, render_metrics

log = logging.getLogger(__name__)

REFRESH_INTERVAL = 0.25


def print_error(console: Console, message: str):
    """Display an error message."""
    console.print(f"[bold red]Error:[/bold red] {escape(message)}", highlight=False)


def print_info(console: Console, message: str):
    """Display an info message."""
    console.print(f"[blue]{escape(message)}[/blue]", highlight=False)


async def watch_metrics(
    config: LoadscopeConfig,
    console: Console,
    once: bool = False,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> int:
    """
    Show the live metrics cards until the feed drops or the user interrupts.

    With ``once`` the first snapshot is printed and the feed is closed.

    Returns:
        Exit code (0 for success, 1 if the feed failed)
    """
    monitor = MetricsMonitor(config, transport=transport)
    monitor.start()
    try:
        if once:
            snapshot = await monitor.wait_for_update()
            if snapshot is None:
                print_error(console, f"Metrics feed unavailable: {monitor.last_error}")
                return 1
            console.print(render_metrics(snapshot))
            return 0

        with Live(
            render_metrics(monitor.snapshot),
            console=console,
            refresh_per_second=4,
        ) as live:
            while True:
                snapshot = await monitor.wait_for_update()
                if snapshot is None:
                    live.update(render_metrics(monitor.snapshot, connected=False))
                    break
                live.update(render_metrics(snapshot))

        print_error(console, f"Metrics feed stopped: {monitor.last_error}")
        return 1
    finally:
        monitor.stop()


async def run_stress_test(
    config: LoadscopeConfig,
    console: Console,
    quiet: bool = False,
    transcript_path: Optional[Path] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> int:
    """
    Start one stress-test run and echo its output lines as they arrive.

    Cancelling the coroutine stops the run. The transcript, when requested,
    is written with the state the run had when it ended or was stopped.

    Returns:
        Exit code (0 when the run finished without error, 1 otherwise)
    """
    recorder = RunTranscriptRecorder() if transcript_path else None
    printed = 0

    def on_change(run: LoadTestRun) -> None:
        nonlocal printed
        if not quiet:
            for line in run.output_log[printed:]:
                console.print(line, markup=False, highlight=False)
        printed = len(run.output_log)

    controller = LoadTestController(
        config, listener=on_change, recorder=recorder, transport=transport
    )

    if not quiet:
        print_info(console, "Initializing stress test...")

    def save_transcript(run: LoadTestRun) -> None:
        if recorder:
            saved = recorder.save(transcript_path, run)
            if not quiet:
                print_info(console, f"Transcript saved to {saved}")

    if controller.start():
        try:
            run = await controller.wait_settled()
        except asyncio.CancelledError:
            run = controller.run
            controller.stop()
            log.info("Stress test stopped by user")
            print_info(console, "Stress test stopped.")
            save_transcript(run)
            raise
    else:
        run = controller.run

    save_transcript(run)

    if run.error_message:
        print_error(console, run.error_message)
        return 1
    if run.status is not RunStatus.DONE:
        return 1

    if not quiet:
        console.print("Stress test completed.", style="bold green")
    return 0


async def run_dashboard(
    config: LoadscopeConfig,
    console: Console,
    start_test: bool = True,
    duration: Optional[float] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> int:
    """
    Live metrics and a stress-test run in one view.

    Runs until cancelled, or for ``duration`` seconds when given. The metrics
    feed and the stress-test feed are independent: either can fail without
    affecting the other.
    """
    live = Live(console=console, refresh_per_second=4, auto_refresh=True)
    monitor: Optional[MetricsMonitor] = None
    controller: Optional[LoadTestController] = None

    def refresh(_state=None) -> None:
        if monitor is None or controller is None:
            return
        live.update(
            render_dashboard(
                monitor.snapshot,
                controller.run,
                metrics_connected=monitor.connected,
            )
        )

    monitor = MetricsMonitor(config, listener=refresh, transport=transport)
    controller = LoadTestController(config, listener=refresh, transport=transport)

    loop = asyncio.get_running_loop()
    deadline = loop.time() + duration if duration is not None else None

    with live:
        refresh()
        monitor.start()
        if start_test:
            controller.start()
        try:
            while deadline is None or loop.time() < deadline:
                await asyncio.sleep(REFRESH_INTERVAL)
                refresh()
        finally:
            controller.stop()
            monitor.stop()

    return 0
