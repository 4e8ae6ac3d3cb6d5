"""
Rich renderables for the metrics cards and the stress-test output pane.

These functions only read state; they never touch a subscription.
"""

from typing import List, Optional

from rich.console import Group, RenderableType
from rich.panel import Panel
from rich.progress_bar import ProgressBar
from rich.table import Table
from rich.text import Text

from ..loadtest.controller import LoadTestRun, RunStatus
from ..metrics.snapshot import MetricsSnapshot, load_percent

WAITING_MESSAGE = "Waiting for test to start..."
OUTPUT_PADDING = "\n" * 7
MISSING = "n/a"


def format_count(value: Optional[int]) -> str:
    """Format a metric with thousands separators; missing values show as n/a."""
    if value is None:
        return MISSING
    return f"{value:,}"


def format_percent(percent: Optional[float]) -> str:
    if percent is None:
        return MISSING
    return f"{percent:.1f}%"


def load_style(percent: Optional[float]) -> str:
    if percent is None:
        return "dim"
    if percent < 50:
        return "green"
    if percent < 75:
        return "yellow"
    return "red"


def render_rate_limit_card(snapshot: MetricsSnapshot) -> Panel:
    percent = load_percent(snapshot)
    style = load_style(percent)
    bar = ProgressBar(
        total=100,
        # The bar cannot draw past full; the caption carries the real figure
        completed=max(0.0, min(percent or 0.0, 100.0)),
        complete_style=style,
        finished_style=style,
    )
    caption = Text(
        f"{format_count(snapshot.global_tokens_used)} requests / "
        f"{format_count(snapshot.global_token_bucket_cap)} max",
        style="dim",
        justify="center",
    )
    figure = Text(format_percent(percent), style=f"bold {style}", justify="center")
    return Panel(
        Group(bar, Text(), figure, caption),
        title="Global Rate Limit",
        padding=(1, 2),
    )


def _render_count_card(title: str, value: Optional[int], caption: str) -> Panel:
    return Panel(
        Group(
            Text(format_count(value), style="bold cyan", justify="center"),
            Text(caption, style="dim", justify="center"),
        ),
        title=title,
        padding=(1, 2),
    )


def render_metrics(snapshot: MetricsSnapshot, connected: bool = True) -> RenderableType:
    """The three live-metrics cards side by side."""
    grid = Table.grid(expand=True, padding=(0, 1))
    grid.add_column(ratio=1)
    grid.add_column(ratio=1)
    grid.add_column(ratio=1)
    grid.add_row(
        render_rate_limit_card(snapshot),
        _render_count_card(
            "Active Users", snapshot.active_users, "Users in the last 30 minutes"
        ),
        _render_count_card(
            "Total Active URLs", snapshot.current_url_count, "URLs created in the last hour"
        ),
    )

    renderables: List[RenderableType] = [grid]
    if not connected:
        renderables.append(Text("Metrics feed disconnected.", style="yellow"))
    return Panel(Group(*renderables), title="Live Metrics", border_style="blue")


def render_run_status(run: LoadTestRun) -> Text:
    if run.status is RunStatus.RUNNING:
        return Text("Running test...", style="bold yellow")
    if run.status is RunStatus.DONE:
        if run.error_message:
            return Text("Test failed", style="bold red")
        return Text("Test finished", style="bold green")
    return Text("Ready", style="bold")


def render_run_hint(run: LoadTestRun) -> Text:
    """What the user can do next; the view itself takes no input."""
    if run.is_running:
        return Text("Press Ctrl-C to stop the test and exit.", style="dim")
    return Text("Run the dashboard again to start another test.", style="dim")


def render_output(run: LoadTestRun) -> Text:
    """The terminal pane: the error when there is one, the output otherwise."""
    if run.error_message:
        return Text(run.error_message + OUTPUT_PADDING, style="red")
    body = "\n".join(run.output_log) if run.output_log else WAITING_MESSAGE
    return Text(body + OUTPUT_PADDING, style="green")


def render_load_test(run: LoadTestRun, max_lines: Optional[int] = None) -> Panel:
    """The stress-test panel; ``max_lines`` keeps only the tail of the log."""
    if max_lines is not None and len(run.output_log) > max_lines:
        run = run.copy()
        run.output_log = run.output_log[-max_lines:]

    return Panel(
        Group(
            render_run_status(run),
            render_run_hint(run),
            Text(),
            Panel(render_output(run), title="Test Output", border_style="green"),
        ),
        title="System Stress Test",
        border_style="magenta",
    )


def render_dashboard(
    snapshot: MetricsSnapshot,
    run: LoadTestRun,
    metrics_connected: bool = True,
    max_lines: Optional[int] = 20,
) -> RenderableType:
    return Group(
        render_metrics(snapshot, connected=metrics_connected),
        render_load_test(run, max_lines=max_lines),
    )
