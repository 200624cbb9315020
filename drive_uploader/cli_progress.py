"""Console rendering and progress helpers for drive-up CLI."""
from __future__ import annotations

import time
from typing import Any, Dict, Iterable, Optional

from rich.console import Console
from rich.live import Live
from rich.markup import escape
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

from .models import LocalFile, UploadOutcome, UploadStatus, ValidationResult

console = Console()

_STATUS_STYLE = {
    UploadStatus.QUEUEING: "dim",
    UploadStatus.TRANSFERRING: "cyan",
    UploadStatus.FINALIZING: "yellow",
    UploadStatus.SUCCESS: "green",
    UploadStatus.ERROR: "red",
}


def _human_size(value: int) -> str:
    size = float(max(value, 0))
    units = ["B", "KB", "MB", "GB", "TB"]
    unit_idx = 0
    while size >= 1024.0 and unit_idx < len(units) - 1:
        size /= 1024.0
        unit_idx += 1
    if unit_idx == 0:
        return f"{int(size)} {units[unit_idx]}"
    return f"{size:.2f} {units[unit_idx]}"


def render_configuration_summary(config: Dict[str, Any]) -> None:
    """Render startup configuration summary."""
    table = Table.grid(padding=(0, 2))
    table.add_column(style="bold cyan", justify="right")
    table.add_column(style="white")

    for key, value in config.items():
        rendered = "-" if value is None else escape(str(value))
        table.add_row(key, rendered)

    panel = Panel(
        table,
        title="[bold green]drive-up[/bold green]",
        subtitle="[dim]drive_uploader CLI[/dim]",
        border_style="blue",
    )
    console.print(panel)


def render_validation_result(result: ValidationResult) -> None:
    counts = ", ".join(f"{key}={value}" for key, value in result.counts.items())
    if result.is_valid:
        console.print(f"[green]Valid[/green] ({counts})")
        return

    table = Table(title=f"[red]Invalid[/red] ({counts})", show_lines=False)
    table.add_column("Code", style="bold red")
    table.add_column("File", style="cyan")
    table.add_column("Message")
    for issue in result.errors:
        table.add_row(issue.code, escape(issue.file_name or "-"), escape(issue.message))
    console.print(table)


def render_outcomes(outcomes: Iterable[UploadOutcome]) -> None:
    table = Table(title="Upload results")
    table.add_column("File", style="cyan")
    table.add_column("Status")
    table.add_column("Size", justify="right")
    table.add_column("Item / Error")
    for outcome in outcomes:
        style = _STATUS_STYLE[outcome.status]
        detail = outcome.item_id if outcome.success else outcome.error
        table.add_row(
            escape(outcome.file_name),
            f"[{style}]{outcome.status.value}[/{style}]",
            _human_size(outcome.file_size),
            escape(detail or "-"),
        )
    console.print(table)


class BatchUploadProgressDisplay:
    """
    Live per-file display driven by the manager's four callbacks.

    Rows are registered up front with track() so callbacks can be
    correlated by file id.
    """

    def __init__(self):
        self._names: Dict[str, str] = {}
        self._task_ids: Dict[str, TaskID] = {}
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold cyan]{task.fields[label]}", justify="left"),
            BarColumn(bar_width=36),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            TextColumn("{task.fields[status]}"),
            TimeElapsedColumn(),
            expand=False,
            console=console,
        )
        self._live: Optional[Live] = None

    def track(self, file: LocalFile) -> None:
        self._names[file.file_id] = file.name

    def start(self) -> None:
        if self._live is not None:
            return
        self._live = Live(self._progress, console=console, refresh_per_second=8, vertical_overflow="visible")
        self._live.start()

    def stop(self) -> None:
        if self._live is None:
            return
        self._live.stop()
        self._live = None

    def _row(self, file_id: str) -> TaskID:
        task_id = self._task_ids.get(file_id)
        if task_id is None:
            label = escape(self._names.get(file_id, file_id)[:50])
            task_id = self._progress.add_task("upload", label=label, total=100, status="")
            self._task_ids[file_id] = task_id
        return task_id

    def on_progress(self, file_id: str, percent: int) -> None:
        self._progress.update(self._row(file_id), completed=percent)

    def on_status_change(self, file_id: str, status: UploadStatus) -> None:
        style = _STATUS_STYLE.get(status, "white")
        self._progress.update(self._row(file_id), status=f"[{style}]{status.value}[/{style}]")

    def on_success(self, file_id: str, outcome: UploadOutcome) -> None:
        self._progress.update(self._row(file_id), completed=100)
        self._timeline("DONE", self._names.get(file_id, file_id), outcome.item_id)

    def on_error(self, file_id: str, message: str) -> None:
        self._timeline("FAIL", self._names.get(file_id, file_id), message)

    def _timeline(self, status: str, name: str, detail: Optional[str]) -> None:
        stamp = time.strftime("%H:%M:%S")
        color = "green" if status == "DONE" else "red"
        suffix = f" [dim]{escape(detail)}[/dim]" if detail else ""
        console.print(f"[dim]{stamp}[/dim] [{color}]{status:<4}[/{color}] {escape(name)}{suffix}")
