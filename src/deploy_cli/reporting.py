"""Presentation sink: renders pipeline progress. Never part of control flow."""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from typing import List, Optional, Tuple, TYPE_CHECKING

from rich.console import Console
from rich.table import Table

if TYPE_CHECKING:
    from .orchestrator.models import DeploymentReport, Stage, StageResult


def format_duration(seconds: float) -> str:
    seconds = int(round(seconds))
    minutes, remaining = divmod(seconds, 60)
    return f"{minutes}m {remaining}s" if minutes > 0 else f"{remaining}s"


def format_file_size(size: int) -> str:
    units = ["Bytes", "KB", "MB", "GB"]
    if size <= 0:
        return "0 Bytes"
    index = min(int(math.floor(math.log(size, 1024))), len(units) - 1)
    return f"{round(size / 1024 ** index, 2):g} {units[index]}"


class ProgressReporter(ABC):
    @abstractmethod
    def stage_started(self, stage: "Stage") -> None: ...

    @abstractmethod
    def stage_finished(self, stage: "Stage", result: "StageResult") -> None: ...

    @abstractmethod
    def info(self, message: str) -> None: ...

    @abstractmethod
    def warning(self, message: str) -> None: ...

    @abstractmethod
    def error(self, message: str) -> None: ...

    @abstractmethod
    def summary(self, report: "DeploymentReport") -> None: ...


class ConsoleReporter(ProgressReporter):
    """Rich console output."""

    def __init__(self, console: Optional[Console] = None) -> None:
        self.console = console or Console()

    def stage_started(self, stage: "Stage") -> None:
        self.console.print(f"[dim]… {stage.description}[/dim]")

    def stage_finished(self, stage: "Stage", result: "StageResult") -> None:
        from .orchestrator.models import StageOutcome

        if result.outcome is StageOutcome.FATAL:
            self.console.print(f"[red]✖ {stage.description} failed[/red]: {result.message}")
        elif result.outcome is StageOutcome.WARN:
            self.console.print(f"[yellow]⚠ {stage.description}[/yellow]: {result.message}")
        elif result.skipped:
            self.console.print(f"[dim]- {stage.description} skipped ({result.message})[/dim]")
        elif result.simulated:
            self.console.print(f"[cyan]✔ {result.message}[/cyan]")
        else:
            suffix = f": {result.message}" if result.message else ""
            self.console.print(f"[green]✔ {stage.description}[/green]{suffix}")

    def info(self, message: str) -> None:
        self.console.print(message)

    def warning(self, message: str) -> None:
        self.console.print(f"[yellow]{message}[/yellow]")

    def error(self, message: str) -> None:
        self.console.print(f"[red]{message}[/red]")

    def summary(self, report: "DeploymentReport") -> None:
        request = report.request
        if request.dry_run:
            self.console.print("\n[green]Dry run complete, every stage rehearsed successfully[/green]")
            return

        self.console.print("\n[bold green]Deployment complete[/bold green]")
        table = Table(show_header=False, box=None)
        table.add_row("Environment", request.environment)
        table.add_row("Branch", request.target_branch)
        table.add_row("Duration", format_duration(report.elapsed_seconds))
        if report.last_commit:
            table.add_row("Commit", report.last_commit)
        if report.finished_at:
            table.add_row("Time", report.finished_at.astimezone().strftime("%Y-%m-%d %H:%M:%S"))
        if report.backup_location:
            table.add_row("Backup", report.backup_location)
        if not report.verified and report.warnings:
            table.add_row("Verified", "[yellow]no[/yellow]")
        self.console.print(table)
        if report.profile and report.profile.public_url:
            self.console.print(f"\n[cyan]URL: {report.profile.public_url}[/cyan]")


class RecordingReporter(ProgressReporter):
    """Keeps every event in memory."""

    def __init__(self) -> None:
        self.events: List[Tuple[str, object]] = []

    def stage_started(self, stage: "Stage") -> None:
        self.events.append(("started", stage))

    def stage_finished(self, stage: "Stage", result: "StageResult") -> None:
        self.events.append(("finished", (stage, result)))

    def info(self, message: str) -> None:
        self.events.append(("info", message))

    def warning(self, message: str) -> None:
        self.events.append(("warning", message))

    def error(self, message: str) -> None:
        self.events.append(("error", message))

    def summary(self, report: "DeploymentReport") -> None:
        self.events.append(("summary", report))

    def messages(self, kind: str) -> List[object]:
        return [payload for event, payload in self.events if event == kind]
