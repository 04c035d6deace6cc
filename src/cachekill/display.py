"""Rich terminal display for cachekill."""

import json
from typing import Any

import typer
from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from cachekill.categories import get_all_categories
from cachekill.inspector import summarize
from cachekill.models import (
    BackupRun,
    CacheEntry,
    DockerStats,
    ModelCacheAnalysis,
    NpxAnalysis,
    PathIssue,
    PlannedAction,
    RunMode,
    RunResult,
    SimulatedAction,
    format_size,
)

console = Console()


def action_label(action: PlannedAction | None) -> str:
    """Get styled label for a planned action."""
    labels = {
        PlannedAction.BACKUP: "[cyan]backup[/cyan]",
        PlannedAction.DELETE: "[red]delete[/red]",
        PlannedAction.SKIP: "[dim]skip[/dim]",
    }
    return labels.get(action, "")


def stale_label(stale: bool) -> str:
    return "[yellow]stale[/yellow]" if stale else "[green]fresh[/green]"


def print_json(data: Any) -> None:
    """Write a JSON document to stdout, unstyled."""
    typer.echo(json.dumps(data, indent=2))


def show_entries(entries: list[CacheEntry], title: str = "Caches") -> None:
    """Display inspected cache entries, largest first."""
    if not entries:
        console.print("[dim]No caches found.[/dim]")
        return

    show_actions = any(e.planned_action not in (None, PlannedAction.SKIP) for e in entries)

    table = Table(title=title, show_header=True, header_style="bold")
    table.add_column("Kind", style="bold")
    table.add_column("Size", justify="right")
    table.add_column("Last used", justify="right")
    table.add_column("Status")
    if show_actions:
        table.add_column("Action")
    table.add_column("Path")

    for entry in sorted(entries, key=lambda e: (-e.size_bytes, e.path)):
        row = [
            entry.kind.value,
            entry.size_human,
            entry.last_used_human,
            stale_label(entry.stale),
        ]
        if show_actions:
            row.append(action_label(entry.planned_action))
        row.append(entry.path)
        table.add_row(*row)

    console.print(table)


def show_summary(entries: list[CacheEntry]) -> None:
    """Display totals and size by kind."""
    summary = summarize(entries)
    if not summary.total_count:
        return

    lines = [
        f"[bold]Total:[/bold] {format_size(summary.total_size_bytes)} in {summary.total_count} caches",
        f"[bold]Stale:[/bold] {summary.stale_count}",
    ]
    for kind, size in sorted(summary.size_by_kind.items(), key=lambda kv: -kv[1]):
        lines.append(f"  {kind.value}: {format_size(size)}")

    console.print(Panel("\n".join(lines), title="Summary", border_style="blue"))


def show_simulated(actions: list[SimulatedAction]) -> None:
    """Display what a delete run would do."""
    console.print("[yellow]DRY RUN - Nothing will be deleted[/yellow]\n")

    todo = [a for a in actions if a.action != PlannedAction.SKIP]
    if not todo:
        console.print("[dim]Nothing is stale. Use --force to act on fresh caches too.[/dim]")
        return

    table = Table(title="Planned Actions", show_header=True, header_style="bold")
    table.add_column("Action")
    table.add_column("Size", justify="right")
    table.add_column("Path")

    for action in todo:
        table.add_row(action_label(action.action), format_size(action.size_bytes), action.path)

    console.print(table)
    total = sum(a.size_bytes for a in todo)
    console.print(f"\n[bold]Would free: {format_size(total)}[/bold] ({len(actions) - len(todo)} skipped)")


def show_cleanup_preview(entries: list[CacheEntry]) -> None:
    """Display the entries a delete run is about to act on."""
    todo = [e for e in entries if e.is_actionable]

    table = Table(title="Cleanup Preview", show_header=True, header_style="bold")
    table.add_column("Action")
    table.add_column("Kind")
    table.add_column("Size", justify="right")
    table.add_column("Path")

    for entry in todo:
        table.add_row(action_label(entry.planned_action), entry.kind.value, entry.size_human, entry.path)

    console.print(table)
    console.print(f"\n[bold]Total to clean: {format_size(sum(e.size_bytes for e in todo))}[/bold]")


def show_issues(issues: list[PathIssue], title: str, style: str = "yellow") -> None:
    """Display skipped paths or per-entry failures."""
    if not issues:
        return

    table = Table(title=title, show_header=True, header_style=f"bold {style}")
    table.add_column("Reason", style=style)
    table.add_column("Path")
    table.add_column("Detail", style="dim")

    for issue in issues:
        table.add_row(issue.reason.value, issue.path, issue.detail)

    console.print(table)


def show_execution_summary(result: RunResult) -> None:
    """Display the outcome of a delete run."""
    processed = sum(1 for e in result.entries if e.is_actionable) - len(result.failures)

    console.print()
    if result.failures:
        console.print("[bold yellow]Cleanup finished with errors[/bold yellow]")
    else:
        console.print("[bold green]Cleanup Complete![/bold green]")
    console.print()

    table = Table(show_header=False)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")

    table.add_row("Space freed", format_size(result.totals.freed_bytes))
    table.add_row("Caches cleaned", str(max(processed, 0)))
    if result.failures:
        table.add_row("[red]Failed[/red]", str(len(result.failures)))
    if result.backup_run:
        table.add_row("Backup run", result.backup_run)

    console.print(table)
    show_issues(result.failures, "Failures", style="red")

    if result.backup_run:
        console.print("\n[dim]Undo with:[/dim] [bold]cachekill restore[/bold]")


def show_restore_result(result: RunResult) -> None:
    """Display the outcome of a restore."""
    console.print(f"[bold]Restored from backup run {result.backup_run}[/bold]")
    for path in result.restored:
        console.print(f"  [green]✓[/green] {path}")
    console.print(f"\n[bold]Restored: {format_size(result.totals.size_bytes)}[/bold]")

    show_issues(result.conflicts, "Conflicts (left in backup)")
    show_issues(result.failures, "Failures", style="red")


def show_npx(analysis: NpxAnalysis, limit: int | None = None) -> None:
    """Display NPX store packages, largest first."""
    if not analysis.packages:
        console.print(f"[dim]No NPX packages found in {analysis.store_path}[/dim]")
        return

    table = Table(title="NPX Packages", show_header=True, header_style="bold")
    table.add_column("Package", style="bold")
    table.add_column("Version")
    table.add_column("Size", justify="right")
    table.add_column("Status")
    table.add_column("Path")

    packages = analysis.packages[:limit] if limit else analysis.packages
    for package in packages:
        table.add_row(
            package.name,
            package.version or "[dim]-[/dim]",
            package.size_human,
            stale_label(package.stale),
            package.path,
        )

    console.print(table)

    summary = analysis.summary
    console.print(
        Panel(
            f"[bold]Packages:[/bold] {summary.total_count}\n"
            f"[bold]Total size:[/bold] {format_size(summary.total_size_bytes)}\n"
            f"[bold]Stale:[/bold] {summary.stale_count}",
            title="NPX Store",
            border_style="blue",
        )
    )
    show_issues(analysis.warnings, "Warnings")


def show_models(analysis: ModelCacheAnalysis, limit: int | None = None) -> None:
    """Display HuggingFace and PyTorch cache items, largest first."""
    if not analysis.records:
        console.print(f"[dim]No model caches found in {analysis.hf_path} or {analysis.torch_path}[/dim]")
        show_issues(analysis.warnings, "Warnings")
        return

    table = Table(title="Model Caches", show_header=True, header_style="bold")
    table.add_column("Source")
    table.add_column("Name", style="bold")
    table.add_column("Type")
    table.add_column("Size", justify="right")
    table.add_column("Status")
    table.add_column("Path")

    records = analysis.records[:limit] if limit else analysis.records
    for record in records:
        name = f"{record.name} ({record.version})" if record.version else record.name
        table.add_row(
            record.source,
            name,
            record.cache_type,
            record.size_human,
            stale_label(record.stale),
            record.path,
        )

    console.print(table)

    stats = analysis.stats
    lines = [
        f"[bold]Items:[/bold] {stats.total_count}",
        f"[bold]Total size:[/bold] {format_size(stats.total_size_bytes)}",
        f"[bold]Stale:[/bold] {stats.stale_count}",
        f"[bold]Repositories:[/bold] {stats.repo_count} ({stats.model_count} models)",
    ]
    for source, size in sorted(stats.size_by_source.items()):
        lines.append(f"  {source}: {format_size(size)}")
    if stats.top_repos:
        lines.append("[bold]Largest repositories:[/bold]")
        lines.extend(f"  {repo}: {format_size(size)}" for repo, size in stats.top_repos[:5])

    console.print(Panel("\n".join(lines), title="Model Caches", border_style="blue"))
    show_issues(analysis.warnings, "Warnings")


def show_docker(stats: DockerStats) -> None:
    """Display Docker disk usage."""
    if not stats.available:
        console.print(f"[yellow]Docker: {stats.error or 'not available'}[/yellow]")
        return

    table = Table(title="Docker", show_header=True, header_style="bold")
    table.add_column("Type")
    table.add_column("Size", justify="right")

    table.add_row("Images", format_size(stats.images_bytes))
    table.add_row("Containers", format_size(stats.containers_bytes))
    table.add_row("Volumes", format_size(stats.volumes_bytes))
    table.add_row("Build cache", format_size(stats.build_cache_bytes))
    table.add_row("[bold]Total[/bold]", f"[bold]{format_size(stats.total_bytes)}[/bold]")
    table.add_row("[green]Reclaimable[/green]", f"[green]{format_size(stats.reclaimable_bytes)}[/green]")

    console.print(table)


def show_backups(runs: list[BackupRun]) -> None:
    """Display backup runs, newest first."""
    if not runs:
        console.print("[dim]No backups found.[/dim]")
        return

    table = Table(title="Backups", show_header=True, header_style="bold")
    table.add_column("Run", style="bold")
    table.add_column("Entries", justify="right")
    table.add_column("Size", justify="right")
    table.add_column("Restorable")

    for run in runs:
        table.add_row(
            run.timestamp,
            str(run.entry_count),
            format_size(run.size_bytes),
            "[green]yes[/green]" if run.restorable else "[red]no[/red]",
        )

    console.print(table)


def show_kinds() -> None:
    """Display every cache kind and where it is looked for."""
    for category in get_all_categories():
        body = [category.description, ""]
        if category.project_paths:
            body.append("[bold]Project paths:[/bold] " + ", ".join(category.project_paths))
        if category.recursive_names:
            body.append("[bold]Found recursively:[/bold] " + ", ".join(category.recursive_names))
        for family, paths in category.global_paths.items():
            body.append(f"[bold]Global ({family}):[/bold] " + ", ".join(paths))
        if category.recovery:
            body.append(f"[bold]Recovery:[/bold] {category.recovery}")
        console.print(
            Panel("\n".join(body), title=f"[bold]{category.kind.value}[/bold] {category.name}", border_style="cyan")
        )


def show_run_result(result: RunResult) -> None:
    """Display a full run result in the layout for its mode."""
    if result.mode == RunMode.RESTORE:
        show_restore_result(result)
        return

    if result.project_type:
        console.print(f"Project type: [bold]{result.project_type.value}[/bold]  Root: {result.root}\n")

    if result.mode == RunMode.DRY_RUN:
        show_entries(result.entries)
        show_simulated(result.simulated)
    elif result.mode == RunMode.DELETE:
        show_execution_summary(result)
    else:
        show_entries(result.entries)
        show_summary(result.entries)

    if result.docker is not None:
        show_docker(result.docker)

    show_issues(result.skipped, "Skipped")


def show_inspection_progress() -> Progress:
    """Create progress bar for inspection."""
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("{task.completed}/{task.total}"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    )


def confirm_action(message: str) -> bool:
    """Ask for confirmation."""
    from rich.prompt import Confirm

    return Confirm.ask(message)
