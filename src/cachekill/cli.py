"""CLI interface for cachekill."""

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

import typer
from rich.console import Console

from cachekill import __version__, analyzer, mlcache, npx
from cachekill.categories import get_all_categories
from cachekill.cleaner import ActionExecutor
from cachekill.config import find_config_file, load_config, merge_config
from cachekill.display import (
    confirm_action,
    console,
    print_json,
    show_backups,
    show_cleanup_preview,
    show_docker,
    show_inspection_progress,
    show_kinds,
    show_models,
    show_npx,
    show_run_result,
)
from cachekill.docker import get_docker_stats, prune_docker
from cachekill.errors import CacheKillError, ExitCode
from cachekill.log import setup_logging
from cachekill.models import RunMode, RunResult, ScanConfig, format_size

logger = logging.getLogger(__name__)

err_console = Console(stderr=True)

# Create Typer app
app = typer.Typer(
    name="cachekill",
    help="Find and safely clean development and build caches",
    add_completion=False,
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"cachekill version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Show debug logging on stderr."),
) -> None:
    """cachekill - find and safely clean development and build caches."""
    setup_logging(verbose)


@contextmanager
def handle_errors() -> Iterator[None]:
    """Turn errors into messages and exit codes."""
    try:
        yield
    except (typer.Exit, typer.Abort):
        raise
    except CacheKillError as e:
        err_console.print(f"[red]Error:[/red] {e.message}")
        raise typer.Exit(int(e.exit_code))
    except Exception as e:
        logger.exception("Unexpected error: %s", e)
        err_console.print(f"[red]Unexpected error:[/red] {e}")
        raise typer.Exit(int(ExitCode.FATAL))


def _exit_with(code: ExitCode) -> None:
    if code != ExitCode.SUCCESS:
        raise typer.Exit(int(code))


def build_config(
    root: Path,
    config_file: Optional[Path],
    mode: RunMode,
    **overrides,
) -> ScanConfig:
    """Load the config file for root and apply command-line options."""
    path = config_file or find_config_file(root)
    return merge_config(load_config(path), root, mode=mode, **overrides)


def _collect_with_progress(config: ScanConfig, quiet: bool) -> RunResult:
    if quiet:
        return analyzer.collect(config)

    with show_inspection_progress() as progress:
        task = progress.add_task("Inspecting caches...", total=None)

        def on_progress(path: str, current: int, total: int) -> None:
            progress.update(task, completed=current, total=total)

        return analyzer.collect(config, progress_callback=on_progress)


# Options shared by list and clean
ROOT_ARG = typer.Argument(Path("."), help="Project root to scan.")
LANG_OPT = typer.Option(None, "--lang", "-l", help="Project types: auto, js, py, rust, java, ml (comma-separated).")
INCLUDE_OPT = typer.Option(None, "--include", "-i", help="Extra path or glob to treat as a cache.")
EXCLUDE_OPT = typer.Option(None, "--exclude", "-e", help="Glob pattern to never treat as a cache.")
STALE_OPT = typer.Option(None, "--stale-days", help="Days since last use before a cache is stale.")
ALL_OPT = typer.Option(False, "--all", "-a", help="Scan every cache kind, including generic tmp/cache dirs.")
GLOBAL_OPT = typer.Option(None, "--global/--no-global", help="Include user-global caches (~/.npm, ~/.cache/pip, ...).")
NPX_OPT = typer.Option(None, "--npx", help="Include NPX store packages.")
DOCKER_OPT = typer.Option(None, "--docker", help="Report Docker disk usage.")
DEPTH_OPT = typer.Option(None, "--max-depth", help="Depth for finding nested caches.")
CONFIG_OPT = typer.Option(None, "--config", "-c", help="Config file (default: nearest .cachekill.json).")
JSON_OPT = typer.Option(False, "--json", help="Print JSON instead of tables.")


@app.command("list")
def list_caches(
    root: Path = ROOT_ARG,
    lang: Optional[str] = LANG_OPT,
    include: Optional[list[str]] = INCLUDE_OPT,
    exclude: Optional[list[str]] = EXCLUDE_OPT,
    stale_days: Optional[int] = STALE_OPT,
    all_kinds: bool = ALL_OPT,
    include_global: Optional[bool] = GLOBAL_OPT,
    include_npx: Optional[bool] = NPX_OPT,
    include_docker: Optional[bool] = DOCKER_OPT,
    max_depth: Optional[int] = DEPTH_OPT,
    config_file: Optional[Path] = CONFIG_OPT,
    json_output: bool = JSON_OPT,
) -> None:
    """List caches with their size and staleness."""
    with handle_errors():
        config = build_config(
            root,
            config_file,
            RunMode.LIST,
            lang=lang,
            include_patterns=include,
            exclude_patterns=exclude,
            stale_threshold_days=stale_days,
            all_kinds=all_kinds,
            include_global=include_global,
            npx=include_npx,
            docker=include_docker,
            max_depth=max_depth,
        )
        result = _collect_with_progress(config, quiet=json_output)

    if json_output:
        print_json(result.to_json_dict())
    else:
        show_run_result(result)
    _exit_with(result.exit_code)


@app.command()
def clean(
    root: Path = ROOT_ARG,
    dry_run: bool = typer.Option(False, "--dry-run", "-n", help="Show what would be done without doing it."),
    force: bool = typer.Option(False, "--force", "-f", help="Act on caches even if they are not stale."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompt."),
    safe_delete: Optional[bool] = typer.Option(
        None, "--safe-delete/--no-safe-delete", help="Move caches to a backup instead of deleting them."
    ),
    backup_dir: Optional[str] = typer.Option(None, "--backup-dir", help="Backup directory (relative to ROOT)."),
    lang: Optional[str] = LANG_OPT,
    include: Optional[list[str]] = INCLUDE_OPT,
    exclude: Optional[list[str]] = EXCLUDE_OPT,
    stale_days: Optional[int] = STALE_OPT,
    all_kinds: bool = ALL_OPT,
    include_global: Optional[bool] = GLOBAL_OPT,
    include_npx: Optional[bool] = NPX_OPT,
    max_depth: Optional[int] = DEPTH_OPT,
    config_file: Optional[Path] = CONFIG_OPT,
    json_output: bool = JSON_OPT,
) -> None:
    """Clean stale caches, backing them up first by default."""
    mode = RunMode.DRY_RUN if dry_run else RunMode.DELETE

    with handle_errors():
        config = build_config(
            root,
            config_file,
            mode,
            force=force,
            safe_delete=safe_delete,
            backup_dir=backup_dir,
            lang=lang,
            include_patterns=include,
            exclude_patterns=exclude,
            stale_threshold_days=stale_days,
            all_kinds=all_kinds,
            include_global=include_global,
            npx=include_npx,
            max_depth=max_depth,
        )
        result = _collect_with_progress(config, quiet=json_output)

        if mode == RunMode.DELETE and result.actionable_count:
            if not yes and not json_output:
                show_cleanup_preview(result.entries)
                console.print()
                if not confirm_action("Proceed with cleanup?"):
                    console.print("[yellow]Cancelled[/yellow]")
                    raise typer.Exit(0)
            result = analyzer.execute(result, config)

    if json_output:
        print_json(result.to_json_dict())
    elif mode == RunMode.DELETE and not result.actionable_count:
        console.print("[yellow]Nothing to clean.[/yellow] Use --force to clean caches that are not stale.")
    else:
        show_run_result(result)
    _exit_with(result.exit_code)


@app.command()
def restore(
    root: Path = ROOT_ARG,
    backup_dir: Optional[str] = typer.Option(None, "--backup-dir", help="Backup directory (relative to ROOT)."),
    config_file: Optional[Path] = CONFIG_OPT,
    json_output: bool = JSON_OPT,
) -> None:
    """Restore the most recent backup run."""
    with handle_errors():
        config = build_config(root, config_file, RunMode.RESTORE, backup_dir=backup_dir)
        result = analyzer.restore(config)

    if json_output:
        print_json(result.to_json_dict())
    else:
        show_run_result(result)
    _exit_with(result.exit_code)


@app.command("npx")
def npx_command(
    stale_days: int = typer.Option(14, "--stale-days", help="Days since last use before a package is stale."),
    store: Optional[Path] = typer.Option(None, "--store", help="NPX store directory (default: ~/.npm/_npx)."),
    limit: Optional[int] = typer.Option(None, "--limit", help="Show only the largest N packages."),
    json_output: bool = JSON_OPT,
) -> None:
    """Analyze packages cached by npx."""
    with handle_errors():
        analysis = npx.analyze(store, stale_threshold_days=stale_days)

    if json_output:
        print_json(analysis.model_dump(mode="json"))
    else:
        show_npx(analysis, limit=limit)


@app.command()
def models(
    stale_days: int = typer.Option(14, "--stale-days", help="Days since last use before an item is stale."),
    hf_dir: Optional[Path] = typer.Option(
        None, "--hf-dir", help="HuggingFace cache (default: $HF_HOME or ~/.cache/huggingface)."
    ),
    torch_dir: Optional[Path] = typer.Option(
        None, "--torch-dir", help="PyTorch cache (default: $TORCH_HOME or ~/.cache/torch)."
    ),
    limit: Optional[int] = typer.Option(None, "--limit", help="Show only the largest N items."),
    json_output: bool = JSON_OPT,
) -> None:
    """Analyze models, datasets and checkpoints in the HuggingFace and PyTorch caches."""
    with handle_errors():
        analysis = mlcache.analyze_models(hf_dir, torch_dir, stale_threshold_days=stale_days)

    if json_output:
        print_json(analysis.model_dump(mode="json"))
    else:
        show_models(analysis, limit=limit)


@app.command()
def docker(
    prune: bool = typer.Option(False, "--prune", help="Run docker system prune."),
    dry_run: bool = typer.Option(False, "--dry-run", "-n", help="With --prune, show the command without running it."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompt."),
    json_output: bool = JSON_OPT,
) -> None:
    """Show Docker disk usage, optionally pruning unused data."""
    stats = get_docker_stats()

    if json_output:
        print_json(stats.model_dump(mode="json") | {"total_bytes": stats.total_bytes})
    else:
        show_docker(stats)

    if not stats.available:
        raise typer.Exit(int(ExitCode.FATAL))

    if not prune:
        return

    if dry_run:
        result = prune_docker(dry_run=True)
        console.print(f"[yellow]DRY RUN[/yellow] Would run: {result['command']}")
        return

    if not yes:
        console.print()
        if not confirm_action(f"Prune unused Docker data ({format_size(stats.reclaimable_bytes)} reclaimable)?"):
            console.print("[yellow]Cancelled[/yellow]")
            raise typer.Exit(0)

    result = prune_docker()
    if result["success"]:
        console.print(f"[green]✓[/green] {result['command']}")
    else:
        console.print(f"[red]✗[/red] {result['error']}")
        raise typer.Exit(int(ExitCode.FATAL))


@app.command()
def history(
    root: Path = ROOT_ARG,
    backup_dir: Optional[str] = typer.Option(None, "--backup-dir", help="Backup directory (relative to ROOT)."),
    config_file: Optional[Path] = CONFIG_OPT,
    json_output: bool = JSON_OPT,
) -> None:
    """List backup runs, newest first."""
    with handle_errors():
        config = build_config(root, config_file, RunMode.LIST, backup_dir=backup_dir)
        runs = ActionExecutor(config.root, config.backup_dir).list_backups()

    if json_output:
        print_json([run.model_dump(mode="json") for run in runs])
    else:
        show_backups(runs)


@app.command("prune-backups")
def prune_backups(
    root: Path = ROOT_ARG,
    older_than: int = typer.Option(..., "--older-than", help="Remove backup runs older than this many days."),
    backup_dir: Optional[str] = typer.Option(None, "--backup-dir", help="Backup directory (relative to ROOT)."),
    config_file: Optional[Path] = CONFIG_OPT,
    json_output: bool = JSON_OPT,
) -> None:
    """Delete old backup runs."""
    with handle_errors():
        config = build_config(root, config_file, RunMode.LIST, backup_dir=backup_dir)
        removed = ActionExecutor(config.root, config.backup_dir).prune_backups(older_than)

    if json_output:
        print_json([run.model_dump(mode="json") for run in removed])
        return

    if not removed:
        console.print("[dim]No backups to prune.[/dim]")
        return
    for run in removed:
        console.print(f"  [green]✓[/green] Removed {run.timestamp} ({format_size(run.size_bytes)})")


@app.command()
def kinds(
    json_output: bool = JSON_OPT,
) -> None:
    """Show every cache kind and where it is looked for."""
    if json_output:
        print_json([category.model_dump(mode="json") for category in get_all_categories()])
    else:
        show_kinds()


if __name__ == "__main__":
    app()
