"""
Main CLI entry point for SyncFlow.

This module provides the command-line interface for SyncFlow: running
several rsync jobs with a live progress table, and querying transfer
history, duration predictions, error explanations and recommendations.
"""

import sys
import time
import click
from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from typing import Dict, List, Optional

from . import __version__
from .config import setup_logging
from .context import SyncflowContext, create_context
from .events import EventType
from .jobs import Job, JobStatus
from .sync import find_rsync
from .units import format_bytes, format_duration


# Global console instance for rich output
console = Console()

STATUS_STYLES = {
    JobStatus.PENDING: ("⏳ Pending", "dim"),
    JobStatus.QUEUED: ("🕒 Queued", "yellow"),
    JobStatus.RUNNING: ("🔄 Running", "cyan"),
    JobStatus.PAUSED: ("⏸️ Paused", "yellow"),
    JobStatus.COMPLETED: ("✅ Completed", "green"),
    JobStatus.FAILED: ("❌ Failed", "red"),
    JobStatus.STOPPED: ("🛑 Stopped", "magenta"),
}


def _get_context(ctx) -> SyncflowContext:
    """Build the application context once per invocation."""
    if 'context' not in ctx.obj:
        context = create_context(ctx.obj.get('config_dir'))
        setup_logging(context.settings.logging, context.settings.paths.log_dir,
                      verbose=ctx.obj.get('verbose', False))
        ctx.obj['context'] = context
    return ctx.obj['context']


def build_jobs_table(jobs: List[Job]) -> Table:
    """Create Rich table showing all jobs."""
    table = Table(title="Transfers")
    table.add_column("Job", style="cyan", no_wrap=True)
    table.add_column("Status")
    table.add_column("Progress", style="yellow", justify="right")
    table.add_column("Files", justify="right")
    table.add_column("Speed", style="green")
    table.add_column("ETA", style="blue")
    table.add_column("Current File", overflow="ellipsis")

    for job in jobs:
        data = job.progress_data
        label, style = STATUS_STYLES.get(job.status, ("❓ Unknown", "white"))
        files = f"{data.file_count.current}/{data.file_count.total}" if data.file_count.total else "-"
        speed = data.current_speed if job.status == JobStatus.RUNNING else "-"
        table.add_row(
            job.name,
            f"[{style}]{label}[/{style}]",
            f"{job.progress}%",
            files,
            speed,
            data.eta or "-",
            data.current_file or "",
        )

    return table


def show_classified_error(context: SyncflowContext, error_text: str, title: Optional[str] = None):
    """Print an error explanation panel."""
    classified = context.classify_error(error_text)
    lines = [classified.explanation, ""]
    lines.extend(f"  • {suggestion}" for suggestion in classified.suggestions)
    lines.extend(["", f"[dim]{classified.original_error.strip()}[/dim]"])
    console.print(Panel("\n".join(lines), title=f"[bold red]{title or classified.title}[/bold red]",
                        border_style="red"))


@click.group()
@click.option('--version', is_flag=True, is_eager=True, expose_value=False,
              callback=lambda ctx, param, value: _print_version(ctx, value),
              help='Show version and exit')
@click.option('--config-dir', type=click.Path(file_okay=False), help='Directory for settings and history')
@click.option('--plain', is_flag=True, help='Use plain text output (no colors/formatting)')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose output')
@click.pass_context
def main(ctx, config_dir, plain, verbose):
    """
    SyncFlow - Run and watch several rsync transfers at once.

    \b
    syncflow run -j SRC DST     Copy folders with a live progress table
    syncflow history            Show finished transfers
    syncflow predict N          Estimate how long N files take
    syncflow classify TEXT      Explain an rsync error message
    syncflow recommend SRC DST  Advice for a planned transfer
    """
    if plain:
        global console
        console = Console(force_terminal=False, no_color=True)

    ctx.ensure_object(dict)
    ctx.obj['config_dir'] = config_dir
    ctx.obj['verbose'] = verbose


def _print_version(ctx, value):
    if not value or ctx.resilient_parsing:
        return
    console.print(f"SyncFlow version {__version__}")
    ctx.exit(0)


@main.command()
@click.option('--job', '-j', 'jobs', nargs=2, multiple=True, type=click.Path(),
              metavar='SOURCE TARGET', help='Folder to transfer and its destination (repeatable)')
@click.option('--move', is_flag=True, help='Remove source files after they are transferred')
@click.option('--name', help='Job name (default: generated from the folders)')
@click.option('--max-jobs', type=int, help='Maximum number of transfers running at once')
@click.pass_context
def run(ctx, jobs, move, name, max_jobs):
    """Run one or more transfers and show their progress."""
    if not jobs:
        console.print("❌ Give at least one --job SOURCE TARGET", style="red")
        sys.exit(2)

    context = _get_context(ctx)
    if find_rsync(context.settings.rsync.binary) is None:
        console.print(f"❌ rsync not found: {context.settings.rsync.binary}", style="bold red")
        sys.exit(1)

    if max_jobs:
        context.manager.set_max_concurrent_jobs(max_jobs)

    def on_error(job_id: str, text: str, classified: Dict):
        job = context.get_job(job_id)
        label = job.name if job else job_id
        console.print(f"⚠️  [{label}] {classified['title']}: {text.strip()}", style="yellow")

    context.events.subscribe(EventType.JOB_ERROR, on_error)

    job_ids = []
    for index, (source, target) in enumerate(jobs, 1):
        job_name = name if not name or len(jobs) == 1 else f"{name} #{index}"
        job_ids.append(context.submit(source, target, is_move=move, name=job_name))

    def current_table() -> Table:
        return build_jobs_table([context.get_job(job_id) for job_id in job_ids if context.get_job(job_id)])

    try:
        with Live(current_table(), console=console, refresh_per_second=4) as live:
            while context.manager.has_live_jobs():
                time.sleep(0.25)
                live.update(current_table())
            live.update(current_table())
    except KeyboardInterrupt:
        for job_id in job_ids:
            context.manager.stop_job(job_id)
        console.print("🛑 Transfers stopped by user", style="yellow")
    finally:
        context.close()

    failed = [job for job in (context.get_job(job_id) for job_id in job_ids)
              if job and job.status == JobStatus.FAILED]
    for job in failed:
        show_classified_error(context, job.error or "", title=f"{job.name} failed")

    if failed:
        sys.exit(1)
    console.print("✅ All transfers finished", style="bold green")


@main.command()
@click.option('--limit', type=int, default=10, help='Number of entries to show (default: 10)')
@click.option('--source', help='Only show transfers similar to this source')
@click.option('--target', default='', help='Target used with --source for similarity')
@click.pass_context
def history(ctx, limit, source, target):
    """Show finished transfers."""
    context = _get_context(ctx)

    if source:
        records = context.get_similar_history(source, target)[:limit]
    else:
        records = context.get_recent_history(limit)

    if not records:
        console.print("📭 No transfers recorded yet", style="dim")
        return

    table = Table(title="Transfer History")
    table.add_column("Name", style="cyan")
    table.add_column("Status")
    table.add_column("Files", justify="right")
    table.add_column("Transferred", justify="right")
    table.add_column("Avg Speed", style="green")
    table.add_column("Duration", justify="right")
    table.add_column("Finished", style="dim")

    for record in records:
        style = "green" if record.status == "completed" else "red"
        duration = format_duration(record.duration_ms / 1000) if record.duration_ms else "-"
        table.add_row(
            record.name,
            f"[{style}]{record.status}[/{style}]",
            str(record.file_count),
            record.transferred,
            record.average_speed,
            duration,
            (record.end_time or "")[:19].replace("T", " "),
        )

    console.print(table)

    stats = context.history.get_statistics()
    console.print(
        f"📊 {stats['total_transfers']} transfers • "
        f"{stats['success_rate']:.0f}% successful • "
        f"{stats['total_files']} files",
        style="dim",
    )


@main.command()
@click.argument('file_count', type=click.IntRange(min=0))
@click.pass_context
def predict(ctx, file_count):
    """Estimate how long a transfer of FILE_COUNT files will take."""
    context = _get_context(ctx)
    seconds = context.predict_duration(file_count)
    if seconds is None:
        console.print("🤷 Not enough history to make a prediction yet", style="yellow")
        return
    console.print(f"⏱️  About {format_duration(seconds)} for {file_count} files ({seconds}s)")


@main.command()
@click.argument('error_text')
@click.pass_context
def classify(ctx, error_text):
    """Explain an rsync error message."""
    show_classified_error(_get_context(ctx), error_text)


@main.command()
@click.argument('source', type=click.Path())
@click.argument('target', type=click.Path())
@click.pass_context
def recommend(ctx, source, target):
    """Advice for transferring SOURCE to TARGET."""
    context = _get_context(ctx)

    analysis = context.analyzer.analyze(source).value
    result = context.get_recommendations(source, target)
    if result.fallback_used:
        console.print(f"⚠️  Could not fully analyze {source}: {result.error}", style="yellow")

    console.print(f"📂 {analysis.name}: {analysis.file_count} files, "
                  f"~{format_bytes(analysis.approximate_size)}, {analysis.content_type.value}")

    prediction = context.predict_duration(analysis.file_count)
    if prediction is not None:
        console.print(f"⏱️  Estimated duration: {format_duration(prediction)}")
    console.print()

    for recommendation in result.value:
        console.print(f"💡 [bold]{recommendation.title}[/bold] ({recommendation.category})")
        console.print(f"   {recommendation.suggestion}")
        if recommendation.details:
            console.print(f"   [dim]{recommendation.details}[/dim]")


@main.command()
@click.argument('path', type=click.Path())
@click.option('--target', default='', help='Destination, used for the suggested job name')
@click.pass_context
def analyze(ctx, path, target):
    """Inspect a folder the way job naming and recommendations do."""
    context = _get_context(ctx)
    result = context.analyzer.analyze(path)
    analysis = result.value

    if result.fallback_used:
        console.print(f"❌ Cannot read {path}: {result.error}", style="red")
        return

    table = Table(show_header=False, box=None)
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    table.add_row("Folder", analysis.path)
    table.add_row("Files", str(analysis.file_count))
    table.add_row("Approx. size", format_bytes(analysis.approximate_size))
    table.add_row("Content", analysis.content_type.value)
    table.add_row("Sampled types", ", ".join(sorted(set(analysis.extensions))) or "-")
    table.add_row("Suggested name", context.namer.generate_name(path, target or path).value)
    console.print(table)


@main.command()
@click.pass_context
def last(ctx):
    """Show the settings of the last submitted job."""
    last_used = _get_context(ctx).get_last_used()
    if not last_used:
        console.print("📭 No job has been submitted yet", style="dim")
        return
    operation = "move" if last_used["isMove"] else "copy"
    console.print(f"📄 Last {operation}: {last_used['source']} → {last_used['target']}")


@main.command()
@click.option('--show', is_flag=True, help='Show current settings')
@click.option('--validate', is_flag=True, help='Validate settings')
@click.option('--set', 'assignment', nargs=2, metavar='KEY VALUE', help='Change a setting, e.g. jobs.max_concurrent_jobs 4')
@click.pass_context
def config(ctx, show, validate, assignment):
    """Manage SyncFlow settings."""
    context = _get_context(ctx)
    manager = context.settings_manager

    if assignment:
        key, value = assignment
        if manager.set_setting(key, value) and manager.save_settings():
            console.print(f"✅ {key} = {manager.get_setting(key)}", style="green")
        else:
            console.print(f"❌ Could not set {key}", style="red")
            sys.exit(1)

    elif validate:
        errors = manager.settings.validate()
        if errors:
            console.print("❌ Settings errors found:", style="red")
            for error in errors:
                console.print(f"  • {error}", style="red")
            sys.exit(1)
        console.print("✅ Settings are valid", style="green")

    else:
        console.print(f"📄 Settings file: {manager.settings_file}", style="bold")
        settings = context.settings
        console.print(f"  jobs.max_concurrent_jobs: {settings.jobs.max_concurrent_jobs}")
        console.print(f"  jobs.smart_naming: {settings.jobs.smart_naming}")
        console.print(f"  rsync.binary: {settings.rsync.binary}")
        console.print(f"  rsync.flags: {' '.join(settings.rsync.flags)}")
        console.print(f"  paths.storage_dir: {settings.paths.storage_dir}")
        console.print(f"  logging.level: {settings.logging.level.value}")


if __name__ == "__main__":
    main()
