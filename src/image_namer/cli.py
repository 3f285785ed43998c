"""Command-line interface for image-namer."""

import asyncio
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import BarColumn, MofNCompleteColumn, Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from .errors import ImageNamerError, ValidationError
from .file_renamer import SUPPORTED_EXTENSIONS, FileRenamer
from .image_processor import ImageProcessor
from .models import ConnectionState, ImageEntry, ImageStatus
from .ollama_client import DEFAULT_TIMEOUT, OllamaClient
from .performance_tracker import format_time
from .settings import JsonFileStore, SettingsStore, default_settings_path
from .workflow import RenameWorkflow

console = Console()
app = typer.Typer(
    name="image-namer",
    help="Name images with a vision model and a reusable prompt",
    no_args_is_help=True,
)
templates_app = typer.Typer(help="Manage prompt templates", no_args_is_help=True)
app.add_typer(templates_app, name="templates")

STATUS_STYLES = {
    ImageStatus.PENDING: "dim",
    ImageStatus.PROCESSING: "yellow",
    ImageStatus.COMPLETED: "green",
    ImageStatus.ERROR: "red",
}


@app.callback()
def main(
    ctx: typer.Context,
    settings: Optional[Path] = typer.Option(
        None, "--settings", envvar="IMAGE_NAMER_SETTINGS", help="Settings file to use"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
):
    """AI-assisted batch image naming with Ollama vision models."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )
    ctx.obj = {"settings_path": settings or default_settings_path()}


def _build_workflow(ctx: typer.Context, timeout: float = DEFAULT_TIMEOUT) -> RenameWorkflow:
    store = SettingsStore(JsonFileStore(ctx.obj["settings_path"]))
    return RenameWorkflow(OllamaClient(timeout=timeout), FileRenamer(), store)


@contextmanager
def open_workflow(ctx: typer.Context, timeout: float = DEFAULT_TIMEOUT) -> Iterator[RenameWorkflow]:
    """Build a workflow from saved settings and persist its changes on exit."""
    workflow = _build_workflow(ctx, timeout)
    try:
        yield workflow
    except ImageNamerError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    finally:
        workflow.flush_settings()


def _collect_images(paths: List[Path]) -> List[Path]:
    images = []
    for path in paths:
        if path.is_dir():
            images.extend(FileRenamer.find_images(path))
        elif path.is_file() and path.suffix.lower() in SUPPORTED_EXTENSIONS:
            images.append(path)
        else:
            console.print(f"[yellow]Skipping {path}: not a supported image[/yellow]")
    return images


def _apply_overrides(workflow: RenameWorkflow, host: Optional[str], model: Optional[str]) -> None:
    if host:
        workflow.update_config(api_endpoint=host)
    if model:
        if model in {m.name for m in workflow.models.models}:
            workflow.set_default_model(model)
        else:
            workflow.update_config(active_model_name=model)


def _display_results(entries: List[ImageEntry]) -> None:
    table = Table(title="Results")
    table.add_column("#", style="dim")
    table.add_column("Original", style="cyan")
    table.add_column("Suggested name", style="bold green")
    table.add_column("Status")
    table.add_column("Time / Error")

    for index, entry in enumerate(entries, start=1):
        style = STATUS_STYLES[entry.status]
        if entry.status == ImageStatus.COMPLETED:
            detail = format_time(entry.elapsed_millis or 0)
        else:
            detail = entry.error or ""
        table.add_row(
            str(index),
            entry.original_name,
            entry.suggested_name,
            f"[{style}]{entry.status.value}[/{style}]",
            detail,
        )

    console.print(table)


def _review_names(workflow: RenameWorkflow) -> None:
    """Let the user confirm or edit each suggested name."""
    for entry in workflow.images.completed():
        new_name = typer.prompt(entry.original_name, default=entry.suggested_name)
        if new_name != entry.suggested_name:
            workflow.edit_suggested_name(entry.id, new_name)


async def _process(workflow: RenameWorkflow):
    pending = len(workflow.images.pending())
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TextColumn("•"),
        TimeElapsedColumn(),
        console=console
    ) as progress:
        task = progress.add_task("[green]Naming images", total=pending)
        return await workflow.start_processing(
            on_progress=lambda entry: progress.advance(task)
        )


@app.command()
def run(
    ctx: typer.Context,
    paths: List[Path] = typer.Argument(..., help="Image files or directories containing images"),
    host: Optional[str] = typer.Option(None, "--host", envvar="IMAGE_NAMER_HOST", help="Ollama host URL"),
    model: Optional[str] = typer.Option(None, "--model", help="Model to use (becomes the default)"),
    timeout: float = typer.Option(DEFAULT_TIMEOUT, "--timeout", help="Seconds to wait for each image"),
    review: bool = typer.Option(False, "--review", help="Edit each suggested name before renaming"),
    apply: bool = typer.Option(False, "--apply", help="Rename the files after naming them"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show the renames without applying them"),
):
    """Suggest names for images and optionally rename them."""
    with open_workflow(ctx, timeout) as workflow:
        _apply_overrides(workflow, host, model)

        image_files = _collect_images(paths)
        if not image_files:
            console.print("[yellow]No image files found[/yellow]")
            raise typer.Exit(1)

        workflow.add_images({"path": str(f.resolve()), "name": f.name} for f in image_files)
        console.print(f"[green]Found {len(image_files)} image files[/green]")
        console.print(f"[blue]Using model: {workflow.config.active_model_name}[/blue]")

        stats = asyncio.run(_process(workflow))
        entries = list(workflow.images)
        _display_results(entries)
        if stats is not None:
            workflow.tracker.display_summary(console)

        if review:
            _review_names(workflow)

        failed = len(workflow.images.errors())
        requests = workflow.rename_requests()
        if dry_run:
            renamer = FileRenamer()
            for request in requests:
                target = renamer.target_path(request)
                console.print(f"🔍 Would rename [bold]{Path(request.original_path).name}[/bold] -> [bold green]{target.name}[/bold green]")
        elif apply:
            if not requests:
                console.print("[yellow]Nothing to rename[/yellow]")
            else:
                asyncio.run(workflow.apply_renames())
                console.print(f"[green]✅ Renamed {len(requests)} file(s)[/green]")

        if failed:
            raise typer.Exit(1)


@app.command("test")
def test_connection(
    ctx: typer.Context,
    host: Optional[str] = typer.Option(None, "--host", envvar="IMAGE_NAMER_HOST", help="Ollama host URL"),
):
    """Test the connection to Ollama and refresh the model list."""
    with open_workflow(ctx) as workflow:
        _apply_overrides(workflow, host, None)
        console.print(f"Testing {workflow.config.api_endpoint}...")

        if not asyncio.run(workflow.test_connection()):
            console.print(f"  ❌ {workflow.config.connection_message}")
            raise typer.Exit(1)
        console.print(f"  ✅ {workflow.config.connection_message}")

        if asyncio.run(workflow.discover_models()):
            console.print(f"  Found {len(workflow.models.models)} model(s)")
        else:
            console.print(f"  [yellow]Could not load models: {workflow.last_discovery_error}[/yellow]")


def _parse_context(value: str):
    name, sep, length = value.rpartition("=")
    if not sep or not name:
        raise ValidationError(f"Expected NAME=LENGTH, got {value!r}")
    try:
        return name, int(length)
    except ValueError as e:
        raise ValidationError(f"Context length must be an integer, got {length!r}") from e


@app.command()
def models(
    ctx: typer.Context,
    refresh: bool = typer.Option(False, "--refresh", help="Reload the model list from Ollama"),
    enable: List[str] = typer.Option([], "--enable", help="Enable a model"),
    disable: List[str] = typer.Option([], "--disable", help="Disable a model"),
    context: List[str] = typer.Option([], "--context", help="Set a context length, as NAME=LENGTH"),
    default: Optional[str] = typer.Option(None, "--default", help="Model used for processing"),
):
    """Show and configure the available models."""
    with open_workflow(ctx) as workflow:
        if refresh:
            if not asyncio.run(workflow.connect_and_discover()):
                reason = workflow.last_discovery_error or workflow.config.connection_message
                console.print(f"[red]Could not load models: {reason}[/red]")
                raise typer.Exit(1)

        for name in enable:
            workflow.set_model_enabled(name, True)
        for name in disable:
            workflow.set_model_enabled(name, False)
        for value in context:
            workflow.set_model_context_length(*_parse_context(value))
        if default:
            if not workflow.models.get(default).enabled:
                raise ValidationError(f"{default} is disabled; enable it before making it the default")
            workflow.set_default_model(default)

        available = workflow.models.models
        if not available:
            console.print("[yellow]No models known yet, run with --refresh[/yellow]")
            return

        table = Table(title=f"Models on {workflow.config.api_endpoint}")
        table.add_column("Name", style="cyan")
        table.add_column("Size", style="magenta")
        table.add_column("Parameters")
        table.add_column("Quantization")
        table.add_column("Context", style="yellow")
        table.add_column("Enabled")
        table.add_column("Default")

        for model in available:
            table.add_row(
                model.name,
                f"{model.size / 1024 ** 3:.1f} GB",
                model.details.parameter_size,
                model.details.quantization_level,
                str(model.custom_context_length),
                "✅" if model.enabled else "❌",
                "⭐" if model.is_default else "",
            )

        console.print(table)


@app.command()
def prompt(
    ctx: typer.Context,
    text: Optional[str] = typer.Argument(None, help="New prompt text"),
):
    """Show or set the prompt used for naming."""
    with open_workflow(ctx) as workflow:
        if text is None:
            current = workflow.templates.current()
            console.print(f"Template: [cyan]{current.name if current else '(none)'}[/cyan]")
            console.print(workflow.prompt)
            return
        workflow.set_prompt(text)
        console.print("[green]Prompt updated[/green]")


@templates_app.command("list")
def list_templates(ctx: typer.Context):
    """List prompt templates."""
    with open_workflow(ctx) as workflow:
        table = Table()
        table.add_column("", style="bold")
        table.add_column("ID", style="dim")
        table.add_column("Name", style="cyan")
        table.add_column("Content")

        current_id = workflow.templates.current_id
        for template in workflow.templates.templates:
            table.add_row(
                "*" if template.id == current_id else "",
                template.id,
                template.name,
                template.content if len(template.content) <= 60 else template.content[:57] + "...",
            )

        console.print(table)


@templates_app.command("add")
def add_template(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Template name"),
    content: str = typer.Argument(..., help="Prompt text"),
    use: bool = typer.Option(False, "--use", help="Make it the current template"),
):
    """Save a new prompt template."""
    with open_workflow(ctx) as workflow:
        template = workflow.add_template(name, content)
        if use:
            workflow.set_current_template(template.id)
        console.print(f"[green]Added template {template.name} ({template.id})[/green]")


@templates_app.command("update")
def update_template(
    ctx: typer.Context,
    template_id: str = typer.Argument(..., help="Template ID"),
    name: Optional[str] = typer.Option(None, "--name", help="New name"),
    content: Optional[str] = typer.Option(None, "--content", help="New prompt text"),
):
    """Change a template's name or content."""
    with open_workflow(ctx) as workflow:
        template = workflow.update_template(template_id, name=name, content=content)
        console.print(f"[green]Updated template {template.name}[/green]")


@templates_app.command("delete")
def delete_template(
    ctx: typer.Context,
    template_id: str = typer.Argument(..., help="Template ID"),
):
    """Delete a template."""
    with open_workflow(ctx) as workflow:
        workflow.delete_template(template_id)
        console.print(f"[green]Deleted template {template_id}[/green]")


@templates_app.command("use")
def use_template(
    ctx: typer.Context,
    template_id: Optional[str] = typer.Argument(None, help="Template ID"),
    none: bool = typer.Option(False, "--none", help="Deselect the current template"),
):
    """Select the template whose content becomes the prompt."""
    if template_id is None and not none:
        console.print("[red]Error: give a template ID or --none[/red]")
        raise typer.Exit(1)

    with open_workflow(ctx) as workflow:
        workflow.set_current_template(None if none else template_id)
        current = workflow.templates.current()
        console.print(f"[green]Current template: {current.name if current else '(none)'}[/green]")


@app.command()
def info(
    path: Path = typer.Argument(..., help="Image file"),
):
    """Show basic information about an image."""
    processor = ImageProcessor()
    try:
        preview = processor.read_image_preview(path)
    except ImageNamerError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    details = processor.get_image_info(path)
    console.print(f"File: [cyan]{details['filename']}[/cyan]")
    console.print(f"Size: [magenta]{details['size']}[/magenta]")
    console.print(f"Preview: {preview.split(';', 1)[0]} ({len(preview)} characters)")


@app.command()
def reset(
    ctx: typer.Context,
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
):
    """Restore all settings to their defaults."""
    if not yes:
        typer.confirm("Reset all settings?", abort=True)

    with open_workflow(ctx) as workflow:
        workflow.reset_all_settings()
        console.print("[green]Settings restored to defaults[/green]")


@app.command()
def status(ctx: typer.Context):
    """Show the saved configuration."""
    with open_workflow(ctx) as workflow:
        config = workflow.config
        state_style = {
            ConnectionState.SUCCESS: "green",
            ConnectionState.FAILED: "red",
        }.get(config.connection_state, "dim")

        console.print(f"Endpoint: [cyan]{config.api_endpoint}[/cyan]")
        console.print(f"Model: [cyan]{config.active_model_name}[/cyan]")
        console.print(f"Context: [yellow]{workflow.models.batch_context_length()}[/yellow]")
        console.print(f"Connection: [{state_style}]{config.connection_state.value}[/{state_style}]")
        if config.connection_message:
            console.print(f"  {config.connection_message}")
        console.print(f"Settings file: [dim]{ctx.obj['settings_path']}[/dim]")


if __name__ == "__main__":
    app()
