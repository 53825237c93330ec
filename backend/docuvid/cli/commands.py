"""CLI commands for docuvid using Typer and Rich.

Implements the visuals workflow commands:
- import-shotlist: Create a project from a YAML shot list
- list: List all projects in a table
- status: Show a project's phase and per-scene progress
- generate: Run one generation phase
- confirm: Confirm a phase gate
- reset: Roll back to the first image or first video
- assemble: Join completed clips (and optional music) into one MP4
"""

import asyncio
import logging
import uuid
from pathlib import Path
from typing import NoReturn, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, Progress, TextColumn
from rich.table import Table

from docuvid import validate_dependencies
from docuvid.assembly.clips import load_project_clips
from docuvid.assembly.engine import AssemblyEngine, ProcessingProgress, teardown_engine
from docuvid.config import settings
from docuvid.db import async_session, init_database
from docuvid.errors import DocuvidError, PhaseInvariantError
from docuvid.orchestrator import gate
from docuvid.orchestrator import reset as reset_controller
from docuvid.orchestrator.pipeline import GENERATION_PHASES, build_default_orchestrator
from docuvid.orchestrator.state import (
    PHASES,
    build_snapshot,
    load_assets,
    load_workflow,
    resolve_phase,
)
from docuvid.services.shotlist_service import (
    create_project_from_document,
    get_scene_by_index,
    list_projects as list_project_rows,
    load_shot_list_document,
)

app = typer.Typer(name="docuvid", help="Phased AI visual generation for documentaries")
console = Console()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _parse_uuid(value: str) -> uuid.UUID:
    try:
        return uuid.UUID(value)
    except ValueError:
        console.print(f"[red]Error:[/red] Invalid project UUID: {value}")
        raise typer.Exit(code=1)


def _fail(e: Exception) -> NoReturn:
    console.print(f"[red]Error:[/red] {str(e)}")
    if isinstance(e, PhaseInvariantError) and e.incomplete:
        console.print(f"[yellow]Incomplete scenes:[/yellow] {', '.join(map(str, e.incomplete))}")
    raise typer.Exit(code=1)


@app.command(name="import-shotlist")
def import_shotlist(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="YAML shot list file"),
):
    """Create a project, shot list and scenes from a YAML document."""
    asyncio.run(_import_async(path))


async def _import_async(path: Path):
    """Async implementation of import-shotlist command."""
    try:
        document = load_shot_list_document(path)
    except DocuvidError as e:
        _fail(e)

    await init_database()

    async with async_session() as session:
        project = await create_project_from_document(session, document)
        await session.commit()

    console.print(f"[green]Created project:[/green] {project.id}")
    console.print(f"[green]Scenes:[/green] {len(document.scenes)}")


@app.command(name="list")
def list_projects():
    """List all documentary projects."""
    asyncio.run(_list_async())


async def _list_async():
    """Async implementation of list command."""
    await init_database()

    async with async_session() as session:
        projects = await list_project_rows(session)

    if not projects:
        console.print("[yellow]No projects found[/yellow]")
        return

    table = Table(show_header=True, header_style="bold blue")
    table.add_column("ID", style="dim")
    table.add_column("Title")
    table.add_column("Step")
    table.add_column("Created")

    for project in projects:
        title = project.title if len(project.title) <= 50 else project.title[:47] + "..."
        table.add_row(
            str(project.id),
            title,
            str(project.current_step),
            project.created_at.strftime("%Y-%m-%d %H:%M"),
        )

    console.print(table)


@app.command()
def status(
    project_id: str = typer.Argument(..., help="Project UUID"),
):
    """Show the current visuals phase and per-scene asset status."""
    asyncio.run(_status_async(_parse_uuid(project_id)))


async def _status_async(project_uuid: uuid.UUID):
    """Async implementation of status command."""
    await init_database()

    async with async_session() as session:
        try:
            project, shot_list, scenes = await load_workflow(session, project_uuid)
        except DocuvidError as e:
            _fail(e)
        assets = await load_assets(session, scenes)

    snapshot = build_snapshot(shot_list, scenes, assets, project.current_step or 0)
    phase = resolve_phase(snapshot)

    info_lines = [
        f"[bold]ID:[/bold] {project.id}",
        f"[bold]Title:[/bold] {project.title}",
        f"[bold]Phase:[/bold] [yellow]{phase}[/yellow] ({PHASES[phase]})",
        f"[bold]Step:[/bold] {project.current_step}",
        f"[bold]Video Style:[/bold] {shot_list.video_style or '-'}",
    ]
    for field_name in ("first_image_confirmed_at", "all_images_confirmed_at", "first_video_confirmed_at"):
        stamp = getattr(shot_list, field_name)
        label = field_name.removesuffix("_confirmed_at").replace("_", " ").title()
        info_lines.append(
            f"[bold]{label}:[/bold] "
            + (f"[green]confirmed {stamp.strftime('%Y-%m-%d %H:%M:%S')}[/green]" if stamp else "[dim]open[/dim]")
        )

    console.print(Panel("\n".join(info_lines), title="[bold]Visuals Status[/bold]", border_style="blue"))

    table = Table(show_header=True, header_style="bold blue")
    table.add_column("#", justify="right")
    table.add_column("Status")
    table.add_column("Image")
    table.add_column("Video")
    for scene in scenes:
        image = snapshot.complete_asset(scene.id, "image")
        video = snapshot.complete_asset(scene.id, "video")
        table.add_row(
            str(scene.order_index),
            f"[{_get_status_color(scene.status)}]{scene.status}[/{_get_status_color(scene.status)}]",
            "[green]✓[/green]" if image else "[dim]-[/dim]",
            "[green]✓[/green]" if video else "[dim]-[/dim]",
        )
    console.print(table)


@app.command()
def generate(
    project_id: str = typer.Argument(..., help="Project UUID"),
    phase: str = typer.Argument(..., help=f"One of: {', '.join(GENERATION_PHASES)}"),
    scene: Optional[int] = typer.Option(None, "--scene", "-n", help="Regenerate only this scene (1-based)"),
    prompt: Optional[str] = typer.Option(None, "--prompt", "-p", help="Replacement prompt for the scene"),
    video_style: Optional[str] = typer.Option(None, "--style", "-s", help="Video style (first_video only)"),
):
    """Run one generation phase and report per-scene results."""
    if phase not in GENERATION_PHASES:
        console.print(f"[red]Error:[/red] Invalid phase: {phase}")
        console.print(f"Allowed: {', '.join(GENERATION_PHASES)}")
        raise typer.Exit(code=1)

    asyncio.run(_generate_async(_parse_uuid(project_id), phase, scene, prompt, video_style))


async def _generate_async(
    project_uuid: uuid.UUID, phase: str, scene_index: Optional[int],
    prompt: Optional[str], video_style: Optional[str],
):
    """Async implementation of generate command."""
    await init_database()
    orchestrator = build_default_orchestrator()

    async with async_session() as session:
        scene_id = None
        if scene_index is not None:
            scene = await get_scene_by_index(session, project_uuid, scene_index)
            if scene is None:
                console.print(f"[red]Error:[/red] Scene {scene_index} not found")
                raise typer.Exit(code=1)
            scene_id = scene.id

        try:
            with console.status(f"[bold green]Running {phase}..."):
                results = await orchestrator.generate(
                    session, project_uuid, phase,
                    scene_id=scene_id, prompt=prompt, video_style=video_style,
                )
        except DocuvidError as e:
            _fail(e)

    table = Table(show_header=True, header_style="bold blue")
    table.add_column("#", justify="right")
    table.add_column("Result")
    table.add_column("Detail")
    for r in results:
        if r.success:
            table.add_row(str(r.order_index), "[green]✓[/green]", ", ".join(r.urls.values()))
        else:
            table.add_row(str(r.order_index), "[red]✗[/red]", r.error or "")
    console.print(table)

    failed = sum(1 for r in results if not r.success)
    if failed:
        console.print(f"[yellow]{failed} scene(s) failed. Regenerate them with --scene.[/yellow]")
        raise typer.Exit(code=1)


@app.command()
def confirm(
    project_id: str = typer.Argument(..., help="Project UUID"),
    phase: str = typer.Argument(..., help=f"One of: {', '.join(gate.GATES)}"),
    video_style: Optional[str] = typer.Option(None, "--style", "-s", help="Video style to lock (first_video only)"),
):
    """Confirm a phase gate."""
    asyncio.run(_confirm_async(_parse_uuid(project_id), phase, video_style))


async def _confirm_async(project_uuid: uuid.UUID, phase: str, video_style: Optional[str]):
    """Async implementation of confirm command."""
    await init_database()

    async with async_session() as session:
        try:
            result = await gate.confirm(session, project_uuid, phase, video_style)
        except DocuvidError as e:
            _fail(e)

    console.print(f"[green]✓[/green] {result.message}")
    if result.next_phase:
        console.print(f"[green]Next:[/green] {result.next_phase}")
    if result.next_step:
        console.print(f"[green]Advanced to step:[/green] {result.next_step}")


@app.command()
def reset(
    project_id: str = typer.Argument(..., help="Project UUID"),
    reset_to: str = typer.Argument(..., help=f"One of: {', '.join(reset_controller.RESET_PLANS)}"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt"),
):
    """Roll back confirmations and delete downstream assets."""
    if not yes:
        typer.confirm(f"Reset to {reset_to}? Downstream assets will be deleted", abort=True)
    asyncio.run(_reset_async(_parse_uuid(project_id), reset_to))


async def _reset_async(project_uuid: uuid.UUID, reset_to: str):
    """Async implementation of reset command."""
    await init_database()

    async with async_session() as session:
        try:
            result = await reset_controller.reset(session, project_uuid, reset_to)
        except DocuvidError as e:
            _fail(e)

    console.print(f"[green]✓[/green] {result.message} ({result.cleared_scenes} scene(s) reset)")


@app.command()
def assemble(
    project_id: str = typer.Argument(..., help="Project UUID"),
    music: Optional[str] = typer.Option(None, "--music", "-m", help="Background music URL or path"),
    volume: float = typer.Option(
        settings.assembly.default_music_volume, "--volume", min=0.0, max=1.0, help="Music volume",
    ),
    output: Path = typer.Option(
        Path(settings.assembly.output_filename), "--output", "-o", help="Output MP4 path",
    ),
):
    """Assemble a project's completed clips into one MP4."""
    # Fail-fast dependency validation
    try:
        validate_dependencies()
    except RuntimeError as e:
        console.print(f"[red]Error:[/red] {str(e)}")
        raise typer.Exit(code=1)

    asyncio.run(_assemble_async(_parse_uuid(project_id), music, volume, output))


async def _assemble_async(
    project_uuid: uuid.UUID, music: Optional[str], volume: float, output: Path,
):
    """Async implementation of assemble command."""
    await init_database()

    async with async_session() as session:
        clips = await load_project_clips(session, project_uuid)

    if not clips:
        console.print(f"[red]Error:[/red] No completed videos for project {project_uuid}")
        raise typer.Exit(code=1)

    engine = AssemblyEngine()
    with Progress(
        TextColumn("[bold blue]{task.fields[stage]:<10}"),
        BarColumn(),
        TextColumn("{task.percentage:>3.0f}%"),
        TextColumn("{task.description}"),
        console=console,
    ) as progress:
        task = progress.add_task("Starting...", total=100, stage="loading")

        def on_progress(update: ProcessingProgress):
            progress.update(task, completed=update.progress, description=update.message, stage=update.stage)

        try:
            result = await engine.assemble(clips, music_url=music, music_volume=volume, on_progress=on_progress)
        except DocuvidError as e:
            _fail(e)
        finally:
            await teardown_engine()

    output.write_bytes(result.data)
    console.print(f"[green]✓[/green] Assembled {len(clips)} clip(s), {result.duration_seconds:.1f}s")
    console.print(f"[green]Output:[/green] {output}")


def _get_status_color(status: str) -> str:
    """Get Rich color for a scene status.

    Color coding:
    - complete: green
    - failed: red
    - generating / image_complete: yellow
    - pending: dim
    """
    if status == "complete":
        return "green"
    elif status == "failed":
        return "red"
    elif status in ["generating", "image_complete"]:
        return "yellow"
    elif status == "pending":
        return "dim"
    else:
        return "white"
