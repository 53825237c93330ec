"""API route handlers for the visuals workflow and final assembly."""

import logging
import uuid
from typing import Optional
from urllib.parse import urlparse

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from docuvid.assembly.clips import load_project_clips
from docuvid.assembly.engine import AssemblyEngine, Clip
from docuvid.db import get_session
from docuvid.errors import ValidationError
from docuvid.orchestrator import gate
from docuvid.orchestrator import reset as reset_controller
from docuvid.orchestrator.pipeline import GenerationOrchestrator, build_default_orchestrator
from docuvid.orchestrator.state import PHASES, load_snapshot, resolve_phase
from docuvid.schemas.visuals import (
    AssembleRequest,
    ConfirmRequest,
    ConfirmResponse,
    GenerateRequest,
    GenerateResponse,
    PhaseResponse,
    ResetResponse,
    SceneResultSchema,
)
from docuvid.services.object_store import LocalObjectStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

# ---------------------------------------------------------------------------
# Shared collaborators (overridable through app.dependency_overrides)
# ---------------------------------------------------------------------------
_orchestrator: Optional[GenerationOrchestrator] = None
_assembly_engine: Optional[AssemblyEngine] = None
_object_store: Optional[LocalObjectStore] = None


def get_orchestrator() -> GenerationOrchestrator:
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = build_default_orchestrator()
    return _orchestrator


def get_assembly_engine() -> AssemblyEngine:
    global _assembly_engine
    if _assembly_engine is None:
        _assembly_engine = AssemblyEngine()
    return _assembly_engine


def get_object_store() -> LocalObjectStore:
    global _object_store
    if _object_store is None:
        _object_store = LocalObjectStore()
    return _object_store


def _check_media_source(url: str, store: LocalObjectStore) -> None:
    """Reject caller-supplied media that is neither remote nor a stored object.

    Raises:
        ValidationError: For local paths and file:// URIs outside the store
    """
    if urlparse(url).scheme in ("http", "https") or store.owns(url):
        return
    raise ValidationError(f"Unsupported media source: {url}")


# ---------------------------------------------------------------------------
# Visuals workflow
# ---------------------------------------------------------------------------
@router.get("/projects/{project_id}/visuals/phase", response_model=PhaseResponse)
async def get_visuals_phase(
    project_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
):
    """Derive the current visuals phase from the stored records."""
    snapshot = await load_snapshot(session, project_id)
    phase = resolve_phase(snapshot)
    return PhaseResponse(
        project_id=project_id,
        phase=phase,
        description=PHASES[phase],
        incomplete_images=snapshot.incomplete_scenes("image"),
        incomplete_videos=snapshot.incomplete_scenes("video"),
        video_style=snapshot.shot_list.video_style if snapshot.shot_list else None,
    )


@router.post("/projects/{project_id}/visuals/generate", response_model=GenerateResponse)
async def generate_visuals(
    project_id: uuid.UUID,
    request: GenerateRequest,
    session: AsyncSession = Depends(get_session),
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
):
    """Run one generation phase.

    Blocks until every targeted scene has been processed. Per-scene
    failures are reported in the results list, not as an error status.
    """
    results = await orchestrator.generate(
        session,
        project_id,
        request.phase,
        scene_id=request.scene_id,
        prompt=request.prompt,
        video_style=request.video_style,
    )
    succeeded = sum(1 for r in results if r.success)
    return GenerateResponse(
        phase=request.phase,
        results=[
            SceneResultSchema(
                scene_id=r.scene_id,
                order_index=r.order_index,
                success=r.success,
                error=r.error,
                urls=r.urls,
            )
            for r in results
        ],
        succeeded=succeeded,
        failed=len(results) - succeeded,
    )


@router.post("/projects/{project_id}/visuals/confirm", response_model=ConfirmResponse)
async def confirm_visuals(
    project_id: uuid.UUID,
    request: ConfirmRequest,
    session: AsyncSession = Depends(get_session),
):
    """Confirm a phase gate."""
    result = await gate.confirm(session, project_id, request.phase, request.video_style)
    return ConfirmResponse(
        success=result.success,
        message=result.message,
        next_phase=result.next_phase,
        next_step=result.next_step,
    )


@router.delete("/projects/{project_id}/visuals/confirm", response_model=ResetResponse)
async def reset_visuals(
    project_id: uuid.UUID,
    reset_to: str = Query(..., description="first_image or first_video"),
    session: AsyncSession = Depends(get_session),
):
    """Roll back confirmations and purge downstream assets."""
    result = await reset_controller.reset(session, project_id, reset_to)
    return ResetResponse(
        success=result.success,
        message=result.message,
        target_phase=result.target_phase,
        cleared_scenes=result.cleared_scenes,
    )


# ---------------------------------------------------------------------------
# Assembly
# ---------------------------------------------------------------------------
@router.post("/assemble")
async def assemble(
    request: AssembleRequest,
    session: AsyncSession = Depends(get_session),
    engine: AssemblyEngine = Depends(get_assembly_engine),
    store: LocalObjectStore = Depends(get_object_store),
):
    """Concatenate clips (and optional music) into one MP4.

    Caller-supplied URLs must be http(s) or objects in the object store.
    Returns the MP4 bytes directly. Answers 409 while another run is in
    flight.
    """
    for url in [c.url for c in request.clips] + [request.music_url]:
        if url:
            _check_media_source(url, store)

    if request.clips:
        clips = [Clip(url=c.url, duration=c.duration, order=c.order) for c in request.clips]
    elif request.project_id is not None:
        clips = await load_project_clips(session, request.project_id)
    else:
        raise HTTPException(status_code=400, detail="Provide clips or project_id")

    if not clips:
        raise HTTPException(status_code=400, detail="No video clips to assemble")

    def on_progress(update):
        logger.debug(f"Assembly {update.stage} {update.progress}%: {update.message}")

    output = await engine.assemble(
        clips,
        music_url=request.music_url,
        music_volume=request.music_volume,
        on_progress=on_progress,
    )
    return Response(
        content=output.data,
        media_type=output.content_type,
        headers={"X-Duration-Seconds": f"{output.duration_seconds:.3f}"},
    )
