"""Phase A and B image generation with a shared reference anchor.

- Scene 1's image is generated from text alone (phase A)
- Every other image is conditioned on Scene 1's confirmed image (phase B)
- Scenes are processed sequentially, never in parallel
- A failed scene is recorded and the batch moves on to the next one
"""

import logging
import uuid
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from docuvid.db.models import Project, Scene
from docuvid.errors import (
    ExternalGenerationError,
    NotFoundError,
    PhaseInvariantError,
    StorageError,
    ValidationError,
)
from docuvid.orchestrator.state import load_workflow
from docuvid.pipeline.assets import (
    GenerationContext,
    SceneResult,
    get_complete_asset,
    image_prompt_for,
    run_scene,
    upsert_asset,
)
from docuvid.services.object_store import image_key

logger = logging.getLogger(__name__)


async def _generate_scene_image(
    session: AsyncSession,
    ctx: GenerationContext,
    project: Project,
    scene: Scene,
    phase: str,
    reference_image: Optional[bytes] = None,
) -> dict[str, str]:
    """Generate, upload and persist one scene's image.

    Raises:
        ExternalGenerationError: If the backend reports a failure
        StorageError: If the upload fails
    """
    prompt = image_prompt_for(scene)
    result = await ctx.retry.run(ctx.image_backend.generate, prompt, reference_image)
    if not result.success or not result.image_bytes:
        raise ExternalGenerationError(result.error or "Image generation failed")

    url = await ctx.retry.run(
        ctx.store.upload,
        image_key(project.id, scene.order_index),
        result.image_bytes,
        result.mime_type,
    )

    await upsert_asset(
        session,
        scene.id,
        "image",
        url,
        metadata={
            "prompt": prompt,
            "model": ctx.image_backend.model_id,
            "phase": phase,
        },
    )
    scene.status = "image_complete"
    await session.commit()
    return {"image": url}


async def generate_first_image(
    session: AsyncSession,
    ctx: GenerationContext,
    project_id: uuid.UUID,
    prompt: Optional[str] = None,
) -> list[SceneResult]:
    """Generate Scene 1's image with no reference image.

    A failure is returned as a single failed SceneResult, never raised.

    Args:
        session: Async database session
        ctx: Generation collaborators
        project_id: Project whose shot list is processed
        prompt: Optional replacement image prompt, persisted on the scene

    Raises:
        NotFoundError: If the project, shot list or Scene 1 is missing
    """
    project, _, scenes = await load_workflow(session, project_id)
    scene1 = next((s for s in scenes if s.order_index == 1), None)
    if scene1 is None:
        raise NotFoundError("First scene not found")

    if prompt:
        scene1.image_prompt = prompt

    logger.info(f"Project {project.id}: generating first image")
    result = await run_scene(
        session,
        scene1,
        lambda: _generate_scene_image(session, ctx, project, scene1, "first_image"),
    )
    return [result]


async def generate_remaining_images(
    session: AsyncSession,
    ctx: GenerationContext,
    project_id: uuid.UUID,
    scene_id: Optional[uuid.UUID] = None,
    prompt: Optional[str] = None,
) -> list[SceneResult]:
    """Generate images for every scene after the first, using Scene 1 as reference.

    When scene_id is given only that scene is (re)generated. The reference
    bytes are fetched once, before any scene is touched.

    Args:
        session: Async database session
        ctx: Generation collaborators
        project_id: Project whose shot list is processed
        scene_id: Optional single scene to regenerate
        prompt: Optional replacement image prompt for the single scene

    Returns:
        Ordered per-scene results

    Raises:
        NotFoundError: If the project, shot list or requested scene is missing
        ValidationError: If scene_id names Scene 1
        PhaseInvariantError: If Scene 1's image is not complete and confirmed
        StorageError: If the reference image cannot be fetched
    """
    project, shot_list, scenes = await load_workflow(session, project_id)
    scene1 = next((s for s in scenes if s.order_index == 1), None)
    if scene1 is None:
        raise NotFoundError("First scene not found")

    if scene_id is not None:
        targets = [s for s in scenes if s.id == scene_id]
        if not targets:
            raise NotFoundError(f"Scene {scene_id} not found")
        if targets[0].order_index == 1:
            raise ValidationError("Scene 1 is regenerated through the first_image phase")
    else:
        targets = [s for s in scenes if s.order_index > 1]

    first_image = await get_complete_asset(session, scene1.id, "image")
    if first_image is None or shot_list.first_image_confirmed_at is None:
        raise PhaseInvariantError("First image must be generated and confirmed first")

    try:
        reference_image = await ctx.retry.run_transient(ctx.store.fetch, first_image.storage_path)
    except StorageError as e:
        raise StorageError(f"First image missing: {e}") from e

    # Only touch the scene once every precondition has passed
    if scene_id is not None and prompt:
        targets[0].image_prompt = prompt

    logger.info(
        f"Project {project.id}: generating {len(targets)} image(s) "
        f"from the first-image reference"
    )

    results = []
    for scene in targets:
        result = await run_scene(
            session,
            scene,
            lambda scene=scene: _generate_scene_image(
                session, ctx, project, scene, "remaining_images", reference_image
            ),
        )
        results.append(result)

    succeeded = sum(1 for r in results if r.success)
    logger.info(f"Project {project.id}: {succeeded}/{len(results)} image(s) generated")
    return results
