"""Phase C and D video generation seeded by each scene's image.

- Scene 1's clip is generated with a caller-supplied video style (phase C)
- Every other clip uses the style locked in at first-video confirmation,
  read from the shot list and never from the caller (phase D)
- Each clip is seeded by its own scene's image
- Scenes are processed sequentially; a failed scene never stops the batch
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
    ValidationError,
)
from docuvid.orchestrator.state import load_workflow
from docuvid.pipeline.assets import (
    GenerationContext,
    SceneResult,
    clip_duration_for,
    compose_video_prompt,
    get_complete_asset,
    run_scene,
    upsert_asset,
    video_prompt_for,
)
from docuvid.services.object_store import video_key

logger = logging.getLogger(__name__)


async def _generate_scene_video(
    session: AsyncSession,
    ctx: GenerationContext,
    project: Project,
    scene: Scene,
    phase: str,
    video_style: str,
) -> dict[str, str]:
    """Generate, upload and persist one scene's clip.

    Raises:
        ExternalGenerationError: If the scene has no image or the backend fails
        StorageError: If the seed image cannot be read or the upload fails
    """
    image = await get_complete_asset(session, scene.id, "image")
    if image is None:
        raise ExternalGenerationError(f"Scene {scene.order_index} has no complete image")
    seed_image = await ctx.retry.run_transient(ctx.store.fetch, image.storage_path)

    scene_prompt = video_prompt_for(scene)
    prompt = compose_video_prompt(video_style, scene_prompt)
    duration = clip_duration_for(scene)

    result = await ctx.retry.run(ctx.video_backend.generate, prompt, seed_image, duration)
    if not result.success or not result.video_bytes:
        raise ExternalGenerationError(result.error or "Video generation failed")

    url = await ctx.retry.run(
        ctx.store.upload,
        video_key(project.id, scene.order_index),
        result.video_bytes,
        "video/mp4",
    )

    await upsert_asset(
        session,
        scene.id,
        "video",
        url,
        metadata={
            "prompt": prompt,
            "model": ctx.video_backend.model_id,
            "phase": phase,
            "motion_type": scene.motion_type,
            "duration_seconds": duration,
        },
    )
    scene.status = "complete"
    await session.commit()
    return {"image": image.storage_path, "video": url}


async def generate_first_video(
    session: AsyncSession,
    ctx: GenerationContext,
    project_id: uuid.UUID,
    video_style: Optional[str],
    prompt: Optional[str] = None,
) -> list[SceneResult]:
    """Generate Scene 1's clip using its image as the motion seed.

    Args:
        session: Async database session
        ctx: Generation collaborators
        project_id: Project whose shot list is processed
        video_style: Free-text style prefixed onto the scene's video prompt
        prompt: Optional replacement video prompt, persisted on the scene

    Raises:
        ValidationError: If video_style is empty
        NotFoundError: If the project, shot list or Scene 1 is missing
        PhaseInvariantError: If Scene 1's image is not complete
    """
    if not video_style or not video_style.strip():
        raise ValidationError("video_style is required")

    project, _, scenes = await load_workflow(session, project_id)
    scene1 = next((s for s in scenes if s.order_index == 1), None)
    if scene1 is None:
        raise NotFoundError("First scene not found")

    if await get_complete_asset(session, scene1.id, "image") is None:
        raise PhaseInvariantError("First image is not complete", incomplete=[1])

    if prompt:
        scene1.video_prompt = prompt

    logger.info(f"Project {project.id}: generating first video")
    result = await run_scene(
        session,
        scene1,
        lambda: _generate_scene_video(
            session, ctx, project, scene1, "first_video", video_style
        ),
    )
    return [result]


async def generate_remaining_videos(
    session: AsyncSession,
    ctx: GenerationContext,
    project_id: uuid.UUID,
    scene_id: Optional[uuid.UUID] = None,
    prompt: Optional[str] = None,
) -> list[SceneResult]:
    """Generate clips for every scene after the first with the confirmed style.

    Args:
        session: Async database session
        ctx: Generation collaborators
        project_id: Project whose shot list is processed
        scene_id: Optional single scene to regenerate
        prompt: Optional replacement video prompt for the single scene

    Returns:
        Ordered per-scene results

    Raises:
        NotFoundError: If the project, shot list or requested scene is missing
        ValidationError: If scene_id names Scene 1
        PhaseInvariantError: If no video style has been confirmed
    """
    project, shot_list, scenes = await load_workflow(session, project_id)

    if scene_id is not None:
        targets = [s for s in scenes if s.id == scene_id]
        if not targets:
            raise NotFoundError(f"Scene {scene_id} not found")
        if targets[0].order_index == 1:
            raise ValidationError("Scene 1 is regenerated through the first_video phase")
    else:
        targets = [s for s in scenes if s.order_index > 1]

    confirmed_style = shot_list.video_style
    if not confirmed_style or shot_list.first_video_confirmed_at is None:
        raise PhaseInvariantError("Video style has not been confirmed")

    if scene_id is not None and prompt:
        targets[0].video_prompt = prompt

    logger.info(
        f"Project {project.id}: generating {len(targets)} video(s) "
        f"with style '{confirmed_style}'"
    )

    results = []
    for scene in targets:
        result = await run_scene(
            session,
            scene,
            lambda scene=scene: _generate_scene_video(
                session, ctx, project, scene, "remaining_videos", confirmed_style
            ),
        )
        results.append(result)

    succeeded = sum(1 for r in results if r.success)
    logger.info(f"Project {project.id}: {succeeded}/{len(results)} video(s) generated")
    return results
