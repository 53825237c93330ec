"""Generation orchestrator dispatching per-phase batch runs.

Coordinates the four generation phases:
- first_image: Scene 1's reference image
- remaining_images: every other image, conditioned on Scene 1's image
- first_video: Scene 1's clip with a caller-supplied video style
- remaining_videos: every other clip with the confirmed video style

Backends are reached only through the RetryPolicy held in the
GenerationContext. Batches run scene by scene and cannot be cancelled
once started.
"""

import logging
import uuid
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from docuvid.errors import ValidationError
from docuvid.orchestrator.retry import RetryPolicy
from docuvid.pipeline.assets import GenerationContext, SceneResult
from docuvid.pipeline.images import generate_first_image, generate_remaining_images
from docuvid.pipeline.videos import generate_first_video, generate_remaining_videos

logger = logging.getLogger(__name__)

GENERATION_PHASES = ("first_image", "remaining_images", "first_video", "remaining_videos")


class GenerationOrchestrator:
    """Run one generation phase for a project and collect per-scene results."""

    def __init__(self, ctx: GenerationContext):
        self.ctx = ctx

    async def generate_first_image(
        self, session: AsyncSession, project_id: uuid.UUID, prompt: Optional[str] = None
    ) -> list[SceneResult]:
        return await generate_first_image(session, self.ctx, project_id, prompt)

    async def generate_remaining_images(
        self,
        session: AsyncSession,
        project_id: uuid.UUID,
        scene_id: Optional[uuid.UUID] = None,
        prompt: Optional[str] = None,
    ) -> list[SceneResult]:
        return await generate_remaining_images(session, self.ctx, project_id, scene_id, prompt)

    async def generate_first_video(
        self,
        session: AsyncSession,
        project_id: uuid.UUID,
        video_style: Optional[str],
        prompt: Optional[str] = None,
    ) -> list[SceneResult]:
        return await generate_first_video(session, self.ctx, project_id, video_style, prompt)

    async def generate_remaining_videos(
        self,
        session: AsyncSession,
        project_id: uuid.UUID,
        scene_id: Optional[uuid.UUID] = None,
        prompt: Optional[str] = None,
    ) -> list[SceneResult]:
        return await generate_remaining_videos(session, self.ctx, project_id, scene_id, prompt)

    async def generate(
        self,
        session: AsyncSession,
        project_id: uuid.UUID,
        phase: str,
        scene_id: Optional[uuid.UUID] = None,
        prompt: Optional[str] = None,
        video_style: Optional[str] = None,
    ) -> list[SceneResult]:
        """Dispatch a generation request to its phase.

        Raises:
            ValidationError: If phase is not a generation phase
        """
        logger.info(f"Project {project_id}: generate phase={phase} scene={scene_id}")

        if phase == "first_image":
            return await self.generate_first_image(session, project_id, prompt)
        if phase == "remaining_images":
            return await self.generate_remaining_images(session, project_id, scene_id, prompt)
        if phase == "first_video":
            return await self.generate_first_video(session, project_id, video_style, prompt)
        if phase == "remaining_videos":
            return await self.generate_remaining_videos(session, project_id, scene_id, prompt)

        raise ValidationError(
            f"Unknown generation phase '{phase}'. Expected one of {list(GENERATION_PHASES)}"
        )


def build_default_orchestrator() -> GenerationOrchestrator:
    """Wire the Vertex AI backends and local object store from settings."""
    from docuvid.services.image_backend import GeminiImageBackend
    from docuvid.services.object_store import LocalObjectStore
    from docuvid.services.video_backend import VeoVideoBackend

    return GenerationOrchestrator(
        GenerationContext(
            image_backend=GeminiImageBackend(),
            video_backend=VeoVideoBackend(),
            store=LocalObjectStore(),
            retry=RetryPolicy(),
        )
    )
