"""Per-scene persistence helpers shared by the image and video phases.

Every scene in a batch is run through run_scene(), which turns any failure
into a SceneResult(success=False) and marks the scene failed. One scene's
failure therefore never stops the batch.
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from docuvid.config import settings
from docuvid.db.models import Asset, Scene
from docuvid.orchestrator.retry import RetryPolicy
from docuvid.services.image_backend import ImageBackend
from docuvid.services.object_store import ObjectStore
from docuvid.services.video_backend import VideoBackend

logger = logging.getLogger(__name__)


@dataclass
class SceneResult:
    scene_id: uuid.UUID
    order_index: int
    success: bool
    error: Optional[str] = None
    urls: dict[str, str] = field(default_factory=dict)


@dataclass
class GenerationContext:
    """External collaborators used by the generation phases."""

    image_backend: ImageBackend
    video_backend: VideoBackend
    store: ObjectStore
    retry: RetryPolicy


def image_prompt_for(scene: Scene) -> str:
    return scene.image_prompt or f"Documentary scene {scene.order_index}"


def video_prompt_for(scene: Scene) -> str:
    if scene.video_prompt:
        return scene.video_prompt
    return f"{scene.motion_type or 'subtle'} camera movement: {image_prompt_for(scene)}"


def compose_video_prompt(video_style: str, scene_prompt: str) -> str:
    """Prefix the locked video style onto a scene's motion prompt."""
    return f"{video_style.strip()} {scene_prompt.strip()}"


def clip_duration_for(scene: Scene) -> int:
    duration = scene.duration_seconds or settings.pipeline.default_clip_duration
    return min(duration, settings.pipeline.max_clip_duration)


async def get_asset(
    session: AsyncSession, scene_id: uuid.UUID, asset_type: str
) -> Optional[Asset]:
    result = await session.execute(
        select(Asset).where(Asset.scene_id == scene_id, Asset.type == asset_type)
    )
    return result.scalar_one_or_none()


async def get_complete_asset(
    session: AsyncSession, scene_id: uuid.UUID, asset_type: str
) -> Optional[Asset]:
    asset = await get_asset(session, scene_id, asset_type)
    if asset is None or asset.status != "complete":
        return None
    return asset


async def upsert_asset(
    session: AsyncSession,
    scene_id: uuid.UUID,
    asset_type: str,
    storage_path: str,
    metadata: dict,
    status: str = "complete",
) -> Asset:
    """Create or overwrite the single asset for (scene_id, asset_type)."""
    asset = await get_asset(session, scene_id, asset_type)
    if asset is None:
        asset = Asset(scene_id=scene_id, type=asset_type)
        session.add(asset)
    asset.status = status
    asset.storage_path = storage_path
    asset.generation_metadata = metadata
    return asset


async def run_scene(
    session: AsyncSession,
    scene: Scene,
    step: Callable[[], Awaitable[dict[str, str]]],
) -> SceneResult:
    """Run one scene's generation step and record the outcome.

    The scene is marked generating before the step starts. The step returns
    the URLs it produced; any exception it raises becomes a failed result.
    """
    scene_id, order_index = scene.id, scene.order_index
    scene.status = "generating"
    await session.commit()

    try:
        urls = await step()
    except Exception as e:
        logger.error(f"Scene {order_index}: generation failed: {e}")
        scene.status = "failed"
        await session.commit()
        return SceneResult(
            scene_id=scene_id,
            order_index=order_index,
            success=False,
            error=str(e) or type(e).__name__,
        )

    logger.info(f"Scene {order_index}: generation complete")
    return SceneResult(
        scene_id=scene_id,
        order_index=order_index,
        success=True,
        urls=urls,
    )
