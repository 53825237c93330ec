"""Collect a project's completed video assets as assembly clips."""

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from docuvid.assembly.engine import Clip
from docuvid.config import settings
from docuvid.db.models import Asset, Scene, ShotList


async def load_project_clips(session: AsyncSession, project_id: uuid.UUID) -> list[Clip]:
    """Return completed video clips for a project in scene order.

    Scenes without a completed video are skipped.
    """
    result = await session.execute(
        select(Asset, Scene)
        .join(Scene, Scene.id == Asset.scene_id)
        .join(ShotList, ShotList.id == Scene.shot_list_id)
        .where(ShotList.project_id == project_id)
        .where(Asset.type == "video")
        .where(Asset.status == "complete")
        .order_by(Scene.order_index)
    )
    clips = []
    for asset, scene in result.all():
        metadata = asset.generation_metadata or {}
        duration = metadata.get("duration_seconds") or scene.duration_seconds
        clips.append(
            Clip(
                url=asset.storage_path,
                duration=float(duration or settings.pipeline.default_clip_duration),
                order=scene.order_index,
            )
        )
    return clips
