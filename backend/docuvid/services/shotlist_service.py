"""
Shot list service layer for creating projects from shot list documents.

All functions accept an AsyncSession parameter; the caller commits.
"""
import uuid
from pathlib import Path
from typing import Optional

import yaml
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from docuvid.config import settings
from docuvid.db.models import Project, Scene, ShotList
from docuvid.errors import ValidationError
from docuvid.schemas.shotlist import ShotListDocument


def load_shot_list_document(path: Path) -> ShotListDocument:
    """Parse and validate a YAML shot list file.

    Raises:
        ValidationError: If the file is not valid YAML or fails validation
    """
    try:
        raw = yaml.safe_load(Path(path).read_text())
    except yaml.YAMLError as e:
        raise ValidationError(f"Invalid YAML in {path}: {e}") from e

    try:
        return ShotListDocument.model_validate(raw or {})
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid shot list {path}: {e}") from e


async def create_project_from_document(
    session: AsyncSession,
    document: ShotListDocument,
) -> Project:
    """Create a Project, its ShotList and numbered Scenes.

    Args:
        session: Active database session
        document: Validated shot list document

    Returns:
        The flushed Project instance
    """
    project = Project(
        title=document.title,
        aspect_ratio=document.aspect_ratio or settings.pipeline.aspect_ratio,
    )
    session.add(project)
    await session.flush()

    shot_list = ShotList(project_id=project.id)
    session.add(shot_list)
    await session.flush()

    for index, scene_doc in enumerate(document.scenes, start=1):
        session.add(
            Scene(
                shot_list_id=shot_list.id,
                order_index=index,
                script_segment=scene_doc.script_segment,
                image_prompt=scene_doc.image_prompt,
                video_prompt=scene_doc.video_prompt,
                motion_type=scene_doc.motion_type,
                duration_seconds=scene_doc.duration_seconds,
            )
        )
    await session.flush()
    return project


async def list_projects(session: AsyncSession) -> list[Project]:
    """Return all projects, newest first."""
    result = await session.execute(
        select(Project).order_by(Project.created_at.desc())
    )
    return list(result.scalars().all())


async def get_scene_by_index(
    session: AsyncSession, project_id: uuid.UUID, order_index: int
) -> Optional[Scene]:
    """Look up a project's scene by its 1-based position."""
    result = await session.execute(
        select(Scene)
        .join(ShotList, ShotList.id == Scene.shot_list_id)
        .where(ShotList.project_id == project_id)
        .where(Scene.order_index == order_index)
    )
    return result.scalar_one_or_none()
