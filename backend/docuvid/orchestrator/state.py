"""Phase constants and derivation logic for the visuals workflow.

The current phase is never stored. It is derived on every read from a
read-only snapshot of the shot list, its scenes and their assets, so it
cannot drift from the records it describes.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from docuvid.db.models import Asset, Project, Scene, ShotList
from docuvid.errors import NotFoundError

# Workflow phases in execution order
PHASES = {
    "phase_a": "Generate and confirm the first (reference) image",
    "phase_b": "Generate and confirm the remaining images",
    "phase_c": "Generate the first video and lock the video style",
    "phase_d": "Generate and confirm the remaining videos",
    "complete": "Visuals handed off to the next wizard step",
}

PHASE_ORDER = ("phase_a", "phase_b", "phase_c", "phase_d", "complete")

# Project.current_step value marking the hand-off out of this workflow
COMPLETION_STEP = 5


@dataclass(frozen=True)
class SceneView:
    id: uuid.UUID
    order_index: int
    status: str = "pending"


@dataclass(frozen=True)
class AssetView:
    scene_id: uuid.UUID
    type: str
    status: str
    storage_path: Optional[str] = None


@dataclass(frozen=True)
class ShotListView:
    id: uuid.UUID
    video_style: Optional[str] = None
    first_image_confirmed_at: Optional[datetime] = None
    all_images_confirmed_at: Optional[datetime] = None
    first_video_confirmed_at: Optional[datetime] = None


@dataclass(frozen=True)
class WorkflowSnapshot:
    """Immutable view of everything the phase derivation depends on."""

    scenes: tuple[SceneView, ...] = field(default_factory=tuple)
    assets: tuple[AssetView, ...] = field(default_factory=tuple)
    shot_list: Optional[ShotListView] = None
    project_current_step: int = 0

    def first_scene(self) -> Optional[SceneView]:
        for scene in self.scenes:
            if scene.order_index == 1:
                return scene
        return None

    def complete_asset(self, scene_id: uuid.UUID, asset_type: str) -> Optional[AssetView]:
        for asset in self.assets:
            if (
                asset.scene_id == scene_id
                and asset.type == asset_type
                and asset.status == "complete"
            ):
                return asset
        return None

    def incomplete_scenes(self, asset_type: str) -> list[int]:
        """Return order indices of scenes lacking a complete asset of this type."""
        return sorted(
            scene.order_index
            for scene in self.scenes
            if self.complete_asset(scene.id, asset_type) is None
        )


def resolve_phase(snapshot: WorkflowSnapshot) -> str:
    """Derive the current workflow phase from a snapshot.

    Rules are evaluated in order and the first match wins:
        1. No complete scene-1 image, or first image unconfirmed -> phase_a
        2. Any image incomplete, or all images unconfirmed       -> phase_b
        3. No complete scene-1 video, or first video unconfirmed -> phase_c
        4. Any video incomplete, or project below step 5         -> phase_d
        5. Otherwise                                             -> complete

    Args:
        snapshot: Read-only workflow snapshot

    Returns:
        One of the keys of PHASES

    Examples:
        >>> resolve_phase(WorkflowSnapshot())
        'phase_a'
    """
    shot_list = snapshot.shot_list
    if shot_list is None or not snapshot.scenes:
        return "phase_a"

    scene1 = snapshot.first_scene()
    if scene1 is None:
        return "phase_a"

    scene1_image = snapshot.complete_asset(scene1.id, "image")
    scene1_video = snapshot.complete_asset(scene1.id, "video")
    all_images_complete = not snapshot.incomplete_scenes("image")
    all_videos_complete = not snapshot.incomplete_scenes("video")

    if scene1_image is None or shot_list.first_image_confirmed_at is None:
        return "phase_a"
    if not all_images_complete or shot_list.all_images_confirmed_at is None:
        return "phase_b"
    if scene1_video is None or shot_list.first_video_confirmed_at is None:
        return "phase_c"
    if not all_videos_complete or snapshot.project_current_step < COMPLETION_STEP:
        return "phase_d"
    return "complete"


async def load_workflow(
    session: AsyncSession, project_id: uuid.UUID
) -> tuple[Project, ShotList, list[Scene]]:
    """Load the project, its shot list and ordered scenes.

    Raises:
        NotFoundError: If the project or its shot list does not exist,
            or the shot list has no scenes.
    """
    project = await session.get(Project, project_id)
    if project is None:
        raise NotFoundError(f"Project {project_id} not found")

    result = await session.execute(
        select(ShotList).where(ShotList.project_id == project_id)
    )
    shot_list = result.scalar_one_or_none()
    if shot_list is None:
        raise NotFoundError(f"Shot list for project {project_id} not found")

    result = await session.execute(
        select(Scene)
        .where(Scene.shot_list_id == shot_list.id)
        .order_by(Scene.order_index)
    )
    scenes = list(result.scalars().all())
    if not scenes:
        raise NotFoundError(f"No scenes found for project {project_id}")

    return project, shot_list, scenes


async def load_assets(session: AsyncSession, scenes: list[Scene]) -> list[Asset]:
    """Load every asset attached to the given scenes."""
    if not scenes:
        return []
    result = await session.execute(
        select(Asset).where(Asset.scene_id.in_([s.id for s in scenes]))
    )
    return list(result.scalars().all())


async def load_snapshot(session: AsyncSession, project_id: uuid.UUID) -> WorkflowSnapshot:
    """Read a WorkflowSnapshot for a project.

    A project without a shot list or scenes yields a snapshot that resolves
    to phase_a rather than an error.

    Raises:
        NotFoundError: If the project does not exist.
    """
    project = await session.get(Project, project_id)
    if project is None:
        raise NotFoundError(f"Project {project_id} not found")

    result = await session.execute(
        select(ShotList).where(ShotList.project_id == project_id)
    )
    shot_list = result.scalar_one_or_none()
    if shot_list is None:
        return WorkflowSnapshot(project_current_step=project.current_step or 0)

    result = await session.execute(
        select(Scene)
        .where(Scene.shot_list_id == shot_list.id)
        .order_by(Scene.order_index)
    )
    scenes = list(result.scalars().all())
    assets = await load_assets(session, scenes)
    return build_snapshot(shot_list, scenes, assets, project.current_step or 0)


def build_snapshot(
    shot_list: Optional[ShotList],
    scenes: list[Scene],
    assets: list[Asset],
    project_current_step: int,
) -> WorkflowSnapshot:
    """Freeze ORM rows into a WorkflowSnapshot."""
    shot_list_view = None
    if shot_list is not None:
        shot_list_view = ShotListView(
            id=shot_list.id,
            video_style=shot_list.video_style,
            first_image_confirmed_at=shot_list.first_image_confirmed_at,
            all_images_confirmed_at=shot_list.all_images_confirmed_at,
            first_video_confirmed_at=shot_list.first_video_confirmed_at,
        )
    return WorkflowSnapshot(
        scenes=tuple(
            SceneView(id=s.id, order_index=s.order_index, status=s.status)
            for s in scenes
        ),
        assets=tuple(
            AssetView(
                scene_id=a.scene_id,
                type=a.type,
                status=a.status,
                storage_path=a.storage_path,
            )
            for a in assets
        ),
        shot_list=shot_list_view,
        project_current_step=project_current_step,
    )
