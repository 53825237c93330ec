"""Cascading rollback of phase commitments.

What each reset destroys is declared in RESET_PLANS rather than spread over
branches, so "what gets purged when I reset to X" can be read (and tested)
in one place. Scene scopes are "after_first" (order_index > 1) or "all".
"""

import logging
import uuid
from dataclasses import dataclass

from sqlalchemy import delete, update
from sqlalchemy.ext.asyncio import AsyncSession

from docuvid.db.models import Asset, Scene
from docuvid.errors import ValidationError
from docuvid.orchestrator.state import load_workflow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResetPlan:
    target_phase: str
    # (asset type, scene scope) pairs to delete
    purge_assets: tuple[tuple[str, str], ...]
    # (new status, scene scope)
    scene_status: tuple[str, str]
    # ShotList columns set back to NULL
    clear_fields: tuple[str, ...]


RESET_PLANS = {
    "first_image": ResetPlan(
        target_phase="phase_a",
        purge_assets=(("image", "after_first"), ("video", "all")),
        scene_status=("pending", "after_first"),
        clear_fields=(
            "first_image_confirmed_at",
            "all_images_confirmed_at",
            "first_video_confirmed_at",
            "video_style",
        ),
    ),
    "first_video": ResetPlan(
        target_phase="phase_c",
        purge_assets=(("video", "all"),),
        scene_status=("image_complete", "all"),
        clear_fields=("first_video_confirmed_at", "video_style"),
    ),
}


@dataclass
class ResetResult:
    success: bool
    message: str
    target_phase: str
    cleared_scenes: int


def _scope(scenes: list[Scene], scope: str) -> list[uuid.UUID]:
    if scope == "after_first":
        return [s.id for s in scenes if s.order_index > 1]
    return [s.id for s in scenes]


async def reset(session: AsyncSession, project_id: uuid.UUID, reset_to: str) -> ResetResult:
    """Undo every commitment downstream of the given anchor.

    All deletes and updates are flushed in one transaction and committed
    together.

    Args:
        session: Async database session
        project_id: Project whose shot list is reset
        reset_to: "first_image" or "first_video"

    Raises:
        ValidationError: Unknown reset_to value
        NotFoundError: Project, shot list or scenes missing
    """
    plan = RESET_PLANS.get(reset_to)
    if plan is None:
        raise ValidationError(
            f"Invalid reset_to value '{reset_to}'. Expected one of {list(RESET_PLANS)}"
        )

    project, shot_list, scenes = await load_workflow(session, project_id)

    for asset_type, scope in plan.purge_assets:
        scene_ids = _scope(scenes, scope)
        if scene_ids:
            await session.execute(
                delete(Asset)
                .where(Asset.scene_id.in_(scene_ids))
                .where(Asset.type == asset_type)
            )

    status, scope = plan.scene_status
    status_ids = _scope(scenes, scope)
    if status_ids:
        await session.execute(
            update(Scene).where(Scene.id.in_(status_ids)).values(status=status)
        )

    for field_name in plan.clear_fields:
        setattr(shot_list, field_name, None)

    await session.commit()

    logger.info(
        f"Project {project.id}: reset to {reset_to} "
        f"({len(status_ids)} scene(s) reset to {status})"
    )
    return ResetResult(
        success=True,
        message=f"Reset to {plan.target_phase}",
        target_phase=plan.target_phase,
        cleared_scenes=len(status_ids),
    )


async def reset_to_first_image(session: AsyncSession, project_id: uuid.UUID) -> ResetResult:
    return await reset(session, project_id, "first_image")


async def reset_to_first_video(session: AsyncSession, project_id: uuid.UUID) -> ResetResult:
    return await reset(session, project_id, "first_video")
