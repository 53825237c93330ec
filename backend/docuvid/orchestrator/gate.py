"""Phase gates: validate completion predicates and commit confirmations.

Each gate checks its preconditions against a fresh WorkflowSnapshot and
raises before writing anything when they do not hold. Confirmation
timestamps are acquired strictly in order, so a gate also refuses to run
while the previous gate is still open.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from docuvid.errors import PhaseInvariantError, ValidationError
from docuvid.orchestrator.state import (
    COMPLETION_STEP,
    build_snapshot,
    load_assets,
    load_workflow,
)

logger = logging.getLogger(__name__)

# Gate -> (confirmation timestamp it sets, timestamp that must already be set)
GATES = {
    "first_image": ("first_image_confirmed_at", None),
    "all_images": ("all_images_confirmed_at", "first_image_confirmed_at"),
    "first_video": ("first_video_confirmed_at", "all_images_confirmed_at"),
    "all_videos": (None, "first_video_confirmed_at"),
}

# Phase the wizard moves to once a gate passes
NEXT_PHASE = {
    "first_image": "remaining_images",
    "all_images": "first_video",
    "first_video": "remaining_videos",
}


@dataclass
class ConfirmResult:
    success: bool
    message: str
    next_phase: Optional[str] = None
    next_step: Optional[int] = None


async def confirm(
    session: AsyncSession,
    project_id: uuid.UUID,
    phase: str,
    video_style: Optional[str] = None,
) -> ConfirmResult:
    """Confirm a phase gate.

    Args:
        session: Async database session
        project_id: Project whose shot list is confirmed
        phase: One of first_image, all_images, first_video, all_videos
        video_style: Style to lock in; required for first_video

    Returns:
        ConfirmResult naming the next phase, or the next wizard step for
        all_videos

    Raises:
        ValidationError: Unknown phase, or missing video_style for first_video
        NotFoundError: Project, shot list or scenes missing
        PhaseInvariantError: The gate's completion predicate does not hold
    """
    if phase not in GATES:
        raise ValidationError(
            f"Unknown confirmation phase '{phase}'. Expected one of {list(GATES)}"
        )
    if phase == "first_video" and (not video_style or not video_style.strip()):
        raise ValidationError("video_style is required")

    project, shot_list, scenes = await load_workflow(session, project_id)
    assets = await load_assets(session, scenes)
    snapshot = build_snapshot(shot_list, scenes, assets, project.current_step or 0)

    stamp_field, required_field = GATES[phase]
    if required_field is not None and getattr(shot_list, required_field) is None:
        previous = required_field.removesuffix("_confirmed_at")
        raise PhaseInvariantError(f"The {previous} gate must be confirmed first")

    scene1 = snapshot.first_scene()

    if phase == "first_image":
        if scene1 is None or snapshot.complete_asset(scene1.id, "image") is None:
            raise PhaseInvariantError("First image is not complete", incomplete=[1])

    elif phase == "all_images":
        incomplete = snapshot.incomplete_scenes("image")
        if incomplete:
            raise PhaseInvariantError("Not all images are complete", incomplete=incomplete)

    elif phase == "first_video":
        if scene1 is None or snapshot.complete_asset(scene1.id, "video") is None:
            raise PhaseInvariantError("First video is not complete", incomplete=[1])

    elif phase == "all_videos":
        incomplete = snapshot.incomplete_scenes("video")
        if incomplete:
            raise PhaseInvariantError("Not all videos are complete", incomplete=incomplete)

    now = datetime.now(timezone.utc)

    if phase == "all_videos":
        # Explicit hand-off out of the visuals workflow
        project.current_step = max(project.current_step or 0, COMPLETION_STEP)
        await session.commit()
        logger.info(f"Project {project.id}: all videos confirmed, advanced to step {COMPLETION_STEP}")
        return ConfirmResult(
            success=True,
            message="All videos confirmed",
            next_step=COMPLETION_STEP,
        )

    setattr(shot_list, stamp_field, now)
    if phase == "first_video":
        shot_list.video_style = video_style.strip()
    await session.commit()

    logger.info(f"Project {project.id}: {phase} confirmed")
    return ConfirmResult(
        success=True,
        message=f"{phase.replace('_', ' ').capitalize()} confirmed",
        next_phase=NEXT_PHASE[phase],
    )
