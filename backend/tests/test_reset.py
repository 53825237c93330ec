"""Cascading reset tests."""

import pytest
from sqlalchemy import func, select

from docuvid.db.models import Asset, Scene, ShotList
from docuvid.errors import ValidationError
from docuvid.orchestrator import gate
from docuvid.orchestrator.reset import (
    RESET_PLANS,
    reset,
    reset_to_first_image,
    reset_to_first_video,
)
from docuvid.orchestrator.state import load_snapshot, resolve_phase
from docuvid.pipeline.images import generate_first_image, generate_remaining_images
from docuvid.pipeline.videos import generate_first_video, generate_remaining_videos

from conftest import seed_project


async def run_everything(session, ctx, project):
    await generate_first_image(session, ctx, project.id)
    await gate.confirm(session, project.id, "first_image")
    await generate_remaining_images(session, ctx, project.id)
    await gate.confirm(session, project.id, "all_images")
    await generate_first_video(session, ctx, project.id, "Archival")
    await gate.confirm(session, project.id, "first_video", video_style="Archival")
    await generate_remaining_videos(session, ctx, project.id)


async def count_assets(session, asset_type, min_order=1):
    result = await session.execute(
        select(func.count())
        .select_from(Asset)
        .join(Scene, Scene.id == Asset.scene_id)
        .where(Asset.type == asset_type)
        .where(Scene.order_index >= min_order)
    )
    return result.scalar_one()


async def fresh_shot_list(session, shot_list_id):
    result = await session.execute(
        select(ShotList).where(ShotList.id == shot_list_id).execution_options(populate_existing=True)
    )
    return result.scalar_one()


def test_reset_plans_cover_both_anchors():
    assert set(RESET_PLANS) == {"first_image", "first_video"}
    assert RESET_PLANS["first_image"].target_phase == "phase_a"
    assert RESET_PLANS["first_video"].target_phase == "phase_c"


@pytest.mark.asyncio
async def test_reset_to_first_image(session, ctx):
    project, shot_list, scenes = await seed_project(session, scene_count=3)
    await run_everything(session, ctx, project)
    assert await count_assets(session, "video") == 3

    result = await reset_to_first_image(session, project.id)

    assert result.success
    assert result.target_phase == "phase_a"
    assert result.cleared_scenes == 2
    assert await count_assets(session, "video") == 0
    assert await count_assets(session, "image", min_order=2) == 0
    assert await count_assets(session, "image") == 1

    stored = await fresh_shot_list(session, shot_list.id)
    assert stored.first_image_confirmed_at is None
    assert stored.all_images_confirmed_at is None
    assert stored.first_video_confirmed_at is None
    assert stored.video_style is None

    statuses = (await session.execute(
        select(Scene.order_index, Scene.status).order_by(Scene.order_index)
    )).all()
    assert [status for _, status in statuses[1:]] == ["pending", "pending"]
    assert await resolve_phase_of(session, project) == "phase_a"


@pytest.mark.asyncio
async def test_reset_to_first_video(session, ctx):
    project, shot_list, scenes = await seed_project(session, scene_count=3)
    await run_everything(session, ctx, project)

    result = await reset_to_first_video(session, project.id)

    assert result.target_phase == "phase_c"
    assert result.cleared_scenes == 3
    assert await count_assets(session, "video") == 0
    assert await count_assets(session, "image") == 3

    stored = await fresh_shot_list(session, shot_list.id)
    assert stored.first_video_confirmed_at is None
    assert stored.video_style is None
    assert stored.first_image_confirmed_at is not None
    assert stored.all_images_confirmed_at is not None

    statuses = (await session.execute(select(Scene.status))).scalars().all()
    assert set(statuses) == {"image_complete"}
    assert await resolve_phase_of(session, project) == "phase_c"


@pytest.mark.asyncio
async def test_reset_is_idempotent(session, ctx):
    project, _, _ = await seed_project(session)
    await run_everything(session, ctx, project)

    await reset(session, project.id, "first_video")
    again = await reset(session, project.id, "first_video")

    assert again.success
    assert await count_assets(session, "video") == 0


@pytest.mark.asyncio
async def test_unknown_reset_target(session):
    project, _, _ = await seed_project(session)
    with pytest.raises(ValidationError):
        await reset(session, project.id, "phase_b")


async def resolve_phase_of(session, project):
    return resolve_phase(await load_snapshot(session, project.id))
