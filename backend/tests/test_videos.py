"""Phase C/D video generation: style locking and per-scene seeding."""

import pytest
from sqlalchemy import select

from docuvid.db.models import Asset
from docuvid.errors import PhaseInvariantError, ValidationError
from docuvid.orchestrator import gate
from docuvid.orchestrator.pipeline import GenerationOrchestrator
from docuvid.pipeline.assets import compose_video_prompt
from docuvid.pipeline.images import generate_first_image, generate_remaining_images
from docuvid.pipeline.videos import generate_first_video, generate_remaining_videos

from conftest import seed_project


async def reach_phase_c(session, ctx, project):
    await generate_first_image(session, ctx, project.id)
    await gate.confirm(session, project.id, "first_image")
    await generate_remaining_images(session, ctx, project.id)
    await gate.confirm(session, project.id, "all_images")


async def reach_phase_d(session, ctx, project, style="Grainy archival 16mm"):
    await reach_phase_c(session, ctx, project)
    await generate_first_video(session, ctx, project.id, style)
    await gate.confirm(session, project.id, "first_video", video_style=style)


def test_compose_video_prompt_joins_with_a_space():
    assert compose_video_prompt("  Archival 16mm ", " slow pan: a cliff ") == "Archival 16mm slow pan: a cliff"


# ---------------------------------------------------------------------------
# Phase C
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_first_video_requires_style(session, ctx):
    project, _, _ = await seed_project(session)
    await reach_phase_c(session, ctx, project)

    with pytest.raises(ValidationError):
        await generate_first_video(session, ctx, project.id, "   ")


@pytest.mark.asyncio
async def test_first_video_requires_scene_one_image(session, ctx, video_backend):
    project, _, _ = await seed_project(session)

    with pytest.raises(PhaseInvariantError) as exc_info:
        await generate_first_video(session, ctx, project.id, "Archival")

    assert exc_info.value.incomplete == [1]
    assert video_backend.calls == []


@pytest.mark.asyncio
async def test_first_video_prompt_seed_and_duration(session, ctx, video_backend):
    project, _, scenes = await seed_project(session, duration_seconds=12)
    await reach_phase_c(session, ctx, project)

    results = await generate_first_video(session, ctx, project.id, "Grainy archival 16mm")

    assert results[0].success
    assert results[0].urls["video"] == f"mem://{project.id}/video/scene_01.mp4"
    prompt, seed, duration = video_backend.calls[0]
    assert prompt == "Grainy archival 16mm slow pan camera movement: prompt 1"
    assert seed == b"image:prompt 1"
    # Clamped to the backend's clip ceiling
    assert duration == 8
    assert scenes[0].status == "complete"

    result = await session.execute(select(Asset).where(Asset.type == "video"))
    asset = result.scalar_one()
    assert asset.generation_metadata["duration_seconds"] == 8
    assert asset.generation_metadata["motion_type"] == "slow pan"
    assert asset.generation_metadata["phase"] == "first_video"


@pytest.mark.asyncio
async def test_explicit_video_prompt_is_used_verbatim(session, ctx, video_backend):
    project, _, scenes = await seed_project(session)
    scenes[0].video_prompt = "Waves crash below the tower"
    await session.commit()
    await reach_phase_c(session, ctx, project)

    await generate_first_video(session, ctx, project.id, "Archival")

    assert video_backend.calls[0][0] == "Archival Waves crash below the tower"


# ---------------------------------------------------------------------------
# Phase D
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_remaining_videos_require_confirmed_style(session, ctx, video_backend):
    project, _, _ = await seed_project(session)
    await reach_phase_c(session, ctx, project)
    await generate_first_video(session, ctx, project.id, "Archival")
    video_backend.calls.clear()

    with pytest.raises(PhaseInvariantError, match="Video style"):
        await generate_remaining_videos(session, ctx, project.id)

    assert video_backend.calls == []


@pytest.mark.asyncio
async def test_rejected_video_regeneration_leaves_prompt_untouched(session, ctx):
    project, _, scenes = await seed_project(session)
    await reach_phase_c(session, ctx, project)

    with pytest.raises(PhaseInvariantError):
        await generate_remaining_videos(
            session, ctx, project.id, scene_id=scenes[2].id, prompt="slow dolly in"
        )
    await session.commit()
    await session.refresh(scenes[2])

    assert scenes[2].video_prompt is None


@pytest.mark.asyncio
async def test_remaining_videos_use_locked_style_and_own_seed(session, ctx, video_backend):
    project, shot_list, scenes = await seed_project(session)
    await reach_phase_d(session, ctx, project, style="Grainy archival 16mm")
    video_backend.calls.clear()

    # A caller-supplied style is ignored outside phase C
    results = await GenerationOrchestrator(ctx).generate(
        session, project.id, "remaining_videos", video_style="Neon cyberpunk"
    )

    assert [r.order_index for r in results] == [2, 3]
    assert all(r.success for r in results)
    for (prompt, seed, _), index in zip(video_backend.calls, (2, 3)):
        assert prompt.startswith("Grainy archival 16mm ")
        assert "Neon" not in prompt
        assert seed == f"image:prompt {index}".encode()
    assert shot_list.video_style == "Grainy archival 16mm"
    assert [s.status for s in scenes] == ["complete"] * 3


@pytest.mark.asyncio
async def test_structured_video_failure_continues_batch(session, ctx, video_backend, sleep):
    project, _, scenes = await seed_project(session, scene_count=4)
    scenes[1].video_prompt = "doomed clip"
    await session.commit()
    await reach_phase_d(session, ctx, project)
    video_backend.fail_substrings = ("doomed",)
    video_backend.calls.clear()
    sleep.delays.clear()

    results = await generate_remaining_videos(session, ctx, project.id)

    assert [(r.order_index, r.success) for r in results] == [(2, False), (3, True), (4, True)]
    assert "timed out" in results[0].error
    # Structured failures are definitive and never retried
    assert len(video_backend.calls) == 3
    assert sleep.delays == []
    assert scenes[1].status == "failed"


@pytest.mark.asyncio
async def test_scene_without_image_fails_individually(session, ctx, store):
    project, _, scenes = await seed_project(session)
    await reach_phase_d(session, ctx, project)
    result = await session.execute(
        select(Asset).where(Asset.scene_id == scenes[2].id, Asset.type == "image")
    )
    await session.delete(result.scalar_one())
    await session.commit()

    results = await generate_remaining_videos(session, ctx, project.id)

    assert [(r.order_index, r.success) for r in results] == [(2, True), (3, False)]
    assert "no complete image" in results[1].error
