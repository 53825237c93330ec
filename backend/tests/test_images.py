"""Phase A/B image generation against fake backends and an in-memory database."""

import uuid

import pytest
from sqlalchemy import select

from docuvid.db.models import Asset, Scene
from docuvid.errors import NotFoundError, PhaseInvariantError, StorageError, ValidationError
from docuvid.orchestrator import gate
from docuvid.pipeline.images import generate_first_image, generate_remaining_images

from conftest import FakeImageBackend, FakeObjectStore, seed_project


async def confirm_first_image(session, ctx, project):
    results = await generate_first_image(session, ctx, project.id)
    assert results[0].success
    await gate.confirm(session, project.id, "first_image")


async def image_assets(session):
    result = await session.execute(select(Asset).where(Asset.type == "image"))
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Phase A
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_first_image_generated_without_reference(session, ctx, image_backend, store):
    project, _, scenes = await seed_project(session)

    results = await generate_first_image(session, ctx, project.id)

    assert len(results) == 1
    result = results[0]
    assert result.success
    assert result.order_index == 1
    assert result.urls["image"] == f"mem://{project.id}/images/scene_01.png"
    assert image_backend.calls == [("prompt 1", None)]
    assert store.objects[result.urls["image"]] == b"image:prompt 1"

    assert scenes[0].status == "image_complete"
    assets = await image_assets(session)
    assert len(assets) == 1
    assert assets[0].status == "complete"
    assert assets[0].generation_metadata == {
        "prompt": "prompt 1",
        "model": "fake-image",
        "phase": "first_image",
    }


@pytest.mark.asyncio
async def test_first_image_failure_is_returned_not_raised(session, ctx, image_backend):
    image_backend.fail_prompts.add("prompt 1")
    project, _, scenes = await seed_project(session)

    results = await generate_first_image(session, ctx, project.id)

    assert len(results) == 1
    assert results[0].success is False
    assert "Content policy" in results[0].error
    assert scenes[0].status == "failed"
    assert await image_assets(session) == []


@pytest.mark.asyncio
async def test_first_image_prompt_override_is_persisted(session, ctx, image_backend):
    project, _, scenes = await seed_project(session)

    await generate_first_image(session, ctx, project.id, prompt="A keeper climbing the stairs")

    assert image_backend.calls[0][0] == "A keeper climbing the stairs"
    assert scenes[0].image_prompt == "A keeper climbing the stairs"


@pytest.mark.asyncio
async def test_missing_image_prompt_falls_back(session, ctx, image_backend):
    project, _, scenes = await seed_project(session)
    scenes[0].image_prompt = None
    await session.commit()

    await generate_first_image(session, ctx, project.id)

    assert image_backend.calls[0][0] == "Documentary scene 1"


@pytest.mark.asyncio
async def test_transient_error_is_retried(session, ctx, image_backend, sleep):
    image_backend.raise_first = 2
    project, _, _ = await seed_project(session)

    results = await generate_first_image(session, ctx, project.id)

    assert results[0].success
    assert len(image_backend.calls) == 3
    assert sleep.delays == [2.0, 4.0]


@pytest.mark.asyncio
async def test_first_image_unknown_project(session, ctx):
    with pytest.raises(NotFoundError):
        await generate_first_image(session, ctx, uuid.uuid4())


# ---------------------------------------------------------------------------
# Phase B
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_remaining_images_require_confirmed_first_image(session, ctx, image_backend):
    project, _, _ = await seed_project(session)
    await generate_first_image(session, ctx, project.id)

    with pytest.raises(PhaseInvariantError):
        await generate_remaining_images(session, ctx, project.id)

    assert len(image_backend.calls) == 1


@pytest.mark.asyncio
async def test_remaining_images_issue_n_minus_one_calls(session, ctx, image_backend):
    project, _, scenes = await seed_project(session, scene_count=4)
    await confirm_first_image(session, ctx, project)
    image_backend.calls.clear()

    results = await generate_remaining_images(session, ctx, project.id)

    assert [r.order_index for r in results] == [2, 3, 4]
    assert all(r.success for r in results)
    assert len(image_backend.calls) == 3
    # Every call is conditioned on Scene 1's bytes
    assert {ref for _, ref in image_backend.calls} == {b"image:prompt 1"}
    assert [s.status for s in scenes] == ["image_complete"] * 4


@pytest.mark.asyncio
async def test_single_scene_regeneration_issues_one_call(session, ctx, image_backend):
    project, _, scenes = await seed_project(session, scene_count=4)
    await confirm_first_image(session, ctx, project)
    image_backend.calls.clear()

    results = await generate_remaining_images(
        session, ctx, project.id, scene_id=scenes[2].id, prompt="The lamp room at night"
    )

    assert len(results) == 1
    assert results[0].order_index == 3
    assert image_backend.calls == [("The lamp room at night", b"image:prompt 1")]
    assert scenes[2].image_prompt == "The lamp room at night"


@pytest.mark.asyncio
async def test_regenerating_overwrites_the_single_asset_row(session, ctx):
    project, _, scenes = await seed_project(session)
    await confirm_first_image(session, ctx, project)
    await generate_remaining_images(session, ctx, project.id)
    await generate_remaining_images(session, ctx, project.id, scene_id=scenes[1].id, prompt="new")

    result = await session.execute(
        select(Asset).where(Asset.scene_id == scenes[1].id, Asset.type == "image")
    )
    rows = list(result.scalars().all())
    assert len(rows) == 1
    assert rows[0].generation_metadata["prompt"] == "new"


@pytest.mark.asyncio
async def test_failed_scene_does_not_stop_the_batch(session, ctx, image_backend):
    project, _, scenes = await seed_project(session, scene_count=4)
    await confirm_first_image(session, ctx, project)
    image_backend.fail_prompts.add("prompt 2")
    image_backend.raise_prompts.add("prompt 3")

    results = await generate_remaining_images(session, ctx, project.id)

    assert [(r.order_index, r.success) for r in results] == [(2, False), (3, False), (4, True)]
    assert "Content policy" in results[0].error
    assert "connection reset" in results[1].error
    assert [s.status for s in scenes] == ["image_complete", "failed", "failed", "image_complete"]

    # No asset rows are written for failed scenes
    rows = await image_assets(session)
    assert sorted(a.scene_id for a in rows) == sorted([scenes[0].id, scenes[3].id])


@pytest.mark.asyncio
async def test_upload_failure_is_a_scene_failure(session, image_backend, video_backend, sleep):
    from docuvid.orchestrator.retry import RetryPolicy
    from docuvid.pipeline.assets import GenerationContext

    project, _, scenes = await seed_project(session)
    store = FakeObjectStore(fail_uploads={f"{project.id}/images/scene_02.png"})
    ctx = GenerationContext(image_backend, video_backend, store, RetryPolicy(3, 0, sleep))
    await confirm_first_image(session, ctx, project)

    results = await generate_remaining_images(session, ctx, project.id)

    assert [(r.order_index, r.success) for r in results] == [(2, False), (3, True)]
    assert "Upload" in results[0].error
    assert scenes[1].status == "failed"


@pytest.mark.asyncio
async def test_missing_reference_aborts_before_any_scene(session, ctx, image_backend, store, sleep):
    project, _, scenes = await seed_project(session)
    await confirm_first_image(session, ctx, project)
    store.objects.clear()
    image_backend.calls.clear()

    with pytest.raises(StorageError, match="First image missing"):
        await generate_remaining_images(session, ctx, project.id)

    assert image_backend.calls == []
    assert [s.status for s in scenes] == ["image_complete", "pending", "pending"]
    # A missing object is definitive and fails without backoff
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_rejected_regeneration_leaves_prompt_untouched(session, ctx):
    project, _, scenes = await seed_project(session)

    with pytest.raises(PhaseInvariantError):
        await generate_remaining_images(
            session, ctx, project.id, scene_id=scenes[1].id, prompt="a stormy coastline"
        )
    await session.commit()
    await session.refresh(scenes[1])

    assert scenes[1].image_prompt == "prompt 2"


@pytest.mark.asyncio
async def test_scene_one_cannot_be_targeted_in_phase_b(session, ctx):
    project, _, scenes = await seed_project(session)
    await confirm_first_image(session, ctx, project)

    with pytest.raises(ValidationError):
        await generate_remaining_images(session, ctx, project.id, scene_id=scenes[0].id)


@pytest.mark.asyncio
async def test_unknown_scene_is_not_found(session, ctx):
    project, _, _ = await seed_project(session)
    await confirm_first_image(session, ctx, project)

    with pytest.raises(NotFoundError):
        await generate_remaining_images(session, ctx, project.id, scene_id=uuid.uuid4())


@pytest.mark.asyncio
async def test_scenes_are_processed_in_order(session, ctx):
    project, _, _ = await seed_project(session, scene_count=5)
    await confirm_first_image(session, ctx, project)

    seen = []
    original = ctx.image_backend.generate

    async def tracking(prompt, reference_image=None):
        statuses = (await session.execute(select(Scene.order_index, Scene.status))).all()
        generating = [i for i, status in statuses if status == "generating"]
        seen.append((prompt, generating))
        return await original(prompt, reference_image)

    ctx.image_backend.generate = tracking
    await generate_remaining_images(session, ctx, project.id)

    # One scene is in flight at a time, in order_index order
    assert seen == [(f"prompt {i}", [i]) for i in range(2, 6)]
