"""Shared fixtures: in-memory database, fake generation backends and store."""

from typing import Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession

from docuvid.db import build_engine, build_session_factory, init_database
from docuvid.db.models import Asset, Project, Scene, ShotList
from docuvid.errors import StorageError
from docuvid.orchestrator.retry import RetryPolicy
from docuvid.pipeline.assets import GenerationContext
from docuvid.services.image_backend import ImageResult
from docuvid.services.video_backend import VideoResult


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def session():
    engine = build_engine("sqlite+aiosqlite://")
    await init_database(engine)

    factory = build_session_factory(engine)
    async with factory() as s:
        yield s

    await engine.dispose()


async def seed_project(
    session: AsyncSession,
    scene_count: int = 3,
    duration_seconds: Optional[int] = 5,
) -> tuple[Project, ShotList, list[Scene]]:
    """Create a project with a shot list of numbered scenes."""
    project = Project(title="The Lighthouse Keepers", current_step=4)
    session.add(project)
    await session.flush()

    shot_list = ShotList(project_id=project.id)
    session.add(shot_list)
    await session.flush()

    scenes = []
    for i in range(1, scene_count + 1):
        scene = Scene(
            shot_list_id=shot_list.id,
            order_index=i,
            image_prompt=f"prompt {i}",
            motion_type="slow pan",
            duration_seconds=duration_seconds,
        )
        session.add(scene)
        scenes.append(scene)
    await session.commit()
    return project, shot_list, scenes


async def add_asset(
    session: AsyncSession,
    scene: Scene,
    asset_type: str,
    storage_path: Optional[str] = None,
    status: str = "complete",
) -> Asset:
    asset = Asset(
        scene_id=scene.id,
        type=asset_type,
        status=status,
        storage_path=storage_path or f"mem://{scene.id}/{asset_type}",
    )
    session.add(asset)
    await session.commit()
    return asset


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class FakeImageBackend:
    """Returns deterministic bytes per prompt.

    Prompts listed in fail_prompts get a structured failure; prompts in
    raise_prompts raise ConnectionError (transient) every time.
    """

    model_id = "fake-image"

    def __init__(self, fail_prompts=(), raise_prompts=(), raise_first: int = 0):
        self.fail_prompts = set(fail_prompts)
        self.raise_prompts = set(raise_prompts)
        self.raise_first = raise_first
        self.calls: list[tuple[str, Optional[bytes]]] = []

    async def generate(self, prompt: str, reference_image: Optional[bytes] = None) -> ImageResult:
        self.calls.append((prompt, reference_image))
        if len(self.calls) <= self.raise_first or prompt in self.raise_prompts:
            raise ConnectionError("connection reset")
        if prompt in self.fail_prompts:
            return ImageResult(success=False, error=f"Content policy rejected '{prompt}'")
        return ImageResult(success=True, image_bytes=f"image:{prompt}".encode())


class FakeVideoBackend:
    model_id = "fake-video"

    def __init__(self, fail_substrings=()):
        self.fail_substrings = tuple(fail_substrings)
        self.calls: list[tuple[str, bytes, int]] = []

    async def generate(self, prompt: str, seed_image: bytes, duration_seconds: int) -> VideoResult:
        self.calls.append((prompt, seed_image, duration_seconds))
        if any(s in prompt for s in self.fail_substrings):
            return VideoResult(success=False, error="Video generation timed out after 600 seconds")
        return VideoResult(success=True, video_bytes=b"video:" + seed_image)


class FakeObjectStore:
    def __init__(self, fail_uploads=()):
        self.objects: dict[str, bytes] = {}
        self.fail_uploads = set(fail_uploads)

    async def upload(self, path: str, data: bytes, content_type: str) -> str:
        if path in self.fail_uploads:
            raise StorageError(f"Upload of {path} failed")
        url = f"mem://{path}"
        self.objects[url] = data
        return url

    async def fetch(self, url: str) -> bytes:
        if url not in self.objects:
            raise StorageError(f"Object not readable: {url}")
        return self.objects[url]


class RecordingSleep:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def image_backend():
    return FakeImageBackend()


@pytest.fixture
def video_backend():
    return FakeVideoBackend()


@pytest.fixture
def store():
    return FakeObjectStore()


@pytest.fixture
def ctx(image_backend, video_backend, store, sleep):
    return GenerationContext(
        image_backend=image_backend,
        video_backend=video_backend,
        store=store,
        retry=RetryPolicy(max_attempts=3, base_delay=2.0, sleep=sleep),
    )
