"""Image-to-video generation backend using Veo on Vertex AI.

Veo jobs are long-running operations: submit() starts one, poll() checks it,
and generate() drives a bounded poll loop with a fixed interval. When the
loop runs out of attempts the call is a timeout failure, returned as a
structured result rather than raised, so it is never retried.

Submission errors follow the same split as the image backend: transient
transport errors are raised for the caller's RetryPolicy, definitive
rejections come back as ``VideoResult(success=False, error=...)``.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Protocol

import httpx
from google.genai import types

from docuvid.config import settings
from docuvid.services.vertex_client import (
    get_vertex_client,
    is_transient_error,
    location_for_model,
)

logger = logging.getLogger(__name__)


@dataclass
class PollResult:
    done: bool
    video_bytes: Optional[bytes] = None
    video_uri: Optional[str] = None
    error: Optional[str] = None


@dataclass
class VideoResult:
    success: bool
    video_bytes: Optional[bytes] = None
    video_uri: Optional[str] = None
    error: Optional[str] = None


class VideoBackend(Protocol):
    model_id: str

    async def generate(
        self, prompt: str, seed_image: bytes, duration_seconds: int
    ) -> VideoResult:
        ...


async def download_video(uri: str) -> bytes:
    """Download video bytes from a gs:// or http(s) URI."""
    if uri.startswith("gs://"):
        http_url = uri.replace("gs://", "https://storage.googleapis.com/", 1)
    else:
        http_url = uri

    async with httpx.AsyncClient(follow_redirects=True) as client:
        response = await client.get(http_url)
        response.raise_for_status()
        return response.content


class VeoVideoBackend:
    """Generate a clip seeded by a still image, polling until done."""

    def __init__(
        self,
        model_id: Optional[str] = None,
        client=None,
        poll_interval: Optional[float] = None,
        max_polls: Optional[int] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.model_id = model_id or settings.models.video_gen
        self.poll_interval = (
            settings.pipeline.video_poll_interval if poll_interval is None else poll_interval
        )
        self.max_polls = max_polls or settings.pipeline.video_poll_max
        self._client = client
        self._sleep = sleep

    def _get_client(self):
        if self._client is None:
            self._client = get_vertex_client(location=location_for_model(self.model_id))
        return self._client

    async def submit(self, prompt: str, seed_image: bytes, duration_seconds: int):
        """Start a Veo job and return its operation handle."""
        config = types.GenerateVideosConfig(
            number_of_videos=1,
            duration_seconds=min(duration_seconds, settings.pipeline.max_clip_duration),
            aspect_ratio=settings.pipeline.aspect_ratio,
        )
        # Veo 2 has no audio track
        if self.model_id != "veo-2.0-generate-001":
            config.generate_audio = settings.pipeline.generate_audio

        return await self._get_client().aio.models.generate_videos(
            model=self.model_id,
            prompt=prompt,
            image=types.Image(image_bytes=seed_image, mime_type="image/png"),
            config=config,
        )

    async def poll(self, operation) -> tuple[object, PollResult]:
        """Refresh an operation and interpret its state.

        Returns:
            (refreshed_operation, PollResult)
        """
        operation = await self._get_client().aio.operations.get(operation)
        if not operation.done:
            return operation, PollResult(done=False)

        if operation.error:
            return operation, PollResult(
                done=True, error=f"Video generation failed: {operation.error}"
            )

        response = operation.response
        generated = list(getattr(response, "generated_videos", None) or [])
        if not generated:
            filtered = getattr(response, "rai_media_filtered_count", None)
            if filtered:
                reasons = getattr(response, "rai_media_filtered_reasons", None) or []
                return operation, PollResult(
                    done=True,
                    error=(
                        "Video filtered by content policy: "
                        f"{', '.join(reasons) or 'unknown reason'}"
                    ),
                )
            return operation, PollResult(done=True, error="No videos generated")

        video = generated[0].video
        if video is None:
            return operation, PollResult(done=True, error="No video object in response")

        return operation, PollResult(
            done=True,
            video_bytes=video.video_bytes,
            video_uri=video.uri,
        )

    async def generate(
        self, prompt: str, seed_image: bytes, duration_seconds: int
    ) -> VideoResult:
        try:
            operation = await self.submit(prompt, seed_image, duration_seconds)
        except Exception as e:
            if is_transient_error(e):
                raise
            logger.error(f"Video submission rejected: {e}")
            return VideoResult(success=False, error=str(e))

        if not getattr(operation, "name", None):
            return VideoResult(success=False, error="No operation name returned")

        logger.info(f"Submitted video operation {operation.name}")

        state = PollResult(done=False)
        for attempt in range(1, self.max_polls + 1):
            await self._sleep(self.poll_interval)
            try:
                operation, state = await self.poll(operation)
            except Exception as e:
                if not is_transient_error(e):
                    logger.error(f"Polling {operation.name} failed: {e}")
                    return VideoResult(success=False, error=str(e))
                logger.warning(f"Transient error polling {operation.name}: {e}")
                continue

            if state.done:
                break
            if attempt % 6 == 0:
                logger.info(
                    f"Video generation in progress "
                    f"({attempt * self.poll_interval:.0f}s elapsed, operation: {operation.name})"
                )

        if not state.done:
            return VideoResult(
                success=False,
                error=(
                    "Video generation timed out after "
                    f"{self.max_polls * self.poll_interval:.0f} seconds"
                ),
            )

        if state.error:
            return VideoResult(success=False, error=state.error)

        if state.video_bytes:
            return VideoResult(
                success=True, video_bytes=state.video_bytes, video_uri=state.video_uri
            )

        if state.video_uri:
            try:
                video_bytes = await download_video(state.video_uri)
            except httpx.HTTPError as e:
                return VideoResult(
                    success=False,
                    error=f"Failed to download video: {e}",
                    video_uri=state.video_uri,
                )
            return VideoResult(
                success=True, video_bytes=video_bytes, video_uri=state.video_uri
            )

        return VideoResult(success=False, error="No video bytes or URI in response")
