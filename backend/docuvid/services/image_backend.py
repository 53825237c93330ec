"""Image generation backend using Gemini image models on Vertex AI.

The backend answers every call with an ImageResult. Definitive failures
(content-policy rejection, empty response, invalid request) come back as
``ImageResult(success=False, error=...)``. Transient transport failures
(429, 5xx, dropped connections) are raised so the caller's RetryPolicy
can retry them.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from google.genai import types

from docuvid.config import settings
from docuvid.services.vertex_client import (
    get_vertex_client,
    is_transient_error,
    location_for_model,
)

logger = logging.getLogger(__name__)


@dataclass
class ImageResult:
    success: bool
    image_bytes: Optional[bytes] = None
    mime_type: str = "image/png"
    error: Optional[str] = None


class ImageBackend(Protocol):
    model_id: str

    async def generate(
        self, prompt: str, reference_image: Optional[bytes] = None
    ) -> ImageResult:
        ...


def build_image_prompt(prompt: str, has_reference: bool) -> str:
    """Wrap a scene prompt with the documentary framing instruction."""
    if has_reference:
        return (
            "Use this image as a style reference. Generate a new image in the "
            f"same visual style with this description: {prompt}"
        )
    return f"Generate a high-quality, cinematic image for a documentary video: {prompt}"


class GeminiImageBackend:
    """Generate still images with generate_content(response_modalities=IMAGE).

    When a reference image is supplied it is sent ahead of the text so the
    model treats it as the style anchor.
    """

    def __init__(self, model_id: Optional[str] = None, client=None):
        self.model_id = model_id or settings.models.image_gen
        self._client = client

    def _get_client(self):
        if self._client is None:
            self._client = get_vertex_client(location=location_for_model(self.model_id))
        return self._client

    async def generate(
        self, prompt: str, reference_image: Optional[bytes] = None
    ) -> ImageResult:
        contents: list = []
        if reference_image:
            contents.append(
                types.Part.from_bytes(data=reference_image, mime_type="image/png")
            )
        contents.append(
            types.Part.from_text(
                text=build_image_prompt(prompt, has_reference=bool(reference_image))
            )
        )

        try:
            response = await self._get_client().aio.models.generate_content(
                model=self.model_id,
                contents=contents,
                config=types.GenerateContentConfig(
                    response_modalities=["TEXT", "IMAGE"],
                ),
            )
        except Exception as e:
            if is_transient_error(e):
                raise
            logger.error(f"Image generation rejected: {e}")
            return ImageResult(success=False, error=str(e))

        candidates = response.candidates or []
        if not candidates:
            return ImageResult(success=False, error="No candidates returned from model")

        content = candidates[0].content
        parts = content.parts if content is not None else None
        if not parts:
            return ImageResult(success=False, error="No parts in response")

        for part in parts:
            if part.inline_data and part.inline_data.data:
                return ImageResult(
                    success=True,
                    image_bytes=part.inline_data.data,
                    mime_type=part.inline_data.mime_type or "image/png",
                )

        return ImageResult(success=False, error="No image found in response")
