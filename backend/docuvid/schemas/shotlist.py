"""Pydantic schema for shot list documents imported from YAML.

A shot list document looks like:

    title: The Lighthouse Keepers
    aspect_ratio: "16:9"
    scenes:
      - script_segment: "For a century, the light never went out."
        image_prompt: "A stone lighthouse on a cliff at dusk"
        motion_type: "slow push-in"
        duration_seconds: 6
      - ...

Scenes are numbered 1..N in document order.
"""

from typing import Optional

from pydantic import BaseModel, Field


class SceneDocument(BaseModel):
    script_segment: Optional[str] = None
    image_prompt: Optional[str] = None
    video_prompt: Optional[str] = None
    motion_type: Optional[str] = None
    duration_seconds: Optional[int] = Field(default=None, gt=0)


class ShotListDocument(BaseModel):
    title: str
    aspect_ratio: Optional[str] = None
    scenes: list[SceneDocument] = Field(min_length=1)
