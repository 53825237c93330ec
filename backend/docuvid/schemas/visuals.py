"""Request and response bodies for the visuals workflow and assembly API."""

import uuid
from typing import Literal, Optional

from pydantic import BaseModel, Field

GenerationPhase = Literal["first_image", "remaining_images", "first_video", "remaining_videos"]
ConfirmPhase = Literal["first_image", "all_images", "first_video", "all_videos"]


class PhaseResponse(BaseModel):
    """Response schema for GET /api/projects/{id}/visuals/phase."""
    project_id: uuid.UUID
    phase: str
    description: str
    incomplete_images: list[int] = Field(default_factory=list)
    incomplete_videos: list[int] = Field(default_factory=list)
    video_style: Optional[str] = None


class GenerateRequest(BaseModel):
    """Request schema for POST /api/projects/{id}/visuals/generate.

    scene_id limits remaining_images / remaining_videos to one scene.
    video_style is only read by first_video; later clips use the style
    locked in at first-video confirmation.
    """
    phase: GenerationPhase
    scene_id: Optional[uuid.UUID] = None
    prompt: Optional[str] = None
    video_style: Optional[str] = None


class SceneResultSchema(BaseModel):
    scene_id: uuid.UUID
    order_index: int
    success: bool
    error: Optional[str] = None
    urls: dict[str, str] = Field(default_factory=dict)


class GenerateResponse(BaseModel):
    """Response schema for POST /api/projects/{id}/visuals/generate."""
    phase: str
    results: list[SceneResultSchema]
    succeeded: int
    failed: int


class ConfirmRequest(BaseModel):
    """Request schema for POST /api/projects/{id}/visuals/confirm."""
    phase: ConfirmPhase
    video_style: Optional[str] = None


class ConfirmResponse(BaseModel):
    success: bool
    message: str
    next_phase: Optional[str] = None
    next_step: Optional[int] = None


class ResetResponse(BaseModel):
    success: bool
    message: str
    target_phase: str
    cleared_scenes: int


class ClipSchema(BaseModel):
    url: str
    duration: float = Field(gt=0)
    order: int


class AssembleRequest(BaseModel):
    """Request schema for POST /api/assemble.

    Either pass clips explicitly or a project_id whose completed videos
    are assembled in scene order.
    """
    clips: list[ClipSchema] = Field(default_factory=list)
    project_id: Optional[uuid.UUID] = None
    music_url: Optional[str] = None
    music_volume: float = Field(default=0.3, ge=0.0, le=1.0)
