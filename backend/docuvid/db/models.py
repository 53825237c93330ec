"""SQLAlchemy 2.0 ORM models for the documentary visuals workflow."""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import String, Text, JSON, Integer, ForeignKey, UniqueConstraint, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# Scene lifecycle
SCENE_STATUSES = ("pending", "generating", "image_complete", "complete", "failed")

# Asset kinds and lifecycle
ASSET_TYPES = ("image", "video")
ASSET_STATUSES = ("pending", "complete", "failed")


class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass


class Project(Base):
    """Project owned by the surrounding wizard.

    Only current_step is touched here: the all-videos gate advances it to
    the completion step as the hand-off out of the visuals workflow.
    """
    __tablename__ = "projects"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    title: Mapped[str] = mapped_column(Text)
    current_step: Mapped[int] = mapped_column(Integer, default=1)
    aspect_ratio: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(),
        onupdate=func.now()
    )


class ShotList(Base):
    """Shot list holding the phase-gate confirmation timestamps.

    Confirmation timestamps are acquired in phase order:
    first_image -> all_images -> first_video.
    """
    __tablename__ = "shot_lists"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    project_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("projects.id"), unique=True, index=True
    )
    video_style: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    first_image_confirmed_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    all_images_confirmed_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    first_video_confirmed_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now())


class Scene(Base):
    """One ordered unit of a shot list (order_index is 1-based)."""
    __tablename__ = "scenes"
    __table_args__ = (
        UniqueConstraint("shot_list_id", "order_index", name="uq_scene_order"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    shot_list_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("shot_lists.id"), index=True)
    order_index: Mapped[int] = mapped_column(Integer)
    script_segment: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    image_prompt: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    video_prompt: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    motion_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    duration_seconds: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    status: Mapped[str] = mapped_column(String(50), default="pending")
    created_at: Mapped[datetime] = mapped_column(server_default=func.now())


class Asset(Base):
    """Generated media artifact for a scene.

    At most one row per (scene_id, type); writes go through an upsert.
    """
    __tablename__ = "assets"
    __table_args__ = (
        UniqueConstraint("scene_id", "type", name="uq_asset_scene_type"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    scene_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("scenes.id"), index=True)
    type: Mapped[str] = mapped_column(String(10))  # 'image' or 'video'
    status: Mapped[str] = mapped_column(String(20), default="pending")
    storage_path: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    generation_metadata: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
