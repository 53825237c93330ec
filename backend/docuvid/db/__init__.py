"""
Record store for docuvid: projects, shot lists, scenes and their assets.
"""
import logging

from docuvid.db.engine import (
    async_session,
    build_engine,
    build_session_factory,
    engine,
    get_session,
    shutdown,
)
from docuvid.db.models import Asset, Base, Project, Scene, ShotList

logger = logging.getLogger(__name__)


async def init_database(bind=None):
    """Create any missing tables on the given engine (default: the app engine)."""
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema ready")


__all__ = [
    "Asset",
    "Base",
    "Project",
    "Scene",
    "ShotList",
    "async_session",
    "build_engine",
    "build_session_factory",
    "engine",
    "get_session",
    "init_database",
    "shutdown",
]
