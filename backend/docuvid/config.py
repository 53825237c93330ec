"""Settings for docuvid, layered from environment, .env and config.yaml.

Every field has a default, so the package imports and the test suite runs
without any configuration file. The YAML file is read from the working
directory unless DOCUVID_CONFIG points elsewhere.
"""

import os
from pathlib import Path
from typing import ClassVar, Optional

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)


class YamlConfigSettingsSource(PydanticBaseSettingsSource):
    """Settings source returning the parsed YAML document as a dict."""

    def get_field_value(self, field, field_name: str):
        # Whole document is returned from __call__
        return None, field_name, False

    def __call__(self):
        yaml_path = Path(os.environ.get("DOCUVID_CONFIG", "config.yaml"))
        if not yaml_path.is_file():
            return {}
        return yaml.safe_load(yaml_path.read_text()) or {}


class GoogleCloudConfig(BaseModel):
    """Vertex AI project and region.

    project_id is only required once a real generation backend is built.
    """

    project_id: str = ""
    location: str = "us-central1"


class ModelsConfig(BaseModel):
    image_gen: str = "gemini-2.5-flash-image"
    video_gen: str = "veo-3.0-generate-001"


class PipelineConfig(BaseModel):
    """Retry, polling and clip parameters for the generation phases."""

    retry_max_attempts: int = Field(default=3, ge=1)
    retry_base_delay: float = Field(default=2.0, ge=0)
    video_poll_interval: float = Field(default=5.0, gt=0)
    video_poll_max: int = Field(default=120, ge=1)
    # Veo rejects clips longer than this
    max_clip_duration: int = 8
    default_clip_duration: int = 5
    aspect_ratio: str = "16:9"
    generate_audio: bool = True


class StorageConfig(BaseModel):
    """Record store and object store locations."""

    database_url: str = "sqlite+aiosqlite:///docuvid.db"
    tmp_dir: Path = Path("tmp")
    # When unset, stored objects are addressed by file:// URI
    public_base_url: Optional[str] = None


class AssemblyConfig(BaseModel):
    default_music_volume: float = Field(default=0.3, ge=0.0, le=1.0)
    output_filename: str = "documentary.mp4"


class ServerConfig(BaseModel):
    host: str = "127.0.0.1"
    port: int = 8000


class Settings(BaseSettings):
    """Application settings.

    Sources, highest priority first:
    1. Environment variables (DOCUVID_ prefix, __ between nesting levels,
       e.g. DOCUVID_PIPELINE__RETRY_MAX_ATTEMPTS=5)
    2. .env file
    3. config.yaml
    4. Field defaults
    """

    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_nested_delimiter="__",
        env_prefix="DOCUVID_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    google_cloud: GoogleCloudConfig = GoogleCloudConfig()
    models: ModelsConfig = ModelsConfig()
    pipeline: PipelineConfig = PipelineConfig()
    storage: StorageConfig = StorageConfig()
    assembly: AssemblyConfig = AssemblyConfig()
    server: ServerConfig = ServerConfig()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls),
        )


settings = Settings()
