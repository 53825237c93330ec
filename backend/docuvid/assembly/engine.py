"""Final documentary assembly with the ffmpeg concat demuxer.

An assembly run always goes through the same stages:
1. loading     - acquire the shared media engine (created on first use)
2. fetching    - download every clip, in order, into numbered working slots
3. processing  - write the concat manifest and stream-copy the clips together
4. encoding    - optionally mix a background track under the clip audio
5. complete    - read back the output and report its duration

Working slots are removed after every run, successful or not. The media
engine is shared and not reentrant: one run at a time holds it, across every
AssemblyEngine instance, and the rest are rejected with AssemblyBusyError.
teardown_engine() waits for the holder to finish.
"""

import asyncio
import logging
import shutil
import subprocess
import tempfile
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional
from urllib.parse import unquote, urlparse

import httpx

from docuvid import validate_dependencies
from docuvid.config import settings
from docuvid.errors import AssemblyError

logger = logging.getLogger(__name__)


@dataclass
class Clip:
    url: str
    duration: float
    order: int


@dataclass
class ProcessingProgress:
    stage: str  # loading | fetching | processing | encoding | complete
    progress: int  # 0-100
    message: str


@dataclass
class AssemblyOutput:
    data: bytes
    duration_seconds: float
    content_type: str = "video/mp4"


ProgressCallback = Callable[[ProcessingProgress], None]


class AssemblyBusyError(AssemblyError):
    """Raised when a second run is attempted while one is in flight."""


class MediaEngine:
    """ffmpeg-backed processing engine with a private working directory."""

    def __init__(self, root: Optional[Path] = None):
        self.root = root
        self.workdir: Optional[Path] = None

    def load(self) -> None:
        validate_dependencies()
        base = Path(self.root or settings.storage.tmp_dir)
        base.mkdir(parents=True, exist_ok=True)
        self.workdir = Path(tempfile.mkdtemp(prefix="assembly-", dir=base)).resolve()
        logger.info(f"Media engine loaded at {self.workdir}")

    @property
    def loaded(self) -> bool:
        return self.workdir is not None and self.workdir.exists()

    def new_run_dir(self) -> Path:
        run_dir = self.workdir / uuid.uuid4().hex
        run_dir.mkdir()
        return run_dir

    def exec(self, args: list[str], cwd: Path) -> None:
        """Run ffmpeg with the given arguments inside cwd."""
        subprocess.run(
            ["ffmpeg", "-y", "-hide_banner", "-loglevel", "error", *args],
            cwd=cwd,
            check=True,
            capture_output=True,
        )

    def probe_duration(self, path: Path) -> float:
        result = subprocess.run(
            [
                "ffprobe", "-v", "error",
                "-show_entries", "format=duration",
                "-of", "default=noprint_wrappers=1:nokey=1",
                str(path),
            ],
            check=True,
            capture_output=True,
            text=True,
        )
        return float(result.stdout.strip())

    def has_audio(self, path: Path) -> bool:
        result = subprocess.run(
            [
                "ffprobe", "-v", "error",
                "-select_streams", "a",
                "-show_entries", "stream=index",
                "-of", "csv=p=0",
                str(path),
            ],
            check=True,
            capture_output=True,
            text=True,
        )
        return bool(result.stdout.strip())

    def terminate(self) -> None:
        if self.workdir is not None:
            shutil.rmtree(self.workdir, ignore_errors=True)
            logger.info(f"Media engine at {self.workdir} torn down")
        self.workdir = None


# ---------------------------------------------------------------------------
# Shared engine: created on first use, held by one run at a time,
# released by teardown_engine() once no run holds it
# ---------------------------------------------------------------------------
_engine: Optional[MediaEngine] = None
_engine_in_use = False
_engine_state: Optional[asyncio.Condition] = None


def _get_engine_state() -> asyncio.Condition:
    global _engine_state
    if _engine_state is None:
        _engine_state = asyncio.Condition()
    return _engine_state


def engine_busy() -> bool:
    """True while an assembly run holds the shared engine."""
    return _engine_in_use


async def _load_engine(on_progress: Optional[ProgressCallback]) -> MediaEngine:
    # Caller holds the engine state condition
    global _engine
    if _engine is not None and _engine.loaded:
        return _engine

    _report(on_progress, "loading", 0, "Loading media engine...")
    engine = MediaEngine()
    try:
        await asyncio.to_thread(engine.load)
    except RuntimeError as e:
        raise AssemblyError(str(e), stage="loading") from e
    _engine = engine
    _report(on_progress, "loading", 100, "Media engine loaded")
    return _engine


async def get_engine(on_progress: Optional[ProgressCallback] = None) -> MediaEngine:
    """Return the shared MediaEngine, loading it on first call."""
    async with _get_engine_state():
        return await _load_engine(on_progress)


@asynccontextmanager
async def acquire_engine(on_progress: Optional[ProgressCallback] = None):
    """Hold the shared MediaEngine for the duration of one run.

    Raises:
        AssemblyBusyError: If another run, from any AssemblyEngine, holds it
        AssemblyError: If the engine cannot be loaded
    """
    global _engine_in_use
    state = _get_engine_state()
    async with state:
        if _engine_in_use:
            raise AssemblyBusyError("An assembly run is already in progress", stage="loading")
        engine = await _load_engine(on_progress)
        _engine_in_use = True

    try:
        yield engine
    finally:
        async with state:
            _engine_in_use = False
            state.notify_all()


async def teardown_engine() -> None:
    """Release the shared MediaEngine and its working directory.

    Waits for a run in flight to finish before the working directory is
    removed.
    """
    global _engine
    state = _get_engine_state()
    async with state:
        if _engine_in_use:
            logger.info("Waiting for the running assembly before teardown")
        await state.wait_for(lambda: not _engine_in_use)
        if _engine is not None:
            await asyncio.to_thread(_engine.terminate)
            _engine = None


def _report(
    on_progress: Optional[ProgressCallback], stage: str, progress: int, message: str
) -> None:
    if on_progress is not None:
        on_progress(ProcessingProgress(stage=stage, progress=progress, message=message))


async def fetch_source(url: str) -> bytes:
    """Read media bytes from an http(s) URL, a file:// URI or a local path."""
    parsed = urlparse(url)
    if parsed.scheme in ("http", "https"):
        async with httpx.AsyncClient(follow_redirects=True, timeout=120.0) as client:
            response = await client.get(url)
            response.raise_for_status()
            return response.content
    if parsed.scheme == "file":
        return await asyncio.to_thread(Path(unquote(parsed.path)).read_bytes)
    return await asyncio.to_thread(Path(url).read_bytes)


def _ffmpeg_error(e: subprocess.CalledProcessError) -> str:
    stderr = e.stderr.decode(errors="replace") if isinstance(e.stderr, bytes) else (e.stderr or "")
    return stderr.strip()[:500] or "No error output"


class AssemblyEngine:
    """Concatenate ordered clips into one deliverable, optionally with music."""

    def __init__(self, fetch: Callable = fetch_source):
        self._fetch = fetch

    async def assemble(
        self,
        clips: list[Clip],
        music_url: Optional[str] = None,
        music_volume: Optional[float] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> AssemblyOutput:
        """Run the full assembly pipeline.

        Args:
            clips: Clips to join; sorted by their order field
            music_url: Optional background track mixed under the clip audio
            music_volume: Background track volume (default from settings, 0.3)
            on_progress: Callback receiving ProcessingProgress updates

        Returns:
            AssemblyOutput with the MP4 bytes and measured duration

        Raises:
            AssemblyBusyError: If another run holds the shared media engine
            AssemblyError: If any stage fails; no partial output is returned
        """
        if not clips:
            raise AssemblyError("No video clips to assemble", stage="fetching")
        if music_volume is None:
            music_volume = settings.assembly.default_music_volume

        async with acquire_engine(on_progress) as engine:
            run_dir = engine.new_run_dir()
            try:
                return await self._run(engine, run_dir, clips, music_url, music_volume, on_progress)
            finally:
                try:
                    await asyncio.to_thread(shutil.rmtree, run_dir)
                except OSError as e:
                    logger.debug(f"Cleanup of {run_dir} failed: {e}")

    async def _run(
        self,
        engine: MediaEngine,
        run_dir: Path,
        clips: list[Clip],
        music_url: Optional[str],
        music_volume: float,
        on_progress: Optional[ProgressCallback],
    ) -> AssemblyOutput:
        ordered = sorted(clips, key=lambda c: c.order)

        # Fetch into numbered working slots
        slot_names = []
        total = len(ordered)
        for i, clip in enumerate(ordered):
            slot_name = f"input{i}.mp4"
            _report(
                on_progress, "fetching", round((i + 1) / total * 100),
                f"Fetching video {i + 1} of {total}...",
            )
            try:
                data = await self._fetch(clip.url)
                await asyncio.to_thread((run_dir / slot_name).write_bytes, data)
            except Exception as e:
                logger.error(f"Failed to fetch clip {i + 1} ({clip.url}): {e}")
                raise AssemblyError(
                    f"Failed to fetch video clip {i + 1}", stage="fetching", clip_index=i + 1
                ) from e
            slot_names.append(slot_name)

        # Manifest
        _report(on_progress, "processing", 0, "Preparing to concatenate videos...")
        manifest = "".join(f"file '{name}'\n" for name in slot_names)
        await asyncio.to_thread((run_dir / "filelist.txt").write_text, manifest)

        # Concatenate by stream copy; inputs must share codec parameters
        _report(on_progress, "processing", 25, "Concatenating videos...")
        try:
            await asyncio.to_thread(
                engine.exec,
                ["-f", "concat", "-safe", "0", "-i", "filelist.txt", "-c", "copy", "concatenated.mp4"],
                run_dir,
            )
        except subprocess.CalledProcessError as e:
            raise AssemblyError(
                f"Concatenation failed: {_ffmpeg_error(e)}", stage="processing"
            ) from e

        output_name = "concatenated.mp4"
        if music_url:
            output_name = await self._mix(engine, run_dir, music_url, music_volume, on_progress)

        # Export
        _report(on_progress, "complete", 100, "Reading output file...")
        output_path = run_dir / output_name
        try:
            data = await asyncio.to_thread(output_path.read_bytes)
            duration = await asyncio.to_thread(engine.probe_duration, output_path)
        except (OSError, ValueError, subprocess.CalledProcessError) as e:
            raise AssemblyError(f"Reading output failed: {e}", stage="complete") from e

        logger.info(f"Assembled {total} clip(s) into {duration:.2f}s ({len(data)} bytes)")
        _report(
            on_progress, "complete", 100,
            "Video with music ready!" if music_url else "Video ready!",
        )
        return AssemblyOutput(data=data, duration_seconds=duration)

    async def _mix(
        self,
        engine: MediaEngine,
        run_dir: Path,
        music_url: str,
        music_volume: float,
        on_progress: Optional[ProgressCallback],
    ) -> str:
        """Mix the background track under the concatenated audio.

        The video stream is copied untouched and only audio is re-encoded.
        The result is as long as the concatenated video; a longer background
        track is truncated and a shorter one is padded with silence.
        """
        _report(on_progress, "processing", 50, "Adding background music...")
        music_name = "music" + (Path(unquote(urlparse(music_url).path)).suffix or ".mp3")
        try:
            music = await self._fetch(music_url)
            await asyncio.to_thread((run_dir / music_name).write_bytes, music)
        except Exception as e:
            raise AssemblyError(f"Failed to fetch background music: {e}", stage="processing") from e

        _report(on_progress, "encoding", 0, "Mixing audio tracks...")
        try:
            video_has_audio = await asyncio.to_thread(
                engine.has_audio, run_dir / "concatenated.mp4"
            )
            if video_has_audio:
                audio_filter = (
                    f"[0:a]volume=1.0[a0];[1:a]volume={music_volume}[a1];"
                    "[a0][a1]amix=inputs=2:duration=first:dropout_transition=0:normalize=0[aout]"
                )
            else:
                # Pad with silence so a short track never cuts the video
                audio_filter = f"[1:a]volume={music_volume},apad[aout]"

            await asyncio.to_thread(
                engine.exec,
                [
                    "-i", "concatenated.mp4",
                    "-i", music_name,
                    "-filter_complex", audio_filter,
                    "-map", "0:v",
                    "-map", "[aout]",
                    "-c:v", "copy",
                    "-c:a", "aac",
                    "-shortest",
                    "output.mp4",
                ],
                run_dir,
            )
        except subprocess.CalledProcessError as e:
            raise AssemblyError(
                f"Audio mixing failed: {_ffmpeg_error(e)}", stage="encoding"
            ) from e

        _report(on_progress, "encoding", 100, "Audio mixed")
        return "output.mp4"
