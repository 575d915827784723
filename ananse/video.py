"""Story video assembly with the ffmpeg binary.

Each panel image gets a slow centred zoom (Ken Burns) proportional to the
style's zoom factor, panels are chained with xfade transitions, and an
optional narration track decides where the video ends.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import tempfile
from collections.abc import Sequence
from pathlib import Path
from typing import Any, NamedTuple

logger = logging.getLogger(__name__)

FPS = 25
WIDTH, HEIGHT = 1920, 1080


class VideoStyle(NamedTuple):
    seconds_per_panel: float
    zoom: float  # 1.0 means no zoom
    transition: str  # ffmpeg xfade transition name
    transition_seconds: float


DEFAULT_VIDEO_STYLE = "motion-comic"

VIDEO_STYLES: dict[str, VideoStyle] = {
    "motion-comic": VideoStyle(5, 1.2, "fade", 0.5),
    "animated-storyboard": VideoStyle(3, 1.4, "wipeleft", 0.3),
    "slideshow": VideoStyle(4, 1.0, "fade", 1.0),
    "documentary": VideoStyle(6, 1.3, "fade", 0.8),
    "dynamic": VideoStyle(2.5, 1.5, "slideleft", 0.2),
}


class VideoAssemblyError(RuntimeError):
    """Raised when ffmpeg is missing, fails, or times out."""


def get_video_style(name: str | None) -> VideoStyle:
    """Look up a named style; unknown names get the motion-comic tuple."""
    return VIDEO_STYLES.get(name or DEFAULT_VIDEO_STYLE, VIDEO_STYLES[DEFAULT_VIDEO_STYLE])


def estimate_duration(panel_count: int, style: VideoStyle) -> float:
    """Length of the rendered video without audio, in seconds."""
    if panel_count <= 0:
        return 0.0
    return panel_count * style.seconds_per_panel - (panel_count - 1) * style.transition_seconds


def _panel_filter(index: int, style: VideoStyle) -> str:
    base = (
        f"[{index}:v]scale={WIDTH}:{HEIGHT}:force_original_aspect_ratio=increase,"
        f"crop={WIDTH}:{HEIGHT},"
    )
    if style.zoom > 1.0:
        frames = int(style.seconds_per_panel * FPS)
        step = (style.zoom - 1.0) / frames
        return base + (
            f"zoompan=z='min(zoom+{step:.5f},{style.zoom})':d={frames}"
            f":x='iw/2-(iw/zoom/2)':y='ih/2-(ih/zoom/2)':s={WIDTH}x{HEIGHT}:fps={FPS},"
            f"setsar=1[v{index}]"
        )
    return base + f"fps={FPS},setsar=1[v{index}]"


def build_filter_graph(panel_count: int, style: VideoStyle, with_audio: bool = False) -> list[str]:
    """Return the -filter_complex chains; the final video label is [v]."""
    if panel_count <= 0:
        raise VideoAssemblyError("No panel images to assemble")

    filters = [_panel_filter(i, style) for i in range(panel_count)]

    last = "v0"
    for k in range(1, panel_count):
        offset = k * (style.seconds_per_panel - style.transition_seconds)
        out = f"x{k}"
        filters.append(
            f"[{last}][v{k}]xfade=transition={style.transition}"
            f":duration={style.transition_seconds}:offset={offset:.3f}[{out}]"
        )
        last = out

    # With narration the last frame is held until the audio ends (-shortest cuts it)
    tail = "tpad=stop_mode=clone:stop=-1," if with_audio else ""
    filters.append(f"[{last}]{tail}format=yuv420p[v]")
    return filters


def build_ffmpeg_args(
    image_paths: Sequence[Path],
    audio_path: Path | None,
    output_path: Path,
    style: VideoStyle,
) -> list[str]:
    args: list[str] = ["-y", "-loglevel", "error"]
    for path in image_paths:
        if style.zoom > 1.0:
            # zoompan emits d frames per input frame, so feed a single frame
            args += ["-i", str(path)]
        else:
            args += ["-loop", "1", "-t", str(style.seconds_per_panel), "-i", str(path)]
    if audio_path is not None:
        args += ["-i", str(audio_path)]

    graph = build_filter_graph(len(image_paths), style, with_audio=audio_path is not None)
    args += ["-filter_complex", ";".join(graph), "-map", "[v]"]
    if audio_path is not None:
        args += ["-map", f"{len(image_paths)}:a", "-c:a", "aac", "-b:a", "192k", "-shortest"]
    args += [
        "-c:v", "libx264", "-preset", "medium", "-crf", "23",
        "-pix_fmt", "yuv420p", "-movflags", "+faststart",
        str(output_path),
    ]
    return args


class VideoAssembler:
    """Renders panel images (+ optional narration) into an mp4.

    Args:
        ffmpeg_path: Binary to run; defaults to whatever `ffmpeg` is on PATH.
        timeout:     Seconds before the render is killed.
    """

    def __init__(self, ffmpeg_path: str | None = None, timeout: float = 600.0) -> None:
        self._ffmpeg = ffmpeg_path or shutil.which("ffmpeg")
        self._timeout = timeout

    @property
    def available(self) -> bool:
        return self._ffmpeg is not None

    async def _run(self, args: list[str]) -> None:
        proc = await asyncio.create_subprocess_exec(
            self._ffmpeg, *args,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            _, stderr = await asyncio.wait_for(proc.communicate(), timeout=self._timeout)
        except asyncio.TimeoutError as e:
            proc.kill()
            await proc.wait()
            raise VideoAssemblyError(f"ffmpeg timed out after {self._timeout}s") from e
        if proc.returncode != 0:
            detail = stderr.decode(errors="replace").strip()[-500:]
            raise VideoAssemblyError(f"ffmpeg exited with {proc.returncode}: {detail}")

    async def generate_story_video(
        self,
        images: Sequence[bytes],
        audio: bytes | None = None,
        style: str | None = None,
        story_meta: dict[str, Any] | None = None,
    ) -> bytes:
        if not self.available:
            raise VideoAssemblyError("FFmpeg is not available. Cannot generate video.")
        if not images:
            raise VideoAssemblyError("No panel images to assemble")

        video_style = get_video_style(style)
        label = (story_meta or {}).get("id", "")
        logger.info(
            "Rendering %d-panel video style=%s story=%s",
            len(images), style or DEFAULT_VIDEO_STYLE, label,
        )

        with tempfile.TemporaryDirectory(prefix="ananse-video-") as tmp:
            tmp_dir = Path(tmp)
            image_paths: list[Path] = []
            for i, data in enumerate(images):
                path = tmp_dir / f"panel_{i:03d}.png"
                path.write_bytes(data)
                image_paths.append(path)
            audio_path = None
            if audio:
                audio_path = tmp_dir / "audio.mp3"
                audio_path.write_bytes(audio)
            output_path = tmp_dir / "output.mp4"

            await self._run(build_ffmpeg_args(image_paths, audio_path, output_path, video_style))
            video = output_path.read_bytes()

        logger.info("Video rendered (%.2f MB)", len(video) / 1024 / 1024)
        return video
