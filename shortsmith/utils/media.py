"""
Media file probing utilities using ffprobe.

Extracts the source frame size and duration the export needs for geometry
and clip clamping.
"""

import json
import math
import os
import subprocess
from dataclasses import dataclass
from typing import Optional

from ..errors import InvalidMediaError


def ffprobe_binary() -> str:
    return os.environ.get("SHORTSMITH_FFPROBE", "ffprobe")


@dataclass
class VideoStream:
    """Video stream metadata."""
    width: int = 0
    height: int = 0
    fps: float = 0.0
    codec: str = ""
    rotation: int = 0

    @property
    def display_size(self):
        """Frame size as players show it (rotation metadata applied)."""
        if abs(self.rotation) % 180 == 90:
            return self.height, self.width
        return self.width, self.height


@dataclass
class MediaInfo:
    """Source media information."""
    path: str = ""
    filename: str = ""
    duration: float = 0.0
    format_name: str = ""
    video: Optional[VideoStream] = None
    has_audio: bool = False

    @property
    def has_video(self) -> bool:
        return self.video is not None


def _parse_fps(value: str) -> float:
    try:
        if "/" in str(value):
            num, den = str(value).split("/")
            return float(num) / float(den) if float(den) else 0.0
        return float(value)
    except (ValueError, ZeroDivisionError):
        return 0.0


def probe(filepath: str) -> MediaInfo:
    """
    Probe a media file and extract metadata using ffprobe.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        InvalidMediaError: If ffprobe fails or the file has no usable video stream.
    """
    filepath = str(filepath)
    if not os.path.isfile(filepath):
        raise FileNotFoundError(f"Media file not found: {filepath}")

    cmd = [
        ffprobe_binary(),
        "-v", "quiet",
        "-print_format", "json",
        "-show_format",
        "-show_streams",
        filepath,
    ]

    try:
        result = subprocess.run(cmd, capture_output=True, text=True, check=True, timeout=30)
    except FileNotFoundError:
        raise InvalidMediaError("ffprobe not found. Install FFmpeg: https://ffmpeg.org/download.html")
    except subprocess.CalledProcessError as e:
        raise InvalidMediaError(f"ffprobe failed on '{filepath}': {e.stderr}")
    except subprocess.TimeoutExpired:
        raise InvalidMediaError(f"ffprobe timed out on '{filepath}'")

    try:
        data = json.loads(result.stdout or "{}")
    except json.JSONDecodeError as e:
        raise InvalidMediaError(f"ffprobe returned unreadable output for '{filepath}': {e}")

    streams = data.get("streams", [])
    fmt = data.get("format", {})

    try:
        duration = float(fmt.get("duration", 0) or 0)
    except (TypeError, ValueError):
        duration = 0.0

    info = MediaInfo(
        path=filepath,
        filename=os.path.basename(filepath),
        duration=duration if math.isfinite(duration) else 0.0,
        format_name=fmt.get("format_name", ""),
    )

    for stream in streams:
        if stream.get("codec_type") == "video" and info.video is None:
            rotation = 0
            for side in stream.get("side_data_list", []) or []:
                if "rotation" in side:
                    try:
                        rotation = int(side["rotation"])
                    except (TypeError, ValueError):
                        rotation = 0
            info.video = VideoStream(
                width=int(stream.get("width", 0) or 0),
                height=int(stream.get("height", 0) or 0),
                fps=_parse_fps(stream.get("r_frame_rate", "0/1")),
                codec=stream.get("codec_name", ""),
                rotation=rotation,
            )
        elif stream.get("codec_type") == "audio":
            info.has_audio = True

    if info.video is None or info.video.width <= 0 or info.video.height <= 0:
        raise InvalidMediaError(f"No readable video stream in '{filepath}'")

    return info
