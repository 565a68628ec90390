"""
Export result assembly.

Packages the rendered bytes with a download filename, a reproducible command
line and human-readable notes describing how the clip was rendered.
"""

import math
import os
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..core.clip import ClipWindow
from ..core.geometry import ExportGeometry
from ..core.style import CaptionStyle
from ..utils.config import RenderConfig

MIME_TYPE = "video/mp4"


def format_seconds(value: float) -> str:
    """Seconds for an ffmpeg argument: millisecond precision, no trailing zeros."""
    text = f"{value:.3f}".rstrip("0").rstrip(".")
    return text or "0"


def sanitize_filename(value: str) -> str:
    return re.sub(r"[^\w.-]+", "_", value)


def output_filename(source_filename: str, platform: str, clip: ClipWindow) -> str:
    """``{base}__{platform}__{floor(start)}-{ceil(end)}.mp4`` with unsafe characters replaced."""
    base = os.path.splitext(os.path.basename(source_filename or "clip"))[0] or "clip"
    return sanitize_filename(
        f"{base}__{platform}__{int(math.floor(clip.start_seconds))}-{int(math.ceil(clip.end_seconds))}.mp4"
    )


@dataclass
class ExportResult:
    """A finished vertical export."""
    file_bytes: bytes
    filename: str
    command_preview: List[str]
    notes: List[str]
    captions_burned_in: bool
    seek_mode: str
    geometry: ExportGeometry
    mime_type: str = MIME_TYPE
    caption_strategy: Optional[str] = None
    warnings: List[str] = field(default_factory=list)

    @property
    def size_bytes(self) -> int:
        return len(self.file_bytes)

    def save(self, directory: str, filename: Optional[str] = None) -> str:
        """Write the MP4 into ``directory`` and return its path."""
        os.makedirs(directory, exist_ok=True)
        path = os.path.join(directory, filename or self.filename)
        with open(path, "wb") as f:
            f.write(self.file_bytes)
        return path

    def to_dict(self) -> Dict:
        """JSON-friendly summary (without the video bytes)."""
        return {
            "filename": self.filename,
            "mime_type": self.mime_type,
            "size_bytes": self.size_bytes,
            "command_preview": list(self.command_preview),
            "notes": list(self.notes),
            "captions_burned_in": self.captions_burned_in,
            "caption_strategy": self.caption_strategy,
            "seek_mode": self.seek_mode,
            "geometry": self.geometry.to_dict(),
            "warnings": list(self.warnings),
        }


def build_command_preview(
    source_filename: str,
    filename: str,
    seek_mode: str,
    clip_start: float,
    coarse_seek: float,
    residual_seek: float,
    clip_duration: float,
    base_filter: str,
    caption_strategy: Optional[str] = None,
    render_config=None,
) -> List[str]:
    """Equivalent command line for the render that produced the file (overlay details elided)."""
    cfg = render_config or RenderConfig()
    if seek_mode == "hybrid" and coarse_seek > 0:
        seek = ["-ss", format_seconds(coarse_seek), "-i", source_filename, "-ss", format_seconds(residual_seek)]
    else:
        seek = ["-i", source_filename, "-ss", format_seconds(clip_start)]

    if caption_strategy == "text":
        video = ["-vf", f"{base_filter},...drawtext"]
    elif caption_strategy == "raster":
        video = ["-filter_complex", f"[0:v]{base_filter}[base];[base][1:v]overlay...", "-map", "[v]", "-map", "0:a?"]
    else:
        video = ["-vf", base_filter]

    return (
        ["ffmpeg"] + seek + ["-t", format_seconds(clip_duration)] + video
        + [
            "-c:v", cfg.video_codec, "-preset", cfg.preset, "-crf", str(cfg.crf),
            "-c:a", cfg.audio_codec, "-b:a", cfg.audio_bitrate,
            "-movflags", "+faststart",
            filename,
        ]
    )


def build_notes(
    platform: str,
    seek_mode: str,
    clip_start: float,
    coarse_seek: float,
    residual_seek: float,
    geometry: ExportGeometry,
    style: CaptionStyle,
    editor,
    captions_burned_in: bool,
    caption_strategy: Optional[str] = None,
    caption_note: str = "",
    preview_viewport=None,
    preview_video_rect=None,
    engine_version: str = "",
) -> List[str]:
    notes = [f"Local render via ffmpeg ({platform})" + (f", {engine_version}" if engine_version else "")]

    if seek_mode == "hybrid":
        if coarse_seek > 0:
            notes.append(
                f"Hybrid trim seek enabled: fast pre-seek {coarse_seek:.2f}s, "
                f"exact post-seek {residual_seek:.2f}s."
            )
        else:
            notes.append(f"Exact trim seek from start: {residual_seek:.2f}s.")
    else:
        notes.append(f"Fallback exact-seek mode used from {clip_start:.2f}s for container compatibility.")

    g = geometry
    if g.canvas_width != g.scaled_width or g.canvas_height != g.scaled_height:
        notes.append(
            f"Zoom-out/pad mode. Scaled frame {g.scaled_width}x{g.scaled_height}, padded canvas "
            f"{g.canvas_width}x{g.canvas_height} @ ({g.pad_x}, {g.pad_y}), crop @ ({g.crop_x}, {g.crop_y})."
        )
    else:
        notes.append(
            f"Crop based on zoom/pan. Scaled frame {g.scaled_width}x{g.scaled_height}, "
            f"crop @ ({g.crop_x}, {g.crop_y})."
        )

    if g.used_preview_video_rect:
        rect = _dims(preview_video_rect)
        viewport = _dims(preview_viewport)
        notes.append(
            f"Preview parity source: video rect {rect[0]}x{rect[1]} inside viewport {viewport[0]}x{viewport[1]}."
        )
    else:
        notes.append("Preview parity source: computed from source dimensions + editor zoom.")

    if captions_burned_in:
        how = "filter text" if caption_strategy == "text" else "PNG overlays"
        notes.append(
            f"Subtitles burned in at x={editor.subtitle_x_position_pct:.0f}%, "
            f"y={editor.subtitle_y_offset_pct:.0f}% using {style.preset} ({how})."
        )
    else:
        notes.append(caption_note or "Rendered without burned subtitles (no subtitle chunks).")

    if captions_burned_in and caption_strategy == "raster":
        notes.append("Subtitle box corners exported rounded, matching the preview.")
    elif style.has_background and style.background_radius > 0:
        notes.append("Rounded subtitle box corners are preview-only for filter text; the export uses square boxes.")
    else:
        notes.append("Subtitle box corners exported as square boxes.")
    return notes


def _dims(value) -> List[int]:
    if value is None:
        return [0, 0]
    if isinstance(value, dict):
        w, h = value.get("width", 0), value.get("height", 0)
    else:
        w, h = value
    return [int(math.floor(float(w or 0) + 0.5)), int(math.floor(float(h or 0) + 0.5))]


def build_failure_summary(
    clip: ClipWindow,
    clip_duration: float,
    seek_mode: str,
    captions_burned_in: bool,
    chunk_count: int,
    source_filename: str,
) -> str:
    """One-line context attached to export failures."""
    return ", ".join([
        f"clip={clip.start_seconds:.3f}-{clip.end_seconds:.3f} ({clip_duration:.3f}s)",
        f"seekMode={seek_mode}",
        f"subtitleBurnIn={str(captions_burned_in).lower()}",
        f"subtitleChunks={chunk_count}",
        f"source={source_filename}",
    ])


def build_diagnostics(
    source_filename: str,
    platform: str,
    requested_clip: ClipWindow,
    export_clip: ClipWindow,
    source_size=None,
    source_duration: Optional[float] = None,
    selected_chunk_count: int = 0,
    export_chunk_count: int = 0,
    style_preset: str = "",
    error_message: str = "",
) -> str:
    """key=value block describing an export request, for bug reports and the CLI."""
    if source_duration is not None and math.isfinite(source_duration):
        duration = f"{source_duration:.3f}"
    else:
        duration = "unknown"
    width, height = source_size if source_size else ("?", "?")
    lines = [
        f"source={source_filename}",
        f"platform={platform}",
        f"sourceSize={width}x{height}",
        f"sourceDurationSec={duration}",
        f"requestedClip={requested_clip.start_seconds:.3f}-{requested_clip.end_seconds:.3f} "
        f"({requested_clip.duration_seconds:.3f}s)",
        f"exportClip={export_clip.start_seconds:.3f}-{export_clip.end_seconds:.3f} "
        f"({export_clip.duration_seconds:.3f}s)",
        f"selectedSubtitleChunks={selected_chunk_count}",
        f"exportSubtitleChunks={export_chunk_count}",
        f"subtitleStylePreset={style_preset}",
    ]
    if error_message:
        lines.append(f"error={error_message}")
    return "\n".join(lines)
