"""
Clip windows and subtitle chunks.

A ClipWindow is the source-media time range being exported. It is immutable:
nudging start/end or clamping to the media length always derives a new one,
and its duration is recomputed from the bounds rather than trusted.
"""

import logging
import math
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Sequence

logger = logging.getLogger("shortsmith")

MIN_CLIP_SECONDS = 1.0
DEFAULT_DISPLAY_SECONDS = 2.5


def _clamp(value: float, low: float, high: float) -> float:
    return min(high, max(low, value))


@dataclass(frozen=True)
class ClipWindow:
    """Source-time range selected for export."""
    start_seconds: float
    end_seconds: float
    id: str = "clip"
    duration_seconds: float = field(init=False)

    def __post_init__(self):
        start, end = float(self.start_seconds), float(self.end_seconds)
        if not (math.isfinite(start) and math.isfinite(end)):
            raise ValueError(f"Clip bounds must be finite, got {start}-{end}")
        if end <= start:
            raise ValueError(f"Clip end ({end}) must be after start ({start})")
        object.__setattr__(self, "start_seconds", start)
        object.__setattr__(self, "end_seconds", end)
        object.__setattr__(self, "duration_seconds", end - start)

    def with_bounds(self, start_seconds: float, end_seconds: float) -> "ClipWindow":
        return replace(self, start_seconds=start_seconds, end_seconds=end_seconds)

    @classmethod
    def from_dict(cls, data: Dict) -> "ClipWindow":
        start = data.get("start_seconds", data.get("startSeconds", data.get("start")))
        end = data.get("end_seconds", data.get("endSeconds", data.get("end")))
        if start is None or end is None:
            raise ValueError("Clip needs both a start and an end")
        return cls(start_seconds=float(start), end_seconds=float(end), id=str(data.get("id", "clip")))

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "start_seconds": self.start_seconds,
            "end_seconds": self.end_seconds,
            "duration_seconds": round(self.duration_seconds, 3),
        }


@dataclass(frozen=True)
class SubtitleChunk:
    """Timed caption text in absolute source time. ``end`` may be open."""
    text: str
    start: Optional[float] = None
    end: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Dict) -> "SubtitleChunk":
        """Accepts ``{"text", "timestamp": [start, end]}`` or ``{"text", "start", "end"}``."""
        timestamp = data.get("timestamp")
        if timestamp is not None:
            start = timestamp[0] if len(timestamp) > 0 else None
            end = timestamp[1] if len(timestamp) > 1 else None
        else:
            start, end = data.get("start"), data.get("end")
        return cls(
            text=str(data.get("text", "") or ""),
            start=None if start is None else float(start),
            end=None if end is None else float(end),
        )


def load_chunks(rows: Sequence) -> List[SubtitleChunk]:
    """Normalize a list of dicts and/or SubtitleChunk objects."""
    return [row if isinstance(row, SubtitleChunk) else SubtitleChunk.from_dict(row) for row in rows or []]


# ---------------------------------------------------------------------------
# Windowing
# ---------------------------------------------------------------------------
def clip_subtitle_chunks(clip: ClipWindow, chunks: Sequence[SubtitleChunk]) -> List[SubtitleChunk]:
    """Keep only chunks that overlap the clip range."""
    kept = []
    for chunk in chunks:
        start = chunk.start if chunk.start is not None else 0.0
        end = chunk.end if chunk.end is not None else start
        if start < clip.end_seconds and end > clip.start_seconds:
            kept.append(chunk)
    return kept


def find_subtitle_chunk_at_time(
    chunks: Sequence[SubtitleChunk], time_seconds: float
) -> Optional[SubtitleChunk]:
    """Chunk on screen at ``time_seconds`` (open-ended chunks last 2.5 s)."""
    for chunk in chunks:
        if chunk.start is None:
            continue
        end = chunk.end if chunk.end is not None else chunk.start + DEFAULT_DISPLAY_SECONDS
        if chunk.start <= time_seconds < end:
            return chunk
    return None


def clamp_clip_to_media_duration(clip: ClipWindow, media_duration: float) -> ClipWindow:
    """
    Shift and shrink a clip so it fits inside the source media.

    Duration is preserved where possible (the clip slides back from the end),
    never drops below MIN_CLIP_SECONDS unless the media itself is shorter.
    Unknown or non-positive media durations leave the clip untouched.
    """
    if media_duration is None or not math.isfinite(media_duration) or media_duration <= 0:
        return clip

    target = _clamp(clip.duration_seconds, MIN_CLIP_SECONDS, media_duration)
    max_start = max(0.0, media_duration - target)
    start = _clamp(clip.start_seconds, 0.0, max_start)
    end = start + target
    if end > media_duration:
        end = media_duration
        start = max(0.0, end - target)

    return clip.with_bounds(round(start, 3), round(end, 3))


def apply_trim_nudges(
    clip: ClipWindow,
    trim_start_nudge: float = 0.0,
    trim_end_nudge: float = 0.0,
    source_duration: Optional[float] = None,
) -> ClipWindow:
    """Derive a new clip from start/end nudges, keeping at least one second."""
    if source_duration is not None and math.isfinite(source_duration):
        max_end = max(MIN_CLIP_SECONDS, round(source_duration, 2))
        max_start = max(0.0, max_end - MIN_CLIP_SECONDS)
    else:
        max_end = math.inf
        max_start = math.inf

    start = round(_clamp(round(clip.start_seconds + trim_start_nudge, 2), 0.0, max_start), 2)
    min_end = round(start + MIN_CLIP_SECONDS, 2)
    end = round(_clamp(max(min_end, round(clip.end_seconds + trim_end_nudge, 2)), min_end, max_end), 2)
    return clip.with_bounds(start, end)


def derive_trim_nudges(base: ClipWindow, saved: ClipWindow) -> Dict[str, float]:
    return {
        "trim_start_nudge": round(saved.start_seconds - base.start_seconds, 2),
        "trim_end_nudge": round(saved.end_seconds - base.end_seconds, 2),
    }


# ---------------------------------------------------------------------------
# Export preparation
# ---------------------------------------------------------------------------
@dataclass
class ExportPreparation:
    """Clip and subtitles as they will actually be exported."""
    export_clip: ClipWindow
    subtitle_chunks: List[SubtitleChunk]
    clip_adjusted: bool = False
    adjustment_notice: str = ""
    duration_valid: bool = True
    validation_error: str = ""


def prepare_export(
    requested: ClipWindow,
    chunks: Sequence[SubtitleChunk],
    source_duration: Optional[float] = None,
    min_clip_seconds: float = MIN_CLIP_SECONDS,
    tolerance: float = 0.02,
) -> ExportPreparation:
    """Clamp the requested clip to the media and re-window the subtitles to it."""
    clip = clamp_clip_to_media_duration(requested, source_duration) if source_duration else requested
    adjusted = (
        abs(clip.start_seconds - requested.start_seconds) > tolerance
        or abs(clip.end_seconds - requested.end_seconds) > tolerance
    )
    prep = ExportPreparation(
        export_clip=clip,
        subtitle_chunks=clip_subtitle_chunks(clip, chunks),
        clip_adjusted=adjusted,
    )
    if adjusted:
        prep.adjustment_notice = (
            f"Clip adjusted to media range: {clip.start_seconds:.2f}s -> {clip.end_seconds:.2f}s."
        )
        logger.info(prep.adjustment_notice)
    if clip.duration_seconds < min_clip_seconds:
        prep.duration_valid = False
        prep.validation_error = (
            f"Selected clip is too short to export. "
            f"Increase duration to at least {min_clip_seconds:.2f}s."
        )
    return prep
