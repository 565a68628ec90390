"""
Configuration management for Shortsmith.

Handles render defaults, caption defaults, platform presets and the editor
state that drives both the live preview and the export.
"""

import math
import os
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from ..errors import ConfigurationError


def _clamp(value: float, low: float, high: float) -> float:
    return min(high, max(low, value))


def _finite(value, fallback: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return fallback
    return number if math.isfinite(number) else fallback


@dataclass
class RenderConfig:
    """Encoder settings for the vertical export."""
    # Output canvas (fixed 9:16)
    output_width: int = 1080
    output_height: int = 1920
    # Seconds to pre-seek before the clip start on the input side
    seek_cushion: float = 3.0
    video_codec: str = "libx264"
    # x264 preset tier and constant quality
    preset: str = "veryfast"
    crf: int = 22
    audio_codec: str = "aac"
    audio_bitrate: str = "128k"
    # Anything smaller is treated as an empty render
    min_output_bytes: int = 1024
    # Engine log lines kept for diagnostics
    log_tail_lines: int = 40
    # Hard timeout for one engine run (seconds)
    timeout: int = 3600


@dataclass
class CaptionConfig:
    """Caption layout defaults shared by both caption strategies."""
    # Font size at subtitle_scale == 1.0
    base_font_size: int = 56
    min_font_size: int = 36
    max_font_size: int = 96
    # Line height multiplier
    line_spacing: float = 1.18
    # Display time for chunks with no end timestamp
    default_display_seconds: float = 2.5
    # Chunks starting later than this past the clip end are dropped
    late_start_tolerance: float = 0.25
    # Fraction of the canvas width text may occupy
    max_width_pct: float = 0.80
    # Average glyph width as a fraction of font size
    glyph_width_ratio: float = 0.55
    font_url: str = "https://cdn.jsdelivr.net/gh/google/fonts@main/ofl/inter/Inter%5Bopsz%2Cwght%5D.ttf"
    font_filename: str = "Inter-Subtitle.ttf"
    cache_dir: str = field(
        default_factory=lambda: os.path.join(os.path.expanduser("~"), ".shortsmith", "fonts")
    )


# ----- Editor state -----

ZOOM_RANGE = (0.5, 4.0)
SUBTITLE_SCALE_RANGE = (0.7, 1.8)
SUBTITLE_X_RANGE = (10.0, 90.0)
SUBTITLE_Y_RANGE = (45.0, 92.0)


@dataclass
class EditorState:
    """
    Zoom/pan and caption placement shared by the preview and the export.

    Pan is in preview viewport pixels. Style overrides are the per-project
    caption tweaks merged over the plan's preset.
    """
    zoom: float = 1.0
    pan_x: float = 0.0
    pan_y: float = 0.0
    subtitle_scale: float = 1.0
    subtitle_x_position_pct: float = 50.0
    subtitle_y_offset_pct: float = 78.0
    show_safe_zones: bool = False
    style_overrides: Optional[Dict] = None

    def __post_init__(self):
        self.zoom = _clamp(_finite(self.zoom, 1.0), *ZOOM_RANGE)
        self.pan_x = _finite(self.pan_x, 0.0)
        self.pan_y = _finite(self.pan_y, 0.0)
        self.subtitle_scale = _clamp(_finite(self.subtitle_scale, 1.0), *SUBTITLE_SCALE_RANGE)
        self.subtitle_x_position_pct = _clamp(
            _finite(self.subtitle_x_position_pct, 50.0), *SUBTITLE_X_RANGE
        )
        self.subtitle_y_offset_pct = _clamp(
            _finite(self.subtitle_y_offset_pct, 78.0), *SUBTITLE_Y_RANGE
        )
        self.show_safe_zones = bool(self.show_safe_zones)

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> "EditorState":
        """Build from a camelCase or snake_case mapping (panel payloads use camelCase)."""
        data = data or {}

        def pick(*keys, default=None):
            for k in keys:
                if k in data and data[k] is not None:
                    return data[k]
            return default

        return cls(
            zoom=pick("zoom", default=1.0),
            pan_x=pick("pan_x", "panX", default=0.0),
            pan_y=pick("pan_y", "panY", default=0.0),
            subtitle_scale=pick("subtitle_scale", "subtitleScale", default=1.0),
            subtitle_x_position_pct=pick(
                "subtitle_x_position_pct", "subtitleXPositionPct", default=50.0
            ),
            subtitle_y_offset_pct=pick("subtitle_y_offset_pct", "subtitleYOffsetPct", default=78.0),
            show_safe_zones=pick("show_safe_zones", "showSafeZones", default=False),
            style_overrides=pick("style_overrides", "subtitleStyle"),
        )


# ----- Platform presets -----

PLATFORM_PRESETS: Dict[str, Dict] = {
    "tiktok": {
        "label": "TikTok",
        "subtitle_style": "bold_pop",
        "safe_top_pct": 10,
        "safe_bottom_pct": 20,
        "target_duration_range": (15, 60),
    },
    "instagram_reels": {
        "label": "Instagram Reels",
        "subtitle_style": "bold_pop",
        "safe_top_pct": 12,
        "safe_bottom_pct": 18,
        "target_duration_range": (15, 90),
    },
    "youtube_shorts": {
        "label": "YouTube Shorts",
        "subtitle_style": "clean_caption",
        "safe_top_pct": 12,
        "safe_bottom_pct": 14,
        "target_duration_range": (15, 60),
    },
}


def get_platform_preset(name: str) -> Dict:
    """Get a platform preset by name."""
    if name not in PLATFORM_PRESETS:
        available = ", ".join(PLATFORM_PRESETS.keys())
        raise ConfigurationError(f"Unknown platform '{name}'. Available: {available}")
    return PLATFORM_PRESETS[name]


@dataclass
class ShortPlan:
    """Which platform the short targets and which caption preset it starts from."""
    platform: str = "youtube_shorts"
    subtitle_style: Optional[str] = None
    aspect_ratio: str = "9:16"
    resolution: Tuple[int, int] = (1080, 1920)

    def __post_init__(self):
        preset = get_platform_preset(self.platform)
        if not self.subtitle_style:
            self.subtitle_style = preset["subtitle_style"]

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> "ShortPlan":
        data = data or {}
        return cls(
            platform=data.get("platform", "youtube_shorts"),
            subtitle_style=data.get("subtitle_style") or data.get("subtitleStyle"),
        )


def load_render_config(env: Optional[Dict[str, str]] = None) -> RenderConfig:
    """RenderConfig with SHORTSMITH_* environment overrides applied."""
    env = os.environ if env is None else env
    cfg = RenderConfig()
    if env.get("SHORTSMITH_PRESET"):
        cfg.preset = env["SHORTSMITH_PRESET"]
    if env.get("SHORTSMITH_CRF"):
        try:
            cfg.crf = int(env["SHORTSMITH_CRF"])
        except ValueError:
            raise ConfigurationError(f"SHORTSMITH_CRF must be an integer, got {env['SHORTSMITH_CRF']!r}")
    if env.get("SHORTSMITH_SEEK_CUSHION"):
        try:
            cfg.seek_cushion = max(0.0, float(env["SHORTSMITH_SEEK_CUSHION"]))
        except ValueError:
            raise ConfigurationError(
                f"SHORTSMITH_SEEK_CUSHION must be a number, got {env['SHORTSMITH_SEEK_CUSHION']!r}"
            )
    return cfg


def load_caption_config(env: Optional[Dict[str, str]] = None) -> CaptionConfig:
    """CaptionConfig with SHORTSMITH_FONT_URL / SHORTSMITH_CACHE_DIR applied."""
    env = os.environ if env is None else env
    cfg = CaptionConfig()
    if env.get("SHORTSMITH_FONT_URL"):
        cfg.font_url = env["SHORTSMITH_FONT_URL"]
    if env.get("SHORTSMITH_CACHE_DIR"):
        cfg.cache_dir = os.path.join(env["SHORTSMITH_CACHE_DIR"], "fonts")
    return cfg
