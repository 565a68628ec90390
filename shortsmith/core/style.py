"""
Caption style resolution.

A style is a named preset (bold_pop, clean_caption, creator_neon) with the
project's per-field overrides merged on top. Resolution is pure: the same
preset and overrides always produce the same fully populated CaptionStyle,
which both caption strategies and the live preview consume.
"""

import math
import re
from dataclasses import asdict, dataclass
from typing import Dict, List, Optional, Tuple

from ..errors import ConfigurationError

MAX_LETTER_WIDTH = 1.5
_HEX_COLOR_RE = re.compile(r"^#?([a-fA-F0-9]{6})$")


@dataclass(frozen=True)
class CaptionStyle:
    """Concrete caption style. Every field has a value."""
    preset: str
    text_color: str = "#FFFFFF"
    outline_color: str = "#0A0A0A"
    outline_width: float = 3.0          # px at the base font size
    shadow_color: str = "#000000"
    shadow_opacity: float = 0.4
    shadow_distance: float = 2.5        # px, diagonal down-right
    text_case: str = "none"             # "none" or "uppercase"
    background_enabled: bool = False
    background_color: str = "#111111"
    background_opacity: float = 0.75
    background_radius: float = 24
    background_padding_x: float = 24
    background_padding_y: float = 12
    letter_width: float = 1.0           # horizontal glyph scale, 1.0-1.5

    @property
    def has_shadow(self) -> bool:
        return self.shadow_opacity > 0 and self.shadow_distance > 0

    @property
    def has_background(self) -> bool:
        return self.background_enabled and self.background_opacity > 0

    def apply_case(self, text: str) -> str:
        return text.upper() if self.text_case == "uppercase" else text

    def to_dict(self) -> Dict:
        return asdict(self)


STYLES: Dict[str, CaptionStyle] = {
    "bold_pop": CaptionStyle(
        preset="bold_pop",
        text_color="#FFFFFF",
        letter_width=1.08,
        outline_color="#0A0A0A",
        outline_width=3.8,
        shadow_color="#000000",
        shadow_opacity=0.44,
        shadow_distance=3.2,
        text_case="uppercase",
        background_color="#111111",
        background_opacity=0.8,
        background_radius=28,
        background_padding_x=26,
        background_padding_y=14,
    ),
    "clean_caption": CaptionStyle(
        preset="clean_caption",
        text_color="#FFFFFF",
        letter_width=1.04,
        outline_color="#2A2A2A",
        outline_width=3.0,
        shadow_color="#000000",
        shadow_opacity=0.32,
        shadow_distance=2.2,
        text_case="none",
        background_color="#111111",
        background_opacity=0.72,
        background_radius=22,
        background_padding_x=22,
        background_padding_y=11,
    ),
    "creator_neon": CaptionStyle(
        preset="creator_neon",
        text_color="#E8F7FF",
        letter_width=1.06,
        outline_color="#0B2A66",
        outline_width=3.4,
        shadow_color="#031129",
        shadow_opacity=0.48,
        shadow_distance=2.8,
        text_case="none",
        background_color="#08111F",
        background_opacity=0.74,
        background_radius=24,
        background_padding_x=24,
        background_padding_y=12,
    ),
}

STYLE_LABELS = {
    "bold_pop": "Bold Pop",
    "clean_caption": "Clean Caption",
    "creator_neon": "Creator Neon",
}

DEFAULT_STYLE = "clean_caption"


# ---------------------------------------------------------------------------
# Normalizers
# ---------------------------------------------------------------------------
def _clamp(value: float, low: float, high: float) -> float:
    return min(high, max(low, value))


def normalize_hex_color(value, fallback: str) -> str:
    match = _HEX_COLOR_RE.match(str(value if value is not None else "").strip())
    if not match:
        return fallback
    return f"#{match.group(1).upper()}"


def _pick_number(overrides: Dict, keys: Tuple[str, ...], fallback: float, low: float, high: float) -> float:
    for key in keys:
        value = overrides.get(key)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            continue
        if math.isfinite(value):
            return _clamp(float(value), low, high)
    return fallback


def _pick(overrides: Dict, *keys):
    for key in keys:
        if overrides.get(key) is not None:
            return overrides[key]
    return None


def _normalize_case(value, fallback: str) -> str:
    if value == "uppercase":
        return "uppercase"
    if value in ("none", "original"):
        return "none"
    return fallback


_BACKGROUND_KEYS = (
    "background_color", "background_opacity", "background_radius",
    "background_padding", "background_padding_x", "background_padding_y",
)


def _snake_case(overrides: Dict) -> Dict:
    """Accept panel-style camelCase keys alongside snake_case ones."""
    out = {}
    for key, value in overrides.items():
        out[re.sub(r"(?<!^)(?=[A-Z])", "_", key).lower()] = value
    return out


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------
def get_preset_style(name: str) -> CaptionStyle:
    if name not in STYLES:
        available = ", ".join(STYLES.keys())
        raise ConfigurationError(f"Unknown subtitle style preset '{name}'. Available: {available}")
    return STYLES[name]


def resolve_style(preset_name: str, overrides: Optional[Dict] = None) -> CaptionStyle:
    """
    Merge a preset with per-project overrides into one concrete style.

    Args:
        preset_name: Preset used when the overrides don't name their own.
        overrides:   Partial style mapping; numbers are clamped into their
                     allowed ranges, malformed colors fall back to the preset.

    Raises:
        ConfigurationError: If either preset name is unknown.
    """
    o = _snake_case(overrides or {})
    preset = o.get("preset") or preset_name
    base = get_preset_style(preset)

    legacy_background = any(o.get(k) is not None for k in _BACKGROUND_KEYS)
    background_enabled = o.get("background_enabled")
    if not isinstance(background_enabled, bool):
        background_enabled = True if legacy_background else base.background_enabled

    return CaptionStyle(
        preset=preset,
        text_color=normalize_hex_color(o.get("text_color"), base.text_color),
        outline_color=normalize_hex_color(
            _pick(o, "outline_color", "border_color"), base.outline_color
        ),
        outline_width=_pick_number(o, ("outline_width", "border_width"), base.outline_width, 0, 8),
        shadow_color=normalize_hex_color(o.get("shadow_color"), base.shadow_color),
        shadow_opacity=_pick_number(o, ("shadow_opacity",), base.shadow_opacity, 0, 1),
        shadow_distance=_pick_number(o, ("shadow_distance",), base.shadow_distance, 0, 12),
        text_case=_normalize_case(o.get("text_case"), base.text_case),
        background_enabled=background_enabled,
        background_color=normalize_hex_color(o.get("background_color"), base.background_color),
        background_opacity=_pick_number(o, ("background_opacity",), base.background_opacity, 0, 1),
        background_radius=_pick_number(o, ("background_radius",), base.background_radius, 0, 80),
        background_padding_x=_pick_number(
            o, ("background_padding_x", "background_padding"), base.background_padding_x, 0, 80
        ),
        background_padding_y=_pick_number(
            o, ("background_padding_y", "background_padding"), base.background_padding_y, 0, 48
        ),
        letter_width=_pick_number(o, ("letter_width",), base.letter_width, 1.0, MAX_LETTER_WIDTH),
    )


# Quick looks offered next to the three base presets
QUICK_STYLE_PRESETS: Dict[str, Dict] = {
    "yt_classic": {
        "label": "YouTube Classic",
        "description": "White captions with a clean charcoal border and soft shadow.",
        "preset": "clean_caption",
        "overrides": {},
    },
    "reel_bold": {
        "label": "Reels Bold",
        "description": "Heavy uppercase text with a thicker border and stronger drop shadow.",
        "preset": "bold_pop",
        "overrides": {"outline_width": 4.6, "shadow_opacity": 0.5, "shadow_distance": 3.6},
    },
    "tiktok_pop": {
        "label": "TikTok Pop",
        "description": "Warm bright text, dense border, and punchier shadow separation.",
        "preset": "bold_pop",
        "overrides": {
            "text_color": "#FFF3B0", "outline_color": "#141414", "outline_width": 4.4,
            "shadow_color": "#2B1118", "shadow_opacity": 0.56, "shadow_distance": 3.8,
        },
    },
    "podcast_soft": {
        "label": "Podcast Soft",
        "description": "Soft off-white text with a subtle slate border and restrained shadow.",
        "preset": "clean_caption",
        "overrides": {
            "text_color": "#F4F7FA", "outline_color": "#425466", "outline_width": 2,
            "shadow_opacity": 0.24, "shadow_distance": 1.8,
        },
    },
    "minimal_clear": {
        "label": "Minimal Clear",
        "description": "Lean caption styling with a crisp border and barely-there shadow.",
        "preset": "clean_caption",
        "overrides": {"outline_width": 2.8, "shadow_opacity": 0.18, "shadow_distance": 1.2},
    },
    "boxed_focus": {
        "label": "Boxed Focus",
        "description": "High-contrast subtitles with a soft rounded background for busy footage.",
        "preset": "clean_caption",
        "overrides": {
            "outline_width": 2.2, "shadow_opacity": 0.18, "shadow_distance": 1.4,
            "background_enabled": True, "background_color": "#111111",
            "background_opacity": 0.78, "background_radius": 26,
            "background_padding_x": 24, "background_padding_y": 12,
        },
    },
    "neon_creator": {
        "label": "Neon Creator",
        "description": "Cool cyan text with electric edge contrast and a moody shadow.",
        "preset": "creator_neon",
        "overrides": {
            "outline_color": "#0F3B82", "outline_width": 3.8, "shadow_color": "#010916",
            "shadow_opacity": 0.54, "shadow_distance": 3.1,
        },
    },
}


def resolve_quick_style(quick_id: str) -> CaptionStyle:
    if quick_id not in QUICK_STYLE_PRESETS:
        available = ", ".join(QUICK_STYLE_PRESETS.keys())
        raise ConfigurationError(f"Unknown quick style '{quick_id}'. Available: {available}")
    entry = QUICK_STYLE_PRESETS[quick_id]
    return resolve_style(entry["preset"], entry["overrides"])


# ---------------------------------------------------------------------------
# Color helpers
# ---------------------------------------------------------------------------
def rgb_from_hex(hex_color: str) -> Tuple[int, int, int]:
    h = normalize_hex_color(hex_color, "#000000")
    return int(h[1:3], 16), int(h[3:5], 16), int(h[5:7], 16)


def rgba_from_hex(hex_color: str, alpha: float = 1.0) -> Tuple[int, int, int, int]:
    """Pillow RGBA tuple; alpha is 0.0-1.0."""
    r, g, b = rgb_from_hex(hex_color)
    return r, g, b, int(round(_clamp(alpha, 0.0, 1.0) * 255))


def ffmpeg_hex_color(hex_color: str) -> str:
    return "0x" + normalize_hex_color(hex_color, "#000000")[1:]


def ffmpeg_color_with_alpha(hex_color: str, alpha: float) -> str:
    return f"{ffmpeg_hex_color(hex_color)}@{_clamp(alpha, 0.0, 1.0):.3f}"


# ---------------------------------------------------------------------------
# Line layout helpers
# ---------------------------------------------------------------------------
def max_chars_per_line(
    font_size: float,
    letter_width: float = 1.0,
    canvas_width: int = 1080,
    width_pct: float = 0.80,
    glyph_ratio: float = 0.55,
) -> int:
    """Character budget per line from font size and an average glyph width."""
    lw = _clamp(letter_width, 1.0, MAX_LETTER_WIDTH)
    return max(10, int(math.floor((canvas_width * width_pct) / (font_size * glyph_ratio * lw) + 0.5)))


def wrap_lines(text: str, max_chars: int) -> List[str]:
    """Greedy word wrap. Words are never split, even when longer than a line."""
    words = (text or "").split()
    lines: List[str] = []
    current = ""
    for word in words:
        if current and len(current) + 1 + len(word) > max_chars:
            lines.append(current)
            current = word
        else:
            current = f"{current} {word}" if current else word
    if current:
        lines.append(current)
    return lines


def get_style_info() -> List[Dict]:
    """Serializable preset listing for the panel and the CLI."""
    result = [
        {"name": name, "label": STYLE_LABELS.get(name, name), "kind": "preset", "style": s.to_dict()}
        for name, s in STYLES.items()
    ]
    for quick_id, entry in QUICK_STYLE_PRESETS.items():
        result.append({
            "name": quick_id,
            "label": entry["label"],
            "kind": "quick",
            "description": entry["description"],
            "style": resolve_quick_style(quick_id).to_dict(),
        })
    return result
