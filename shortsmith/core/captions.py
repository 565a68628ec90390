"""
Caption rasterization for the vertical export.

Timed subtitle chunks become clip-relative caption cues, and each cue becomes
an overlay artifact for the engine:

- TextDirective: drawbox/drawtext filters appended to the video filter chain
  (fast, needs an FFmpeg build with libfreetype).
- RasterOverlay: a transparent full-canvas PNG rendered with Pillow and
  composited with the overlay filter (works on any build with overlay).

Both share the same cue layout so switching strategy does not move captions.
"""

import logging
import math
import os
import re
import threading
import urllib.request
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple, Union

from ..errors import FilterSyntaxError
from ..utils.config import CaptionConfig, EditorState
from .clip import ClipWindow, SubtitleChunk
from .style import (
    CaptionStyle,
    ffmpeg_color_with_alpha,
    ffmpeg_hex_color,
    max_chars_per_line,
    rgba_from_hex,
    wrap_lines,
)

logger = logging.getLogger("shortsmith")

# Style paddings and radii are expressed at the base font size
STYLE_BASE_FONT_SIZE = 56
# Rough average glyph advance used to size the drawbox
BOX_GLYPH_RATIO = 0.58
BOX_MAX_WIDTH_PCT = 0.92


def _round(value: float) -> int:
    return int(math.floor(value + 0.5))


def _clamp(value: float, low: float, high: float) -> float:
    return min(high, max(low, value))


# ---------------------------------------------------------------------------
# Cues
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class CaptionCue:
    """One caption on screen: clip-relative window plus its layout."""
    start: float
    end: float
    text: str
    lines: Tuple[str, ...]
    anchor_x: int
    anchor_y: int
    font_size: int
    line_height: int


def caption_font_size(subtitle_scale: float, config: Optional[CaptionConfig] = None) -> int:
    config = config or CaptionConfig()
    return _round(_clamp(
        config.base_font_size * subtitle_scale, config.min_font_size, config.max_font_size
    ))


def build_caption_cues(
    chunks: Sequence[SubtitleChunk],
    clip: ClipWindow,
    style: CaptionStyle,
    editor: EditorState,
    canvas_size: Tuple[int, int] = (1080, 1920),
    config: Optional[CaptionConfig] = None,
) -> List[CaptionCue]:
    """
    Rebase chunks onto the clip timeline and lay them out.

    Chunks with no start, no text, a non-positive window or a start beyond
    the clip end (plus a small tolerance) are dropped. Every returned cue
    satisfies ``0 <= start < end <= clip.duration_seconds``.
    """
    config = config or CaptionConfig()
    canvas_w, canvas_h = canvas_size
    duration = clip.duration_seconds

    font_size = caption_font_size(editor.subtitle_scale, config)
    line_height = _round(font_size * config.line_spacing)
    max_chars = max_chars_per_line(
        font_size, style.letter_width, canvas_w, config.max_width_pct, config.glyph_width_ratio
    )
    anchor_x = _round(canvas_w * editor.subtitle_x_position_pct / 100)
    anchor_y = _round(canvas_h * editor.subtitle_y_offset_pct / 100)

    cues = []
    for chunk in chunks:
        if chunk.start is None:
            continue
        start = max(0.0, chunk.start - clip.start_seconds)
        if chunk.end is not None:
            end = max(0.0, chunk.end - clip.start_seconds)
        else:
            end = start + config.default_display_seconds
        if end <= start or start > duration + config.late_start_tolerance:
            continue
        end = min(end, duration)
        if end <= start:
            continue

        text = re.sub(r"\s+", " ", chunk.text or "").strip()
        if not text:
            continue
        lines = wrap_lines(style.apply_case(text), max_chars)
        if not lines:
            continue

        cues.append(CaptionCue(
            start=start,
            end=end,
            text=text,
            lines=tuple(lines),
            anchor_x=anchor_x,
            anchor_y=anchor_y,
            font_size=font_size,
            line_height=line_height,
        ))
    return cues


def _padding(style: CaptionStyle, font_size: int) -> Tuple[int, int]:
    factor = font_size / STYLE_BASE_FONT_SIZE
    return _round(style.background_padding_x * factor), _round(style.background_padding_y * factor)


# ---------------------------------------------------------------------------
# Filter-graph escaping
# ---------------------------------------------------------------------------
# A drawtext text value inside -vf goes through three parsers, outermost last:
#   1. drawtext's own expansion ("\x" -> x, "%{...}" functions)
#   2. the filter option parser (key=value pairs split on ":")
#   3. the filter graph parser (filters split on "," ";" "[" "]")
_EXPANSION_SPECIAL = "\\%"
_OPTION_SPECIAL = "\\':"
_GRAPH_SPECIAL = "\\'[],;"
_WHITESPACE = " \n\t\r"
_CONTROL_RE = re.compile(r"[\x00-\x1f\x7f]")


def _backslash_escape(text: str, special: str, edges: bool = False) -> str:
    out = []
    last = len(text) - 1
    for i, ch in enumerate(text):
        if ch in special or (edges and ch in _WHITESPACE and (i == 0 or i == last)):
            out.append("\\")
        out.append(ch)
    return "".join(out)


def _get_token(text: str, term: str) -> Tuple[str, int]:
    """Tokenize the way FFmpeg's av_get_token does. Returns (token, chars consumed)."""
    i = 0
    while i < len(text) and text[i] in _WHITESPACE:
        i += 1
    out: List[str] = []
    end = 0
    while i < len(text) and text[i] not in term:
        ch = text[i]
        i += 1
        if ch == "\\" and i < len(text):
            out.append(text[i])
            i += 1
            end = len(out)
        elif ch == "'":
            while i < len(text) and text[i] != "'":
                out.append(text[i])
                i += 1
            if i < len(text):
                i += 1
                end = len(out)
        else:
            out.append(ch)
            if ch not in _WHITESPACE:
                end = len(out)
    return "".join(out[:end]), i


def _unescape_expansion(text: str) -> str:
    out = []
    i = 0
    while i < len(text):
        ch = text[i]
        if ch == "\\" and i + 1 < len(text):
            out.append(text[i + 1])
            i += 2
            continue
        if ch == "%":
            raise FilterSyntaxError(f"Unescaped '%' would start a drawtext expansion in {text!r}")
        out.append(ch)
        i += 1
    return "".join(out)


def parse_filter_text(escaped: str) -> str:
    """Decode an escaped drawtext value the way FFmpeg would read it back."""
    graph_token, used = _get_token(escaped, "[],;")
    if used != len(escaped):
        raise FilterSyntaxError(f"Filter graph would split caption text at offset {used}")
    option_token, used = _get_token(graph_token, ":")
    if used != len(graph_token):
        raise FilterSyntaxError(f"Option parser would split caption text at offset {used}")
    return _unescape_expansion(option_token)


def escape_filter_text(text: str) -> str:
    """
    Escape caption text for a drawtext ``text=`` value inside ``-vf``.

    Raises:
        FilterSyntaxError: If the text holds control characters or the
            escaped form does not parse back to the original.
    """
    if _CONTROL_RE.search(text):
        raise FilterSyntaxError(f"Caption text contains control characters: {text!r}")
    escaped = _backslash_escape(text, _EXPANSION_SPECIAL)
    escaped = _backslash_escape(escaped, _OPTION_SPECIAL, edges=True)
    escaped = _backslash_escape(escaped, _GRAPH_SPECIAL, edges=True)
    if parse_filter_text(escaped) != text:
        raise FilterSyntaxError(f"Caption text does not survive filter escaping: {text!r}")
    return escaped


def escape_filter_path(path: str) -> str:
    """Escape a file path used as a filter option value (no drawtext expansion)."""
    if _CONTROL_RE.search(path):
        raise FilterSyntaxError(f"Path contains control characters: {path!r}")
    return _backslash_escape(_backslash_escape(path, _OPTION_SPECIAL, edges=True), _GRAPH_SPECIAL, edges=True)


def enable_expression(start: float, end: float) -> str:
    return f"'between(t,{start:.3f},{end:.3f})'"


# ---------------------------------------------------------------------------
# Overlay artifacts
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class TextDirective:
    """Filter-graph text for one cue. Times include the seek offset."""
    start: float
    end: float
    filters: Tuple[str, ...]

    @property
    def kind(self) -> str:
        return "text"


@dataclass(frozen=True)
class RasterOverlay:
    """Transparent full-canvas PNG for one cue. Times include the seek offset."""
    start: float
    end: float
    path: str

    @property
    def kind(self) -> str:
        return "raster"


OverlayArtifact = Union[TextDirective, RasterOverlay]


def build_text_directives(
    cues: Sequence[CaptionCue],
    style: CaptionStyle,
    font_path: str,
    offset: float = 0.0,
    output_width: int = 1080,
) -> List[TextDirective]:
    """One drawbox (when the style has a background) plus one drawtext per line."""
    fontfile = escape_filter_path(font_path)
    directives = []
    for cue in cues:
        pad_h, pad_v = _padding(style, cue.font_size)
        max_line_chars = max(len(line) for line in cue.lines)
        box_w = min(
            _round(max_line_chars * cue.font_size * BOX_GLYPH_RATIO) + 2 * pad_h,
            _round(output_width * BOX_MAX_WIDTH_PCT),
        )
        box_h = len(cue.lines) * cue.line_height + 2 * pad_v
        box_top = cue.anchor_y - _round(box_h / 2)
        enable = enable_expression(cue.start + offset, cue.end + offset)

        filters = []
        if style.has_background:
            filters.append(
                f"drawbox=x={cue.anchor_x - _round(box_w / 2)}:y={box_top}"
                f":w={box_w}:h={box_h}"
                f":color={ffmpeg_color_with_alpha(style.background_color, style.background_opacity)}"
                f":t=fill:enable={enable}"
            )
        for i, line in enumerate(cue.lines):
            parts = [
                f"drawtext=fontfile={fontfile}",
                f"text={escape_filter_text(line)}",
                f"fontsize={cue.font_size}",
                f"fontcolor={ffmpeg_hex_color(style.text_color)}",
                "fix_bounds=1",
                f"borderw={_round(style.outline_width)}",
                f"bordercolor={ffmpeg_hex_color(style.outline_color)}",
            ]
            if style.has_shadow:
                distance = max(1, _round(style.shadow_distance))
                parts += [
                    f"shadowcolor={ffmpeg_color_with_alpha(style.shadow_color, style.shadow_opacity)}",
                    f"shadowx={distance}",
                    f"shadowy={distance}",
                ]
            parts += [
                "box=0",
                f"x=({cue.anchor_x}-tw/2)",
                f"y={box_top + pad_v + i * cue.line_height}",
                f"enable={enable}",
            ]
            filters.append(":".join(parts))
        directives.append(TextDirective(start=cue.start + offset, end=cue.end + offset, filters=tuple(filters)))
    return directives


def _load_font(font_path: str, size: int):
    from PIL import ImageFont

    font = ImageFont.truetype(font_path, size)
    try:
        font.set_variation_by_name("Bold")
    except (OSError, ValueError):
        logger.debug(f"Font {font_path} has no Bold instance, using its default weight")
    return font


def _scale_horizontally(layer, anchor_x: int, factor: float):
    """Stretch a layer by ``factor`` around ``anchor_x`` without changing its size."""
    from PIL import Image

    if factor <= 1.0:
        return layer
    width, height = layer.size
    scaled = layer.resize((_round(width * factor), height), Image.LANCZOS)
    left = _round(anchor_x * factor - anchor_x)
    return scaled.crop((left, 0, left + width, height))


def _text_layer(cue: CaptionCue, font, canvas_size, fill, dx: int = 0, dy: int = 0,
                stroke_width: int = 0, stroke_fill=None):
    from PIL import Image, ImageDraw

    layer = Image.new("RGBA", canvas_size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(layer)
    block_h = (len(cue.lines) - 1) * cue.line_height + cue.font_size
    top = cue.anchor_y - block_h / 2
    for i, line in enumerate(cue.lines):
        draw.text(
            (cue.anchor_x + dx, top + i * cue.line_height + dy),
            line,
            font=font,
            fill=fill,
            anchor="ma",
            stroke_width=stroke_width,
            stroke_fill=stroke_fill,
        )
    return layer


def render_cue_image(
    cue: CaptionCue,
    style: CaptionStyle,
    font_path: str,
    canvas_size: Tuple[int, int] = (1080, 1920),
):
    """
    Render one cue as a transparent RGBA image the size of the output canvas.

    Layers are composited bottom to top: background box, shadow, outline,
    fill. Letter width stretches the text layers horizontally around the
    anchor; the box is sized to the stretched text.
    """
    from PIL import Image, ImageDraw

    font = _load_font(font_path, cue.font_size)
    canvas_w, _ = canvas_size
    letter_width = _clamp(style.letter_width, 1.0, 1.5)
    img = Image.new("RGBA", canvas_size, (0, 0, 0, 0))

    if style.has_background:
        pad_h, pad_v = _padding(style, cue.font_size)
        text_w = max(font.getlength(line) for line in cue.lines) * letter_width
        box_w = min(_round(text_w) + 2 * pad_h, _round(canvas_w * BOX_MAX_WIDTH_PCT))
        box_h = len(cue.lines) * cue.line_height + 2 * pad_v
        x0 = cue.anchor_x - _round(box_w / 2)
        y0 = cue.anchor_y - _round(box_h / 2)
        radius = min(_round(style.background_radius * cue.font_size / STYLE_BASE_FONT_SIZE), box_h // 2)
        box = Image.new("RGBA", canvas_size, (0, 0, 0, 0))
        ImageDraw.Draw(box).rounded_rectangle(
            [(x0, y0), (x0 + box_w, y0 + box_h)],
            radius=radius,
            fill=rgba_from_hex(style.background_color, style.background_opacity),
        )
        img = Image.alpha_composite(img, box)

    if style.has_shadow:
        distance = _round(style.shadow_distance)
        shadow = _text_layer(
            cue, font, canvas_size, rgba_from_hex(style.shadow_color, 1.0), dx=distance, dy=distance
        )
        alpha = shadow.getchannel("A").point(lambda v: _round(v * style.shadow_opacity))
        shadow.putalpha(alpha)
        img = Image.alpha_composite(img, _scale_horizontally(shadow, cue.anchor_x, letter_width))

    if style.outline_width > 0:
        outline_color = rgba_from_hex(style.outline_color, 0.95)
        outline = _text_layer(
            cue, font, canvas_size, outline_color,
            stroke_width=max(1, _round(style.outline_width)), stroke_fill=outline_color,
        )
        img = Image.alpha_composite(img, _scale_horizontally(outline, cue.anchor_x, letter_width))

    fill = _text_layer(cue, font, canvas_size, rgba_from_hex(style.text_color, 1.0))
    return Image.alpha_composite(img, _scale_horizontally(fill, cue.anchor_x, letter_width))


def build_raster_overlays(
    cues: Sequence[CaptionCue],
    style: CaptionStyle,
    font_path: str,
    out_dir: str,
    offset: float = 0.0,
    canvas_size: Tuple[int, int] = (1080, 1920),
) -> List[RasterOverlay]:
    """
    Render every cue to ``out_dir/sub_NNN.png``.

    Raises:
        OSError: If the font can't be read or a PNG can't be written.
    """
    os.makedirs(out_dir, exist_ok=True)
    overlays = []
    for i, cue in enumerate(cues):
        path = os.path.join(out_dir, f"sub_{i:03d}.png")
        render_cue_image(cue, style, font_path, canvas_size).save(path, "PNG")
        overlays.append(RasterOverlay(start=cue.start + offset, end=cue.end + offset, path=path))
    logger.debug(f"Rendered {len(overlays)} caption overlays into {out_dir}")
    return overlays


def build_overlay_graph(base_filter: str, overlays: Sequence[RasterOverlay], first_input: int = 1) -> Tuple[str, str]:
    """
    Chain PNG inputs over the geometry output.

    Returns ``(filter_complex, output_label)``. Each PNG is a single frame;
    overlay repeats it past its end and ``enable`` limits when it shows.
    """
    chains = [f"[0:v]{base_filter}[base]"]
    label = "base"
    for i, overlay in enumerate(overlays):
        nxt = f"v{i + 1}"
        chains.append(
            f"[{label}][{first_input + i}:v]overlay=0:0:enable={enable_expression(overlay.start, overlay.end)}[{nxt}]"
        )
        label = nxt
    return ";".join(chains), f"[{label}]"


def select_caption_strategy(engine) -> Optional[str]:
    """``"text"`` if the engine has drawtext, ``"raster"`` if only overlay, else None."""
    filters = engine.capabilities()
    if "drawtext" in filters:
        return "text"
    if "overlay" in filters:
        return "raster"
    return None


# ---------------------------------------------------------------------------
# Font resource
# ---------------------------------------------------------------------------
_FONT_DIRS: List[str] = []
_SYSTEM_FALLBACKS = [
    "Inter-Bold.ttf",
    "arialbd.ttf",
    "DejaVuSans-Bold.ttf",
    "LiberationSans-Bold.ttf",
    "Arial Bold.ttf",
]


def _get_font_dirs() -> List[str]:
    """Get platform-specific font directories."""
    global _FONT_DIRS
    if _FONT_DIRS:
        return _FONT_DIRS

    dirs = []
    if os.name == "nt":
        windir = os.environ.get("WINDIR", r"C:\Windows")
        dirs.append(os.path.join(windir, "Fonts"))
    else:
        dirs.extend([
            "/usr/share/fonts",
            "/usr/local/share/fonts",
            os.path.expanduser("~/.fonts"),
            os.path.expanduser("~/.local/share/fonts"),
            "/Library/Fonts",
            "/System/Library/Fonts",
        ])
    _FONT_DIRS = [d for d in dirs if os.path.isdir(d)]
    return _FONT_DIRS


def find_system_font() -> Optional[str]:
    """First bold sans-serif font found in the system font directories."""
    wanted = [name.lower() for name in _SYSTEM_FALLBACKS]
    found: Dict[str, str] = {}
    for d in _get_font_dirs():
        for root, _, files in os.walk(d):
            for f in files:
                if f.lower() in wanted and f.lower() not in found:
                    found[f.lower()] = os.path.join(root, f)
    for name in wanted:
        if name in found:
            return found[name]
    return None


class FontResource:
    """
    The caption font, fetched once from the CDN into the cache directory.

    Falls back to a system bold sans font when the download fails. ``path()``
    returns None when no font is available at all; captions are then skipped.
    """

    def __init__(self, config: Optional[CaptionConfig] = None):
        self.config = config or CaptionConfig()
        self._lock = threading.Lock()
        self._path: Optional[str] = None

    @property
    def cache_path(self) -> str:
        return os.path.join(self.config.cache_dir, self.config.font_filename)

    def _download(self) -> Optional[str]:
        target = self.cache_path
        if os.path.isfile(target) and os.path.getsize(target) > 0:
            return target
        tmp = target + ".part"
        try:
            os.makedirs(self.config.cache_dir, exist_ok=True)
            logger.info(f"Downloading caption font: {self.config.font_url}")
            urllib.request.urlretrieve(self.config.font_url, tmp)
            os.replace(tmp, target)
        except (OSError, ValueError) as e:
            logger.warning(f"Caption font download failed: {e}")
            if os.path.exists(tmp):
                os.remove(tmp)
            return None
        return target

    def path(self) -> Optional[str]:
        with self._lock:
            if self._path and os.path.isfile(self._path):
                return self._path
            self._path = self._download() or find_system_font()
            if self._path is None:
                logger.warning("No caption font available; captions will be omitted")
            return self._path


_font_resources: Dict[Tuple[str, str], FontResource] = {}
_font_resources_lock = threading.Lock()


def get_font_resource(config: Optional[CaptionConfig] = None) -> FontResource:
    """Process-wide FontResource per (font URL, cache dir)."""
    config = config or CaptionConfig()
    key = (config.font_url, config.cache_dir)
    with _font_resources_lock:
        if key not in _font_resources:
            _font_resources[key] = FontResource(config)
        return _font_resources[key]
