"""
Export geometry.

Maps an arbitrary source frame onto the fixed vertical output canvas under
the editor's zoom and pan, producing a scale/pad/crop filter chain that
reproduces what the preview shows.
"""

import json
import math
from dataclasses import asdict, dataclass
from typing import Dict, List, Optional, Tuple

from ..errors import InvalidMediaError

DEFAULT_VIEWPORT_WIDTH = 320


def round_half_up(value: float) -> int:
    """Round .5 towards +inf, the way the browser preview rounds."""
    return int(math.floor(value + 0.5))


def _clamp(value: float, low: float, high: float) -> float:
    return min(high, max(low, value))


def _size(value) -> Optional[Tuple[float, float]]:
    """Accept ``(w, h)``, ``{"width", "height"}`` or None."""
    if value is None:
        return None
    if isinstance(value, dict):
        return value.get("width"), value.get("height")
    width, height = value
    return width, height


def _positive_finite(value) -> bool:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return False
    return math.isfinite(number) and number > 0


@dataclass(frozen=True)
class ExportGeometry:
    filter: str
    scaled_width: int
    scaled_height: int
    canvas_width: int
    canvas_height: int
    pad_x: int
    pad_y: int
    crop_x: int
    crop_y: int
    output_width: int
    output_height: int
    used_preview_video_rect: bool

    @property
    def mode(self) -> str:
        """``"pad"`` when the scaled frame is smaller than the output on an axis."""
        if self.scaled_width < self.output_width or self.scaled_height < self.output_height:
            return "pad"
        return "crop"

    def to_dict(self) -> Dict:
        data = asdict(self)
        data["mode"] = self.mode
        return data


def build_export_geometry(
    source_width: float,
    source_height: float,
    editor,
    preview_viewport=None,
    preview_video_rect=None,
    output_width: int = 1080,
    output_height: int = 1920,
) -> ExportGeometry:
    """
    Resolve the scale/pad/crop chain for one export.

    Args:
        source_width, source_height: Display size of the source frame.
        editor: Anything with ``zoom``, ``pan_x`` and ``pan_y`` (an EditorState).
        preview_viewport: Preview viewport size in CSS pixels. Defaults to
            320 wide at 9:16.
        preview_video_rect: Size of the video element as rendered in the
            preview. When valid, its size relative to the viewport wins over
            the zoom-derived size, so the export matches what was seen.

    Raises:
        InvalidMediaError: If a source dimension is zero, negative or non-finite.
    """
    if not (_positive_finite(source_width) and _positive_finite(source_height)):
        raise InvalidMediaError(
            f"Source video has invalid dimensions: {source_width}x{source_height}"
        )
    src_w, src_h = float(source_width), float(source_height)

    out_w = max(1, round_half_up(output_width))
    out_h = max(1, round_half_up(output_height))

    viewport = _size(preview_viewport)
    vp_w = max(1.0, float(viewport[0])) if viewport and _positive_finite(viewport[0]) else DEFAULT_VIEWPORT_WIDTH
    if viewport and _positive_finite(viewport[1]):
        vp_h = max(1.0, float(viewport[1]))
    else:
        vp_h = vp_w * 16 / 9

    rect = _size(preview_video_rect)
    use_rect = bool(rect) and _positive_finite(rect[0]) and _positive_finite(rect[1])

    zoom = float(getattr(editor, "zoom", 1.0) or 1.0)
    pan_x = float(getattr(editor, "pan_x", 0.0) or 0.0)
    pan_y = float(getattr(editor, "pan_y", 0.0) or 0.0)

    base_scale = min(out_w / src_w, out_h / src_h)
    scale = base_scale * max(0.2, zoom)

    if use_rect:
        scaled_w = max(1, round_half_up(float(rect[0]) / vp_w * out_w))
        scaled_h = max(1, round_half_up(float(rect[1]) / vp_h * out_h))
    else:
        scaled_w = max(1, round_half_up(src_w * scale))
        scaled_h = max(1, round_half_up(src_h * scale))

    pan_x_out = pan_x / vp_w * out_w
    pan_y_out = pan_y / vp_h * out_h

    canvas_w = max(out_w, scaled_w)
    canvas_h = max(out_h, scaled_h)

    # Pan moves the frame inside the padding on axes where it is smaller
    # than the output, and moves the crop window on axes where it is not.
    pad_x = round_half_up(_clamp(
        (canvas_w - scaled_w) / 2 + (pan_x_out if scaled_w < out_w else 0),
        0, max(0, canvas_w - scaled_w),
    ))
    pad_y = round_half_up(_clamp(
        (canvas_h - scaled_h) / 2 + (pan_y_out if scaled_h < out_h else 0),
        0, max(0, canvas_h - scaled_h),
    ))
    crop_x = round_half_up(_clamp(
        (canvas_w - out_w) / 2 - (pan_x_out if scaled_w >= out_w else 0),
        0, max(0, canvas_w - out_w),
    ))
    crop_y = round_half_up(_clamp(
        (canvas_h - out_h) / 2 - (pan_y_out if scaled_h >= out_h else 0),
        0, max(0, canvas_h - out_h),
    ))

    filters = [f"scale={scaled_w}:{scaled_h}"]
    if canvas_w != scaled_w or canvas_h != scaled_h:
        filters.append(f"pad={canvas_w}:{canvas_h}:{pad_x}:{pad_y}:black")
    filters.append(f"crop={out_w}:{out_h}:{crop_x}:{crop_y}")
    filters.append("format=yuv420p")

    return ExportGeometry(
        filter=",".join(filters),
        scaled_width=scaled_w,
        scaled_height=scaled_h,
        canvas_width=canvas_w,
        canvas_height=canvas_h,
        pad_x=pad_x,
        pad_y=pad_y,
        crop_x=crop_x,
        crop_y=crop_y,
        output_width=out_w,
        output_height=out_h,
        used_preview_video_rect=use_rect,
    )


# ---------------------------------------------------------------------------
# Invariant checks
# ---------------------------------------------------------------------------
@dataclass
class GeometryCheck:
    ok: bool
    violations: List[str]
    metrics: Dict[str, float]


def _ratio_delta_pct(a: float, b: float) -> float:
    if not (math.isfinite(a) and math.isfinite(b)) or a <= 0 or b <= 0:
        return math.inf
    return abs(a - b) / max(a, b) * 100


def check_geometry_invariants(
    source_width: float,
    source_height: float,
    geometry: ExportGeometry,
    expected_output_width: int = 1080,
    expected_output_height: int = 1920,
    max_scale_delta_pct: float = 1.5,
    max_aspect_delta_pct: float = 1.5,
) -> GeometryCheck:
    """Detect output size mismatch, non-uniform scaling and aspect drift."""
    violations = []
    src_w = max(1.0, float(source_width))
    src_h = max(1.0, float(source_height))
    scaled_w = max(1, geometry.scaled_width)
    scaled_h = max(1, geometry.scaled_height)
    max_scale_delta_pct = max(0.0, max_scale_delta_pct)
    max_aspect_delta_pct = max(0.0, max_aspect_delta_pct)

    if (geometry.output_width, geometry.output_height) != (expected_output_width, expected_output_height):
        violations.append(
            f"Output resolution mismatch: expected {expected_output_width}x{expected_output_height}, "
            f"got {geometry.output_width}x{geometry.output_height}."
        )

    scale_x = scaled_w / src_w
    scale_y = scaled_h / src_h
    source_aspect = src_w / src_h
    scaled_aspect = scaled_w / scaled_h
    scale_delta = _ratio_delta_pct(scale_x, scale_y)
    aspect_delta = _ratio_delta_pct(source_aspect, scaled_aspect)

    if scale_delta > max_scale_delta_pct:
        violations.append(
            f"Non-uniform scaling detected: scaleX={scale_x:.4f}, scaleY={scale_y:.4f}, "
            f"delta={scale_delta:.3f}% (max {max_scale_delta_pct:.3f}%)."
        )
    if aspect_delta > max_aspect_delta_pct:
        violations.append(
            f"Aspect ratio drift detected: source={source_aspect:.6f}, scaled={scaled_aspect:.6f}, "
            f"delta={aspect_delta:.3f}% (max {max_aspect_delta_pct:.3f}%)."
        )

    return GeometryCheck(
        ok=not violations,
        violations=violations,
        metrics={
            "source_aspect_ratio": round(source_aspect, 4),
            "scaled_aspect_ratio": round(scaled_aspect, 4),
            "aspect_ratio_delta_pct": round(aspect_delta, 4),
            "scale_x": round(scale_x, 4),
            "scale_y": round(scale_y, 4),
            "scale_delta_pct": round(scale_delta, 4),
        },
    )


def assert_geometry_invariants(
    source_width: float,
    source_height: float,
    geometry: ExportGeometry,
    context_label: str = "",
    **limits,
) -> GeometryCheck:
    """Like check_geometry_invariants, but raise ValueError on any violation."""
    result = check_geometry_invariants(source_width, source_height, geometry, **limits)
    if result.ok:
        return result
    label = f"[{context_label}] " if context_label else ""
    detail = "\n".join(
        [f"{label}Export geometry invariant violation."]
        + result.violations
        + [f"metrics={json.dumps(result.metrics)}"]
    )
    raise ValueError(detail)
