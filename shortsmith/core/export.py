"""
Vertical short export.

Runs one clip export end to end: mount the source, try a caption-augmented
render, fall back to a caption-free render, read and validate the output,
and assemble the result. Only one export uses an engine session at a time.

Seeking is hybrid by default: a fast input-side seek to a few seconds before
the clip, then an exact output-side trim for the remainder. If that fails
(some containers seek badly) the same render is retried with an exact seek
from the start of the file.
"""

import logging
import os
import shutil
import threading
import uuid
from dataclasses import dataclass, field, replace
from typing import Callable, List, Optional, Sequence, Tuple

from ..errors import (
    EngineExecutionError,
    ExportCancelledError,
    FilterSyntaxError,
    ResourceError,
    ShortsmithError,
)
from ..export.result import (
    ExportResult,
    build_command_preview,
    build_failure_summary,
    build_notes,
    format_seconds,
    output_filename,
)
from ..utils.config import (
    CaptionConfig,
    EditorState,
    RenderConfig,
    ShortPlan,
    load_caption_config,
    load_render_config,
)
from .captions import (
    FontResource,
    build_caption_cues,
    build_overlay_graph,
    build_raster_overlays,
    build_text_directives,
    get_font_resource,
    select_caption_strategy,
)
from .clip import ClipWindow, SubtitleChunk, load_chunks
from .engine import EngineSession, get_default_session
from .geometry import build_export_geometry, check_geometry_invariants
from .progress import (
    PROGRESS_CAPTIONS,
    PROGRESS_DONE,
    PROGRESS_INIT,
    PROGRESS_MOUNTED,
    PROGRESS_PACKAGED,
    PROGRESS_READ_OUTPUT,
    PROGRESS_VALIDATE,
    ProgressEstimator,
)
from .style import resolve_style

logger = logging.getLogger("shortsmith")

OUTPUT_NAME = "out.mp4"
FONT_NAME = "caption_font.ttf"
CAPTIONS_DIR = "captions"


# ---------------------------------------------------------------------------
# Job record
# ---------------------------------------------------------------------------
JOB_STATES = ("idle", "mounting", "caption_attempt", "encoding", "reading", "failed")


@dataclass
class ExportJob:
    """Observable state of one export."""
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    status: str = "queued"              # queued, running, succeeded, failed
    state: str = "idle"
    progress_pct: int = 0
    used_caption_burn_in: bool = False
    seek_mode: str = "hybrid"
    error: str = ""

    def transition(self, state: str):
        if state not in JOB_STATES:
            raise ValueError(f"Unknown export state: {state}")
        logger.debug(f"Export {self.id}: {self.state} -> {state}")
        self.state = state


# ---------------------------------------------------------------------------
# Seeking
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class SeekPlan:
    mode: str                # "hybrid" or "exact"
    clip_start: float
    duration: float
    input_seek: float        # applied before -i (fast, keyframe based)

    @property
    def output_seek(self) -> float:
        return self.clip_start - self.input_seek

    @property
    def caption_offset(self) -> float:
        """Filter-graph time of the first clip frame."""
        return self.clip_start - self.input_seek

    def input_args(self, source: str, extra_inputs: Sequence[str] = ()) -> List[str]:
        args = ["-ss", format_seconds(self.input_seek)] if self.mode == "hybrid" and self.input_seek > 0 else []
        args += ["-i", source]
        for path in extra_inputs:
            args += ["-i", path]
        args += ["-ss", format_seconds(self.output_seek), "-t", format_seconds(self.duration)]
        return args


def plan_seeks(clip: ClipWindow, cushion: float) -> Tuple[SeekPlan, SeekPlan]:
    """Hybrid plan and its exact-seek fallback for a clip."""
    duration = max(0.5, clip.end_seconds - clip.start_seconds)
    coarse = max(0.0, clip.start_seconds - cushion)
    return (
        SeekPlan("hybrid", clip.start_seconds, duration, coarse),
        SeekPlan("exact", clip.start_seconds, duration, 0.0),
    )


def _codec_args(cfg: RenderConfig) -> List[str]:
    return [
        "-c:v", cfg.video_codec, "-preset", cfg.preset, "-crf", str(cfg.crf),
        "-c:a", cfg.audio_codec, "-b:a", cfg.audio_bitrate,
        "-movflags", "+faststart",
    ]


def _remove_output(path: str):
    if os.path.exists(path):
        try:
            os.unlink(path)
        except OSError as e:
            logger.warning(f"{ResourceError(f'Could not remove partial output {path}: {e}')}")


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------
def export_clip(
    source_media,
    source_filename: str,
    clip: ClipWindow,
    plan: ShortPlan,
    subtitle_chunks: Sequence[SubtitleChunk],
    editor: EditorState,
    source_video_size: Tuple[float, float],
    preview_viewport=None,
    preview_video_rect=None,
    on_progress: Optional[Callable[[int], None]] = None,
    engine: Optional[EngineSession] = None,
    config: Optional[RenderConfig] = None,
    cancel_event: Optional[threading.Event] = None,
    caption_config: Optional[CaptionConfig] = None,
    font: Optional[FontResource] = None,
    job: Optional[ExportJob] = None,
) -> ExportResult:
    """
    Export one clip as a 1080x1920 MP4.

    Args:
        source_media: Path, bytes or binary file object of the source video.
        source_filename: Display name of the source (used for the output name).
        clip: Source time range to export.
        plan: Target platform and caption preset.
        subtitle_chunks: Timed captions in source time (dicts or SubtitleChunk).
        editor: Zoom/pan and caption placement from the editor.
        source_video_size: ``(width, height)`` of the source frame.
        on_progress: Called with non-decreasing integer percentages; the
            last call on success is 100.
        engine: Session to render with. Defaults to the process-wide one.
        cancel_event: Set it to stop the render; raises ExportCancelledError.
        job: Optional record updated with state/progress as the export runs.

    Raises:
        ConfigurationError: Unknown style preset or platform.
        InvalidMediaError: Source dimensions are zero or non-finite.
        EngineExecutionError: The caption-free render failed or produced no output.
        ResourceError: The source could not be mounted or the output could not be read.
        ExportCancelledError: ``cancel_event`` was set.
    """
    config = config or load_render_config()
    caption_config = caption_config or load_caption_config()
    engine = engine or get_default_session()
    font = font or get_font_resource(caption_config)
    job = job or ExportJob()
    if not isinstance(plan, ShortPlan):
        plan = ShortPlan.from_dict(plan)
    if not isinstance(editor, EditorState):
        editor = EditorState.from_dict(editor)
    chunks = load_chunks(subtitle_chunks)

    style = resolve_style(plan.subtitle_style, editor.style_overrides)
    source_w, source_h = source_video_size
    geometry = build_export_geometry(
        source_w, source_h, editor,
        preview_viewport=preview_viewport,
        preview_video_rect=preview_video_rect,
        output_width=config.output_width,
        output_height=config.output_height,
    )
    canvas = (geometry.output_width, geometry.output_height)
    warnings: List[str] = []
    check = check_geometry_invariants(
        source_w, source_h, geometry, config.output_width, config.output_height
    )
    if not check.ok:
        for violation in check.violations:
            logger.warning(f"Export geometry: {violation}")
        warnings.extend(check.violations)

    hybrid, exact = plan_seeks(clip, config.seek_cushion)
    filename = output_filename(source_filename, plan.platform, clip)

    def _emit(pct: int):
        job.progress_pct = pct
        if on_progress:
            on_progress(pct)

    estimator = ProgressEstimator(hybrid.duration, emit=_emit)
    used = {"seek": hybrid, "captions": False}

    def _check_cancel():
        if cancel_event is not None and cancel_event.is_set():
            raise ExportCancelledError("Export cancelled")

    def _attempt(mounted, seek: SeekPlan, video_args_for, extra_inputs: Sequence[str]):
        _check_cancel()
        estimator.start_render()
        args = (
            seek.input_args(mounted.input_name, extra_inputs)
            + video_args_for(seek)
            + _codec_args(config)
            + [OUTPUT_NAME]
        )
        with estimator.ticking():
            engine.run(
                args, cwd=mounted.directory, cancel_event=cancel_event,
                timeout=config.timeout, log_tail_lines=config.log_tail_lines,
            )

    def _render(mounted, output_path: str, video_args_for, extra_inputs: Sequence[str] = ()) -> SeekPlan:
        try:
            _attempt(mounted, hybrid, video_args_for, extra_inputs)
            return hybrid
        except EngineExecutionError as e:
            # no input-side seek: the exact plan would run the same command
            if hybrid.input_seek <= 0:
                raise
            logger.warning(f"Hybrid-seek render failed, retrying with exact seek: {e.message}")
            _remove_output(output_path)
        _attempt(mounted, exact, video_args_for, extra_inputs)
        return exact

    with engine.acquire():
        job.status = "running"
        try:
            estimator.report(PROGRESS_INIT)
            job.transition("mounting")
            with engine.mount(source_media, source_filename) as mounted, \
                    engine.subscribe(on_log=estimator.on_log_line, on_progress=estimator.on_native):
                estimator.report(PROGRESS_MOUNTED)
                output_path = os.path.join(mounted.directory, OUTPUT_NAME)

                def base_video(seek):
                    return ["-vf", geometry.filter]

                cues = build_caption_cues(chunks, clip, style, editor, canvas, caption_config)
                strategy = None
                caption_note = ""
                if not cues:
                    caption_note = "Rendered without burned subtitles (no subtitle chunks in the clip)."
                else:
                    strategy = select_caption_strategy(engine)
                    font_path = font.path() if strategy else None
                    if strategy is None:
                        caption_note = "Rendered without burned subtitles (engine has no drawtext or overlay filter)."
                    elif font_path is None:
                        caption_note = "Rendered without burned subtitles (caption font unavailable)."
                        strategy = None

                if strategy:
                    estimator.report(PROGRESS_CAPTIONS)
                    job.transition("caption_attempt")
                    try:
                        if strategy == "text":
                            shutil.copyfile(font_path, os.path.join(mounted.directory, FONT_NAME))

                            def caption_video(seek):
                                directives = build_text_directives(
                                    cues, style, FONT_NAME, seek.caption_offset, geometry.output_width
                                )
                                filters = [geometry.filter] + [f for d in directives for f in d.filters]
                                return ["-vf", ",".join(filters)]

                            used["seek"] = _render(mounted, output_path, caption_video)
                        else:
                            overlays = build_raster_overlays(
                                cues, style, font_path, os.path.join(mounted.directory, CAPTIONS_DIR),
                                canvas_size=canvas,
                            )
                            inputs = [os.path.relpath(o.path, mounted.directory) for o in overlays]

                            def caption_video(seek):
                                shifted = [
                                    replace(o, start=o.start + seek.caption_offset, end=o.end + seek.caption_offset)
                                    for o in overlays
                                ]
                                graph, label = build_overlay_graph(geometry.filter, shifted)
                                return ["-filter_complex", graph, "-map", label, "-map", "0:a?"]

                            used["seek"] = _render(mounted, output_path, caption_video, inputs)
                        used["captions"] = True
                    except (FilterSyntaxError, EngineExecutionError, OSError, MemoryError) as e:
                        reason = e.message if isinstance(e, ShortsmithError) else (str(e) or type(e).__name__)
                        logger.warning(f"Caption burn-in failed, retrying export without subtitles: {reason}")
                        warnings.append(f"Caption burn-in failed: {reason}")
                        caption_note = "Rendered without burned subtitles (caption burn-in failed; see warnings)."
                        _remove_output(output_path)

                if not used["captions"]:
                    job.transition("encoding")
                    used["seek"] = _render(mounted, output_path, base_video)

                job.used_caption_burn_in = used["captions"]
                job.seek_mode = used["seek"].mode
                job.transition("reading")
                estimator.report(PROGRESS_READ_OUTPUT)
                if not os.path.isfile(output_path) or os.path.getsize(output_path) < config.min_output_bytes:
                    raise EngineExecutionError(
                        "Rendered output is empty. Clip timing may be outside the source video range."
                    )
                try:
                    with open(output_path, "rb") as f:
                        data = f.read()
                except OSError as e:
                    raise ResourceError(f"Could not read rendered output: {e}")
                estimator.report(PROGRESS_VALIDATE)

                seek = used["seek"]
                result = ExportResult(
                    file_bytes=data,
                    filename=filename,
                    command_preview=build_command_preview(
                        source_filename, filename, seek.mode, clip.start_seconds,
                        hybrid.input_seek, hybrid.output_seek, seek.duration, geometry.filter,
                        strategy if used["captions"] else None, config,
                    ),
                    notes=build_notes(
                        plan.platform, seek.mode, clip.start_seconds,
                        hybrid.input_seek, hybrid.output_seek, geometry, style, editor,
                        used["captions"], strategy, caption_note,
                        preview_viewport, preview_video_rect, engine.version(),
                    ),
                    captions_burned_in=used["captions"],
                    seek_mode=seek.mode,
                    geometry=geometry,
                    caption_strategy=strategy if used["captions"] else None,
                    warnings=warnings,
                )
                estimator.report(PROGRESS_PACKAGED)
        except ShortsmithError as e:
            job.status = "failed"
            job.transition("failed")
            job.error = e.message
            e.last_progress = estimator.last
            e.diagnostics = build_failure_summary(
                clip, hybrid.duration, used["seek"].mode, used["captions"], len(chunks), source_filename
            )
            raise

    job.transition("idle")
    job.status = "succeeded"
    estimator.report(PROGRESS_DONE)
    logger.info(
        f"Exported {filename} ({result.size_bytes / (1024 * 1024):.1f} MB, "
        f"seek={result.seek_mode}, captions={result.captions_burned_in})"
    )
    return result
