"""
Tests for Shortsmith core functionality.

Geometry, style, clip and caption logic is pure and tested directly.
Probe tests use a generated test video and are skipped without FFmpeg.
"""

import os
import shutil
import subprocess
import tempfile
import pytest

HAS_FFMPEG = shutil.which("ffmpeg") is not None and shutil.which("ffprobe") is not None
needs_ffmpeg = pytest.mark.skipif(not HAS_FFMPEG, reason="ffmpeg/ffprobe not installed")


# Generate test media files

def generate_test_video(output_path: str, duration: float = 6.0, size: str = "640x360"):
    """Generate a landscape test video with a tone on the audio track."""
    cmd = [
        "ffmpeg", "-y", "-hide_banner", "-loglevel", "error",
        "-f", "lavfi", "-i", f"testsrc=size={size}:rate=30:duration={duration}",
        "-f", "lavfi", "-i", f"sine=frequency=440:duration={duration}",
        "-c:v", "libx264", "-preset", "ultrafast", "-crf", "28",
        "-c:a", "aac", "-b:a", "128k",
        "-shortest",
        output_path,
    ]
    subprocess.run(cmd, check=True, timeout=60)


# ---- Fixtures ----

@pytest.fixture(scope="session")
def test_video():
    """Create a temporary test video file."""
    if not HAS_FFMPEG:
        pytest.skip("ffmpeg/ffprobe not installed")
    with tempfile.NamedTemporaryFile(suffix=".mp4", delete=False) as f:
        path = f.name
    generate_test_video(path)
    yield path
    os.unlink(path)


# ---- Media Probe Tests ----

class TestMediaProbe:
    @needs_ffmpeg
    def test_probe_video(self, test_video):
        from shortsmith.utils.media import probe
        info = probe(test_video)
        assert info.has_video
        assert info.has_audio
        assert info.video.width == 640
        assert info.video.height == 360
        assert info.video.display_size == (640, 360)
        assert info.video.fps == pytest.approx(30.0, abs=1.0)
        assert info.duration > 5.0

    def test_probe_nonexistent(self):
        from shortsmith.utils.media import probe
        with pytest.raises(FileNotFoundError):
            probe("/nonexistent/file.mp4")

    def test_rotated_display_size(self):
        from shortsmith.utils.media import VideoStream
        stream = VideoStream(width=1920, height=1080, rotation=-90)
        assert stream.display_size == (1080, 1920)


# ---- Geometry Tests ----

class TestGeometry:
    def test_landscape_fit_pads_vertically(self):
        from shortsmith.core.geometry import build_export_geometry
        from shortsmith.utils.config import EditorState

        g = build_export_geometry(1920, 1080, EditorState())
        assert (g.scaled_width, g.scaled_height) == (1080, 608)
        assert (g.canvas_width, g.canvas_height) == (1080, 1920)
        assert (g.pad_x, g.pad_y) == (0, 656)
        assert (g.crop_x, g.crop_y) == (0, 0)
        assert g.mode == "pad"
        assert g.filter == "scale=1080:608,pad=1080:1920:0:656:black,crop=1080:1920:0:0,format=yuv420p"
        assert not g.used_preview_video_rect

    def test_preview_rect_wins_and_crops(self):
        from shortsmith.core.geometry import build_export_geometry
        from shortsmith.utils.config import EditorState

        g = build_export_geometry(
            1920, 1080, EditorState(zoom=3.2),
            preview_viewport=(360, 640), preview_video_rect={"width": 1138, "height": 640},
        )
        assert g.used_preview_video_rect
        assert (g.scaled_width, g.scaled_height) == (3414, 1920)
        assert g.crop_x == 1167
        assert g.mode == "crop"
        assert g.filter == "scale=3414:1920,crop=1080:1920:1167:0,format=yuv420p"

    def test_zoom_out_pads_both_axes(self):
        from shortsmith.core.geometry import build_export_geometry
        from shortsmith.utils.config import EditorState

        g = build_export_geometry(1920, 1080, EditorState(zoom=0.5))
        assert (g.scaled_width, g.scaled_height) == (540, 304)
        assert (g.pad_x, g.pad_y) == (270, 808)
        assert "pad=1080:1920:270:808:black" in g.filter

    def test_pan_moves_frame_inside_padding(self):
        from shortsmith.core.geometry import build_export_geometry
        from shortsmith.utils.config import EditorState

        g = build_export_geometry(1920, 1080, EditorState(pan_y=100), preview_viewport=(540, 960))
        assert g.pad_y == 856

    def test_pan_clamps_crop_window(self):
        from shortsmith.core.geometry import build_export_geometry
        from shortsmith.utils.config import EditorState

        centered = build_export_geometry(1920, 1080, EditorState(zoom=2.0), preview_viewport=(540, 960))
        assert (centered.scaled_width, centered.scaled_height) == (2160, 1215)
        assert centered.crop_x == 540
        assert centered.pad_y == 353

        far_right = build_export_geometry(1920, 1080, EditorState(zoom=2.0, pan_x=10000), preview_viewport=(540, 960))
        far_left = build_export_geometry(1920, 1080, EditorState(zoom=2.0, pan_x=-10000), preview_viewport=(540, 960))
        assert far_right.crop_x == 0
        assert far_left.crop_x == 1080

    def test_zoom_is_clamped(self):
        from shortsmith.utils.config import EditorState
        assert EditorState(zoom=10).zoom == 4.0
        assert EditorState(zoom=0.1).zoom == 0.5
        assert EditorState(zoom=float("nan")).zoom == 1.0

    @pytest.mark.parametrize("size", [(0, 1080), (1920, -1), (float("inf"), 1080), (None, 1080)])
    def test_invalid_source_dimensions(self, size):
        from shortsmith.core.geometry import build_export_geometry
        from shortsmith.errors import InvalidMediaError
        from shortsmith.utils.config import EditorState

        with pytest.raises(InvalidMediaError):
            build_export_geometry(size[0], size[1], EditorState())

    @pytest.mark.parametrize("source", [(1920, 1080), (1080, 1920), (1080, 1080), (3840, 1600), (720, 1280)])
    @pytest.mark.parametrize("zoom", [0.5, 1.0, 1.7, 4.0])
    def test_invariants_hold_without_preview_rect(self, source, zoom):
        from shortsmith.core.geometry import build_export_geometry, check_geometry_invariants
        from shortsmith.utils.config import EditorState

        g = build_export_geometry(source[0], source[1], EditorState(zoom=zoom, pan_x=37, pan_y=-52))
        check = check_geometry_invariants(source[0], source[1], g)
        assert check.ok, check.violations
        assert (g.output_width, g.output_height) == (1080, 1920)
        assert 0 <= g.crop_x <= g.canvas_width - 1080
        assert 0 <= g.crop_y <= g.canvas_height - 1920
        assert 0 <= g.pad_x <= g.canvas_width - g.scaled_width
        assert 0 <= g.pad_y <= g.canvas_height - g.scaled_height

    def test_stretched_preview_rect_is_flagged(self):
        from shortsmith.core.geometry import (
            assert_geometry_invariants,
            build_export_geometry,
            check_geometry_invariants,
        )
        from shortsmith.utils.config import EditorState

        g = build_export_geometry(
            1920, 1080, EditorState(), preview_viewport=(360, 640), preview_video_rect=(360, 640)
        )
        check = check_geometry_invariants(1920, 1080, g)
        assert not check.ok
        assert any(v.startswith("Non-uniform scaling detected") for v in check.violations)
        assert any(v.startswith("Aspect ratio drift detected") for v in check.violations)
        assert check.metrics["scale_x"] == pytest.approx(0.5625)

        with pytest.raises(ValueError, match=r"\[stretch\] Export geometry invariant violation"):
            assert_geometry_invariants(1920, 1080, g, context_label="stretch")

    def test_output_mismatch_is_flagged(self):
        from shortsmith.core.geometry import build_export_geometry, check_geometry_invariants
        from shortsmith.utils.config import EditorState

        g = build_export_geometry(1920, 1080, EditorState())
        check = check_geometry_invariants(1920, 1080, g, expected_output_width=720, expected_output_height=1280)
        assert check.violations[0].startswith("Output resolution mismatch")


# ---- Style Tests ----

class TestStyles:
    def test_presets_resolve_to_themselves(self):
        from shortsmith.core.style import STYLES, resolve_style
        for name, style in STYLES.items():
            assert resolve_style(name) == style

    def test_overrides_are_clamped(self):
        from shortsmith.core.style import resolve_style
        s = resolve_style("clean_caption", {
            "outlineWidth": 20, "shadowOpacity": -1, "shadowDistance": 99,
            "letterWidth": 3, "backgroundRadius": 500,
        })
        assert s.outline_width == 8
        assert s.shadow_opacity == 0
        assert s.shadow_distance == 12
        assert s.letter_width == 1.5
        assert s.background_radius == 80
        assert not s.has_shadow

    def test_bad_color_falls_back_to_preset(self):
        from shortsmith.core.style import STYLES, resolve_style
        s = resolve_style("creator_neon", {"text_color": "not-a-color", "outline_color": "00ff00"})
        assert s.text_color == STYLES["creator_neon"].text_color
        assert s.outline_color == "#00FF00"

    def test_legacy_background_keys_enable_box(self):
        from shortsmith.core.style import resolve_style
        s = resolve_style("clean_caption", {"background_padding": 30})
        assert s.background_enabled
        assert s.has_background
        assert (s.background_padding_x, s.background_padding_y) == (30, 30)

        off = resolve_style("clean_caption", {"background_padding": 30, "background_enabled": False})
        assert not off.has_background

    def test_legacy_border_keys(self):
        from shortsmith.core.style import resolve_style
        s = resolve_style("clean_caption", {"border_color": "#123456", "border_width": 5})
        assert s.outline_color == "#123456"
        assert s.outline_width == 5

    def test_text_case(self):
        from shortsmith.core.style import resolve_style
        assert resolve_style("bold_pop").apply_case("hi there") == "HI THERE"
        assert resolve_style("bold_pop", {"text_case": "original"}).text_case == "none"
        assert resolve_style("clean_caption", {"text_case": "shouting"}).text_case == "none"

    def test_override_preset_switches_base(self):
        from shortsmith.core.style import resolve_style
        s = resolve_style("bold_pop", {"preset": "creator_neon"})
        assert s.preset == "creator_neon"
        assert s.text_color == "#E8F7FF"

    def test_unknown_preset(self):
        from shortsmith.core.style import resolve_style
        from shortsmith.errors import ConfigurationError
        with pytest.raises(ConfigurationError):
            resolve_style("comic_sans")

    def test_quick_styles(self):
        from shortsmith.core.style import QUICK_STYLE_PRESETS, resolve_quick_style
        for quick_id in QUICK_STYLE_PRESETS:
            resolve_quick_style(quick_id)
        boxed = resolve_quick_style("boxed_focus")
        assert boxed.has_background
        assert boxed.background_opacity == 0.78
        assert resolve_quick_style("tiktok_pop").text_color == "#FFF3B0"

    def test_ffmpeg_colors(self):
        from shortsmith.core.style import ffmpeg_color_with_alpha, ffmpeg_hex_color, rgba_from_hex
        assert ffmpeg_hex_color("#0a0a0a") == "0x0A0A0A"
        assert ffmpeg_color_with_alpha("#111111", 0.8) == "0x111111@0.800"
        assert rgba_from_hex("#FF0000", 0.5) == (255, 0, 0, 128)

    def test_wrap_lines(self):
        from shortsmith.core.style import wrap_lines
        assert wrap_lines("one two three four", 9) == ["one two", "three", "four"]
        assert wrap_lines("supercalifragilistic yes", 5) == ["supercalifragilistic", "yes"]
        assert wrap_lines("   ", 10) == []

    def test_max_chars_per_line(self):
        from shortsmith.core.style import max_chars_per_line
        assert max_chars_per_line(56) == 28
        assert max_chars_per_line(96, letter_width=1.5) == 11
        assert max_chars_per_line(400) == 10


# ---- Clip Tests ----

class TestClip:
    def test_invalid_window(self):
        from shortsmith.core.clip import ClipWindow
        with pytest.raises(ValueError):
            ClipWindow(5, 5)
        with pytest.raises(ValueError):
            ClipWindow(0, float("nan"))

    def test_duration_is_derived(self):
        from shortsmith.core.clip import ClipWindow
        clip = ClipWindow.from_dict({"startSeconds": 12.4, "endSeconds": 41.9})
        assert clip.duration_seconds == pytest.approx(29.5)

    def test_clamp_slides_clip_back(self):
        from shortsmith.core.clip import ClipWindow, clamp_clip_to_media_duration
        clip = clamp_clip_to_media_duration(ClipWindow(41, 66), 45)
        assert (clip.start_seconds, clip.end_seconds) == (20, 45)

    def test_clamp_ignores_unknown_duration(self):
        from shortsmith.core.clip import ClipWindow, clamp_clip_to_media_duration
        clip = ClipWindow(41, 66)
        assert clamp_clip_to_media_duration(clip, 0) is clip

    def test_prepare_export_adjusts(self):
        from shortsmith.core.clip import ClipWindow, SubtitleChunk, prepare_export
        chunks = [SubtitleChunk("early", 5, 8), SubtitleChunk("late", 30, 33)]
        prep = prepare_export(ClipWindow(41, 66), chunks, 45)
        assert prep.clip_adjusted
        assert "20.00s -> 45.00s" in prep.adjustment_notice
        assert prep.duration_valid
        assert [c.text for c in prep.subtitle_chunks] == ["late"]

    def test_prepare_export_too_short(self):
        from shortsmith.core.clip import ClipWindow, prepare_export
        prep = prepare_export(ClipWindow(0, 10), [], 0.5)
        assert not prep.duration_valid
        assert "too short" in prep.validation_error

    def test_trim_nudges(self):
        from shortsmith.core.clip import ClipWindow, apply_trim_nudges, derive_trim_nudges
        base = ClipWindow(10, 20)
        nudged = apply_trim_nudges(base, 1.5, -2, 30)
        assert (nudged.start_seconds, nudged.end_seconds) == (11.5, 18)
        assert derive_trim_nudges(base, nudged) == {"trim_start_nudge": 1.5, "trim_end_nudge": -2}

        squeezed = apply_trim_nudges(base, 15, 0, 30)
        assert (squeezed.start_seconds, squeezed.end_seconds) == (25, 26)

    def test_find_chunk_at_time(self):
        from shortsmith.core.clip import SubtitleChunk, find_subtitle_chunk_at_time
        chunks = [SubtitleChunk("a", 1, 2), SubtitleChunk("b", 4)]
        assert find_subtitle_chunk_at_time(chunks, 1.5).text == "a"
        assert find_subtitle_chunk_at_time(chunks, 6.4).text == "b"
        assert find_subtitle_chunk_at_time(chunks, 3) is None

    def test_chunk_from_timestamp(self):
        from shortsmith.core.clip import SubtitleChunk
        chunk = SubtitleChunk.from_dict({"text": "hi", "timestamp": [3, None]})
        assert (chunk.start, chunk.end) == (3.0, None)


# ---- Caption Cue Tests ----

class TestCaptionCues:
    def _cues(self, chunks, style="clean_caption", **editor):
        from shortsmith.core.captions import build_caption_cues
        from shortsmith.core.clip import ClipWindow, load_chunks
        from shortsmith.core.style import resolve_style
        from shortsmith.utils.config import EditorState
        return build_caption_cues(
            load_chunks(chunks), ClipWindow(12.4, 41.9), resolve_style(style), EditorState(**editor)
        )

    def test_rebase_onto_clip(self):
        cues = self._cues([{"text": "Hello there", "timestamp": [13, 15]}])
        assert len(cues) == 1
        cue = cues[0]
        assert cue.start == pytest.approx(0.6)
        assert cue.end == pytest.approx(2.6)
        assert cue.lines == ("Hello there",)
        assert (cue.font_size, cue.line_height) == (56, 66)
        assert (cue.anchor_x, cue.anchor_y) == (540, 1498)

    def test_drop_and_clamp(self):
        cues = self._cues([
            {"text": "before", "timestamp": [10, 12]},
            {"text": "straddle", "timestamp": [12, 13]},
            {"text": "   ", "timestamp": [20, 21]},
            {"text": "tail", "timestamp": [40, 50]},
            {"text": "past end", "timestamp": [42.0, None]},
            {"text": "no start", "timestamp": [None, 20]},
        ])
        assert [c.text for c in cues] == ["straddle", "tail"]
        assert cues[0].start == 0
        assert cues[1].end == pytest.approx(29.5)
        for cue in cues:
            assert 0 <= cue.start < cue.end <= 29.5 + 1e-9

    def test_whitespace_and_case(self):
        cues = self._cues([{"text": "  hello\n  world ", "timestamp": [13, 14]}], style="bold_pop")
        assert cues[0].text == "hello world"
        assert cues[0].lines == ("HELLO WORLD",)

    def test_scale_changes_size_and_wrap(self):
        text = "this caption is long enough to need more than one line of text"
        small = self._cues([{"text": text, "timestamp": [13, 14]}], subtitle_scale=0.7)[0]
        large = self._cues([{"text": text, "timestamp": [13, 14]}], subtitle_scale=1.8)[0]
        assert small.font_size < large.font_size
        assert len(small.lines) < len(large.lines)


# ---- Filter Escaping Tests ----

class TestFilterEscaping:
    @pytest.mark.parametrize("text", [
        "plain words",
        "it's 100% done",
        "a:b,c;d[e]f",
        "back\\slash",
        " leading and trailing ",
        "%{localtime}",
        "quote ' inside 'quotes'",
    ])
    def test_escaped_text_parses_back(self, text):
        from shortsmith.core.captions import escape_filter_text, parse_filter_text
        assert parse_filter_text(escape_filter_text(text)) == text

    def test_control_characters_rejected(self):
        from shortsmith.core.captions import escape_filter_text
        from shortsmith.errors import FilterSyntaxError
        with pytest.raises(FilterSyntaxError):
            escape_filter_text("line\nbreak")

    def test_unescaped_percent_detected(self):
        from shortsmith.core.captions import parse_filter_text
        from shortsmith.errors import FilterSyntaxError
        with pytest.raises(FilterSyntaxError):
            parse_filter_text("100%")

    def test_enable_expression(self):
        from shortsmith.core.captions import enable_expression
        assert enable_expression(1, 2.5) == "'between(t,1.000,2.500)'"


# ---- Overlay Artifact Tests ----

class TestOverlayArtifacts:
    def _cue(self):
        from shortsmith.core.captions import CaptionCue
        return CaptionCue(
            start=0.6, end=2.6, text="Hello: world", lines=("Hello: world",),
            anchor_x=540, anchor_y=1498, font_size=56, line_height=66,
        )

    def test_text_directives(self):
        from shortsmith.core.captions import build_text_directives
        from shortsmith.core.style import resolve_style

        directives = build_text_directives([self._cue()], resolve_style("clean_caption"), "caption_font.ttf")
        assert len(directives) == 1
        d = directives[0]
        assert d.kind == "text"
        assert len(d.filters) == 1
        f = d.filters[0]
        assert f.startswith("drawtext=fontfile=caption_font.ttf:")
        assert "fontsize=56" in f
        assert "fontcolor=0xFFFFFF" in f
        assert "shadowx=2" in f
        assert "enable='between(t,0.600,2.600)'" in f

    def test_text_directives_offset_and_box(self):
        from shortsmith.core.captions import build_text_directives
        from shortsmith.core.style import resolve_quick_style

        d = build_text_directives([self._cue()], resolve_quick_style("boxed_focus"), "f.ttf", offset=3)[0]
        assert d.start == pytest.approx(3.6)
        assert d.filters[0].startswith("drawbox=")
        assert ":color=0x111111@0.780:t=fill:" in d.filters[0]
        assert all("between(t,3.600,5.600)" in f for f in d.filters)

    def test_overlay_graph(self):
        from shortsmith.core.captions import RasterOverlay, build_overlay_graph

        graph, label = build_overlay_graph(
            "scale=1080:608", [RasterOverlay(0, 1, "a.png"), RasterOverlay(1, 2, "b.png")]
        )
        assert label == "[v2]"
        assert graph == (
            "[0:v]scale=1080:608[base];"
            "[base][1:v]overlay=0:0:enable='between(t,0.000,1.000)'[v1];"
            "[v1][2:v]overlay=0:0:enable='between(t,1.000,2.000)'[v2]"
        )

    def test_strategy_selection(self):
        from shortsmith.core.captions import select_caption_strategy

        class Caps:
            def __init__(self, names):
                self.names = frozenset(names)

            def capabilities(self):
                return self.names

        assert select_caption_strategy(Caps({"drawtext", "overlay"})) == "text"
        assert select_caption_strategy(Caps({"overlay"})) == "raster"
        assert select_caption_strategy(Caps({"scale"})) is None

    def test_render_cue_image(self, tmp_path):
        from shortsmith.core.captions import build_raster_overlays, find_system_font
        from shortsmith.core.style import resolve_quick_style

        font = find_system_font()
        if font is None:
            pytest.skip("No bold system font available")
        overlays = build_raster_overlays(
            [self._cue()], resolve_quick_style("boxed_focus"), font, str(tmp_path / "captions"), offset=1
        )
        assert overlays[0].kind == "raster"
        assert overlays[0].start == pytest.approx(1.6)

        from PIL import Image
        with Image.open(overlays[0].path) as img:
            assert img.mode == "RGBA"
            assert img.size == (1080, 1920)
            assert img.getpixel((0, 0))[3] == 0
            assert img.getpixel((540, 1498))[3] > 0


# ---- Progress Tests ----

class TestProgress:
    def test_parse_times(self):
        from shortsmith.core.progress import parse_log_time, parse_timecode
        assert parse_timecode("01:02:03.5") == pytest.approx(3723.5)
        assert parse_log_time("frame=  10 fps=0 time=00:00:03.00 bitrate=N/A") == pytest.approx(3.0)
        assert parse_log_time("out_time_us=2500000") == pytest.approx(2.5)
        assert parse_log_time("nothing here") is None

    def test_monotonic_with_fake_clock(self):
        from shortsmith.core.progress import ProgressEstimator

        clock = [0.0]
        values = []
        est = ProgressEstimator(10, emit=values.append, clock=lambda: clock[0])

        assert est.report(1)
        assert not est.report(1)
        est.start_render()
        assert not est.on_log_line("time=00:00:03.00")       # baseline
        assert est.on_log_line("time=00:00:08.00")
        assert values[-1] == 50
        assert not est.on_log_line("time=00:00:04.00")       # rewinds are ignored
        assert not est.report(40)
        assert not est.tick()                                  # engine not silent yet

        clock[0] = 100.0
        assert est.tick()
        assert 50 < values[-1] <= 92
        est.report(100)
        assert values == sorted(set(values))
        assert values[-1] == 100

    def test_synthetic_curve(self):
        from shortsmith.core.progress import ProgressEstimator
        est = ProgressEstimator(2)
        assert est.synthetic_fraction(0) == 0
        assert est.synthetic_fraction(5) == pytest.approx(0.94)
        assert est.synthetic_fraction(10_000) == pytest.approx(0.99, abs=1e-3)
        assert est.synthetic_fraction(10_000) < 0.99 + 1e-9


# ---- SRT Export Tests ----

class TestSRTExport:
    def _cues(self):
        from shortsmith.core.captions import CaptionCue
        return [
            CaptionCue(0.0, 1.5, "Hello world", ("Hello world",), 540, 1498, 56, 66),
            CaptionCue(2.0, 3.5, "This is a test", ("This is", "a test"), 540, 1498, 56, 66),
        ]

    def test_export_srt(self, tmp_path):
        from shortsmith.export.srt import export_srt

        srt_path = export_srt(self._cues(), str(tmp_path / "clip.srt"))
        content = open(srt_path, encoding="utf-8").read()
        assert content.startswith("1\n00:00:00,000 --> 00:00:01,500\nHello world\n")
        assert "2\n00:00:02,000 --> 00:00:03,500\nThis is\na test\n" in content

    def test_export_vtt(self, tmp_path):
        from shortsmith.export.srt import export_vtt

        vtt_path = export_vtt(self._cues(), str(tmp_path / "clip.vtt"))
        content = open(vtt_path, encoding="utf-8").read()
        assert content.startswith("WEBVTT")
        assert "00:00:02.000 --> 00:00:03.500" in content


# ---- Config Tests ----

class TestConfig:
    def test_platform_presets(self):
        from shortsmith.utils.config import PLATFORM_PRESETS, ShortPlan
        for name in PLATFORM_PRESETS:
            plan = ShortPlan(platform=name)
            assert plan.subtitle_style in ("bold_pop", "clean_caption", "creator_neon")

    def test_invalid_platform(self):
        from shortsmith.errors import ConfigurationError
        from shortsmith.utils.config import get_platform_preset
        with pytest.raises(ConfigurationError):
            get_platform_preset("myspace")

    def test_editor_from_camel_case(self):
        from shortsmith.utils.config import EditorState
        editor = EditorState.from_dict({"zoom": 2, "panX": 10, "subtitleYOffsetPct": 99, "subtitleStyle": {"a": 1}})
        assert editor.zoom == 2
        assert editor.pan_x == 10
        assert editor.subtitle_y_offset_pct == 92
        assert editor.style_overrides == {"a": 1}

    def test_env_overrides(self):
        from shortsmith.errors import ConfigurationError
        from shortsmith.utils.config import load_caption_config, load_render_config

        cfg = load_render_config({"SHORTSMITH_CRF": "18", "SHORTSMITH_SEEK_CUSHION": "-2"})
        assert cfg.crf == 18
        assert cfg.seek_cushion == 0
        with pytest.raises(ConfigurationError):
            load_render_config({"SHORTSMITH_CRF": "high"})
        assert load_caption_config({"SHORTSMITH_CACHE_DIR": "/tmp/x"}).cache_dir == os.path.join("/tmp/x", "fonts")
