"""
SRT and VTT sidecar export.

Writes the captions of an exported clip as subtitle files on the clip's own
timeline, using the same cue timing and wrapping the burn-in uses.
"""

from typing import List, Sequence

from ..core.captions import CaptionCue


def generate_srt(cues: Sequence[CaptionCue]) -> str:
    """SubRip text for clip-relative cues. Empty string when there are none."""
    blocks = []
    for i, cue in enumerate(cues, 1):
        blocks.append(
            f"{i}\n{_format_srt_time(cue.start)} --> {_format_srt_time(cue.end)}\n" + "\n".join(cue.lines) + "\n"
        )
    return "\n".join(blocks)


def export_srt(cues: Sequence[CaptionCue], output_path: str) -> str:
    """
    Write cues as an SRT file.

    Returns:
        Path to the generated SRT file.
    """
    with open(output_path, "w", encoding="utf-8") as f:
        f.write(generate_srt(cues))
    return output_path


def export_vtt(cues: Sequence[CaptionCue], output_path: str) -> str:
    """Write cues as a WebVTT file and return its path."""
    lines: List[str] = ["WEBVTT", ""]
    for i, cue in enumerate(cues, 1):
        lines.append(f"{i}")
        lines.append(f"{_format_vtt_time(cue.start)} --> {_format_vtt_time(cue.end)}")
        lines.extend(cue.lines)
        lines.append("")

    with open(output_path, "w", encoding="utf-8") as f:
        f.write("\n".join(lines))
    return output_path


def _split_millis(seconds: float):
    total_ms = int(round(max(0.0, seconds) * 1000))
    hours, rem = divmod(total_ms, 3_600_000)
    minutes, rem = divmod(rem, 60_000)
    secs, millis = divmod(rem, 1000)
    return hours, minutes, secs, millis


def _format_srt_time(seconds: float) -> str:
    """Format seconds as SRT timecode: HH:MM:SS,mmm."""
    h, m, s, ms = _split_millis(seconds)
    return f"{h:02d}:{m:02d}:{s:02d},{ms:03d}"


def _format_vtt_time(seconds: float) -> str:
    """Format seconds as VTT timecode: HH:MM:SS.mmm."""
    h, m, s, ms = _split_millis(seconds)
    return f"{h:02d}:{m:02d}:{s:02d}.{ms:03d}"
