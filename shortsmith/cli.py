"""
Shortsmith CLI - turn a moment of a long video into a vertical short.

Usage:
    shortsmith export   talk.mp4 --start 12.4 --end 41.9 -c chunks.json   # Render a 1080x1920 MP4
    shortsmith geometry 1920 1080 --zoom 1.2 --pan-x 40                   # Show the scale/pad/crop chain
    shortsmith styles                                                      # List caption styles
    shortsmith info     talk.mp4                                           # Show media info
    shortsmith server                                                      # Start the local job server
"""

import json
import os
import sys
import time

import click
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from . import __version__

console = Console()

BANNER = r"""
 ____  _                _                  _ _   _
/ ___|| |__   ___  _ __| |_ ___ _ __ ___ (_) |_| |__
\___ \| '_ \ / _ \| '__| __/ __| '_ ` _ \| | __| '_ \
 ___) | | | | (_) | |  | |_\__ \ | | | | | | |_| | | |
|____/|_| |_|\___/|_|   \__|___/_| |_| |_|_|\__|_| |_|
"""


def print_banner():
    console.print(Panel(
        BANNER + "  Vertical shorts from long-form video, rendered locally",
        style="bold magenta",
        box=box.ROUNDED,
        padding=(0, 2),
    ))


def _load_chunks_file(path):
    if not path:
        return []
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get("chunks", data.get("subtitle_chunks", []))
    return data


@click.group()
@click.version_option(version=__version__, prog_name="shortsmith")
def cli():
    """Shortsmith - local vertical short exports with burned-in captions."""
    pass


@cli.command()
@click.argument("input_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--start", type=float, required=True, help="Clip start in source seconds")
@click.option("--end", type=float, required=True, help="Clip end in source seconds")
@click.option("-c", "--chunks", "chunks_file", type=click.Path(exists=True), default=None,
              help="JSON file with subtitle chunks ({text, timestamp:[start, end]})")
@click.option("-o", "--output-dir", type=click.Path(file_okay=False), default=".", help="Output directory (default: .)")
@click.option("--platform", type=click.Choice(["tiktok", "instagram_reels", "youtube_shorts"]),
              default="youtube_shorts", help="Target platform (default: youtube_shorts)")
@click.option("--style", "style_preset", type=click.Choice(["bold_pop", "clean_caption", "creator_neon"]),
              default=None, help="Caption preset (default: the platform's)")
@click.option("--quick-style", type=str, default=None, help="Quick look, e.g. tiktok_pop, boxed_focus")
@click.option("--zoom", type=float, default=1.0, help="Zoom 0.5-4.0 (default: 1.0)")
@click.option("--pan-x", type=float, default=0.0, help="Horizontal pan in preview pixels")
@click.option("--pan-y", type=float, default=0.0, help="Vertical pan in preview pixels")
@click.option("--subtitle-scale", type=float, default=1.0, help="Caption size 0.7-1.8 (default: 1.0)")
@click.option("--subtitle-x", type=float, default=50.0, help="Caption anchor x in percent (default: 50)")
@click.option("--subtitle-y", type=float, default=78.0, help="Caption anchor y in percent (default: 78)")
@click.option("--srt", "write_srt", is_flag=True, help="Also write a clip-relative .srt next to the MP4")
@click.option("--vtt", "write_vtt", is_flag=True, help="Also write a clip-relative .vtt next to the MP4")
def export(input_file, start, end, chunks_file, output_dir, platform, style_preset, quick_style, zoom,
           pan_x, pan_y, subtitle_scale, subtitle_x, subtitle_y, write_srt, write_vtt):
    """Render one clip of a video as a 1080x1920 MP4.

    Captions are burned in when an engine filter and a font are available,
    otherwise the clip is exported without them.
    """
    print_banner()

    from .core.captions import build_caption_cues
    from .core.clip import ClipWindow, load_chunks, prepare_export
    from .core.export import export_clip
    from .core.style import QUICK_STYLE_PRESETS, resolve_style
    from .errors import ShortsmithError
    from .export.result import build_diagnostics
    from .export.srt import export_srt, export_vtt
    from .utils.config import EditorState, ShortPlan
    from .utils.media import probe

    try:
        info = probe(input_file)
        chunks = load_chunks(_load_chunks_file(chunks_file))
        plan = ShortPlan(platform=platform, subtitle_style=style_preset)
        overrides = None
        if quick_style:
            if quick_style not in QUICK_STYLE_PRESETS:
                raise click.BadParameter(
                    f"Unknown quick style '{quick_style}'. Available: {', '.join(QUICK_STYLE_PRESETS)}",
                    param_hint="--quick-style",
                )
            entry = QUICK_STYLE_PRESETS[quick_style]
            overrides = dict(entry["overrides"], preset=entry["preset"])
        editor = EditorState(
            zoom=zoom, pan_x=pan_x, pan_y=pan_y, subtitle_scale=subtitle_scale,
            subtitle_x_position_pct=subtitle_x, subtitle_y_offset_pct=subtitle_y,
            style_overrides=overrides,
        )
        requested = ClipWindow(start_seconds=start, end_seconds=end)
    except (ValueError, OSError, ShortsmithError) as e:
        console.print(f"[red bold]Error:[/red bold] {e}")
        sys.exit(1)

    prep = prepare_export(requested, chunks, info.duration)
    if prep.adjustment_notice:
        console.print(f"[yellow]{prep.adjustment_notice}[/yellow]")
    if not prep.duration_valid:
        console.print(f"[red bold]Error:[/red bold] {prep.validation_error}")
        sys.exit(1)

    console.print(f"\n[bold]Source:[/bold] {info.filename} ({info.video.width}x{info.video.height}, {info.duration:.2f}s)")
    console.print(
        f"[dim]Clip: {prep.export_clip.start_seconds:.2f}s -> {prep.export_clip.end_seconds:.2f}s | "
        f"Platform: {plan.platform} | Style: {plan.subtitle_style} | Captions: {len(prep.subtitle_chunks)}[/dim]\n"
    )

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("{task.percentage:>3.0f}%"),
        TimeElapsedColumn(),
        console=console,
    ) as progress:
        task = progress.add_task("Rendering...", total=100)
        started = time.time()
        try:
            result = export_clip(
                input_file, info.filename, prep.export_clip, plan, prep.subtitle_chunks, editor,
                info.video.display_size,
                on_progress=lambda pct: progress.update(task, completed=pct),
            )
        except ShortsmithError as e:
            progress.stop()
            console.print(f"\n[red bold]Export failed:[/red bold] {e}")
            console.print(Panel(
                build_diagnostics(
                    info.filename, plan.platform, requested, prep.export_clip,
                    info.video.display_size, info.duration, len(chunks), len(prep.subtitle_chunks),
                    plan.subtitle_style, e.message,
                ),
                title="Diagnostics", box=box.ROUNDED,
            ))
            sys.exit(1)
        progress.update(task, description=f"[green]Render complete ({time.time() - started:.1f}s)")

    path = result.save(output_dir)
    console.print(f"\n[green bold]Done![/green bold] {path} ({result.size_bytes / (1024 * 1024):.1f} MB)")

    if write_srt or write_vtt:
        style = resolve_style(plan.subtitle_style, editor.style_overrides)
        cues = build_caption_cues(prep.subtitle_chunks, prep.export_clip, style, editor)
        base = os.path.splitext(path)[0]
        if write_srt:
            console.print(f"[bold]Captions:[/bold] {export_srt(cues, base + '.srt')}")
        if write_vtt:
            console.print(f"[bold]Captions:[/bold] {export_vtt(cues, base + '.vtt')}")

    table = Table(title="Render Notes", box=box.SIMPLE, show_header=False)
    table.add_column("Note")
    for note in result.notes:
        table.add_row(note)
    for warning in result.warnings:
        table.add_row(f"[yellow]{warning}[/yellow]")
    console.print(table)
    console.print(f"[dim]{' '.join(result.command_preview)}[/dim]\n")


@cli.command()
@click.argument("source_width", type=float)
@click.argument("source_height", type=float)
@click.option("--zoom", type=float, default=1.0, help="Zoom 0.5-4.0 (default: 1.0)")
@click.option("--pan-x", type=float, default=0.0, help="Horizontal pan in preview pixels")
@click.option("--pan-y", type=float, default=0.0, help="Vertical pan in preview pixels")
@click.option("--viewport", type=(float, float), default=None, help="Preview viewport W H")
@click.option("--video-rect", type=(float, float), default=None, help="Rendered preview video W H")
def geometry(source_width, source_height, zoom, pan_x, pan_y, viewport, video_rect):
    """Show the scale/pad/crop chain for a source size and framing."""
    from .core.geometry import build_export_geometry, check_geometry_invariants
    from .errors import InvalidMediaError
    from .utils.config import EditorState

    editor = EditorState(zoom=zoom, pan_x=pan_x, pan_y=pan_y)
    try:
        g = build_export_geometry(
            source_width, source_height, editor,
            preview_viewport=viewport,
            preview_video_rect=video_rect,
        )
    except InvalidMediaError as e:
        console.print(f"[red bold]Error:[/red bold] {e}")
        sys.exit(1)

    table = Table(title="Export Geometry", box=box.ROUNDED, show_header=False, padding=(0, 2))
    table.add_column("Field", style="bold")
    table.add_column("Value", justify="right", style="cyan")
    table.add_row("Mode", g.mode)
    table.add_row("Scaled", f"{g.scaled_width}x{g.scaled_height}")
    table.add_row("Canvas", f"{g.canvas_width}x{g.canvas_height}")
    table.add_row("Pad", f"({g.pad_x}, {g.pad_y})")
    table.add_row("Crop", f"({g.crop_x}, {g.crop_y})")
    table.add_row("Output", f"{g.output_width}x{g.output_height}")
    table.add_row("Preview rect", "yes" if g.used_preview_video_rect else "no")
    console.print(table)
    console.print(f"[bold]Filter:[/bold] {g.filter}")

    check = check_geometry_invariants(source_width, source_height, g)
    for violation in check.violations:
        console.print(f"[yellow]{violation}[/yellow]")


@cli.command()
def styles():
    """List caption presets and quick looks."""
    from .core.style import get_style_info

    table = Table(title="Caption Styles", box=box.ROUNDED)
    table.add_column("Name", style="cyan")
    table.add_column("Kind")
    table.add_column("Text")
    table.add_column("Outline", justify="right")
    table.add_column("Shadow", justify="right")
    table.add_column("Box")
    for entry in get_style_info():
        s = entry["style"]
        table.add_row(
            f"{entry['name']} ({entry['label']})",
            entry["kind"],
            f"[{s['text_color']}]{s['text_color']}[/]",
            f"{s['outline_width']:.1f} {s['outline_color']}",
            f"{s['shadow_opacity']:.2f} @ {s['shadow_distance']:.1f}",
            f"{s['background_color']} {s['background_opacity']:.2f}" if s["background_enabled"] else "-",
        )
    console.print(table)


@cli.command()
@click.argument("input_file", type=click.Path(exists=True, dir_okay=False))
def info(input_file):
    """Display media file information."""
    print_banner()

    from .errors import InvalidMediaError
    from .utils.media import probe

    try:
        info = probe(input_file)
    except InvalidMediaError as e:
        console.print(f"[red bold]Error:[/red bold] {e}")
        sys.exit(1)

    console.print(f"\n[bold]File:[/bold] {info.filename}")
    console.print(f"[bold]Path:[/bold] {os.path.abspath(info.path)}")
    console.print(f"[bold]Duration:[/bold] {info.duration:.3f}s")
    console.print(f"[bold]Format:[/bold] {info.format_name}")

    v = info.video
    console.print("\n[bold cyan]Video:[/bold cyan]")
    console.print(f"  Resolution: {v.width}x{v.height}")
    if v.rotation:
        console.print(f"  Rotation: {v.rotation} (displayed as {v.display_size[0]}x{v.display_size[1]})")
    console.print(f"  Frame Rate: {v.fps:.3f} fps")
    console.print(f"  Codec: {v.codec}")
    console.print(f"\n[bold cyan]Audio:[/bold cyan] {'yes' if info.has_audio else 'none'}")
    console.print()


@cli.command()
@click.option("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
@click.option("--port", type=int, default=5780, help="Port (default: 5780)")
@click.option("--debug", is_flag=True, help="Enable Flask debug mode")
def server(host, port, debug):
    """Start the local export server for a browser or panel UI."""
    from .server import run_server
    run_server(host=host, port=port, debug=debug)


def main():
    """Entry point."""
    cli()


if __name__ == "__main__":
    main()
