"""
Shortsmith Backend Server

Local HTTP server a browser or panel UI talks to. Runs on localhost:5780,
renders one export at a time on a background thread and reports progress
through job records.
"""

import logging
import logging.handlers
import os
import socket
import sys
import threading
import time
import uuid

from flask import Flask, jsonify, request
from flask_cors import CORS

from . import __version__
from .core.captions import build_caption_cues, select_caption_strategy
from .core.clip import ClipWindow, load_chunks, prepare_export
from .core.engine import get_default_session
from .core.export import ExportJob, export_clip
from .core.geometry import build_export_geometry, check_geometry_invariants
from .core.style import get_style_info, resolve_style
from .errors import ExportCancelledError, ShortsmithError
from .export.result import build_diagnostics
from .export.srt import export_srt, export_vtt
from .utils.config import PLATFORM_PRESETS, EditorState, ShortPlan
from .utils.media import probe

# ---------------------------------------------------------------------------
# Logging Setup
# ---------------------------------------------------------------------------
LOG_DIR = os.path.join(os.path.expanduser("~"), ".shortsmith")
os.makedirs(LOG_DIR, exist_ok=True)
LOG_FILE = os.path.join(LOG_DIR, "server.log")

logger = logging.getLogger("shortsmith")
logger.setLevel(logging.DEBUG)

if not any(isinstance(h, logging.handlers.RotatingFileHandler) for h in logger.handlers):
    _file_handler = logging.handlers.RotatingFileHandler(
        LOG_FILE, maxBytes=5 * 1024 * 1024, backupCount=3, encoding="utf-8"
    )
    _file_handler.setLevel(logging.DEBUG)
    _file_handler.setFormatter(logging.Formatter(
        "%(asctime)s [%(levelname)s] %(message)s", datefmt="%Y-%m-%d %H:%M:%S"
    ))
    logger.addHandler(_file_handler)

    _console_handler = logging.StreamHandler(sys.stdout)
    _console_handler.setLevel(logging.INFO)
    _console_handler.setFormatter(logging.Formatter("  %(message)s"))
    logger.addHandler(_console_handler)


app = Flask(__name__)
CORS(app, origins=["*"])

# ---------------------------------------------------------------------------
# Job tracking
# ---------------------------------------------------------------------------
jobs = {}
job_lock = threading.Lock()
JOB_MAX_AGE = 3600  # Auto-clean jobs older than 1 hour


def _new_export_job(filepath: str):
    """Register an export job, or return None if one is already running."""
    job_id = str(uuid.uuid4())[:8]
    with job_lock:
        if any(j["status"] == "running" for j in jobs.values()):
            return None
        jobs[job_id] = {
            "id": job_id,
            "type": "export",
            "filepath": filepath,
            "status": "running",
            "state": "idle",
            "progress": 0,
            "message": "Starting...",
            "result": None,
            "error": None,
            "created": time.time(),
            "_cancel": threading.Event(),
            "_thread": None,
        }
    _cleanup_old_jobs()
    return job_id


def _update_job(job_id: str, **kwargs):
    with job_lock:
        if job_id in jobs:
            jobs[job_id].update(kwargs)


def _cleanup_old_jobs():
    """Remove completed/errored jobs older than JOB_MAX_AGE."""
    now = time.time()
    with job_lock:
        expired = [
            jid for jid, j in jobs.items()
            if j["status"] in ("complete", "error", "cancelled")
            and (now - j["created"]) > JOB_MAX_AGE
        ]
        for jid in expired:
            del jobs[jid]


def _public(job: dict) -> dict:
    return {k: v for k, v in job.items() if not k.startswith("_")}


def _engine():
    return app.config.get("SHORTSMITH_ENGINE") or get_default_session()


def _pair(value):
    """``{"width", "height"}`` or ``[w, h]`` -> (w, h); None passes through."""
    if value is None:
        return None
    if isinstance(value, dict):
        return value.get("width"), value.get("height")
    return tuple(value)


# ---------------------------------------------------------------------------
# Health / Info
# ---------------------------------------------------------------------------
@app.route("/health", methods=["GET"])
def health():
    engine = _engine()
    caps = {"ffmpeg": False, "drawtext": False, "overlay": False, "caption_strategy": None}
    try:
        filters = engine.capabilities()
        caps.update(
            ffmpeg=True,
            drawtext="drawtext" in filters,
            overlay="overlay" in filters,
            caption_strategy=select_caption_strategy(engine),
        )
    except ShortsmithError as e:
        logger.warning(f"Engine capability check failed: {e.message}")
    return jsonify({
        "status": "ok",
        "version": __version__,
        "engine": engine.version(),
        "busy": engine.busy,
        "capabilities": caps,
    })


@app.route("/styles", methods=["GET"])
def styles():
    platforms = [
        {"name": name, "label": p["label"], "subtitle_style": p["subtitle_style"],
         "target_duration_range": list(p["target_duration_range"])}
        for name, p in PLATFORM_PRESETS.items()
    ]
    return jsonify({"styles": get_style_info(), "platforms": platforms})


@app.route("/geometry", methods=["POST"])
def geometry():
    """Resolve the scale/pad/crop chain the export would use."""
    data = request.get_json(force=True)
    try:
        editor = EditorState.from_dict(data.get("editor"))
        g = build_export_geometry(
            data.get("source_width"), data.get("source_height"), editor,
            preview_viewport=_pair(data.get("preview_viewport")),
            preview_video_rect=_pair(data.get("preview_video_rect")),
        )
    except (ShortsmithError, TypeError, ValueError) as e:
        return jsonify({"error": str(e)}), 400
    check = check_geometry_invariants(data.get("source_width"), data.get("source_height"), g)
    return jsonify({
        "geometry": g.to_dict(),
        "ok": check.ok,
        "violations": check.violations,
        "metrics": check.metrics,
    })


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------
@app.route("/export", methods=["POST"])
def export():
    """Render a vertical short on a background thread."""
    data = request.get_json(force=True)
    filepath = (data.get("filepath") or "").strip()
    output_dir = data.get("output_dir") or ""

    if not filepath:
        return jsonify({"error": "No file path provided"}), 400
    if not os.path.isfile(filepath):
        return jsonify({"error": f"File not found: {filepath}"}), 400

    try:
        requested = ClipWindow.from_dict(data.get("clip") or {})
        plan = ShortPlan.from_dict(data.get("plan"))
        editor = EditorState.from_dict(data.get("editor"))
        chunks = load_chunks(data.get("subtitle_chunks") or [])
    except (ShortsmithError, TypeError, ValueError) as e:
        return jsonify({"error": str(e)}), 400

    source_size = _pair(data.get("source_video_size"))
    viewport = _pair(data.get("preview_viewport"))
    video_rect = _pair(data.get("preview_video_rect"))
    write_srt = bool(data.get("write_srt", False))
    write_vtt = bool(data.get("write_vtt", False))

    job_id = _new_export_job(filepath)
    if job_id is None:
        return jsonify({"error": "An export is already running"}), 409

    with job_lock:
        cancel_event = jobs[job_id]["_cancel"]

    def _process():
        record = ExportJob(id=job_id)
        duration = None
        size = source_size
        prep = None
        try:
            _update_job(job_id, progress=1, message="Reading source...")
            info = probe(filepath)
            duration = info.duration
            size = size or info.video.display_size

            prep = prepare_export(requested, chunks, duration)
            if not prep.duration_valid:
                _update_job(job_id, status="error", error=prep.validation_error, message=prep.validation_error)
                return

            def _progress(pct):
                _update_job(job_id, progress=pct, state=record.state, message=f"Rendering... {pct}%")

            result = export_clip(
                filepath, os.path.basename(filepath), prep.export_clip, plan, prep.subtitle_chunks, editor,
                size,
                preview_viewport=viewport,
                preview_video_rect=video_rect,
                on_progress=_progress,
                engine=_engine(),
                cancel_event=cancel_event,
                font=app.config.get("SHORTSMITH_FONT"),
                job=record,
            )

            effective_dir = output_dir or os.path.dirname(os.path.abspath(filepath))
            output_path = result.save(effective_dir)
            payload = result.to_dict()
            payload["output_path"] = output_path
            payload["clip"] = prep.export_clip.to_dict()
            payload["clip_adjusted"] = prep.clip_adjusted
            payload["adjustment_notice"] = prep.adjustment_notice
            if write_srt or write_vtt:
                style = resolve_style(plan.subtitle_style, editor.style_overrides)
                cues = build_caption_cues(prep.subtitle_chunks, prep.export_clip, style, editor)
                base = os.path.splitext(output_path)[0]
                if write_srt:
                    payload["srt_path"] = export_srt(cues, base + ".srt")
                if write_vtt:
                    payload["vtt_path"] = export_vtt(cues, base + ".vtt")

            _update_job(
                job_id, status="complete", state=record.state, progress=100,
                message="Done!", result=payload,
            )
        except ExportCancelledError:
            logger.info(f"Export {job_id} cancelled")
            _update_job(job_id, status="cancelled", state=record.state, message="Cancelled by user")
        except ShortsmithError as e:
            logger.exception(f"Export {job_id} failed")
            diagnostics = build_diagnostics(
                os.path.basename(filepath), plan.platform, requested,
                prep.export_clip if prep else requested,
                size, duration, len(chunks), len(prep.subtitle_chunks) if prep else 0,
                plan.subtitle_style, e.message,
            )
            _update_job(
                job_id, status="error", state=record.state, error=str(e),
                message=f"Error: {e.message}", progress=e.last_progress, diagnostics=diagnostics,
            )
        except Exception as e:
            logger.exception(f"Export {job_id} crashed")
            _update_job(job_id, status="error", state="failed", error=str(e), message=f"Error: {e}")

    thread = threading.Thread(target=_process, daemon=True)
    thread.start()
    with job_lock:
        if job_id in jobs:
            jobs[job_id]["_thread"] = thread

    return jsonify({"job_id": job_id, "status": "running"})


@app.route("/status/<job_id>", methods=["GET"])
def job_status(job_id):
    """Check the status of an export job."""
    with job_lock:
        job = jobs.get(job_id)
        if not job:
            return jsonify({"error": "Job not found"}), 404
        return jsonify(_public(job))


@app.route("/cancel/<job_id>", methods=["POST"])
def cancel_job(job_id):
    """Cancel a running export."""
    with job_lock:
        job = jobs.get(job_id)
        if not job:
            return jsonify({"error": "Job not found"}), 404
        if job["status"] != "running":
            return jsonify({"error": "Job is not running"}), 400
        job["_cancel"].set()
        job["message"] = "Cancelling..."
    return jsonify({"status": "cancelling", "job_id": job_id})


@app.route("/jobs", methods=["GET"])
def list_jobs():
    """List all jobs."""
    with job_lock:
        return jsonify([_public(j) for j in jobs.values()])


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------
def _check_port(host: str, port: int) -> bool:
    """Check if a port is available for binding."""
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            s.settimeout(1)
            s.bind((host, port))
            return True
    except OSError:
        return False


def run_server(host="127.0.0.1", port=5780, debug=False):
    """Start the Shortsmith backend server."""
    effective_port = port
    if not _check_port(host, port):
        for offset in range(1, 11):
            if _check_port(host, port + offset):
                effective_port = port + offset
                print(f"  Port {port} is busy, using {effective_port} instead.")
                break
        else:
            print(f"  ERROR: Ports {port}-{port + 10} are all in use.")
            sys.exit(1)

    print("")
    print(f"  Shortsmith Backend Server v{__version__}")
    print(f"  Listening on http://{host}:{effective_port}")
    print(f"  Log file: {LOG_FILE}")
    print("  Press Ctrl+C to stop")
    print("")
    logger.info(f"Server starting on http://{host}:{effective_port} (pid={os.getpid()})")
    app.run(host=host, port=effective_port, debug=debug, threaded=True)


if __name__ == "__main__":
    import argparse
    parser = argparse.ArgumentParser(description="Shortsmith Backend Server")
    parser.add_argument("--host", default="127.0.0.1", help="Host to bind to")
    parser.add_argument("--port", type=int, default=5780, help="Port to listen on")
    parser.add_argument("--debug", action="store_true", help="Enable debug mode")
    args = parser.parse_args()
    run_server(host=args.host, port=args.port, debug=args.debug)
