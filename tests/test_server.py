"""
Tests for the local backend server and the CLI.
"""

import time
import pytest

from test_export import FakeEngine, StaticFont


@pytest.fixture
def client(tmp_path):
    from shortsmith import server

    font = tmp_path / "font.ttf"
    font.write_bytes(b"font bytes")
    server.app.config["TESTING"] = True
    server.app.config["SHORTSMITH_ENGINE"] = FakeEngine()
    server.app.config["SHORTSMITH_FONT"] = StaticFont(str(font))
    with server.job_lock:
        server.jobs.clear()
    yield server.app.test_client()
    with server.job_lock:
        server.jobs.clear()
    server.app.config.pop("SHORTSMITH_ENGINE", None)
    server.app.config.pop("SHORTSMITH_FONT", None)


class TestServer:
    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["status"] == "ok"
        assert data["engine"] == "ffmpeg version fake"
        assert data["capabilities"]["caption_strategy"] == "text"
        assert data["busy"] is False

    def test_styles(self, client):
        data = client.get("/styles").get_json()
        names = [s["name"] for s in data["styles"]]
        assert "bold_pop" in names
        assert "boxed_focus" in names
        assert {p["name"] for p in data["platforms"]} == {"tiktok", "instagram_reels", "youtube_shorts"}

    def test_geometry(self, client):
        resp = client.post("/geometry", json={
            "source_width": 1920, "source_height": 1080, "editor": {"zoom": 1},
        })
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["ok"]
        assert data["geometry"]["pad_y"] == 656
        assert data["geometry"]["mode"] == "pad"

    def test_geometry_invalid(self, client):
        resp = client.post("/geometry", json={"source_width": 0, "source_height": 1080})
        assert resp.status_code == 400

    def test_export_requires_file(self, client):
        assert client.post("/export", json={}).status_code == 400
        resp = client.post("/export", json={"filepath": "/nonexistent/file.mp4", "clip": {"start": 0, "end": 5}})
        assert resp.status_code == 400

    def test_export_rejects_bad_clip(self, client, tmp_path):
        src = tmp_path / "a.mp4"
        src.write_bytes(b"x")
        resp = client.post("/export", json={"filepath": str(src), "clip": {"start": 5, "end": 2}})
        assert resp.status_code == 400

    def test_export_busy(self, client, tmp_path):
        from shortsmith import server

        src = tmp_path / "a.mp4"
        src.write_bytes(b"x")
        with server.job_lock:
            server.jobs["busy0001"] = {
                "id": "busy0001", "type": "export", "status": "running", "created": time.time(),
            }
        resp = client.post("/export", json={"filepath": str(src), "clip": {"start": 0, "end": 5}})
        assert resp.status_code == 409

    def test_export_runs_job(self, client, tmp_path, monkeypatch):
        from shortsmith import server
        from shortsmith.utils.media import MediaInfo, VideoStream

        src = tmp_path / "a.mp4"
        src.write_bytes(b"x")
        monkeypatch.setattr(
            server, "probe",
            lambda path: MediaInfo(path=path, duration=30.0, video=VideoStream(width=1920, height=1080)),
        )
        resp = client.post("/export", json={
            "filepath": str(src),
            "clip": {"start": 2, "end": 7},
            "plan": {"platform": "tiktok"},
            "subtitle_chunks": [{"text": "hi", "timestamp": [3, 4]}],
            "output_dir": str(tmp_path / "out"),
            "write_srt": True,
            "write_vtt": True,
        })
        assert resp.status_code == 200
        job_id = resp.get_json()["job_id"]

        status = {}
        for _ in range(100):
            status = client.get(f"/status/{job_id}").get_json()
            if status["status"] != "running":
                break
            time.sleep(0.05)
        assert status["status"] == "complete", status
        assert status["progress"] == 100
        result = status["result"]
        assert result["captions_burned_in"]
        assert result["filename"] == "a__tiktok__2-7.mp4"
        assert (tmp_path / "out" / "a__tiktok__2-7.mp4").exists()
        assert result["srt_path"].endswith(".srt")
        assert result["vtt_path"].endswith(".vtt")
        assert (tmp_path / "out" / "a__tiktok__2-7.vtt").exists()
        assert "_cancel" not in status

        jobs = client.get("/jobs").get_json()
        assert [j["id"] for j in jobs] == [job_id]
        assert client.post(f"/cancel/{job_id}").status_code == 400

    def test_unknown_job(self, client):
        assert client.get("/status/nope").status_code == 404
        assert client.post("/cancel/nope").status_code == 404


class TestCLI:
    def test_styles(self):
        from click.testing import CliRunner
        from shortsmith.cli import cli

        result = CliRunner().invoke(cli, ["styles"])
        assert result.exit_code == 0
        assert "bold_pop" in result.output

    def test_geometry(self):
        from click.testing import CliRunner
        from shortsmith.cli import cli

        result = CliRunner().invoke(cli, ["geometry", "1920", "1080", "--zoom", "0.5"])
        assert result.exit_code == 0
        assert "540" in result.output

    def test_geometry_invalid(self):
        from click.testing import CliRunner
        from shortsmith.cli import cli

        result = CliRunner().invoke(cli, ["geometry", "0", "1080"])
        assert result.exit_code == 1

    def test_version(self):
        from click.testing import CliRunner
        from shortsmith import __version__
        from shortsmith.cli import cli

        result = CliRunner().invoke(cli, ["--version"])
        assert __version__ in result.output

    def test_export_sidecar_options(self):
        from click.testing import CliRunner
        from shortsmith.cli import cli

        result = CliRunner().invoke(cli, ["export", "--help"])
        assert result.exit_code == 0
        assert "--srt" in result.output
        assert "--vtt" in result.output
