"""Tests for the PitchTrace HTTP API.

Video decoding is replaced with in-memory synthetic clips, so these run
without real footage or ffprobe.
"""

import json
from functools import partial
from unittest.mock import patch

from fastapi.testclient import TestClient

from conftest import CLIP_FPS, make_delivery_frames, make_frame
from pitchtrace.api import routes
from pitchtrace.core.config import settings
from pitchtrace.core.errors import SourceUnavailableError
from pitchtrace.core.video import ArrayFrameSource
from pitchtrace.main import app
from pitchtrace.models.job import create_job, update_job


def synthetic_source(frames):
    """Stand-in for VideoFileSource that ignores the path."""

    def factory(path):
        return ArrayFrameSource(frames, fps=CLIP_FPS)

    return factory


async def _skip_analysis(job_id: str):
    """Background runner that leaves the job pending."""


def start_analysis(client: TestClient, video_path, video_info, frames=None) -> dict:
    frames = frames if frames is not None else make_delivery_frames()
    with patch("pitchtrace.api.routes.get_video_info", return_value=video_info), \
         patch("pitchtrace.api.routes.VideoFileSource", synthetic_source(frames)):
        response = client.post("/api/analyze", json={"video_path": str(video_path)})
    assert response.status_code == 200, response.text
    return response.json()


def parse_sse(body: str) -> list[tuple[str, dict]]:
    """Split an SSE body into (event name, payload) pairs."""
    events = []
    for block in body.strip().split("\n\n"):
        name = "message"
        data = None
        for line in block.splitlines():
            if line.startswith("event: "):
                name = line[len("event: "):]
            elif line.startswith("data: "):
                data = json.loads(line[len("data: "):])
        if data is not None:
            events.append((name, data))
    return events


class TestHealthCheck:
    """Test the health check endpoint."""

    def test_health_check_returns_healthy(self, client: TestClient):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["active_jobs"] == 0
        assert data["vision_ready"] is True
        assert "version" in data


class TestUploadEndpoint:
    """Test the /api/upload endpoint."""

    def test_upload_saves_file(self, client: TestClient, tmp_path):
        upload_dir = tmp_path / "uploads"
        with patch.object(settings, "upload_dir", upload_dir):
            response = client.post(
                "/api/upload",
                files={"file": ("delivery.mp4", b"fake video bytes", "video/mp4")},
            )

        assert response.status_code == 200
        data = response.json()
        assert data["filename"] == "delivery.mp4"
        assert data["size"] == len(b"fake video bytes")
        assert data["path"].startswith(str(upload_dir))

    def test_upload_rejects_other_types(self, client: TestClient):
        response = client.post(
            "/api/upload",
            files={"file": ("notes.txt", b"hello", "text/plain")},
        )

        assert response.status_code == 400
        assert "Invalid file type" in response.json()["detail"]


class TestAnalyzeEndpoint:
    """Test the /api/analyze endpoint and the background run."""

    def test_missing_video_returns_404(self, client: TestClient, tmp_path):
        response = client.post(
            "/api/analyze", json={"video_path": str(tmp_path / "missing.mp4")}
        )

        assert response.status_code == 404
        assert "not found" in response.json()["detail"].lower()

    def test_unreadable_video_returns_400(self, client: TestClient, sample_video_path):
        with patch(
            "pitchtrace.api.routes.get_video_info", side_effect=RuntimeError("ffprobe failed")
        ):
            response = client.post("/api/analyze", json={"video_path": str(sample_video_path)})

        assert response.status_code == 400
        assert "Could not read video" in response.json()["detail"]

    def test_analyze_returns_job(self, client: TestClient, sample_video_path, fake_video_info):
        data = start_analysis(client, sample_video_path, fake_video_info)

        assert data["job_id"]
        assert data["status"]["status"] == "pending"
        assert data["video_info"]["width"] == fake_video_info["width"]
        assert data["video_info"]["path"] == str(sample_video_path)

    def test_completed_analysis(self, client: TestClient, sample_video_path, fake_video_info):
        job_id = start_analysis(client, sample_video_path, fake_video_info)["job_id"]

        status = client.get(f"/api/status/{job_id}").json()
        assert status["status"] == "complete"
        assert status["progress"] == 100
        assert status["detection_count"] == 13
        assert status["error_message"] is None

        result = client.get(f"/api/result/{job_id}")
        assert result.status_code == 200
        data = result.json()
        assert len(data["detections"]) == 13
        assert len(data["trajectory"]) == 13
        assert "normX" in data["detections"][0]
        assert data["summary"]["releaseSpeed"] > 0
        assert data["analyzed_at"] is not None

        distances = [p["distance"] for p in data["trajectory"]]
        assert distances == sorted(distances)

    def test_no_detections_reports_error(self, client: TestClient, sample_video_path, fake_video_info):
        blank = [make_frame() for _ in range(CLIP_FPS)]
        job_id = start_analysis(client, sample_video_path, fake_video_info, frames=blank)["job_id"]

        status = client.get(f"/api/status/{job_id}").json()
        assert status["status"] == "error"
        assert "No valid ball samples detected" in status["error_message"]

        result = client.get(f"/api/result/{job_id}")
        assert result.status_code == 409
        assert "No valid ball samples detected" in result.json()["detail"]

        errored = client.get("/api/jobs", params={"status": "error"}).json()
        assert errored["count"] == 1

    def test_unopenable_video_reports_error(self, client: TestClient, sample_video_path, fake_video_info):
        def broken(path):
            raise SourceUnavailableError(f"Could not open video: {path}", step="loading")

        with patch("pitchtrace.api.routes.get_video_info", return_value=fake_video_info), \
             patch("pitchtrace.api.routes.VideoFileSource", broken):
            job_id = client.post(
                "/api/analyze", json={"video_path": str(sample_video_path)}
            ).json()["job_id"]

        job = routes._job_cache[job_id]
        assert job["status"] == "error"
        assert job["error"]["code"] == "SOURCE_UNAVAILABLE"
        assert job["error"]["details"]["step"] == "loading"

    def test_unexpected_failure_reports_generic_error(
        self, client: TestClient, sample_video_path, fake_video_info
    ):
        def exploding(path):
            raise RuntimeError("decoder crashed")

        with patch("pitchtrace.api.routes.get_video_info", return_value=fake_video_info), \
             patch("pitchtrace.api.routes.VideoFileSource", exploding):
            job_id = client.post(
                "/api/analyze", json={"video_path": str(sample_video_path)}
            ).json()["job_id"]

        status = client.get(f"/api/status/{job_id}").json()
        assert status["status"] == "error"
        assert status["error_message"] == "Video analysis failed due to an unexpected error."
        assert routes._job_cache[job_id]["error"]["code"] == "PROCESSING_ERROR"


class TestPendingJobs:
    """Behaviour while a job has not finished yet."""

    def test_duplicate_analysis_rejected(self, client: TestClient, sample_video_path, fake_video_info):
        with patch("pitchtrace.api.routes.run_analysis_job", _skip_analysis):
            job_id = start_analysis(client, sample_video_path, fake_video_info)["job_id"]

            with patch("pitchtrace.api.routes.get_video_info", return_value=fake_video_info):
                response = client.post(
                    "/api/analyze", json={"video_path": str(sample_video_path)}
                )

        assert response.status_code == 409
        assert job_id in response.json()["detail"]
        assert client.get("/health").json()["active_jobs"] == 1

    def test_result_not_ready(self, client: TestClient, sample_video_path, fake_video_info):
        with patch("pitchtrace.api.routes.run_analysis_job", _skip_analysis):
            job_id = start_analysis(client, sample_video_path, fake_video_info)["job_id"]

        response = client.get(f"/api/result/{job_id}")

        assert response.status_code == 409
        assert response.json()["detail"] == "Analysis is pending"

    def test_cancel_pending_job(self, client: TestClient, sample_video_path, fake_video_info):
        with patch("pitchtrace.api.routes.run_analysis_job", _skip_analysis):
            job_id = start_analysis(client, sample_video_path, fake_video_info)["job_id"]

        response = client.post(f"/api/cancel/{job_id}")
        assert response.status_code == 200
        assert response.json()["status"] == "cancelling"
        assert client.get(f"/api/status/{job_id}").json()["status"] == "cancelling"

        # Active jobs cannot be deleted
        assert client.delete(f"/api/jobs/{job_id}").status_code == 400

        # The runner notices the flag before sampling starts
        client.portal.call(routes.run_analysis_job, job_id)

        assert client.get(f"/api/status/{job_id}").json()["status"] == "cancelled"
        assert client.post(f"/api/cancel/{job_id}").status_code == 400


class TestJobManagement:
    """Test status, listing, deletion and progress streaming."""

    def test_unknown_job_returns_404(self, client: TestClient):
        assert client.get("/api/status/nope").status_code == 404
        assert client.get("/api/result/nope").status_code == 404
        assert client.get("/api/progress/nope").status_code == 404
        assert client.post("/api/cancel/nope").status_code == 404
        assert client.delete("/api/jobs/nope").status_code == 404

    def test_cancel_completed_job_rejected(self, client: TestClient, sample_video_path, fake_video_info):
        job_id = start_analysis(client, sample_video_path, fake_video_info)["job_id"]

        response = client.post(f"/api/cancel/{job_id}")

        assert response.status_code == 400

    def test_list_jobs(self, client: TestClient, sample_video_path, fake_video_info):
        job_id = start_analysis(client, sample_video_path, fake_video_info)["job_id"]

        data = client.get("/api/jobs").json()

        assert data["count"] == 1
        job = data["jobs"][0]
        assert job["job_id"] == job_id
        assert job["status"] == "complete"
        assert job["detection_count"] == 13
        assert job["completed_at"] is not None

    def test_delete_finished_job(self, client: TestClient, sample_video_path, fake_video_info):
        job_id = start_analysis(client, sample_video_path, fake_video_info)["job_id"]

        response = client.delete(f"/api/jobs/{job_id}")

        assert response.status_code == 200
        assert response.json() == {"status": "deleted", "job_id": job_id}
        assert client.get(f"/api/status/{job_id}").status_code == 404

    def test_progress_stream_for_finished_job(self, client: TestClient, sample_video_path, fake_video_info):
        job_id = start_analysis(client, sample_video_path, fake_video_info)["job_id"]

        response = client.get(f"/api/progress/{job_id}")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        events = parse_sse(response.text)
        assert events[0][0] == "message"
        name, payload = events[-1]
        assert name == "complete"
        assert payload["job_id"] == job_id
        assert payload["progress"] == 100
        assert payload["detection_count"] == 13

    def test_database_stats(self, client: TestClient, sample_video_path, fake_video_info):
        start_analysis(client, sample_video_path, fake_video_info)

        stats = client.get("/api/db/stats").json()

        assert stats["total_analyses"] == 1
        assert stats["analyses_by_status"] == {"complete": 1}



class TestRestartRecovery:
    """Jobs left active by a dead server process."""

    def test_interrupted_job_frees_video(self, tmp_path, sample_video_path, fake_video_info):
        routes._job_cache.clear()

        with patch("pitchtrace.core.database.DB_PATH", tmp_path / "restart.db"):
            with TestClient(app) as first:
                first.portal.call(
                    create_job, "crashed", str(sample_video_path), fake_video_info
                )
                first.portal.call(
                    partial(update_job, "crashed", status="processing", progress=40)
                )

            # Only the in-memory state is lost, as in a crash
            routes._job_cache.clear()

            with TestClient(app) as second:
                data = start_analysis(second, sample_video_path, fake_video_info)

                old = second.get("/api/status/crashed").json()
                new = second.get(f"/api/status/{data['job_id']}").json()
                deleted = second.delete("/api/jobs/crashed")

        routes._job_cache.clear()
        routes._progress_queues.clear()
        routes._pipelines.clear()

        assert old["status"] == "error"
        assert "interrupted" in old["error_message"]
        assert new["status"] == "complete"
        assert deleted.status_code == 200

    def test_interrupted_cancel_can_be_deleted(self, tmp_path, sample_video_path, fake_video_info):
        routes._job_cache.clear()

        with patch("pitchtrace.core.database.DB_PATH", tmp_path / "restart.db"):
            with TestClient(app) as first:
                first.portal.call(
                    create_job, "stuck", str(sample_video_path), fake_video_info
                )
                first.portal.call(partial(update_job, "stuck", status="cancelling"))

            routes._job_cache.clear()

            with TestClient(app) as second:
                status = second.get("/api/status/stuck").json()["status"]
                response = second.delete("/api/jobs/stuck")

        routes._job_cache.clear()

        assert status == "error"
        assert response.status_code == 200
