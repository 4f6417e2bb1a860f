import base64
import io
import json

import pytest
import trimesh
from httpx import AsyncClient

from modelforge.models.job import GenerationPayload, InputKind
from modelforge.services.generation.base_provider import ProviderCapability
from modelforge.services.generation.prompts import FALLBACK_DESCRIPTION
from modelforge.services.handoff import Artifact
from tests.helpers import box_glb, succeeded

PNG = b"\x89PNG\r\n\x1a\nfake"


async def finished_job(tracker, provider):
    provider.script((200, succeeded("https://x/lamp.glb")))
    job = await tracker.submit(InputKind.TEXT, GenerationPayload(prompt="a lamp"), start_polling=False)
    await tracker.poll(job)
    return job


@pytest.mark.unit
class TestJobEndpoints:
    """Test the tracked job endpoints."""

    async def test_submit_and_follow_job(self, async_client: AsyncClient, tracker, provider):
        provider.script((200, {"status": "running", "progress": 30}), (200, succeeded()))

        response = await async_client.post(
            "/api/v1/jobs",
            json={"inputKind": "text", "prompt": "a lamp", "sessionId": "s1"}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["jobId"] == "t1"
        assert data["state"] == "polling"
        assert data["sessionId"] == "s1"

        await tracker.wait("t1", timeout=1)
        response = await async_client.get("/api/v1/jobs/t1")

        data = response.json()
        assert data["state"] == "succeeded"
        assert data["progress"] == 100
        assert data["result"]["artifactUrl"] == "https://x/model.glb"
        assert data["completedAt"] is not None

    async def test_submit_failure_returns_failed_job(self, async_client: AsyncClient, provider):
        provider.start_error = RuntimeError("service down")

        response = await async_client.post("/api/v1/jobs", json={"inputKind": "text", "prompt": "a lamp"})

        assert response.status_code == 200
        data = response.json()
        assert data["state"] == "failed"
        assert data["jobId"] is None
        assert data["error"] == "RuntimeError: service down"

    @pytest.mark.parametrize("body", [
        {"inputKind": "text"},
        {"inputKind": "image", "prompt": "x"},
        {"inputKind": "image_with_text", "imageToken": "tok"},
        {"inputKind": "sculpture", "prompt": "x"},
    ])
    async def test_submit_validates_payload_shape(self, async_client: AsyncClient, provider, body):
        response = await async_client.post("/api/v1/jobs", json=body)

        assert response.status_code == 422
        assert provider.requests == []

    async def test_get_unknown_job(self, async_client: AsyncClient):
        response = await async_client.get("/api/v1/jobs/missing")

        assert response.status_code == 404
        assert response.json() == {"detail": "Job missing not found"}

    async def test_image_job_without_prompt(self, async_client: AsyncClient, tracker, provider):
        response = await async_client.post(
            "/api/v1/jobs/image",
            files={"file": ("robot.png", PNG, "image/png")}
        )

        assert response.status_code == 200
        assert response.json()["inputKind"] == "image"
        request = provider.requests[0]
        assert request.image_token == "token-1"
        assert request.file_type == "png"
        await tracker.cancel_all()

    async def test_image_job_with_prompt_is_described(self, async_client: AsyncClient, tracker, provider):
        response = await async_client.post(
            "/api/v1/jobs/image",
            files={"file": ("robot.jpg", b"\xff\xd8jpeg", "image/jpeg")},
            data={"prompt": "make it shiny", "sessionId": "s2"}
        )

        assert response.status_code == 200
        assert response.json()["inputKind"] == "image_with_text"
        request = provider.requests[0]
        assert request.kind == InputKind.IMAGE_WITH_TEXT
        assert request.prompt == FALLBACK_DESCRIPTION
        assert request.image_token == "token-1"
        await tracker.cancel_all()

    async def test_artifact_of_unfinished_job(self, async_client: AsyncClient, tracker):
        await tracker.submit(InputKind.TEXT, GenerationPayload(prompt="x"), start_polling=False)

        response = await async_client.get("/api/v1/jobs/t1/artifact")

        assert response.status_code == 409

    async def test_artifact_download(self, async_client: AsyncClient, tracker, provider, mocker):
        await finished_job(tracker, provider)
        fetch = mocker.patch(
            "modelforge.api.v1.endpoints.jobs.fetch_artifact",
            return_value=Artifact(content=b"glTF", media_type="model/gltf-binary", file_name="lamp.glb")
        )

        response = await async_client.get("/api/v1/jobs/t1/artifact")

        assert response.status_code == 200
        assert response.content == b"glTF"
        assert response.headers["content-type"] == "model/gltf-binary"
        assert 'filename="lamp.glb"' in response.headers["content-disposition"]
        assert fetch.await_args.args[1] == "https://x/lamp.glb"

    async def test_artifact_download_as_stl(self, async_client: AsyncClient, tracker, provider, mocker):
        await finished_job(tracker, provider)
        mocker.patch(
            "modelforge.api.v1.endpoints.jobs.fetch_artifact",
            return_value=Artifact(content=box_glb(), media_type="model/gltf-binary", file_name="lamp.glb")
        )

        response = await async_client.get("/api/v1/jobs/t1/artifact", params={"format": "stl"})

        assert response.status_code == 200
        assert response.headers["content-type"] == "model/stl"
        assert 'filename="lamp.stl"' in response.headers["content-disposition"]
        mesh = trimesh.load(io.BytesIO(response.content), file_type="stl")
        assert len(mesh.faces) == 12

    async def test_artifact_download_rejects_unknown_format(self, async_client: AsyncClient, tracker, provider):
        await finished_job(tracker, provider)

        response = await async_client.get("/api/v1/jobs/t1/artifact", params={"format": "obj"})

        assert response.status_code == 422

    async def test_job_reports_poll_count(self, async_client: AsyncClient, tracker, provider):
        provider.script((200, {"status": "running", "progress": 10}), (200, {"status": "running", "progress": 20}))
        job = await tracker.submit(InputKind.TEXT, GenerationPayload(prompt="a lamp"), start_polling=False)
        await tracker.poll(job)
        await tracker.poll(job)

        response = await async_client.get("/api/v1/jobs/t1")

        assert response.json()["polls"] == 2
        assert response.json()["progress"] == 20

    async def test_image_job_needs_upload_capability(self, async_client: AsyncClient, provider):
        provider.capabilities = [ProviderCapability.TEXT_TO_MODEL]

        response = await async_client.post(
            "/api/v1/jobs/image",
            files={"file": ("robot.png", PNG, "image/png")}
        )

        assert response.status_code == 400
        assert "image upload" in response.json()["detail"]
        assert provider.uploads == []
        assert provider.requests == []

    async def test_clear_completed_jobs(self, async_client: AsyncClient, tracker, provider):
        await finished_job(tracker, provider)
        await tracker.submit(InputKind.TEXT, GenerationPayload(prompt="y"), start_polling=False)

        response = await async_client.delete("/api/v1/jobs")

        assert response.status_code == 200
        assert response.json()["active_jobs"] == 1
        assert tracker.get("t1") is None


@pytest.mark.unit
class TestHandoffEndpoints:

    async def test_handoff_sends_stl_by_default(self, async_client: AsyncClient, tracker, provider, cad_requests, mocker):
        await finished_job(tracker, provider)
        fetch = mocker.patch(
            "modelforge.api.v1.endpoints.handoff.fetch_artifact",
            return_value=Artifact(content=box_glb(), media_type="model/gltf-binary", file_name="lamp.glb")
        )

        response = await async_client.post(
            "/api/v1/jobs/t1/handoff",
            json={"title": "Lamp", "tags": ["light"]}
        )

        assert response.status_code == 200
        data = response.json()
        message = data["message"]
        assert fetch.await_args.args[1] == "https://x/lamp.glb"
        assert message["file_name"] == "lamp.stl"
        assert message["artifact_url"] is None
        assert message["metadata"]["title"] == "Lamp"
        assert message["metadata"]["source_url"] == "https://x/lamp.glb"
        mesh = trimesh.load(io.BytesIO(base64.b64decode(message["artifact_data"])), file_type="stl")
        assert len(mesh.faces) == 12
        assert data["receipt"]["delivered"] is True
        assert data["receipt"]["import_id"] == "imp-1"
        assert len(cad_requests) == 1
        assert json.loads(cad_requests[0].content)["file_name"] == "lamp.stl"

    async def test_handoff_of_source_format_sends_url(self, async_client: AsyncClient, tracker, provider, cad_requests):
        await finished_job(tracker, provider)

        response = await async_client.post(
            "/api/v1/jobs/t1/handoff",
            json={"format": "source", "title": "Lamp"}
        )

        assert response.status_code == 200
        message = response.json()["message"]
        assert message["file_name"] == "lamp.glb"
        assert message["artifact_url"] == "https://x/lamp.glb"
        assert message["artifact_data"] is None
        assert len(cad_requests) == 1

    async def test_handoff_of_stl_artifact_is_not_converted(self, async_client: AsyncClient, tracker, provider, mocker):
        provider.script((200, succeeded("https://x/lamp.stl")))
        job = await tracker.submit(InputKind.TEXT, GenerationPayload(prompt="a lamp"), start_polling=False)
        await tracker.poll(job)
        fetch = mocker.patch("modelforge.api.v1.endpoints.handoff.fetch_artifact")

        response = await async_client.post("/api/v1/jobs/t1/handoff", json={"deliver": False})

        message = response.json()["message"]
        assert message["file_name"] == "lamp.stl"
        assert message["artifact_url"] == "https://x/lamp.stl"
        fetch.assert_not_awaited()

    async def test_handoff_without_delivery(self, async_client: AsyncClient, tracker, provider, cad_requests):
        await finished_job(tracker, provider)

        response = await async_client.post(
            "/api/v1/jobs/t1/handoff",
            json={"format": "source", "deliver": False}
        )

        assert response.status_code == 200
        assert response.json()["receipt"] is None
        assert cad_requests == []

    async def test_handoff_embeds_artifact(self, async_client: AsyncClient, tracker, provider, mocker):
        await finished_job(tracker, provider)
        mocker.patch(
            "modelforge.api.v1.endpoints.handoff.fetch_artifact",
            return_value=Artifact(content=b"solid", media_type="model/gltf-binary", file_name="lamp.glb")
        )

        response = await async_client.post(
            "/api/v1/jobs/t1/handoff",
            json={"format": "source", "embed_artifact": True, "deliver": False}
        )

        message = response.json()["message"]
        assert message["artifact_data"] == "c29saWQ="
        assert message["artifact_url"] is None

    async def test_handoff_of_unconvertible_model(self, async_client: AsyncClient, tracker, provider, cad_requests, mocker):
        await finished_job(tracker, provider)
        mocker.patch(
            "modelforge.api.v1.endpoints.handoff.fetch_artifact",
            return_value=Artifact(content=b"garbage", media_type="model/gltf-binary", file_name="lamp.glb")
        )

        response = await async_client.post("/api/v1/jobs/t1/handoff", json={})

        assert response.status_code == 422
        assert cad_requests == []

    async def test_handoff_of_unfinished_job(self, async_client: AsyncClient, tracker):
        await tracker.submit(InputKind.TEXT, GenerationPayload(prompt="x"), start_polling=False)

        response = await async_client.post("/api/v1/jobs/t1/handoff", json={})

        assert response.status_code == 409

    async def test_handoff_of_unknown_job(self, async_client: AsyncClient):
        response = await async_client.post("/api/v1/jobs/nope/handoff", json={})

        assert response.status_code == 404

    async def test_acknowledgement(self, async_client: AsyncClient):
        response = await async_client.post(
            "/api/v1/handoff/ack",
            json={"type": "stl-proxy-response", "requestId": "stl-1-x", "success": True}
        )

        data = response.json()
        assert data["recognized"] is True
        assert data["request_id"] == "stl-1-x"
        assert data["success"] is True

    async def test_unrecognized_acknowledgement(self, async_client: AsyncClient):
        response = await async_client.post("/api/v1/handoff/ack", json={"type": "chat"})

        assert response.status_code == 200
        assert response.json()["recognized"] is False

    async def test_import_status(self, async_client: AsyncClient):
        response = await async_client.get("/api/v1/handoff/imports/imp-1")

        assert response.json() == {
            "import_id": "imp-1",
            "status": "completed",
            "cad_url": "https://cad.test/m/1",
            "error": None
        }
