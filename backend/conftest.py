import random

import httpx
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from modelforge.main import app
from modelforge.api.deps import get_handoff_service, get_provider, get_tracker, get_vision_service
from modelforge.models.job import GenerationPayload, InputKind
from modelforge.services.handoff.service import HandoffService
from modelforge.services.tracking.policy import PollingPolicy
from modelforge.services.tracking.tracker import JobTracker
from modelforge.services.vision.description import ImageDescriptionService
from tests.helpers import RecordingSleep, ScriptedProvider


@pytest.fixture
def provider():
    return ScriptedProvider()


@pytest.fixture
def policy():
    return PollingPolicy()


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def tracker(provider, policy, sleep):
    """Tracker with a no-op sleep and a seeded random source."""
    return JobTracker(provider, policy, sleep=sleep, rng=random.Random(42))


@pytest_asyncio.fixture
async def polling_job(tracker):
    """A submitted text job whose poll steps are driven by the test."""
    return await tracker.submit(
        InputKind.TEXT,
        GenerationPayload(prompt="a small red teapot"),
        start_polling=False
    )


@pytest.fixture
def vision_service():
    """Vision service without an API key, i.e. in fallback mode."""
    return ImageDescriptionService(api_key="")


@pytest.fixture
def cad_requests():
    """Requests received by the fake CAD import endpoint."""
    return []


@pytest_asyncio.fixture
async def handoff_service(cad_requests):
    def handler(request: httpx.Request) -> httpx.Response:
        cad_requests.append(request)
        if request.url.path.endswith("/import-status"):
            return httpx.Response(200, json={"status": "completed", "modelUrl": "https://cad.test/m/1"})
        return httpx.Response(200, json={"success": True, "importId": "imp-1"})

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    service = HandoffService(
        import_url="https://cad.test/api/import-stl",
        status_url="https://cad.test/api/import-status",
        client=client
    )
    yield service
    await client.aclose()


@pytest.fixture
def override_services(tracker, provider, vision_service, handoff_service):
    """Point the API dependencies at the test doubles."""
    app.dependency_overrides[get_tracker] = lambda: tracker
    app.dependency_overrides[get_provider] = lambda: provider
    app.dependency_overrides[get_vision_service] = lambda: vision_service
    app.dependency_overrides[get_handoff_service] = lambda: handoff_service
    yield
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def async_client(override_services, tracker):
    """Create an async HTTP client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    await tracker.cancel_all()
