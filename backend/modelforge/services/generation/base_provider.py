"""
Base provider class for 3D model generation services
"""

import abc
import asyncio
import logging
import uuid
from typing import Dict, Any, Optional, List, Tuple
from dataclasses import dataclass, field
from enum import Enum
import aiohttp

from modelforge.core.exceptions import GenerationServiceError
from modelforge.models.job import InputKind

logger = logging.getLogger(__name__)


class ProviderCapability(Enum):
    """Capabilities that providers can support"""
    TEXT_TO_MODEL = "text_to_model"
    IMAGE_TO_MODEL = "image_to_model"
    IMAGE_UPLOAD = "image_upload"


@dataclass
class GenerationRequest:
    """Standard request format for model generation"""
    kind: InputKind
    prompt: Optional[str] = None
    image_token: Optional[str] = None
    file_type: str = "jpg"
    additional_params: Dict[str, Any] = field(default_factory=dict)


@dataclass
class StatusReply:
    """Raw answer of the status endpoint.

    ``body`` is the decoded JSON, or ``None`` when the body could not be parsed.
    Non-2xx replies are returned, not raised: their bodies may still carry a
    usable status.
    """
    job_id: str
    http_status: int
    body: Any = None

    @property
    def ok(self) -> bool:
        return 200 <= self.http_status < 300


class BaseGenerationProvider(abc.ABC):
    """Base class for all model generation providers"""

    def __init__(self, api_key: str, base_url: str, timeout: int = 60):
        self.api_key = api_key
        self.base_url = base_url
        self.timeout = timeout
        self.session: Optional[aiohttp.ClientSession] = None
        self.capabilities: List[ProviderCapability] = []

    async def __aenter__(self):
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        connector = aiohttp.TCPConnector(limit=10, limit_per_host=5)
        self.session = aiohttp.ClientSession(
            timeout=timeout,
            connector=connector,
            headers=self._get_default_headers()
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self.session:
            await self.session.close()
            self.session = None

    def _get_default_headers(self) -> Dict[str, str]:
        """Get default headers for API requests"""
        return {
            "Authorization": f"Bearer {self.api_key}",
            "User-Agent": "ModelForge-Generation/1.0"
        }

    @abc.abstractmethod
    async def start_generation(self, request: GenerationRequest) -> str:
        """Start a generation job and return its id. Raises GenerationServiceError."""
        pass

    @abc.abstractmethod
    async def check_status(self, job_id: str) -> StatusReply:
        """Read the current status of a generation job"""
        pass

    @abc.abstractmethod
    def get_supported_capabilities(self) -> List[ProviderCapability]:
        """Get list of capabilities this provider supports"""
        pass

    def supports(self, capability: ProviderCapability) -> bool:
        return capability in self.get_supported_capabilities()

    async def upload_image(self, data: bytes, filename: str) -> str:
        """Upload an image and return the token used by image requests"""
        raise GenerationServiceError(f"Image upload not supported by {self.__class__.__name__}")

    async def _send(
        self,
        method: str,
        endpoint: str,
        json: Optional[Dict[str, Any]] = None,
        data: Any = None
    ) -> Tuple[int, Any]:
        """Make one HTTP request and return (status, decoded JSON or None).

        Network errors propagate; HTTP error statuses do not.
        """
        if not self.session:
            raise RuntimeError("Session not initialized. Use async context manager.")

        url = f"{self.base_url.rstrip('/')}/{endpoint.lstrip('/')}"

        async with self.session.request(method=method, url=url, json=json, data=data) as response:
            try:
                body = await response.json(content_type=None)
            except (aiohttp.ContentTypeError, ValueError):
                text = await response.text()
                logger.warning(
                    f"{self.__class__.__name__} returned a non-JSON body "
                    f"(HTTP {response.status}): {text[:200]!r}"
                )
                body = None
            return response.status, body

    def is_healthy(self) -> bool:
        """Check if the provider is configured"""
        return bool(self.api_key)


class MockGenerationProvider(BaseGenerationProvider):
    """Mock provider for development; every job completes after a few polls"""

    def __init__(self, steps: int = 4, **kwargs):
        super().__init__("mock-api-key", "https://mock-provider.local")
        self.capabilities = [
            ProviderCapability.TEXT_TO_MODEL,
            ProviderCapability.IMAGE_TO_MODEL,
            ProviderCapability.IMAGE_UPLOAD
        ]
        self.steps = max(1, steps)
        self._polls: Dict[str, int] = {}

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return None

    async def start_generation(self, request: GenerationRequest) -> str:
        if request.kind == InputKind.IMAGE and not request.image_token:
            raise GenerationServiceError("Image token is required", upstream_status=400)
        if request.kind != InputKind.IMAGE and not request.prompt:
            raise GenerationServiceError("Prompt is required", upstream_status=400)

        await asyncio.sleep(0)
        job_id = f"mock_{uuid.uuid4().hex[:12]}"
        self._polls[job_id] = 0
        logger.info(f"Mock generation started: {job_id}")
        return job_id

    async def check_status(self, job_id: str) -> StatusReply:
        if job_id not in self._polls:
            return StatusReply(job_id=job_id, http_status=404, body={"error": "Task not found"})

        self._polls[job_id] += 1
        polls = self._polls[job_id]

        if polls >= self.steps:
            body = {
                "status": "success",
                "progress": 100,
                "output": {
                    "model": f"https://mock-models.local/{job_id}.glb",
                    "rendered_image": f"https://mock-models.local/{job_id}.webp"
                }
            }
        else:
            body = {"status": "running", "progress": int(100 * polls / self.steps)}

        return StatusReply(job_id=job_id, http_status=200, body={"code": 0, "data": body})

    async def upload_image(self, data: bytes, filename: str) -> str:
        return f"mock-token-{uuid.uuid4().hex[:8]}"

    def get_supported_capabilities(self) -> List[ProviderCapability]:
        return self.capabilities


# Provider registry for dynamic loading
PROVIDER_REGISTRY: Dict[str, type] = {
    "mock": MockGenerationProvider
}


def register_provider(name: str, provider_class: type):
    """Register a new provider in the registry"""
    PROVIDER_REGISTRY[name] = provider_class


def get_provider(name: str, **kwargs) -> BaseGenerationProvider:
    """Get a provider instance by name"""
    if name not in PROVIDER_REGISTRY:
        raise ValueError(f"Unknown provider: {name}")

    provider_class = PROVIDER_REGISTRY[name]
    return provider_class(**kwargs)
