"""
Test doubles shared by the service and API tests
"""

import asyncio
from typing import Any, List, Optional

import trimesh

from modelforge.services.generation.base_provider import (
    BaseGenerationProvider,
    GenerationRequest,
    ProviderCapability,
    StatusReply
)


def running(progress: int) -> dict:
    return {"code": 0, "data": {"status": "running", "progress": progress}}


def succeeded(model: Optional[str] = "https://x/model.glb", **output) -> dict:
    if model is not None:
        output["model"] = model
    return {"code": 0, "data": {"status": "success", "progress": 100, "output": output}}


def box_glb(extents=(1.0, 2.0, 3.0)) -> bytes:
    """A binary glTF holding one box mesh"""
    return trimesh.creation.box(extents=extents).export(file_type="glb")


class ScriptedProvider(BaseGenerationProvider):
    """Generation provider answering status checks from a script.

    Script entries are ``(http_status, body)`` tuples, StatusReply objects or
    exceptions to raise. An exhausted script keeps answering ``running``.
    """

    def __init__(self, replies: Optional[List[Any]] = None, start_error: Optional[Exception] = None):
        super().__init__("test-key", "https://generation.test")
        self.capabilities = [
            ProviderCapability.TEXT_TO_MODEL,
            ProviderCapability.IMAGE_TO_MODEL,
            ProviderCapability.IMAGE_UPLOAD
        ]
        self.replies = list(replies or [])
        self.start_error = start_error
        self.requests: List[GenerationRequest] = []
        self.status_calls: List[str] = []
        self.uploads: List[str] = []

    def script(self, *replies):
        self.replies.extend(replies)

    async def start_generation(self, request: GenerationRequest) -> str:
        self.requests.append(request)
        if self.start_error is not None:
            raise self.start_error
        return f"t{len(self.requests)}"

    async def check_status(self, job_id: str) -> StatusReply:
        self.status_calls.append(job_id)
        if not self.replies:
            return StatusReply(job_id=job_id, http_status=200, body=running(50))
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, StatusReply):
            return reply
        http_status, body = reply
        return StatusReply(job_id=job_id, http_status=http_status, body=body)

    async def upload_image(self, data: bytes, filename: str) -> str:
        self.uploads.append(filename)
        return f"token-{len(self.uploads)}"

    def get_supported_capabilities(self) -> List[ProviderCapability]:
        return self.capabilities


class RecordingSleep:
    """Sleep replacement that records delays and only yields to the loop"""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float):
        self.delays.append(delay)
        await asyncio.sleep(0)
