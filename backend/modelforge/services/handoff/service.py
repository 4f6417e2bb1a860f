"""
Hand-off of generated models to the external CAD application

Delivery is best-effort: nothing here raises into the caller or touches the
job lifecycle. A failed delivery comes back as a receipt with
``delivered=False``.
"""

import base64
import logging
import time
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

import httpx
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from modelforge.core.config import settings
from modelforge.core.exceptions import ArtifactUnavailableError
from modelforge.models.job import Job, JobState
from modelforge.schemas.handoff import (
    HANDOFF_ACK_TYPE,
    HANDOFF_VERSION,
    HandoffMessage,
    HandoffMetadata
)

logger = logging.getLogger(__name__)

DEFAULT_FILE_NAME = "model.stl"
LEGACY_ACK_TYPE = "stl-proxy-response"


class ImportStatus(str, Enum):
    """Import states reported by the CAD application"""
    REQUESTING = "requesting"
    IMPORTING = "importing"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    UNRECOGNIZED = "unrecognized"

    @classmethod
    def parse(cls, value: Any) -> "ImportStatus":
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        return cls.UNRECOGNIZED


@dataclass
class HandoffReceipt:
    request_id: str
    delivered: bool
    import_id: Optional[str] = None
    http_status: Optional[int] = None
    error: Optional[str] = None


@dataclass
class ImportStatusReport:
    import_id: str
    status: ImportStatus
    cad_url: Optional[str] = None
    error: Optional[str] = None


@dataclass
class Acknowledgement:
    """Parsed acknowledgement; ``recognized`` is False for unknown shapes"""
    recognized: bool
    status: ImportStatus
    request_id: Optional[str] = None
    success: bool = False
    cad_url: Optional[str] = None


def filename_from_url(url: str, default: str = DEFAULT_FILE_NAME) -> str:
    """Last path segment of a URL without its query string"""
    if not url:
        return default
    path = urlparse(url).path or url
    name = path.rstrip("/").split("/")[-1].split("?")[0]
    return name or default


def new_request_id() -> str:
    return f"stl-{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}"


def parse_acknowledgement(payload: Any) -> Acknowledgement:
    """Classify an acknowledgement message from the CAD application"""
    if not isinstance(payload, dict):
        return Acknowledgement(recognized=False, status=ImportStatus.UNRECOGNIZED)

    kind = payload.get("type")
    if kind == HANDOFF_ACK_TYPE and payload.get("version") == HANDOFF_VERSION:
        request_id = payload.get("request_id")
        cad_url = payload.get("cad_url")
    elif kind == LEGACY_ACK_TYPE:
        request_id = payload.get("requestId")
        cad_url = payload.get("modelUrl")
    else:
        return Acknowledgement(recognized=False, status=ImportStatus.UNRECOGNIZED)

    if not isinstance(request_id, str) or not request_id:
        return Acknowledgement(recognized=False, status=ImportStatus.UNRECOGNIZED)

    status = ImportStatus.parse(payload.get("status"))
    return Acknowledgement(
        recognized=True,
        status=status,
        request_id=request_id,
        success=bool(payload.get("success")) or status == ImportStatus.COMPLETED,
        cad_url=cad_url if isinstance(cad_url, str) else None
    )


class HandoffService:
    """Builds hand-off messages and posts them to the CAD import endpoint"""

    def __init__(
        self,
        import_url: Optional[str] = None,
        status_url: Optional[str] = None,
        source: Optional[str] = None,
        timeout: Optional[int] = None,
        client: Optional[httpx.AsyncClient] = None
    ):
        self.import_url = import_url if import_url is not None else settings.HANDOFF_IMPORT_URL
        self.status_url = status_url if status_url is not None else settings.HANDOFF_STATUS_URL
        self.source = source or settings.HANDOFF_SOURCE
        self.timeout = timeout or settings.HANDOFF_TIMEOUT
        self._client = client
        self._owns_client = client is None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, follow_redirects=True)
        return self._client

    async def aclose(self):
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def build_message(
        self,
        job: Job,
        title: Optional[str] = None,
        tags: Optional[List[str]] = None,
        description: Optional[str] = None,
        file_name: Optional[str] = None,
        artifact: Optional[bytes] = None
    ) -> HandoffMessage:
        """Message for a succeeded job; embeds the artifact bytes when given"""
        if job.state != JobState.SUCCEEDED or not job.result or not job.result.artifact_url:
            raise ArtifactUnavailableError(f"Job {job.id} has no model artifact to hand off")

        artifact_url = job.result.artifact_url
        metadata = HandoffMetadata(
            title=title,
            tags=tags or [],
            description=description,
            file_size=len(artifact) if artifact is not None else None,
            source_url=artifact_url
        )
        return HandoffMessage(
            request_id=new_request_id(),
            file_name=file_name or filename_from_url(artifact_url),
            artifact_url=None if artifact is not None else artifact_url,
            artifact_data=base64.b64encode(artifact).decode("ascii") if artifact is not None else None,
            source=self.source,
            metadata=metadata
        )

    async def deliver(self, message: HandoffMessage) -> HandoffReceipt:
        """POST the message once (transport errors retried briefly); never raises"""
        if not self.import_url:
            return HandoffReceipt(
                request_id=message.request_id,
                delivered=False,
                error="Hand-off import endpoint not configured"
            )

        try:
            response = await self._post(message.model_dump(mode="json", exclude_none=True))
        except httpx.HTTPError as e:
            logger.warning(f"Hand-off {message.request_id} could not be delivered: {e}")
            return HandoffReceipt(request_id=message.request_id, delivered=False, error=str(e))

        if not response.is_success:
            logger.warning(f"Hand-off {message.request_id} rejected with HTTP {response.status_code}")
            return HandoffReceipt(
                request_id=message.request_id,
                delivered=False,
                http_status=response.status_code,
                error=f"Server returned {response.status_code}"
            )

        body = _json_or_none(response)
        if isinstance(body, dict) and body.get("success") is False:
            return HandoffReceipt(
                request_id=message.request_id,
                delivered=False,
                http_status=response.status_code,
                error=str(body.get("message") or "Import rejected")
            )

        import_id = None
        if isinstance(body, dict):
            import_id = body.get("importId") or body.get("import_id")
        logger.info(f"Hand-off {message.request_id} delivered (import id: {import_id})")
        return HandoffReceipt(
            request_id=message.request_id,
            delivered=True,
            import_id=import_id,
            http_status=response.status_code
        )

    async def check_import_status(self, import_id: str) -> ImportStatusReport:
        """Read the import status once; failures come back as UNRECOGNIZED"""
        if not self.status_url:
            return ImportStatusReport(import_id, ImportStatus.UNRECOGNIZED, error="Status endpoint not configured")

        try:
            response = await self.client.get(self.status_url, params={"id": import_id})
        except httpx.HTTPError as e:
            logger.warning(f"Import status check for {import_id} failed: {e}")
            return ImportStatusReport(import_id, ImportStatus.UNRECOGNIZED, error=str(e))

        body = _json_or_none(response)
        if not response.is_success or not isinstance(body, dict):
            return ImportStatusReport(
                import_id,
                ImportStatus.UNRECOGNIZED,
                error=f"Server returned {response.status_code}"
            )

        cad_url = body.get("modelUrl") or body.get("cad_url")
        return ImportStatusReport(
            import_id=import_id,
            status=ImportStatus.parse(body.get("status")),
            cad_url=cad_url if isinstance(cad_url, str) else None,
            error=body.get("error") if isinstance(body.get("error"), str) else None
        )

    @retry(
        stop=stop_after_attempt(settings.HANDOFF_MAX_RETRIES),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True
    )
    async def _post(self, body: Dict[str, Any]) -> httpx.Response:
        return await self.client.post(self.import_url, json=body)


def _json_or_none(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None
