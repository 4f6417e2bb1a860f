"""
API endpoints for handing generated models to the CAD application
"""

import logging
from typing import Any, Dict

import httpx
from fastapi import APIRouter, Body, Depends
from starlette.concurrency import run_in_threadpool

from modelforge.api.deps import get_handoff_service, get_tracker
from modelforge.core.config import settings
from modelforge.core.exceptions import ArtifactUnavailableError, JobNotFoundError
from modelforge.models.job import JobState
from modelforge.schemas.handoff import (
    AcknowledgementResponse,
    HandoffReceiptResponse,
    HandoffRequest,
    HandoffResponse,
    ImportStatusResponse
)
from modelforge.services.handoff.artifacts import fetch_artifact
from modelforge.services.handoff.conversion import STL_FORMAT, convert_to_stl, stl_file_name
from modelforge.services.handoff.service import (
    HandoffService,
    filename_from_url,
    parse_acknowledgement
)
from modelforge.services.tracking.tracker import JobTracker

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/jobs/{job_id}/handoff", response_model=HandoffResponse)
async def handoff_job(
    job_id: str,
    request: HandoffRequest,
    tracker: JobTracker = Depends(get_tracker),
    handoff: HandoffService = Depends(get_handoff_service)
):
    """
    Build the hand-off message for a succeeded job and deliver it when asked.
    Models are converted to STL and embedded unless the source format is requested.
    Delivery failures are reported in the receipt, never as an error status.
    """
    job = tracker.get(job_id)
    if job is None:
        raise JobNotFoundError(f"Job {job_id} not found")
    if job.state != JobState.SUCCEEDED or not job.result or not job.result.artifact_url:
        raise ArtifactUnavailableError(f"Job {job_id} has no model artifact to hand off")

    url = job.result.artifact_url
    source_name = filename_from_url(url, default="model.glb")
    convert = request.format == STL_FORMAT and not source_name.lower().endswith(f".{STL_FORMAT}")

    file_name = request.file_name or (stl_file_name(source_name) if convert else source_name)
    artifact = None
    if request.embed_artifact or convert:
        async with httpx.AsyncClient(timeout=settings.HANDOFF_TIMEOUT, follow_redirects=True) as client:
            fetched = await fetch_artifact(
                client,
                url,
                source_name,
                max_bytes=settings.MAX_ARTIFACT_SIZE_MB * 1024 * 1024
            )
        if convert:
            fetched = await run_in_threadpool(convert_to_stl, fetched)
        artifact = fetched.content

    message = handoff.build_message(
        job,
        title=request.title,
        tags=request.tags,
        description=request.description,
        file_name=file_name,
        artifact=artifact
    )

    receipt = None
    if request.deliver:
        delivered = await handoff.deliver(message)
        receipt = HandoffReceiptResponse(
            request_id=delivered.request_id,
            delivered=delivered.delivered,
            import_id=delivered.import_id,
            http_status=delivered.http_status,
            error=delivered.error
        )

    return HandoffResponse(message=message, receipt=receipt)


@router.post("/handoff/ack", response_model=AcknowledgementResponse)
async def acknowledge_handoff(payload: Dict[str, Any] = Body(...)):
    """
    Classify an acknowledgement sent back by the CAD application
    """
    ack = parse_acknowledgement(payload)
    if not ack.recognized:
        logger.debug(f"Ignoring unrecognized acknowledgement: {payload.get('type')!r}")
    return AcknowledgementResponse(
        recognized=ack.recognized,
        request_id=ack.request_id,
        status=ack.status.value,
        success=ack.success,
        cad_url=ack.cad_url,
        raw=payload
    )


@router.get("/handoff/imports/{import_id}", response_model=ImportStatusResponse)
async def get_import_status(
    import_id: str,
    handoff: HandoffService = Depends(get_handoff_service)
):
    """
    Check how far the CAD application got with an import
    """
    report = await handoff.check_import_status(import_id)
    return ImportStatusResponse(
        import_id=report.import_id,
        status=report.status.value,
        cad_url=report.cad_url,
        error=report.error
    )
