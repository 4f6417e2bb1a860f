"""
API endpoints for tracked generation jobs
"""

import logging
from typing import Optional

import httpx
from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Response, UploadFile, status
from starlette.concurrency import run_in_threadpool

from modelforge.api.deps import get_provider, get_tracker, get_vision_service
from modelforge.core.config import settings
from modelforge.core.exceptions import ArtifactUnavailableError, JobNotFoundError
from modelforge.models.job import GenerationPayload, InputKind, Job, JobState
from modelforge.schemas.job import ClearJobsResponse, JobResponse, JobSubmitRequest
from modelforge.services.generation.base_provider import BaseGenerationProvider, ProviderCapability
from modelforge.services.generation.tripo_provider import image_file_type
from modelforge.services.handoff.artifacts import fetch_artifact
from modelforge.services.handoff.conversion import STL_FORMAT, convert_to_stl
from modelforge.services.handoff.service import filename_from_url
from modelforge.services.tracking.tracker import JobTracker
from modelforge.services.vision.description import ImageDescriptionError, ImageDescriptionService
from .generation import read_image_upload, require_capability

logger = logging.getLogger(__name__)

router = APIRouter()


def get_job_or_404(tracker: JobTracker, job_id: str) -> Job:
    job = tracker.get(job_id)
    if job is None:
        raise JobNotFoundError(f"Job {job_id} not found")
    return job


@router.post("", response_model=JobResponse)
async def submit_job(
    request: JobSubmitRequest,
    tracker: JobTracker = Depends(get_tracker)
):
    """
    Submit a generation job and poll it in the background
    """
    payload = GenerationPayload(
        prompt=request.prompt,
        image_token=request.imageToken,
        file_type=request.fileType
    )
    job = await tracker.submit(request.inputKind, payload, session_id=request.sessionId)
    return JobResponse.from_job(job)


@router.post("/image", response_model=JobResponse)
async def submit_image_job(
    file: UploadFile = File(...),
    prompt: Optional[str] = Form(None),
    sessionId: Optional[str] = Form(None),
    tracker: JobTracker = Depends(get_tracker),
    provider: BaseGenerationProvider = Depends(get_provider),
    vision: ImageDescriptionService = Depends(get_vision_service)
):
    """
    Upload an image and submit it; with a prompt the image is described first
    and the description drives text-to-model generation
    """
    require_capability(provider, ProviderCapability.IMAGE_UPLOAD)
    data = await read_image_upload(file)
    file_type = image_file_type(file.filename)
    token = await provider.upload_image(data, file.filename)

    if prompt and prompt.strip():
        try:
            described = await vision.describe(
                data,
                content_type=file.content_type or "image/jpeg",
                prompt=prompt
            )
        except ImageDescriptionError as e:
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail=e.message
            )
        payload = GenerationPayload(prompt=described.description, image_token=token, file_type=file_type)
        kind = InputKind.IMAGE_WITH_TEXT
    else:
        payload = GenerationPayload(image_token=token, file_type=file_type)
        kind = InputKind.IMAGE

    job = await tracker.submit(kind, payload, session_id=sessionId)
    return JobResponse.from_job(job)


@router.get("/{job_id}", response_model=JobResponse)
async def get_job(
    job_id: str,
    tracker: JobTracker = Depends(get_tracker)
):
    """
    Get the current state of a tracked job
    """
    return JobResponse.from_job(get_job_or_404(tracker, job_id))


@router.get("/{job_id}/artifact")
async def download_artifact(
    job_id: str,
    format: Optional[str] = Query(
        None,
        pattern=f"^{STL_FORMAT}$",
        description="Convert the model before download"
    ),
    tracker: JobTracker = Depends(get_tracker)
):
    """
    Download the generated model through this server, as STL with ``?format=stl``
    """
    job = get_job_or_404(tracker, job_id)
    if job.state != JobState.SUCCEEDED or not job.result or not job.result.artifact_url:
        raise ArtifactUnavailableError(f"Job {job_id} has no model artifact")

    url = job.result.artifact_url
    file_name = filename_from_url(url, default="model.glb")
    async with httpx.AsyncClient(timeout=settings.HANDOFF_TIMEOUT, follow_redirects=True) as client:
        artifact = await fetch_artifact(
            client,
            url,
            file_name,
            max_bytes=settings.MAX_ARTIFACT_SIZE_MB * 1024 * 1024
        )
    if format == STL_FORMAT:
        artifact = await run_in_threadpool(convert_to_stl, artifact)

    return Response(
        content=artifact.content,
        media_type=artifact.media_type,
        headers={"Content-Disposition": f'attachment; filename="{artifact.file_name}"'}
    )


@router.delete("", response_model=ClearJobsResponse)
async def clear_completed_jobs(tracker: JobTracker = Depends(get_tracker)):
    """
    Forget finished and superseded jobs
    """
    removed = tracker.clear_completed_jobs()
    logger.info(f"Cleared {removed} completed job(s)")
    return ClearJobsResponse(
        message=f"Cleared {removed} completed job(s)",
        active_jobs=len(tracker.jobs())
    )
