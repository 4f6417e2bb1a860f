"""
API endpoints passing generation requests straight through to the provider
"""

import asyncio
import logging

import aiohttp
from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status

from modelforge.api.deps import get_provider
from modelforge.core.config import settings
from modelforge.core.exceptions import GenerationServiceError, ValidationError
from modelforge.models.job import InputKind
from modelforge.schemas.job import (
    GenerateModelRequest,
    GenerateModelResponse,
    ImageUploadResponse,
    TaskStatusResponse
)
from modelforge.services.generation.base_provider import (
    BaseGenerationProvider,
    GenerationRequest,
    ProviderCapability
)
from modelforge.services.generation.normalization import StatusKind, normalize_status
from modelforge.services.generation.tripo_provider import image_file_type

logger = logging.getLogger(__name__)

router = APIRouter()

GENERATION_TYPES = {
    "text": InputKind.TEXT,
    "image": InputKind.IMAGE,
}

REQUIRED_CAPABILITY = {
    InputKind.TEXT: ProviderCapability.TEXT_TO_MODEL,
    InputKind.IMAGE: ProviderCapability.IMAGE_TO_MODEL,
}


def require_capability(provider: BaseGenerationProvider, capability: ProviderCapability):
    if not provider.supports(capability):
        raise ValidationError(
            f"{provider.__class__.__name__} does not support {capability.value.replace('_', ' ')}"
        )


async def read_image_upload(file: UploadFile) -> bytes:
    """Read an uploaded image, enforcing the allowed formats and size"""
    file_type = image_file_type(file.filename, default="")
    if file_type not in settings.SUPPORTED_IMAGE_FORMATS:
        raise ValidationError(f"Unsupported image format: {file_type or 'unknown'}")

    data = await file.read()
    if not data:
        raise ValidationError("Image file is required")
    if len(data) > settings.MAX_IMAGE_SIZE_MB * 1024 * 1024:
        raise ValidationError(f"Image exceeds {settings.MAX_IMAGE_SIZE_MB} MB")
    return data


@router.post("/generate-model", response_model=GenerateModelResponse)
async def generate_model(
    request: GenerateModelRequest,
    provider: BaseGenerationProvider = Depends(get_provider)
):
    """
    Start a generation task without tracking it
    """
    kind = GENERATION_TYPES.get(request.type)
    if kind is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid type. Must be 'text' or 'image'"
        )
    if kind == InputKind.TEXT and not (request.prompt and request.prompt.strip()):
        raise ValidationError("Prompt is required for text generation")
    if kind == InputKind.IMAGE and not request.imageToken:
        raise ValidationError("Image token is required for image generation")
    require_capability(provider, REQUIRED_CAPABILITY[kind])

    task_id = await provider.start_generation(
        GenerationRequest(
            kind=kind,
            prompt=request.prompt,
            image_token=request.imageToken,
            file_type=request.fileType
        )
    )
    return GenerateModelResponse(taskId=task_id)


@router.get("/task-status", response_model=TaskStatusResponse)
async def get_task_status(
    taskId: str = Query(..., min_length=1),
    provider: BaseGenerationProvider = Depends(get_provider)
):
    """
    Read and normalize the status of a generation task once
    """
    try:
        reply = await provider.check_status(taskId)
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        logger.error(f"Status check for {taskId} failed: {e}")
        raise GenerationServiceError(f"Failed to check task status: {e}") from e

    normalized = normalize_status(reply.body, reply.http_status)
    if normalized.kind in (StatusKind.UNRECOGNIZED, StatusKind.CONFIG_ERROR):
        raise GenerationServiceError(
            normalized.error or "Failed to check task status",
            upstream_status=reply.http_status
        )

    return TaskStatusResponse(
        status=normalized.status,
        progress=normalized.progress,
        modelUrl=normalized.artifact_url,
        baseModelUrl=normalized.fallback_url,
        renderedImage=normalized.preview_url
    )


@router.post("/upload-image", response_model=ImageUploadResponse)
async def upload_image(
    file: UploadFile = File(...),
    provider: BaseGenerationProvider = Depends(get_provider)
):
    """
    Upload an image to the generation service and return its token
    """
    require_capability(provider, ProviderCapability.IMAGE_UPLOAD)
    data = await read_image_upload(file)
    token = await provider.upload_image(data, file.filename)
    return ImageUploadResponse(imageToken=token, fileType=image_file_type(file.filename))
