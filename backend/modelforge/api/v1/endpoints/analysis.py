"""
API endpoint for describing uploaded images with a vision model
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status

from modelforge.api.deps import get_vision_service
from modelforge.schemas.job import ImageAnalysisResponse
from modelforge.services.vision.description import ImageDescriptionError, ImageDescriptionService
from .generation import read_image_upload

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/analyze-image", response_model=ImageAnalysisResponse)
async def analyze_image(
    image: UploadFile = File(...),
    textPrompt: Optional[str] = Form(None),
    vision: ImageDescriptionService = Depends(get_vision_service)
):
    """
    Describe an image as a prompt for text-to-3D generation
    """
    data = await read_image_upload(image)

    try:
        result = await vision.describe(
            data,
            content_type=image.content_type or "image/jpeg",
            prompt=textPrompt
        )
    except ImageDescriptionError as e:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=e.message
        )

    return ImageAnalysisResponse(description=result.description, fallback=result.fallback)
