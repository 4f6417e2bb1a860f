"""
Tripo3D implementation of the generation provider
"""

import asyncio
import logging
import mimetypes
import os
from typing import Dict, Any, List, Optional

import aiohttp

from modelforge.core.config import settings
from modelforge.core.exceptions import GenerationServiceError
from modelforge.models.job import InputKind
from .base_provider import (
    BaseGenerationProvider,
    GenerationRequest,
    ProviderCapability,
    StatusReply,
    register_provider
)
from .prompts import prepare_prompt

logger = logging.getLogger(__name__)

FILE_TYPE_ALIASES = {"jpeg": "jpg"}


def image_file_type(filename: Optional[str], default: str = "jpg") -> str:
    """File type Tripo expects for an uploaded image, from its filename"""
    if not filename:
        return default
    ext = os.path.splitext(filename)[1].lstrip(".").lower()
    if not ext:
        return default
    return FILE_TYPE_ALIASES.get(ext, ext)


class TripoProvider(BaseGenerationProvider):
    """Tripo3D text/image to 3D model provider"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model_version: Optional[str] = None,
        texture: Optional[bool] = None,
        pbr: Optional[bool] = None,
        auto_size: Optional[bool] = None,
        timeout: Optional[int] = None
    ):
        super().__init__(
            api_key if api_key is not None else settings.TRIPO_API_KEY,
            base_url or settings.TRIPO_BASE_URL,
            timeout or settings.GENERATION_REQUEST_TIMEOUT
        )
        self.model_version = model_version or settings.TRIPO_MODEL_VERSION
        self.texture = settings.TRIPO_TEXTURE if texture is None else texture
        self.pbr = settings.TRIPO_PBR if pbr is None else pbr
        self.auto_size = settings.TRIPO_AUTO_SIZE if auto_size is None else auto_size
        self.capabilities = [
            ProviderCapability.TEXT_TO_MODEL,
            ProviderCapability.IMAGE_TO_MODEL,
            ProviderCapability.IMAGE_UPLOAD
        ]

    def build_task_payload(self, request: GenerationRequest) -> Dict[str, Any]:
        """Translate a GenerationRequest into a Tripo task body"""
        common = {
            "model_version": self.model_version,
            "texture": self.texture,
            "pbr": self.pbr,
            "auto_size": self.auto_size,
        }

        if request.kind == InputKind.IMAGE:
            if not request.image_token:
                raise GenerationServiceError("Image token is required for image generation", upstream_status=400)
            payload = {
                "type": "image_to_model",
                "file": {
                    "type": request.file_type or "jpg",
                    "file_token": request.image_token,
                },
                **common
            }
        else:
            # Image-with-text jobs arrive here with the described prompt
            if not request.prompt or not request.prompt.strip():
                raise GenerationServiceError("Prompt is required for text generation", upstream_status=400)
            prompt = prepare_prompt(
                request.prompt,
                threshold=settings.PROMPT_CLEANUP_THRESHOLD,
                max_length=settings.PROMPT_MAX_LENGTH
            )
            logger.debug(f"Prompt length: original={len(request.prompt)} processed={len(prompt)}")
            payload = {
                "type": "text_to_model",
                "prompt": prompt,
                **common
            }

        payload.update(request.additional_params)
        return payload

    async def start_generation(self, request: GenerationRequest) -> str:
        """Start a Tripo task; one request, never retried"""
        if not self.api_key:
            raise GenerationServiceError("Tripo API key not configured")

        payload = self.build_task_payload(request)
        logger.info(f"Sending {payload['type']} request to Tripo API")

        try:
            status, body = await self._send("POST", "/task", json=payload)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Tripo API request failed: {e}")
            raise GenerationServiceError(f"Failed to reach generation service: {e}") from e

        if not 200 <= status < 300:
            logger.error(f"Tripo API error (HTTP {status}): {body}")
            raise GenerationServiceError("Failed to start model generation", upstream_status=status)

        data = body.get("data") if isinstance(body, dict) else None
        task_id = data.get("task_id") if isinstance(data, dict) else None
        if not task_id:
            logger.error(f"Tripo API response without task id: {body}")
            raise GenerationServiceError("Generation service did not return a task id", upstream_status=status)

        logger.info(f"Tripo generation started: {task_id}")
        return task_id

    async def check_status(self, job_id: str) -> StatusReply:
        """Read task status; non-2xx replies are handed back untouched"""
        status, body = await self._send("GET", f"/task/{job_id}")
        if not 200 <= status < 300:
            logger.warning(f"Tripo status check for {job_id} returned HTTP {status}")
        return StatusReply(job_id=job_id, http_status=status, body=body)

    async def upload_image(self, data: bytes, filename: str) -> str:
        """Upload an image and return its file token"""
        if not self.api_key:
            raise GenerationServiceError("Tripo API key not configured")

        content_type = mimetypes.guess_type(filename)[0] or "application/octet-stream"
        form = aiohttp.FormData()
        form.add_field("file", data, filename=filename, content_type=content_type)

        try:
            status, body = await self._send("POST", "/upload", data=form)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Tripo upload failed: {e}")
            raise GenerationServiceError(f"Failed to upload image: {e}") from e

        payload = body.get("data") if isinstance(body, dict) else None
        token = payload.get("image_token") if isinstance(payload, dict) else None
        if not 200 <= status < 300 or not token:
            logger.error(f"Tripo upload error (HTTP {status}): {body}")
            raise GenerationServiceError("Failed to upload image", upstream_status=status)

        logger.info(f"Uploaded {filename} ({len(data)} bytes) to Tripo")
        return token

    def get_supported_capabilities(self) -> List[ProviderCapability]:
        return self.capabilities


register_provider("tripo", TripoProvider)
