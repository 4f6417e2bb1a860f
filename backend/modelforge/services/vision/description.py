"""
Image description service

Turns an uploaded image (plus an optional hint from the user) into a short
text prompt suitable for text-to-3D generation, using an OpenAI vision model.
"""

import base64
import logging
from dataclasses import dataclass
from typing import Optional

import openai
from openai import AsyncOpenAI
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log
)

from modelforge.core.config import settings
from modelforge.services.generation.prompts import (
    FALLBACK_DESCRIPTION,
    VISION_SYSTEM_PROMPT,
    build_vision_prompt,
    clean_description
)

logger = logging.getLogger(__name__)

RETRYABLE_OPENAI_ERRORS = (
    openai.APIConnectionError,
    openai.APITimeoutError,
    openai.RateLimitError,
    openai.InternalServerError,
)


class ImageDescriptionError(Exception):
    """Raised when the vision model could not describe an image"""
    def __init__(self, message: str, original_error: Exception = None):
        self.message = message
        self.original_error = original_error
        super().__init__(self.message)


@dataclass
class ImageDescription:
    description: str
    model: str
    fallback: bool = False


class ImageDescriptionService:
    """OpenAI vision wrapper; returns a fixed description when no key is configured"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        client: Optional[AsyncOpenAI] = None
    ):
        self.api_key = api_key if api_key is not None else settings.OPENAI_API_KEY
        self.model = model or settings.VISION_MODEL
        self.max_tokens = max_tokens or settings.VISION_MAX_TOKENS
        self.client = client
        if self.client is None and self.api_key:
            self.client = AsyncOpenAI(
                api_key=self.api_key,
                timeout=settings.AI_REQUEST_TIMEOUT,
                max_retries=0
            )

    @property
    def configured(self) -> bool:
        return self.client is not None

    async def describe(
        self,
        image: bytes,
        content_type: str = "image/jpeg",
        prompt: Optional[str] = None
    ) -> ImageDescription:
        if not image:
            raise ImageDescriptionError("Image file is required")

        if not self.configured:
            logger.warning("OpenAI API key not configured, returning fallback description")
            return ImageDescription(description=FALLBACK_DESCRIPTION, model=self.model, fallback=True)

        logger.info(f"Analyzing image with text prompt: {prompt or '[No additional prompt]'}")
        data_uri = f"data:{content_type};base64,{base64.b64encode(image).decode('ascii')}"

        try:
            raw = await self._complete(build_vision_prompt(prompt), data_uri)
        except openai.OpenAIError as e:
            logger.error(f"Image description failed: {e}")
            raise ImageDescriptionError(f"Failed to analyze image: {e}", e) from e

        description = clean_description(raw, settings.PROMPT_MAX_LENGTH)
        if not description:
            raise ImageDescriptionError("Vision model returned an empty description")

        logger.info(f"Generated description ({len(description)} chars)")
        return ImageDescription(description=description, model=self.model)

    @retry(
        stop=stop_after_attempt(settings.AI_MAX_RETRIES),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type(RETRYABLE_OPENAI_ERRORS),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True
    )
    async def _complete(self, user_prompt: str, data_uri: str) -> str:
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": VISION_SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": user_prompt},
                        {"type": "image_url", "image_url": {"url": data_uri}},
                    ],
                },
            ],
            max_tokens=self.max_tokens,
        )
        if not response.choices:
            return ""
        return response.choices[0].message.content or ""
