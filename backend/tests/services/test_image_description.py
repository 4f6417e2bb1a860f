from unittest.mock import AsyncMock, Mock

import httpx
import openai
import pytest

from modelforge.services.generation.prompts import FALLBACK_DESCRIPTION
from modelforge.services.vision.description import ImageDescription, ImageDescriptionError, ImageDescriptionService

OPENAI_URL = "https://api.openai.com/v1/chat/completions"


def completion(content):
    return Mock(choices=[Mock(message=Mock(content=content))])


@pytest.fixture
def openai_client():
    """Mock AsyncOpenAI client."""
    client = Mock()
    client.chat.completions.create = AsyncMock(return_value=completion("**A** small\n\nwooden chair"))
    return client


@pytest.fixture
def vision(openai_client):
    return ImageDescriptionService(api_key="sk-test", client=openai_client)


@pytest.mark.unit
class TestImageDescriptionService:

    async def test_describe_cleans_model_output(self, vision, openai_client):
        result = await vision.describe(b"\xff\xd8image", content_type="image/jpeg", prompt="make it oak")

        assert result == ImageDescription(description="A small wooden chair", model="gpt-4o", fallback=False)

        kwargs = openai_client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o"
        user_content = kwargs["messages"][1]["content"]
        assert user_content[0]["text"].endswith("make it oak")
        assert user_content[1]["image_url"]["url"].startswith("data:image/jpeg;base64,")

    async def test_fallback_without_api_key(self, vision_service):
        result = await vision_service.describe(b"image")

        assert result.fallback is True
        assert result.description == FALLBACK_DESCRIPTION

    async def test_empty_image_rejected(self, vision):
        with pytest.raises(ImageDescriptionError):
            await vision.describe(b"")

    async def test_empty_answer_is_an_error(self, vision, openai_client):
        openai_client.chat.completions.create.return_value = completion("   ")

        with pytest.raises(ImageDescriptionError):
            await vision.describe(b"image")

    async def test_authentication_error_not_retried(self, vision, openai_client):
        response = httpx.Response(401, request=httpx.Request("POST", OPENAI_URL))
        openai_client.chat.completions.create.side_effect = openai.AuthenticationError(
            "Incorrect API key provided", response=response, body=None
        )

        with pytest.raises(ImageDescriptionError) as exc_info:
            await vision.describe(b"image")

        assert isinstance(exc_info.value.original_error, openai.AuthenticationError)
        assert openai_client.chat.completions.create.await_count == 1

    async def test_connection_error_is_retried(self, vision, openai_client):
        openai_client.chat.completions.create.side_effect = [
            openai.APIConnectionError(request=httpx.Request("POST", OPENAI_URL)),
            completion("a lamp"),
        ]

        result = await vision.describe(b"image")

        assert result.description == "a lamp"
        assert openai_client.chat.completions.create.await_count == 2
