"""
Fetching generated model artifacts for same-origin download
"""

import logging
import mimetypes
from dataclasses import dataclass
from typing import Optional

import httpx

from modelforge.core.exceptions import ArtifactUnavailableError

logger = logging.getLogger(__name__)

MEDIA_TYPES = {
    ".glb": "model/gltf-binary",
    ".gltf": "model/gltf+json",
    ".stl": "model/stl",
    ".obj": "model/obj",
    ".fbx": "application/octet-stream",
}


@dataclass
class Artifact:
    content: bytes
    media_type: str
    file_name: str


def media_type_for(file_name: str, fallback: Optional[str] = None) -> str:
    for ext, media_type in MEDIA_TYPES.items():
        if file_name.lower().endswith(ext):
            return media_type
    return fallback or mimetypes.guess_type(file_name)[0] or "application/octet-stream"


async def fetch_artifact(
    client: httpx.AsyncClient,
    url: str,
    file_name: str,
    max_bytes: int
) -> Artifact:
    """Download an artifact into memory, refusing anything above ``max_bytes``"""
    chunks = []
    size = 0
    try:
        async with client.stream("GET", url) as response:
            if not response.is_success:
                raise ArtifactUnavailableError(f"Artifact download failed with HTTP {response.status_code}")

            declared = int(response.headers.get("content-length") or 0)
            if declared > max_bytes:
                raise ArtifactUnavailableError(f"Artifact too large ({declared} bytes)")

            async for chunk in response.aiter_bytes():
                size += len(chunk)
                if size > max_bytes:
                    raise ArtifactUnavailableError(f"Artifact exceeds {max_bytes} bytes")
                chunks.append(chunk)

            content_type = response.headers.get("content-type", "").split(";")[0].strip()
    except httpx.HTTPError as e:
        logger.error(f"Artifact download failed for {url}: {e}")
        raise ArtifactUnavailableError(f"Artifact download failed: {e}") from e

    logger.info(f"Fetched artifact {file_name} ({size} bytes)")
    fallback = content_type if content_type and content_type != "application/octet-stream" else None
    return Artifact(
        content=b"".join(chunks),
        media_type=media_type_for(file_name, fallback),
        file_name=file_name
    )
