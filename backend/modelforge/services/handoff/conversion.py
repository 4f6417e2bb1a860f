"""
Converting generated models to STL, the format 3D printers and the CAD
importer expect
"""

import io
import logging
from pathlib import PurePosixPath

import trimesh

from modelforge.core.exceptions import ArtifactConversionError
from .artifacts import MEDIA_TYPES, Artifact

logger = logging.getLogger(__name__)

STL_FORMAT = "stl"
STL_MEDIA_TYPE = MEDIA_TYPES[".stl"]

# formats trimesh can load into a single mesh
CONVERTIBLE_FORMATS = {"glb", "gltf", "obj", "stl"}


def stl_file_name(file_name: str) -> str:
    stem = PurePosixPath(file_name).stem or "model"
    return f"{stem}.{STL_FORMAT}"


def source_format(artifact: Artifact) -> str:
    """Format of an artifact from its file name, or its media type when the name has no extension"""
    suffix = PurePosixPath(artifact.file_name).suffix.lower()
    if suffix:
        return suffix.lstrip(".")
    for ext, media_type in MEDIA_TYPES.items():
        if media_type == artifact.media_type:
            return ext.lstrip(".")
    return ""


def is_stl(artifact: Artifact) -> bool:
    return artifact.media_type == STL_MEDIA_TYPE or source_format(artifact) == STL_FORMAT


def convert_to_stl(artifact: Artifact) -> Artifact:
    """
    Flatten every mesh of the artifact's scene, with its node transforms
    applied, into one mesh and export it as binary STL. STL input is
    returned as is.
    """
    if is_stl(artifact):
        return artifact

    file_type = source_format(artifact)
    if file_type not in CONVERTIBLE_FORMATS:
        raise ArtifactConversionError(f"Cannot convert {file_type or 'unknown'} models to STL")

    try:
        mesh = trimesh.load(io.BytesIO(artifact.content), file_type=file_type, force="mesh")
    except Exception as e:
        logger.error(f"Loading {artifact.file_name} as {file_type} failed: {e}")
        raise ArtifactConversionError(f"Failed to read {file_type} model: {e}") from e

    if not isinstance(mesh, trimesh.Trimesh) or mesh.is_empty:
        raise ArtifactConversionError(f"{artifact.file_name} contains no mesh geometry")

    content = mesh.export(file_type=STL_FORMAT)
    file_name = stl_file_name(artifact.file_name)
    logger.info(
        f"Converted {artifact.file_name} to {file_name} "
        f"({len(mesh.faces)} faces, {len(content)} bytes)"
    )
    return Artifact(content=content, media_type=STL_MEDIA_TYPE, file_name=file_name)
