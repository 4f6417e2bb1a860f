"""
Model Generation Services Package

Clients for the external text/image to 3D generation service and the
normalization of its status payloads.
"""

from .base_provider import (
    BaseGenerationProvider,
    GenerationRequest,
    MockGenerationProvider,
    ProviderCapability,
    StatusReply,
    get_provider,
    register_provider
)
from .tripo_provider import TripoProvider
from .normalization import NormalizedStatus, StatusKind, normalize_status

__all__ = [
    "BaseGenerationProvider",
    "GenerationRequest",
    "MockGenerationProvider",
    "ProviderCapability",
    "StatusReply",
    "get_provider",
    "register_provider",
    "TripoProvider",
    "NormalizedStatus",
    "StatusKind",
    "normalize_status"
]
