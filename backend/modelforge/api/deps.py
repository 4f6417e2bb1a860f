"""
FastAPI dependencies for the services created at startup
"""

from fastapi import Request

from modelforge.core.exceptions import ServiceNotReadyError
from modelforge.services.generation.base_provider import BaseGenerationProvider
from modelforge.services.handoff.service import HandoffService
from modelforge.services.tracking.tracker import JobTracker
from modelforge.services.vision.description import ImageDescriptionService


def _state(request: Request, name: str):
    service = getattr(request.app.state, name, None)
    if service is None:
        raise ServiceNotReadyError(f"{name} not initialized")
    return service


def get_tracker(request: Request) -> JobTracker:
    return _state(request, "tracker")


def get_provider(request: Request) -> BaseGenerationProvider:
    return _state(request, "provider")


def get_vision_service(request: Request) -> ImageDescriptionService:
    return _state(request, "vision")


def get_handoff_service(request: Request) -> HandoffService:
    return _state(request, "handoff")
