from fastapi import Request, status
from fastapi.responses import JSONResponse
import logging

logger = logging.getLogger(__name__)

class ModelForgeException(Exception):
    """Base exception for ModelForge application"""
    def __init__(self, message: str, status_code: int = 500):
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)

class JobNotFoundError(ModelForgeException):
    """Raised when a job is not found"""
    def __init__(self, message: str = "Job not found"):
        super().__init__(message, status.HTTP_404_NOT_FOUND)

class ValidationError(ModelForgeException):
    """Raised when validation fails"""
    def __init__(self, message: str = "Validation error"):
        super().__init__(message, status.HTTP_400_BAD_REQUEST)

class GenerationServiceError(ModelForgeException):
    """Raised when the generation service rejects or fails a request"""
    def __init__(self, message: str = "Failed to start model generation", upstream_status: int = None):
        self.upstream_status = upstream_status
        super().__init__(message, status.HTTP_502_BAD_GATEWAY)

class ArtifactUnavailableError(ModelForgeException):
    """Raised when a job has no artifact to download or hand off"""
    def __init__(self, message: str = "Model artifact not available"):
        super().__init__(message, status.HTTP_409_CONFLICT)

class ArtifactConversionError(ModelForgeException):
    """Raised when a model artifact cannot be converted to another format"""
    def __init__(self, message: str = "Model conversion failed"):
        super().__init__(message, status.HTTP_422_UNPROCESSABLE_ENTITY)

class ServiceNotReadyError(ModelForgeException):
    """Raised when a dependency was not initialized at startup"""
    def __init__(self, message: str = "Service not initialized"):
        super().__init__(message, status.HTTP_503_SERVICE_UNAVAILABLE)

async def modelforge_exception_handler(request: Request, exc: ModelForgeException):
    """Handle custom ModelForge exceptions"""
    logger.error(f"ModelForge exception: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message}
    )

async def general_exception_handler(request: Request, exc: Exception):
    """Handle general exceptions"""
    logger.error(f"Unexpected error: {str(exc)}", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"}
    )
