from .description import (
    ImageDescription,
    ImageDescriptionError,
    ImageDescriptionService
)

__all__ = [
    "ImageDescription",
    "ImageDescriptionError",
    "ImageDescriptionService"
]
