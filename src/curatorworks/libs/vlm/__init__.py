"""Vision-language client shared by curation stages."""

from .client import (  # noqa: F401
    ImageRef,
    InvalidImageError,
    VisionClient,
    VisionCompletion,
    VLMBackendError,
)

__all__ = [
    "ImageRef",
    "InvalidImageError",
    "VisionClient",
    "VisionCompletion",
    "VLMBackendError",
]
