from .job import (
    GenerateModelRequest,
    GenerateModelResponse,
    TaskStatusResponse,
    ImageUploadResponse,
    ImageAnalysisResponse,
    JobSubmitRequest,
    JobResultResponse,
    JobResponse,
    ClearJobsResponse
)
from .handoff import (
    HandoffMetadata,
    HandoffMessage,
    HandoffRequest,
    HandoffReceiptResponse,
    HandoffResponse,
    AcknowledgementResponse,
    ImportStatusResponse
)

__all__ = [
    "GenerateModelRequest",
    "GenerateModelResponse",
    "TaskStatusResponse",
    "ImageUploadResponse",
    "ImageAnalysisResponse",
    "JobSubmitRequest",
    "JobResultResponse",
    "JobResponse",
    "ClearJobsResponse",
    "HandoffMetadata",
    "HandoffMessage",
    "HandoffRequest",
    "HandoffReceiptResponse",
    "HandoffResponse",
    "AcknowledgementResponse",
    "ImportStatusResponse"
]
