from datetime import datetime
from pydantic import BaseModel, Field, model_validator
from typing import Optional

from modelforge.models.job import InputKind, Job

class GenerateModelRequest(BaseModel):
    type: str  # text, image
    prompt: Optional[str] = None
    imageToken: Optional[str] = None
    fileType: str = "jpg"

class GenerateModelResponse(BaseModel):
    taskId: str

class TaskStatusResponse(BaseModel):
    status: Optional[str] = None
    progress: int = 0
    modelUrl: Optional[str] = None
    baseModelUrl: Optional[str] = None
    renderedImage: Optional[str] = None

class ImageUploadResponse(BaseModel):
    imageToken: str
    fileType: str

class ImageAnalysisResponse(BaseModel):
    description: str
    fallback: bool = False

class JobSubmitRequest(BaseModel):
    inputKind: InputKind = InputKind.TEXT
    prompt: Optional[str] = Field(None, max_length=5000)
    imageToken: Optional[str] = None
    fileType: str = "jpg"
    sessionId: Optional[str] = None

    @model_validator(mode="after")
    def check_payload_shape(self):
        has_prompt = bool(self.prompt and self.prompt.strip())
        if self.inputKind == InputKind.TEXT and not has_prompt:
            raise ValueError("prompt is required for text jobs")
        if self.inputKind == InputKind.IMAGE and not self.imageToken:
            raise ValueError("imageToken is required for image jobs")
        if self.inputKind == InputKind.IMAGE_WITH_TEXT and not (has_prompt and self.imageToken):
            raise ValueError("prompt and imageToken are required for image_with_text jobs")
        return self

class JobResultResponse(BaseModel):
    artifactUrl: Optional[str] = None
    fallbackUrl: Optional[str] = None
    previewImageUrl: Optional[str] = None

class JobResponse(BaseModel):
    jobId: Optional[str] = None
    inputKind: InputKind
    state: str  # idle, submitting, polling, succeeded, failed
    progress: int
    attempt: int = 0
    polls: int = Field(0, description="Poll steps run so far, simulated ones included")
    simulated: bool = False
    result: Optional[JobResultResponse] = None
    error: Optional[str] = None
    sessionId: Optional[str] = None
    superseded: bool = False
    createdAt: datetime
    completedAt: Optional[datetime] = None

    @classmethod
    def from_job(cls, job: Job) -> "JobResponse":
        result = None
        if job.result is not None:
            result = JobResultResponse(
                artifactUrl=job.result.artifact_url,
                fallbackUrl=job.result.fallback_url,
                previewImageUrl=job.result.preview_image_url
            )
        return cls(
            jobId=job.id,
            inputKind=job.input_kind,
            state=job.state.value,
            progress=job.progress,
            attempt=job.attempt,
            polls=job.polls,
            simulated=job.simulated,
            result=result,
            error=job.last_error,
            sessionId=job.session_id,
            superseded=job.superseded,
            createdAt=job.created_at,
            completedAt=job.completed_at
        )

class ClearJobsResponse(BaseModel):
    message: str
    active_jobs: int
