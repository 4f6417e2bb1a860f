"""
In-memory records for model generation jobs
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class InputKind(str, Enum):
    """Which submission path created a job"""
    TEXT = "text"
    IMAGE = "image"
    IMAGE_WITH_TEXT = "image_with_text"


class JobState(str, Enum):
    """Lifecycle states of a generation job"""
    IDLE = "idle"
    SUBMITTING = "submitting"
    POLLING = "polling"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


TERMINAL_STATES = frozenset({JobState.SUCCEEDED, JobState.FAILED})


@dataclass
class GenerationPayload:
    """User input for a submission; shape depends on the input kind"""
    prompt: Optional[str] = None
    image_token: Optional[str] = None
    file_type: str = "jpg"
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass
class JobResult:
    """Artifacts of a succeeded job"""
    artifact_url: Optional[str] = None
    fallback_url: Optional[str] = None
    preview_image_url: Optional[str] = None


@dataclass
class Job:
    """One tracked generation request.

    Mutated only by the JobTracker. ``id`` is assigned by the generation
    service and stays ``None`` if submission fails.
    """
    input_kind: InputKind
    id: Optional[str] = None
    state: JobState = JobState.IDLE
    progress: int = 0
    attempt: int = 0
    result: Optional[JobResult] = None
    last_error: Optional[str] = None

    last_real_progress: int = 0
    simulated: bool = False
    simulated_elapsed: float = 0.0
    simulated_cycles: int = 0
    polls: int = 0
    next_delay: Optional[float] = None

    session_id: Optional[str] = None
    superseded: bool = False
    created_at: datetime = field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def assign_id(self, job_id: str):
        if self.id is not None and self.id != job_id:
            raise ValueError(f"Job id already set to {self.id}")
        self.id = job_id
