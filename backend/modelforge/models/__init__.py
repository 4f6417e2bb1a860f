from .job import (
    InputKind,
    JobState,
    TERMINAL_STATES,
    GenerationPayload,
    JobResult,
    Job,
)

__all__ = [
    "InputKind",
    "JobState",
    "TERMINAL_STATES",
    "GenerationPayload",
    "JobResult",
    "Job",
]
