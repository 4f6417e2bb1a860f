"""
Job Tracker

Owns the lifecycle of generation jobs from submission to a terminal state.
Each job is polled by one asyncio task that runs a single poll step at a time,
so no two status checks for the same job overlap. Everything the status
endpoint can throw at us (network errors, HTTP errors, malformed bodies,
missing credentials) is folded into job fields; only an explicit terminal
status, a failed submission or an exhausted ``max_simulated_cycles`` bound
ends a job.

The tracker assumes a single event loop owns every Job. Calling it from
several threads needs an explicit owner loop (``asyncio.run_coroutine_threadsafe``).
"""

import asyncio
import logging
import random
from datetime import datetime
from typing import Awaitable, Callable, Dict, List, Optional

from modelforge.core.exceptions import GenerationServiceError
from modelforge.models.job import GenerationPayload, InputKind, Job, JobResult, JobState
from modelforge.services.generation.base_provider import BaseGenerationProvider, GenerationRequest
from modelforge.services.generation.normalization import NormalizedStatus, StatusKind, normalize_status
from .policy import PollingPolicy

logger = logging.getLogger(__name__)

MAX_POLLING_PROGRESS = 99
DEFAULT_MAX_JOBS = 500

Listener = Callable[[Job], None]
SleepFn = Callable[[float], Awaitable[None]]


class JobTracker:
    """Submits generation jobs and polls them to completion"""

    def __init__(
        self,
        provider: BaseGenerationProvider,
        policy: Optional[PollingPolicy] = None,
        sleep: SleepFn = asyncio.sleep,
        rng: Optional[random.Random] = None,
        max_jobs: Optional[int] = DEFAULT_MAX_JOBS
    ):
        self.provider = provider
        self.policy = policy or PollingPolicy()
        self._sleep = sleep
        self._rng = rng or random.Random()
        self.max_jobs = max_jobs
        self._jobs: Dict[str, Job] = {}
        self._tasks: Dict[str, asyncio.Task] = {}
        self._sessions: Dict[str, Job] = {}
        self._listeners: List[Listener] = []

    # Observation

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a callback run after every job mutation; returns an unsubscribe function"""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, job: Job):
        for listener in list(self._listeners):
            try:
                listener(job)
            except Exception:
                logger.exception(f"Job listener {listener!r} failed")

    def get(self, job_id: str) -> Optional[Job]:
        return self._jobs.get(job_id)

    def jobs(self) -> List[Job]:
        return list(self._jobs.values())

    def is_polling(self, job_id: str) -> bool:
        task = self._tasks.get(job_id)
        return task is not None and not task.done()

    # Submission

    async def submit(
        self,
        input_kind: InputKind,
        payload: GenerationPayload,
        session_id: Optional[str] = None,
        start_polling: bool = True
    ) -> Job:
        """Start a generation job. Exactly one provider call; never retried."""
        job = Job(input_kind=input_kind, session_id=session_id)
        if session_id:
            self._supersede(session_id)
            self._sessions[session_id] = job

        job.state = JobState.SUBMITTING
        self._notify(job)

        request = GenerationRequest(
            kind=input_kind,
            prompt=payload.prompt,
            image_token=payload.image_token,
            file_type=payload.file_type,
            additional_params=dict(payload.extra)
        )

        try:
            job_id = await self.provider.start_generation(request)
        except GenerationServiceError as e:
            logger.error(f"Submission of {input_kind.value} job failed: {e.message}")
            return self._fail(job, e.message)
        except Exception as e:
            logger.error(f"Submission of {input_kind.value} job failed unexpectedly: {e}", exc_info=True)
            return self._fail(job, f"{type(e).__name__}: {e}")

        job.assign_id(job_id)
        job.state = JobState.POLLING
        job.progress = 0
        job.attempt = 0
        self._jobs[job_id] = job
        self._prune()
        logger.info(f"Job {job_id} ({input_kind.value}) submitted, polling")
        self._notify(job)

        if start_polling and not job.superseded:
            self._tasks[job_id] = asyncio.create_task(self._run(job), name=f"poll-{job_id}")
        return job

    def _supersede(self, session_id: str):
        previous = self._sessions.get(session_id)
        if previous is None or previous.is_terminal or previous.superseded:
            return

        previous.superseded = True
        task = self._tasks.pop(previous.id, None) if previous.id else None
        if task is not None:
            task.cancel()
        logger.info(f"Job {previous.id} superseded by a new submission in session {session_id}")
        self._notify(previous)

    # Poll loop

    async def _run(self, job: Job):
        try:
            while not job.is_terminal and not job.superseded:
                await self.poll(job)
                if job.is_terminal or job.superseded:
                    break
                await self._sleep(job.next_delay)
        except asyncio.CancelledError:
            logger.debug(f"Polling of job {job.id} cancelled")
            raise
        finally:
            if self._tasks.get(job.id) is asyncio.current_task():
                self._tasks.pop(job.id, None)

    async def poll(self, job: Job) -> Job:
        """Run one poll step.

        Afterwards the job is either still polling with ``next_delay`` set,
        succeeded, or failed. Stale jobs are returned untouched.
        """
        if job.state != JobState.POLLING or job.superseded:
            logger.debug(f"Ignoring poll for job {job.id} in state {job.state.value}")
            return job

        job.polls += 1

        if job.attempt > 0 and job.attempt >= self.policy.max_retries:
            if job.simulated_elapsed < self.policy.real_check_interval:
                return self._simulate(job)
            logger.info(f"Job {job.id}: retrying a real status check after simulated progress")
            job.attempt = 0
            job.simulated_elapsed = 0.0

        try:
            reply = await self.provider.check_status(job.id)
        except Exception as e:
            logger.warning(f"Status check for job {job.id} failed: {type(e).__name__}: {e}")
            return self._transient(job, f"{type(e).__name__}: {e}")

        if job.superseded or job.state != JobState.POLLING:
            return job

        return self._apply(job, normalize_status(reply.body, reply.http_status))

    def _apply(self, job: Job, status: NormalizedStatus) -> Job:
        if status.kind == StatusKind.SUCCESS:
            return self._succeed(job, status)

        if status.kind == StatusKind.TERMINAL_FAILURE:
            logger.info(f"Job {job.id} reported terminal status '{status.status}'")
            return self._fail(job, status.error or f"Generation {status.status}")

        if status.kind == StatusKind.IN_PROGRESS:
            self._advance(job, status.progress, simulated=False)
            job.last_real_progress = max(job.last_real_progress, min(status.progress, MAX_POLLING_PROGRESS))

            if status.http_ok:
                job.attempt = 0
                job.simulated_elapsed = 0.0
                job.simulated_cycles = 0
                job.next_delay = self.policy.poll_interval
                logger.debug(f"Job {job.id}: {status.status} {job.progress}%")
            else:
                job.attempt += 1
                job.last_error = status.error or f"HTTP {status.http_status}"
                job.next_delay = self.policy.retry_delay(job.attempt)
                logger.warning(
                    f"Job {job.id}: HTTP {status.http_status} with usable status "
                    f"'{status.status}' ({status.progress}%), continuing"
                )
            self._notify(job)
            return job

        if status.kind == StatusKind.CONFIG_ERROR:
            self._advance(job, job.progress + self.policy.config_error_progress, simulated=True)
            job.attempt += 1
            job.last_error = status.error
            job.next_delay = self.policy.retry_delay(job.attempt)
            logger.warning(f"Job {job.id}: status endpoint configuration problem ({status.error}), substituting progress")
            self._notify(job)
            return job

        return self._transient(job, status.error or "Unrecognized status response")

    def _simulate(self, job: Job) -> Job:
        job.simulated_cycles += 1
        limit = self.policy.max_simulated_cycles
        if limit is not None and job.simulated_cycles > limit:
            logger.error(f"Job {job.id}: no terminal status after {limit} simulated progress cycles")
            return self._fail(job, f"No terminal status after {limit} simulated progress cycles")

        increment = self.policy.simulated_increment(self._rng)
        self._advance(job, job.last_real_progress + increment, simulated=True)

        delay = self.policy.retry_interval
        job.simulated_elapsed += delay
        job.next_delay = delay
        logger.debug(f"Job {job.id}: simulated progress {job.progress}% (cycle {job.simulated_cycles})")
        self._notify(job)
        return job

    def _transient(self, job: Job, error: str) -> Job:
        job.attempt += 1
        job.last_error = error
        job.next_delay = self.policy.retry_delay(job.attempt)
        self._notify(job)
        return job

    def _advance(self, job: Job, candidate: int, simulated: bool):
        """Move progress forward only; simulated values stop at the ceiling"""
        ceiling = self.policy.progress_ceiling if simulated else MAX_POLLING_PROGRESS
        new_progress = max(job.progress, min(ceiling, candidate))
        if simulated:
            job.simulated = new_progress > job.progress or job.simulated
        else:
            job.simulated = new_progress > candidate
        job.progress = new_progress

    # Terminal transitions

    def _succeed(self, job: Job, status: NormalizedStatus) -> Job:
        job.state = JobState.SUCCEEDED
        job.progress = 100
        job.simulated = False
        job.result = JobResult(
            artifact_url=status.artifact_url,
            fallback_url=status.fallback_url,
            preview_image_url=status.preview_url
        )
        if not status.artifact_url:
            job.last_error = "Generation succeeded but no model URL was returned"
            logger.warning(f"Job {job.id} succeeded without a model URL")
        job.completed_at = datetime.utcnow()
        job.next_delay = None
        logger.info(f"Job {job.id} succeeded: {status.artifact_url}")
        self._notify(job)
        return job

    def _fail(self, job: Job, error: str) -> Job:
        job.state = JobState.FAILED
        job.last_error = error
        job.completed_at = datetime.utcnow()
        job.next_delay = None
        self._notify(job)
        return job

    # Housekeeping

    async def wait(self, job_id: str, timeout: Optional[float] = None) -> Optional[Job]:
        """Wait for the poll task of a job to finish"""
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
        return self._jobs.get(job_id)

    def clear_completed_jobs(self) -> int:
        """Forget terminal and superseded jobs; returns how many were removed"""
        stale = [
            job_id for job_id, job in self._jobs.items()
            if job.is_terminal or job.superseded
        ]
        for job_id in stale:
            del self._jobs[job_id]
        self._sessions = {
            session: job for session, job in self._sessions.items()
            if not (job.is_terminal or job.superseded)
        }
        return len(stale)

    def _prune(self):
        """Forget the oldest finished jobs once more than ``max_jobs`` are tracked"""
        if self.max_jobs is None or len(self._jobs) <= self.max_jobs:
            return

        finished = sorted(
            (job for job in self._jobs.values() if job.is_terminal or job.superseded),
            key=lambda job: job.completed_at or job.created_at
        )
        excess = len(self._jobs) - self.max_jobs
        for job in finished[:excess]:
            del self._jobs[job.id]
            if job.session_id and self._sessions.get(job.session_id) is job:
                del self._sessions[job.session_id]
        if finished:
            logger.debug(f"Pruned {min(excess, len(finished))} finished job(s)")

    async def cancel_all(self):
        """Stop every poll task (shutdown)"""
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info(f"Cancelled {len(tasks)} polling task(s)")
