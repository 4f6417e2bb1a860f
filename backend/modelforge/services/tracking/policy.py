"""
Polling policy for generation job tracking
"""

import random
from dataclasses import dataclass
from typing import Optional

from modelforge.core.config import Settings


@dataclass(frozen=True)
class PollingPolicy:
    """Timing and fallback parameters of the poll loop.

    ``max_simulated_cycles`` bounds how long the tracker keeps substituting
    simulated progress; ``None`` keeps polling until the service reports a
    terminal status.
    """
    max_retries: int = 3
    poll_interval: float = 2.0
    retry_interval: float = 3.0
    backoff_factor: float = 1.0
    max_retry_interval: float = 30.0
    simulated_step: int = 2
    simulated_jitter: int = 3
    progress_ceiling: int = 98
    real_check_interval: float = 10.0
    config_error_progress: int = 5
    max_simulated_cycles: Optional[int] = None

    def __post_init__(self):
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.poll_interval < 0 or self.retry_interval < 0 or self.real_check_interval < 0:
            raise ValueError("intervals must be >= 0")
        if self.backoff_factor < 1.0:
            raise ValueError("backoff_factor must be >= 1.0")
        if self.simulated_step < 1 or self.simulated_jitter < 0:
            raise ValueError("simulated_step must be >= 1 and simulated_jitter >= 0")
        if not 0 < self.progress_ceiling < 100:
            raise ValueError("progress_ceiling must be between 1 and 99")
        if self.config_error_progress < 0:
            raise ValueError("config_error_progress must be >= 0")
        if self.max_simulated_cycles is not None and self.max_simulated_cycles < 0:
            raise ValueError("max_simulated_cycles must be >= 0")

    def retry_delay(self, attempt: int) -> float:
        """Delay before the next poll after ``attempt`` consecutive failures"""
        delay = self.retry_interval * (self.backoff_factor ** max(0, attempt - 1))
        return min(delay, self.max_retry_interval)

    def simulated_increment(self, rng: random.Random) -> int:
        jitter = rng.randint(0, self.simulated_jitter) if self.simulated_jitter else 0
        return self.simulated_step + jitter

    @classmethod
    def from_settings(cls, settings: Settings) -> "PollingPolicy":
        return cls(
            max_retries=settings.POLL_MAX_RETRIES,
            poll_interval=settings.POLL_INTERVAL_SECONDS,
            retry_interval=settings.RETRY_INTERVAL_SECONDS,
            backoff_factor=settings.POLL_BACKOFF_FACTOR,
            max_retry_interval=settings.POLL_MAX_RETRY_INTERVAL_SECONDS,
            simulated_step=settings.SIMULATED_PROGRESS_STEP,
            simulated_jitter=settings.SIMULATED_PROGRESS_JITTER,
            progress_ceiling=settings.SIMULATED_PROGRESS_CEILING,
            real_check_interval=settings.REAL_CHECK_INTERVAL_SECONDS,
            config_error_progress=settings.CONFIG_ERROR_PROGRESS_STEP,
            max_simulated_cycles=settings.MAX_SIMULATED_CYCLES,
        )
