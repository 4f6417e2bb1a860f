from .policy import PollingPolicy
from .tracker import JobTracker

__all__ = ["PollingPolicy", "JobTracker"]
