"""Job locking, deadlines, and runners.

``JobRunner`` lives in ``src.jobs.runner`` and is imported from there; it
depends on the sync and classification packages, which themselves use
``Deadline`` and ``JobLock`` from this package.
"""

from src.jobs.deadline import Deadline
from src.jobs.lock import JobLock

__all__ = ["Deadline", "JobLock"]
