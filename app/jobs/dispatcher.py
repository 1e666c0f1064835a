"""Job dispatcher interface."""

from abc import ABC, abstractmethod
from typing import List, Optional

from app.jobs.models import JobRequest, JobRun


class JobDispatcher(ABC):
    """Abstract interface for running download jobs."""

    @abstractmethod
    async def submit(self, request: JobRequest) -> str:
        """Start a job for an admitted request. Returns job_id immediately."""
        ...

    @abstractmethod
    async def get_status(self, job_id: str) -> Optional[JobRun]:
        """Get current state of a job."""
        ...

    @abstractmethod
    def list_runs(self) -> List[JobRun]:
        ...

    @abstractmethod
    async def start(self) -> None:
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Stop the dispatcher, abandoning in-flight jobs."""
        ...
