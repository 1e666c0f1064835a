"""Job inspection API: list runs and look one up by id."""

from fastapi import APIRouter, Depends, HTTPException

from app.api.deps import get_supervisor
from app.jobs.supervisor import JobSupervisor

router = APIRouter()


@router.get("/jobs")
async def list_jobs(supervisor: JobSupervisor = Depends(get_supervisor)):
    """Snapshot of every run still held in memory, oldest first."""
    return {"jobs": [run.snapshot() for run in supervisor.list_runs()]}


@router.get("/jobs/{job_id}")
async def get_job_status(job_id: str, supervisor: JobSupervisor = Depends(get_supervisor)):
    run = await supervisor.get_status(job_id)
    if run is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return run.snapshot()
