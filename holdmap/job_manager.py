# holdmap/job_manager.py
"""
Job queue for pipeline runs.
Handles job creation, scheduling, and status tracking. Every record event
becomes one job processed as an independent background task; jobs share no
mutable state besides their own entry in JOBS.
"""

import asyncio
import uuid
from typing import Any, Dict, Set

from .logger import console, log_failure
from .metrics import JOB_PROCESSING_SECONDS, JOBS_COMPLETED, JOBS_IN_FLIGHT
from .models import RecordEvent

# In-memory job store
JOBS: Dict[str, Dict[str, Any]] = {}

# Strong references so pending tasks are not garbage collected
_TASKS: Set[asyncio.Task] = set()


async def process_job(job_id: str, pipeline, doc_id: str, event: RecordEvent) -> None:
    """
    Background worker that runs one pipeline invocation.

    Args:
        job_id: Unique job identifier
        pipeline: BasePicturePipeline or ProblemPipeline
        doc_id: Record the event belongs to
        event: before/after snapshots of the record
    """
    name = pipeline.collection
    console.log(f"[yellow]Starting {name} job {job_id} for {doc_id} ({event.kind})[/yellow]")

    try:
        with JOB_PROCESSING_SECONDS.labels(pipeline=name).time():
            message = await asyncio.to_thread(pipeline.handle, doc_id, event)

        JOBS[job_id]["status"] = "done"
        JOBS[job_id]["message"] = message

        JOBS_COMPLETED.labels(pipeline=name, status="done").inc()
        console.log(f"[green]Job {job_id} done: {message}[/green]")

    except Exception as e:
        JOBS[job_id]["status"] = "error"
        JOBS[job_id]["error"] = f"{type(e).__name__}: {e}"

        JOBS_COMPLETED.labels(pipeline=name, status="error").inc()
        log_failure(f"Job {job_id} failed: {type(e).__name__}: {e}")

    finally:
        JOBS_IN_FLIGHT.dec()


def create_job(pipeline, doc_id: str, event: RecordEvent) -> str:
    """
    Create a job entry and schedule the pipeline run on the running loop.

    Returns:
        job_id: Unique identifier for tracking job status
    """
    job_id = uuid.uuid4().hex
    JOBS[job_id] = {
        "status": "pending",
        "pipeline": pipeline.collection,
        "doc_id": doc_id,
        "kind": event.kind,
    }

    JOBS_IN_FLIGHT.inc()

    loop = asyncio.get_running_loop()
    task = loop.create_task(process_job(job_id, pipeline, doc_id, event))
    _TASKS.add(task)
    task.add_done_callback(_TASKS.discard)

    return job_id
