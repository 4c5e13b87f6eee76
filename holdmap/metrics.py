# holdmap/metrics.py
"""
Prometheus metrics and /metrics endpoint for the FastAPI app.
"""

from fastapi import APIRouter, Response
from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST

router = APIRouter()

# Record-store events received, by collection and create/update/delete
EVENTS_RECEIVED = Counter(
    "holdmap_events_received_total",
    "Total number of record events received",
    ["collection", "kind"],
)

# Jobs queued but not finished
JOBS_IN_FLIGHT = Gauge(
    "holdmap_jobs_in_flight",
    "Number of pipeline jobs currently not finished",
)

JOB_PROCESSING_SECONDS = Histogram(
    "holdmap_job_processing_seconds",
    "Time spent processing pipeline jobs in seconds",
    ["pipeline"],
)

JOBS_COMPLETED = Counter(
    "holdmap_jobs_completed_total",
    "Total number of completed pipeline jobs by status",
    ["pipeline", "status"],  # done, error
)

ARTIFACTS_UPLOADED = Counter(
    "holdmap_artifacts_uploaded_total",
    "Total number of derived images uploaded to the blob store",
    ["content_type"],
)

# Best-effort deletes that failed; the job itself still succeeds
CLEANUP_FAILURES = Counter(
    "holdmap_cleanup_failures_total",
    "Total number of blob deletions that failed",
)


@router.get("/metrics")
def metrics() -> Response:
    """
    Expose Prometheus metrics in text format.
    """
    data = generate_latest()
    return Response(content=data, media_type=CONTENT_TYPE_LATEST)
