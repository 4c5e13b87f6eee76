# holdmap/main.py
from typing import Any, Dict

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse, Response

from .config import PRIMITIVES_SUBCOLLECTION
from .job_manager import create_job, JOBS
from .logger import console
from .metrics import router as metrics_router, EVENTS_RECEIVED
from .models import JobResult, JobStatus, RecordEvent
from .pipelines import build_pipelines
from .record_store import make_record_store
from .storage import LocalBlobStore
from .utils import content_type_for

app = FastAPI(title="Holdmap Image API", version="1.0.0")

# Include /metrics endpoint
app.include_router(metrics_router)

app.state.blob_store = LocalBlobStore()
app.state.record_store = make_record_store()
app.state.pipelines = build_pipelines(app.state.blob_store, app.state.record_store)


def _pipeline_for(request: Request, collection: str):
    pipeline = request.app.state.pipelines.get(collection)
    if pipeline is None:
        raise HTTPException(status_code=404, detail=f"unknown collection {collection}")
    return pipeline


def _queue(request: Request, collection: str, doc_id: str, event: RecordEvent) -> JSONResponse:
    pipeline = _pipeline_for(request, collection)
    EVENTS_RECEIVED.labels(collection=collection, kind=event.kind).inc()

    job_id = create_job(pipeline, doc_id, event)
    console.log(f"[blue]Queued job {job_id} for {collection}/{doc_id} ({event.kind})[/blue]")
    return JSONResponse(status_code=202, content=JobStatus(id=job_id, status="pending").model_dump())


@app.get("/")
def read_root() -> Dict[str, str]:
    return {"status": "ok", "message": "Holdmap image API"}


# ==========================
# EVENT INTAKE
# ==========================

@app.post("/api/v1/events/{collection}/{doc_id}")
async def submit_event(collection: str, doc_id: str, event: RecordEvent, request: Request):
    """
    Accept a record change from the trigger source and queue a pipeline job.

    Body:
      { "before": {...} | null, "after": {...} | null }
    """
    if event.before is None and event.after is None:
        raise HTTPException(status_code=422, detail="before or after required")
    return _queue(request, collection, doc_id, event)


@app.get("/api/v1/jobs/{job_id}")
async def get_job_status(job_id: str):
    job = JOBS.get(job_id)
    if not job:
        raise HTTPException(status_code=404, detail="job not found")

    status = job.get("status")
    if status == "pending":
        return {"id": job_id, "status": "pending"}
    if status == "error":
        return {"id": job_id, "status": "error", "error": job.get("error")}

    # status == "done"
    return JobResult(
        id=job_id,
        status="done",
        pipeline=job["pipeline"],
        message=job.get("message", ""),
    )


# ==========================
# RECORD STORE WRITES
# ==========================
# Writes through the service behave like writes in the document database:
# each one fires the matching record event.

@app.get("/api/v1/records/{collection}/{doc_id}")
async def get_record(collection: str, doc_id: str, request: Request):
    data = request.app.state.record_store.get(collection, doc_id)
    if data is None:
        raise HTTPException(status_code=404, detail="record not found")
    return data


@app.put("/api/v1/records/{collection}/{doc_id}")
async def put_record(collection: str, doc_id: str, data: Dict[str, Any], request: Request):
    _pipeline_for(request, collection)
    store = request.app.state.record_store
    before = store.get(collection, doc_id)
    store.set(collection, doc_id, data)
    return _queue(request, collection, doc_id, RecordEvent(before=before, after=data))


@app.delete("/api/v1/records/{collection}/{doc_id}")
async def delete_record(collection: str, doc_id: str, request: Request):
    _pipeline_for(request, collection)
    store = request.app.state.record_store
    before = store.get(collection, doc_id)
    if before is None:
        raise HTTPException(status_code=404, detail="record not found")
    store.delete(collection, doc_id)
    return _queue(request, collection, doc_id, RecordEvent(before=before, after=None))


@app.put("/api/v1/records/{collection}/{doc_id}/primitives/{child_id}")
async def put_primitive(collection: str, doc_id: str, child_id: str, data: Dict[str, Any], request: Request):
    store = request.app.state.record_store
    if store.get(collection, doc_id) is None:
        raise HTTPException(status_code=404, detail="record not found")
    store.add_child(collection, doc_id, PRIMITIVES_SUBCOLLECTION, child_id, data)
    return {"id": child_id, "status": "stored"}


# ==========================
# BLOBS
# ==========================

@app.put("/blobs/{path:path}")
async def put_blob(path: str, request: Request):
    store = request.app.state.blob_store
    data = await request.body()
    if not data:
        raise HTTPException(status_code=422, detail="empty body")
    content_type = request.headers.get("content-type") or content_type_for(path)
    try:
        url = store.upload(data, path, content_type)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return {"path": path, "url": url}


@app.get("/blobs/{path:path}")
async def get_blob(
    path: str,
    request: Request,
    expires: int = Query(...),
    signature: str = Query(...),
):
    store = request.app.state.blob_store
    if not isinstance(store, LocalBlobStore):
        raise HTTPException(status_code=404, detail="blob serving not available")
    if not store.verify(path, expires, signature):
        raise HTTPException(status_code=403, detail="invalid or expired signature")
    try:
        data = store.download(path)
    except FileNotFoundError:
        raise HTTPException(status_code=404, detail="blob not found")
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return Response(content=data, media_type=store.content_type(path))
