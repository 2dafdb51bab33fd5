from fastapi import FastAPI, HTTPException, BackgroundTasks, UploadFile, File, Form
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import ValidationError
from contextlib import asynccontextmanager
from typing import List, Optional
from datetime import datetime, timezone
from pathlib import Path
import json
import logging
import shutil
import uuid

import config
from capture_processor import CaptureProcessor
from models import CaptureData, PhotoFile, PhotoMetadata, RoomBoundary, TranscriptItem
from progress import StatusStore, COMPLETE, FAILED, PROCESSING, SKIPPED, STAGES
from storage import LocalStorage

config.configure_logging()
logger = logging.getLogger(__name__)

storage = LocalStorage.from_config()
status_store = StatusStore()
processor = CaptureProcessor(status_store, storage)


@asynccontextmanager
async def lifespan(app: FastAPI):
    storage.init_storage()
    logger.info("Storage path: %s", storage.root)
    yield
    processor.shutdown(wait=False)


app = FastAPI(title="Walkthrough Capture Backend", lifespan=lifespan)

# --- CORS configuration for the capture client ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # lock down to the client domain in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Stored photos, clips and transcripts are served from /api/files/*
app.mount("/api/files", StaticFiles(directory=str(config.STORAGE_PATH), check_dir=False), name="files")


def _parse_json_list(raw: Optional[str], model, field_name: str) -> list:
    """Parse an optional JSON-array form field; anything malformed becomes []"""
    if not raw:
        return []
    try:
        data = json.loads(raw)
        if not isinstance(data, list):
            raise ValueError("expected a JSON array")
        return [model.model_validate(item) for item in data]
    except (ValueError, ValidationError) as e:
        logger.warning("Failed to parse %s JSON: %s", field_name, e)
        return []


def _store_upload(upload: UploadFile, destination: Path) -> Path:
    destination.parent.mkdir(parents=True, exist_ok=True)
    with destination.open("wb") as out:
        shutil.copyfileobj(upload.file, out)
    return destination


# ------------------------
# ---- Capture APIs ----
# ------------------------

@app.post("/api/capture/upload", status_code=202)
def upload_capture(
    background_tasks: BackgroundTasks,
    video: Optional[UploadFile] = File(None),
    photos: Optional[List[UploadFile]] = File(None),
    transcript: Optional[str] = Form(None),
    photoMetadata: Optional[str] = Form(None),
    roomBoundaries: Optional[str] = Form(None),
    propertyName: Optional[str] = Form(None),
    propertyAddress: Optional[str] = Form(None),
    durationSeconds: Optional[float] = Form(None),
):
    """
    Receive a capture as multipart/form-data and start processing it.

    Fields:
    - video: video file (webm or mp4)
    - photos: JPEG/PNG files
    - transcript: JSON string - array of { text, timestampSeconds }
    - photoMetadata: JSON string - array of { timestampSeconds, associatedRoom }
    - roomBoundaries: JSON string - array of { roomName, timestampSeconds }
    - propertyName / propertyAddress: strings

    **Response Example:**
    {
        "captureId": "3f2c...",
        "status": "processing",
        "message": "Upload received, processing started"
    }
    """
    capture_id = str(uuid.uuid4())

    transcript_items = _parse_json_list(transcript, TranscriptItem, "transcript")
    metadata = _parse_json_list(photoMetadata, PhotoMetadata, "photoMetadata")
    boundaries = _parse_json_list(roomBoundaries, RoomBoundary, "roomBoundaries")
    property_name = propertyName or "Unnamed Property"
    property_address = propertyAddress or ""

    capture_dir = storage.ensure_capture_dir(capture_id)

    video_path = None
    if video is not None and video.filename:
        suffix = Path(video.filename).suffix or ".webm"
        video_path = str(_store_upload(video, capture_dir / f"video{suffix}"))

    photo_files = []
    photos_dir = storage.ensure_capture_subdir(capture_id, "photos")
    for index, photo in enumerate(photos or []):
        if not photo.filename:
            continue
        filename = f"{index:03d}-{Path(photo.filename).name}"
        dest = _store_upload(photo, photos_dir / filename)
        photo_files.append(PhotoFile(filename=filename, path=str(dest)))

    storage.save_json(capture_id, "raw-transcript.json", transcript_items)
    storage.save_json(capture_id, "photo-metadata.json", metadata)
    storage.save_json(capture_id, "room-boundaries.json", boundaries)

    logger.info(
        "Upload received - captureId: %s, video: %s, photos: %d, transcript items: %d, boundaries: %d",
        capture_id, bool(video_path), len(photo_files), len(transcript_items), len(boundaries),
    )

    capture = CaptureData(
        transcript=transcript_items,
        roomBoundaries=boundaries,
        photoMetadata=metadata,
        photoFiles=photo_files,
        videoPath=video_path,
        durationSeconds=durationSeconds,
        propertyName=property_name,
        propertyAddress=property_address,
    )

    processor.init_status(capture_id, {"propertyName": property_name, "propertyAddress": property_address})
    background_tasks.add_task(processor.run, capture_id, capture)

    return {
        "captureId": capture_id,
        "status": PROCESSING,
        "message": "Upload received, processing started",
    }


@app.get("/api/capture/{capture_id}/status")
def get_capture_status(capture_id: str):
    """
    Poll the processing status of a capture.
    Falls back to the persisted report when the in-memory status is gone
    (e.g. after a restart).
    """
    status = processor.get_status(capture_id)
    if not status:
        report = storage.load_report(capture_id)
        if report:
            progress = {stage: COMPLETE for stage in STAGES}
            progress["publishSync"] = COMPLETE if report.get("publishedDocument") else SKIPPED
            return {"captureId": capture_id, "status": COMPLETE, "progress": progress, "result": report, "error": None}
        raise HTTPException(status_code=404, detail=f"No capture found with id: {capture_id}")

    return {
        "captureId": status["captureId"],
        "status": status["status"],
        "progress": status["progress"],
        "result": status["result"] if status["status"] == COMPLETE else None,
        "error": status["error"] if status["status"] == FAILED else None,
    }


@app.get("/api/capture/{capture_id}/result")
def get_capture_result(capture_id: str):
    status = processor.get_status(capture_id)
    if status:
        if status["status"] == PROCESSING:
            return JSONResponse(
                status_code=202,
                content={"message": "Processing is still in progress", "progress": status["progress"]},
            )
        if status["status"] == FAILED:
            raise HTTPException(status_code=500, detail=status["error"] or "Processing failed")
        if status["result"]:
            return status["result"]

    report = storage.load_report(capture_id)
    if report:
        return report
    raise HTTPException(status_code=404, detail=f"No result found for capture: {capture_id}")


@app.get("/api/captures")
def list_captures():
    """In-flight and failed captures from memory, completed ones from disk"""
    captures = {s["id"]: s for s in storage.list_reports()}
    for status in processor.get_all_statuses():
        if status["status"] == COMPLETE and status["captureId"] in captures:
            continue
        captures[status["captureId"]] = {
            "id": status["captureId"],
            "propertyName": status["propertyName"] or status["captureId"],
            "propertyAddress": status["propertyAddress"] or "",
            "status": status["status"],
            "date": status["createdAt"],
        }
    return sorted(captures.values(), key=lambda c: c.get("date") or "", reverse=True)


@app.delete("/api/capture/{capture_id}")
def delete_capture(capture_id: str):
    if not processor.get_status(capture_id) and not storage.load_report(capture_id):
        raise HTTPException(status_code=404, detail=f"No capture found with id: {capture_id}")

    outcome = storage.delete_capture(capture_id)
    if not outcome["success"]:
        raise HTTPException(status_code=500, detail=outcome["error"])
    processor.delete_status(capture_id)
    return {"captureId": capture_id, "deleted": True}


@app.get("/api/health")
def health():
    return {
        "status": "ok",
        "service": "walkthrough-capture-backend",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "config": {
            "openaiApiKey": bool(config.OPENAI_API_KEY),
            "notionApiKey": bool(config.NOTION_API_KEY),
            "notionDatabaseId": bool(config.NOTION_DATABASE_ID),
            "backendBaseUrl": bool(config.BACKEND_BASE_URL),
            "s3Bucket": bool(config.S3_BUCKET),
        },
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
