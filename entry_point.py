"""
Simple Entry Point for the Capture Processing Pipeline

Runs the pipeline synchronously over a capture directory on disk:

    <capture_dir>/capture.json   transcript, roomBoundaries, photoMetadata,
                                 propertyName, propertyAddress
    <capture_dir>/photos/*       photo files, in metadata order (sorted by name)
    <capture_dir>/video.*        optional walkthrough video
"""

import json
import shutil
import sys
import uuid
from pathlib import Path
from typing import Any, Dict, Optional

import config
from capture_processor import CaptureProcessor
from models import CaptureData, PhotoFile
from progress import StatusStore
from storage import LocalStorage

PHOTO_SUFFIXES = {".jpg", ".jpeg", ".png", ".webp"}


def load_capture(capture_dir: Path) -> CaptureData:
    """Build CaptureData from a capture directory"""
    data = json.loads((capture_dir / "capture.json").read_text(encoding="utf-8"))

    photos_dir = capture_dir / "photos"
    photo_files = []
    if photos_dir.is_dir():
        for path in sorted(photos_dir.iterdir()):
            if path.suffix.lower() in PHOTO_SUFFIXES:
                photo_files.append(PhotoFile(filename=path.name, path=str(path)))

    video = next(iter(sorted(capture_dir.glob("video.*"))), None)

    return CaptureData(
        transcript=data.get("transcript") or [],
        roomBoundaries=data.get("roomBoundaries") or [],
        photoMetadata=data.get("photoMetadata") or [],
        photoFiles=photo_files,
        videoPath=str(video) if video else None,
        durationSeconds=data.get("durationSeconds"),
        propertyName=data.get("propertyName") or "Unnamed Property",
        propertyAddress=data.get("propertyAddress") or "",
    )


def stage_capture(storage: LocalStorage, capture_id: str, capture: CaptureData) -> CaptureData:
    """Copy photos and video into durable storage, named the way uploads are"""
    photos_dir = storage.ensure_capture_subdir(capture_id, "photos")
    staged = []
    for index, photo in enumerate(capture.photoFiles):
        filename = f"{index:03d}-{photo.filename}"
        shutil.copyfile(photo.path, photos_dir / filename)
        staged.append(PhotoFile(filename=filename, path=str(photos_dir / filename)))

    video_path = None
    if capture.videoPath:
        destination = storage.ensure_capture_dir(capture_id) / Path(capture.videoPath).name
        shutil.copyfile(capture.videoPath, destination)
        video_path = str(destination)

    return capture.model_copy(update={"photoFiles": staged, "videoPath": video_path})


def process_capture_directory(
    capture_dir: str,
    processor: Optional[CaptureProcessor] = None,
    capture_id: Optional[str] = None,
) -> Dict[str, Any]:
    """Run the whole pipeline for one capture directory and return its final status"""
    if processor is None:
        storage = LocalStorage.from_config()
        storage.init_storage()
        processor = CaptureProcessor(StatusStore(), storage)

    capture_id = capture_id or str(uuid.uuid4())
    capture = stage_capture(processor.storage, capture_id, load_capture(Path(capture_dir)))
    processor.init_status(capture_id, {"propertyName": capture.propertyName, "propertyAddress": capture.propertyAddress})
    processor.run(capture_id, capture)
    return processor.get_status(capture_id)


def main():
    """Simple entry point - process a capture directory and print the outcome"""
    config.configure_logging()
    if len(sys.argv) != 2:
        print("Usage: python entry_point.py <capture_dir>")
        return 2

    status = process_capture_directory(sys.argv[1])
    print("Capture:", status["captureId"])
    print("Status:", status["status"])
    print("Progress:", json.dumps(status["progress"], indent=2))
    if status["error"]:
        print("Error:", status["error"])
    return 0 if status["status"] == "complete" else 1


if __name__ == "__main__":
    sys.exit(main())
