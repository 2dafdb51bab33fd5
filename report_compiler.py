"""
Report Compiler Module
Merges segmentation output, associated photos and media metadata into a Report
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Sequence

from models import (
    UNASSIGNED,
    AssociatedPhoto,
    CaptureData,
    ClipRef,
    PhotoRef,
    RawData,
    Report,
    ReportRoom,
    Room,
    SegmentationResult,
)


def _photo_ref(photo: AssociatedPhoto) -> PhotoRef:
    return PhotoRef(photoUrl=photo.photoUrl, thumbnailUrl=photo.thumbnailUrl, timestamp=photo.timestamp)


def photos_for_room(room: Room, photos: Sequence[AssociatedPhoto]) -> List[AssociatedPhoto]:
    """
    Photos linked to a room by roomId. Only photos without a roomId fall
    back to case-insensitive room name, and unassigned photos never do.
    """
    name = room.roomName.lower()
    return [
        p for p in photos
        if (p.roomId is not None and p.roomId == room.roomId)
        or (p.roomId is None and p.roomName != UNASSIGNED and p.roomName.lower() == name)
    ]


def compile_report(
    capture_id: str,
    capture: CaptureData,
    segmentation: SegmentationResult,
    photos: Sequence[AssociatedPhoto],
    clips: Sequence[ClipRef],
    full_text: str,
    storage,
    recording_duration: float = 0,
    capture_date: Optional[str] = None,
) -> Report:
    """
    Build the final report for a capture

    Args:
        capture_id: Capture identifier
        capture: Upload bundle (property name/address, video path)
        segmentation: Rooms and property-level sections
        photos: Output of the photo associator
        clips: Per-room clip references
        full_text: Enhanced transcript text
        storage: Durable store, used for file URLs
        recording_duration: Video duration in seconds
        capture_date: ISO timestamp, defaults to now (UTC)

    Returns:
        Report
    """
    clips_by_room = {c.roomId: c.clipUrl for c in clips}

    rooms = []
    placed = set()
    for room in segmentation.rooms:
        # a photo goes to the first room it matches
        room_photos = [p for p in photos_for_room(room, photos) if id(p) not in placed]
        placed.update(id(p) for p in room_photos)
        rooms.append(ReportRoom(
            **room.model_dump(),
            photos=[_photo_ref(p) for p in room_photos],
            videoClipUrl=clips_by_room.get(room.roomId),
        ))

    unassigned = [p for p in photos if id(p) not in placed]

    video_url = None
    if capture.videoPath:
        video_url = storage.file_url(capture_id, Path(capture.videoPath).name)

    return Report(
        captureId=capture_id,
        propertyName=capture.propertyName,
        propertyAddress=capture.propertyAddress,
        captureDate=capture_date or datetime.now(timezone.utc).isoformat(),
        recordingDuration=recording_duration or 0,
        propertyOverview=segmentation.propertyOverview,
        rooms=rooms,
        unassignedPhotos=[_photo_ref(p) for p in unassigned],
        propertyAccess=segmentation.propertyAccess,
        systemsAndUtilities=segmentation.systemsAndUtilities,
        fullTranscript=full_text,
        rawData=RawData(
            videoUrl=video_url,
            transcriptUrl=storage.file_url(capture_id, "transcript.json"),
        ),
    )
