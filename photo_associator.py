"""
Photo Associator Module
Assigns walkthrough photos to rooms and generates thumbnails
"""

import logging
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import cv2

import config
from models import UNASSIGNED, AssociatedPhoto, PhotoFile, PhotoMetadata, Room

logger = logging.getLogger(__name__)


class OpenCVThumbnailer:
    """Writes a JPEG thumbnail no wider than max_width (never enlarges)"""

    def __init__(self, max_width: int = config.THUMBNAIL_WIDTH, quality: int = config.THUMBNAIL_QUALITY):
        self.max_width = max_width
        self.quality = quality

    def create(self, source_path: str, output_path: str) -> str:
        image = cv2.imread(str(source_path))
        if image is None:
            raise ValueError(f"Could not read image: {source_path}")

        height, width = image.shape[:2]
        if width > self.max_width:
            new_height = max(1, round(height * self.max_width / width))
            image = cv2.resize(image, (self.max_width, new_height), interpolation=cv2.INTER_AREA)

        if not cv2.imwrite(str(output_path), image, [cv2.IMWRITE_JPEG_QUALITY, self.quality]):
            raise ValueError(f"Could not write thumbnail: {output_path}")
        return str(output_path)


def match_room(
    timestamp: float,
    associated_room: Optional[str],
    rooms: Sequence[Room],
) -> Tuple[Optional[str], str]:
    """
    Resolve a photo to (roomId, roomName)

    Priority:
    1. Explicit override: the name is kept verbatim, the id is resolved by
       case-insensitive exact name match (None if no room has that name).
    2. Time window: first room whose [start, end] contains the timestamp.
       A room with start > end never matches.
    3. Otherwise (None, "unassigned").
    """
    if associated_room:
        wanted = associated_room.lower()
        matched = next((r for r in rooms if r.roomName.lower() == wanted), None)
        return (matched.roomId if matched else None), associated_room

    matched = next((r for r in rooms if r.startTimestamp <= timestamp <= r.endTimestamp), None)
    if matched:
        return matched.roomId, matched.roomName
    return None, UNASSIGNED


class PhotoAssociator:
    """Associates uploaded photos with rooms; one bad photo never stops the rest"""

    def __init__(self, storage, thumbnailer=None):
        self.storage = storage
        self.thumbnailer = thumbnailer or OpenCVThumbnailer()

    def _thumbnail_url(self, capture_id: str, photo: PhotoFile, index: int) -> Optional[str]:
        try:
            thumb_name = f"thumb-{Path(photo.filename).name}"
            thumb_dir = self.storage.ensure_capture_subdir(capture_id, "thumbnails")
            self.thumbnailer.create(photo.path, str(thumb_dir / thumb_name))
            return self.storage.file_url(capture_id, f"thumbnails/{thumb_name}")
        except Exception as e:
            logger.warning("Failed to generate thumbnail for photo %d: %s", index, e)
            return None

    def associate(
        self,
        photo_files: Sequence[PhotoFile],
        photo_metadata: Sequence[PhotoMetadata],
        rooms: Sequence[Room],
        capture_id: str,
    ) -> List[AssociatedPhoto]:
        """
        Associate photos with rooms based on user overrides and timestamps

        Args:
            photo_files: Stored photo files
            photo_metadata: Metadata, index-aligned with photo_files (may be shorter)
            rooms: Room segments from segmentation
            capture_id: Owning capture

        Returns:
            One AssociatedPhoto per photo that could be processed
        """
        if not photo_files:
            logger.info("No photos to associate")
            return []

        logger.info("Associating %d photos with %d rooms", len(photo_files), len(rooms))
        results = []

        for i, photo in enumerate(photo_files):
            try:
                if isinstance(photo, dict):
                    photo = PhotoFile.model_validate(photo)
                metadata = photo_metadata[i] if i < len(photo_metadata) else None
                if isinstance(metadata, dict):
                    metadata = PhotoMetadata.model_validate(metadata)
                metadata = metadata or PhotoMetadata()
                timestamp = float(metadata.timestampSeconds or 0)

                room_id, room_name = match_room(timestamp, metadata.associatedRoom, rooms)
                logger.debug("Photo %d at %.1fs -> %s (%s)", i, timestamp, room_name, room_id)

                photo_url = self.storage.file_url(capture_id, f"photos/{photo.filename}")
                thumbnail_url = self._thumbnail_url(capture_id, photo, i)

                results.append(AssociatedPhoto(
                    photoUrl=photo_url,
                    thumbnailUrl=thumbnail_url or photo_url,
                    timestamp=timestamp,
                    roomId=room_id,
                    roomName=room_name,
                ))
            except Exception as e:
                logger.error("Failed to process photo %d: %s", i, e)

        logger.info("Photo association complete: %d/%d photos processed", len(results), len(photo_files))
        return results
