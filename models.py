"""
Pydantic Models for the Capture Processing Pipeline

This module contains all the Pydantic models used throughout the application.
Field names follow the JSON wire format shared with the capture client.
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


# roomName of a photo that matched no room
UNASSIGNED = "unassigned"


def _none_to_list(value: Any) -> Any:
    return [] if value is None else value


class TranscriptItem(BaseModel):
    """One captioned utterance from the walkthrough"""
    text: str = ""
    timestampSeconds: float = 0.0


class RoomBoundary(BaseModel):
    """User-asserted room entry marker (advisory only)"""
    roomName: str
    timestampSeconds: float = 0.0


class PhotoMetadata(BaseModel):
    """Client-supplied metadata, index-aligned with the uploaded photo files"""
    timestampSeconds: float = 0.0
    associatedRoom: Optional[str] = None


class PhotoFile(BaseModel):
    """A photo already placed in durable storage"""
    filename: str
    path: str


class InventoryItem(BaseModel):
    model_config = ConfigDict(extra="allow")

    item: str = ""
    quantity: int = 1
    notes: Optional[str] = None
    condition: str = "not_mentioned"

    @field_validator("quantity", mode="before")
    @classmethod
    def _default_quantity(cls, value):
        try:
            return int(value) if value not in (None, "") else 1
        except (TypeError, ValueError):
            return 1

    @field_validator("item", mode="before")
    @classmethod
    def _item(cls, value):
        return "" if value is None else str(value)

    @field_validator("condition", mode="before")
    @classmethod
    def _condition(cls, value):
        return value or "not_mentioned"


class Room(BaseModel):
    """One room segment returned by the segmentation service"""
    model_config = ConfigDict(extra="allow")

    roomId: Optional[str] = None
    roomName: str = "Unknown Room"
    roomType: str = "other"
    startTimestamp: float = 0.0
    endTimestamp: float = 0.0
    transcriptExcerpt: str = ""
    inventory: List[InventoryItem] = Field(default_factory=list)
    features: List[str] = Field(default_factory=list)
    quirksAndNotes: List[str] = Field(default_factory=list)
    accessInfo: List[str] = Field(default_factory=list)
    cleaningNotes: List[str] = Field(default_factory=list)

    @field_validator("inventory", "features", "quirksAndNotes", "accessInfo", "cleaningNotes", mode="before")
    @classmethod
    def _lists(cls, value):
        return _none_to_list(value)

    @field_validator("startTimestamp", "endTimestamp", mode="before")
    @classmethod
    def _timestamps(cls, value):
        try:
            return float(value)
        except (TypeError, ValueError):
            return 0.0

    @field_validator("roomName", "roomType", "transcriptExcerpt", mode="before")
    @classmethod
    def _strings(cls, value):
        return "" if value is None else value


class PropertyOverview(BaseModel):
    model_config = ConfigDict(extra="allow")

    totalRooms: Optional[int] = None
    propertyType: Optional[str] = None
    estimatedBedrooms: Optional[float] = None
    estimatedBathrooms: Optional[float] = None
    hasOutdoorSpace: Optional[bool] = None
    generalNotes: Optional[str] = None


class PropertyAccess(BaseModel):
    model_config = ConfigDict(extra="allow")

    wifiName: Optional[str] = None
    wifiPassword: Optional[str] = None
    lockboxCode: Optional[str] = None
    parkingInstructions: Optional[str] = None
    gateCode: Optional[str] = None
    otherAccess: List[str] = Field(default_factory=list)

    @field_validator("otherAccess", mode="before")
    @classmethod
    def _lists(cls, value):
        return _none_to_list(value)


class SystemsAndUtilities(BaseModel):
    model_config = ConfigDict(extra="allow")

    hvac: Optional[str] = None
    waterHeater: Optional[str] = None
    breakerBox: Optional[str] = None
    waterShutoff: Optional[str] = None
    trashDay: Optional[str] = None
    otherSystems: List[str] = Field(default_factory=list)

    @field_validator("otherSystems", mode="before")
    @classmethod
    def _lists(cls, value):
        return _none_to_list(value)


class SegmentationResult(BaseModel):
    """Structured output of room segmentation, defaults filled where the service omits them"""
    propertyOverview: PropertyOverview = Field(default_factory=PropertyOverview)
    rooms: List[Room] = Field(default_factory=list)
    propertyAccess: PropertyAccess = Field(default_factory=PropertyAccess)
    systemsAndUtilities: SystemsAndUtilities = Field(default_factory=SystemsAndUtilities)

    @field_validator("propertyOverview", "propertyAccess", "systemsAndUtilities", mode="before")
    @classmethod
    def _objects(cls, value):
        return {} if value is None else value

    @field_validator("rooms", mode="before")
    @classmethod
    def _rooms(cls, value):
        return _none_to_list(value)


class AssociatedPhoto(BaseModel):
    photoUrl: str
    thumbnailUrl: str
    timestamp: float = 0.0
    roomId: Optional[str] = None
    roomName: str = UNASSIGNED


class ClipRef(BaseModel):
    roomId: Optional[str] = None
    clipUrl: str


class PhotoRef(BaseModel):
    photoUrl: str
    thumbnailUrl: str
    timestamp: float = 0.0


class ReportRoom(Room):
    photos: List[PhotoRef] = Field(default_factory=list)
    videoClipUrl: Optional[str] = None


class RawData(BaseModel):
    videoUrl: Optional[str] = None
    transcriptUrl: Optional[str] = None


class PublishedDocument(BaseModel):
    documentUrl: str
    documentId: str


class Report(BaseModel):
    """Final persisted artifact for one capture"""
    captureId: str
    propertyName: str
    propertyAddress: str = ""
    captureDate: str
    recordingDuration: float = 0.0
    propertyOverview: PropertyOverview = Field(default_factory=PropertyOverview)
    rooms: List[ReportRoom] = Field(default_factory=list)
    unassignedPhotos: List[PhotoRef] = Field(default_factory=list)
    propertyAccess: PropertyAccess = Field(default_factory=PropertyAccess)
    systemsAndUtilities: SystemsAndUtilities = Field(default_factory=SystemsAndUtilities)
    fullTranscript: str = ""
    rawData: RawData = Field(default_factory=RawData)
    publishedDocument: Optional[PublishedDocument] = None


class CaptureData(BaseModel):
    """Everything the upload receiver hands to the pipeline"""
    transcript: List[TranscriptItem] = Field(default_factory=list)
    roomBoundaries: List[RoomBoundary] = Field(default_factory=list)
    photoMetadata: List[PhotoMetadata] = Field(default_factory=list)
    photoFiles: List[PhotoFile] = Field(default_factory=list)
    videoPath: Optional[str] = None
    durationSeconds: Optional[float] = None
    propertyName: str = "Unnamed Property"
    propertyAddress: str = ""

    def summary(self) -> Dict[str, Any]:
        return {
            "transcript_items": len(self.transcript),
            "room_boundaries": len(self.roomBoundaries),
            "photos": len(self.photoFiles),
            "video": bool(self.videoPath),
        }
