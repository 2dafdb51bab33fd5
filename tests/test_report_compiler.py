from __future__ import annotations

from models import AssociatedPhoto, CaptureData, ClipRef, SegmentationResult
from report_compiler import compile_report, photos_for_room

from conftest import segmentation_payload


def _photo(name: str, room_id, room_name: str, ts: float = 0) -> AssociatedPhoto:
    url = f"/api/files/captures/cap-1/photos/{name}"
    return AssociatedPhoto(photoUrl=url, thumbnailUrl=url, timestamp=ts, roomId=room_id, roomName=room_name)


def _compile(storage, photos=(), clips=(), **capture_fields):
    capture = CaptureData(propertyName="Beach House", propertyAddress="1 Shore Rd", **capture_fields)
    segmentation = SegmentationResult.model_validate(segmentation_payload())
    return compile_report(
        "cap-1", capture, segmentation, list(photos), list(clips), "Full text.", storage,
        recording_duration=95, capture_date="2026-03-14T10:00:00+00:00",
    )


def test_rooms_carry_segmentation_fields_photos_and_clips(storage) -> None:
    report = _compile(
        storage,
        photos=[_photo("a.jpg", "room-1", "Kitchen", 3), _photo("b.jpg", "room-2", "Primary Bedroom", 40)],
        clips=[ClipRef(roomId="room-2", clipUrl="/api/files/captures/cap-1/clips/room-2.mp4")],
    )

    kitchen, bedroom = report.rooms
    assert kitchen.inventory[0].item == "Toaster"
    assert kitchen.features == ["gas stove"]
    assert [p.photoUrl.rsplit("/", 1)[-1] for p in kitchen.photos] == ["a.jpg"]
    assert kitchen.videoClipUrl is None
    assert bedroom.videoClipUrl == "/api/files/captures/cap-1/clips/room-2.mp4"
    assert bedroom.photos[0].timestamp == 40
    assert report.unassignedPhotos == []


def test_photo_matched_by_name_when_override_had_no_id(storage) -> None:
    report = _compile(storage, photos=[_photo("c.jpg", None, "primary bedroom")])
    assert len(report.rooms[1].photos) == 1
    assert report.unassignedPhotos == []


def test_unassigned_photos(storage) -> None:
    report = _compile(storage, photos=[_photo("d.jpg", None, "unassigned"), _photo("e.jpg", "room-9", "Attic")])
    assert [p.photoUrl.rsplit("/", 1)[-1] for p in report.unassignedPhotos] == ["d.jpg", "e.jpg"]
    assert all(not room.photos for room in report.rooms)


def test_report_header_and_raw_data(storage) -> None:
    report = _compile(storage, videoPath="/data/captures/cap-1/video.webm")

    assert report.captureId == "cap-1"
    assert report.propertyName == "Beach House"
    assert report.captureDate == "2026-03-14T10:00:00+00:00"
    assert report.recordingDuration == 95
    assert report.fullTranscript == "Full text."
    assert report.propertyAccess.wifiName == "HomeNet"
    assert report.rawData.videoUrl == "/api/files/captures/cap-1/video.webm"
    assert report.rawData.transcriptUrl == "/api/files/captures/cap-1/transcript.json"
    assert report.publishedDocument is None


def test_no_video_means_no_video_url(storage) -> None:
    assert _compile(storage).rawData.videoUrl is None


def test_photos_for_room_ignores_missing_ids() -> None:
    segmentation = SegmentationResult.model_validate({"rooms": [{"roomName": "Den"}]})
    room = segmentation.rooms[0]
    photo = _photo("f.jpg", None, "Office")
    assert photos_for_room(room, [photo]) == []


def _compile_rooms(storage, rooms, photos):
    capture = CaptureData(propertyName="Beach House", propertyAddress="1 Shore Rd")
    segmentation = SegmentationResult.model_validate({"rooms": rooms})
    return compile_report("cap-1", capture, segmentation, photos, [], "", storage, capture_date="2026-03-14")


def test_room_named_unassigned_does_not_collect_unmatched_photos(storage) -> None:
    report = _compile_rooms(
        storage,
        [{"roomId": "room-1", "roomName": "Unassigned", "startTimestamp": 0, "endTimestamp": 30}],
        [_photo("f.jpg", None, "unassigned")],
    )
    assert report.rooms[0].photos == []
    assert [p.photoUrl.rsplit("/", 1)[-1] for p in report.unassignedPhotos] == ["f.jpg"]


def test_photo_with_room_id_ignores_rooms_sharing_its_name(storage) -> None:
    report = _compile_rooms(
        storage,
        [
            {"roomId": "room-1", "roomName": "Bedroom", "startTimestamp": 0, "endTimestamp": 30},
            {"roomId": "room-2", "roomName": "Bedroom", "startTimestamp": 31, "endTimestamp": 60},
        ],
        [_photo("g.jpg", "room-1", "Bedroom", 10)],
    )
    first, second = report.rooms
    assert len(first.photos) == 1
    assert second.photos == []
    assert report.unassignedPhotos == []


def test_name_matched_photo_goes_to_first_room_only(storage) -> None:
    report = _compile_rooms(
        storage,
        [
            {"roomId": "room-1", "roomName": "Bedroom", "startTimestamp": 0, "endTimestamp": 30},
            {"roomId": "room-2", "roomName": "bedroom", "startTimestamp": 31, "endTimestamp": 60},
        ],
        [_photo("h.jpg", None, "Bedroom", 40)],
    )
    assert [len(room.photos) for room in report.rooms] == [1, 0]
