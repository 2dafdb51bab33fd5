"""Shared pytest fixtures for the capture pipeline."""

from __future__ import annotations

import json
import sys
from pathlib import Path

import pytest


ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from storage import LocalStorage  # noqa: E402


def segmentation_payload() -> dict:
    return {
        "propertyOverview": {
            "totalRooms": 2,
            "propertyType": "house",
            "estimatedBedrooms": 1,
            "estimatedBathrooms": 1,
            "hasOutdoorSpace": False,
            "generalNotes": "Quiet street",
        },
        "rooms": [
            {
                "roomId": "room-1",
                "roomName": "Kitchen",
                "roomType": "kitchen",
                "startTimestamp": 0,
                "endTimestamp": 30,
                "transcriptExcerpt": "This is the kitchen.",
                "inventory": [{"item": "Toaster", "quantity": 1, "notes": None, "condition": "good"}],
                "features": ["gas stove"],
                "quirksAndNotes": [],
                "accessInfo": [],
                "cleaningNotes": [],
            },
            {
                "roomId": "room-2",
                "roomName": "Primary Bedroom",
                "roomType": "bedroom",
                "startTimestamp": 31,
                "endTimestamp": 60,
                "transcriptExcerpt": "This is the Primary Bedroom.",
                "inventory": [{"item": "Queen bed", "quantity": 1}],
                "features": None,
            },
        ],
        "propertyAccess": {"wifiName": "HomeNet", "wifiPassword": "secret", "otherAccess": None},
        "systemsAndUtilities": {"hvac": "Central air", "otherSystems": []},
    }


class FakeCompletionService:
    """Replays canned responses (str) or raises (Exception) in order"""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def complete(self, system_prompt: str, user_text: str) -> str:
        self.calls.append((system_prompt, user_text))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class FakeThumbnailer:
    def __init__(self, fail_for=()):
        self.fail_for = set(fail_for)
        self.created = []

    def create(self, source_path: str, output_path: str) -> str:
        if Path(source_path).name in self.fail_for:
            raise ValueError(f"Could not read image: {source_path}")
        Path(output_path).write_bytes(b"thumb")
        self.created.append(output_path)
        return output_path


class FakeMediaTool:
    def __init__(self, duration=42.4, fail_rooms=(), probe_error=None):
        self.duration = duration
        self.fail_rooms = set(fail_rooms)
        self.probe_error = probe_error
        self.clips = []

    def probe_duration(self, video_path: str) -> float:
        if self.probe_error:
            raise self.probe_error
        return self.duration

    def extract_clip(self, video_path, start, duration, output_path):
        if Path(output_path).stem in self.fail_rooms:
            raise RuntimeError("ffmpeg exploded")
        self.clips.append((start, duration, output_path))
        return output_path


class FakePublisher:
    def __init__(self, configured=True, error=None, document=None):
        self.configured = configured
        self.error = error
        self.document = document
        self.published = []

    def is_configured(self) -> bool:
        return self.configured

    def publish(self, report):
        self.published.append(report)
        if self.error:
            raise self.error
        return self.document


@pytest.fixture
def storage(tmp_path: Path) -> LocalStorage:
    store = LocalStorage(tmp_path / "data")
    store.init_storage()
    return store


@pytest.fixture
def segmentation_json() -> str:
    return json.dumps(segmentation_payload())


@pytest.fixture
def photo_files(tmp_path: Path) -> list:
    photos_dir = tmp_path / "upload"
    photos_dir.mkdir()
    files = []
    for name in ("000-kitchen.jpg", "001-bedroom.jpg", "002-yard.jpg"):
        path = photos_dir / name
        path.write_bytes(b"not really a jpeg")
        files.append({"filename": name, "path": str(path)})
    return files
