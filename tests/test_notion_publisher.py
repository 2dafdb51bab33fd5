from __future__ import annotations

import threading
import time
from unittest.mock import MagicMock

import pytest
import requests

from models import PhotoRef, PropertyAccess, PropertyOverview, RawData, Report, ReportRoom
from notion_publisher import (
    NotionAPIError,
    NotionClient,
    NotionPublisher,
    main,
    RateGate,
    TOGGLE_CHILD_LIMIT,
    build_content_blocks,
    build_page_properties,
    chunk_text,
    resolve_photo_url,
    toggle,
    bullet,
    truncate_text,
)


def make_report(**overrides) -> Report:
    fields = dict(
        captureId="cap-1",
        propertyName="Beach House",
        propertyAddress="1 Shore Rd",
        captureDate="2026-03-14T10:00:00+00:00",
        recordingDuration=120,
        propertyOverview=PropertyOverview(totalRooms=1, propertyType="Condo", estimatedBedrooms=1, hasOutdoorSpace=True),
        rooms=[
            ReportRoom(
                roomId="room-1",
                roomName="Kitchen",
                inventory=[{"item": "Toaster", "quantity": 2, "notes": "chrome", "condition": "fair"}],
                features=["gas stove"],
                quirksAndNotes=["sticky drawer"],
                photos=[PhotoRef(photoUrl="/api/files/captures/cap-1/photos/000-a.jpg", thumbnailUrl="t", timestamp=65)],
            ),
        ],
        propertyAccess=PropertyAccess(wifiName="HomeNet", wifiPassword="secret"),
        fullTranscript="This is the kitchen.",
        rawData=RawData(videoUrl="/api/files/captures/cap-1/video.webm"),
    )
    fields.update(overrides)
    return Report(**fields)


class RecordingClient:
    """In-memory stand-in for NotionClient"""

    def __init__(self, existing=None, children_pages=()):
        self.existing = existing
        self.children_pages = list(children_pages)
        self.calls = []

    def retrieve_database(self, database_id):
        self.calls.append(("retrieve_database", database_id))
        return {"id": database_id}

    def query_database(self, database_id, filter, page_size=1):
        self.calls.append(("query_database", filter))
        return {"results": [self.existing] if self.existing else []}

    def create_page(self, payload):
        self.calls.append(("create_page", payload))
        return {"id": "new-page-id", "url": None}

    def update_page(self, page_id, properties):
        self.calls.append(("update_page", page_id))
        return {"id": page_id}

    def list_children(self, block_id, start_cursor=None):
        self.calls.append(("list_children", start_cursor))
        return self.children_pages.pop(0) if self.children_pages else {"results": [], "has_more": False}

    def delete_block(self, block_id):
        self.calls.append(("delete_block", block_id))
        return {}

    def append_children(self, block_id, children):
        self.calls.append(("append_children", len(children)))
        return {}

    def names(self):
        return [c[0] for c in self.calls]


def test_rate_gate_spaces_sequential_calls() -> None:
    gate = RateGate(min_interval=0.05)
    gate.wait()
    start = time.monotonic()
    for _ in range(3):
        gate.wait()
    assert time.monotonic() - start >= 0.14


def test_rate_gate_first_call_does_not_wait() -> None:
    gate = RateGate(min_interval=5)
    start = time.monotonic()
    gate.wait()
    assert time.monotonic() - start < 1


def test_rate_gate_spaces_concurrent_callers() -> None:
    gate = RateGate(min_interval=0.05)
    barrier = threading.Barrier(6)

    def call() -> None:
        barrier.wait()
        gate.wait()

    threads = [threading.Thread(target=call) for _ in range(6)]
    start = time.monotonic()
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    # six callers need at least five full intervals between them
    assert time.monotonic() - start >= 0.24


def test_truncate_text() -> None:
    assert truncate_text(None) == ""
    assert truncate_text("short", 10) == "short"
    assert truncate_text("abcdefghijkl", 10) == "abcdefg..."


def test_chunk_text_prefers_newline_then_space() -> None:
    text = ("a" * 60) + "\n" + ("b" * 30) + " " + ("c" * 50)
    chunks = chunk_text(text, max_len=100)
    assert chunks[0] == "a" * 60
    assert all(len(c) <= 100 for c in chunks)
    assert "".join(chunks).replace(" ", "") == text.replace("\n", "").replace(" ", "")


def test_chunk_text_hard_cuts_unbroken_text() -> None:
    chunks = chunk_text("x" * 250, max_len=100)
    assert [len(c) for c in chunks] == [100, 100, 50]
    assert chunk_text("") == []


def test_resolve_photo_url() -> None:
    assert resolve_photo_url("https://cdn/x.jpg", None) == "https://cdn/x.jpg"
    assert resolve_photo_url("/api/files/x.jpg", "https://api.example.com/") == "https://api.example.com/api/files/x.jpg"
    assert resolve_photo_url("/api/files/x.jpg", None) is None


def test_toggle_caps_children() -> None:
    block = toggle("many", [bullet(str(i)) for i in range(150)])
    assert len(block["toggle"]["children"]) == TOGGLE_CHILD_LIMIT


def test_content_blocks_include_sections_and_absolute_images() -> None:
    blocks = build_content_blocks(make_report(), base_url="https://api.example.com")
    types = [b["type"] for b in blocks]

    assert types[0] == "callout"
    assert "March 14, 2026" in blocks[0]["callout"]["rich_text"][0]["text"]["content"]
    assert "image" in types
    image = next(b for b in blocks if b["type"] == "image")
    assert image["image"]["external"]["url"] == "https://api.example.com/api/files/captures/cap-1/photos/000-a.jpg"
    assert image["image"]["caption"][0]["text"]["content"] == "Kitchen - 1:05"

    inventory = next(b for b in blocks if b["type"] == "toggle")
    line = inventory["toggle"]["children"][0]["bulleted_list_item"]["rich_text"][0]["text"]["content"]
    assert line == "2x Toaster - chrome (fair)"


def test_content_blocks_skip_relative_images_without_base_url() -> None:
    blocks = build_content_blocks(make_report(), base_url=None)
    assert "image" not in [b["type"] for b in blocks]


def test_page_properties() -> None:
    properties = build_page_properties(make_report())
    assert properties["Property Name"]["title"][0]["text"]["content"] == "Beach House"
    assert properties["Property Type"] == {"select": {"name": "Condo"}}
    assert properties["Has Outdoor Space"] == {"checkbox": True}
    assert "Capture Video" not in properties


def test_publish_unconfigured_returns_none() -> None:
    client = RecordingClient()
    publisher = NotionPublisher(api_key="", database_id="", client=client)
    assert publisher.publish(make_report()) is None
    assert client.calls == []


def test_publish_creates_page_when_none_matches() -> None:
    client = RecordingClient()
    publisher = NotionPublisher(api_key="key", database_id="db", base_url="", client=client)
    document = publisher.publish(make_report())

    assert document.documentId == "new-page-id"
    assert document.documentUrl == "https://notion.so/newpageid"
    assert client.names()[:3] == ["retrieve_database", "query_database", "create_page"]
    assert "update_page" not in client.names()
    assert client.calls[1][1] == {"property": "Property Name", "title": {"equals": "Beach House"}}


def test_publish_updates_and_clears_existing_page() -> None:
    client = RecordingClient(
        existing={"id": "page-1", "url": "https://www.notion.so/page-1"},
        children_pages=[
            {"results": [{"id": "b1"}, {"id": "b2"}], "has_more": True, "next_cursor": "c2"},
            {"results": [{"id": "b3"}], "has_more": False},
        ],
    )
    publisher = NotionPublisher(api_key="key", database_id="db", client=client)
    document = publisher.publish(make_report())

    assert document.documentId == "page-1"
    assert document.documentUrl == "https://www.notion.so/page-1"
    assert "create_page" not in client.names()
    assert [c[1] for c in client.calls if c[0] == "list_children"] == [None, "c2"]
    assert [c[1] for c in client.calls if c[0] == "delete_block"] == ["b1", "b2", "b3"]
    assert client.names().index("update_page") < client.names().index("append_children")


def test_publish_appends_in_batches() -> None:
    rooms = [ReportRoom(roomId=f"room-{i}", roomName=f"Room {i}") for i in range(120)]
    client = RecordingClient()
    NotionPublisher(api_key="key", database_id="db", client=client, batch_size=100).publish(make_report(rooms=rooms))

    sizes = [c[1] for c in client.calls if c[0] == "append_children"]
    assert len(sizes) >= 3
    assert all(size <= 100 for size in sizes)


def test_publish_propagates_search_failure() -> None:
    client = RecordingClient()
    client.query_database = MagicMock(side_effect=NotionAPIError("POST /query returned 502"))
    with pytest.raises(NotionAPIError):
        NotionPublisher(api_key="key", database_id="db", client=client).publish(make_report())
    assert "create_page" not in client.names()


def test_client_wraps_http_errors() -> None:
    session = MagicMock()
    session.headers = {}
    session.request.return_value = MagicMock(ok=False, status_code=401, text="unauthorized")
    client = NotionClient("key", rate_gate=RateGate(0), session=session)

    with pytest.raises(NotionAPIError, match="401"):
        client.retrieve_database("db")
    assert session.headers["Authorization"] == "Bearer key"


def test_client_wraps_transport_errors() -> None:
    session = MagicMock()
    session.headers = {}
    session.request.side_effect = requests.ConnectionError("refused")
    client = NotionClient("key", rate_gate=RateGate(0), session=session)

    with pytest.raises(NotionAPIError, match="refused"):
        client.delete_block("b1")


def test_create_database_uses_property_schema() -> None:
    client = MagicMock()
    client.create_database.return_value = {"id": "db-123"}
    publisher = NotionPublisher(api_key="key", database_id="", client=client)

    assert publisher.create_database("parent-page") == "db-123"
    parent, title, properties = client.create_database.call_args.args
    assert (parent, title) == ("parent-page", "Properties")
    assert properties["Property Name"] == {"title": {}}


def test_main_provisions_database(capsys) -> None:
    client = MagicMock()
    client.create_database.return_value = {"id": "db-1"}
    publisher = NotionPublisher(api_key="key", database_id="", client=client)

    assert main(["parent-page"], publisher=publisher) == 0
    assert "NOTION_DATABASE_ID=db-1" in capsys.readouterr().out
    assert client.create_database.call_args.args[0] == "parent-page"


def test_main_requires_parent_page_and_api_key(capsys) -> None:
    assert main([], publisher=NotionPublisher(api_key="key", database_id="")) == 2
    assert "Usage" in capsys.readouterr().out
    assert main(["parent-page"], publisher=NotionPublisher(api_key="", database_id="")) == 1
    assert "NOTION_API_KEY" in capsys.readouterr().out


def test_main_reports_api_failure(capsys) -> None:
    client = MagicMock()
    client.create_database.side_effect = NotionAPIError("Notion API error 400: invalid parent")
    publisher = NotionPublisher(api_key="key", database_id="", client=client)

    assert main(["parent-page"], publisher=publisher) == 1
    assert "invalid parent" in capsys.readouterr().out
