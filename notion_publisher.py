"""
Notion Publisher Module

Publishes a finished property report to a Notion database. One page per
property, matched by exact title: an existing page gets its properties
updated and its body replaced, otherwise a new page is created.
All Notion calls in the process share one rate gate.
"""

import logging
import sys
import threading
import time
from datetime import datetime
from typing import Any, Dict, List, Optional

import requests

import config
from models import PublishedDocument, Report

logger = logging.getLogger(__name__)

NOTION_API_URL = "https://api.notion.com/v1"
TOGGLE_CHILD_LIMIT = 100

PROPERTY_TYPES = {
    "house": "House",
    "apartment": "Apartment",
    "condo": "Condo",
    "townhouse": "Townhouse",
}

# Database property schema for the properties database
DB_PROPERTIES = {
    "Property Name": {"title": {}},
    "Address": {"rich_text": {}},
    "Status": {
        "select": {
            "options": [
                {"name": "Onboarding", "color": "yellow"},
                {"name": "Active", "color": "green"},
                {"name": "Inactive", "color": "gray"},
            ],
        },
    },
    "Total Rooms": {"number": {}},
    "Bedrooms": {"number": {}},
    "Bathrooms": {"number": {}},
    "Property Type": {
        "select": {
            "options": [
                {"name": "House", "color": "blue"},
                {"name": "Apartment", "color": "purple"},
                {"name": "Condo", "color": "orange"},
                {"name": "Townhouse", "color": "pink"},
                {"name": "Other", "color": "gray"},
            ],
        },
    },
    "Has Outdoor Space": {"checkbox": {}},
    "Onboarding Date": {"date": {}},
    "Capture Video": {"url": {}},
    "General Notes": {"rich_text": {}},
}


class NotionAPIError(Exception):
    """A Notion request failed"""


class RateGate:
    """
    Minimum spacing between calls, shared by every caller holding the gate.

    The lock is held across read, sleep and update of the last-call time, so
    two threads can never both see enough elapsed time and proceed together.
    """
    def __init__(self, min_interval: float = config.NOTION_MIN_INTERVAL):
        self.min_interval = min_interval
        self._lock = threading.Lock()
        self._last_call = None

    def wait(self) -> None:
        with self._lock:
            if self._last_call is not None:
                elapsed = time.monotonic() - self._last_call
                if elapsed < self.min_interval:
                    time.sleep(self.min_interval - elapsed)
            self._last_call = time.monotonic()


# Process-wide gate (Notion allows ~3 requests/second per integration)
notion_rate_gate = RateGate()


class NotionClient:
    """Minimal Notion REST client; every request passes through the rate gate"""

    def __init__(
        self,
        api_key: str,
        rate_gate: Optional[RateGate] = None,
        session: Optional[requests.Session] = None,
        timeout: float = config.NOTION_REQUEST_TIMEOUT,
    ):
        self.rate_gate = rate_gate or notion_rate_gate
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            "Authorization": f"Bearer {api_key}",
            "Notion-Version": config.NOTION_VERSION,
            "Content-Type": "application/json",
        })

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        self.rate_gate.wait()
        try:
            response = self.session.request(method, f"{NOTION_API_URL}{path}", timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise NotionAPIError(f"{method} {path} failed: {e}") from e
        if not response.ok:
            raise NotionAPIError(f"{method} {path} returned {response.status_code}: {response.text[:300]}")
        return response.json() if response.content else {}

    def retrieve_database(self, database_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/databases/{database_id}")

    def create_database(self, parent_page_id: str, title: str, properties: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", "/databases", json={
            "parent": {"type": "page_id", "page_id": parent_page_id},
            "title": [{"type": "text", "text": {"content": title}}],
            "properties": properties,
        })

    def query_database(self, database_id: str, filter: Dict[str, Any], page_size: int = 1) -> Dict[str, Any]:
        return self._request("POST", f"/databases/{database_id}/query", json={"filter": filter, "page_size": page_size})

    def create_page(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", "/pages", json=payload)

    def update_page(self, page_id: str, properties: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("PATCH", f"/pages/{page_id}", json={"properties": properties})

    def list_children(self, block_id: str, start_cursor: Optional[str] = None) -> Dict[str, Any]:
        params = {"page_size": 100}
        if start_cursor:
            params["start_cursor"] = start_cursor
        return self._request("GET", f"/blocks/{block_id}/children", params=params)

    def delete_block(self, block_id: str) -> Dict[str, Any]:
        return self._request("DELETE", f"/blocks/{block_id}")

    def append_children(self, block_id: str, children: List[Dict[str, Any]]) -> Dict[str, Any]:
        return self._request("PATCH", f"/blocks/{block_id}/children", json={"children": children})


# ---- Text helpers ----

def truncate_text(text: Optional[str], max_len: int = config.NOTION_TEXT_LIMIT) -> str:
    if not text:
        return ""
    if len(text) <= max_len:
        return text
    return text[:max_len - 3] + "..."


def chunk_text(text: Optional[str], max_len: int = config.NOTION_TRANSCRIPT_CHUNK) -> List[str]:
    """Split text into chunks of at most max_len, preferring newline then space boundaries"""
    if not text:
        return []
    chunks = []
    remaining = text
    while remaining:
        if len(remaining) <= max_len:
            chunks.append(remaining)
            break
        break_point = remaining.rfind("\n", 0, max_len)
        if break_point < max_len / 2:
            break_point = remaining.rfind(" ", 0, max_len)
        if break_point < max_len / 2:
            break_point = max_len
        chunks.append(remaining[:break_point])
        remaining = remaining[break_point:].lstrip()
    return chunks


def format_timestamp(seconds: Optional[float]) -> str:
    if seconds is None:
        return ""
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes}:{secs:02d}"


def resolve_photo_url(photo_url: Optional[str], base_url: Optional[str]) -> Optional[str]:
    """Absolute URL for an image block, or None when it cannot be resolved"""
    if not photo_url:
        return None
    if photo_url.startswith("http"):
        return photo_url
    if base_url:
        return base_url.rstrip("/") + photo_url
    return None


# ---- Block builders ----

def rich_text(content: str) -> Dict[str, Any]:
    return {"type": "text", "text": {"content": truncate_text(content)}}


def heading_2(text: str) -> Dict[str, Any]:
    return {"object": "block", "type": "heading_2", "heading_2": {"rich_text": [rich_text(text)]}}


def callout(text: str, emoji: str = "📋") -> Dict[str, Any]:
    return {
        "object": "block",
        "type": "callout",
        "callout": {"rich_text": [rich_text(text)], "icon": {"type": "emoji", "emoji": emoji}},
    }


def bullet(text: str) -> Dict[str, Any]:
    return {"object": "block", "type": "bulleted_list_item", "bulleted_list_item": {"rich_text": [rich_text(text)]}}


def toggle(title: str, children: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {
        "object": "block",
        "type": "toggle",
        "toggle": {"rich_text": [rich_text(title)], "children": children[:TOGGLE_CHILD_LIMIT]},
    }


def paragraph(text: str = "") -> Dict[str, Any]:
    return {"object": "block", "type": "paragraph", "paragraph": {"rich_text": [rich_text(text)] if text else []}}


def image_block(url: str, caption: str = "") -> Dict[str, Any]:
    return {
        "object": "block",
        "type": "image",
        "image": {"type": "external", "external": {"url": url}, "caption": [rich_text(caption)] if caption else []},
    }


def _access_lines(report: Report) -> List[str]:
    access = report.propertyAccess
    lines = []
    if access.wifiName:
        lines.append(f"📶 WiFi: {access.wifiName} / {access.wifiPassword or '(no password)'}")
    if access.lockboxCode:
        lines.append(f"🔐 Lockbox Code: {access.lockboxCode}")
    if access.gateCode:
        lines.append(f"🚪 Gate Code: {access.gateCode}")
    if access.parkingInstructions:
        lines.append(f"🅿️ Parking: {access.parkingInstructions}")
    lines.extend(f"📌 {note}" for note in access.otherAccess)
    return lines


def _system_lines(report: Report) -> List[str]:
    systems = report.systemsAndUtilities
    labelled = [
        ("HVAC", systems.hvac),
        ("Water Heater", systems.waterHeater),
        ("Breaker Box", systems.breakerBox),
        ("Water Shutoff", systems.waterShutoff),
        ("Trash Day", systems.trashDay),
    ]
    lines = [f"{label}: {value}" for label, value in labelled if value]
    lines.extend(systems.otherSystems)
    return lines


def _capture_date_label(capture_date: Optional[str]) -> str:
    try:
        return datetime.fromisoformat(capture_date).strftime("%B %d, %Y")
    except (TypeError, ValueError):
        return "Unknown date"


def build_content_blocks(report: Report, base_url: Optional[str] = None) -> List[Dict[str, Any]]:
    """Body blocks: header, access, rooms, systems, full transcript"""
    blocks = [
        callout(f"Onboarded on {_capture_date_label(report.captureDate)} via walkthrough capture", "📋"),
        paragraph(),
    ]

    access_lines = _access_lines(report)
    if access_lines:
        blocks.append(heading_2("🔑 Access Information"))
        blocks.append(callout("\n".join(access_lines), "🔑"))
        blocks.append(paragraph())

    for room in report.rooms:
        blocks.append(heading_2(f"🚪 {room.roomName or 'Unknown Room'}"))

        if room.inventory:
            items = []
            for item in room.inventory:
                line = f"{item.quantity or 1}x {item.item}"
                if item.notes:
                    line += f" - {item.notes}"
                if item.condition and item.condition not in ("good", "not_mentioned"):
                    line += f" ({item.condition})"
                items.append(bullet(line))
            blocks.append(toggle(f"📦 Inventory ({len(room.inventory)} items)", items))

        if room.features:
            blocks.append(toggle("✨ Room Features", [bullet(f) for f in room.features]))

        notes = room.quirksAndNotes + room.cleaningNotes
        if notes:
            blocks.append(toggle("📝 Notes & Quirks", [bullet(n) for n in notes]))

        for photo in room.photos:
            url = resolve_photo_url(photo.photoUrl, base_url)
            if url:
                blocks.append(image_block(url, f"{room.roomName} - {format_timestamp(photo.timestamp)}"))

        blocks.append(paragraph())

    system_lines = _system_lines(report)
    if system_lines:
        blocks.append(heading_2("⚙️ Systems & Utilities"))
        blocks.extend(bullet(line) for line in system_lines)
        blocks.append(paragraph())

    if report.fullTranscript:
        blocks.append(heading_2("📝 Full Walkthrough Transcript"))
        blocks.append(toggle(
            "Click to expand full transcript",
            [paragraph(chunk) for chunk in chunk_text(report.fullTranscript)],
        ))

    return blocks


def build_page_properties(report: Report) -> Dict[str, Any]:
    overview = report.propertyOverview
    properties = {
        "Property Name": {"title": [{"text": {"content": report.propertyName or "Unnamed"}}]},
        "Address": {"rich_text": [{"text": {"content": report.propertyAddress or ""}}]},
        "Status": {"select": {"name": "Onboarding"}},
        "Total Rooms": {"number": overview.totalRooms or len(report.rooms)},
        "Onboarding Date": {"date": {"start": report.captureDate}},
    }
    if overview.estimatedBedrooms:
        properties["Bedrooms"] = {"number": overview.estimatedBedrooms}
    if overview.estimatedBathrooms:
        properties["Bathrooms"] = {"number": overview.estimatedBathrooms}
    if overview.propertyType:
        properties["Property Type"] = {"select": {"name": PROPERTY_TYPES.get(overview.propertyType.lower(), "Other")}}
    if overview.hasOutdoorSpace is not None:
        properties["Has Outdoor Space"] = {"checkbox": overview.hasOutdoorSpace}
    if overview.generalNotes:
        properties["General Notes"] = {"rich_text": [{"text": {"content": truncate_text(overview.generalNotes)}}]}
    if report.rawData.videoUrl and report.rawData.videoUrl.startswith("http"):
        properties["Capture Video"] = {"url": report.rawData.videoUrl}
    return properties


class NotionPublisher:
    """Publish adapter: idempotent upsert of one report page"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        database_id: Optional[str] = None,
        base_url: Optional[str] = None,
        client: Optional[NotionClient] = None,
        batch_size: int = config.NOTION_BLOCK_BATCH_SIZE,
    ):
        self.api_key = api_key if api_key is not None else config.NOTION_API_KEY
        self.database_id = database_id if database_id is not None else config.NOTION_DATABASE_ID
        self.base_url = base_url if base_url is not None else config.BACKEND_BASE_URL
        self.batch_size = batch_size
        self._client = client

    def is_configured(self) -> bool:
        return bool(self.api_key and self.database_id)

    @property
    def client(self) -> NotionClient:
        if self._client is None:
            self._client = NotionClient(self.api_key)
        return self._client

    def create_database(self, parent_page_id: str, title: str = "Properties") -> str:
        """Create the properties database under a parent page and return its id"""
        response = self.client.create_database(parent_page_id, title, DB_PROPERTIES)
        logger.info("Created Notion database: %s", response["id"])
        return response["id"]

    def find_existing_page(self, property_name: str) -> Optional[Dict[str, Any]]:
        response = self.client.query_database(
            self.database_id,
            {"property": "Property Name", "title": {"equals": property_name or ""}},
            page_size=1,
        )
        results = response.get("results") or []
        return results[0] if results else None

    def clear_page_content(self, page_id: str) -> int:
        block_ids = []
        cursor = None
        while True:
            response = self.client.list_children(page_id, start_cursor=cursor)
            block_ids.extend(block["id"] for block in response.get("results", []))
            if not response.get("has_more"):
                break
            cursor = response.get("next_cursor")
        for block_id in block_ids:
            self.client.delete_block(block_id)
        return len(block_ids)

    def append_blocks_in_batches(self, page_id: str, blocks: List[Dict[str, Any]]) -> None:
        for i in range(0, len(blocks), self.batch_size):
            batch = blocks[i:i + self.batch_size]
            self.client.append_children(page_id, batch)
            logger.info("Appended blocks %d-%d of %d", i + 1, i + len(batch), len(blocks))

    def publish(self, report: Report) -> Optional[PublishedDocument]:
        """
        Upsert the report page

        Returns:
            PublishedDocument, or None when Notion is not configured

        Raises:
            NotionAPIError: any Notion call failed
        """
        if not self.is_configured():
            logger.warning("NOTION_API_KEY or NOTION_DATABASE_ID not set - Notion sync will be skipped")
            return None

        logger.info("Syncing capture %s to Notion...", report.captureId)
        self.client.retrieve_database(self.database_id)

        properties = build_page_properties(report)
        existing = self.find_existing_page(report.propertyName)

        if existing:
            page_id = existing["id"]
            page_url = existing.get("url")
            logger.info("Updating existing Notion page: %s", page_id)
            self.client.update_page(page_id, properties)
            removed = self.clear_page_content(page_id)
            logger.info("Cleared %d existing blocks", removed)
        else:
            logger.info("Creating new Notion property page...")
            response = self.client.create_page({
                "parent": {"database_id": self.database_id},
                "properties": properties,
                "icon": {"type": "emoji", "emoji": "🏠"},
            })
            page_id = response["id"]
            page_url = response.get("url")

        self.append_blocks_in_batches(page_id, build_content_blocks(report, self.base_url))

        page_url = page_url or f"https://notion.so/{page_id.replace('-', '')}"
        logger.info("Notion sync complete: %s", page_url)
        return PublishedDocument(documentUrl=page_url, documentId=page_id)


def main(argv: Optional[List[str]] = None, publisher: Optional[NotionPublisher] = None) -> int:
    """Provision the properties database under a Notion page: python notion_publisher.py <parent_page_id>"""
    config.configure_logging()
    argv = sys.argv[1:] if argv is None else argv
    if len(argv) != 1:
        print("Usage: python notion_publisher.py <parent_page_id>")
        return 2

    publisher = publisher or NotionPublisher()
    if not publisher.api_key:
        print("NOTION_API_KEY is not set")
        return 1

    try:
        database_id = publisher.create_database(argv[0])
    except NotionAPIError as e:
        print(f"Failed to create database: {e}")
        return 1

    print("Database created. Add this to your .env:")
    print(f"NOTION_DATABASE_ID={database_id}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
