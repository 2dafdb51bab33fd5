"""
Room Segmentation Module

Sends the enhanced walkthrough transcript to an LLM and turns its JSON answer
into a SegmentationResult. One attempt with the detailed instructions, one
retry with the simplified instructions, then the failure propagates.
"""

import json
import logging
import re
from typing import List, Optional

from openai import OpenAI
from pydantic import ValidationError

import config
from models import Room, RoomBoundary, SegmentationResult, TranscriptItem

logger = logging.getLogger(__name__)


class SegmentationError(Exception):
    """Room segmentation could not produce a usable result"""


ROOM_SEGMENTATION_SYSTEM_PROMPT = """You are an AI assistant that processes property walkthrough transcripts. The user has recorded a video tour of a short-term rental property, narrating as they go through each room.

Your job is to segment this transcript into rooms.

INPUT: A timestamped transcript of a property walkthrough, optionally with room boundary markers that the user placed during recording.

OUTPUT: A JSON object with the following structure:
{
  "propertyOverview": {
    "totalRooms": number,
    "propertyType": "house" | "apartment" | "condo" | "townhouse" | "other",
    "estimatedBedrooms": number,
    "estimatedBathrooms": number,
    "hasOutdoorSpace": boolean,
    "generalNotes": "any general property notes mentioned"
  },
  "rooms": [
    {
      "roomId": "room-1",
      "roomName": "Primary Bedroom",
      "roomType": "bedroom" | "bathroom" | "kitchen" | "living_room" | "dining_room" | "garage" | "laundry" | "outdoor" | "office" | "hallway" | "closet" | "other",
      "startTimestamp": number (seconds),
      "endTimestamp": number (seconds),
      "transcriptExcerpt": "the raw transcript text for just this room segment",
      "inventory": [
        {
          "item": "Queen bed",
          "quantity": 1,
          "notes": "with white duvet cover",
          "condition": "good" | "fair" | "needs_attention" | "not_mentioned"
        }
      ],
      "features": ["ceiling fan", "en-suite bathroom"],
      "quirksAndNotes": ["Light switch is behind the door"],
      "accessInfo": ["Key code for bedroom door: 1234"],
      "cleaningNotes": ["Carpet needs deep clean between guests"]
    }
  ],
  "propertyAccess": {
    "wifiName": "string or null",
    "wifiPassword": "string or null",
    "lockboxCode": "string or null",
    "parkingInstructions": "string or null",
    "gateCode": "string or null",
    "otherAccess": ["any other access info mentioned"]
  },
  "systemsAndUtilities": {
    "hvac": "notes about heating/cooling",
    "waterHeater": "location and notes",
    "breakerBox": "location",
    "waterShutoff": "location",
    "trashDay": "if mentioned",
    "otherSystems": ["any other system notes"]
  }
}

RULES:
1. Extract EVERY item mentioned, even small things like "there's an ironing board in the closet"
2. If the speaker mentions quantities, use exact numbers. If they don't specify, use 1.
3. Normalize room names (e.g., "master bedroom" -> "Primary Bedroom", "the kitchen area" -> "Kitchen")
4. If the speaker goes back to a room they already covered, merge that content into the existing room entry
5. Capture ALL access information (WiFi, codes, keys) even if mentioned casually
6. If something is unclear in the transcript, include it with a note like "unclear - verify"
7. For timestamps, use the closest timestamp from the input transcript
8. Extract condition notes only if the speaker explicitly mentions condition

IMPORTANT: Return ONLY the JSON object, no markdown fencing, no explanation text."""

SIMPLIFIED_SYSTEM_PROMPT = """You are an AI assistant that processes property walkthrough transcripts. Segment the transcript into rooms.

Return ONLY a valid JSON object with this structure:
{
  "propertyOverview": { "totalRooms": number, "propertyType": string, "estimatedBedrooms": number, "estimatedBathrooms": number, "hasOutdoorSpace": boolean, "generalNotes": string },
  "rooms": [{ "roomId": string, "roomName": string, "roomType": string, "startTimestamp": number, "endTimestamp": number, "transcriptExcerpt": string, "inventory": [{ "item": string, "quantity": number, "notes": string, "condition": string }], "features": [], "quirksAndNotes": [], "accessInfo": [], "cleaningNotes": [] }],
  "propertyAccess": { "wifiName": null, "wifiPassword": null, "lockboxCode": null, "parkingInstructions": null, "gateCode": null, "otherAccess": [] },
  "systemsAndUtilities": { "hvac": null, "waterHeater": null, "breakerBox": null, "waterShutoff": null, "trashDay": null, "otherSystems": [] }
}

Extract every item mentioned. Normalize room names. Return ONLY the JSON."""

_FENCE_START = re.compile(r'^```(?:json)?\s*\n?', re.IGNORECASE)
_FENCE_END = re.compile(r'\n?```\s*$')


class OpenAICompletionService:
    """Segmentation service backed by the OpenAI chat completions API"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = config.SEGMENTATION_MODEL,
        timeout: float = config.SEGMENTATION_TIMEOUT,
        max_tokens: int = config.SEGMENTATION_MAX_TOKENS,
    ):
        self.api_key = api_key if api_key is not None else config.OPENAI_API_KEY
        self.model = model
        self.timeout = timeout
        self.max_tokens = max_tokens
        self._client = None

    def _get_client(self) -> OpenAI:
        if not self.api_key:
            raise SegmentationError("OPENAI_API_KEY environment variable is not set")
        if self._client is None:
            self._client = OpenAI(api_key=self.api_key, timeout=self.timeout, max_retries=0)
        return self._client

    def complete(self, system_prompt: str, user_text: str) -> str:
        response = self._get_client().chat.completions.create(
            model=self.model,
            max_tokens=self.max_tokens,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_text},
            ],
        )
        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise SegmentationError("Unexpected completion format - no text content")
        return content


def format_timestamp(seconds: float) -> str:
    """Render seconds as mm:ss"""
    seconds = max(0, int(seconds or 0))
    minutes, secs = divmod(seconds, 60)
    return f"{minutes:02d}:{secs:02d}"


def build_user_message(transcript_items: List[TranscriptItem], room_boundaries: List[RoomBoundary]) -> str:
    lines = ["Here is the timestamped transcript of a property walkthrough:", ""]
    for item in transcript_items:
        lines.append(f"[{format_timestamp(item.timestampSeconds)}] {item.text}")

    if room_boundaries:
        lines += ["", "", "The user also placed these room boundary markers during recording:"]
        for boundary in room_boundaries:
            lines.append(f"[{format_timestamp(boundary.timestampSeconds)}] --- Entered: {boundary.roomName} ---")

    lines += ["", "", "Please segment this transcript into rooms and extract all details."]
    return "\n".join(lines)


def strip_code_fences(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        text = _FENCE_END.sub('', _FENCE_START.sub('', text))
    return text.strip()


def parse_segmentation_response(text: str) -> SegmentationResult:
    """
    Parse the raw service text into a SegmentationResult

    Raises:
        SegmentationError: payload is not JSON or does not fit the room schema
    """
    payload = strip_code_fences(text)
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        logger.error("Failed to parse segmentation response: %s", payload[:500])
        raise SegmentationError(f"Failed to parse segmentation response as JSON: {e}") from e

    if not isinstance(data, dict):
        raise SegmentationError("Segmentation response is not a JSON object")

    try:
        result = SegmentationResult.model_validate(data)
    except ValidationError as e:
        raise SegmentationError(f"Segmentation response does not match the room schema: {e}") from e

    assign_room_ids(result.rooms)
    return result


def assign_room_ids(rooms: List[Room]) -> None:
    """
    Make every roomId unique. The first room claiming a service-supplied id
    keeps it; rooms without an id, or repeating a claimed one, get the
    first free room-<n> starting from their 1-based position.
    """
    claimed = set()
    keeps = []
    for room in rooms:
        keep = bool(room.roomId) and room.roomId not in claimed
        if keep:
            claimed.add(room.roomId)
        keeps.append(keep)

    for index, (room, keep) in enumerate(zip(rooms, keeps), start=1):
        if keep:
            continue
        n = index
        while f"room-{n}" in claimed:
            n += 1
        if room.roomId:
            logger.warning("Duplicate roomId %s for %s, renamed to room-%d", room.roomId, room.roomName, n)
        room.roomId = f"room-{n}"
        claimed.add(room.roomId)


class RoomSegmenter:
    """Segmentation orchestrator: attempt A, on failure attempt B, on failure propagate"""

    def __init__(self, service=None):
        self.service = service or OpenAICompletionService()

    def _attempt(self, system_prompt: str, user_message: str) -> SegmentationResult:
        text = self.service.complete(system_prompt, user_message)
        result = parse_segmentation_response(text)
        logger.info("Segmentation returned %d rooms", len(result.rooms))
        return result

    def segment_rooms(self, transcript_items, room_boundaries=None) -> SegmentationResult:
        transcript_items = [
            i if isinstance(i, TranscriptItem) else TranscriptItem.model_validate(i) for i in transcript_items or []
        ]
        room_boundaries = [
            b if isinstance(b, RoomBoundary) else RoomBoundary.model_validate(b) for b in room_boundaries or []
        ]
        user_message = build_user_message(transcript_items, room_boundaries)

        logger.info(
            "Sending transcript for segmentation (%d items, %d boundaries)",
            len(transcript_items), len(room_boundaries),
        )

        try:
            return self._attempt(ROOM_SEGMENTATION_SYSTEM_PROMPT, user_message)
        except Exception as e:
            logger.warning("First segmentation call failed: %s. Retrying with simplified prompt...", e)

        try:
            return self._attempt(SIMPLIFIED_SYSTEM_PROMPT, user_message)
        except Exception as e:
            logger.error("Segmentation retry also failed: %s", e)
            raise SegmentationError(f"Room segmentation failed after retry: {e}") from e
