"""
Transcript Refiner Module

Cleans up live-captioned walkthrough transcripts before room segmentation.
Everything here is deterministic; no external calls are made.
"""

import re
import logging
from typing import List, Dict, Any, Iterable

from models import TranscriptItem, RoomBoundary

logger = logging.getLogger(__name__)

# Common property vocabulary, applied case-insensitively
PHRASE_SUBSTITUTIONS = [
    (r'\bmaster\s+bedroom\b', 'Primary Bedroom'),
    (r'\bmaster\s+bath(?:room)?\b', 'Primary Bathroom'),
    (r'\bhalf\s+bath\b', 'Half Bathroom'),
    (r'\bpowder\s+room\b', 'Half Bathroom'),
    (r'\bliving\s+room\b', 'Living Room'),
    (r'\bdining\s+room\b', 'Dining Room'),
    (r'\blaundry\s+room\b', 'Laundry Room'),
    (r'\bfamily\s+room\b', 'Family Room'),
]

# Speech filler tokens; a single trailing comma goes with them
FILLER_PATTERN = re.compile(r'\b(?:um|uh|yeah\s+so|so\s+basically)\b,?', re.IGNORECASE)

_SUBSTITUTION_PATTERNS = [(re.compile(p, re.IGNORECASE), r) for p, r in PHRASE_SUBSTITUTIONS]
_WHITESPACE = re.compile(r'\s+')
_LEADING_PUNCTUATION = re.compile(r'^[\s,;:]+')
_SENTENCE_START = re.compile(r'(^|\.\s+)([a-z])')


def _collapse_duplicates(items: Iterable[TranscriptItem]) -> List[TranscriptItem]:
    """Drop empty items and immediately repeated ones (case-insensitive)"""
    collapsed = []
    for item in items:
        text = item.text.strip()
        if not text:
            continue
        if collapsed and collapsed[-1].text.lower() == text.lower():
            continue
        collapsed.append(TranscriptItem(text=text, timestampSeconds=item.timestampSeconds))
    return collapsed


def _strip_fillers(text: str) -> str:
    # Removing one filler can join the words of another, so run to a fixed point
    previous = None
    while text != previous:
        previous = text
        text = FILLER_PATTERN.sub('', text)
        text = _WHITESPACE.sub(' ', text).strip()
        text = _LEADING_PUNCTUATION.sub('', text)
    return text


def clean_text(text: str) -> str:
    """
    Normalize a single transcript line

    Args:
        text: Raw caption text

    Returns:
        Cleaned text (possibly empty)
    """
    text = _WHITESPACE.sub(' ', text).strip()
    text = _strip_fillers(text)
    for pattern, replacement in _SUBSTITUTION_PATTERNS:
        text = pattern.sub(replacement, text)
    text = _WHITESPACE.sub(' ', text).strip()
    return _SENTENCE_START.sub(lambda m: m.group(1) + m.group(2).upper(), text)


def _to_items(items) -> List[TranscriptItem]:
    return [i if isinstance(i, TranscriptItem) else TranscriptItem.model_validate(i) for i in items or []]


def enhance(transcript_items, room_boundaries=None) -> Dict[str, Any]:
    """
    Enhance and clean up a raw transcript

    Args:
        transcript_items: List of TranscriptItem (or dicts with text/timestampSeconds)
        room_boundaries: Room markers placed during recording (advisory, not used for cleanup)

    Returns:
        {"items": [TranscriptItem, ...], "fullText": str}
    """
    items = _to_items(transcript_items)
    if not items:
        logger.warning("Empty transcript received - nothing to enhance")
        return {"items": [], "fullText": ""}

    boundaries = [b if isinstance(b, RoomBoundary) else RoomBoundary.model_validate(b) for b in room_boundaries or []]
    logger.info("Enhancing transcript: %d items, %d room boundaries", len(items), len(boundaries))

    merged = _collapse_duplicates(items)

    cleaned = []
    for item in merged:
        text = clean_text(item.text)
        if text:
            cleaned.append(TranscriptItem(text=text, timestampSeconds=item.timestampSeconds))

    # cleanup can make neighbouring lines identical again
    cleaned = _collapse_duplicates(cleaned)

    full_text = ' '.join(item.text for item in cleaned)
    logger.info("Transcript enhanced: %d -> %d items, %d chars", len(items), len(cleaned), len(full_text))
    return {"items": cleaned, "fullText": full_text}
