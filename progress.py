# progress.py
from __future__ import annotations
from dataclasses import dataclass, asdict, field
from datetime import datetime, timezone
from typing import Dict, Any, List, Optional
import logging
import threading

logger = logging.getLogger(__name__)

# Capture lifecycle
PROCESSING = "processing"
COMPLETE = "complete"
FAILED = "failed"

# Stage values
PENDING = "pending"
SKIPPED = "skipped"
STAGE_VALUES = (PENDING, PROCESSING, COMPLETE, FAILED, SKIPPED)

STAGES = (
    "transcription",
    "roomSegmentation",
    "inventoryExtraction",
    "photoAssociation",
    "publishSync",
)


def _new_progress() -> Dict[str, str]:
    return {stage: PENDING for stage in STAGES}


@dataclass
class ProcessingStatus:
    captureId: str
    status: str            # "processing" | "complete" | "failed"
    createdAt: str         # ISO-8601, UTC
    progress: Dict[str, str] = field(default_factory=_new_progress)
    propertyName: Optional[str] = None
    propertyAddress: Optional[str] = None
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


class StatusStore:
    """
    Thread-safe in-memory status store keyed by capture id.

    Entries are never expired; they are only removed by delete().
    A process restart loses every entry, callers fall back to the
    persisted report for captures that already completed.
    """
    def __init__(self):
        self._lock = threading.RLock()
        self._data: Dict[str, ProcessingStatus] = {}

    def init(self, capture_id: str, meta: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        meta = meta or {}
        rec = ProcessingStatus(
            captureId=capture_id,
            status=PROCESSING,
            createdAt=datetime.now(timezone.utc).isoformat(),
            propertyName=meta.get("propertyName"),
            propertyAddress=meta.get("propertyAddress"),
        )
        with self._lock:
            if capture_id in self._data:
                raise ValueError(f"Status already initialized for capture {capture_id}")
            self._data[capture_id] = rec
            return asdict(rec)

    def get(self, capture_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            rec = self._data.get(capture_id)
            return asdict(rec) if rec else None

    def update(self, capture_id: str, stage: str, value: str) -> None:
        """Set one stage's value. Unknown captures are ignored."""
        if stage not in STAGES or value not in STAGE_VALUES:
            logger.warning("Ignoring invalid progress update %s=%s for %s", stage, value, capture_id)
            return
        with self._lock:
            rec = self._data.get(capture_id)
            if rec:
                rec.progress[stage] = value

    def complete(self, capture_id: str, result: Dict[str, Any]) -> bool:
        return self._finish(capture_id, COMPLETE, result=result)

    def fail(self, capture_id: str, error: str) -> bool:
        return self._finish(capture_id, FAILED, error=error)

    def _finish(self, capture_id: str, status: str, result=None, error=None) -> bool:
        # terminal states are entered exactly once
        with self._lock:
            rec = self._data.get(capture_id)
            if not rec:
                return False
            if rec.status != PROCESSING:
                logger.warning("Capture %s already %s, ignoring transition to %s", capture_id, rec.status, status)
                return False
            rec.status = status
            rec.result = result
            rec.error = error
            return True

    def delete(self, capture_id: str) -> None:
        with self._lock:
            self._data.pop(capture_id, None)

    def list_all(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [asdict(rec) for rec in self._data.values()]
