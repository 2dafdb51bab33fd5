"""
Capture Processing Pipeline

Turns an uploaded walkthrough capture (transcript, room markers, photos,
video) into a room-segmented property report.

Stages, in order:
1. Transcript enhancement    (always succeeds)
2. Room segmentation         (fatal on failure)
3. Photo association         (best-effort)
4. Media enrichment          (best-effort, not tracked as a stage)
5. Report compilation + save
6. Publish sync              (best-effort)
"""

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Dict, List, Optional

import progress
from media_tool import MediaEnricher
from models import CaptureData, SegmentationResult
from notion_publisher import NotionPublisher
from photo_associator import PhotoAssociator
from report_compiler import compile_report
from room_segmenter import RoomSegmenter
from transcript_refiner import enhance

logger = logging.getLogger(__name__)


class CaptureProcessor:
    """Pipeline orchestrator; owns each capture from "processing" to its terminal state"""

    def __init__(
        self,
        status_store: progress.StatusStore,
        storage,
        segmenter: Optional[RoomSegmenter] = None,
        associator: Optional[PhotoAssociator] = None,
        media: Optional[MediaEnricher] = None,
        publisher: Optional[NotionPublisher] = None,
        max_workers: int = 4,
    ):
        self.status_store = status_store
        self.storage = storage
        self.segmenter = segmenter or RoomSegmenter()
        self.associator = associator or PhotoAssociator(storage)
        self.media = media or MediaEnricher(storage)
        self.publisher = publisher or NotionPublisher()
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="capture")

    # ---- status surface ----

    def init_status(self, capture_id: str, meta: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return self.status_store.init(capture_id, meta)

    def get_status(self, capture_id: str) -> Optional[Dict[str, Any]]:
        return self.status_store.get(capture_id)

    def get_all_statuses(self) -> List[Dict[str, Any]]:
        return self.status_store.list_all()

    def delete_status(self, capture_id: str) -> None:
        self.status_store.delete(capture_id)

    # ---- pipeline ----

    def submit(self, capture_id: str, capture: CaptureData) -> Future:
        """Fire-and-forget: the outcome is only observable through the status store"""
        return self._executor.submit(self.run, capture_id, capture)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def _update(self, capture_id: str, stage: str, value: str) -> None:
        self.status_store.update(capture_id, stage, value)

    def _save_json(self, capture_id: str, name: str, data: Any) -> None:
        try:
            self.storage.save_json(capture_id, name, data)
        except Exception as e:
            logger.warning("Could not save %s for capture %s: %s", name, capture_id, e)

    def _save_report(self, capture_id: str, report) -> None:
        try:
            self.storage.save_report(capture_id, report)
        except Exception as e:
            logger.error("Could not persist report for capture %s: %s", capture_id, e)

    def run(self, capture_id: str, capture: CaptureData) -> None:
        """
        Run the full pipeline for one capture. Never raises: the outcome is
        recorded in the status store.
        """
        if self.status_store.get(capture_id) is None:
            logger.error("No status entry for capture %s", capture_id)
            return

        try:
            if isinstance(capture, dict):
                capture = CaptureData.model_validate(capture)
            logger.info("=== Starting processing pipeline for capture %s === %s", capture_id, capture.summary())

            # Step 1: Transcript enhancement
            logger.info("Step 1: Transcript enhancement")
            self._update(capture_id, "transcription", progress.PROCESSING)
            enhanced = enhance(capture.transcript, capture.roomBoundaries)
            self._save_json(capture_id, "transcript.json", enhanced["items"])
            self._update(capture_id, "transcription", progress.COMPLETE)

            # Step 2: Room segmentation (fatal)
            logger.info("Step 2: Room segmentation")
            self._update(capture_id, "roomSegmentation", progress.PROCESSING)
            try:
                segmentation: SegmentationResult = self.segmenter.segment_rooms(
                    enhanced["items"], capture.roomBoundaries
                )
            except Exception:
                self._update(capture_id, "roomSegmentation", progress.FAILED)
                raise
            self._save_json(capture_id, "segmentation-result.json", segmentation)
            self._update(capture_id, "roomSegmentation", progress.COMPLETE)
            # inventory is part of the segmentation output
            self._update(capture_id, "inventoryExtraction", progress.COMPLETE)
            rooms = segmentation.rooms

            # Step 3: Photo association
            logger.info("Step 3: Photo association")
            self._update(capture_id, "photoAssociation", progress.PROCESSING)
            try:
                photos = self.associator.associate(capture.photoFiles, capture.photoMetadata, rooms, capture_id)
                self._update(capture_id, "photoAssociation", progress.COMPLETE)
            except Exception as e:
                logger.warning("Photo association failed (non-fatal): %s", e)
                photos = []
                self._update(capture_id, "photoAssociation", progress.FAILED)

            # Step 4: Media enrichment
            duration = capture.durationSeconds or 0
            clips = []
            if self.media.has_video(capture.videoPath):
                logger.info("Step 4: Media enrichment")
                duration = self.media.get_duration(capture.videoPath, fallback=capture.durationSeconds)
                try:
                    clips = self.media.generate_clips(capture.videoPath, rooms, capture_id)
                except Exception as e:
                    logger.warning("Room clip generation failed (non-fatal): %s", e)

            # Step 5: Compile and persist
            logger.info("Step 5: Compiling final report")
            report = compile_report(
                capture_id,
                capture,
                segmentation,
                photos,
                clips,
                enhanced["fullText"],
                self.storage,
                recording_duration=duration,
            )
            self._save_report(capture_id, report)

            # Step 6: Publish sync
            self._publish(capture_id, report)

            self.status_store.complete(capture_id, report.model_dump(mode="json"))
            logger.info("=== Processing complete for capture %s ===", capture_id)
        except Exception as e:
            logger.exception("Processing failed for capture %s", capture_id)
            self.status_store.fail(capture_id, str(e))

    def _publish(self, capture_id: str, report) -> None:
        if not self.publisher.is_configured():
            logger.info("Step 6: Publish sync skipped (not configured)")
            self._update(capture_id, "publishSync", progress.SKIPPED)
            return

        logger.info("Step 6: Publish sync")
        self._update(capture_id, "publishSync", progress.PROCESSING)
        try:
            document = self.publisher.publish(report)
        except Exception as e:
            logger.warning("Publish sync failed (non-fatal): %s", e)
            self._update(capture_id, "publishSync", progress.FAILED)
            return

        if document is None:
            self._update(capture_id, "publishSync", progress.SKIPPED)
            return

        report.publishedDocument = document
        self._save_report(capture_id, report)
        self._update(capture_id, "publishSync", progress.COMPLETE)
