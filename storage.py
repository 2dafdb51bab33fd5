"""
Durable Storage Module

Local filesystem store for capture files, intermediate JSON and final reports,
with an optional S3 mirror for reports.
"""

import json
import logging
import shutil
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import boto3

import config
from models import Report

logger = logging.getLogger(__name__)


def _to_jsonable(data: Any) -> Any:
    if hasattr(data, "model_dump"):
        return data.model_dump(mode="json")
    if isinstance(data, list):
        return [_to_jsonable(item) for item in data]
    return data


class S3ReportMirror:
    """Copies every saved report to S3 under reports/<captureId>.json"""

    def __init__(self, bucket: str, client=None):
        self.bucket = bucket
        self.client = client or boto3.client(
            "s3",
            aws_access_key_id=config.AWS_ACCESS_KEY_ID,
            aws_secret_access_key=config.AWS_SECRET_ACCESS_KEY,
            region_name=config.AWS_REGION,
        )

    def upload(self, capture_id: str, payload: Dict[str, Any]) -> Optional[str]:
        key = f"reports/{capture_id}.json"
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=json.dumps(payload, indent=2).encode("utf-8"),
                ContentType="application/json",
            )
            logger.info("Report mirrored to s3://%s/%s", self.bucket, key)
            return f"s3://{self.bucket}/{key}"
        except Exception as e:
            logger.error("Failed to mirror report %s to S3: %s", capture_id, e)
            return None


class LocalStorage:
    """Filesystem-backed durable store rooted at a storage path"""

    def __init__(self, root: Union[str, Path] = config.STORAGE_PATH, mirror: Optional[S3ReportMirror] = None):
        self.root = Path(root)
        self.captures_dir = self.root / "captures"
        self.results_dir = self.root / "results"
        self.mirror = mirror

    @classmethod
    def from_config(cls) -> "LocalStorage":
        mirror = S3ReportMirror(config.S3_BUCKET) if config.S3_BUCKET else None
        return cls(config.STORAGE_PATH, mirror=mirror)

    def init_storage(self) -> None:
        for directory in [self.captures_dir, self.results_dir]:
            if not directory.exists():
                directory.mkdir(parents=True, exist_ok=True)
                logger.info("Created storage directory: %s", directory)

    def ensure_capture_dir(self, capture_id: str) -> Path:
        directory = self.captures_dir / capture_id
        directory.mkdir(parents=True, exist_ok=True)
        return directory

    def ensure_capture_subdir(self, capture_id: str, sub_dir: str) -> Path:
        directory = self.captures_dir / capture_id / sub_dir
        directory.mkdir(parents=True, exist_ok=True)
        return directory

    def save_capture_file(self, capture_id: str, filename: str, data: bytes) -> Path:
        file_path = self.ensure_capture_dir(capture_id) / filename
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_bytes(data)
        logger.info("Saved file: %s (%d bytes)", file_path, len(data))
        return file_path

    def file_url(self, capture_id: str, filename: str) -> str:
        """API-accessible URL path for a stored capture file"""
        return f"/api/files/captures/{capture_id}/{filename}"

    def save_json(self, capture_id: str, name: str, data: Any) -> Path:
        file_path = self.ensure_capture_dir(capture_id) / name
        file_path.write_text(json.dumps(_to_jsonable(data), indent=2), encoding="utf-8")
        logger.info("Saved JSON: %s", file_path)
        return file_path

    def save_report(self, capture_id: str, report: Union[Report, Dict[str, Any]]) -> Path:
        payload = _to_jsonable(report)
        self.results_dir.mkdir(parents=True, exist_ok=True)
        file_path = self.results_dir / f"{capture_id}.json"
        file_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        logger.info("Saved report: %s", file_path)
        if self.mirror:
            self.mirror.upload(capture_id, payload)
        return file_path

    def load_report(self, capture_id: str) -> Optional[Dict[str, Any]]:
        file_path = self.results_dir / f"{capture_id}.json"
        if not file_path.exists():
            return None
        return json.loads(file_path.read_text(encoding="utf-8"))

    def list_reports(self) -> List[Dict[str, Any]]:
        """Summaries of every persisted report, newest first"""
        summaries = []
        if not self.results_dir.exists():
            return summaries
        for file_path in self.results_dir.glob("*.json"):
            try:
                report = json.loads(file_path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as e:
                logger.warning("Failed to parse report %s: %s", file_path.name, e)
                continue
            rooms = report.get("rooms") or []
            photo_count = sum(len(r.get("photos") or []) for r in rooms) + len(report.get("unassignedPhotos") or [])
            summaries.append({
                "id": file_path.stem,
                "propertyName": report.get("propertyName") or file_path.stem,
                "propertyAddress": report.get("propertyAddress") or "",
                "status": "complete",
                "date": report.get("captureDate") or "",
                "roomCount": len(rooms),
                "itemCount": sum(len(r.get("inventory") or []) for r in rooms),
                "photoCount": photo_count,
            })
        summaries.sort(key=lambda s: s["date"], reverse=True)
        return summaries

    def delete_capture(self, capture_id: str, max_retries: int = 3) -> Dict[str, Any]:
        """Delete all files and the report for a capture, retrying on transient errors"""
        capture_dir = self.captures_dir / capture_id
        result_file = self.results_dir / f"{capture_id}.json"
        last_error = None

        for attempt in range(1, max_retries + 1):
            try:
                if capture_dir.exists():
                    shutil.rmtree(capture_dir)
                    logger.info("Deleted capture directory: %s", capture_dir)
                if result_file.exists():
                    result_file.unlink()
                    logger.info("Deleted result file: %s", result_file)
                return {"success": True}
            except OSError as e:
                last_error = e
                logger.warning("Attempt %d failed to delete capture %s: %s", attempt, capture_id, e)
                time.sleep(0.5)

        logger.error("Failed to delete capture %s after %d attempts: %s", capture_id, max_retries, last_error)
        return {"success": False, "error": str(last_error)}
