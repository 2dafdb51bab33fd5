"""
Media Tool Module

Video duration probing and per-room clip extraction with FFmpeg. Nothing in
here is allowed to abort a capture: MediaEnricher swallows and logs failures.
"""

import json
import logging
import os
import re
import subprocess
from typing import List, Optional, Sequence

import ffmpeg

import config
from models import ClipRef, Room

logger = logging.getLogger(__name__)


class MediaToolError(Exception):
    """FFmpeg failed or did not finish in time"""


class FfmpegMediaTool:
    """Thin wrapper over ffprobe/ffmpeg with a wall-clock bound per call"""

    def __init__(self, timeout: float = config.MEDIA_TIMEOUT):
        self.timeout = timeout

    def _communicate(self, process: subprocess.Popen, label: str):
        try:
            return process.communicate(timeout=self.timeout)
        except subprocess.TimeoutExpired as e:
            process.kill()
            process.communicate()
            raise MediaToolError(f"{label} timed out after {self.timeout}s") from e

    def probe_duration(self, video_path: str) -> float:
        # same command line as ffmpeg.probe, which can be neither bounded nor killed
        process = subprocess.Popen(
            ["ffprobe", "-show_format", "-show_streams", "-of", "json", video_path],
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
        )
        stdout, stderr = self._communicate(process, "ffprobe")
        if process.returncode != 0:
            raise MediaToolError(f"ffprobe failed: {(stderr or b'').decode(errors='ignore')[:300]}")
        metadata = json.loads(stdout.decode("utf-8"))
        return float(metadata.get("format", {}).get("duration") or 0)

    def extract_clip(self, video_path: str, start: float, duration: float, output_path: str) -> str:
        process = (
            ffmpeg
            .input(video_path, ss=start)
            .output(output_path, t=duration, c="copy")
            .overwrite_output()
            .run_async(pipe_stdout=True, pipe_stderr=True)
        )
        _, stderr = self._communicate(process, "Clip extraction")

        if process.returncode != 0:
            raise MediaToolError(f"ffmpeg exited with {process.returncode}: {(stderr or b'').decode(errors='ignore')[-300:]}")
        return output_path


_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9_-]")


def clip_stem(room_id: Optional[str]) -> str:
    """Filesystem-safe clip name for a model-chosen room id"""
    return _UNSAFE_FILENAME_CHARS.sub("_", room_id or "room")


class MediaEnricher:
    """Best-effort duration and clip generation for a capture video"""

    def __init__(self, storage, tool=None):
        self.storage = storage
        self.tool = tool or FfmpegMediaTool()

    @staticmethod
    def has_video(video_path: Optional[str]) -> bool:
        return bool(video_path) and os.path.exists(video_path)

    def get_duration(self, video_path: str, fallback: Optional[float] = None) -> float:
        """
        Probe the video duration in whole seconds

        Args:
            video_path: Path to the stored video
            fallback: Client-supplied duration used when probing fails

        Returns:
            Duration in seconds (fallback or 0 on failure)
        """
        try:
            duration = round(self.tool.probe_duration(video_path))
            logger.info("Video duration: %ss", duration)
            return duration
        except Exception as e:
            logger.warning("Could not get video duration: %s", e)
            return fallback or 0

    def generate_clips(self, video_path: str, rooms: Sequence[Room], capture_id: str) -> List[ClipRef]:
        """Cut one clip per room; invalid or failing rooms are skipped"""
        if not self.has_video(video_path):
            logger.warning("Video file not found, skipping clip generation")
            return []

        try:
            clips_dir = self.storage.ensure_capture_subdir(capture_id, "clips")
        except Exception as e:
            logger.warning("Could not prepare clips directory: %s", e)
            return []

        results = []
        for room in rooms:
            duration = room.endTimestamp - room.startTimestamp
            if duration <= 0:
                logger.warning("Skipping clip for %s: invalid duration (%ss)", room.roomName, duration)
                continue

            clip_filename = f"{clip_stem(room.roomId)}.mp4"
            try:
                self.tool.extract_clip(video_path, room.startTimestamp, duration, str(clips_dir / clip_filename))
                logger.info("Generated clip for %s: %s", room.roomName, clip_filename)
                results.append(ClipRef(
                    roomId=room.roomId,
                    clipUrl=self.storage.file_url(capture_id, f"clips/{clip_filename}"),
                ))
            except Exception as e:
                logger.warning("Failed to generate clip for %s: %s", room.roomName, e)

        logger.info("Generated %d/%d room clips", len(results), len(rooms))
        return results
