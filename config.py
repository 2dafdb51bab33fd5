"""
Configuration file for the capture processing service
"""

import os
import logging
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

# Base paths
PROJECT_ROOT = Path(__file__).parent
STORAGE_PATH = Path(os.getenv("STORAGE_PATH", PROJECT_ROOT / "data"))

# Segmentation (OpenAI) configuration
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
SEGMENTATION_MODEL = os.getenv("SEGMENTATION_MODEL", "gpt-4o")
SEGMENTATION_MAX_TOKENS = int(os.getenv("SEGMENTATION_MAX_TOKENS", "8192"))
SEGMENTATION_TIMEOUT = float(os.getenv("SEGMENTATION_TIMEOUT", "120"))  # seconds

# Media processing settings
MEDIA_TIMEOUT = float(os.getenv("MEDIA_TIMEOUT", "300"))  # seconds, per clip
THUMBNAIL_WIDTH = 400
THUMBNAIL_QUALITY = 80

# Notion configuration (optional)
NOTION_API_KEY = os.getenv("NOTION_API_KEY")
NOTION_DATABASE_ID = os.getenv("NOTION_DATABASE_ID")
NOTION_VERSION = "2022-06-28"
NOTION_MIN_INTERVAL = float(os.getenv("NOTION_MIN_INTERVAL", "0.35"))  # ~3 req/sec with margin
NOTION_BLOCK_BATCH_SIZE = 100
NOTION_TEXT_LIMIT = 2000
NOTION_TRANSCRIPT_CHUNK = 1800
NOTION_REQUEST_TIMEOUT = 30

# Public base URL of this backend, used to absolutize stored file URLs
BACKEND_BASE_URL = os.getenv("BACKEND_BASE_URL")

# AWS S3 configuration (optional report mirror)
S3_BUCKET = os.getenv("AWS_BUCKET_NAME")
AWS_ACCESS_KEY_ID = os.getenv("AWS_ACCESS_KEY_ID")
AWS_SECRET_ACCESS_KEY = os.getenv("AWS_SECRET_ACCESS_KEY")
AWS_REGION = os.getenv("AWS_REGION", "us-east-1")

# Logging configuration
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging():
    """Configure root logging once for a process entry point"""
    logging.basicConfig(level=LOG_LEVEL.upper(), format=LOG_FORMAT)
