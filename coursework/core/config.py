import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent.parent

DATABASE_URL = os.environ.get("DATABASE_URL", f"sqlite:///{BASE_DIR}/coursework.db")

# Blob storage
UPLOAD_DIR = Path(os.environ.get("UPLOAD_DIR", BASE_DIR / "uploads" / "submissions"))
UPLOAD_URL_PREFIX = os.environ.get("UPLOAD_URL_PREFIX", "/uploads/submissions")
MAX_UPLOAD_BYTES = int(os.environ.get("MAX_UPLOAD_BYTES", 50 * 1024 * 1024))  # 50MB per file
MAX_FILES_PER_SUBMISSION = 10

ALLOWED_MIME_TYPES = frozenset(
    {
        "application/pdf",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "application/vnd.ms-powerpoint",
        "application/vnd.openxmlformats-officedocument.presentationml.presentation",
        "text/plain",
        "image/jpeg",
        "image/png",
        "image/gif",
    }
)

# Resubmission policy defaults (used when the registry leaves them unset)
DEFAULT_MAX_RESUBMISSIONS = 3

# How many times a lost optimistic-concurrency race is retried before giving up
CONFLICT_RETRIES = int(os.environ.get("CONFLICT_RETRIES", 3))
