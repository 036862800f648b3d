import io
import os
from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, Optional

import pillow_heif
from PIL import Image, UnidentifiedImageError

pillow_heif.register_heif_opener()

DEFAULT_ALLOWED_TYPES = frozenset({
    "image/jpeg",
    "image/png",
    "image/heic",
    "image/heif",
    "application/pdf",
})
DEFAULT_ALLOWED_EXTENSIONS = frozenset({".jpg", ".jpeg", ".png", ".heic", ".pdf"})

# Browsers often send HEIC with an empty or generic MIME type.
_GENERIC_TYPES = {"", "application/octet-stream"}

_EXTENSION_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".heic": "image/heic",
    ".pdf": "application/pdf",
}

_PIL_FORMAT_TYPES = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "HEIF": "image/heic",
}


class RejectionReason(str, Enum):
    EMPTY = "empty"
    WRONG_TYPE = "wrong_type"
    TOO_LARGE = "too_large"


@dataclass(frozen=True)
class UploadCandidate:
    filename: str
    content_type: Optional[str]
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def extension(self) -> str:
        return os.path.splitext(self.filename or "")[1].lower()


@dataclass(frozen=True)
class UploadPolicy:
    allowed_types: FrozenSet[str] = DEFAULT_ALLOWED_TYPES
    allowed_extensions: FrozenSet[str] = DEFAULT_ALLOWED_EXTENSIONS
    max_bytes: int = 20 * 1024 * 1024
    verify_content: bool = True


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    content_type: Optional[str] = None
    reason: Optional[RejectionReason] = None
    error: Optional[str] = None

    @classmethod
    def accept(cls, content_type: str) -> "ValidationResult":
        return cls(valid=True, content_type=content_type)

    @classmethod
    def reject(cls, reason: RejectionReason, error: str) -> "ValidationResult":
        return cls(valid=False, reason=reason, error=error)


class UploadRejected(Exception):
    def __init__(self, result: ValidationResult):
        super().__init__(result.error)
        self.reason = result.reason
        self.result = result


def resolve_content_type(candidate: UploadCandidate) -> str:
    """
    Declared MIME type, or the type implied by the extension when the
    browser sent nothing useful.
    """
    declared = (candidate.content_type or "").split(";")[0].strip().lower()
    if declared in _GENERIC_TYPES:
        return _EXTENSION_TYPES.get(candidate.extension, declared)
    return declared


def sniff_content_type(data: bytes) -> Optional[str]:
    if data.startswith(b"%PDF-"):
        return "application/pdf"
    try:
        with Image.open(io.BytesIO(data)) as img:
            return _PIL_FORMAT_TYPES.get(img.format or "")
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError):
        return None


def _human_size(num_bytes: int) -> str:
    return f"{num_bytes / (1024 * 1024):.0f} MB"


def validate_upload(candidate: UploadCandidate, policy: UploadPolicy = UploadPolicy()) -> ValidationResult:
    """
    Inspect an uploaded file before it enters the pipeline.

    This only looks at client supplied metadata plus a header sniff, so it
    is a convenience check; the analysis function re-validates on its side.
    """
    if candidate.size == 0:
        return ValidationResult.reject(RejectionReason.EMPTY, "The selected file is empty.")

    content_type = resolve_content_type(candidate)
    type_allowed = content_type in policy.allowed_types
    extension_allowed = not candidate.extension or candidate.extension in policy.allowed_extensions
    if not (type_allowed and extension_allowed):
        return ValidationResult.reject(
            RejectionReason.WRONG_TYPE,
            "Unsupported file type. Please upload a JPG, PNG, PDF or HEIC file.",
        )

    if candidate.size > policy.max_bytes:
        return ValidationResult.reject(
            RejectionReason.TOO_LARGE,
            f"File is too large. Maximum size is {_human_size(policy.max_bytes)}.",
        )

    if policy.verify_content:
        sniffed = sniff_content_type(candidate.data)
        # image/heic and image/heif are the same container
        if sniffed == "image/heic" and content_type == "image/heif":
            sniffed = content_type
        if sniffed is None or sniffed != content_type:
            return ValidationResult.reject(
                RejectionReason.WRONG_TYPE,
                "File contents do not match its type.",
            )

    return ValidationResult.accept(content_type)
