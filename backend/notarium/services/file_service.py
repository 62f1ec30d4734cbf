"""
Notarium Backend — File Storage Service
=========================================

What:  Decodes, validates, stores and removes note images on disk.
Why:   Centralizes every file system operation behind one set of checks.
How:   Base64 payloads are decoded, checked for size and real content type
       (libmagic), and written under date-organized directories with UUID
       names. The database only ever stores the relative path.
Who:   NoteService (note images), StudyService (OCR uploads), the files route.

Security Model:
    1. Size check:           bounded per image (max_file_size)
    2. MIME type check:      python-magic inspects the header bytes, so a
                             renamed PDF is rejected whatever it claims to be
    3. UUID filename:        no user input ever reaches a path
    4. Path resolution:      served paths must stay inside storage_root

Directory Structure:
    storage/
    └── 2025/
        └── 10/
            └── 19/
                ├── 3f0e...c1.jpg
                └── 9ab2...7d.jpg
"""

import base64
import binascii
import logging
import os
import uuid
from pathlib import Path
from typing import Iterable, Optional, Tuple

import aiofiles
import magic

from notarium.clock import utcnow
from notarium.config import settings
from notarium.exceptions import FileStorageError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

# ── Allowed File Types ────────────────────────────────────────────────────
ALLOWED_MIME_TYPES = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/webp": ".webp",
}

ALLOWED_EXTENSIONS = {".png", ".jpg", ".jpeg", ".webp"}


class FileService:
    """
    Manages the image lifecycle: decode → validate → store → serve → delete.
    """

    def __init__(self, storage_root: Optional[str] = None):
        """
        Args:
            storage_root: Override the default storage path (used in tests).
        """
        self.storage_root = Path(storage_root or settings.storage_root).resolve()
        self.storage_root.mkdir(parents=True, exist_ok=True)
        logger.info("FileService initialized with storage_root=%s", self.storage_root)

    # ── Decoding ──────────────────────────────────────────────────────────

    def decode_base64_image(self, data: str) -> bytes:
        """
        Decode a base64 image, accepting data URIs
        ("data:image/png;base64,iVBOR...").

        Raises:
            ValidationError when the payload is empty or not valid base64.
        """
        payload = data.strip()
        if payload.startswith("data:") and "," in payload:
            payload = payload.split(",", 1)[1]
        if not payload:
            raise ValidationError(message="Image data is empty", field="images")
        try:
            return base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError):
            raise ValidationError(
                message="Image data is not valid base64",
                field="images",
            )

    # ── Validation ────────────────────────────────────────────────────────

    def validate_extension(self, filename: str) -> str:
        """
        Validate the extension of an uploaded file name.

        Returns: Normalized extension (lowercase with dot).
        Raises:  ValidationError if the extension is not allowed.
        """
        ext = Path(filename).suffix.lower()
        if ext not in ALLOWED_EXTENSIONS:
            raise ValidationError(
                message=(
                    f"File type '{ext}' is not supported. "
                    f"Allowed types: {', '.join(sorted(ALLOWED_EXTENSIONS))}"
                ),
                field="file",
                context={"extension": ext, "allowed": sorted(ALLOWED_EXTENSIONS)},
            )
        return ext

    def validate_size(self, content_length: Optional[int], actual_size: int) -> None:
        """
        Validate image size against max_file_size.

        content_length is the client-declared size (multipart uploads), checked
        before the actual byte count because clients sometimes lie.
        """
        max_mb = settings.max_file_size / (1024 * 1024)

        if content_length and content_length > settings.max_file_size:
            raise ValidationError(
                message=f"File size exceeds maximum of {max_mb:.0f}MB. Please upload a smaller image.",
                field="file",
                context={"max_size_mb": max_mb, "reported_size": content_length},
            )

        if actual_size == 0:
            raise ValidationError(message="The uploaded image is empty.", field="file")

        if actual_size > settings.max_file_size:
            raise ValidationError(
                message=f"File size ({actual_size / (1024 * 1024):.1f}MB) exceeds maximum of {max_mb:.0f}MB.",
                field="file",
                context={"max_size_mb": max_mb, "actual_size": actual_size},
            )

    def validate_mime_type(self, file_content: bytes) -> str:
        """
        Detect the real MIME type from the content bytes.

        Returns:
            Detected MIME type string (e.g., "image/jpeg")

        Raises:
            ValidationError if the type is not an allowed image type
            FileStorageError if libmagic itself fails
        """
        try:
            mime_type = magic.from_buffer(file_content, mime=True)
        except Exception as e:
            logger.error("MIME type detection failed: %s", str(e))
            raise FileStorageError(
                message="Could not verify file type. Please try again.",
                context={"error": str(e)},
            )

        if mime_type not in ALLOWED_MIME_TYPES:
            raise ValidationError(
                message=(
                    f"File content type '{mime_type}' is not supported. "
                    f"The file must be a valid image (PNG, JPEG or WebP)."
                ),
                field="file",
                context={"detected_mime": mime_type, "allowed": list(ALLOWED_MIME_TYPES)},
            )
        return mime_type

    def validate_image(self, content: bytes, content_length: Optional[int] = None) -> str:
        """Size then content type. Returns the detected MIME type."""
        self.validate_size(content_length, len(content))
        return self.validate_mime_type(content)

    # ── Storage ───────────────────────────────────────────────────────────

    def _generate_storage_path(self, extension: str) -> Tuple[Path, str]:
        """
        Returns (absolute_path, relative_path) for YYYY/MM/DD/<uuid><ext>.
        """
        date_dir = utcnow().strftime("%Y/%m/%d")
        relative_path = f"{date_dir}/{uuid.uuid4()}{extension}"
        return self.storage_root / relative_path, relative_path

    async def store_file(self, content: bytes, extension: str = ".jpg") -> Tuple[str, str]:
        """
        Write content to a fresh path.

        Returns: Tuple of (absolute_path, relative_path).
        Raises:  FileStorageError if directory creation or the write fails.
        """
        absolute_path, relative_path = self._generate_storage_path(extension)

        try:
            absolute_path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(absolute_path, "wb") as f:
                await f.write(content)
        except OSError as e:
            logger.error("Failed to store file at %s: %s", absolute_path, str(e))
            raise FileStorageError(
                message="Failed to save uploaded image. Please try again.",
                context={"path": str(absolute_path), "os_error": str(e)},
            )

        logger.info("File stored: %s (%d bytes)", relative_path, len(content))
        return str(absolute_path), relative_path

    def resolve(self, relative_path: str) -> Path:
        """
        Map a stored relative path to an existing file inside storage_root.

        Raises:
            ValidationError on path traversal attempts
            NotFoundError when the file does not exist
        """
        candidate = (self.storage_root / relative_path).resolve()
        if not candidate.is_relative_to(self.storage_root):
            logger.warning("Path traversal attempt blocked: %s", relative_path)
            raise ValidationError(message="Invalid file path", field="path")
        if not candidate.is_file():
            raise NotFoundError(resource="file", resource_id=relative_path)
        return candidate

    def is_writable(self) -> bool:
        return self.storage_root.is_dir() and os.access(self.storage_root, os.W_OK)

    # ── Cleanup ───────────────────────────────────────────────────────────

    async def cleanup_file(self, file_path: str) -> None:
        """
        Remove one stored file (absolute or storage-relative path).

        Best-effort: a missing file is ignored and other errors are logged,
        because a leftover image is never worth failing a request over.
        """
        path = Path(file_path)
        if not path.is_absolute():
            path = self.storage_root / path
        try:
            if path.exists():
                os.remove(path)
                logger.info("Cleaned up file: %s", path.name)
            else:
                logger.debug("Cleanup: file already gone: %s", path.name)
        except OSError as e:
            logger.warning("Failed to clean up file %s: %s", file_path, str(e))

    async def cleanup_files(self, file_paths: Iterable[str]) -> None:
        for file_path in file_paths:
            await self.cleanup_file(file_path)


# ── Singleton Instance ────────────────────────────────────────────────────
file_service = FileService()
