"""
File attachments for outbound messages.

Files are checked against a size limit and an allow-list of MIME types,
falling back to the file extension when the MIME type is unknown, then
base64-encoded into ``InlineData`` parts.
"""

from __future__ import annotations

import base64
import mimetypes
from dataclasses import dataclass
from pathlib import Path

from adkchat.errors import AttachmentError
from adkchat.types import InlineData

MAX_ATTACHMENT_BYTES = 20 * 1024 * 1024

SUPPORTED_MIME_TYPES = frozenset({
    # Images
    "image/jpeg", "image/jpg", "image/png", "image/gif", "image/webp",
    "image/svg+xml", "image/bmp", "image/tiff", "image/heic", "image/heif",
    # Documents
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "text/csv", "application/csv",
    "application/vnd.ms-powerpoint",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    "application/vnd.oasis.opendocument.presentation",
    "application/vnd.oasis.opendocument.text",
    "application/vnd.oasis.opendocument.spreadsheet",
    "application/vnd.oasis.opendocument.graphics",
    "application/rtf", "text/rtf", "text/richtext",
    # Text and data
    "text/plain", "text/markdown", "text/xml", "application/xml",
    "text/yaml", "application/yaml", "text/x-yaml", "application/x-yaml",
    "application/json", "application/ld+json", "text/tab-separated-values",
    "application/vnd.ms-access", "application/toml", "text/x-ini",
    "text/x-properties",
    # Archives
    "application/zip", "application/x-rar-compressed",
    "application/x-7z-compressed", "application/gzip", "application/x-tar",
    # eBooks
    "application/epub+zip", "application/x-mobipocket-ebook",
    "application/vnd.amazon.ebook",
    # Code
    "text/html", "text/css", "text/javascript", "application/javascript",
    "text/typescript", "application/typescript", "text/jsx", "text/tsx",
    "text/x-python", "application/x-python-code", "text/x-java-source",
    "text/x-csharp", "text/x-php", "text/x-ruby", "text/x-go", "text/x-rust",
    "text/x-kotlin", "text/x-swift", "text/x-c", "text/x-c++", "text/x-c#",
    "text/x-objective-c", "text/x-shellscript", "application/x-sh",
    # Audio
    "audio/mpeg", "audio/mp3", "audio/wav", "audio/wave", "audio/x-wav",
    "audio/mp4", "audio/m4a", "audio/aac", "audio/ogg", "audio/opus",
    "audio/flac", "audio/webm",
    # Video
    "video/mp4", "video/webm", "video/ogg", "video/quicktime", "video/x-msvideo",
})

SUPPORTED_EXTENSIONS = frozenset({
    "jpg", "jpeg", "png", "gif", "webp", "svg", "bmp", "tiff", "heic", "heif",
    "pdf", "doc", "docx", "odt", "rtf",
    "xls", "xlsx", "ods", "csv", "tsv",
    "ppt", "pptx", "odp",
    "txt", "md", "markdown", "xml", "yaml", "yml", "json", "toml", "ini",
    "html", "css", "js", "jsx", "ts", "tsx", "py", "java", "c", "cpp", "h",
    "hpp", "cs", "php", "rb", "go", "rs", "kt", "swift", "sh", "bash",
    "mp3", "wav", "ogg", "opus", "flac", "m4a", "aac", "webm",
    "mp4", "mov", "avi",
    "zip", "rar", "7z", "tar", "gz",
    "epub", "mobi", "azw", "azw3",
})


@dataclass(frozen=True)
class AttachmentCheck:
    valid: bool
    error: str | None = None


def guess_mime_type(path: Path) -> str:
    mime, _ = mimetypes.guess_type(path.name)
    return mime or ""


def validate_file(path: str | Path, max_bytes: int = MAX_ATTACHMENT_BYTES) -> AttachmentCheck:
    """Check whether *path* can be attached to a message."""
    p = Path(path).expanduser()
    if not p.is_file():
        return AttachmentCheck(False, f"File not found: {p}")

    if p.stat().st_size > max_bytes:
        limit_mb = max_bytes // (1024 * 1024)
        return AttachmentCheck(False, f"File size must be less than {limit_mb}MB")

    mime = guess_mime_type(p)
    if mime in SUPPORTED_MIME_TYPES:
        return AttachmentCheck(True)

    extension = p.suffix.lower().lstrip(".")
    if extension and extension in SUPPORTED_EXTENSIONS:
        return AttachmentCheck(True)

    ext_label = f".{extension}" if extension else "no extension"
    return AttachmentCheck(
        False, f'File type "{mime or "unknown"}" ({ext_label}) is not supported'
    )


def encode_file(path: str | Path, max_bytes: int = MAX_ATTACHMENT_BYTES) -> InlineData:
    """
    Validate and base64-encode *path*.

    Raises ``AttachmentError`` if the file cannot be attached.
    """
    p = Path(path).expanduser()
    check = validate_file(p, max_bytes)
    if not check.valid:
        raise AttachmentError(check.error or f"Cannot attach {p}")

    try:
        data = p.read_bytes()
    except OSError as exc:
        raise AttachmentError(f"Failed to read file: {p.name}") from exc

    return InlineData(
        display_name=p.name,
        data=base64.b64encode(data).decode("ascii"),
        mime_type=guess_mime_type(p) or "application/octet-stream",
    )
