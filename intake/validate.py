"""
Upload validation: confirm the content really is an allowed file family by
sniffing its leading bytes, independent of what the client declared.
"""

from pathlib import Path
from typing import Optional

from intake.config import MAX_UPLOAD_BYTES
from intake.schema import FileKind, RejectReason, ValidationResult

PDF_MAGIC = b"%PDF"
JPEG_SOI = b"\xff\xd8\xff"
PNG_MAGIC = b"\x89PNG\r\n\x1a\n"
HEIF_BRANDS = {
    b"heic", b"heix", b"hevc", b"hevx", b"heim",
    b"heis", b"hevm", b"hevs", b"mif1", b"msf1",
}

# Enough for every signature above
SNIFF_BYTES = 16

ALLOWED_CONTENT_TYPES = {
    "application/pdf",
    "image/jpeg",
    "image/jpg",
    "image/pjpeg",
    "image/png",
    "image/webp",
    "image/heic",
    "image/heif",
}
ALLOWED_EXTENSIONS = {"pdf", "jpg", "jpeg", "png", "webp", "heic", "heif"}

CONTENT_TYPES = {
    FileKind.PDF: "application/pdf",
    FileKind.JPG: "image/jpeg",
    FileKind.PNG: "image/png",
    FileKind.WEBP: "image/webp",
    FileKind.HEIC: "image/heic",
}


def sniff(leading: bytes) -> FileKind:
    """Identify the file family from its first bytes."""
    head = bytes(leading[:SNIFF_BYTES])
    if head.startswith(PDF_MAGIC):
        return FileKind.PDF
    if head.startswith(JPEG_SOI):
        return FileKind.JPG
    if head.startswith(PNG_MAGIC):
        return FileKind.PNG
    if len(head) >= 12 and head[:4] == b"RIFF" and head[8:12] == b"WEBP":
        return FileKind.WEBP
    if len(head) >= 12 and head[4:8] == b"ftyp" and head[8:12] in HEIF_BRANDS:
        return FileKind.HEIC
    return FileKind.UNKNOWN


def _extension(filename: Optional[str]) -> str:
    return Path(filename or "").suffix.lower().lstrip(".")


def _base_content_type(content_type: Optional[str]) -> str:
    # "image/jpeg; charset=binary" -> "image/jpeg"
    return (content_type or "").split(";", 1)[0].strip().lower()


def validate(data: bytes, content_type: Optional[str], filename: Optional[str]) -> ValidationResult:
    """
    Accept the upload only if its bytes match a known family AND either the
    declared MIME type or the filename extension is allow-listed.

    Never raises; the rejection reason tells the caller which response to give.
    """
    if not data:
        return ValidationResult(ok=False, reason=RejectReason.EMPTY)
    if len(data) > MAX_UPLOAD_BYTES:
        return ValidationResult(ok=False, reason=RejectReason.TOO_LARGE)

    kind = sniff(data[:SNIFF_BYTES])
    if kind == FileKind.UNKNOWN:
        return ValidationResult(ok=False, reason=RejectReason.UNSUPPORTED)

    declared_ok = (
        _base_content_type(content_type) in ALLOWED_CONTENT_TYPES
        or _extension(filename) in ALLOWED_EXTENSIONS
    )
    if not declared_ok:
        return ValidationResult(ok=False, kind=kind, reason=RejectReason.UNSUPPORTED)

    return ValidationResult(ok=True, kind=kind)


def content_type_for(kind: FileKind) -> str:
    return CONTENT_TYPES.get(kind, "application/octet-stream")


def extension_for(kind: FileKind, filename: Optional[str] = None) -> str:
    """Stored extension: the sniffed family, keeping `jpeg`/`heif` spellings from the filename."""
    ext = _extension(filename)
    if kind == FileKind.JPG and ext in ("jpg", "jpeg"):
        return ext
    if kind == FileKind.HEIC and ext in ("heic", "heif"):
        return ext
    if kind == FileKind.UNKNOWN:
        return "bin"
    return kind.value
