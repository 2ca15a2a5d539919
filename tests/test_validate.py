"""
Unit tests for upload validation (byte sniffing plus declared-type checks).
"""

import pytest

from intake.config import MAX_UPLOAD_BYTES
from intake.schema import FileKind, RejectReason
from intake.validate import content_type_for, extension_for, sniff, validate

PDF = b"%PDF-1.7\n..."
JPEG = b"\xff\xd8\xff\xe1" + b"\x00" * 20
PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 20
WEBP = b"RIFF\x24\x00\x00\x00WEBPVP8 " + b"\x00" * 8
HEIC = b"\x00\x00\x00\x18ftypheic" + b"\x00" * 12


@pytest.mark.parametrize("data,kind", [
    (PDF, FileKind.PDF),
    (JPEG, FileKind.JPG),
    (PNG, FileKind.PNG),
    (WEBP, FileKind.WEBP),
    (HEIC, FileKind.HEIC),
    (b"\x00\x00\x00\x18ftypmif1" + b"\x00" * 4, FileKind.HEIC),
    (b"GIF89a" + b"\x00" * 10, FileKind.UNKNOWN),
    (b"RIFF\x24\x00\x00\x00WAVE", FileKind.UNKNOWN),
    (b"%PD", FileKind.UNKNOWN),
])
def test_sniff(data, kind):
    assert sniff(data) == kind


def test_pdf_accepted_despite_wrong_mime_when_extension_allowed():
    result = validate(PDF, "application/octet-stream", "scan.pdf")
    assert result.ok
    assert result.kind == FileKind.PDF


def test_accepted_by_mime_without_extension():
    result = validate(JPEG, "image/jpeg; charset=binary", "blob")
    assert result.ok
    assert result.kind == FileKind.JPG


def test_unknown_bytes_rejected_even_with_allowed_mime():
    result = validate(b"hello world, not a pdf", "application/pdf", "fake.pdf")
    assert not result.ok
    assert result.reason == RejectReason.UNSUPPORTED
    assert result.reason.http_status == 415


def test_neither_mime_nor_extension_allowed():
    result = validate(PNG, "application/octet-stream", "image.bin")
    assert not result.ok
    assert result.kind == FileKind.PNG
    assert result.reason == RejectReason.UNSUPPORTED


def test_empty_rejected():
    result = validate(b"", "application/pdf", "empty.pdf")
    assert result.reason == RejectReason.EMPTY
    assert result.reason.http_status == 400


def test_too_large_rejected():
    data = PDF + b"\x00" * MAX_UPLOAD_BYTES
    result = validate(data, "application/pdf", "big.pdf")
    assert result.reason == RejectReason.TOO_LARGE
    assert result.reason.http_status == 413


def test_exactly_max_size_accepted():
    data = PDF + b"\x00" * (MAX_UPLOAD_BYTES - len(PDF))
    assert validate(data, "application/pdf", "max.pdf").ok


def test_extension_and_content_type_for_stored_object():
    assert extension_for(FileKind.JPG, "IMG_0001.JPEG") == "jpeg"
    assert extension_for(FileKind.JPG, "photo.png") == "jpg"
    assert extension_for(FileKind.HEIC, "x.heif") == "heif"
    assert extension_for(FileKind.PDF, None) == "pdf"
    assert content_type_for(FileKind.WEBP) == "image/webp"
    assert content_type_for(FileKind.UNKNOWN) == "application/octet-stream"
