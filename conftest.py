"""Pytest hooks and shared fixtures for the intake service. Remind to configure mail delivery."""

import io
import os
import struct
import zlib
from datetime import datetime, timezone

import pytest
from PIL import ExifTags, Image
from PIL.TiffImagePlugin import IFDRational

from intake.branding import BrandDirectory
from intake.config import Settings
from intake.database import TransactionStore
from intake.notify import NotificationDispatcher
from intake.processor import UploadContext, UploadProcessor, UploadedFile
from intake.storage import LocalObjectStore

PDF_BYTES = b"%PDF-1.4\n%\xe2\xe3\xcf\xd3\n1 0 obj\n<<>>\nendobj\ntrailer\n<<>>\n%%EOF\n"
JPEG_BYTES = b"\xff\xd8\xff\xe0\x00\x10JFIF\x00\x01\x01\x00\x00\x01\x00\x01\x00\x00" + b"\x00" * 64 + b"\xff\xd9"


def make_jpeg(gps=None, size=(64, 48)):
    """A real JPEG, optionally carrying a GPS IFD (tag number -> value)."""
    exif = Image.Exif()
    if gps:
        exif[ExifTags.IFD.GPSInfo] = gps
    buf = io.BytesIO()
    Image.new("RGB", size, (30, 120, 200)).save(buf, format="JPEG", exif=exif.tobytes())
    return buf.getvalue()


def dms(degrees, minutes, seconds):
    return (IFDRational(degrees), IFDRational(minutes), IFDRational(seconds))


def png_header_only(width, height):
    """A tiny PNG whose IHDR declares `width` x `height` pixels."""
    def chunk(kind, payload):
        body = kind + payload
        return struct.pack(">I", len(payload)) + body + struct.pack(">I", zlib.crc32(body) & 0xFFFFFFFF)

    ihdr = struct.pack(">IIBBBBB", width, height, 8, 2, 0, 0, 0)
    return (
        b"\x89PNG\r\n\x1a\n"
        + chunk(b"IHDR", ihdr)
        + chunk(b"IDAT", zlib.compress(b"\x00" * 16))
        + chunk(b"IEND", b"")
    )


THEMES = {
    "default": {
        "brandName": "PODFY",
        "header": {"bg": "#D3D3D3"},
        "mailTo": "",
        "features": {"pdf_header": 0, "pdf_footer": 0},
    },
    "acme": {
        "brandName": "ACME Logistics",
        "logo": "/logos/acme.png",
        "header": {"bg": "#B91C1C"},
        "mailTo": "pods@acme.example, ops@acme.example",
        "features": {"pdf_header": 0, "pdf_footer": 0},
    },
    "quiet": {
        "brandName": "Quiet Freight",
        "mailTo": "inbox@quiet.example",
        "features": {"mail_notification": 0, "multi_file": 0, "pdf_header": 0, "pdf_footer": 0},
    },
}


def pytest_configure(config):
    """Tests never send mail; remind that a real run needs RESEND_API_KEY or SMTP_HOST."""
    if not (os.environ.get("RESEND_API_KEY") or os.environ.get("SMTP_HOST")):
        print(
            "\nTip: mail delivery is not configured in this session. Tests use a fake mailer; "
            "for the dev server export RESEND_API_KEY=... or SMTP_HOST=... (see .env)\n",
            end="",
        )


class FakeMailer:
    """Records every message; `results` maps a recipient to the bool to return."""

    def __init__(self, default=True):
        self.default = default
        self.results = {}
        self.sent = []

    def __call__(self, from_address, to_list, subject, html_body, attachment=None, reply_to=None):
        self.sent.append({
            "from_address": from_address,
            "to_list": list(to_list),
            "subject": subject,
            "html_body": html_body,
            "attachment": attachment,
            "reply_to": reply_to,
        })
        result = self.results.get(to_list[0], self.default)
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture
def settings(tmp_path):
    return Settings(
        db_path=str(tmp_path / "podfy.db"),
        storage_dir=str(tmp_path / "uploads"),
        mail_domain="podfy.test",
        default_timezone="Europe/Amsterdam",
    )


@pytest.fixture
def brands():
    return BrandDirectory(THEMES)


@pytest.fixture
def transactions(settings):
    return TransactionStore(settings.db_path)


@pytest.fixture
def store(settings):
    return LocalObjectStore(settings.storage_dir)


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def processor(settings, brands, transactions, store, mailer):
    return UploadProcessor(
        store=store,
        transactions=transactions,
        dispatcher=NotificationDispatcher(settings, mailer=mailer),
        brands=brands,
        settings=settings,
    )


@pytest.fixture
def make_context():
    def _make(**overrides):
        values = {
            "brand_slug": "acme",
            "slug_original": "acme",
            "slug_known": True,
            "received_at": datetime(2025, 9, 4, 9, 15, 30, tzinfo=timezone.utc),
        }
        values.update(overrides)
        return UploadContext(**values)
    return _make


@pytest.fixture
def pdf_upload():
    return UploadedFile(filename="pod.pdf", content_type="application/pdf", data=PDF_BYTES)
