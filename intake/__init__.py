"""
Intake package exports.

The processor is built from its collaborators here so the Flask app and
scripts wire things up the same way.
"""

from intake.branding import BrandDirectory
from intake.config import Settings
from intake.database import TransactionStore
from intake.notify import NotificationDispatcher
from intake.processor import UploadProcessor, UploadedFile, context_from_form
from intake.storage import create_object_store
from utils.email_notification import send_mail


def build_processor(settings: Settings, mailer=send_mail, store=None) -> UploadProcessor:
    """Wire an UploadProcessor from settings; `mailer` and `store` can be swapped in tests."""
    brands = BrandDirectory.from_json(settings.themes_path, default_mail_to=settings.default_mail_to)
    return UploadProcessor(
        store=store or create_object_store(settings),
        transactions=TransactionStore(settings.db_path),
        dispatcher=NotificationDispatcher(settings, mailer=mailer),
        brands=brands,
        settings=settings,
    )


__all__ = ["build_processor", "UploadProcessor", "UploadedFile", "context_from_form", "Settings"]
