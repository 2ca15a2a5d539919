"""
Runtime settings for the intake service.

Everything is read from environment variables (a local `.env` is loaded by
the Flask app before this runs). Defaults are suitable for local development.
"""

import os
from dataclasses import dataclass
from pathlib import Path

# Hard upload limit enforced by the validator; the HTTP layer allows a bit more
# so a multi-file request is not cut off before per-file validation.
MAX_UPLOAD_BYTES = 25 * 1024 * 1024

PACKAGE_DIR = Path(__file__).resolve().parent


def _default_db_path() -> str:
    # In Docker, keep the database under /app/data; locally, in the working dir
    if os.path.exists("/app"):
        return "/app/data/podfy.db"
    return os.path.join(os.getcwd(), "podfy.db")


@dataclass(frozen=True)
class Settings:
    """Service configuration."""

    db_path: str
    storage_backend: str = "local"
    storage_dir: str = "uploads"
    bucket_name: str = "podfy-pods"
    themes_path: str = str(PACKAGE_DIR / "themes.json")
    mail_domain: str = "podfy.app"
    mail_from: str = ""
    reply_to: str = "support@podfy.net"
    default_mail_to: str = ""
    public_base_url: str = ""
    default_timezone: str = "Europe/Amsterdam"
    id_attempts: int = 6

    @classmethod
    def from_env(cls) -> "Settings":
        env = os.environ
        return cls(
            db_path=env.get("PODFY_DB_PATH") or _default_db_path(),
            storage_backend=(env.get("PODFY_STORAGE") or "local").strip().lower(),
            storage_dir=env.get("PODFY_STORAGE_DIR") or "uploads",
            bucket_name=env.get("PODFY_BUCKET") or "podfy-pods",
            themes_path=env.get("PODFY_THEMES_PATH") or str(PACKAGE_DIR / "themes.json"),
            mail_domain=env.get("MAIL_DOMAIN") or "podfy.app",
            mail_from=env.get("MAIL_FROM") or "",
            reply_to=env.get("REPLY_TO_EMAIL") or "support@podfy.net",
            default_mail_to=env.get("MAIL_TO") or "",
            public_base_url=env.get("PUBLIC_BASE_URL") or "",
            default_timezone=env.get("PODFY_TIMEZONE") or "Europe/Amsterdam",
            id_attempts=int(env.get("PODFY_ID_ATTEMPTS") or 6),
        )
