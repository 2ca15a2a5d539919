"""
Brand directory: per-customer theme, recipients and feature flags.

Loaded once from a themes JSON document (the same shape the upload page
consumes) and passed to the pipeline as a read-only dependency.
"""

import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

logger = logging.getLogger(__name__)

DEFAULT_SLUG = "default"
DEFAULT_COLOR = "#D3D3D3"
DEFAULT_LOGO = "/logos/podfy.png"

FEATURE_FLAGS = (
    "check_gps",
    "check_copy",
    "check_clean",
    "check_ref",
    "check_funct_5",
    "check_funct_6",
    "mail_notification",
    "multi_file",
    "pdf_header",
    "pdf_footer",
    "funct_11",
    "funct_12",
)


class Brand(BaseModel):
    slug: str
    display_name: str
    color: str = DEFAULT_COLOR
    logo: str = DEFAULT_LOGO
    recipients: List[str] = []


class BrandFeatures(BaseModel):
    """
    Per-brand switches. Unknown or unset flags are on.

    The numbered flags are reserved slots with no server-side behaviour;
    they are passed through so the upload page sees every switch.
    """
    check_gps: bool = True
    check_copy: bool = True
    check_clean: bool = True
    check_ref: bool = True
    check_funct_5: bool = True
    check_funct_6: bool = True
    mail_notification: bool = True
    multi_file: bool = True
    pdf_header: bool = True
    pdf_footer: bool = True
    funct_11: bool = True
    funct_12: bool = True


def normalize_slug(raw: Optional[str]) -> str:
    """Lowercase and strip everything but a-z, 0-9 and '-'."""
    return re.sub(r"[^a-z0-9-]", "", str(raw or "").lower())


def _flag(value: Any) -> bool:
    # Keep an explicit 0/false off; anything missing or odd defaults to on
    if value in (0, False, "0"):
        return False
    return True


def _recipients(value: Any) -> List[str]:
    if not value:
        return []
    if isinstance(value, str):
        value = value.split(",")
    return [addr.strip() for addr in value if addr and addr.strip()]


class BrandDirectory:
    def __init__(self, themes: Dict[str, Dict[str, Any]], default_mail_to: str = ""):
        self._themes = themes or {}
        self._default_mail_to = default_mail_to

    @classmethod
    def from_json(cls, path: str, default_mail_to: str = "") -> "BrandDirectory":
        with open(Path(path), "r", encoding="utf-8") as f:
            themes = json.load(f)
        logger.info(f"🎨 Loaded {len(themes)} brand theme(s) from {path}")
        return cls(themes, default_mail_to=default_mail_to)

    def is_known(self, slug: str) -> bool:
        return bool(slug) and slug in self._themes

    def known_slug(self, slug: str) -> str:
        """The slug itself when known, else the default sentinel."""
        return slug if self.is_known(slug) else DEFAULT_SLUG

    def _theme(self, slug: str) -> Dict[str, Any]:
        return self._themes.get(slug) or self._themes.get(DEFAULT_SLUG) or {}

    def resolve(self, slug: str) -> Brand:
        theme = self._theme(slug)
        default = self._themes.get(DEFAULT_SLUG) or {}
        recipients = (
            _recipients(theme.get("mailTo"))
            or _recipients(default.get("mailTo"))
            or _recipients(self._default_mail_to)
        )
        return Brand(
            slug=self.known_slug(slug),
            display_name=theme.get("brandName") or default.get("brandName") or "PODFY",
            color=(theme.get("header") or {}).get("bg")
            or (theme.get("colors") or {}).get("primary")
            or (default.get("header") or {}).get("bg")
            or DEFAULT_COLOR,
            logo=theme.get("logo") or default.get("logo") or DEFAULT_LOGO,
            recipients=recipients,
        )

    def features(self, slug: str) -> BrandFeatures:
        flags = self._themes.get(slug, {}).get("features") or {}
        return BrandFeatures(**{name: _flag(flags.get(name)) for name in FEATURE_FLAGS})

    def theme_payload(self, slug: str) -> Optional[Dict[str, Any]]:
        """Public theme document for one slug (no recipients), or None."""
        theme = self._themes.get(slug)
        if theme is None:
            return None
        return {
            "brandName": theme.get("brandName"),
            "logo": theme.get("logo"),
            "colors": theme.get("colors") or {},
            "header": theme.get("header") or {},
            "favicon": theme.get("favicon"),
            "status": theme.get("status"),
        }

    def themes_payload(self) -> Dict[str, Dict[str, Any]]:
        return {slug: self.theme_payload(slug) for slug in sorted(self._themes)}
