"""
Notification dispatch: staff inbox and uploader copy, each reported
independently. Nothing here raises; every failure becomes a FAILED outcome.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from intake.branding import Brand, BrandFeatures
from intake.config import Settings
from intake.schema import DeliveryOutcome, LocationEvidence, NotificationOutcome
from utils.email_notification import build_pod_html, pick_from_address, send_mail

logger = logging.getLogger(__name__)

UPLOADER_SUBJECT = "Copy of your uploaded POD/CMR"
UPLOADER_INTRO = "Thank you. Your POD has been received, a copy is attached."


@dataclass
class NotificationRequest:
    """What one file's notifications need to know."""
    record_id: str
    brand: Brand
    features: BrandFeatures
    slug_original: str
    slug_known: bool
    date_time: str
    evidence: LocationEvidence
    file_name: str
    content: bytes
    reference: Optional[str] = None
    uploader_email: Optional[str] = None


class NotificationDispatcher:
    def __init__(self, settings: Settings, mailer: Callable[..., bool] = send_mail):
        self.settings = settings
        self.mailer = mailer

    def _html(self, req: NotificationRequest, intro: Optional[str] = None) -> str:
        chosen = req.evidence.chosen
        kwargs = {}
        if intro:
            kwargs["intro"] = intro
        return build_pod_html(
            brand_name=req.brand.display_name,
            brand_color=req.brand.color,
            logo=req.brand.logo,
            podfy_id=req.record_id,
            date_time=req.date_time,
            location_qualifier=req.evidence.source_tag.value,
            lat=chosen.lat if chosen else None,
            lon=chosen.lon if chosen else None,
            location_code=req.evidence.location_code,
            reference=req.reference,
            file_name=req.file_name,
            image_base=self.settings.public_base_url,
            support_email=self.settings.reply_to,
            **kwargs,
        )

    def _send(self, group: str, **message) -> DeliveryOutcome:
        try:
            sent = self.mailer(**message)
        except Exception as e:
            # Malformed input or an unexpected transport error: report, don't raise
            logger.error(f"❌ {group} notification raised: {e}", exc_info=True)
            return DeliveryOutcome.FAILED
        return DeliveryOutcome.SENT if sent else DeliveryOutcome.FAILED

    def staff_subject(self, req: NotificationRequest) -> str:
        subject = f"[PODFY] {req.brand.slug.upper()} {req.date_time} ({req.record_id})"
        if req.reference:
            subject += f" {req.reference}"
        if not req.slug_known:
            subject += f" [UNKNOWN:{req.slug_original}]"
        return subject

    def dispatch(self, req: NotificationRequest) -> NotificationOutcome:
        """Send the staff notification and the uploader copy, independently."""
        outcome = NotificationOutcome()
        from_address = self.settings.mail_from or pick_from_address(req.brand.slug, self.settings.mail_domain)
        attachment = {"filename": req.file_name, "content": req.content}

        if req.features.mail_notification and req.brand.recipients:
            logger.info(f"📧 Notifying staff for {req.record_id}: {req.brand.recipients}")
            outcome.staff = self._send(
                "Staff",
                from_address=from_address,
                to_list=req.brand.recipients,
                subject=self.staff_subject(req),
                html_body=self._html(req),
                attachment=attachment,
                reply_to=self.settings.reply_to,
            )
        else:
            logger.info(f"📭 No staff notification required for {req.record_id}")

        if req.uploader_email:
            logger.info(f"📧 Sending uploader copy for {req.record_id}")
            outcome.uploader = self._send(
                "Uploader",
                from_address=from_address,
                to_list=[req.uploader_email],
                subject=UPLOADER_SUBJECT,
                html_body=self._html(req, intro=UPLOADER_INTRO),
                attachment=attachment,
                reply_to=(req.brand.recipients or [self.settings.reply_to])[0],
            )

        return outcome
