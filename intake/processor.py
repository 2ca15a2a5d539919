"""
Upload orchestration: the per-file pipeline and the sequential batch driver.

Per file, in order: record id -> location -> validation -> optional PDF
branding -> storage write -> transaction upsert -> notifications -> status.

Only two things stop a file: a validation rejection (nothing is stored or
recorded) and a storage write failure (raised to the batch driver). Every
later step degrades instead of failing; its outcome is reflected in the
record's process_status.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Mapping, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from intake.branding import Brand, BrandDirectory, BrandFeatures, normalize_slug
from intake.config import Settings
from intake.database import TransactionStore
from intake.exif_gps import extract_gps
from intake.ids import generate_unique_id, record_id_for
from intake.location import network_candidate, network_geo_from_headers, parse_candidate, resolve
from intake.notify import NotificationDispatcher, NotificationRequest
from intake.pdf_stamp import brand_pdf
from intake.schema import (
    Coordinates,
    DeliveryOutcome,
    FileKind,
    FileOutcome,
    FileResult,
    LocationEvidence,
    NetworkGeo,
    NotificationOutcome,
    ProcessStatus,
    TransactionRecord,
)
from intake.storage import StorageWriteError, build_storage_key, sanitize_reference, sha256_hex
from intake.validate import content_type_for, extension_for, sniff, validate

logger = logging.getLogger(__name__)

UPSERT_ATTEMPTS = 2
TRUTHY = {"1", "true", "yes", "on"}


@dataclass
class UploadedFile:
    filename: str
    content_type: Optional[str]
    data: bytes


@dataclass
class UploadContext:
    """Form fields and request facts shared by every file of one submission."""
    brand_slug: str
    slug_original: str
    slug_known: bool
    received_at: datetime
    reference: Optional[str] = None
    uploader_email: Optional[str] = None
    issue_flagged: bool = False
    client_coords: Optional[Coordinates] = None
    network_geo: Optional[NetworkGeo] = None

    @property
    def upload_date(self) -> str:
        return self.received_at.strftime("%Y-%m-%d")

    @property
    def upload_time(self) -> str:
        return self.received_at.strftime("%H:%M:%S")

    @property
    def display_date_time(self) -> str:
        return self.received_at.strftime("%Y-%m-%d at %H:%M")


def _zone(*names: Optional[str]) -> ZoneInfo:
    for name in names:
        if not name:
            continue
        try:
            return ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError):
            logger.debug(f"Ignoring unknown timezone {name!r}")
    return ZoneInfo("UTC")


def context_from_form(
    form: Mapping[str, str],
    headers: Mapping[str, str],
    brands: BrandDirectory,
    settings: Settings,
    now: Optional[datetime] = None,
) -> UploadContext:
    """
    Resolve the submission-wide context from raw form fields and request
    headers. Unknown brands fall back to the default brand; the original slug
    is kept for the staff subject line.
    """
    slug_original = normalize_slug(form.get("slug_original") or form.get("brand") or "default")
    slug_known = brands.is_known(slug_original)
    brand_slug = brands.known_slug(slug_original)
    features = brands.features(brand_slug)

    network_geo = network_geo_from_headers(headers)
    tz = _zone(form.get("tz"), network_geo.timezone, settings.default_timezone)
    received_at = (now or datetime.now(timezone.utc)).astimezone(tz)

    client = parse_candidate(
        form.get("lat"),
        form.get("lon"),
        accuracy=form.get("accuracy") or form.get("acc"),
        timestamp=form.get("loc_ts"),
    )
    email = (form.get("email") or "").strip()

    return UploadContext(
        brand_slug=brand_slug,
        slug_original=slug_original or "default",
        slug_known=slug_known,
        received_at=received_at,
        reference=sanitize_reference(form.get("reference")) if features.check_ref else None,
        uploader_email=email if (email and features.check_copy) else None,
        issue_flagged=(form.get("issue") or "").strip().lower() in TRUTHY,
        client_coords=client,
        network_geo=network_geo,
    )


class UploadProcessor:
    """Runs the per-file pipeline against injected collaborators."""

    def __init__(
        self,
        store,
        transactions: TransactionStore,
        dispatcher: NotificationDispatcher,
        brands: BrandDirectory,
        settings: Settings,
    ):
        self.store = store
        self.transactions = transactions
        self.dispatcher = dispatcher
        self.brands = brands
        self.settings = settings

    def resolve_location(self, upload: UploadedFile, ctx: UploadContext) -> LocationEvidence:
        metadata = extract_gps(upload.data, sniff(upload.data))
        return resolve(
            metadata=metadata,
            client=ctx.client_coords,
            network=network_candidate(ctx.network_geo),
            network_context=ctx.network_geo,
        )

    def _brand_content(
        self, content: bytes, kind: FileKind, brand: Brand, features: BrandFeatures, label: str, record_id: str
    ):
        """Best-effort PDF branding; the original bytes are kept when it fails."""
        try:
            branded = brand_pdf(content, kind, brand, features, label)
        except Exception as e:
            logger.warning(f"⚠️ PDF branding failed for {record_id}, storing original: {e}")
            return content, kind
        if branded is None:
            return content, kind
        return branded, FileKind.PDF

    def _upsert(self, record: TransactionRecord) -> bool:
        for attempt in range(1, UPSERT_ATTEMPTS + 1):
            try:
                self.transactions.upsert(record)
                return True
            except Exception as e:
                logger.error(
                    f"❌ Transaction upsert failed for {record.record_id} "
                    f"(attempt {attempt}/{UPSERT_ATTEMPTS}): {e}",
                    exc_info=True,
                )
        return False

    def _object_metadata(self, upload: UploadedFile, ctx: UploadContext, record_id: str, group_id: str) -> dict:
        client = ctx.client_coords
        geo = ctx.network_geo or NetworkGeo()
        return {
            "slug": ctx.brand_slug,
            "slug_original": ctx.slug_original,
            "slug_known": str(ctx.slug_known).lower(),
            "record_id": record_id,
            "group_id": group_id,
            "orig_name": upload.filename or "",
            "orig_type": upload.content_type or "",
            "uploader_email": ctx.uploader_email or "",
            "reference": ctx.reference or "",
            "lat": str(client.lat) if client else "",
            "lon": str(client.lon) if client else "",
            "acc": str(client.accuracy_m) if client and client.accuracy_m is not None else "",
            "loc_ts": (client.timestamp or "") if client else "",
            "ip_lat": geo.lat or "",
            "ip_lon": geo.lon or "",
            "ip_city": geo.city or "",
            "ip_region": geo.region or "",
            "ip_country": geo.country or "",
        }

    def process_one_file(
        self,
        upload: UploadedFile,
        ctx: UploadContext,
        group_id: str,
        index: int = 1,
        total: int = 1,
    ) -> FileResult:
        """
        Run the full pipeline for one file.

        Raises:
            StorageWriteError: the file could not be stored; no transaction
                record is written for it.
        """
        record_id = record_id_for(group_id, index, total)
        base = {"filename": upload.filename, "index": index, "record_id": record_id, "group_id": group_id}

        evidence = self.resolve_location(upload, ctx)

        validation = validate(upload.data, upload.content_type, upload.filename)
        if not validation.ok:
            logger.info(f"🚫 Rejected {upload.filename!r} ({record_id}): {validation.reason.value}")
            return FileResult(**base, outcome=FileOutcome.REJECTED, reason=validation.reason,
                              presented_label=evidence.source_tag)

        brand = self.brands.resolve(ctx.brand_slug)
        features = self.brands.features(ctx.brand_slug)
        footer = f"Podfy-id: {record_id} | {ctx.display_date_time} | {evidence.source_tag.value}"
        content, kind = self._brand_content(upload.data, validation.kind, brand, features, footer, record_id)

        key = build_storage_key(
            brand.slug, ctx.received_at, record_id, extension_for(kind, upload.filename), ctx.reference
        )
        checksum = sha256_hex(content)
        logger.info(f"⬆️ Storing {upload.filename!r} as {key}")
        self.store.put(key, content, content_type_for(kind), self._object_metadata(upload, ctx, record_id, group_id))

        status = ProcessStatus.ISSUE_REPORTED if ctx.issue_flagged else ProcessStatus.RECEIVED
        record = TransactionRecord(
            record_id=record_id,
            group_id=group_id,
            brand_slug=brand.slug,
            upload_date=ctx.upload_date,
            upload_time=ctx.upload_time,
            reference=ctx.reference,
            location_evidence=evidence,
            presented_label=evidence.source_tag,
            storage_key=key,
            file_checksum=checksum,
            process_status=status,
        )
        logger.info(f"💾 Recording transaction {record_id}")
        recorded = self._upsert(record)
        if not recorded:
            status = ProcessStatus.ERROR_D1
            self.transactions.set_status(record_id, status)

        try:
            notifications = self.dispatcher.dispatch(NotificationRequest(
                record_id=record_id,
                brand=brand,
                features=features,
                slug_original=ctx.slug_original,
                slug_known=ctx.slug_known,
                date_time=ctx.display_date_time,
                evidence=evidence,
                file_name=key.rsplit("/", 1)[-1],
                content=content,
                reference=ctx.reference,
                uploader_email=ctx.uploader_email,
            ))
        except Exception as e:
            logger.error(f"❌ Notification dispatch crashed for {record_id}: {e}", exc_info=True)
            notifications = NotificationOutcome(
                staff=DeliveryOutcome.FAILED,
                uploader=DeliveryOutcome.FAILED if ctx.uploader_email else DeliveryOutcome.NOT_REQUIRED,
            )
            status = ProcessStatus.ERROR
            self.transactions.set_status(record_id, status)

        if notifications.staff == DeliveryOutcome.FAILED and status != ProcessStatus.ERROR:
            status = ProcessStatus.ERROR_STAFF_MAIL
            self.transactions.set_status(record_id, status)
        if notifications.uploader == DeliveryOutcome.FAILED and status != ProcessStatus.ERROR:
            status = ProcessStatus.ERROR_USER_MAIL
            self.transactions.set_status(record_id, status)
        if notifications.uploader == DeliveryOutcome.SENT:
            self.transactions.mark_driver_copy_sent(record_id)

        should_be_delivered = (
            recorded
            and not ctx.issue_flagged
            and notifications.staff_satisfied
            and notifications.uploader_satisfied
        )
        if should_be_delivered and self.transactions.finalize(record_id, True):
            status = ProcessStatus.DELIVERED

        logger.info(f"✅ Finished {record_id}: status={status.value}")
        return FileResult(
            **base,
            outcome=FileOutcome.STORED,
            storage_key=key,
            presented_label=evidence.source_tag,
            process_status=status,
            notifications=notifications,
        )

    def new_group_id(self) -> str:
        return generate_unique_id(self.transactions.record_exists, attempts=self.settings.id_attempts)

    def process_batch(self, uploads: List[UploadedFile], ctx: UploadContext) -> List[FileResult]:
        """
        Process files one after another under one group id. A file whose
        storage write fails is reported as FAILED and the batch moves on.
        """
        group_id = self.new_group_id()
        total = len(uploads)
        logger.info(f"📄 Submission {group_id}: {total} file(s) for brand {ctx.brand_slug}")
        results = []
        for index, upload in enumerate(uploads, start=1):
            try:
                results.append(self.process_one_file(upload, ctx, group_id, index, total))
            except StorageWriteError as e:
                logger.error(f"❌ Storage failed for {upload.filename!r} in {group_id}: {e}")
                results.append(FileResult(
                    filename=upload.filename,
                    index=index,
                    record_id=record_id_for(group_id, index, total),
                    group_id=group_id,
                    outcome=FileOutcome.FAILED,
                    error="storage_failed",
                ))
        return results
