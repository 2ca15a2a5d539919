"""
Data models for proof-of-delivery uploads.
Uses Pydantic for validation and type safety.
"""

from enum import Enum
from typing import Optional, Dict, Any
from pydantic import BaseModel, Field


class FileKind(str, Enum):
    """True file family, determined from leading bytes."""
    PDF = "pdf"
    JPG = "jpg"
    PNG = "png"
    WEBP = "webp"
    HEIC = "heic"
    UNKNOWN = "unknown"


class RejectReason(str, Enum):
    """Why an uploaded file was refused before anything was stored."""
    EMPTY = "empty"
    TOO_LARGE = "too_large"
    UNSUPPORTED = "unsupported"

    @property
    def http_status(self) -> int:
        return {"empty": 400, "too_large": 413, "unsupported": 415}[self.value]


class SourceTag(str, Enum):
    """Where the chosen coordinate came from, highest trust first."""
    EXIF = "EXIF"        # capture-time GPS embedded in the file
    GPS = "GPS"          # browser geolocation
    IP = "IP"            # coarse network/CDN geolocation
    UNKNOWN = "UNKNOWN"


class ProcessStatus(str, Enum):
    """
    Per-file processing status. Error states record the most recent failure
    class only (last error wins); `delivered` is terminal.
    """
    RECEIVED = "received"
    ISSUE_REPORTED = "issue_reported"
    ERROR_D1 = "error_d1"                  # transaction row could not be written
    ERROR_STAFF_MAIL = "error_staff_mail"
    ERROR_USER_MAIL = "error_user_mail"
    ERROR = "error"
    DELIVERED = "delivered"


class Coordinates(BaseModel):
    """
    One location candidate. An absent candidate is `None`, never a
    Coordinates with blank fields; `accuracy_m=None` means the source
    reported no accuracy at all.
    """
    lat: float
    lon: float
    accuracy_m: Optional[float] = None
    timestamp: Optional[str] = None


class ChosenLocation(BaseModel):
    lat: float
    lon: float
    accuracy_m: Optional[float] = None
    source_tag: SourceTag


class NetworkGeo(BaseModel):
    """Coarse geolocation supplied by the edge for the requesting IP."""
    lat: Optional[str] = None
    lon: Optional[str] = None
    city: Optional[str] = None
    region: Optional[str] = None
    country: Optional[str] = None
    postal_code: Optional[str] = None
    timezone: Optional[str] = None


class LocationEvidence(BaseModel):
    """All candidate sources kept for audit, plus the single chosen one."""
    from_metadata: Optional[Coordinates] = None
    from_client: Optional[Coordinates] = None
    from_network: Optional[Coordinates] = None
    chosen: Optional[ChosenLocation] = None
    network_context: Optional[NetworkGeo] = None

    @property
    def source_tag(self) -> SourceTag:
        return self.chosen.source_tag if self.chosen else SourceTag.UNKNOWN

    @property
    def location_code(self) -> str:
        """Short COUNTRY-POSTAL label from the network context, if any."""
        ctx = self.network_context
        if not ctx or not ctx.country:
            return ""
        return f"{ctx.country}-{ctx.postal_code}" if ctx.postal_code else ctx.country


class ValidationResult(BaseModel):
    ok: bool
    kind: FileKind = FileKind.UNKNOWN
    reason: Optional[RejectReason] = None


class TransactionRecord(BaseModel):
    """
    Durable record for one processed file. `created_at` is owned by the
    store: it is stamped on first insert and preserved across upserts.
    """
    record_id: str
    group_id: str
    brand_slug: str = "default"
    upload_date: str
    upload_time: str
    reference: Optional[str] = None
    location_evidence: LocationEvidence = Field(default_factory=LocationEvidence)
    presented_label: SourceTag = SourceTag.UNKNOWN
    storage_key: str
    file_checksum: str
    process_status: ProcessStatus = ProcessStatus.RECEIVED
    driver_copy_sent: bool = False
    created_at: Optional[str] = None


class FileOutcome(str, Enum):
    STORED = "stored"
    REJECTED = "rejected"
    FAILED = "failed"


class DeliveryOutcome(str, Enum):
    """Result of one notification group."""
    SENT = "sent"
    FAILED = "failed"
    NOT_REQUIRED = "not_required"


class NotificationOutcome(BaseModel):
    staff: DeliveryOutcome = DeliveryOutcome.NOT_REQUIRED
    uploader: DeliveryOutcome = DeliveryOutcome.NOT_REQUIRED

    @property
    def staff_satisfied(self) -> bool:
        return self.staff != DeliveryOutcome.FAILED

    @property
    def uploader_satisfied(self) -> bool:
        return self.uploader != DeliveryOutcome.FAILED


class FileResult(BaseModel):
    """What the caller learns about one file of a submission."""
    filename: str
    index: int
    record_id: str
    group_id: str
    outcome: FileOutcome
    reason: Optional[RejectReason] = None
    error: Optional[str] = None
    storage_key: Optional[str] = None
    presented_label: SourceTag = SourceTag.UNKNOWN
    process_status: Optional[ProcessStatus] = None
    notifications: Optional[NotificationOutcome] = None

    def to_public_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)
