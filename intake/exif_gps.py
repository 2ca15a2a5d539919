"""
Capture-time GPS from embedded image metadata (EXIF), via Pillow.

Best-effort: anything unreadable yields None, never an exception.
"""

import io
import logging
from typing import Any, Optional

from PIL import ExifTags, Image, UnidentifiedImageError

from intake.location import parse_candidate
from intake.schema import Coordinates, FileKind

logger = logging.getLogger(__name__)

# GPS IFD tag numbers
GPS_LATITUDE_REF = 1
GPS_LATITUDE = 2
GPS_LONGITUDE_REF = 3
GPS_LONGITUDE = 4
GPS_H_POSITIONING_ERROR = 31
DATETIME_ORIGINAL = 36867

EXIF_KINDS = {FileKind.JPG, FileKind.PNG, FileKind.WEBP}


def _dms_to_decimal(dms: Any, ref: Any) -> Optional[float]:
    try:
        degrees, minutes, seconds = (float(part) for part in dms)
    except (TypeError, ValueError, ZeroDivisionError):
        return None
    value = degrees + minutes / 60.0 + seconds / 3600.0
    if isinstance(ref, bytes):
        ref = ref.decode("ascii", "ignore")
    if str(ref or "").strip().upper() in ("S", "W"):
        value = -value
    return value


def extract_gps(data: bytes, kind: FileKind) -> Optional[Coordinates]:
    """Return the embedded capture location, or None when there is none."""
    if kind not in EXIF_KINDS:
        return None
    try:
        with Image.open(io.BytesIO(data)) as img:
            exif = img.getexif()
            gps = exif.get_ifd(ExifTags.IFD.GPSInfo)
            taken_at = exif.get_ifd(ExifTags.IFD.Exif).get(DATETIME_ORIGINAL)
    except (UnidentifiedImageError, OSError, ValueError, SyntaxError) as e:
        logger.debug(f"No readable EXIF: {e}")
        return None
    except Exception as e:
        # DecompressionBombError and other Pillow failures on hostile headers
        logger.warning(f"⚠️ EXIF extraction failed, ignoring metadata: {e}")
        return None

    if not gps:
        return None

    lat = _dms_to_decimal(gps.get(GPS_LATITUDE), gps.get(GPS_LATITUDE_REF))
    lon = _dms_to_decimal(gps.get(GPS_LONGITUDE), gps.get(GPS_LONGITUDE_REF))
    accuracy = gps.get(GPS_H_POSITIONING_ERROR)
    try:
        accuracy = float(accuracy) if accuracy is not None else None
    except (TypeError, ValueError, ZeroDivisionError):
        accuracy = None
    return parse_candidate(lat, lon, accuracy=accuracy, timestamp=taken_at)
