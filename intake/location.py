"""
Location resolution: reconcile up to three independent location signals into
one authoritative coordinate.

Priority is fixed: capture-time metadata (EXIF) first, browser geolocation
second, network geolocation last. Exactly one candidate is chosen; the others
stay in the evidence for audit. Resolution never fails - no usable source at
all yields source tag UNKNOWN.
"""

import math
from typing import Any, Mapping, Optional

from intake.schema import (
    ChosenLocation,
    Coordinates,
    LocationEvidence,
    NetworkGeo,
    SourceTag,
)

# Coarse accuracy assumed for network geolocation, which reports none
NETWORK_ACCURACY_M = 50_000.0

# Visitor-location headers added by the CDN in front of the service
NETWORK_HEADERS = {
    "lat": "CF-IPLatitude",
    "lon": "CF-IPLongitude",
    "city": "CF-IPCity",
    "region": "CF-Region",
    "country": "CF-IPCountry",
    "postal_code": "CF-Postal-Code",
    "timezone": "CF-Timezone",
}


def _finite(value: Any) -> Optional[float]:
    """Parse value as a finite float, or None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def parse_candidate(
    lat: Any,
    lon: Any,
    accuracy: Any = None,
    timestamp: Any = None,
) -> Optional[Coordinates]:
    """
    Build a candidate from raw values. Both latitude and longitude must be
    finite numbers; with only one of them the candidate is absent.
    """
    lat_f = _finite(lat)
    lon_f = _finite(lon)
    if lat_f is None or lon_f is None:
        return None
    ts = str(timestamp).strip() if timestamp not in (None, "") else None
    return Coordinates(lat=lat_f, lon=lon_f, accuracy_m=_finite(accuracy), timestamp=ts or None)


def _usable(candidate: Optional[Coordinates]) -> Optional[Coordinates]:
    # Candidates built by hand may still carry NaN
    if candidate is None:
        return None
    if not (math.isfinite(candidate.lat) and math.isfinite(candidate.lon)):
        return None
    return candidate


def resolve(
    metadata: Optional[Coordinates] = None,
    client: Optional[Coordinates] = None,
    network: Optional[Coordinates] = None,
    network_context: Optional[NetworkGeo] = None,
) -> LocationEvidence:
    """Pick the highest-trust candidate present and keep all three as evidence."""
    metadata = _usable(metadata)
    client = _usable(client)
    network = _usable(network)

    chosen = None
    if metadata is not None:
        chosen = ChosenLocation(
            lat=metadata.lat, lon=metadata.lon,
            accuracy_m=metadata.accuracy_m, source_tag=SourceTag.EXIF,
        )
    elif client is not None:
        chosen = ChosenLocation(
            lat=client.lat, lon=client.lon,
            accuracy_m=client.accuracy_m, source_tag=SourceTag.GPS,
        )
    elif network is not None:
        chosen = ChosenLocation(
            lat=network.lat, lon=network.lon,
            accuracy_m=NETWORK_ACCURACY_M, source_tag=SourceTag.IP,
        )

    return LocationEvidence(
        from_metadata=metadata,
        from_client=client,
        from_network=network,
        chosen=chosen,
        network_context=network_context,
    )


def network_geo_from_headers(headers: Mapping[str, str]) -> NetworkGeo:
    """Read the edge's visitor-location headers. Missing headers stay None."""
    values = {}
    for field, header in NETWORK_HEADERS.items():
        raw = headers.get(header)
        values[field] = raw.strip() if raw and raw.strip() else None
    return NetworkGeo(**values)


def network_candidate(geo: Optional[NetworkGeo]) -> Optional[Coordinates]:
    if geo is None:
        return None
    return parse_candidate(geo.lat, geo.lon)
