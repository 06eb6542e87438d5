"""
OpenSky Network client for the ADS-B panel.

Queries /states/all for a bounding box and normalizes the raw state
vector arrays into aircraft dicts.

OpenSky state vector format (array indices):
0: icao24          - ICAO24 hex address
1: callsign        - Callsign (8 chars max)
2: origin_country  - Country of registration
3: time_position   - Unix timestamp of last position update
4: last_contact    - Unix timestamp of last message
5: longitude       - WGS84 longitude
6: latitude        - WGS84 latitude
7: baro_altitude   - Barometric altitude (meters)
8: on_ground       - Boolean
9: velocity        - Ground speed (m/s)
10: true_track     - Track angle (degrees, 0=north)
11: vertical_rate  - Vertical rate (m/s)
12: sensors        - Sensor IDs (array)
13: geo_altitude   - Geometric altitude (meters)
14: squawk         - Transponder code
15: spi            - Special position indicator
16: position_source - 0=ADS-B, 1=ASTERIX, 2=MLAT, 3=FLARM
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, List, Optional

from requests.auth import HTTPBasicAuth

from intelboard.cache import CacheStore
from intelboard.config import AppConfig, config as default_config
from intelboard.fetch import FetchResult, build_url
from intelboard.services.base import cache_key, cached_fetch, default_options

logger = logging.getLogger(__name__)

# Largest box we forward upstream; wider queries cost extra API credits
MAX_BOX_DEGREES = 20.0


@dataclass
class BoundingBox:
    """
    Geographic bounding box for API queries.

    OpenSky expects: lamin, lomin, lamax, lomax
    (latitude min, longitude min, latitude max, longitude max)
    """
    lat_min: float
    lat_max: float
    lon_min: float
    lon_max: float

    @classmethod
    def from_center_radius(
        cls,
        center_lat: float,
        center_lon: float,
        radius_km: float
    ) -> 'BoundingBox':
        """
        Create bounding box from center point and radius.

        Uses approximate conversion: 1 degree ~ 111 km at equator.
        Adjusts for latitude to account for longitude convergence.
        """
        lat_delta = radius_km / 111.0
        # Clamp near the poles where cos() approaches zero
        lon_delta = radius_km / (111.0 * max(abs(math.cos(math.radians(center_lat))), 0.01))

        return cls(
            lat_min=max(center_lat - lat_delta, -90.0),
            lat_max=min(center_lat + lat_delta, 90.0),
            lon_min=max(center_lon - lon_delta, -180.0),
            lon_max=min(center_lon + lon_delta, 180.0),
        )

    def validate(self) -> Optional[str]:
        """Return an error message if the box is unusable, else None."""
        if not (-90 <= self.lat_min <= 90 and -90 <= self.lat_max <= 90):
            return 'Latitude must be between -90 and 90'
        if not (-180 <= self.lon_min <= 180 and -180 <= self.lon_max <= 180):
            return 'Longitude must be between -180 and 180'
        if self.lat_min >= self.lat_max or self.lon_min >= self.lon_max:
            return 'Bounding box minimums must be below maximums'
        if (self.lat_max - self.lat_min) > MAX_BOX_DEGREES or (self.lon_max - self.lon_min) > MAX_BOX_DEGREES:
            return f'Bounding box may span at most {MAX_BOX_DEGREES:g} degrees'
        return None

    def to_params(self) -> dict:
        """Convert to OpenSky API query parameters."""
        return {
            'lamin': self.lat_min,
            'lomin': self.lon_min,
            'lamax': self.lat_max,
            'lomax': self.lon_max,
        }


def parse_state_vector(arr: List[Any]) -> Optional[dict]:
    """
    Parse an OpenSky state vector array into an aircraft dict.

    Returns None if the array is malformed or missing required fields.
    """
    if not arr or len(arr) < 17:
        return None

    icao24 = arr[0]
    if not icao24 or not isinstance(icao24, str):
        return None

    # Normalize callsign (strip whitespace, handle None)
    callsign = arr[1]
    if callsign:
        callsign = callsign.strip() or None

    return {
        'icao24': icao24.lower(),
        'callsign': callsign,
        'origin_country': arr[2],
        'time_position': arr[3],
        'last_contact': arr[4],
        'longitude': arr[5],
        'latitude': arr[6],
        'baro_altitude': arr[7],
        'on_ground': bool(arr[8]),
        'velocity': arr[9],
        'true_track': arr[10],
        'vertical_rate': arr[11],
        'geo_altitude': arr[13],
        'squawk': arr[14],
        'spi': bool(arr[15]),
        'position_source': arr[16],
    }


def parse_states(payload: dict) -> dict:
    """Normalize a /states/all response, keeping aircraft with a position."""
    states_raw = payload.get('states') or []

    aircraft = []
    for arr in states_raw:
        state = parse_state_vector(arr)
        if state and state['latitude'] is not None and state['longitude'] is not None:
            aircraft.append(state)

    logger.debug(f'Parsed {len(aircraft)} of {len(states_raw)} state vectors with positions')

    return {
        'time': payload.get('time'),
        'count': len(aircraft),
        'aircraft': aircraft,
    }


def get_aircraft(
    cache: CacheStore,
    bbox: BoundingBox,
    cfg: Optional[AppConfig] = None,
) -> FetchResult:
    """Fetch current aircraft inside ``bbox``."""
    cfg = cfg or default_config
    params = bbox.to_params()

    auth = None
    if cfg.opensky.is_authenticated:
        auth = HTTPBasicAuth(cfg.opensky.username, cfg.opensky.password)

    return cached_fetch(
        cache,
        cache_key('adsb', params),
        build_url(f'{cfg.opensky.base_url}/states/all', params),
        cfg.ttl.adsb,
        default_options(cfg, auth=auth),
        transform=parse_states,
    )
