"""
Intel source API endpoints.

Provides endpoints for:
- GET /api/intel/features - Enabled intel panels
- GET /api/intel/adsb - Aircraft in a bounding box (OpenSky)
- GET /api/intel/satellites - TLE sets by group (CelesTrak)
- GET /api/intel/seismic - Recent earthquakes (USGS)
- GET /api/intel/spaceweather - Kp, A-index, solar flux (NOAA SWPC)
- GET /api/intel/rf-prop - HF propagation outlook (NOAA SWPC)
- GET /api/intel/aurora - Aurora status and forecast (NOAA SWPC)
- GET /api/intel/shodan/host/<ip> - Host lookup (Shodan)
- GET /api/intel/shodan/search - Host search (Shodan)
- GET /api/intel/wigle - Wi-Fi networks in a bounding box (WiGLE)

Every feed endpoint checks its feature flag first and never calls the
upstream when the panel is disabled.
"""

import logging
import time
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from flask import Blueprint, current_app, jsonify, request

from intelboard.cache import CacheStore
from intelboard.config import AppConfig
from intelboard.fetch import FetchResult, validate_params
from intelboard.services import celestrak, noaa, opensky, shodan, usgs, wigle

logger = logging.getLogger(__name__)

intel_bp = Blueprint('intel', __name__, url_prefix='/api/intel')


def _cache() -> CacheStore:
    return current_app.extensions['intel_cache']


def _cfg() -> AppConfig:
    return current_app.config['INTEL_CONFIG']


def _error(message: str, status: int, **extra):
    return jsonify({'error': message, **extra}), status


def _check_feature(source: str):
    """Return an error response if the panel is disabled, else None."""
    if not _cfg().features.is_enabled(source):
        return _error(f'Intel source {source} is disabled', 404)
    return None


def _check_required(required: List[str]):
    validation = validate_params(request.args, required)
    if not validation.valid:
        return _error('Missing required parameters', 400, missing=validation.missing)
    return None


def _float_args(names: List[str]) -> Tuple[Optional[List[float]], Optional[str]]:
    values = []
    for name in names:
        try:
            values.append(float(request.args[name]))
        except (KeyError, ValueError):
            return None, f'Parameter {name} must be a number'
    return values, None


def _respond(source: str, result: FetchResult, start_time: float):
    """Convert a FetchResult into the endpoint's JSON response."""
    query_time_ms = round((time.perf_counter() - start_time) * 1000, 2)

    if not result.ok:
        # Timeouts are the gateway's fault, anything else is the upstream's
        status = 504 if result.status == 408 else 502
        return _error(
            result.error,
            status,
            source=source,
            upstream_status=result.status,
            query_time_ms=query_time_ms,
        )

    return jsonify({
        'source': source,
        'data': result.data,
        'cached': result.cached,
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'query_time_ms': query_time_ms,
    })


@intel_bp.route('/features', methods=['GET'])
def get_features():
    """List the intel panels the dashboard should render."""
    features = _cfg().features
    return jsonify({
        'intel_sources': features.intel_sources,
        'any_enabled': features.has_intel_sources_enabled(),
        'enabled': features.enabled_sources(),
    })


@intel_bp.route('/adsb', methods=['GET'])
def get_adsb():
    """
    Aircraft state vectors inside a bounding box.

    Query parameters, either:
    - lamin, lomin, lamax, lomax: explicit box in degrees
    - lat, lon, radius_km: center point and radius (radius default 250)
    """
    start_time = time.perf_counter()
    disabled = _check_feature('adsb')
    if disabled:
        return disabled

    if 'lat' in request.args or 'lon' in request.args:
        missing = _check_required(['lat', 'lon'])
        if missing:
            return missing
        values, err = _float_args(['lat', 'lon'])
        if err:
            return _error(err, 400)
        try:
            radius_km = float(request.args.get('radius_km', 250))
        except ValueError:
            return _error('Parameter radius_km must be a number', 400)
        if radius_km <= 0:
            return _error('Parameter radius_km must be positive', 400)
        bbox = opensky.BoundingBox.from_center_radius(values[0], values[1], radius_km)
    else:
        missing = _check_required(['lamin', 'lomin', 'lamax', 'lomax'])
        if missing:
            return missing
        values, err = _float_args(['lamin', 'lomin', 'lamax', 'lomax'])
        if err:
            return _error(err, 400)
        bbox = opensky.BoundingBox(
            lat_min=values[0], lon_min=values[1], lat_max=values[2], lon_max=values[3],
        )

    invalid = bbox.validate()
    if invalid:
        return _error(invalid, 400)

    result = opensky.get_aircraft(_cache(), bbox, _cfg())
    return _respond('adsb', result, start_time)


@intel_bp.route('/satellites', methods=['GET'])
def get_satellites():
    """
    Two-line element sets for a satellite group.

    Query parameters:
    - group: one of starlink, gps, glonass, galileo, iridium, weather,
             military, science, amateur, other (default starlink)
    """
    start_time = time.perf_counter()
    disabled = _check_feature('satellites')
    if disabled:
        return disabled

    group = request.args.get('group', 'starlink').lower()
    if group not in celestrak.SATELLITE_GROUPS:
        return _error(f'Unknown satellite group: {group}', 400, groups=list(celestrak.SATELLITE_GROUPS))

    result = celestrak.get_satellites(_cache(), group, _cfg())
    return _respond('satellites', result, start_time)


@intel_bp.route('/seismic', methods=['GET'])
def get_seismic():
    """
    Recent earthquakes.

    Query parameters:
    - magnitude: all, 1.0, 2.5, 4.5 or significant (default 2.5)
    - period: hour, day, week or month (default day)
    """
    start_time = time.perf_counter()
    disabled = _check_feature('seismic')
    if disabled:
        return disabled

    magnitude = request.args.get('magnitude', '2.5')
    period = request.args.get('period', 'day')
    if magnitude not in usgs.MAGNITUDES:
        return _error(f'Unknown magnitude filter: {magnitude}', 400)
    if period not in usgs.PERIODS:
        return _error(f'Unknown period: {period}', 400)

    result = usgs.get_earthquakes(_cache(), magnitude, period, _cfg())
    return _respond('seismic', result, start_time)


@intel_bp.route('/spaceweather', methods=['GET'])
def get_space_weather():
    """Latest space weather indices. Served under the rf-prop flag."""
    start_time = time.perf_counter()
    disabled = _check_feature('rf-prop')
    if disabled:
        return disabled

    result = noaa.get_space_weather(_cache(), _cfg())
    return _respond('spaceweather', result, start_time)


@intel_bp.route('/rf-prop', methods=['GET'])
def get_rf_propagation():
    """HF band conditions derived from solar flux and geomagnetic activity."""
    start_time = time.perf_counter()
    disabled = _check_feature('rf-prop')
    if disabled:
        return disabled

    result = noaa.get_hf_conditions(_cache(), _cfg())
    return _respond('rf-prop', result, start_time)


@intel_bp.route('/aurora', methods=['GET'])
def get_aurora():
    """Aurora visibility, Kp trend and forecast."""
    start_time = time.perf_counter()
    disabled = _check_feature('aurora')
    if disabled:
        return disabled

    result = noaa.get_aurora(_cache(), _cfg())
    return _respond('aurora', result, start_time)


@intel_bp.route('/shodan/host/<ip>', methods=['GET'])
def get_shodan_host(ip: str):
    """Shodan host lookup by IP address."""
    start_time = time.perf_counter()
    disabled = _check_feature('shodan')
    if disabled:
        return disabled
    if not _cfg().shodan.is_configured:
        return _error('Shodan API key not configured', 503)
    if not shodan.is_valid_ip(ip):
        return _error(f'Invalid IP address: {ip}', 400)

    result = shodan.get_host(_cache(), ip, _cfg())
    return _respond('shodan', result, start_time)


@intel_bp.route('/shodan/search', methods=['GET'])
def search_shodan():
    """
    Shodan host search.

    Query parameters:
    - query: Shodan search query (required)
    - page: result page (default 1)
    """
    start_time = time.perf_counter()
    disabled = _check_feature('shodan')
    if disabled:
        return disabled
    if not _cfg().shodan.is_configured:
        return _error('Shodan API key not configured', 503)

    missing = _check_required(['query'])
    if missing:
        return missing
    query = request.args['query'].strip()
    if not query:
        return _error('Parameter query must not be empty', 400)

    page = request.args.get('page', 1, type=int)
    if page < 1:
        return _error('Parameter page must be a positive integer', 400)

    result = shodan.search_hosts(_cache(), query, page, _cfg())
    return _respond('shodan', result, start_time)


@intel_bp.route('/wigle', methods=['GET'])
def search_wigle():
    """
    WiGLE network search.

    Query parameters:
    - latrange1, latrange2, longrange1, longrange2: search box (required)
    - ssid: exact SSID filter (optional)
    """
    start_time = time.perf_counter()
    disabled = _check_feature('wigle')
    if disabled:
        return disabled
    if not _cfg().wigle.is_configured:
        return _error('WiGLE API credentials not configured', 503)

    missing = _check_required(list(wigle.SEARCH_PARAMS))
    if missing:
        return missing
    values, err = _float_args(list(wigle.SEARCH_PARAMS))
    if err:
        return _error(err, 400)

    result = wigle.search_networks(_cache(), *values, ssid=request.args.get('ssid'), cfg=_cfg())
    return _respond('wigle', result, start_time)
