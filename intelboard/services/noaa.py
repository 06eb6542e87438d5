"""
NOAA SWPC client for the space weather, RF propagation and aurora panels.

All three panels are derived from two SWPC products that are cached
independently:

- planetary K-index (observed, 3-hour cadence)
- 10.7 cm solar radio flux (daily)

plus the Kp forecast for the aurora outlook. HF band conditions use the
usual amateur-radio rule of thumb: high solar flux opens the upper
bands, geomagnetic activity (A/K) closes them.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from intelboard.cache import CacheStore
from intelboard.config import AppConfig, config as default_config
from intelboard.fetch import FetchResult
from intelboard.services.base import cache_key, cached_fetch, default_options

logger = logging.getLogger(__name__)

KP_PATH = '/products/noaa-planetary-k-index.json'
KP_FORECAST_PATH = '/products/noaa-planetary-k-index-forecast.json'
SOLAR_FLUX_PATH = '/json/f107_cm_flux.json'

CONDITION_LEVELS = ('very-poor', 'poor', 'fair', 'good', 'excellent')


def parse_time_tag(value: str) -> int:
    """SWPC time tag ('2024-05-10 12:00:00.000' or ISO) -> epoch ms."""
    dt = datetime.fromisoformat(value.strip().replace(' ', 'T').rstrip('Z'))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


def _rows(payload: List[Any]) -> List[Dict[str, Any]]:
    """
    Normalize SWPC tables to a list of dicts.

    Older products are arrays whose first row is the header; newer ones
    are already lists of objects.
    """
    if not payload:
        return []
    if isinstance(payload[0], dict):
        return [{k.lower(): v for k, v in row.items()} for row in payload]
    header = [str(h).lower() for h in payload[0]]
    return [dict(zip(header, row)) for row in payload[1:]]


def parse_kp(payload: List[Any]) -> List[dict]:
    series = []
    for row in _rows(payload):
        kp = row.get('kp', row.get('kp_index'))
        if kp is None or row.get('time_tag') is None:
            continue
        series.append({
            'timestamp': parse_time_tag(row['time_tag']),
            'kp': float(kp),
            'a_running': float(row['a_running']) if row.get('a_running') is not None else None,
            'observed': row.get('observed', 'observed'),
        })
    return series


def parse_solar_flux(payload: List[Any]) -> List[dict]:
    series = []
    for row in _rows(payload):
        if row.get('flux') is None or row.get('time_tag') is None:
            continue
        series.append({
            'timestamp': parse_time_tag(row['time_tag']),
            'flux': float(row['flux']),
        })
    series.sort(key=lambda r: r['timestamp'])
    return series


def _fetch(cache: CacheStore, name: str, path: str, transform, cfg: AppConfig) -> FetchResult:
    return cached_fetch(
        cache,
        cache_key('spaceweather', {'product': name}),
        f'{cfg.noaa.base_url}{path}',
        cfg.ttl.space_weather,
        default_options(cfg),
        transform=transform,
    )


def kp_scale(kp: float) -> str:
    """NOAA G-scale for a Kp value (G0 means below storm level)."""
    return f'G{min(max(int(kp) - 4, 0), 5)}'


def get_space_weather(cache: CacheStore, cfg: Optional[AppConfig] = None) -> FetchResult:
    """Latest planetary K-index, A-index and solar flux as index records."""
    cfg = cfg or default_config

    kp_result = _fetch(cache, 'kp', KP_PATH, parse_kp, cfg)
    if not kp_result.ok:
        return kp_result
    flux_result = _fetch(cache, 'solar-flux', SOLAR_FLUX_PATH, parse_solar_flux, cfg)
    if not flux_result.ok:
        return flux_result

    indices = []
    if kp_result.data:
        latest = kp_result.data[-1]
        indices.append({
            'type': 'planetary-k-index',
            'value': latest['kp'],
            'timestamp': latest['timestamp'],
            'scale': kp_scale(latest['kp']),
        })
        if latest['a_running'] is not None:
            indices.append({
                'type': 'a-index',
                'value': latest['a_running'],
                'timestamp': latest['timestamp'],
            })
    if flux_result.data:
        latest = flux_result.data[-1]
        indices.append({
            'type': 'solar-flux',
            'value': latest['flux'],
            'timestamp': latest['timestamp'],
            'description': '10.7 cm radio flux (sfu)',
        })

    return FetchResult(
        status=200,
        data={'indices': indices},
        cached=kp_result.cached and flux_result.cached,
    )


def rate_hf_conditions(solar_flux: float, a_index: float, k_index: float) -> Dict[str, str]:
    """
    Rate day and night HF propagation.

    Score starts from the solar flux band and loses points for
    geomagnetic disturbance. Night is one step worse since the upper
    bands close after sunset.
    """
    if solar_flux >= 150:
        score = 4
    elif solar_flux >= 120:
        score = 3
    elif solar_flux >= 90:
        score = 2
    elif solar_flux >= 70:
        score = 1
    else:
        score = 0

    if k_index >= 5 or a_index >= 30:
        score -= 2
    elif k_index >= 4 or a_index >= 15:
        score -= 1

    day = min(max(score, 0), 4)
    night = max(day - 1, 0)
    return {'day': CONDITION_LEVELS[day], 'night': CONDITION_LEVELS[night]}


def get_hf_conditions(cache: CacheStore, cfg: Optional[AppConfig] = None) -> FetchResult:
    """HF radio propagation outlook derived from the space weather indices."""
    result = get_space_weather(cache, cfg)
    if not result.ok:
        return result

    by_type = {i['type']: i for i in result.data['indices']}
    if 'solar-flux' not in by_type or 'planetary-k-index' not in by_type:
        return FetchResult(status=502, error='Space weather indices unavailable')

    solar_flux = by_type['solar-flux']['value']
    k_index = by_type['planetary-k-index']['value']
    a_index = by_type.get('a-index', {}).get('value', 0.0)
    rating = rate_hf_conditions(solar_flux, a_index, k_index)

    return FetchResult(
        status=200,
        data={
            'timestamp': by_type['planetary-k-index']['timestamp'],
            'day': rating['day'],
            'night': rating['night'],
            'solarFlux': solar_flux,
            'aIndex': a_index,
            'kIndex': k_index,
            'summary': f"SFI {solar_flux:g}, A {a_index:g}, K {k_index:g}: "
                       f"day {rating['day']}, night {rating['night']}",
        },
        cached=result.cached,
    )


def aurora_visibility(kp: float) -> dict:
    """Approximate equatorward edge of the visible oval for a Kp value."""
    latitude = round(max(66.5 - 2.5 * kp, 40.0), 1)

    if kp < 2:
        probability = 'none'
    elif kp < 4:
        probability = 'low'
    elif kp < 5:
        probability = 'moderate'
    elif kp < 7:
        probability = 'high'
    else:
        probability = 'very-high'

    return {'latitude': latitude, 'probability': probability}


def kp_trend(series: List[dict]) -> str:
    if len(series) < 2:
        return 'stable'
    delta = series[-1]['kp'] - series[-2]['kp']
    if delta >= 0.5:
        return 'rising'
    if delta <= -0.5:
        return 'falling'
    return 'stable'


def get_aurora(cache: CacheStore, cfg: Optional[AppConfig] = None) -> FetchResult:
    """Current aurora outlook from observed Kp and the 3-day forecast."""
    cfg = cfg or default_config

    kp_result = _fetch(cache, 'kp', KP_PATH, parse_kp, cfg)
    if not kp_result.ok:
        return kp_result
    forecast_result = _fetch(cache, 'kp-forecast', KP_FORECAST_PATH, parse_kp, cfg)
    if not forecast_result.ok:
        return forecast_result

    observed = kp_result.data
    if not observed:
        return FetchResult(status=502, error='No Kp observations available')

    latest = observed[-1]
    now_ms = int(datetime.now(timezone.utc).timestamp() * 1000)
    forecast = [
        {'time': row['timestamp'], 'kp': row['kp']}
        for row in forecast_result.data
        if row['timestamp'] > now_ms and row['observed'] != 'observed'
    ]

    status = {
        'timestamp': latest['timestamp'],
        'kpIndex': latest['kp'],
        'kpTrend': kp_trend(observed),
        'visibility': aurora_visibility(latest['kp']),
        'forecast': forecast,
    }
    if latest['kp'] >= 5:
        status['alert'] = f"{kp_scale(latest['kp'])} geomagnetic storm in progress"

    return FetchResult(
        status=200,
        data=status,
        cached=kp_result.cached and forecast_result.cached,
    )
