"""
USGS earthquake summary feeds for the seismic panel.
"""

from typing import Optional

from intelboard.cache import CacheStore
from intelboard.config import AppConfig, config as default_config
from intelboard.fetch import FetchResult
from intelboard.services.base import cache_key, cached_fetch, default_options

MAGNITUDES = ('all', '1.0', '2.5', '4.5', 'significant')
PERIODS = ('hour', 'day', 'week', 'month')


def parse_feature(feature: dict) -> dict:
    """Flatten a GeoJSON earthquake feature for the map layer."""
    props = feature.get('properties') or {}
    coords = (feature.get('geometry') or {}).get('coordinates') or [None, None, None]
    return {
        'id': feature['id'],
        'magnitude': props.get('mag'),
        'place': props.get('place'),
        'time': props.get('time'),
        'updated': props.get('updated'),
        'url': props.get('url'),
        'tsunami': bool(props.get('tsunami')),
        'alert': props.get('alert'),
        'longitude': coords[0],
        'latitude': coords[1],
        'depth_km': coords[2] if len(coords) > 2 else None,
    }


def parse_feed(payload: dict) -> dict:
    metadata = payload.get('metadata') or {}
    earthquakes = [parse_feature(f) for f in payload.get('features') or []]
    return {
        'title': metadata.get('title'),
        'generated': metadata.get('generated'),
        'count': len(earthquakes),
        'earthquakes': earthquakes,
    }


def get_earthquakes(
    cache: CacheStore,
    magnitude: str = '2.5',
    period: str = 'day',
    cfg: Optional[AppConfig] = None,
) -> FetchResult:
    """Fetch the USGS summary feed for a magnitude threshold and period."""
    cfg = cfg or default_config
    url = f'{cfg.usgs.base_url}/{magnitude}_{period}.geojson'

    return cached_fetch(
        cache,
        cache_key('seismic', {'magnitude': magnitude, 'period': period}),
        url,
        cfg.ttl.seismic,
        default_options(cfg),
        transform=parse_feed,
    )
