"""
WiGLE client for the Wi-Fi panel.

Searches the WiGLE network database inside a bounding box, optionally
filtered by SSID. Authenticates with the account's API name and token
as HTTP basic credentials.
"""

import logging
from typing import Optional

from requests.auth import HTTPBasicAuth

from intelboard.cache import CacheStore
from intelboard.config import AppConfig, config as default_config
from intelboard.fetch import FetchResult, build_url
from intelboard.services.base import cache_key, cached_fetch, default_options

logger = logging.getLogger(__name__)

SEARCH_PARAMS = ('latrange1', 'latrange2', 'longrange1', 'longrange2')


def parse_network(row: dict) -> dict:
    return {
        'ssid': row.get('ssid') or '',
        'netid': row['netid'],
        'channel': row.get('channel'),
        'encryption': row.get('encryption', 'unknown'),
        'latitude': row['trilat'],
        'longitude': row['trilong'],
        'lastupdt': row.get('lastupdt'),
        'country': row.get('country'),
        'region': row.get('region'),
        'city': row.get('city'),
        'name': row.get('name'),
    }


def parse_search(payload: dict) -> dict:
    if not payload.get('success', False):
        raise ValueError(payload.get('message') or 'WiGLE search failed')

    results = [parse_network(r) for r in payload.get('results') or []]
    return {
        'total': payload.get('totalResults', len(results)),
        'count': len(results),
        'results': results,
    }


def search_networks(
    cache: CacheStore,
    latrange1: float,
    latrange2: float,
    longrange1: float,
    longrange2: float,
    ssid: Optional[str] = None,
    cfg: Optional[AppConfig] = None,
) -> FetchResult:
    """Find networks seen inside the given lat/lon ranges."""
    cfg = cfg or default_config

    params = {
        'latrange1': latrange1,
        'latrange2': latrange2,
        'longrange1': longrange1,
        'longrange2': longrange2,
    }
    if ssid:
        params['ssid'] = ssid

    return cached_fetch(
        cache,
        cache_key('wigle', params),
        build_url(f'{cfg.wigle.base_url}/network/search', params),
        cfg.ttl.wigle,
        default_options(cfg, auth=HTTPBasicAuth(cfg.wigle.api_name, cfg.wigle.api_token)),
        transform=parse_search,
    )
