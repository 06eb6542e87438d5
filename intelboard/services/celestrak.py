"""
CelesTrak client for the satellites panel.

Pulls two-line element sets by group in TLE text format. Propagation
to positions happens in the browser; the server only caches the
element sets, which CelesTrak refreshes a few times a day.
"""

import logging
from typing import List, Optional

from intelboard.cache import CacheStore
from intelboard.config import AppConfig, config as default_config
from intelboard.fetch import FetchResult, build_url
from intelboard.services.base import cache_key, cached_fetch, default_options

logger = logging.getLogger(__name__)

# Dashboard group -> CelesTrak GROUP name
SATELLITE_GROUPS = {
    'starlink': 'starlink',
    'gps': 'gps-ops',
    'glonass': 'glo-ops',
    'galileo': 'galileo',
    'iridium': 'iridium-NEXT',
    'weather': 'weather',
    'military': 'military',
    'science': 'science',
    'amateur': 'amateur',
    'other': 'other',
}


def parse_tle(text: str) -> List[dict]:
    """
    Parse 3-line TLE text (name, line 1, line 2) into element set dicts.

    Incomplete trailing records and blocks whose line numbers don't
    match are skipped.
    """
    lines = [line.rstrip() for line in text.splitlines() if line.strip()]

    satellites = []
    i = 0
    while i + 2 < len(lines):
        name, line1, line2 = lines[i], lines[i + 1], lines[i + 2]
        if not (line1.startswith('1 ') and line2.startswith('2 ')):
            # Resync on the next line
            i += 1
            continue

        satellites.append({
            'name': name.strip(),
            'line1': line1,
            'line2': line2,
            'catalogNumber': line1[2:7].strip() or None,
        })
        i += 3

    return satellites


def get_satellites(
    cache: CacheStore,
    group: str,
    cfg: Optional[AppConfig] = None,
) -> FetchResult:
    """Fetch TLEs for a dashboard satellite group."""
    cfg = cfg or default_config
    params = {'GROUP': SATELLITE_GROUPS[group], 'FORMAT': 'tle'}

    def transform(text: str) -> dict:
        satellites = parse_tle(text)
        logger.debug(f'Parsed {len(satellites)} TLEs for group {group}')
        return {'group': group, 'count': len(satellites), 'satellites': satellites}

    return cached_fetch(
        cache,
        cache_key('satellites', params),
        build_url(cfg.celestrak.base_url, params),
        cfg.ttl.satellites,
        default_options(cfg),
        transform=transform,
    )
