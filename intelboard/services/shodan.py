"""
Shodan client for the host-scan panel.

Supports single host lookup and search queries. Both need an API key;
the key travels in the query string, so it is left out of cache keys.
"""

import ipaddress
import logging
from typing import Optional

from intelboard.cache import CacheStore
from intelboard.config import AppConfig, config as default_config
from intelboard.fetch import FetchResult, build_url
from intelboard.services.base import cache_key, cached_fetch, default_options

logger = logging.getLogger(__name__)

# Banners can be several KB each; the panel only shows a preview
MAX_BANNER_CHARS = 500


def is_valid_ip(value: str) -> bool:
    try:
        ipaddress.ip_address(value)
    except ValueError:
        return False
    return True


def parse_service(service: dict) -> dict:
    return {
        'port': service['port'],
        'transport': service.get('transport', 'tcp'),
        'product': service.get('product'),
        'version': service.get('version'),
        'banner': (service.get('data') or '')[:MAX_BANNER_CHARS] or None,
        'timestamp': service.get('timestamp'),
    }


def parse_host(host: dict) -> dict:
    """Normalize a Shodan host record (lookup result or search match)."""
    location = host.get('location') or {}
    vulns = host.get('vulns')
    if isinstance(vulns, dict):
        vulns = sorted(vulns.keys())

    services = host.get('data')
    if not isinstance(services, list):
        # Search matches are one banner per match; the match is the service
        services = [host] if 'port' in host else []

    return {
        'ip': host.get('ip_str') or str(host.get('ip')),
        'hostnames': host.get('hostnames') or [],
        'ports': host.get('ports') or ([host['port']] if 'port' in host else []),
        'vulns': vulns,
        'os': host.get('os'),
        'org': host.get('org'),
        'isp': host.get('isp'),
        'country_name': host.get('country_name', location.get('country_name')),
        'city': host.get('city', location.get('city')),
        'latitude': host.get('latitude', location.get('latitude')),
        'longitude': host.get('longitude', location.get('longitude')),
        'last_update': host.get('last_update', host.get('timestamp')),
        'data': [parse_service(s) for s in services or []],
    }


def parse_search(payload: dict) -> dict:
    return {
        'total': payload.get('total', 0),
        'matches': [parse_host(m) for m in payload.get('matches') or []],
    }


def get_host(cache: CacheStore, ip: str, cfg: Optional[AppConfig] = None) -> FetchResult:
    """Look up everything Shodan knows about one IP."""
    cfg = cfg or default_config
    url = build_url(f'{cfg.shodan.base_url}/shodan/host/{ip}', {'key': cfg.shodan.api_key})

    return cached_fetch(
        cache,
        cache_key('shodan', {'host': ip}),
        url,
        cfg.ttl.shodan,
        default_options(cfg),
        transform=parse_host,
    )


def search_hosts(
    cache: CacheStore,
    query: str,
    page: int = 1,
    cfg: Optional[AppConfig] = None,
) -> FetchResult:
    """Run a Shodan search query (one page of results)."""
    cfg = cfg or default_config
    params = {'query': query, 'page': page}
    url = build_url(
        f'{cfg.shodan.base_url}/shodan/host/search',
        {'key': cfg.shodan.api_key, **params},
    )

    return cached_fetch(
        cache,
        cache_key('shodan', params),
        url,
        cfg.ttl.shodan,
        default_options(cfg),
        transform=parse_search,
    )
