"""
Shared cache-then-fetch flow for intel source clients.

Every source follows the same path: look the key up in the cache,
fetch on miss or expiry, store successful results with the source's
TTL. Failed fetches are never cached so the next poll retries.
"""

import hashlib
import logging
from typing import Any, Callable, Mapping, Optional
from urllib.parse import urlencode

from intelboard.cache import CacheStore
from intelboard.config import AppConfig, config
from intelboard.fetch import FetchOptions, FetchResult, fetch_with_timeout

logger = logging.getLogger(__name__)


def cache_key(source: str, params: Optional[Mapping[str, Any]] = None) -> str:
    """
    Build a ``<source>:<hash>`` cache key.

    Params are sorted before hashing so argument order does not split
    the cache.
    """
    encoded = urlencode(sorted((str(k), str(v)) for k, v in (params or {}).items()))
    digest = hashlib.sha1(encoded.encode('utf-8')).hexdigest()[:16]
    return f'{source}:{digest}'


def default_options(cfg: Optional[AppConfig] = None, **overrides) -> FetchOptions:
    """FetchOptions carrying the configured timeout and User-Agent."""
    cfg = cfg or config
    headers = {'User-Agent': cfg.http.user_agent, **overrides.pop('headers', {})}
    overrides.setdefault('timeout', cfg.http.timeout_ms)
    return FetchOptions(headers=headers, **overrides)


def cached_fetch(
    cache: CacheStore,
    key: str,
    url: str,
    ttl: int,
    options: Optional[FetchOptions] = None,
    transform: Optional[Callable[[Any], Any]] = None,
) -> FetchResult:
    """
    Return the cached payload for ``key``, fetching ``url`` on miss.

    Args:
        cache: Shared cache store
        key: Cache key, usually from ``cache_key()``
        url: Fully built upstream URL
        ttl: Lifetime of a successful result in milliseconds
        options: Fetch options (configured defaults if None)
        transform: Normalizes the upstream payload before it is cached

    Concurrent misses for the same key each hit the upstream; the last
    successful response wins the cache slot.
    """
    cached = cache.get(key)
    if cached is not None:
        return FetchResult(status=200, data=cached, cached=True)

    result = fetch_with_timeout(url, options or default_options())
    if not result.ok:
        logger.warning(f'Upstream fetch for {key} failed: {result.error}')
        return result

    if transform is not None:
        try:
            result.data = transform(result.data)
        except (KeyError, IndexError, TypeError, ValueError, AttributeError) as e:
            logger.error(f'Malformed upstream payload for {key}: {e}')
            return FetchResult(status=502, error=f'Malformed upstream payload: {e}')

    # A stored None is indistinguishable from a miss
    if result.data is not None:
        cache.set(key, result.data, ttl)
    return result
