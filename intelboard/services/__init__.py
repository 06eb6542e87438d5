"""
Intel source services.

One thin client per upstream feed. Each goes through the shared
cache-then-fetch flow in ``base`` so repeated dashboard polls are
served from memory and upstream latency stays bounded.
"""

from intelboard.services.base import cache_key, cached_fetch

__all__ = ['cache_key', 'cached_fetch']
