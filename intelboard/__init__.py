"""
IntelBoard Backend Package.

Server side of the geospatial intel dashboard, built with Flask and requests.

Modules:
    api/         REST endpoints for intel feeds and system status
    services/    Upstream feed clients (OpenSky, CelesTrak, USGS, NOAA, Shodan, WiGLE)
    cache.py     Thread-safe TTL cache shared by every feed handler
    fetch.py     Timeout-bounded fetch wrapper and URL/parameter helpers
    config.py    Centralized configuration and feature flags from environment variables
"""

__version__ = '1.0.0'
