"""
Configuration management for IntelBoard.

Loads settings from environment variables with sensible defaults.
Feature flags, upstream endpoints, credentials and cache lifetimes
live here so route handlers never read the environment directly.
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()


def _flag(name: str) -> bool:
    """Feature flags are enabled only by the exact string 'true'."""
    return os.getenv(name) == 'true'


# Panel order used when listing enabled sources
INTEL_SOURCES = (
    'adsb',
    'satellites',
    'spectrum',
    'shodan',
    'wigle',
    'seismic',
    'rf-prop',
    'aurora',
)


@dataclass(frozen=True)
class FeatureFlags:
    """
    Intel Sources feature switches.

    The master flag gates every panel: a panel is live only when both
    the master flag and its own flag are set.
    """
    intel_sources: bool = field(default_factory=lambda: _flag('PUBLIC_FEATURE_INTEL_SOURCES'))
    adsb: bool = field(default_factory=lambda: _flag('PUBLIC_FEATURE_ADSB'))
    satellites: bool = field(default_factory=lambda: _flag('PUBLIC_FEATURE_SATELLITES'))
    spectrum: bool = field(default_factory=lambda: _flag('PUBLIC_FEATURE_SPECTRUM'))
    shodan: bool = field(default_factory=lambda: _flag('PUBLIC_FEATURE_SHODAN'))
    wigle: bool = field(default_factory=lambda: _flag('PUBLIC_FEATURE_WIGLE'))
    seismic: bool = field(default_factory=lambda: _flag('PUBLIC_FEATURE_SEISMIC'))
    rf_prop: bool = field(default_factory=lambda: _flag('PUBLIC_FEATURE_RF_PROP'))
    aurora: bool = field(default_factory=lambda: _flag('PUBLIC_FEATURE_AURORA'))

    def _panel(self, source: str) -> bool:
        return bool(getattr(self, source.replace('-', '_'), False))

    def has_intel_sources_enabled(self) -> bool:
        """True if the master flag and at least one panel flag are on."""
        return self.intel_sources and any(self._panel(s) for s in INTEL_SOURCES)

    def enabled_sources(self) -> List[str]:
        """List enabled panels in display order (empty if master is off)."""
        if not self.intel_sources:
            return []
        return [s for s in INTEL_SOURCES if self._panel(s)]

    def is_enabled(self, source: str) -> bool:
        return source in INTEL_SOURCES and self.intel_sources and self._panel(source)


@dataclass(frozen=True)
class CacheConfig:
    """In-memory cache settings."""
    sweep_interval_seconds: float = float(os.getenv('CACHE_SWEEP_INTERVAL_SECONDS', '300'))


@dataclass(frozen=True)
class HttpConfig:
    """Outbound HTTP defaults."""
    timeout_ms: int = int(os.getenv('HTTP_TIMEOUT_MS', '10000'))
    user_agent: str = os.getenv('HTTP_USER_AGENT', 'IntelBoard/1.0')


@dataclass(frozen=True)
class SourceTTLs:
    """Cache lifetime per intel source, in milliseconds."""
    adsb: int = 10 * 1000
    satellites: int = 2 * 60 * 60 * 1000
    seismic: int = 60 * 1000
    space_weather: int = 5 * 60 * 1000
    aurora: int = 5 * 60 * 1000
    shodan: int = 60 * 60 * 1000
    wigle: int = 60 * 60 * 1000


@dataclass(frozen=True)
class OpenSkyConfig:
    """OpenSky API configuration."""
    username: Optional[str] = os.getenv('OPENSKY_USERNAME') or None
    password: Optional[str] = os.getenv('OPENSKY_PASSWORD') or None
    base_url: str = os.getenv('OPENSKY_BASE_URL', 'https://opensky-network.org/api')

    @property
    def is_authenticated(self) -> bool:
        return bool(self.username and self.password)


@dataclass(frozen=True)
class CelesTrakConfig:
    """CelesTrak TLE catalog configuration."""
    base_url: str = os.getenv('CELESTRAK_BASE_URL', 'https://celestrak.org/NORAD/elements/gp.php')


@dataclass(frozen=True)
class UsgsConfig:
    """USGS earthquake feed configuration."""
    base_url: str = os.getenv(
        'USGS_BASE_URL',
        'https://earthquake.usgs.gov/earthquakes/feed/v1.0/summary',
    )


@dataclass(frozen=True)
class NoaaConfig:
    """NOAA Space Weather Prediction Center configuration."""
    base_url: str = os.getenv('NOAA_SWPC_BASE_URL', 'https://services.swpc.noaa.gov')


@dataclass(frozen=True)
class ShodanConfig:
    """Shodan API configuration."""
    api_key: Optional[str] = os.getenv('SHODAN_API_KEY') or None
    base_url: str = os.getenv('SHODAN_BASE_URL', 'https://api.shodan.io')

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)


@dataclass(frozen=True)
class WigleConfig:
    """WiGLE API configuration."""
    api_name: Optional[str] = os.getenv('WIGLE_API_NAME') or None
    api_token: Optional[str] = os.getenv('WIGLE_API_TOKEN') or None
    base_url: str = os.getenv('WIGLE_BASE_URL', 'https://api.wigle.net/api/v2')

    @property
    def is_configured(self) -> bool:
        return bool(self.api_name and self.api_token)


@dataclass(frozen=True)
class AppConfig:
    """Main application configuration."""
    features: FeatureFlags
    cache: CacheConfig
    http: HttpConfig
    ttl: SourceTTLs
    opensky: OpenSkyConfig
    celestrak: CelesTrakConfig
    usgs: UsgsConfig
    noaa: NoaaConfig
    shodan: ShodanConfig
    wigle: WigleConfig

    # Flask settings
    secret_key: str
    debug: bool


def load_config() -> AppConfig:
    """Load and validate all configuration."""
    return AppConfig(
        features=FeatureFlags(),
        cache=CacheConfig(),
        http=HttpConfig(),
        ttl=SourceTTLs(),
        opensky=OpenSkyConfig(),
        celestrak=CelesTrakConfig(),
        usgs=UsgsConfig(),
        noaa=NoaaConfig(),
        shodan=ShodanConfig(),
        wigle=WigleConfig(),
        secret_key=os.getenv('SECRET_KEY', 'dev-key-change-in-prod'),
        debug=os.getenv('FLASK_DEBUG', '0') == '1',
    )


# Singleton instance
config = load_config()
