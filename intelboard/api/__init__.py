"""
API module for IntelBoard.

Provides REST endpoints for:
- Intel feeds (aircraft, satellites, seismic, space weather, host scan, Wi-Fi)
- System status and cache controls
"""

from intelboard.api.intel import intel_bp
from intelboard.api.status import status_bp

__all__ = ['intel_bp', 'status_bp']
