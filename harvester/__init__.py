"""
Strategy Harvester
==================

Claims and compounds protocol rewards, deposits idle principal and
rebalances capital between yield sources for a fleet of on-chain strategies.
"""

from .core.exceptions import HarvesterError

__version__ = "0.1.0"
__author__ = "Harvester Team"

__all__ = [
    "HarvesterError",
]
