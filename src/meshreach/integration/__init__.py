"""
Integration modules for external systems (TSB)
"""

from meshreach.integration.base import ReachabilityAPIClient
from meshreach.integration.tsb_client import TSBClient, TSBAPIError

__all__ = [
    "ReachabilityAPIClient",
    "TSBClient",
    "TSBAPIError",
]
