"""
Storage components for the Media Scanner

This package contains components for persistence and synchronization:
- Local JSON site store
- External index HTTP client
- Delta synchronization
"""

from .site_store import JsonSiteStore
from .external_index import ExternalIndexClient
from .delta_sync import DeltaSynchronizer, SyncResult, SyncCheck, compute_delta

__all__ = ['JsonSiteStore', 'ExternalIndexClient', 'DeltaSynchronizer', 'SyncResult', 'SyncCheck', 'compute_delta']
