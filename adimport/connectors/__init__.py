"""Clients for the external sync functions"""

from adimport.connectors.meta_ads_sync import (
    MetaAdsSyncClient,
    SyncPrimitiveError,
    SyncPrimitiveResult,
    TransientSyncError,
)

__all__ = [
    "MetaAdsSyncClient",
    "SyncPrimitiveError",
    "SyncPrimitiveResult",
    "TransientSyncError",
]
