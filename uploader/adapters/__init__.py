"""
Adapter pattern implementations for the remote document store and object
store.

This module provides abstract base classes and concrete implementations
for document stores (Postgres, in-memory) and object stores (S3, in-memory).
"""

from .base import (
    DocumentStoreAdapter,
    ObjectStoreAdapter,
    SubscriptionHandle,
    TransferHandle,
    snapshot_changes,
)
from .memory_adapter import MemoryDocumentStore, MemoryObjectStore

__all__ = [
    'DocumentStoreAdapter',
    'ObjectStoreAdapter',
    'SubscriptionHandle',
    'TransferHandle',
    'snapshot_changes',
    'MemoryDocumentStore',
    'MemoryObjectStore'
]
