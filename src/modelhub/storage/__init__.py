"""
Artifact storage behind ``kind:path`` location keys.
"""

from modelhub.storage.adapters import (
    FileStorageAdapter,
    RegistryStorageAdapter,
    StorageAdapter,
    StorageResolver,
    parse_location,
)

__all__ = [
    "FileStorageAdapter",
    "RegistryStorageAdapter",
    "StorageAdapter",
    "StorageResolver",
    "parse_location",
]
