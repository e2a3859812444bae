"""
Model repository: loads artifacts from storage and caches them.

The cache holds at most one entry per location key. A refresh deserializes
the new artifact completely before publishing it with a single dictionary
assignment, so concurrent readers see either the old or the new entry and
never a partially built one. Readers never take the lock; it only keeps
concurrent refreshes of the same key from loading twice.
"""

import threading
import time
from collections.abc import MutableMapping
from dataclasses import dataclass

from modelhub.exceptions import ConfigurationError, ModelLoadError, StorageError
from modelhub.modeling.artifact import ModelArtifact, deserialize, serialize
from modelhub.storage.adapters import StorageResolver
from modelhub.utils.logging import get_logger, log_context

log = get_logger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    """
    Cached artifact.

    Attributes:
        artifact: The deserialized model.
        version: Storage version token at load time.
        loaded_at: Monotonic time of the load.
    """

    artifact: ModelArtifact
    version: str
    loaded_at: float


class ModelRepository:
    """
    Loads and caches model artifacts by location key.

    Args:
        storage: Resolver for location keys.
        cache: Mapping used as the cache; owned by this repository.
        check_versions: Compare the storage version token on every load and
            reload when it changed.
    """

    def __init__(
        self,
        storage: StorageResolver,
        cache: MutableMapping[str, CacheEntry] | None = None,
        *,
        check_versions: bool = False,
    ) -> None:
        self.storage = storage
        self._cache: MutableMapping[str, CacheEntry] = cache if cache is not None else {}
        self._lock = threading.Lock()
        self.check_versions = check_versions

    def _is_fresh(self, key: str, entry: CacheEntry | None, version: str | None) -> bool:
        if entry is None:
            return False
        if version is not None:
            return entry.version == version
        if self.check_versions:
            return entry.version == self.storage.version(key)
        return True

    def load(
        self,
        location_key: str,
        *,
        force_refresh: bool = False,
        version: str | None = None,
    ) -> ModelArtifact:
        """
        Return the artifact stored at a location key.

        Args:
            location_key: ``kind:path`` key.
            force_refresh: Bypass the cache.
            version: Expected version token; a cached entry with a different
                token is reloaded.

        Returns:
            The cached or freshly loaded artifact.

        Raises:
            ModelLoadError: If the artifact cannot be read or deserialized.
                The cache keeps its previous entry.
        """
        try:
            if not force_refresh:
                entry = self._cache.get(location_key)
                if self._is_fresh(location_key, entry, version):
                    return entry.artifact

            with self._lock:
                entry = self._cache.get(location_key)
                # another thread may have refreshed while this one waited
                if not force_refresh and self._is_fresh(location_key, entry, version):
                    return entry.artifact
                return self._refresh(location_key).artifact
        except (StorageError, ConfigurationError) as e:
            raise ModelLoadError(location_key, str(e)) from e

    def _refresh(self, location_key: str) -> CacheEntry:
        with log_context(location=location_key):
            token = self.storage.version(location_key)
            data = self.storage.read(location_key)
            artifact = deserialize(data, location_key)
            entry = CacheEntry(artifact=artifact, version=token, loaded_at=time.monotonic())
            self._cache[location_key] = entry
            log.info(
                "Loaded model",
                algorithm=artifact.algorithm_name,
                version=token,
                input_width=artifact.input_width,
            )
        return entry

    def save(self, artifact: ModelArtifact, location_key: str) -> str:
        """
        Serialize and store an artifact.

        The cached entry for the key is dropped so the next load reads the
        stored version.

        Returns:
            Location key to load the artifact from.

        Raises:
            StorageError: If the write fails.
            ConfigurationError: If the key's storage kind is unknown.
        """
        stored = self.storage.write(location_key, serialize(artifact))
        with self._lock:
            self._cache.pop(location_key, None)
            self._cache.pop(stored, None)
        return stored

    def evict(self, location_key: str) -> bool:
        """Drop a cached entry; returns whether one was present."""
        with self._lock:
            return self._cache.pop(location_key, None) is not None

    def cached(self, location_key: str) -> CacheEntry | None:
        """Current cache entry for a key, if any."""
        return self._cache.get(location_key)
