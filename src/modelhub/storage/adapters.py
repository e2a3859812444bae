"""
Storage adapters for serialized model artifacts.

Location keys take the form ``kind:path``. A key without a known kind
prefix is treated as a local file path, so plain paths (including Windows
drive letters) keep working.
"""

import os
import re
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path

from modelhub.config.settings import StorageConfig
from modelhub.exceptions import ConfigurationError, StorageError
from modelhub.utils.hashing import hash_file
from modelhub.utils.logging import get_logger

log = get_logger(__name__)

GOVERNANCE_PREFIX = "/_system/governance"

_KIND_PATTERN = re.compile(r"^([A-Za-z][A-Za-z0-9_]+):(.*)$", re.DOTALL)


class StorageAdapter(ABC):
    """Reads and writes opaque artifact bytes."""

    kind: str = ""

    @abstractmethod
    def read(self, path: str) -> bytes:
        """
        Read stored bytes.

        Raises:
            StorageError: If nothing is stored at the path.
        """

    @abstractmethod
    def write(self, path: str, data: bytes) -> str:
        """Store bytes and return the location key to load them from."""

    @abstractmethod
    def version(self, path: str) -> str:
        """Token that changes whenever the stored object changes."""


def _atomic_write(target: Path, data: bytes, exclusive: bool = False) -> None:
    """
    Write via a temporary sibling and rename, so readers never see partial files.

    With ``exclusive`` the complete file is hard-linked into place instead,
    which raises FileExistsError rather than replacing an existing target.
    """
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        if exclusive:
            os.link(tmp_name, target)
        else:
            os.replace(tmp_name, target)
    finally:
        Path(tmp_name).unlink(missing_ok=True)


class FileStorageAdapter(StorageAdapter):
    """
    Plain files on the local filesystem.

    Attributes:
        root: Base directory for relative paths; None resolves against the
            working directory.
    """

    kind = "file"

    def __init__(self, root: Path | None = None) -> None:
        self.root = Path(root) if root is not None else None

    def resolve(self, path: str) -> Path:
        """Absolute location of a stored file."""
        p = Path(path)
        if self.root is not None and not p.is_absolute():
            p = self.root / p
        return p

    def read(self, path: str) -> bytes:
        target = self.resolve(path)
        try:
            return target.read_bytes()
        except FileNotFoundError as e:
            msg = f"No such file: {target}"
            raise StorageError(msg) from e
        except OSError as e:
            msg = f"Cannot read {target}: {e}"
            raise StorageError(msg) from e

    def write(self, path: str, data: bytes) -> str:
        target = self.resolve(path)
        try:
            _atomic_write(target, data)
        except OSError as e:
            msg = f"Cannot write {target}: {e}"
            raise StorageError(msg) from e
        log.info("Stored artifact", path=str(target), size=len(data))
        return f"{self.kind}:{path}"

    def version(self, path: str) -> str:
        return hash_file(self.resolve(path))


class RegistryStorageAdapter(StorageAdapter):
    """
    Versioned artifact registry on the filesystem.

    Every write under a registry path creates the next numbered version
    (``<root>/<path>/<n>.bin``); reads return the latest version unless the
    path pins one with ``@<n>``. Governance-style paths are accepted with or
    without the ``/_system/governance`` prefix.

    Attributes:
        root: Directory backing the registry.
    """

    kind = "registry"

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    @staticmethod
    def normalize(path: str) -> str:
        """Strip the governance prefix and surrounding slashes."""
        if path.startswith(GOVERNANCE_PREFIX):
            path = path[len(GOVERNANCE_PREFIX):]
        return path.strip("/")

    def _split_version(self, path: str) -> tuple[Path, int | None]:
        name, sep, pinned = path.partition("@")
        directory = self.root / self.normalize(name)
        if not sep:
            return directory, None
        try:
            return directory, int(pinned)
        except ValueError as e:
            msg = f"Invalid registry version {pinned!r} in {path!r}"
            raise StorageError(msg) from e

    @staticmethod
    def _versions(directory: Path) -> list[int]:
        if not directory.is_dir():
            return []
        return sorted(int(p.stem) for p in directory.glob("*.bin") if p.stem.isdigit())

    def _resolve(self, path: str) -> Path:
        directory, pinned = self._split_version(path)
        if pinned is None:
            versions = self._versions(directory)
            if not versions:
                msg = f"No versions stored for registry path {path!r}"
                raise StorageError(msg)
            pinned = versions[-1]
        return directory / f"{pinned}.bin"

    def read(self, path: str) -> bytes:
        target = self._resolve(path)
        try:
            return target.read_bytes()
        except OSError as e:
            msg = f"Cannot read registry object {path!r}: {e}"
            raise StorageError(msg) from e

    def write(self, path: str, data: bytes) -> str:
        directory, pinned = self._split_version(path)
        if pinned is not None:
            msg = f"Cannot write to a pinned registry version: {path!r}"
            raise StorageError(msg)

        versions = self._versions(directory)
        number = versions[-1] + 1 if versions else 1
        while True:
            try:
                _atomic_write(directory / f"{number}.bin", data, exclusive=True)
                break
            except FileExistsError:
                # another writer claimed this version first
                number += 1
            except OSError as e:
                msg = f"Cannot write registry object {path!r}: {e}"
                raise StorageError(msg) from e

        log.info("Registered artifact version", path=self.normalize(path), version=number)
        return f"{self.kind}:{self.normalize(path)}"

    def version(self, path: str) -> str:
        try:
            target = self._resolve(path)
        except StorageError:
            return "missing"
        return f"{target.stem}-{hash_file(target)}"


def parse_location(location_key: str) -> tuple[str, str]:
    """
    Split a location key into (kind, path).

    Keys without a prefix, and Windows drive letters such as ``C:``, are
    local file paths.

    Raises:
        ConfigurationError: If the key is empty.
    """
    if not location_key or not location_key.strip():
        msg = "Model location must not be empty"
        raise ConfigurationError(msg)

    match = _KIND_PATTERN.match(location_key)
    if match is None:
        return FileStorageAdapter.kind, location_key
    return match.group(1).lower(), match.group(2)


class StorageResolver:
    """
    Dispatches location keys to the adapter for their kind.

    Attributes:
        adapters: Adapter per kind.
    """

    def __init__(self, adapters: dict[str, StorageAdapter] | None = None) -> None:
        self.adapters = dict(adapters or {FileStorageAdapter.kind: FileStorageAdapter()})

    @classmethod
    def from_config(cls, config: StorageConfig) -> "StorageResolver":
        """Build the built-in adapters from the storage section."""
        return cls(
            {
                FileStorageAdapter.kind: FileStorageAdapter(config.root),
                RegistryStorageAdapter.kind: RegistryStorageAdapter(config.registry_root),
            }
        )

    def resolve(self, location_key: str) -> tuple[StorageAdapter, str]:
        """
        Find the adapter for a location key.

        Raises:
            ConfigurationError: If no adapter handles the key's kind.
        """
        kind, path = parse_location(location_key)
        if kind not in self.adapters:
            available = ", ".join(sorted(self.adapters))
            msg = f"Unsupported storage kind '{kind}' in {location_key!r}. Available: {available}"
            raise ConfigurationError(msg)
        return self.adapters[kind], path

    def read(self, location_key: str) -> bytes:
        adapter, path = self.resolve(location_key)
        return adapter.read(path)

    def write(self, location_key: str, data: bytes) -> str:
        adapter, path = self.resolve(location_key)
        return adapter.write(path, data)

    def version(self, location_key: str) -> str:
        adapter, path = self.resolve(location_key)
        return adapter.version(path)
