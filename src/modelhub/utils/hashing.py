"""
Deterministic hashing utilities.

Provides content-based digests for feature schemas and stored objects.
"""

import hashlib
from collections.abc import Iterable, Sequence
from pathlib import Path


def hash_schema(
    features: Iterable[tuple[str, int]],
    new_to_old: Sequence[int],
) -> str:
    """
    Compute a digest identifying a trained input space.

    Two artifacts with the same digest accept the same aligned vectors:
    same feature names at the same original indices, and the same
    original-to-trained index mapping.

    Args:
        features: (name, original index) pairs.
        new_to_old: Trained slot to original index mapping.

    Returns:
        Hex digest string.
    """
    hasher = hashlib.md5()
    for name, index in features:
        hasher.update(f"{index}:{name};".encode())
    hasher.update(("|" + ",".join(str(i) for i in new_to_old)).encode())
    return hasher.hexdigest()[:16]


def hash_file(path: str | Path) -> str:
    """
    Compute hash based on file path and modification time.

    This is a fast hash that doesn't read file contents.

    Args:
        path: Path to file.

    Returns:
        Hex digest string.
    """
    p = Path(path)
    if not p.exists():
        return "missing"

    stat = p.stat()
    content = f"{p.name}:{stat.st_mtime_ns}:{stat.st_size}"
    return hashlib.md5(content.encode()).hexdigest()[:12]
