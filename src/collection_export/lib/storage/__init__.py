"""Artifact storage for generated export files.

Provides an ``ArtifactStorage`` Protocol and a ``LocalArtifactStorage``
implementation that writes files to the local filesystem using async I/O.
Artifacts are addressed by keys of the form
``{collection_id}/{record_id}/{filename}``.
"""

from pathlib import Path, PurePosixPath
from typing import BinaryIO, Protocol

import aiofiles

_CHUNK_SIZE = 64 * 1024


class ArtifactStorage(Protocol):
    """Abstract artifact storage interface.

    Implementations must provide async save, load, and delete operations.
    """

    async def save(self, key: str, source: BinaryIO) -> int:
        """Copy the stream's remaining content to ``key``.

        Args:
            key: Target storage key.
            source: Binary stream positioned at the start of the content.

        Returns:
            The number of bytes written.
        """
        ...

    async def load(self, key: str) -> bytes:
        """Load an artifact's content.

        Raises:
            FileNotFoundError: If the artifact does not exist.
        """
        ...

    async def delete(self, key: str) -> None:
        """Delete an artifact.

        Raises:
            FileNotFoundError: If the artifact does not exist.
        """
        ...


class LocalArtifactStorage:
    """Local filesystem implementation of ArtifactStorage.

    Args:
        base_dir: The root directory for artifact storage.
    """

    def __init__(self, base_dir: str | Path) -> None:
        self._base_dir = Path(base_dir)

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def path_for(self, key: str) -> Path:
        """Return the filesystem path for a key.

        Raises:
            ValueError: If the key is absolute or escapes the base directory.
        """
        relative = PurePosixPath(key)
        if relative.is_absolute() or ".." in relative.parts or not relative.parts:
            msg = f"Invalid storage key: {key!r}"
            raise ValueError(msg)
        return self._base_dir.joinpath(*relative.parts)

    async def save(self, key: str, source: BinaryIO) -> int:
        """Copy the stream to the local filesystem in chunks.

        Creates parent directories as needed.
        """
        full_path = self.path_for(key)
        full_path.parent.mkdir(parents=True, exist_ok=True)

        written = 0
        async with aiofiles.open(full_path, "wb") as f:
            while chunk := source.read(_CHUNK_SIZE):
                await f.write(chunk)
                written += len(chunk)
        return written

    async def load(self, key: str) -> bytes:
        full_path = self.path_for(key)
        if not full_path.exists():
            msg = f"File not found: {key}"
            raise FileNotFoundError(msg)

        async with aiofiles.open(full_path, "rb") as f:
            return await f.read()

    async def delete(self, key: str) -> None:
        full_path = self.path_for(key)
        if not full_path.exists():
            msg = f"File not found: {key}"
            raise FileNotFoundError(msg)
        full_path.unlink()


__all__ = ["ArtifactStorage", "LocalArtifactStorage"]
