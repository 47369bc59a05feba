"""Local filesystem implementations of the blob store and staging interfaces."""

import asyncio
import os
import shutil
import tempfile
from pathlib import Path

from medscribe.domain.models import Capability
from medscribe.exceptions import (
    BlobNotFoundError,
    CleanupFailedError,
    StorageDeleteError,
    StorageDownloadError,
    StorageUploadError,
)
from medscribe.logging import setup_logging

from .interfaces import BlobStore, BlobStoreFactory, StagingArea

logger = setup_logging()


def _write_atomically(target: Path, data: bytes) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_path = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.replace(temp_path, target)
    except BaseException:
        Path(temp_path).unlink(missing_ok=True)
        raise


class FilesystemBlobStore(BlobStore):
    """Hierarchical blob store where folders are directories under a root."""

    def __init__(self, root: Path):
        self._root = Path(root).resolve()

    def _resolve(self, path: str) -> Path:
        resolved = (self._root / path).resolve()
        if resolved != self._root and self._root not in resolved.parents:
            raise ValueError(f"Path '{path}' escapes the storage root")
        return resolved

    async def put(self, path: str, data: bytes, content_type: str) -> None:
        target = self._resolve(path)
        try:
            await asyncio.to_thread(_write_atomically, target, data)
        except Exception as e:
            logger.exception("Upload failed", extra={"object": path})
            raise StorageUploadError(path, e) from e
        logger.info("Object written", extra={"object": path, "size": len(data)})

    async def get(self, path: str) -> bytes:
        target = self._resolve(path)
        try:
            return await asyncio.to_thread(target.read_bytes)
        except (FileNotFoundError, IsADirectoryError) as e:
            raise BlobNotFoundError(path, e) from e
        except Exception as e:
            logger.exception("Download failed", extra={"object": path})
            raise StorageDownloadError(path, e) from e

    async def exists(self, path: str) -> bool:
        return await asyncio.to_thread(self._resolve(path).exists)

    async def list(self, folder: str, name_filter: str | None = None) -> list[str]:
        directory = self._resolve(folder)

        def _children() -> list[str]:
            if not directory.is_dir():
                return []
            return [
                child.name
                for child in directory.iterdir()
                if not child.name.startswith(".")
            ]

        try:
            names = await asyncio.to_thread(_children)
        except Exception as e:
            logger.exception("Listing failed", extra={"folder": folder})
            raise StorageDownloadError(folder, e) from e
        if name_filter:
            names = [name for name in names if name_filter in name]
        return sorted(names)

    async def delete(self, path: str) -> None:
        target = self._resolve(path)
        try:
            await asyncio.to_thread(target.unlink, missing_ok=True)
        except Exception as e:
            logger.exception("Delete failed", extra={"object": path})
            raise StorageDeleteError(path, e) from e
        logger.info("Object deleted", extra={"object": path})

    async def is_folder(self, path: str) -> bool:
        return await asyncio.to_thread(self._resolve(path).is_dir)

    async def create_folder(self, path: str) -> None:
        target = self._resolve(path)
        try:
            await asyncio.to_thread(target.mkdir, parents=True, exist_ok=True)
        except Exception as e:
            logger.exception("Folder creation failed", extra={"folder": path})
            raise StorageUploadError(path, e) from e
        logger.info("Folder created", extra={"folder": path})

    async def delete_folder(self, path: str) -> bool:
        target = self._resolve(path)
        if target == self._root or not await self.is_folder(path):
            logger.warning(
                "Refusing to delete non-folder object as a folder",
                extra={"object": path},
            )
            return False
        try:
            await asyncio.to_thread(shutil.rmtree, target)
        except Exception as e:
            logger.exception("Folder delete failed", extra={"folder": path})
            raise StorageDeleteError(path, e) from e
        logger.info("Folder deleted", extra={"folder": path})
        return True


class FilesystemBlobStoreFactory(BlobStoreFactory):
    """
    Serves one local store for every owner.

    A local directory has no notion of the owner's OAuth identity, so the
    capability only gates access at the API layer.
    """

    def __init__(self, root: Path):
        self._root = Path(root)

    def for_capability(self, capability: Capability) -> FilesystemBlobStore:
        return FilesystemBlobStore(self._root)


class FilesystemStagingArea(StagingArea):
    """Stages audio as local files and hands out their paths."""

    def __init__(self, staging_dir: Path):
        self._staging_dir = Path(staging_dir)

    async def stage(self, key: str, data: bytes, content_type: str) -> str:
        target = self._staging_dir / key
        try:
            await asyncio.to_thread(_write_atomically, target, data)
        except Exception as e:
            logger.exception("Staging write failed", extra={"staging_key": key})
            raise StorageUploadError(key, e) from e
        logger.info("Audio staged", extra={"staging_key": key, "size": len(data)})
        return str(target)

    async def discard(self, key: str) -> None:
        try:
            await asyncio.to_thread((self._staging_dir / key).unlink, missing_ok=True)
        except Exception as e:
            raise CleanupFailedError(key, e) from e
        logger.info("Staged audio discarded", extra={"staging_key": key})
