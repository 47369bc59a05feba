"""Abstract interfaces for recording blob storage."""

from abc import ABC, abstractmethod

from medscribe.domain.models import Capability


class BlobStore(ABC):
    """
    Hierarchical namespace of objects and folders.

    Paths use ``/`` separators and never start or end with one. Folders may
    be real (directories) or emulated (marker objects); callers only see the
    difference through ``is_folder``.
    """

    @abstractmethod
    async def put(self, path: str, data: bytes, content_type: str) -> None:
        """
        Writes an object, replacing any existing one at the same path.

        Args:
            path: Object path.
            data: Object contents.
            content_type: MIME type of the contents.

        Raises:
            StorageUploadError: If the write fails.
        """
        pass

    @abstractmethod
    async def get(self, path: str) -> bytes:
        """
        Reads an object.

        Args:
            path: Object path.

        Returns:
            The object contents.

        Raises:
            BlobNotFoundError: If no object exists at the path.
            StorageDownloadError: If the read fails.
        """
        pass

    @abstractmethod
    async def exists(self, path: str) -> bool:
        """Returns True if an object or folder exists at the path."""
        pass

    @abstractmethod
    async def list(self, folder: str, name_filter: str | None = None) -> list[str]:
        """
        Lists the direct children of a folder.

        Args:
            folder: Folder path.
            name_filter: Optional substring the child name must contain.

        Returns:
            Sorted child names (not full paths). Empty if the folder is missing.
        """
        pass

    @abstractmethod
    async def delete(self, path: str) -> None:
        """
        Deletes a single object. Deleting a missing object is a no-op.

        Raises:
            StorageDeleteError: If the delete fails.
        """
        pass

    @abstractmethod
    async def is_folder(self, path: str) -> bool:
        """Returns True only if the path is an existing folder."""
        pass

    @abstractmethod
    async def create_folder(self, path: str) -> None:
        """
        Creates a folder if absent. Not safe against concurrent creators on
        its own; callers serialize first-use creation with a lock.

        Raises:
            StorageUploadError: If the folder cannot be created.
        """
        pass

    @abstractmethod
    async def delete_folder(self, path: str) -> bool:
        """
        Recursively deletes a folder.

        Refuses targets that are not folders: logs a warning and returns
        False without touching anything.

        Returns:
            True if the folder was deleted.

        Raises:
            StorageDeleteError: If the delete fails part way.
        """
        pass


class BlobStoreFactory(ABC):
    """Builds blob stores scoped to one owner's credentials."""

    @abstractmethod
    def for_capability(self, capability: Capability) -> BlobStore:
        """
        Returns a store that acts with the given credentials.

        A new store is built per call; no client state is shared between
        owners.
        """
        pass


class StagingArea(ABC):
    """Temporary location the transcription service can read audio from."""

    @abstractmethod
    async def stage(self, key: str, data: bytes, content_type: str) -> str:
        """
        Stores audio for transcription.

        Args:
            key: Unique staging key.
            data: Audio bytes.
            content_type: MIME type of the audio.

        Returns:
            A locator (URL or path) the transcription service accepts.

        Raises:
            StorageUploadError: If staging fails.
        """
        pass

    @abstractmethod
    async def discard(self, key: str) -> None:
        """
        Removes a staged object. Missing keys are ignored.

        Raises:
            CleanupFailedError: If the object exists but cannot be removed.
        """
        pass
