"""MinIO implementations of the blob store and staging interfaces."""

import asyncio
import builtins
import io
from datetime import timedelta

from minio import Minio
from minio.credentials import WebIdentityProvider
from minio.deleteobjects import DeleteObject
from minio.error import S3Error

from medscribe.config import MinioConfig
from medscribe.domain.models import Capability
from medscribe.exceptions import (
    BlobNotFoundError,
    CleanupFailedError,
    StorageDeleteError,
    StorageDownloadError,
    StorageUploadError,
    UnauthorizedError,
)
from medscribe.logging import setup_logging

from .interfaces import BlobStore, BlobStoreFactory, StagingArea

logger = setup_logging()

FOLDER_CONTENT_TYPE = "application/x-directory"
_NOT_FOUND_CODES = {"NoSuchKey", "NoSuchObject"}
_UNAUTHORIZED_CODES = {"AccessDenied", "InvalidAccessKeyId", "ExpiredToken"}


def _is_not_found(error: Exception) -> bool:
    return isinstance(error, S3Error) and error.code in _NOT_FOUND_CODES


def _is_unauthorized(error: Exception) -> bool:
    return isinstance(error, S3Error) and error.code in _UNAUTHORIZED_CODES


class MinioBlobStore(BlobStore):
    """
    Flat-bucket blob store.

    Folders are emulated with zero-byte marker objects named ``<path>/``;
    a path is a folder only if its marker exists.
    """

    def __init__(self, client: Minio, bucket_name: str):
        self._client = client
        self._bucket_name = bucket_name

    async def put(self, path: str, data: bytes, content_type: str) -> None:
        try:
            await asyncio.to_thread(
                self._client.put_object,
                bucket_name=self._bucket_name,
                object_name=path,
                data=io.BytesIO(data),
                length=len(data),
                content_type=content_type,
            )
            logger.info(
                "Object uploaded",
                extra={"bucket": self._bucket_name, "object": path, "size": len(data)},
            )
        except Exception as e:
            logger.exception("Upload failed", extra={"object": path})
            if _is_unauthorized(e):
                raise UnauthorizedError("object storage", e) from e
            raise StorageUploadError(path, e) from e

    async def get(self, path: str) -> bytes:
        try:
            data = await asyncio.to_thread(self._read_object, path)
        except Exception as e:
            if _is_not_found(e):
                raise BlobNotFoundError(path, e) from e
            logger.exception("Download failed", extra={"object": path})
            if _is_unauthorized(e):
                raise UnauthorizedError("object storage", e) from e
            raise StorageDownloadError(path, e) from e

        logger.info("Object downloaded", extra={"bucket": self._bucket_name, "object": path})
        return data

    def _read_object(self, path: str) -> bytes:
        response = self._client.get_object(self._bucket_name, path)
        try:
            return response.read()
        finally:
            response.close()
            response.release_conn()

    async def exists(self, path: str) -> bool:
        return await self._stat(path) or await self._stat(f"{path}/")

    async def _stat(self, object_name: str) -> bool:
        try:
            await asyncio.to_thread(self._client.stat_object, self._bucket_name, object_name)
            return True
        except S3Error as e:
            if e.code in _NOT_FOUND_CODES:
                return False
            logger.exception("Stat failed", extra={"object": object_name})
            raise StorageDownloadError(object_name, e) from e

    async def list(self, folder: str, name_filter: str | None = None) -> list[str]:
        prefix = f"{folder}/" if folder else ""
        try:
            objects = await asyncio.to_thread(
                lambda: list(
                    self._client.list_objects(
                        self._bucket_name, prefix=prefix, recursive=False
                    )
                )
            )
        except Exception as e:
            logger.exception("Listing failed", extra={"folder": folder})
            raise StorageDownloadError(folder, e) from e

        names = set()
        for obj in objects:
            name = obj.object_name[len(prefix):].rstrip("/")
            if not name:
                continue
            if name_filter and name_filter not in name:
                continue
            names.add(name)
        return sorted(names)

    async def delete(self, path: str) -> None:
        try:
            await asyncio.to_thread(self._client.remove_object, self._bucket_name, path)
            logger.info("Object deleted", extra={"object": path})
        except Exception as e:
            logger.exception("Delete failed", extra={"object": path})
            raise StorageDeleteError(path, e) from e

    async def is_folder(self, path: str) -> bool:
        return await self._stat(f"{path}/")

    async def create_folder(self, path: str) -> None:
        await self.put(f"{path}/", b"", FOLDER_CONTENT_TYPE)

    async def delete_folder(self, path: str) -> bool:
        if not await self.is_folder(path):
            logger.warning(
                "Refusing to delete non-folder object as a folder",
                extra={"object": path},
            )
            return False

        try:
            errors = await asyncio.to_thread(self._remove_prefix, f"{path}/")
        except Exception as e:
            logger.exception("Folder delete failed", extra={"folder": path})
            raise StorageDeleteError(path, e) from e

        if errors:
            logger.error(
                "Folder delete left objects behind",
                extra={"folder": path, "errors": errors},
            )
            raise StorageDeleteError(path)

        logger.info("Folder deleted", extra={"folder": path})
        return True

    def _remove_prefix(self, prefix: str) -> builtins.list[str]:
        to_delete = [
            DeleteObject(obj.object_name)
            for obj in self._client.list_objects(
                self._bucket_name, prefix=prefix, recursive=True
            )
        ]
        errors = self._client.remove_objects(self._bucket_name, to_delete)
        return [f"{error.name}: {error.message}" for error in errors]


class MinioBlobStoreFactory(BlobStoreFactory):
    """
    Builds MinIO stores per owner.

    With an STS endpoint configured the owner's OAuth access token is
    exchanged for temporary credentials (AssumeRoleWithWebIdentity), so the
    bucket policy decides what the owner may touch. Without one, the
    service account is used.
    """

    def __init__(self, config: MinioConfig):
        self._config = config

    def for_capability(self, capability: Capability) -> MinioBlobStore:
        return MinioBlobStore(self._client_for(capability), self._config.bucket_name)

    def service_client(self) -> Minio:
        return Minio(
            endpoint=self._config.endpoint,
            access_key=self._config.user,
            secret_key=self._config.password,
            secure=self._config.secure,
        )

    def _client_for(self, capability: Capability) -> Minio:
        if not self._config.sts_endpoint:
            return self.service_client()

        token = capability.access_token
        provider = WebIdentityProvider(
            jwt_provider_func=lambda: {"access_token": token},
            sts_endpoint=self._config.sts_endpoint,
        )
        return Minio(
            endpoint=self._config.endpoint,
            credentials=provider,
            secure=self._config.secure,
        )

    def ensure_bucket_exists(self, bucket_name: str | None = None) -> None:
        """
        Ensures a bucket exists in MinIO, creating it if necessary.

        Args:
            bucket_name: The bucket to check; the recordings bucket when None.
        """
        bucket_name = bucket_name or self._config.bucket_name
        client = self.service_client()
        if not client.bucket_exists(bucket_name):
            client.make_bucket(bucket_name)
            logger.info("Bucket created", extra={"bucket": bucket_name})
        else:
            logger.info("Bucket exists", extra={"bucket": bucket_name})


class MinioStagingArea(StagingArea):
    """Stages audio in a dedicated bucket behind presigned GET URLs."""

    def __init__(self, client: Minio, bucket_name: str, url_ttl_seconds: int):
        self._client = client
        self._bucket_name = bucket_name
        self._url_ttl = timedelta(seconds=url_ttl_seconds)

    async def stage(self, key: str, data: bytes, content_type: str) -> str:
        try:
            await asyncio.to_thread(
                self._client.put_object,
                bucket_name=self._bucket_name,
                object_name=key,
                data=io.BytesIO(data),
                length=len(data),
                content_type=content_type,
            )
            url = await asyncio.to_thread(
                self._client.presigned_get_object,
                self._bucket_name,
                key,
                expires=self._url_ttl,
            )
        except Exception as e:
            logger.exception("Staging upload failed", extra={"staging_key": key})
            raise StorageUploadError(key, e) from e

        logger.info(
            "Audio staged",
            extra={"bucket": self._bucket_name, "staging_key": key, "size": len(data)},
        )
        return url

    async def discard(self, key: str) -> None:
        try:
            await asyncio.to_thread(self._client.remove_object, self._bucket_name, key)
        except Exception as e:
            raise CleanupFailedError(key, e) from e
        logger.info("Staged audio discarded", extra={"staging_key": key})
