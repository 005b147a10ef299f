"""
Object storage: local disk or an S3-compatible bucket.

``get`` opens the object before returning so a missing or unreachable
object fails while the caller can still send an error response; the
returned iterator yields chunks and releases the handle when exhausted or
closed.
"""
import logging
import os
import shutil
import uuid
from functools import lru_cache
from typing import BinaryIO

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from dropshare.core.config import settings
from dropshare.core.errors import ObjectNotFound, StorageBackendFailure

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024  # 1MB chunk size


def make_object_key(user_id: int, filename: str, prefix: str = "uploads") -> str:
    ext = os.path.splitext(filename)[1].lower()
    if not ext[1:].isalnum():
        ext = ""
    return f"{prefix}/{user_id}/{uuid.uuid4().hex}{ext}"


class ObjectStream:
    """
    Iterator over the bytes of an opened object. The handle is released at
    end of stream, on a read error, or when ``close`` is called.
    """

    def __init__(self, handle, key: str, chunk_size: int, read_errors: tuple):
        self._handle = handle
        self.key = key
        self.chunk_size = chunk_size
        self._read_errors = read_errors
        self.closed = False

    def __iter__(self) -> "ObjectStream":
        return self

    def __next__(self) -> bytes:
        if self.closed:
            raise StopIteration
        try:
            chunk = self._handle.read(self.chunk_size)
        except self._read_errors as e:
            self.close()
            raise StorageBackendFailure(f"Read of {self.key} failed mid-stream") from e
        if not chunk:
            self.close()
            raise StopIteration
        return chunk

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._handle.close()


class StorageBackend:
    name = "abstract"

    def put(self, key: str, fileobj: BinaryIO, content_type: str = "application/octet-stream") -> str:
        raise NotImplementedError

    def get(self, key: str, chunk_size: int = CHUNK_SIZE) -> ObjectStream:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def exists(self, key: str) -> bool:
        raise NotImplementedError


class LocalStorage(StorageBackend):
    name = "local"

    def __init__(self, root: str):
        self.root = os.path.abspath(root)
        os.makedirs(self.root, exist_ok=True)

    def _path(self, key: str) -> str:
        path = os.path.abspath(os.path.join(self.root, key))
        if os.path.commonpath([self.root, path]) != self.root:
            raise StorageBackendFailure(f"Key escapes storage root: {key}")
        return path

    def put(self, key: str, fileobj: BinaryIO, content_type: str = "application/octet-stream") -> str:
        path = self._path(key)
        temp_path = f"{path}.{uuid.uuid4().hex}.part"
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            with open(temp_path, "wb") as buffer:
                shutil.copyfileobj(fileobj, buffer, CHUNK_SIZE)
            os.replace(temp_path, path)
        except OSError as e:
            logger.error(f"LocalDisk PUT failed for {key}: {e}")
            if os.path.exists(temp_path):
                os.remove(temp_path)
            raise StorageBackendFailure(f"Could not store {key}") from e
        return key

    def get(self, key: str, chunk_size: int = CHUNK_SIZE) -> ObjectStream:
        path = self._path(key)
        try:
            file_like = open(path, mode="rb")
        except FileNotFoundError as e:
            raise ObjectNotFound(key) from e
        except OSError as e:
            logger.error(f"LocalDisk GET failed for {key}: {e}")
            raise StorageBackendFailure(f"Could not read {key}") from e
        return ObjectStream(file_like, key, chunk_size, (OSError,))

    def delete(self, key: str) -> None:
        try:
            os.remove(self._path(key))
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error(f"LocalDisk DELETE failed for {key}: {e}")
            raise StorageBackendFailure(f"Could not delete {key}") from e

    def exists(self, key: str) -> bool:
        return os.path.exists(self._path(key))


class S3Storage(StorageBackend):
    name = "s3"

    def __init__(self, bucket: str, client=None):
        self.bucket = bucket
        self._s3 = client or boto3.client(
            "s3",
            endpoint_url=settings.S3_ENDPOINT_URL,
            aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
            aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
            region_name=settings.AWS_REGION,
            config=Config(
                signature_version="s3v4",
                connect_timeout=5,
                read_timeout=30,
                retries={"max_attempts": 3, "mode": "standard"},
            ),
        )

    @staticmethod
    def _is_missing(e: ClientError) -> bool:
        return e.response.get("Error", {}).get("Code") in ("NoSuchKey", "404", "NotFound")

    def put(self, key: str, fileobj: BinaryIO, content_type: str = "application/octet-stream") -> str:
        try:
            self._s3.upload_fileobj(fileobj, self.bucket, key, ExtraArgs={"ContentType": content_type})
        except (ClientError, BotoCoreError) as e:
            logger.error(f"S3 PUT failed for {key}: {e}")
            raise StorageBackendFailure(f"Could not store {key}") from e
        return key

    def get(self, key: str, chunk_size: int = CHUNK_SIZE) -> ObjectStream:
        try:
            response = self._s3.get_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if self._is_missing(e):
                raise ObjectNotFound(key) from e
            logger.error(f"S3 GET failed for {key}: {e}")
            raise StorageBackendFailure(f"Could not read {key}") from e
        except BotoCoreError as e:
            logger.error(f"S3 GET error for {key}: {e}")
            raise StorageBackendFailure(f"Could not read {key}") from e
        return ObjectStream(response["Body"], key, chunk_size, (ClientError, BotoCoreError))

    def delete(self, key: str) -> None:
        try:
            self._s3.delete_object(Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"S3 DELETE failed for {key}: {e}")
            raise StorageBackendFailure(f"Could not delete {key}") from e

    def exists(self, key: str) -> bool:
        try:
            self._s3.head_object(Bucket=self.bucket, Key=key)
            return True
        except ClientError as e:
            if self._is_missing(e):
                return False
            raise StorageBackendFailure(f"Could not stat {key}") from e
        except BotoCoreError as e:
            raise StorageBackendFailure(f"Could not stat {key}") from e


@lru_cache
def get_storage() -> StorageBackend:
    if settings.STORAGE_BACKEND == "s3":
        logger.info(f"Using S3 storage: bucket={settings.S3_BUCKET_NAME}")
        return S3Storage(settings.S3_BUCKET_NAME)
    return LocalStorage(settings.UPLOAD_DIR)
