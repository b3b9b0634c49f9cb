from abc import ABC, abstractmethod
from pathlib import Path, PurePosixPath
from typing import Iterator
import os
import tempfile


DEFAULT_CHUNK_SIZE = 64 * 1024


class BlobStoreError(Exception):
    """The blob store was unreachable or rejected the operation."""


class StorageAdapter(ABC):
    provider: str = "local"
    bucket: str | None = None

    @abstractmethod
    def put_object(self, object_key: str, data: bytes, content_type: str) -> None:
        """Write ``data`` under ``object_key``; returns only once the bytes are durable."""

    @abstractmethod
    def iter_object(self, object_key: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
        pass

    @abstractmethod
    def delete_object(self, object_key: str) -> None:
        pass

    @abstractmethod
    def object_exists(self, object_key: str) -> bool:
        pass

    def read_object(self, object_key: str) -> bytes:
        return b"".join(self.iter_object(object_key))


class LocalFileSystemAdapter(StorageAdapter):
    def __init__(self, base_path: str):
        self.base_path = Path(base_path)
        self.provider = "local"
        self.bucket = "local"
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _resolve_safe_path(self, object_key: str) -> Path:
        if "\\" in object_key:
            raise ValueError("Invalid object key")
        key_path = PurePosixPath(object_key)
        if key_path.is_absolute() or ".." in key_path.parts:
            raise ValueError("Invalid object key")
        base = self.base_path.resolve()
        resolved = (base / Path(object_key)).resolve()
        if resolved == base or base not in resolved.parents:
            raise ValueError("Invalid object key")
        return resolved

    def put_object(self, object_key: str, data: bytes, content_type: str) -> None:
        path = self._resolve_safe_path(object_key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            # Write to a sibling temp file and rename so readers never see a partial blob
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".upload-")
            try:
                with os.fdopen(fd, "wb") as handle:
                    handle.write(data)
                    handle.flush()
                    os.fsync(handle.fileno())
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise BlobStoreError(f"Failed to write {object_key}") from exc

    def iter_object(self, object_key: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
        path = self._resolve_safe_path(object_key)
        try:
            handle = path.open("rb")
        except OSError as exc:
            raise BlobStoreError(f"Failed to open {object_key}") from exc
        return self._iter_handle(handle, chunk_size)

    @staticmethod
    def _iter_handle(handle, chunk_size: int) -> Iterator[bytes]:
        with handle:
            while True:
                chunk = handle.read(chunk_size)
                if not chunk:
                    break
                yield chunk

    def delete_object(self, object_key: str) -> None:
        path = self._resolve_safe_path(object_key)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            raise BlobStoreError(f"Failed to delete {object_key}") from exc

    def object_exists(self, object_key: str) -> bool:
        try:
            path = self._resolve_safe_path(object_key)
        except ValueError:
            return False
        return path.is_file()


class GCSStorageAdapter(StorageAdapter):
    def __init__(self, bucket: str):
        # Lazy import to avoid requiring dependency unless used
        from google.cloud import storage
        from google.api_core import exceptions as gcs_exceptions

        self.provider = "gcs"
        self.bucket = bucket
        self._errors = gcs_exceptions
        self.client = storage.Client()
        self._bucket_ref = self.client.bucket(bucket)

    def put_object(self, object_key: str, data: bytes, content_type: str) -> None:
        blob = self._bucket_ref.blob(object_key)
        try:
            # if_generation_match=0 refuses to overwrite an existing object
            blob.upload_from_string(data, content_type=content_type, if_generation_match=0)
        except self._errors.GoogleAPIError as exc:
            raise BlobStoreError(f"Failed to write {object_key}") from exc

    def iter_object(self, object_key: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
        blob = self._bucket_ref.blob(object_key)
        try:
            handle = blob.open("rb", chunk_size=chunk_size)
        except self._errors.GoogleAPIError as exc:
            raise BlobStoreError(f"Failed to open {object_key}") from exc
        return LocalFileSystemAdapter._iter_handle(handle, chunk_size)

    def delete_object(self, object_key: str) -> None:
        blob = self._bucket_ref.blob(object_key)
        try:
            blob.delete()
        except self._errors.NotFound:
            return
        except self._errors.GoogleAPIError as exc:
            raise BlobStoreError(f"Failed to delete {object_key}") from exc

    def object_exists(self, object_key: str) -> bool:
        blob = self._bucket_ref.blob(object_key)
        try:
            return blob.exists()
        except self._errors.GoogleAPIError as exc:
            raise BlobStoreError(f"Failed to stat {object_key}") from exc
