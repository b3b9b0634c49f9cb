from app.core.settings import settings
from app.services.storage.adapter import GCSStorageAdapter, LocalFileSystemAdapter, StorageAdapter


def get_storage_adapter(*, bucket_override: str | None = None) -> StorageAdapter:
    provider = settings.storage_provider

    if provider == "gcs":
        bucket = bucket_override or settings.gcs_bucket
        if not bucket:
            raise ValueError("GCS bucket is not configured")
        return GCSStorageAdapter(bucket=bucket)

    return LocalFileSystemAdapter(base_path=settings.local_upload_dir)
