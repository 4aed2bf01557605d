from loandesk.core.settings import settings
from loandesk.services.storage.adapter import (
    GCSStorageAdapter,
    LocalFileSystemAdapter,
    StorageAdapter,
    StorageError,
)


def get_local_adapter() -> LocalFileSystemAdapter:
    return LocalFileSystemAdapter(
        base_path=settings.local_upload_dir,
        base_url=settings.public_base_url,
        signing_key=settings.secret_key,
        link_expiry_seconds=settings.download_link_expiry_seconds,
    )


def get_storage_adapter(provider: str | None = None) -> StorageAdapter:
    """Adapter for ``provider``; defaults to STORAGE_PROVIDER.

    Documents remember the provider they were written to, so reads and deletes
    pass it explicitly after a provider switch.
    """
    provider = provider or settings.storage_provider
    if provider == "gcs":
        if not settings.gcs_bucket:
            raise StorageError("GCS bucket is not configured")
        return GCSStorageAdapter(
            bucket=settings.gcs_bucket,
            link_expiry_seconds=settings.download_link_expiry_seconds,
        )
    if provider == "local":
        return get_local_adapter()
    raise StorageError(f"Unknown storage provider {provider!r}")
