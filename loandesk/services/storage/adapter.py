"""Blob stores for applicant documents.

Adapters are synchronous; the document service calls them between flushes so
a failed write can still be rolled back before commit.
"""

from abc import ABC, abstractmethod
from datetime import timedelta
import hashlib
import hmac
from pathlib import Path, PurePosixPath
import time
from typing import Any, Dict
from urllib.parse import quote, urlencode


LOCAL_CONTENT_PATH = "/api/v1/documents/local-content"
DEFAULT_LINK_EXPIRY_SECONDS = 900


class StorageError(RuntimeError):
    """Raised when the backing blob store rejects or cannot complete a call."""


def sign_local_url(secret_key: str, object_key: str, expires: int) -> str:
    message = f"{object_key}:{expires}"
    return hmac.new(secret_key.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).hexdigest()


def verify_local_url_signature(
    secret_key: str,
    object_key: str,
    expires: int,
    signature: str,
    *,
    now: int | None = None,
) -> bool:
    """False when the link has expired or was signed for another key."""
    if (now if now is not None else int(time.time())) > expires:
        return False
    return hmac.compare_digest(sign_local_url(secret_key, object_key, expires), signature)


class StorageAdapter(ABC):
    provider: str = "local"
    bucket: str | None = None
    link_expiry_seconds: int = DEFAULT_LINK_EXPIRY_SECONDS

    @abstractmethod
    def put_object(self, object_key: str, content: bytes, content_type: str | None = None) -> str:
        """Store ``content`` and return the stable URL recorded on the document row."""

    @abstractmethod
    def generate_download_url(self, object_key: str, expires_in: int | None = None) -> str:
        """Short-lived link handed to API clients; never persisted."""

    @abstractmethod
    def delete_object(self, object_key: str) -> None:
        """Remove the object; a missing object is not an error."""


class LocalFileSystemAdapter(StorageAdapter):
    def __init__(
        self,
        base_path: str,
        base_url: str,
        *,
        signing_key: str = "",
        link_expiry_seconds: int = DEFAULT_LINK_EXPIRY_SECONDS,
    ):
        self.base_path = Path(base_path)
        self.base_url = base_url.rstrip("/")
        self.signing_key = signing_key
        self.link_expiry_seconds = link_expiry_seconds
        self.provider = "local"
        self.bucket = "local"

    def resolve_path(self, object_key: str) -> Path:
        """Map a key under ``base_path``; rejects absolute, backslash and ``..`` keys."""
        if "\\" in object_key:
            raise ValueError("Invalid object key")
        key_path = PurePosixPath(object_key)
        if key_path.is_absolute() or ".." in key_path.parts:
            raise ValueError("Invalid object key")
        base = self.base_path.resolve()
        resolved = (base / Path(object_key)).resolve()
        if resolved != base and base not in resolved.parents:
            raise ValueError("Invalid object key")
        return resolved

    def put_object(self, object_key: str, content: bytes, content_type: str | None = None) -> str:
        path = self.resolve_path(object_key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(content)
        except OSError as exc:
            raise StorageError(f"Could not write {object_key}") from exc
        return f"{self.base_url}{LOCAL_CONTENT_PATH}?key={quote(object_key, safe='')}"

    def generate_download_url(self, object_key: str, expires_in: int | None = None) -> str:
        expires = int(time.time()) + (expires_in or self.link_expiry_seconds)
        params = urlencode(
            {
                "key": object_key,
                "expires": expires,
                "signature": sign_local_url(self.signing_key, object_key, expires),
            }
        )
        return f"{self.base_url}{LOCAL_CONTENT_PATH}?{params}"

    def delete_object(self, object_key: str) -> None:
        path = self.resolve_path(object_key)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            raise StorageError(f"Could not delete {object_key}") from exc


class GCSStorageAdapter(StorageAdapter):
    def __init__(self, bucket: str, *, link_expiry_seconds: int = DEFAULT_LINK_EXPIRY_SECONDS):
        # google-cloud-storage is an optional extra
        from google.cloud import storage
        import google.auth
        import google.auth.transport.requests

        self.provider = "gcs"
        self.bucket = bucket
        self.link_expiry_seconds = link_expiry_seconds
        self.credentials, _ = google.auth.default()
        self._auth_request = google.auth.transport.requests.Request()
        self.client = storage.Client(credentials=self.credentials)
        self._bucket_ref = self.client.bucket(bucket)

    def _signing_kwargs(self) -> Dict[str, Any]:
        # Key files sign locally; workload identity goes through IAM SignBlob.
        if hasattr(self.credentials, "sign_bytes"):
            return {"credentials": self.credentials}
        if not self.credentials.valid or not self.credentials.token:
            self.credentials.refresh(self._auth_request)
        service_account_email = getattr(self.credentials, "service_account_email", None)
        if not service_account_email:
            raise StorageError("GCS signed URL requires a service account email")
        return {"service_account_email": service_account_email, "access_token": self.credentials.token}

    def put_object(self, object_key: str, content: bytes, content_type: str | None = None) -> str:
        from google.api_core import exceptions as gcs_exceptions

        blob = self._bucket_ref.blob(object_key)
        try:
            blob.upload_from_string(content, content_type=content_type or "application/octet-stream")
        except gcs_exceptions.GoogleAPIError as exc:
            raise StorageError(f"Could not upload {object_key}") from exc
        return f"gs://{self.bucket}/{object_key}"

    def generate_download_url(self, object_key: str, expires_in: int | None = None) -> str:
        blob = self._bucket_ref.blob(object_key)
        return blob.generate_signed_url(
            version="v4",
            expiration=timedelta(seconds=expires_in or self.link_expiry_seconds),
            method="GET",
            **self._signing_kwargs(),
        )

    def delete_object(self, object_key: str) -> None:
        from google.api_core import exceptions as gcs_exceptions

        try:
            self._bucket_ref.blob(object_key).delete()
        except gcs_exceptions.NotFound:
            return
        except gcs_exceptions.GoogleAPIError as exc:
            raise StorageError(f"Could not delete {object_key}") from exc
