"""
Storage backend adapter.
Uploads paste content to an S3-compatible object storage account (MinIO)
and downloads it again from the links it issues.
"""
import asyncio
import io
import json
import logging
import uuid
from enum import Enum
from typing import Optional
from urllib.parse import quote, unquote

from minio import Minio

from cloudpaste.errors import StorageError, StorageNotReadyError

logger = logging.getLogger(__name__)

CONTENT_TYPE = "text/plain; charset=utf-8"

# Anonymous read policy so issued links can be opened directly
_PUBLIC_READ_POLICY = {
    "Version": "2012-10-17",
    "Statement": [
        {
            "Effect": "Allow",
            "Principal": {"AWS": ["*"]},
            "Action": ["s3:GetObject"],
            "Resource": ["arn:aws:s3:::{bucket}/*"],
        }
    ],
}


class BackendState(str, Enum):
    """Lifecycle of the storage account handshake."""
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    FAILED = "failed"


class StorageBackend:
    """Stores bytes under a display name and fetches them back by link."""

    def __init__(
        self,
        endpoint: str,
        access_key: str,
        secret_key: str,
        bucket: str,
        public_url: str,
        secure: bool = False,
        timeout: float = 30.0,
    ):
        """Configure the account; no connection is made until connect()."""
        self.endpoint = endpoint
        self.access_key = access_key
        self.secret_key = secret_key
        self.bucket = bucket
        self.public_url = public_url.rstrip("/")
        self.secure = secure
        self.timeout = timeout
        self.state = BackendState.UNINITIALIZED
        self.client: Optional[Minio] = None
        self._handshake: Optional[asyncio.Task] = None

    @classmethod
    def from_settings(cls, settings) -> "StorageBackend":
        """Build a backend from the MINIO_* settings."""
        return cls(
            endpoint=settings.MINIO_ENDPOINT,
            access_key=settings.MINIO_ACCESS_KEY,
            secret_key=settings.MINIO_SECRET_KEY,
            bucket=settings.MINIO_BUCKET,
            public_url=settings.MINIO_PUBLIC_URL,
            secure=settings.MINIO_SECURE,
            timeout=settings.BACKEND_TIMEOUT_SECONDS,
        )

    @property
    def is_ready(self) -> bool:
        """True once the handshake has succeeded."""
        return self.state is BackendState.READY

    def start(self) -> asyncio.Task:
        """Schedule the handshake without waiting for it."""
        if self._handshake is None:
            self._handshake = asyncio.create_task(self.connect())
        return self._handshake

    async def connect(self) -> None:
        """
        Authenticate against the storage account and prepare the bucket.
        Leaves the backend READY on success and FAILED otherwise.
        """
        try:
            if not self.access_key or not self.secret_key:
                raise StorageError("Storage credentials are not configured")
            self.client = Minio(
                self.endpoint,
                access_key=self.access_key,
                secret_key=self.secret_key,
                secure=self.secure,
            )
            await self._call(self._prepare_bucket)
        except Exception as e:
            self.state = BackendState.FAILED
            logger.error(f"Storage backend handshake failed: {type(e).__name__}: {e}")
            return
        self.state = BackendState.READY
        logger.info(f"Storage backend ready (endpoint={self.endpoint}, bucket={self.bucket})")

    async def close(self) -> None:
        """Cancel a handshake that is still running."""
        if self._handshake is not None and not self._handshake.done():
            self._handshake.cancel()

    def _prepare_bucket(self) -> None:
        """Create the bucket if needed and make its objects publicly readable."""
        if not self.client.bucket_exists(self.bucket):
            self.client.make_bucket(self.bucket)
        policy = json.dumps(_PUBLIC_READ_POLICY).replace("{bucket}", self.bucket)
        self.client.set_bucket_policy(self.bucket, policy)

    async def _call(self, func, *args, **kwargs):
        """Run a blocking client call in a thread, bounded by the backend timeout."""
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(func, *args, **kwargs), timeout=self.timeout
            )
        except asyncio.TimeoutError as e:
            raise StorageError(f"Storage backend timed out after {self.timeout}s") from e

    def _require_ready(self) -> None:
        """Raise StorageNotReadyError unless the handshake has succeeded."""
        if not self.is_ready:
            raise StorageNotReadyError(f"Storage backend is not ready (state={self.state.value})")

    def link_for(self, object_name: str) -> str:
        """Public link for an object in the bucket."""
        return f"{self.public_url}/{quote(object_name)}"

    def object_name_from_link(self, link: str) -> str:
        """
        Resolve a link issued by link_for back to its object name.

        Raises:
            StorageError: If the link does not belong to this backend
        """
        prefix = f"{self.public_url}/"
        if not link.startswith(prefix) or len(link) == len(prefix):
            raise StorageError(f"Link {link} was not issued by this storage backend")
        return unquote(link[len(prefix):])

    async def store(self, name: str, data: bytes) -> str:
        """
        Upload bytes under a display name.

        Args:
            name: Display filename
            data: Content to upload

        Returns:
            Shareable link to the stored object

        Raises:
            StorageNotReadyError: If the handshake has not succeeded
            StorageError: If the upload fails
        """
        self._require_ready()
        object_name = f"{uuid.uuid4().hex}/{name}"
        try:
            await self._call(
                self.client.put_object,
                self.bucket,
                object_name,
                io.BytesIO(data),
                length=len(data),
                content_type=CONTENT_TYPE,
            )
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Upload of {name} failed: {e}") from e
        logger.info(f"Uploaded {object_name} ({len(data)} bytes)")
        return self.link_for(object_name)

    def _download(self, object_name: str) -> bytes:
        """Read a whole object and release the connection."""
        response = self.client.get_object(self.bucket, object_name)
        try:
            return response.read()
        finally:
            response.close()
            response.release_conn()

    async def fetch(self, link: str) -> bytes:
        """
        Download the full content behind a previously issued link.

        Raises:
            StorageNotReadyError: If the handshake has not succeeded
            StorageError: If the link is foreign or the download fails
        """
        self._require_ready()
        object_name = self.object_name_from_link(link)
        try:
            return await self._call(self._download, object_name)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Download of {object_name} failed: {e}") from e
