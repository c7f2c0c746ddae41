"""
Record store for paste metadata.
A JSON document on local disk by default, or Redis when REDIS_URL is configured.
"""
import asyncio
import json
import logging
import os
import tempfile
from typing import Optional, Dict, Any

from redis import Redis
from redis.exceptions import ConnectionError, RedisError

from cloudpaste.errors import PersistenceError, SlugExistsError
from cloudpaste.models import Record

logger = logging.getLogger(__name__)


class JsonRecordStore:
    """Slug -> Record mapping persisted as a single JSON document.

    Every operation reads the whole document and writes rewrite the whole
    document. Access is serialised by a lock so concurrent creates in the
    same process cannot lose each other's records.
    """

    def __init__(self, path: str):
        """Open the document at path, creating it empty if missing."""
        self.path = path
        self._lock = asyncio.Lock()
        if not os.path.exists(path):
            logger.info(f"Record document {path} not found, creating an empty one")
            self._write_document({})

    def _read_document(self) -> Dict[str, Any]:
        """Load the whole JSON document."""
        try:
            with open(self.path, "r", encoding="utf-8") as fh:
                return json.load(fh)
        except (OSError, ValueError) as e:
            raise PersistenceError(f"Could not read {self.path}: {e}") from e

    def _write_document(self, document: Dict[str, Any]) -> None:
        """Atomically replace the JSON document on disk."""
        directory = os.path.dirname(os.path.abspath(self.path))
        try:
            fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(document, fh, indent=2)
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise PersistenceError(f"Could not write {self.path}: {e}") from e

    async def get(self, slug: str) -> Optional[Record]:
        """
        Fetch a record by slug.

        Args:
            slug: Unique paste identifier

        Returns:
            The Record, or None if the slug is unknown
        """
        async with self._lock:
            document = await asyncio.to_thread(self._read_document)
        data = document.get(slug)
        if data is None:
            return None
        return Record(slug=slug, **data)

    async def exists(self, slug: str) -> bool:
        """Return True if a record is stored under slug."""
        return await self.get(slug) is not None

    async def put(self, slug: str, record: Record) -> None:
        """
        Insert a new record. Existing slugs are never overwritten.

        Args:
            slug: Unique paste identifier
            record: Metadata to store

        Raises:
            SlugExistsError: If the slug is already present
            PersistenceError: If the document cannot be read or written
        """
        async with self._lock:
            document = await asyncio.to_thread(self._read_document)
            if slug in document:
                raise SlugExistsError(slug)
            document[slug] = record.model_dump(exclude={"slug"})
            await asyncio.to_thread(self._write_document, document)
        logger.info(f"Record {slug} saved to {self.path}")

    async def is_healthy(self) -> bool:
        """Check that the store can be read."""
        try:
            await asyncio.to_thread(self._read_document)
            return True
        except PersistenceError as e:
            logger.error(f"Health check failed: {e}")
        return False


class RedisRecordStore:
    """Slug -> Record mapping stored as JSON strings in Redis."""

    def __init__(self, client: Redis):
        """Wrap a connected Redis client."""
        self.redis = client

    @staticmethod
    def _key(slug: str) -> str:
        """Redis key for a slug."""
        return f"paste:{slug}"

    async def get(self, slug: str) -> Optional[Record]:
        """Fetch a record by slug, or None if unknown."""
        try:
            raw = await asyncio.to_thread(self.redis.get, self._key(slug))
        except RedisError as e:
            raise PersistenceError(f"Error fetching record {slug}: {e}") from e
        if raw is None:
            return None
        return Record.model_validate_json(raw)

    async def exists(self, slug: str) -> bool:
        """Return True if a record is stored under slug."""
        try:
            return bool(await asyncio.to_thread(self.redis.exists, self._key(slug)))
        except RedisError as e:
            raise PersistenceError(f"Error checking record {slug}: {e}") from e

    async def put(self, slug: str, record: Record) -> None:
        """Insert a new record using SET NX so a slug is written at most once."""
        try:
            created = await asyncio.to_thread(
                self.redis.set, self._key(slug), record.model_dump_json(), nx=True
            )
        except RedisError as e:
            raise PersistenceError(f"Error saving record {slug}: {e}") from e
        if not created:
            raise SlugExistsError(slug)
        logger.info(f"Record {slug} saved to Redis")

    async def is_healthy(self) -> bool:
        """Check that the store can be read."""
        try:
            await asyncio.to_thread(self.redis.ping)
            return True
        except RedisError as e:
            logger.error(f"Health check failed: {e}")
        return False


def create_record_store(settings):
    """
    Build the record store described by settings.

    Uses Redis when REDIS_URL is set and reachable, otherwise the JSON
    document at DB_FILE.
    """
    if settings.REDIS_URL:
        try:
            logger.info(f"Attempting to connect to Redis: {settings.REDIS_URL[:30]}...")
            client = Redis.from_url(settings.REDIS_URL, decode_responses=True)
            client.ping()
            logger.info("Redis connected, storing records in Redis")
            return RedisRecordStore(client)
        except ConnectionError as e:
            logger.error(f"ConnectionError connecting to Redis: {type(e).__name__}: {str(e)}")
        except (RedisError, ValueError) as e:
            logger.error(f"Unexpected error connecting to Redis: {type(e).__name__}: {str(e)}")
        logger.warning(f"Falling back to JSON record document {settings.DB_FILE}")
    return JsonRecordStore(settings.DB_FILE)
