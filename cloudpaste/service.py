"""
Paste service.
Creates pastes (slug -> upload -> record) and loads them back for display.
"""
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import lru_cache
from typing import Callable, Optional

from cloudpaste.config import settings
from cloudpaste.database import create_record_store
from cloudpaste.errors import PasteNotFoundError, PersistenceError, StorageError
from cloudpaste.models import Record
from cloudpaste.storage import StorageBackend

logger = logging.getLogger(__name__)

DEFAULT_LANGUAGE = "text"
SLUG_ATTEMPTS = 5


def new_slug() -> str:
    """Return a random 32 character hex slug."""
    return secrets.token_hex(16)


def resolve_filename(slug: str, filename: Optional[str], language: str) -> str:
    """Use the caller's filename if given, otherwise <slug>.<ext>."""
    if filename and filename.strip():
        return filename.strip()
    ext = "txt" if language == DEFAULT_LANGUAGE else language
    return f"{slug}.{ext}"


@dataclass
class CreatedPaste:
    """Result of a successful create."""
    slug: str
    url: str
    backend_url: str
    record: Record


@dataclass
class PasteContent:
    """A loaded paste: either its text, or a link to redirect to instead."""
    record: Record
    text: Optional[str] = None
    fallback_url: Optional[str] = None


class PasteService:
    """Orchestrates the record store and the storage backend."""

    def __init__(
        self,
        store,
        backend: StorageBackend,
        base_url: str,
        redirect_on_fetch_failure: bool = True,
        slug_factory: Callable[[], str] = new_slug,
    ):
        """Wire the record store, storage backend and link settings together."""
        self.store = store
        self.backend = backend
        self.base_url = base_url.rstrip("/")
        self.redirect_on_fetch_failure = redirect_on_fetch_failure
        self.slug_factory = slug_factory

    def view_url(self, slug: str) -> str:
        """Caller-facing URL of the paste page."""
        return f"{self.base_url}/paste/{slug}"

    async def _unused_slug(self) -> str:
        """Generate a slug that is not in the store yet."""
        for _ in range(SLUG_ATTEMPTS):
            slug = self.slug_factory()
            if not await self.store.exists(slug):
                return slug
            logger.warning(f"Slug collision on {slug}, generating another")
        raise PersistenceError(f"No unused slug after {SLUG_ATTEMPTS} attempts")

    async def create(
        self,
        content: bytes,
        filename: Optional[str] = None,
        language: Optional[str] = None,
    ) -> CreatedPaste:
        """
        Create a new paste.

        Args:
            content: Raw bytes to store
            filename: Optional display name
            language: Optional language tag, defaults to "text"

        Returns:
            Slug, view URL and backend link of the new paste

        Raises:
            StorageError: If the upload fails (nothing is recorded)
            PersistenceError: If the record cannot be written
        """
        language = (language or "").strip() or DEFAULT_LANGUAGE
        slug = await self._unused_slug()
        filename = resolve_filename(slug, filename, language)

        link = await self.backend.store(filename, content)

        record = Record(
            slug=slug,
            filename=filename,
            language=language,
            storage_link=link,
            created_at=datetime.now(timezone.utc).isoformat(),
        )
        try:
            await self.store.put(slug, record)
        except PersistenceError:
            logger.error(f"Record for {slug} not saved, uploaded object {link} is orphaned")
            raise

        logger.info(f"Paste {slug} created ({filename}, {len(content)} bytes)")
        return CreatedPaste(slug=slug, url=self.view_url(slug), backend_url=link, record=record)

    async def _load(self, slug: str) -> PasteContent:
        """Look up a record and fetch its content, applying the redirect fallback."""
        record = await self.store.get(slug)
        if record is None:
            logger.warning(f"Paste {slug} not found")
            raise PasteNotFoundError(slug)

        try:
            data = await self.backend.fetch(record.storage_link)
        except StorageError as e:
            if not self.redirect_on_fetch_failure:
                raise
            logger.warning(f"Fetching paste {slug} failed ({e}), redirecting to {record.storage_link}")
            return PasteContent(record=record, fallback_url=record.storage_link)

        return PasteContent(record=record, text=data.decode("utf-8", errors="replace"))

    async def view(self, slug: str) -> PasteContent:
        """Load a paste for the HTML view."""
        return await self._load(slug)

    async def raw(self, slug: str) -> PasteContent:
        """Load a paste for the plain text endpoint."""
        return await self._load(slug)


@lru_cache
def get_paste_service() -> PasteService:
    """Process-wide paste service built from settings."""
    return PasteService(
        store=create_record_store(settings),
        backend=StorageBackend.from_settings(settings),
        base_url=settings.BASE_URL,
        redirect_on_fetch_failure=settings.REDIRECT_ON_FETCH_FAILURE,
    )
