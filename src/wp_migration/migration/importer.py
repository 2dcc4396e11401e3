"""Entity importers.

Each importer turns one source record into a destination record: it
validates the record, resolves references to entities imported in earlier
phases, and inserts it unless a record with the same natural key already
exists. Per-record problems surface as RecordImportError and never abort the
page; only DestinationUnavailableError escapes as a fatal error.
"""

import os
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any
from urllib.parse import unquote, urlparse

from pydantic import ValidationError as PydanticValidationError

from wp_migration.client.exceptions import (
    DestinationError,
    DestinationUnavailableError,
    DownloadError,
    RecordImportError,
)
from wp_migration.config import MigrationConfig
from wp_migration.migration.records import (
    SOURCE_MODELS,
    SourceCategory,
    SourceContent,
    SourceMedia,
    SourcePage,
    SourcePost,
    SourceRecord,
    SourceTag,
    SourceUser,
    read_time_minutes,
    strip_html,
)
from wp_migration.migration.store import IMPORTED_ROLE, DestinationStore, unusable_password
from wp_migration.migration.url_mapping import UrlMappingRow
from wp_migration.utils.logging import get_logger

logger = get_logger(__name__)

PLACEHOLDER_EMAIL_DOMAIN = "imported.local"

STATUS_PUBLISHED = "PUBLISHED"
STATUS_DRAFT = "DRAFT"

DownloadFunc = Callable[[str, Path], Awaitable[int]]


class ImportOutcome(str, Enum):
    IMPORTED = "imported"
    SKIPPED = "skipped"


@dataclass
class ImportResult:
    """Result of importing one source record."""

    outcome: ImportOutcome
    entity_type: str
    source_id: int
    destination_id: int | None = None
    url_row: UrlMappingRow | None = None


def placeholder_email(source_id: int) -> str:
    """Deterministic email for a source user that exposes none."""
    return f"user-{source_id}@{PLACEHOLDER_EMAIL_DOMAIN}"


def map_status(source_status: str | None) -> str:
    """Only published source content stays published."""
    return STATUS_PUBLISHED if source_status == "publish" else STATUS_DRAFT


def source_site_url(api_url: str) -> str:
    """Site root of a REST collection base such as https://site/wp-json/wp/v2."""
    marker = api_url.find("/wp-json")
    return api_url[:marker] if marker != -1 else api_url


class EntityImporter:
    """Base class for importing one entity type.

    Subclasses implement ``_import``; the base class handles validation
    and error mapping.
    """

    entity_type: str = ""

    def __init__(self, store: DestinationStore, config: MigrationConfig):
        self.store = store
        self.config = config
        # References that could not be resolved and were dropped
        self.unresolved_references: list[dict[str, Any]] = []

    def parse(self, raw: dict[str, Any]) -> SourceRecord:
        """Validate a raw source record.

        Raises:
            RecordImportError: If required fields are missing or malformed
        """
        model = SOURCE_MODELS[self.entity_type]
        try:
            return model.model_validate(raw)
        except PydanticValidationError as e:
            source_id = raw.get("id") if isinstance(raw, dict) else None
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'record'}: {err['msg']}"
                for err in e.errors()
            )
            raise RecordImportError(
                self.entity_type,
                source_id if isinstance(source_id, int) else None,
                f"invalid record ({problems})",
            ) from e

    async def import_record(self, raw: dict[str, Any]) -> ImportResult:
        """Import one source record.

        Returns:
            ImportResult with outcome IMPORTED or SKIPPED

        Raises:
            RecordImportError: The record could not be imported
            DestinationUnavailableError: The destination store is unreachable
        """
        record = self.parse(raw)
        try:
            result = await self._import(record)
        except DestinationUnavailableError:
            raise
        except DestinationError as e:
            raise RecordImportError(self.entity_type, record.id, str(e)) from e

        if result.outcome is ImportOutcome.SKIPPED:
            logger.debug("record_skipped", entity_type=self.entity_type, source_id=record.id)
        return result

    async def _import(self, record: Any) -> ImportResult:
        raise NotImplementedError

    async def after_page(self) -> None:
        """Hook run after every page has been imported, before it is committed."""

    async def finalize(self) -> None:
        """Hook run once the last page of the entity type is committed."""

    def _result(self, record: SourceRecord, obj: Any, created: bool, **kwargs: Any) -> ImportResult:
        return ImportResult(
            outcome=ImportOutcome.IMPORTED if created else ImportOutcome.SKIPPED,
            entity_type=self.entity_type,
            source_id=record.id,
            destination_id=obj.id,
            **kwargs,
        )

    def _unresolved(self, source_id: int, field: str, reference: Any) -> None:
        self.unresolved_references.append(
            {
                "entity_type": self.entity_type,
                "source_id": source_id,
                "field": field,
                "reference": reference,
            }
        )
        logger.info(
            "reference_unresolved",
            entity_type=self.entity_type,
            source_id=source_id,
            field=field,
            reference=reference,
        )


class UserImporter(EntityImporter):
    """Imports authors as accounts that must reset their credentials."""

    entity_type = "users"

    async def _import(self, record: SourceUser) -> ImportResult:
        email = (record.email or "").strip().lower() or placeholder_email(record.id)
        name = record.name or record.slug or email.split("@", 1)[0]

        user, created = self.store.upsert(
            "users",
            {
                "source_id": record.id,
                "email": email,
                "name": name,
                "slug": record.slug,
                "bio": record.description or None,
                "avatar_url": record.avatar_url,
                "role": IMPORTED_ROLE,
                "password_hash": unusable_password(),
                "password_reset_required": True,
                "registered_at": record.registered_date,
            },
        )
        return self._result(record, user, created)


class CategoryImporter(EntityImporter):
    """Imports categories by slug, linking parents once they exist."""

    entity_type = "categories"

    async def _import(self, record: SourceCategory) -> ImportResult:
        category, created = self.store.upsert(
            "categories",
            {
                "source_id": record.id,
                "name": strip_html(record.name) or record.slug,
                "slug": record.slug,
                "description": record.description or None,
                "source_parent_id": record.parent,
            },
        )
        return self._result(record, category, created)

    async def after_page(self) -> None:
        self.store.resolve_category_parents()

    async def finalize(self) -> None:
        self.store.resolve_category_parents()


class TagImporter(EntityImporter):
    entity_type = "tags"

    async def _import(self, record: SourceTag) -> ImportResult:
        tag, created = self.store.upsert(
            "tags",
            {
                "source_id": record.id,
                "name": strip_html(record.name) or record.slug,
                "slug": record.slug,
            },
        )
        return self._result(record, tag, created)


def media_filename(source_url: str, source_id: int) -> str:
    """File name of an asset URL, without query string or directories."""
    name = os.path.basename(unquote(urlparse(source_url).path))
    return name or f"media-{source_id}"


class MediaImporter(EntityImporter):
    """Downloads assets and records them once the file is in place.

    ``downloaded`` is the checkpoint cursor of source IDs whose file has
    already been written; it is updated in place.
    """

    entity_type = "media"

    def __init__(
        self,
        store: DestinationStore,
        config: MigrationConfig,
        download: DownloadFunc,
        downloaded: list[int] | None = None,
    ):
        super().__init__(store, config)
        self.download = download
        self.downloaded = downloaded if downloaded is not None else []
        self.media_dir = Path(config.paths.media_dir)

    async def _import(self, record: SourceMedia) -> ImportResult:
        existing = self.store.find_by_source_id("media", record.id)
        if existing is not None:
            if record.id not in self.downloaded:
                self.downloaded.append(record.id)
            return self._result(record, existing, False)

        filename = media_filename(record.source_url, record.id)
        local_name = f"{record.id}-{filename}"
        destination = self.media_dir / local_name

        if record.id in self.downloaded and destination.exists():
            size = destination.stat().st_size
        else:
            try:
                size = await self.download(record.source_url, destination)
            except DownloadError as e:
                raise RecordImportError(self.entity_type, record.id, f"download failed: {e}") from e
            self.downloaded.append(record.id)

        details = record.media_details
        media, created = self.store.upsert(
            "media",
            {
                "source_id": record.id,
                "filename": filename,
                "source_url": record.source_url,
                "local_url": f"{self.config.paths.media_url_prefix}/{local_name}",
                "mime_type": record.mime_type,
                "width": details.get("width"),
                "height": details.get("height"),
                "size": details.get("filesize") or size,
                "alt_text": record.alt_text or None,
                "caption": strip_html(record.caption) or None,
                "uploaded_at": record.date,
            },
        )
        return self._result(record, media, created)


class ContentImporter(EntityImporter):
    """Shared logic of post and page import."""

    url_type = ""
    path_template = ""

    def __init__(self, store: DestinationStore, config: MigrationConfig):
        super().__init__(store, config)
        self._default_author_id: int | None = None
        self._site_url = source_site_url(config.source.url)

    def default_author_id(self) -> int:
        if self._default_author_id is None:
            dest = self.config.destination
            author = self.store.get_or_create_default_author(
                dest.default_author_email, dest.default_author_name
            )
            self._default_author_id = author.id
        return self._default_author_id

    def resolve_author(self, record: SourceContent) -> int:
        """Destination user ID for the record's author, or the default author."""
        author_ref = record.author
        if author_ref is None:
            embedded = record.embedded_author()
            author_ref = embedded["id"] if embedded else None

        if author_ref is not None:
            user = self.store.find_by_source_id("users", author_ref)
            if user is not None:
                return user.id
            self._unresolved(record.id, "author", author_ref)

        return self.default_author_id()

    def url_row(self, record: SourceContent, status: str) -> UrlMappingRow:
        old_url = record.link or f"{self._site_url}/{record.slug}/"
        new_url = self.config.destination.site_url + self.path_template.format(slug=record.slug)
        return UrlMappingRow(
            type=self.url_type,
            old_url=old_url,
            new_url=new_url,
            source_id=record.id,
            slug=record.slug,
            status=status,
        )

    def _content_values(self, record: SourceContent) -> dict[str, Any]:
        return {
            "source_id": record.id,
            "title": strip_html(record.title) or record.slug,
            "slug": record.slug,
            "content": record.content,
            "status": map_status(record.status),
            "seo_title": record.seo_title,
            "seo_description": record.seo_description,
            "published_at": record.date,
            "modified_at": record.modified,
        }


class PostImporter(ContentImporter):
    """Imports posts with their author, taxonomy and featured image."""

    entity_type = "posts"
    url_type = "post"

    def __init__(self, store: DestinationStore, config: MigrationConfig):
        super().__init__(store, config)
        self.path_template = config.destination.post_path

    def resolve_terms(self, record: SourcePost, entity_type: str, taxonomy: str) -> list[int]:
        """Destination IDs of the record's terms, dropping those that do not exist.

        A term is looked up by source ID first, then by the slug the embedded
        term payload gives for it.
        """
        ids = record.categories if entity_type == "categories" else record.tags
        slugs = record.embedded_terms(taxonomy)
        resolved: list[int] = []
        for source_id in ids:
            term = self.store.find_by_source_id(entity_type, source_id)
            if term is None and source_id in slugs:
                term = self.store.find_by_slug(entity_type, slugs[source_id])
            if term is None:
                self._unresolved(record.id, entity_type, source_id)
                continue
            if term.id not in resolved:
                resolved.append(term.id)
        return resolved

    def resolve_featured_image(self, record: SourcePost) -> dict[str, Any]:
        """Featured image columns; empty when the media was never imported."""
        media_ref = record.featured_media
        if media_ref is None:
            embedded = record.embedded_featured_media()
            media_ref = embedded.get("id") if embedded else None
        if media_ref is None:
            return {}

        media = self.store.find_by_source_id("media", media_ref)
        if media is None:
            self._unresolved(record.id, "featured_media", media_ref)
            return {}

        return {
            "featured_image_id": media.id,
            "featured_image_url": media.local_url,
            "featured_image_alt": media.alt_text or strip_html(record.title) or None,
        }

    async def _import(self, record: SourcePost) -> ImportResult:
        existing = self.store.find_existing("posts", {"slug": record.slug, "source_id": record.id})
        if existing is not None:
            return self._result(record, existing, False)

        values = self._content_values(record)
        values.update(
            excerpt=strip_html(record.excerpt) or None,
            read_time=read_time_minutes(record.content),
            author_id=self.resolve_author(record),
            **self.resolve_featured_image(record),
        )

        post, created = self.store.upsert(
            "posts",
            values,
            category_ids=self.resolve_terms(record, "categories", "category"),
            tag_ids=self.resolve_terms(record, "tags", "post_tag"),
        )
        row = self.url_row(record, values["status"]) if created else None
        return self._result(record, post, created, url_row=row)


class PageImporter(ContentImporter):
    entity_type = "pages"
    url_type = "page"

    def __init__(self, store: DestinationStore, config: MigrationConfig):
        super().__init__(store, config)
        self.path_template = config.destination.page_path

    async def _import(self, record: SourcePage) -> ImportResult:
        existing = self.store.find_existing("pages", {"slug": record.slug, "source_id": record.id})
        if existing is not None:
            return self._result(record, existing, False)

        values = self._content_values(record)
        values["author_id"] = self.resolve_author(record)

        page, created = self.store.upsert("pages", values)
        row = self.url_row(record, values["status"]) if created else None
        return self._result(record, page, created, url_row=row)


def create_importer(
    entity_type: str,
    store: DestinationStore,
    config: MigrationConfig,
    download: DownloadFunc | None = None,
    downloaded: list[int] | None = None,
) -> EntityImporter:
    """Factory function to create the importer of an entity type.

    Args:
        entity_type: Entity type name
        store: Destination store
        config: Migration configuration
        download: Asset download coroutine (media only)
        downloaded: Checkpoint cursor of downloaded media IDs (media only)

    Returns:
        Importer instance

    Raises:
        NotImplementedError: If the entity type has no importer
        ValueError: If a media importer is requested without a download function
    """
    if entity_type == "media":
        if download is None:
            raise ValueError("Media import requires a download function")
        return MediaImporter(store, config, download, downloaded)

    importers: dict[str, type[EntityImporter]] = {
        "users": UserImporter,
        "categories": CategoryImporter,
        "tags": TagImporter,
        "posts": PostImporter,
        "pages": PageImporter,
    }

    importer_class = importers.get(entity_type)
    if importer_class is None:
        raise NotImplementedError(f"No importer for entity type: {entity_type}")
    return importer_class(store, config)
