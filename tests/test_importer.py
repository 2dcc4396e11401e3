"""Tests for the entity importers."""

import asyncio
from pathlib import Path

import pytest

from conftest import SITE, post_relations, wp_media, wp_page, wp_post, wp_term, wp_user
from wp_migration.client.exceptions import DownloadError, RecordImportError
from wp_migration.migration.importer import (
    ImportOutcome,
    MediaImporter,
    PageImporter,
    PostImporter,
    UserImporter,
    create_importer,
    map_status,
    media_filename,
    placeholder_email,
)
from wp_migration.migration.records import read_time_minutes, strip_html


def run(importer, raw):
    return asyncio.run(importer.import_record(raw))


class TestHelpers:
    def test_strip_html(self):
        assert strip_html("<p>Fish &amp; <b>chips</b></p>\n") == "Fish & chips"
        assert strip_html(None) == ""

    def test_read_time(self):
        assert read_time_minutes("") == 1
        assert read_time_minutes(" ".join(["w"] * 200)) == 1
        assert read_time_minutes(" ".join(["w"] * 201)) == 2

    def test_map_status(self):
        assert map_status("publish") == "PUBLISHED"
        assert map_status("draft") == "DRAFT"
        assert map_status("private") == "DRAFT"
        assert map_status(None) == "DRAFT"

    def test_media_filename(self):
        assert media_filename(f"{SITE}/uploads/My%20Photo.jpg?ver=2", 5) == "My Photo.jpg"
        assert media_filename(f"{SITE}/", 5) == "media-5"


class TestUserImporter:
    def test_account_requires_reset(self, store, config):
        result = run(UserImporter(store, config), wp_user(3, email="Ann@Example.com"))

        assert result.outcome is ImportOutcome.IMPORTED
        user = store.find_by_source_id("users", 3)
        assert user.email == "ann@example.com"
        assert user.role == "pending_reset"
        assert user.password_reset_required
        assert user.password_hash.startswith("!")
        assert user.avatar_url == f"{SITE}/avatar-96.png"

    def test_missing_email_gets_placeholder(self, store, config):
        run(UserImporter(store, config), wp_user(8))

        user = store.find_by_source_id("users", 8)
        assert user.email == placeholder_email(8)

    def test_second_import_skipped(self, store, config):
        importer = UserImporter(store, config)
        run(importer, wp_user(3, email="ann@example.com"))

        result = run(importer, wp_user(3, email="ann@example.com"))

        assert result.outcome is ImportOutcome.SKIPPED


class TestTermImporters:
    def test_duplicate_category_slug_skipped(self, store, config):
        importer = create_importer("categories", store, config)

        first = run(importer, wp_term(1, "leadership", "Leadership"))
        second = run(importer, wp_term(2, "leadership", "Leadership"))

        assert first.outcome is ImportOutcome.IMPORTED
        assert second.outcome is ImportOutcome.SKIPPED
        assert store.count("categories") == 1

    def test_empty_slug_is_record_error(self, store, config):
        importer = create_importer("tags", store, config)

        with pytest.raises(RecordImportError) as exc_info:
            run(importer, wp_term(4, ""))

        assert exc_info.value.source_id == 4
        assert "slug must not be empty" in exc_info.value.message

    def test_missing_id_is_record_error(self, store, config):
        with pytest.raises(RecordImportError) as exc_info:
            run(create_importer("tags", store, config), {"slug": "orphan"})

        assert exc_info.value.source_id is None


class TestPostImporter:
    def test_values_mapped(self, store, config):
        run(UserImporter(store, config), wp_user(1, email="ann@example.com"))

        result = run(PostImporter(store, config), wp_post(10, status="draft"))

        post = store.find_by_natural_key("posts", "post-10")
        assert post.title == "Post 10 & friends"
        assert post.excerpt == "Short excerpt"
        assert post.read_time == 3
        assert post.status == "DRAFT"
        assert post.seo_title == "SEO 10"
        assert post.seo_description == "SEO description"
        assert post.author_id == store.find_by_source_id("users", 1).id
        assert result.url_row.old_url == f"{SITE}/post-10/"
        assert result.url_row.new_url == "https://new.example.com/blog/post-10"
        assert result.url_row.status == "DRAFT"

    def test_missing_author_uses_default(self, store, config):
        importer = PostImporter(store, config)

        run(importer, wp_post(10, author=0))

        post = store.find_by_natural_key("posts", "post-10")
        default = store.find_by_natural_key("users", config.destination.default_author_email)
        assert post.author_id == default.id
        # An absent author is not an unresolved reference
        assert importer.unresolved_references == []

    def test_embedded_author_used(self, store, config):
        run(UserImporter(store, config), wp_user(5, email="bo@example.com"))

        run(
            PostImporter(store, config),
            wp_post(10, author=None, _embedded={"author": [{"id": 5, "name": "Bo"}]}),
        )

        post = store.find_by_natural_key("posts", "post-10")
        assert post.author_id == store.find_by_source_id("users", 5).id

    def test_unknown_terms_dropped(self, store, config):
        run(create_importer("tags", store, config), wp_term(1, "python"))
        importer = PostImporter(store, config)

        result = run(importer, wp_post(10, tags=[1, 2], categories=[30]))

        assert result.outcome is ImportOutcome.IMPORTED
        assert post_relations(store, "post-10") == {"categories": [], "tags": ["python"]}
        dropped = {(r["field"], r["reference"]) for r in importer.unresolved_references}
        assert ("tags", 2) in dropped
        assert ("categories", 30) in dropped

    def test_term_resolved_by_embedded_slug(self, store, config):
        # The category exists under another source ID
        run(create_importer("categories", store, config), wp_term(70, "news"))
        embedded = {"wp:term": [[{"id": 3, "slug": "news", "taxonomy": "category"}]]}

        run(PostImporter(store, config), wp_post(10, categories=[3], _embedded=embedded))

        assert post_relations(store, "post-10")["categories"] == ["news"]

    def test_existing_slug_skipped_without_url_row(self, store, config):
        importer = PostImporter(store, config)
        run(importer, wp_post(10, slug="hello"))

        result = run(importer, wp_post(11, slug="hello"))

        assert result.outcome is ImportOutcome.SKIPPED
        assert result.url_row is None
        assert store.count("posts") == 1

    def test_featured_image_from_imported_media(self, store, config):
        store.upsert(
            "media",
            {
                "source_id": 20,
                "filename": "hero.jpg",
                "source_url": f"{SITE}/hero.jpg",
                "local_url": "/media/20-hero.jpg",
            },
        )

        run(PostImporter(store, config), wp_post(10, featured_media=20))

        post = store.find_by_natural_key("posts", "post-10")
        assert post.featured_image_url == "/media/20-hero.jpg"
        assert post.featured_image_alt == "Post 10 & friends"

    def test_featured_image_missing_media(self, store, config):
        importer = PostImporter(store, config)

        run(importer, wp_post(10, featured_media=20))

        post = store.find_by_natural_key("posts", "post-10")
        assert post.featured_image_id is None
        assert importer.unresolved_references[-1]["field"] == "featured_media"


class TestPageImporter:
    def test_page_url_row(self, store, config):
        result = run(PageImporter(store, config), wp_page(50, slug="about"))

        assert result.url_row.type == "page"
        assert result.url_row.new_url == "https://new.example.com/about"
        assert result.url_row.slug == "about"


class TestMediaImporter:
    def test_downloads_and_records(self, store, config):
        calls = []

        async def fake_download(url: str, destination: Path) -> int:
            calls.append((url, destination))
            destination.parent.mkdir(parents=True, exist_ok=True)
            destination.write_bytes(b"data")
            return 4

        downloaded: list[int] = []
        importer = MediaImporter(store, config, fake_download, downloaded)

        result = run(importer, wp_media(20, "hero.jpg"))

        assert result.outcome is ImportOutcome.IMPORTED
        assert calls[0][1] == Path(config.paths.media_dir) / "20-hero.jpg"
        assert downloaded == [20]
        media = store.find_by_source_id("media", 20)
        assert media.local_url == "/media/20-hero.jpg"
        assert media.caption == "A caption"
        assert media.width == 800

    def test_file_on_disk_reused(self, store, config):
        media_dir = Path(config.paths.media_dir)
        media_dir.mkdir(parents=True)
        (media_dir / "20-hero.jpg").write_bytes(b"abc")

        async def fail_download(url: str, destination: Path) -> int:
            raise AssertionError("no download expected")

        importer = MediaImporter(store, config, fail_download, [20])

        run(importer, wp_media(20, "hero.jpg"))

        assert store.find_by_source_id("media", 20) is not None

    def test_download_failure_is_record_error(self, store, config):
        async def broken_download(url: str, destination: Path) -> int:
            raise DownloadError("HTTP 404", url=url, status_code=404)

        importer = MediaImporter(store, config, broken_download)

        with pytest.raises(RecordImportError) as exc_info:
            run(importer, wp_media(20))

        assert exc_info.value.source_id == 20
        assert "download failed" in exc_info.value.message
        assert store.find_by_source_id("media", 20) is None

    def test_relative_source_url_rejected(self, store, config):
        async def unused(url: str, destination: Path) -> int:
            return 0

        with pytest.raises(RecordImportError):
            run(MediaImporter(store, config, unused), wp_media(20, source_url="/uploads/a.jpg"))


class TestFactory:
    def test_media_requires_download(self, store, config):
        with pytest.raises(ValueError):
            create_importer("media", store, config)

    def test_unknown_entity_type(self, store, config):
        with pytest.raises(NotImplementedError):
            create_importer("comments", store, config)
