"""Tests for the destination store."""

import pytest

from conftest import post_relations
from wp_migration.client.exceptions import DestinationUnavailableError
from wp_migration.migration.store import IMPORTED_ROLE, DestinationStore, unusable_password


def category(source_id: int, slug: str, parent: int | None = None) -> dict:
    return {
        "source_id": source_id,
        "name": slug.title(),
        "slug": slug,
        "source_parent_id": parent,
    }


class TestUpsert:
    def test_insert_then_skip(self, store):
        first, created = store.upsert("categories", category(1, "leadership"))
        again, created_again = store.upsert("categories", category(9, "leadership"))

        assert created
        assert not created_again
        assert again.id == first.id
        assert again.source_id == 1
        assert store.count("categories") == 1

    def test_existing_source_id_is_skipped(self, store):
        store.upsert("tags", {"source_id": 4, "name": "Python", "slug": "python"})

        tag, created = store.upsert("tags", {"source_id": 4, "name": "Py", "slug": "py"})

        assert not created
        assert tag.slug == "python"

    def test_post_links_terms(self, store):
        author = store.get_or_create_default_author("import@imported.local", "Importer")
        news, _ = store.upsert("categories", category(1, "news"))
        tag, _ = store.upsert("tags", {"source_id": 2, "name": "Go", "slug": "go"})

        store.upsert(
            "posts",
            {
                "source_id": 10,
                "title": "Hello",
                "slug": "hello",
                "status": "PUBLISHED",
                "author_id": author.id,
            },
            category_ids=[news.id],
            tag_ids=[tag.id],
        )

        assert post_relations(store, "hello") == {"categories": ["news"], "tags": ["go"]}
        assert post_relations(store, "missing") == {"categories": [], "tags": []}


class TestCreateMany:
    def test_skips_existing_and_duplicates(self, store):
        store.upsert("tags", {"source_id": 1, "name": "A", "slug": "a"})

        created = store.create_many(
            "tags",
            [
                {"source_id": 1, "name": "A", "slug": "a"},
                {"source_id": 2, "name": "B", "slug": "b"},
                {"source_id": 3, "name": "B again", "slug": "b"},
            ],
        )

        assert created == 1
        assert store.count("tags") == 2

    def test_empty(self, store):
        assert store.create_many("tags", []) == 0


class TestAuthors:
    def test_default_author_created_once(self, store):
        first = store.get_or_create_default_author("import@imported.local", "Importer")
        second = store.get_or_create_default_author("import@imported.local", "Importer")

        assert first.id == second.id
        assert first.role == IMPORTED_ROLE
        assert first.password_reset_required
        assert store.count("users") == 1

    def test_unusable_password(self):
        first = unusable_password()

        assert first.startswith("!")
        assert first != unusable_password()


class TestCategoryParents:
    def test_parent_resolved_when_both_exist(self, store):
        store.upsert("categories", category(2, "backend", parent=3))

        assert store.resolve_category_parents() == 0

        store.upsert("categories", category(3, "platform"))

        assert store.resolve_category_parents() == 1
        backend = store.find_by_slug("categories", "backend")
        platform = store.find_by_slug("categories", "platform")
        assert backend.parent_id == platform.id
        assert store.resolve_category_parents() == 0


class TestAvailability:
    def test_unreachable_database(self, tmp_path):
        directory = tmp_path / "not-a-file"
        directory.mkdir()

        with pytest.raises(DestinationUnavailableError):
            DestinationStore.from_url(f"sqlite:///{directory}")
