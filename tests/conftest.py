"""Shared fixtures: a fake WordPress REST API, configuration and destination store."""

import asyncio
import math
from collections.abc import Callable
from pathlib import Path
from typing import Any

import httpx
import pytest
from sqlalchemy import select

from wp_migration.client.downloader import AssetDownloader
from wp_migration.client.source_client import ContentSourceClient
from wp_migration.config import MigrationConfig
from wp_migration.migration.checkpoint import CheckpointStore
from wp_migration.migration.coordinator import MigrationCoordinator, MigrationSummary
from wp_migration.migration.models import Post
from wp_migration.migration.store import DestinationStore
from wp_migration.migration.url_mapping import UrlMappingLog

SITE = "https://blog.example.com"
API_BASE = f"{SITE}/wp-json/wp/v2"
API_PREFIX = "/wp-json/wp/v2/"

COLLECTIONS = ("users", "categories", "tags", "media", "posts", "pages")


class FakeWordPress:
    """In-memory WordPress REST API served through httpx.MockTransport.

    ``failures`` maps (collection, page) to a list of status codes returned,
    one per request, before the page is served normally.
    """

    def __init__(self) -> None:
        self.collections: dict[str, list[dict[str, Any]]] = {name: [] for name in COLLECTIONS}
        self.files: dict[str, bytes] = {}
        self.failures: dict[tuple[str, int], list[int]] = {}
        self.requests: list[tuple[str, int | None]] = []
        self.include_headers = True

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def requested_pages(self, collection: str) -> list[int]:
        return [page for name, page in self.requests if name == collection]

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if not path.startswith(API_PREFIX):
            self.requests.append((path, None))
            body = self.files.get(str(request.url))
            if body is None:
                return httpx.Response(404, content=b"not found")
            return httpx.Response(200, content=body)

        collection = path[len(API_PREFIX) :].strip("/")
        page = int(request.url.params.get("page", "1"))
        per_page = int(request.url.params.get("per_page", "10"))
        self.requests.append((collection, page))

        pending = self.failures.get((collection, page))
        if pending:
            status = pending.pop(0)
            return httpx.Response(status, json={"code": "boom", "message": "failure"})

        records = self.collections.get(collection)
        if records is None:
            return httpx.Response(404, json={"code": "rest_no_route", "message": "No route"})

        total = len(records)
        total_pages = math.ceil(total / per_page) if total else 0
        if page > max(total_pages, 1):
            return httpx.Response(
                400,
                json={
                    "code": "rest_post_invalid_page_number",
                    "message": "The page number requested is larger than the number of pages available.",
                },
            )

        headers = {}
        if self.include_headers:
            headers = {"X-WP-Total": str(total), "X-WP-TotalPages": str(total_pages)}
        start = (page - 1) * per_page
        return httpx.Response(200, json=records[start : start + per_page], headers=headers)


def wp_user(source_id: int, slug: str | None = None, email: str | None = None, **extra: Any):
    slug = slug or f"author-{source_id}"
    record = {
        "id": source_id,
        "name": slug.replace("-", " ").title(),
        "slug": slug,
        "description": "",
        "avatar_urls": {"24": f"{SITE}/avatar-24.png", "96": f"{SITE}/avatar-96.png"},
    }
    if email:
        record["email"] = email
    record.update(extra)
    return record


def wp_term(source_id: int, slug: str, name: str | None = None, **extra: Any):
    record = {"id": source_id, "slug": slug, "name": name or slug.title(), "count": 1}
    record.update(extra)
    return record


def wp_media(source_id: int, filename: str = "photo.jpg", **extra: Any):
    record = {
        "id": source_id,
        "date": "2023-05-01T10:00:00",
        "slug": filename.rsplit(".", 1)[0],
        "title": {"rendered": filename},
        "source_url": f"{SITE}/wp-content/uploads/2023/05/{filename}",
        "mime_type": "image/jpeg",
        "media_details": {"width": 800, "height": 600, "filesize": 2048},
        "alt_text": f"Alt for {filename}",
        "caption": {"rendered": "<p>A caption</p>"},
    }
    record.update(extra)
    return record


def wp_post(source_id: int, slug: str | None = None, **extra: Any):
    slug = f"post-{source_id}" if slug is None else slug
    record = {
        "id": source_id,
        "date": "2023-06-01T09:30:00",
        "modified": "2023-06-02T10:00:00",
        "slug": slug,
        "status": "publish",
        "link": f"{SITE}/{slug}/",
        "title": {"rendered": f"Post {source_id} &amp; friends"},
        "content": {"rendered": "<p>" + " ".join(["word"] * 450) + "</p>"},
        "excerpt": {"rendered": "<p>Short excerpt</p>"},
        "author": 1,
        "featured_media": 0,
        "categories": [],
        "tags": [],
        "yoast_head_json": {"title": f"SEO {source_id}", "description": "SEO description"},
    }
    record.update(extra)
    return record


def wp_page(source_id: int, slug: str | None = None, **extra: Any):
    slug = f"page-{source_id}" if slug is None else slug
    record = {
        "id": source_id,
        "date": "2023-01-01T00:00:00",
        "modified": "2023-01-02T00:00:00",
        "slug": slug,
        "status": "publish",
        "link": f"{SITE}/{slug}/",
        "title": {"rendered": f"Page {source_id}"},
        "content": {"rendered": "<p>About us</p>"},
        "author": 1,
    }
    record.update(extra)
    return record


@pytest.fixture
def fake_wp() -> FakeWordPress:
    return FakeWordPress()


@pytest.fixture
def make_config(tmp_path: Path) -> Callable[..., MigrationConfig]:
    """Factory for a fast, tmp_path-based configuration."""

    def factory(**overrides: Any) -> MigrationConfig:
        data: dict[str, Any] = {
            "source": {"url": API_BASE},
            "destination": {
                "database_url": f"sqlite:///{tmp_path / 'content.db'}",
                "site_url": "https://new.example.com",
            },
            "paths": {
                "media_dir": str(tmp_path / "media"),
                "checkpoint_file": str(tmp_path / "migration-state.json"),
                "url_mapping_file": str(tmp_path / "migration-log.csv"),
                "report_dir": str(tmp_path / "reports"),
            },
            "performance": {
                "page_size": 100,
                "page_delay": 0,
                "download_delay": 0,
                "retry_attempts": 2,
                "retry_backoff_min": 0,
                "retry_backoff_max": 0,
                "download_retries": 1,
            },
        }
        for section, values in overrides.items():
            if isinstance(values, dict) and isinstance(data.get(section), dict):
                data[section] = {**data[section], **values}
            else:
                data[section] = values
        return MigrationConfig(**data)

    return factory


@pytest.fixture
def config(make_config) -> MigrationConfig:
    return make_config()


@pytest.fixture
def store(config: MigrationConfig):
    destination = DestinationStore.from_url(config.destination.database_url)
    yield destination
    destination.close()


def source_client(config: MigrationConfig, fake: FakeWordPress) -> ContentSourceClient:
    perf = config.performance
    return ContentSourceClient(
        config.source.url,
        retry_attempts=perf.retry_attempts,
        retry_backoff_min=perf.retry_backoff_min,
        retry_backoff_max=perf.retry_backoff_max,
        transport=fake.transport(),
    )


def run_migration(
    config: MigrationConfig,
    fake: FakeWordPress,
    store: DestinationStore,
    max_posts: int | None = None,
) -> tuple[MigrationCoordinator, MigrationSummary]:
    """Run one migration against the fake source and return the coordinator and summary."""

    async def go() -> tuple[MigrationCoordinator, MigrationSummary]:
        async with source_client(config, fake) as source, AssetDownloader(
            transport=fake.transport()
        ) as downloader:
            coordinator = MigrationCoordinator(
                config=config,
                source=source,
                store=store,
                checkpoints=CheckpointStore(config.paths.checkpoint_file),
                url_log=UrlMappingLog(config.paths.url_mapping_file),
                downloader=downloader,
            )
            summary = await coordinator.run(max_posts=max_posts)
            return coordinator, summary

    return asyncio.run(go())


def post_relations(store: DestinationStore, slug: str) -> dict[str, list[str]]:
    """Category and tag slugs linked to a post."""
    with store.session() as session:
        post = session.scalars(select(Post).where(Post.slug == slug)).first()
        if post is None:
            return {"categories": [], "tags": []}
        return {
            "categories": sorted(c.slug for c in post.categories),
            "tags": sorted(t.slug for t in post.tags),
        }
