"""Paginated client for the source content API.

The source exposes one collection per entity type (``users``, ``posts``, ...)
paginated with ``page``/``per_page`` query parameters. Page metadata arrives in
``X-WP-TotalPages``/``X-WP-Total`` headers (``X-Total-Pages``/``X-Total`` are
accepted as well), or in a JSON envelope of the form
``{"items": [...], "total_pages": n, "total": m}``. Without either, the totals
default to one page and zero items.
"""

from dataclasses import dataclass, field
from typing import Any

import httpx

from wp_migration.client.base_client import BaseAPIClient
from wp_migration.client.exceptions import APIError, ValidationError
from wp_migration.utils.logging import get_logger
from wp_migration.utils.retry import retry_async

logger = get_logger(__name__)

# Documented maximum of the WordPress REST API
MAX_PAGE_SIZE = 100

TOTAL_PAGES_HEADERS = ("X-WP-TotalPages", "X-Total-Pages")
TOTAL_ITEMS_HEADERS = ("X-WP-Total", "X-Total")

# Error code WordPress answers with when ``page`` is past the last page
INVALID_PAGE_CODE = "rest_post_invalid_page_number"


@dataclass
class PageResult:
    """One page of a source collection."""

    records: list[dict[str, Any]] = field(default_factory=list)
    total_pages: int = 1
    total_items: int = 0
    page: int = 1


def _header_int(headers: httpx.Headers, names: tuple[str, ...], default: int) -> int:
    for name in names:
        value = headers.get(name)
        if value is not None:
            try:
                return int(value)
            except ValueError:
                logger.warning("invalid_pagination_header", header=name, value=value)
    return default


class ContentSourceClient(BaseAPIClient):
    """Client for the paginated source content API.

    Every page fetch is retried on transient failures (5xx, 429, network
    errors) a bounded number of times; anything else propagates immediately.
    """

    def __init__(
        self,
        base_url: str,
        *,
        retry_attempts: int = 3,
        retry_backoff_min: float = 1,
        retry_backoff_max: float = 30,
        **kwargs: Any,
    ):
        super().__init__(base_url, **kwargs)
        self.retry_attempts = retry_attempts
        self.retry_backoff_min = retry_backoff_min
        self.retry_backoff_max = retry_backoff_max

    async def fetch_page(
        self,
        collection: str,
        page: int,
        page_size: int = MAX_PAGE_SIZE,
        params: dict[str, Any] | None = None,
    ) -> PageResult:
        """Fetch one page of a collection.

        Args:
            collection: Collection endpoint relative to the API base (e.g. "posts")
            page: 1-based page number
            page_size: Records per page, capped at the source maximum
            params: Extra query parameters (field selection, ``_embed``)

        Returns:
            PageResult with the page records and pagination totals

        Raises:
            ValidationError: If ``page`` is below 1
            APIError: If the page could not be fetched after retries
            NetworkError: If the source is unreachable after retries
        """
        if page < 1:
            raise ValidationError(f"Page must be >= 1, got {page}")

        query: dict[str, Any] = dict(params or {})
        query["page"] = page
        query["per_page"] = max(1, min(page_size, MAX_PAGE_SIZE))

        try:
            response = await retry_async(
                self.get,
                collection,
                params=query,
                max_attempts=self.retry_attempts,
                min_wait=self.retry_backoff_min,
                max_wait=self.retry_backoff_max,
            )
        except APIError as e:
            if e.status_code == 400 and (e.response or {}).get("code") == INVALID_PAGE_CODE:
                logger.info("page_out_of_range", collection=collection, page=page)
                return PageResult(records=[], total_pages=page - 1, total_items=0, page=page)
            raise

        return self._parse_page(collection, page, response)

    def _parse_page(self, collection: str, page: int, response: httpx.Response) -> PageResult:
        try:
            body = response.json() if response.content else []
        except ValueError as e:
            raise APIError(
                f"Invalid JSON in {collection} page {page}", status_code=response.status_code
            ) from e

        total_pages = _header_int(response.headers, TOTAL_PAGES_HEADERS, 1)
        total_items = _header_int(response.headers, TOTAL_ITEMS_HEADERS, 0)

        if isinstance(body, dict):
            records = body.get("items", body.get("results", []))
            if body.get("total_pages") is not None:
                total_pages = int(body["total_pages"])
            total_items = int(body.get("total", body.get("count", total_items)))
        else:
            records = body

        if not isinstance(records, list):
            raise APIError(f"Unexpected payload for {collection} page {page}")

        logger.debug(
            "page_fetched",
            collection=collection,
            page=page,
            records=len(records),
            total_pages=total_pages,
            total_items=total_items,
        )

        return PageResult(
            records=records,
            total_pages=max(total_pages, 1),
            total_items=total_items,
            page=page,
        )
