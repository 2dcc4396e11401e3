"""Typed source records.

The source API returns loosely-typed JSON. Each entity type gets an explicit
pydantic model here; every attribute the source may omit is optional, and
records are validated when an importer receives them.
"""

import html
import math
import re
from datetime import datetime
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator

WORDS_PER_MINUTE = 200

_TAG_PATTERN = re.compile(r"<[^>]+>")
_WHITESPACE = re.compile(r"\s+")


def strip_html(value: str | None) -> str:
    """Remove markup and entities, collapsing whitespace."""
    if not value:
        return ""
    text = html.unescape(_TAG_PATTERN.sub(" ", value))
    return _WHITESPACE.sub(" ", text).strip()


def read_time_minutes(content: str | None) -> int:
    """Estimated reading time in whole minutes, never below one."""
    words = len(strip_html(content).split())
    return max(1, math.ceil(words / WORDS_PER_MINUTE))


def _rendered(value: Any) -> Any:
    # WordPress wraps HTML fields as {"rendered": "..."}
    if isinstance(value, dict):
        return value.get("rendered") or value.get("raw") or ""
    return "" if value is None else value


def _empty_to_none(value: Any) -> Any:
    if value in ("", 0, "0"):
        return None
    return value


RenderedText = Annotated[str, BeforeValidator(_rendered)]
OptionalDate = Annotated[datetime | None, BeforeValidator(_empty_to_none)]
OptionalRef = Annotated[int | None, BeforeValidator(_empty_to_none)]


class SourceRecord(BaseModel):
    """Fields shared by every source record."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: int


class SluggedRecord(SourceRecord):
    slug: str

    @field_validator("slug", mode="before")
    @classmethod
    def require_slug(cls, v: Any) -> str:
        if v is None or not str(v).strip():
            raise ValueError("slug must not be empty")
        return str(v).strip()


class SourceUser(SourceRecord):
    name: str = ""
    slug: str | None = None
    email: str | None = None
    description: str | None = None
    avatar_urls: dict[str, str] = Field(default_factory=dict)
    registered_date: OptionalDate = None

    @property
    def avatar_url(self) -> str | None:
        """URL of the largest avatar size offered."""
        if not self.avatar_urls:
            return None
        sizes = sorted(self.avatar_urls, key=lambda s: int(s) if s.isdigit() else 0)
        return self.avatar_urls[sizes[-1]]


class SourceCategory(SluggedRecord):
    name: str = ""
    description: str | None = None
    parent: OptionalRef = None


class SourceTag(SluggedRecord):
    name: str = ""


class SourceMedia(SourceRecord):
    date: OptionalDate = None
    slug: str | None = None
    title: RenderedText = ""
    source_url: str
    mime_type: str | None = None
    media_details: dict[str, Any] = Field(default_factory=dict)
    alt_text: str | None = None
    caption: RenderedText = ""

    @field_validator("source_url")
    @classmethod
    def require_source_url(cls, v: str) -> str:
        if not v or not v.startswith(("http://", "https://")):
            raise ValueError("source_url must be an absolute http(s) URL")
        return v

    @field_validator("media_details", mode="before")
    @classmethod
    def details_as_dict(cls, v: Any) -> dict[str, Any]:
        # Non-image attachments come back with an empty list
        return v if isinstance(v, dict) else {}


class SourceContent(SluggedRecord):
    """Fields shared by posts and pages."""

    date: OptionalDate = None
    modified: OptionalDate = None
    status: str = "draft"
    title: RenderedText = ""
    content: RenderedText = ""
    link: str | None = None
    author: OptionalRef = None
    yoast_head_json: dict[str, Any] | None = None
    embedded: dict[str, Any] = Field(default_factory=dict, alias="_embedded")

    @property
    def seo_title(self) -> str | None:
        return (self.yoast_head_json or {}).get("title") or None

    @property
    def seo_description(self) -> str | None:
        return (self.yoast_head_json or {}).get("description") or None

    def embedded_author(self) -> dict[str, Any] | None:
        authors = self.embedded.get("author") or []
        if authors and isinstance(authors[0], dict) and "id" in authors[0]:
            return authors[0]
        return None


class SourcePost(SourceContent):
    excerpt: RenderedText = ""
    featured_media: OptionalRef = None
    categories: list[int] = Field(default_factory=list)
    tags: list[int] = Field(default_factory=list)

    def embedded_featured_media(self) -> dict[str, Any] | None:
        media = self.embedded.get("wp:featuredmedia") or []
        if media and isinstance(media[0], dict) and media[0].get("source_url"):
            return media[0]
        return None

    def embedded_terms(self, taxonomy: str) -> dict[int, str]:
        """Map of term ID to slug for one taxonomy (``category`` or ``post_tag``)."""
        terms: dict[int, str] = {}
        for group in self.embedded.get("wp:term") or []:
            for term in group or []:
                if isinstance(term, dict) and term.get("taxonomy") == taxonomy:
                    if term.get("id") is not None and term.get("slug"):
                        terms[int(term["id"])] = term["slug"]
        return terms


class SourcePage(SourceContent):
    pass


SOURCE_MODELS: dict[str, type[SourceRecord]] = {
    "users": SourceUser,
    "categories": SourceCategory,
    "tags": SourceTag,
    "media": SourceMedia,
    "posts": SourcePost,
    "pages": SourcePage,
}
