"""Central entity type definitions.

This module is the registry of the entity types the migration knows about:
their dependency order, the source collection each one is read from, the
natural key used to detect an already-imported record, and the query
parameters that narrow each page to the fields the importer needs.
"""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class EntityTypeInfo:
    """Metadata for an entity type."""

    name: str
    endpoint: str
    description: str
    migration_order: int  # Lower = earlier (dependency order)
    natural_key: str
    fields: tuple[str, ...] = field(default_factory=tuple)
    embed: bool = False

    def query_params(self) -> dict[str, str]:
        """Extra query parameters for page fetches of this type."""
        params: dict[str, str] = {}
        if self.fields:
            params["_fields"] = ",".join(self.fields)
        if self.embed:
            params["_embed"] = "1"
        return params


ENTITY_REGISTRY: dict[str, EntityTypeInfo] = {
    "users": EntityTypeInfo(
        name="users",
        endpoint="users",
        description="Users",
        migration_order=10,
        natural_key="email",
        fields=("id", "name", "slug", "email", "description", "avatar_urls", "registered_date"),
    ),
    "categories": EntityTypeInfo(
        name="categories",
        endpoint="categories",
        description="Categories",
        migration_order=20,
        natural_key="slug",
        fields=("id", "name", "slug", "description", "parent", "count"),
    ),
    "tags": EntityTypeInfo(
        name="tags",
        endpoint="tags",
        description="Tags",
        migration_order=30,
        natural_key="slug",
        fields=("id", "name", "slug", "count"),
    ),
    "media": EntityTypeInfo(
        name="media",
        endpoint="media",
        description="Media assets",
        migration_order=40,
        natural_key="source_id",
        fields=(
            "id",
            "date",
            "slug",
            "title",
            "source_url",
            "mime_type",
            "media_details",
            "alt_text",
            "caption",
        ),
    ),
    "posts": EntityTypeInfo(
        name="posts",
        endpoint="posts",
        description="Posts",
        migration_order=50,
        natural_key="slug",
        embed=True,
    ),
    "pages": EntityTypeInfo(
        name="pages",
        endpoint="pages",
        description="Pages",
        migration_order=60,
        natural_key="slug",
        embed=True,
    ),
}


def get_migration_order() -> list[str]:
    """Get entity types in dependency order."""
    return [
        info.name for info in sorted(ENTITY_REGISTRY.values(), key=lambda i: i.migration_order)
    ]


def get_info(entity_type: str) -> EntityTypeInfo:
    """Get metadata for an entity type.

    Raises:
        KeyError: If the entity type is unknown
    """
    if entity_type not in ENTITY_REGISTRY:
        raise KeyError(f"Unknown entity type: {entity_type}")
    return ENTITY_REGISTRY[entity_type]
