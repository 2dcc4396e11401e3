"""URL mapping log.

Every migrated post and page yields one row pairing its old URL with its new
one. Rows are kept in memory in import order and written to a CSV manifest
when the run ends; the manifest feeds redirect-rule generation.
"""

import csv
import io
import os
import tempfile
from dataclasses import astuple, dataclass, fields
from pathlib import Path

from wp_migration.client.exceptions import WPMigrationError
from wp_migration.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class UrlMappingRow:
    """One old URL to new URL pair."""

    type: str
    old_url: str
    new_url: str
    source_id: int
    slug: str
    status: str


HEADER = [f.name for f in fields(UrlMappingRow)]


class UrlMappingLog:
    """Append-only, insertion-ordered URL mapping log."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._rows: list[UrlMappingRow] = []
        self._keys: set[tuple[str, int]] = set()

    def append(self, row: UrlMappingRow) -> bool:
        """Record a row. A second row for the same (type, source_id) is ignored.

        Returns:
            True if the row was recorded
        """
        key = (row.type, row.source_id)
        if key in self._keys:
            return False
        self._keys.add(key)
        self._rows.append(row)
        return True

    @property
    def rows(self) -> list[UrlMappingRow]:
        return list(self._rows)

    def __len__(self) -> int:
        return len(self._rows)

    def flush(self) -> Path:
        """
        Write pending rows to the manifest and clear them.

        Rows are appended after any rows already in the manifest; the header
        is only written when the manifest is new. The new content replaces
        the old file atomically.

        Returns:
            Path of the manifest

        Raises:
            WPMigrationError: If the manifest cannot be written
        """
        existing = ""
        if self.path.exists():
            existing = self.path.read_text(encoding="utf-8")
            if existing and not existing.endswith("\n"):
                existing += "\n"

        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        if not existing:
            writer.writerow(HEADER)
        for row in self._rows:
            writer.writerow(astuple(row))

        tmp_name: str | None = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
            )
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as fh:
                fh.write(existing)
                fh.write(buffer.getvalue())
            os.replace(tmp_name, self.path)
        except OSError as e:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise WPMigrationError(f"Cannot write URL mapping manifest {self.path}: {e}") from e

        logger.info("url_mapping_flushed", path=str(self.path), rows=len(self._rows))
        self._rows.clear()
        return self.path


def read_manifest(path: str | Path) -> list[UrlMappingRow]:
    """Parse a manifest written by UrlMappingLog."""
    with open(path, newline="", encoding="utf-8") as fh:
        return [
            UrlMappingRow(
                type=r["type"],
                old_url=r["old_url"],
                new_url=r["new_url"],
                source_id=int(r["source_id"]),
                slug=r["slug"],
                status=r["status"],
            )
            for r in csv.DictReader(fh)
        ]
