"""Tests for the URL mapping log."""

from wp_migration.migration.url_mapping import HEADER, UrlMappingLog, UrlMappingRow, read_manifest


def row(source_id: int, kind: str = "post") -> UrlMappingRow:
    slug = f"{kind}-{source_id}"
    return UrlMappingRow(
        type=kind,
        old_url=f"https://blog.example.com/{slug}/",
        new_url=f"https://new.example.com/blog/{slug}",
        source_id=source_id,
        slug=slug,
        status="PUBLISHED",
    )


class TestUrlMappingLog:
    def test_header_and_order(self, tmp_path):
        log = UrlMappingLog(tmp_path / "migration-log.csv")
        for source_id in (3, 1, 2):
            log.append(row(source_id))

        path = log.flush()

        lines = path.read_text().splitlines()
        assert lines[0] == ",".join(HEADER)
        assert [r.source_id for r in read_manifest(path)] == [3, 1, 2]
        assert len(log) == 0

    def test_duplicate_row_ignored(self, tmp_path):
        log = UrlMappingLog(tmp_path / "migration-log.csv")

        assert log.append(row(1))
        assert not log.append(row(1))
        assert log.append(row(1, kind="page"))
        assert len(log) == 2

    def test_flush_appends_to_existing_manifest(self, tmp_path):
        path = tmp_path / "migration-log.csv"
        first = UrlMappingLog(path)
        first.append(row(1))
        first.flush()

        second = UrlMappingLog(path)
        second.append(row(2))
        second.flush()

        lines = path.read_text().splitlines()
        assert lines.count(",".join(HEADER)) == 1
        assert [r.source_id for r in read_manifest(path)] == [1, 2]

    def test_empty_flush_writes_header(self, tmp_path):
        log = UrlMappingLog(tmp_path / "out" / "migration-log.csv")

        path = log.flush()

        assert path.read_text().splitlines() == [",".join(HEADER)]
        assert read_manifest(path) == []
