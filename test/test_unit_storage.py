# Test type: Unit Test
# Validation to be executed: Validates the profile store (append, newest-first
#   ordering, retention cap, corrupt-log replacement, concurrent appends) and
#   the repository (file resolution, aggregation, corruption handling).
# Command: pytest test/test_unit_storage.py -v

"""Unit tests for devprofiler.services.storage_service and repository_service."""

import json
import threading

import pytest

from devprofiler.errors import CorruptionError, StorageError, ValidationError
from devprofiler.services.repository_service import ProfileRepository
from devprofiler.services.storage_service import ProfileStore


def _ts(day, hour=10):
    return f"2026-01-{day:02d}T{hour:02d}:00:00.000+00:00"


# ── Profile Store ─────────────────────────────────────────────────────────

class TestProfileStore:
    def test_creates_directory_and_file(self, storage_dir, record_factory):
        store = ProfileStore(storage_dir, retention_count=5)
        assert store.append("contacts", record_factory(_ts(1))) == 1

        data = json.loads((storage_dir / "contacts.json").read_text())
        assert data[0]["url"] == "/contacts"
        assert set(data[0]) == {
            "url", "method", "total_time", "sql_time", "sql_queries", "timestamp", "request_id",
        }

    def test_newest_first_on_disk(self, storage_dir, record_factory):
        store = ProfileStore(storage_dir, retention_count=5)
        for day in (2, 1, 3):
            store.append("contacts", record_factory(_ts(day)))
        data = json.loads((storage_dir / "contacts.json").read_text())
        assert [p["timestamp"] for p in data] == [_ts(3), _ts(2), _ts(1)]

    def test_retention_keeps_newest(self, storage_dir, record_factory):
        store = ProfileStore(storage_dir, retention_count=3)
        for day in range(1, 8):
            length = store.append("contacts", record_factory(_ts(day)))
        assert length == 3
        data = json.loads((storage_dir / "contacts.json").read_text())
        assert [p["timestamp"] for p in data] == [_ts(7), _ts(6), _ts(5)]

    def test_call_site_retention_overrides_default(self, storage_dir, record_factory):
        store = ProfileStore(storage_dir, retention_count=20)
        for day in range(1, 8):
            store.append("contacts", record_factory(_ts(day)), retention_count=5)
        assert len(json.loads((storage_dir / "contacts.json").read_text())) == 5

    def test_invalid_retention(self, storage_dir, record_factory):
        with pytest.raises(ValueError):
            ProfileStore(storage_dir).append("contacts", record_factory(_ts(1)), retention_count=0)

    def test_zero_store_retention_rejected(self, storage_dir, record_factory):
        store = ProfileStore(storage_dir, retention_count=0)
        assert store.retention_count == 0
        with pytest.raises(ValueError):
            store.append("contacts", record_factory(_ts(1)))
        assert not (storage_dir / "contacts.json").exists()

    def test_corrupt_log_replaced(self, storage_dir, record_factory):
        storage_dir.mkdir()
        (storage_dir / "contacts.json").write_text("[{garbage")
        store = ProfileStore(storage_dir, retention_count=5)
        assert store.append("contacts", record_factory(_ts(1))) == 1

    def test_undecodable_log_replaced(self, storage_dir, record_factory):
        storage_dir.mkdir()
        (storage_dir / "contacts.json").write_bytes(b'[{"url": "/bad\xff"}]')
        store = ProfileStore(storage_dir, retention_count=5)
        assert store.append("contacts", record_factory(_ts(1))) == 1
        assert store.append("contacts", record_factory(_ts(2))) == 2
        data = json.loads((storage_dir / "contacts.json").read_text())
        assert [p["timestamp"] for p in data] == [_ts(2), _ts(1)]

    def test_repairable_log_kept(self, storage_dir, record_factory):
        storage_dir.mkdir()
        (storage_dir / "contacts.json").write_text(
            json.dumps([record_factory(_ts(1)).model_dump(mode="json")]) + "]"
        )
        store = ProfileStore(storage_dir, retention_count=5)
        assert store.append("contacts", record_factory(_ts(2))) == 2

    def test_unwritable_directory(self, tmp_path, record_factory):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        store = ProfileStore(blocker / "profiles", retention_count=5)
        with pytest.raises(StorageError):
            store.append("contacts", record_factory(_ts(1)))

    def test_concurrent_appends_same_slug(self, storage_dir, record_factory):
        store = ProfileStore(storage_dir, retention_count=100)
        records = [record_factory(f"2026-01-01T10:00:{s:02d}.000+00:00") for s in range(40)]
        threads = [threading.Thread(target=store.append, args=("contacts", r)) for r in records]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        data = json.loads((storage_dir / "contacts.json").read_text())
        assert len(data) == 40
        assert [p.name for p in storage_dir.iterdir()] == ["contacts.json"]


# ── Round trip ────────────────────────────────────────────────────────────

class TestRoundTrip:
    @pytest.mark.parametrize("written", [1, 5, 12])
    def test_min_written_retention(self, storage_dir, record_factory, written):
        store = ProfileStore(storage_dir, retention_count=5)
        for day in range(1, written + 1):
            store.append("contacts", record_factory(_ts(day)))

        url, records = ProfileRepository(storage_dir).load_one("contacts")
        assert url == "/contacts"
        assert len(records) == min(written, 5)
        stamps = [r.timestamp for r in records]
        assert stamps == sorted(stamps, reverse=True)


# ── Profile Repository ────────────────────────────────────────────────────

class TestProfileRepository:
    def _write(self, storage_dir, name, profiles):
        storage_dir.mkdir(exist_ok=True)
        (storage_dir / name).write_text(json.dumps(profiles))

    def test_missing_directory(self, storage_dir):
        repo = ProfileRepository(storage_dir)
        assert not repo.exists()
        assert repo.load_all() == []

    def test_load_all_aggregates(self, storage_dir, record_factory):
        store = ProfileStore(storage_dir, retention_count=5)
        store.append("contacts", record_factory(_ts(1), durations=(5.0,)))
        store.append("contacts", record_factory(_ts(2), durations=(10.0, 5.0)))

        pages = ProfileRepository(storage_dir).load_all()
        assert len(pages) == 1
        assert pages[0].page_slug == "contacts"
        assert pages[0].mean_sql_time == 10.0
        assert pages[0].latest_timestamp == _ts(2)

    def test_load_all_sorted_by_latest(self, storage_dir, record_factory):
        store = ProfileStore(storage_dir, retention_count=5)
        store.append("old", record_factory(_ts(1), url="/old"))
        store.append("new", record_factory(_ts(9), url="/new"))
        store.append("mid", record_factory(_ts(5), url="/mid"))
        assert [p.page_slug for p in ProfileRepository(storage_dir).load_all()] == ["new", "mid", "old"]

    def test_load_all_skips_empty_logs(self, storage_dir):
        self._write(storage_dir, "empty.json", [])
        assert ProfileRepository(storage_dir).load_all() == []

    def test_load_all_ignores_other_files(self, storage_dir, record_factory):
        self._write(storage_dir, ".contacts.json.abc.tmp", [])
        self._write(storage_dir, "notes.txt", [])
        assert ProfileRepository(storage_dir).load_all() == []

    def test_double_extension_listed_without_one_suffix(self, storage_dir, record_factory):
        self._write(storage_dir, "transfers.json.json", [record_factory(_ts(1)).model_dump(mode="json")])
        pages = ProfileRepository(storage_dir).load_all()
        assert [p.page_slug for p in pages] == ["transfers.json"]

    def test_corrupt_file_raises(self, storage_dir, record_factory):
        storage_dir.mkdir()
        (storage_dir / "broken.json").write_text("[{nope")
        with pytest.raises(CorruptionError):
            ProfileRepository(storage_dir).load_all()

    def test_corrupt_file_collected(self, storage_dir, record_factory):
        ProfileStore(storage_dir).append("contacts", record_factory(_ts(1)))
        (storage_dir / "broken.json").write_text("[{nope")

        failures = []
        pages = ProfileRepository(storage_dir).load_all(failures=failures)
        assert [p.page_slug for p in pages] == ["contacts"]
        assert len(failures) == 1
        assert failures[0].path.name == "broken.json"

    def test_invalid_record_is_corruption(self, storage_dir):
        self._write(storage_dir, "bad.json", [{"total_time": "slow"}])
        with pytest.raises(CorruptionError):
            ProfileRepository(storage_dir).load_one("bad")

    def test_duplicated_closing_bracket_repaired(self, storage_dir):
        storage_dir.mkdir()
        (storage_dir / "page.json").write_text('[{"a":1}]]')
        url, records = ProfileRepository(storage_dir).load_one("page")
        assert url is None
        assert len(records) == 1
        assert (storage_dir / "page.json").read_text().strip() == '[{"a":1}]'


class TestResolve:
    def test_double_extension_preferred(self, storage_dir):
        storage_dir.mkdir()
        (storage_dir / "page.json.json").write_text("[]")
        (storage_dir / "page.json").write_text("[]")
        assert ProfileRepository(storage_dir).resolve("page").name == "page.json.json"

    def test_standard_extension(self, storage_dir):
        storage_dir.mkdir()
        (storage_dir / "page.json").write_text("[]")
        assert ProfileRepository(storage_dir).resolve("page").name == "page.json"

    def test_slug_with_extension(self, storage_dir):
        storage_dir.mkdir()
        (storage_dir / "page.json").write_text("[]")
        assert ProfileRepository(storage_dir).resolve("page.json").name == "page.json"

    def test_verbatim(self, storage_dir):
        storage_dir.mkdir()
        (storage_dir / "legacy").write_text("[]")
        assert ProfileRepository(storage_dir).resolve("legacy").name == "legacy"

    def test_absent(self, storage_dir):
        assert ProfileRepository(storage_dir).resolve("missing") is None
        assert ProfileRepository(storage_dir).load_one("missing") == (None, [])

    @pytest.mark.parametrize("slug", ["", ".", "..", "../etc/passwd", "a/b", "a\\b"])
    def test_invalid_slug(self, storage_dir, slug):
        with pytest.raises(ValidationError):
            ProfileRepository(storage_dir).resolve(slug)
