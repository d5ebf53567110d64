"""Tests for the file cache store."""

from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from unittest.mock import patch

import orjson
import pytest

from schoolcache.config import CacheSettings
from schoolcache.services.cache_store import CacheEntry, FileCacheStore
from schoolcache.shared.cache_utils import key_hash
from schoolcache.shared.constants import Cache
from schoolcache.shared.errors import DomainError, ErrorCode, InfrastructureError

STUDENT_ROWS = [
    {"id": 1, "first_name": "Amina", "class_id": 3},
    {"id": 2, "first_name": "Kofi", "class_id": 3},
]


class TestCacheEntry:
    """Test the CacheEntry model."""

    def test_naive_timestamps_are_treated_as_utc(self):
        entry = CacheEntry(
            key="k",
            value=1,
            created_at=datetime(2024, 1, 1, 0, 0),
            expires_at=datetime(2024, 1, 1, 1, 0),
        )

        assert entry.expires_at.tzinfo is timezone.utc

    def test_is_expired_only_after_expiry(self):
        entry = CacheEntry(
            key="k",
            created_at=datetime(2024, 1, 1, 0, 0, tzinfo=timezone.utc),
            expires_at=datetime(2024, 1, 1, 1, 0, tzinfo=timezone.utc),
        )

        assert not entry.is_expired(datetime(2024, 1, 1, 1, 0, tzinfo=timezone.utc))
        assert entry.is_expired(datetime(2024, 1, 1, 1, 0, 1, tzinfo=timezone.utc))

    def test_negative_hit_count_rejected(self):
        with pytest.raises(ValueError):
            CacheEntry(
                key="k",
                created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
                expires_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
                hit_count=-1,
            )


class TestFileCacheStoreInitialization:
    """Test directory setup."""

    def test_creates_directory_and_htaccess(self, cache_settings):
        FileCacheStore(cache_settings)

        htaccess = cache_settings.directory / Cache.HTACCESS_FILE
        assert cache_settings.directory.is_dir()
        assert htaccess.read_text(encoding="utf-8") == "Deny from all\n"

    def test_existing_htaccess_is_kept(self, cache_settings):
        cache_settings.directory.mkdir(parents=True)
        htaccess = cache_settings.directory / Cache.HTACCESS_FILE
        htaccess.write_text("custom\n", encoding="utf-8")

        FileCacheStore(cache_settings)

        assert htaccess.read_text(encoding="utf-8") == "custom\n"

    def test_unusable_directory_raises(self, temp_dir):
        blocker = temp_dir / "not_a_dir"
        blocker.write_text("x", encoding="utf-8")

        with pytest.raises(InfrastructureError) as exc_info:
            FileCacheStore(CacheSettings(directory=blocker / "cache"))

        assert exc_info.value.code == ErrorCode.DIRECTORY_CREATION_FAILED


class TestFileLayout:
    """Test the sharded on-disk layout."""

    def test_entry_path_uses_hash_shard(self, store):
        path = store._entry_path("students_page_1")

        digest = key_hash("students_page_1")
        assert path.parent.name == digest[:2]
        assert path.name == f"students_page_1_{digest}.cache"

    def test_unsafe_characters_are_replaced(self, store):
        path = store._entry_path("report/2024 term:1")

        assert path.name.startswith("report_2024_term_1_")

    def test_shard_length_is_configurable(self, temp_dir, clock):
        store = FileCacheStore(CacheSettings(directory=temp_dir, shard_length=4), clock=clock)

        assert len(store._entry_path("k").parent.name) == 4

    def test_empty_key_rejected(self, store):
        with pytest.raises(DomainError) as exc_info:
            store.set("", "value")

        assert exc_info.value.code == ErrorCode.VALIDATION_ERROR

    def test_entry_file_holds_expected_fields(self, store, clock):
        store.set("students_page_1", STUDENT_ROWS, ttl=300)

        raw = orjson.loads(store._entry_path("students_page_1").read_bytes())

        assert raw["key"] == "students_page_1"
        assert raw["value"] == STUDENT_ROWS
        assert raw["hit_count"] == 0
        assert datetime.fromisoformat(raw["created_at"]) == clock()
        assert (
            datetime.fromisoformat(raw["expires_at"]) - datetime.fromisoformat(raw["created_at"])
        ).total_seconds() == 300


class TestSetAndGet:
    """Test basic reads and writes."""

    def test_get_returns_stored_rows(self, store):
        assert store.set("students_page_1", STUDENT_ROWS, ttl=300) is True

        assert store.get("students_page_1") == STUDENT_ROWS

    def test_entry_expires_after_ttl(self, store, clock):
        store.set("students_page_1", STUDENT_ROWS, ttl=300)

        clock.advance(300)
        assert store.get("students_page_1") == STUDENT_ROWS

        clock.advance(1)
        assert store.get("students_page_1") is None
        assert store.has("students_page_1") is False
        assert not store._entry_path("students_page_1").exists()

    def test_get_returns_default_on_miss(self, store):
        assert store.get("missing", default="fallback") == "fallback"

    def test_default_ttl_applies(self, store, clock):
        store.set("k", "v")

        clock.advance(Cache.DEFAULT_TTL)
        assert store.has("k")
        clock.advance(1)
        assert not store.has("k")

    def test_zero_ttl_lives_until_the_next_tick(self, store, clock):
        store.set("k", "v", ttl=0)

        assert store.get("k") == "v"
        clock.advance(1)
        assert store.get("k") is None

    def test_negative_ttl_rejected(self, store):
        with pytest.raises(DomainError):
            store.set("k", "v", ttl=-1)

    def test_overwrite_replaces_entirely(self, store):
        store.set("k", {"a": 1, "b": 2})
        store.set("k", {"c": 3})

        assert store.get("k") == {"c": 3}

    @pytest.mark.parametrize(
        "value",
        [True, False, 0, 12.5, "<ul><li>Grade 1</li></ul>", [], {"nested": {"list": [1, 2]}}],
    )
    def test_scalar_and_nested_values(self, store, value):
        store.set("k", value)

        assert store.get("k", default="missing") == value

    def test_cached_none_is_distinguishable_with_sentinel(self, store):
        sentinel = object()
        store.set("k", None)

        assert store.get("k", sentinel) is None
        assert store.has("k")

    def test_unserializable_value_returns_false(self, store):
        assert store.set("k", object()) is False
        assert not store._entry_path("k").exists()

    def test_hit_count_is_persisted(self, store):
        store.set("k", "v")

        store.get("k")
        store.get("k")
        store.has("k")

        assert store.get_entry("k").hit_count == 2

    def test_get_entry_does_not_count_a_hit(self, store):
        store.set("k", "v")

        store.get_entry("k")

        assert store.get_entry("k").hit_count == 0


class TestFailureHandling:
    """Storage faults are absorbed and reported as misses."""

    def test_corrupted_file_is_a_miss_and_removed(self, store, caplog):
        store.set("k", "v")
        path = store._entry_path("k")
        path.write_bytes(b"{not json")

        with caplog.at_level(logging.WARNING, logger="schoolcache"):
            assert store.get("k", "default") == "default"

        assert not path.exists()
        assert any(
            getattr(record, "error_code", None) == ErrorCode.CACHE_CORRUPTED.name
            for record in caplog.records
        )

    def test_invalid_entry_shape_is_a_miss(self, store):
        store.set("k", "v")
        path = store._entry_path("k")
        path.write_bytes(orjson.dumps({"value": "v"}))

        assert store.has("k") is False
        assert not path.exists()

    def test_entry_for_another_key_is_a_miss(self, store):
        store.set("other", "theirs")
        foreign = store._entry_path("other").read_bytes()
        target = store._entry_path("mine")
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(foreign)

        assert store.get("mine") is None
        assert store.get("other") == "theirs"

    def test_write_failure_returns_false_and_leaves_no_temp_file(self, store):
        with patch("schoolcache.services.cache_store.os.replace", side_effect=OSError("disk full")):
            assert store.set("k", "v") is False

        shard_dir = store._entry_path("k").parent
        assert list(shard_dir.glob(f"*{Cache.TMP_SUFFIX}")) == []
        assert store.get("k") is None

    def test_failed_hit_count_update_still_returns_value(self, store, mocker):
        store.set("k", "v")
        mocker.patch(
            "schoolcache.services.cache_store.write_atomic",
            side_effect=OSError("read-only"),
        )

        assert store.get("k") == "v"

    def test_delete_failure_returns_false(self, store, mocker):
        store.set("k", "v")
        mocker.patch("pathlib.Path.unlink", side_effect=PermissionError("denied"))

        assert store.delete("k") is False


class TestDisabledCache:
    """Test behaviour with caching switched off."""

    def test_disabled_cache_never_stores(self, temp_dir, clock):
        store = FileCacheStore(CacheSettings(directory=temp_dir, enabled=False), clock=clock)

        assert store.set("k", "v") is False
        assert store.get("k", "default") == "default"
        assert store.has("k") is False
        assert store.entry_files() == []

    def test_delete_still_works_when_disabled(self, store):
        store.set("k", "v")
        store.settings.enabled = False

        assert store.delete("k") is True
        assert store.entry_files() == []


class TestDeleteClearCleanup:
    """Test removal operations."""

    def test_delete_missing_key_returns_true(self, store):
        assert store.delete("never_set") is True

    def test_delete_removes_entry(self, store):
        store.set("k", "v")

        assert store.delete("k") is True
        assert store.has("k") is False

    def test_clear_removes_every_shard_and_tag(self, store):
        for i in range(20):
            store.set(f"key_{i}", i)
        tag_file = store.cache_dir / Cache.TAGS_DIR / f"t{Cache.TAG_SUFFIX}"
        tag_file.parent.mkdir(parents=True, exist_ok=True)
        tag_file.write_bytes(b'["key_1"]')

        assert store.clear() == 20
        assert store.entry_files() == []
        assert not tag_file.exists()
        assert (store.cache_dir / Cache.HTACCESS_FILE).exists()

    def test_cleanup_removes_only_expired(self, store, clock):
        store.set("short", 1, ttl=10)
        store.set("long", 2, ttl=1000)
        clock.advance(20)

        assert store.cleanup() == 1
        assert store.has("long")
        assert len(store.entry_files()) == 1

    def test_cleanup_removes_unreadable_files(self, store):
        store.set("good", 1)
        store.set("bad", 2)
        store._entry_path("bad").write_bytes(b"\x00garbage")

        assert store.cleanup() == 1
        assert store.has("good")


class TestStats:
    """Test get_stats."""

    def test_stats_of_empty_cache(self, store):
        stats = store.get_stats()

        assert stats.total_files == 0
        assert stats.total_size == 0
        assert stats.hit_rate == 0.0

    def test_stats_count_files_hits_and_expired(self, store, clock):
        store.set("a", "x", ttl=10)
        store.set("b", "y", ttl=1000)
        store.get("b")
        store.get("b")
        store.get("b")
        store.get("missing")
        clock.advance(20)

        stats = store.get_stats()

        assert stats.total_files == 2
        assert stats.expired_files == 1
        assert stats.total_hits == 3
        assert stats.hit_rate == 1.5
        assert stats.total_size == store.total_size()
        assert stats.sets == 2
        assert stats.hits == 3
        assert stats.misses == 1


class TestEviction:
    """Test the size-bounded eviction pass."""

    def _fill(self, store, count):
        keys = [f"entry_{i:02d}" for i in range(count)]
        for i, key in enumerate(keys):
            store.set(key, "x" * 1000)
            os.utime(store._entry_path(key), (1_700_000_000 + i * 10, 1_700_000_000 + i * 10))
        return keys

    def test_no_eviction_under_the_limit(self, store):
        self._fill(store, 5)

        assert store.evict_if_needed() == 0
        assert len(store.entry_files()) == 5

    def test_evicts_oldest_entries_down_to_ratio(self, store):
        keys = self._fill(store, 10)
        sizes = [store._entry_path(key).stat().st_size for key in keys]
        total = sum(sizes)
        store.settings.max_size_bytes = total - 1
        target = store.settings.max_size_bytes * store.settings.eviction_ratio

        expected_evicted = 0
        remaining = total
        while remaining > target:
            remaining -= sizes[expected_evicted]
            expected_evicted += 1

        assert store.evict_if_needed() == expected_evicted
        assert store.total_size() <= target
        for key in keys[:expected_evicted]:
            assert not store.has(key)
        for key in keys[expected_evicted:]:
            assert store.has(key)

    def test_set_keeps_cache_within_bound(self, temp_dir, clock):
        store = FileCacheStore(
            CacheSettings(directory=temp_dir, max_size_bytes=20_000),
            clock=clock,
        )

        for i in range(60):
            assert store.set(f"page_{i}", "y" * 900) is True

        assert store.total_size() <= 20_000
        assert store.get_stats().evictions > 0
