"""
Tests for the persistent geocode cache.
"""

import json
from datetime import datetime, timedelta, timezone

from stoplist.geocode_cache import GeocodeCache
from stoplist.models import GeocodedWith, GeocodeResult


def make_result(lat=33.75, lng=-84.39, **kwargs):
    return GeocodeResult(
        success=True,
        address="123 Main St, Atlanta, GA",
        latitude=lat,
        longitude=lng,
        formatted_address="123 Main St, Atlanta, GA 30301",
        geocoded_with=GeocodedWith.ADDRESS,
        **kwargs
    )


def test_round_trip_through_disk(tmp_path):
    """Saved entries come back from a fresh cache marked as cache hits."""
    cache_file = tmp_path / "geocode-cache.json"
    cache = GeocodeCache(cache_file)
    cache.set("LOC100", make_result())
    assert cache.save() is True

    reloaded = GeocodeCache(cache_file)
    hit = reloaded.get("LOC100")

    assert hit is not None
    assert hit.from_cache is True
    assert hit.latitude == 33.75
    assert hit.longitude == -84.39
    assert hit.geocoded_with == GeocodedWith.ADDRESS
    assert hit.cached_at is not None


def test_from_cache_flag_not_persisted(tmp_path):
    cache_file = tmp_path / "cache.json"
    cache = GeocodeCache(cache_file)
    cache.set("LOC1", make_result())
    cache.save()

    data = json.loads(cache_file.read_text())
    assert "fromCache" not in data["LOC1"]
    assert data["LOC1"]["geocodedWith"] == "address"


def test_failures_and_blank_ids_are_not_stored(tmp_path):
    cache = GeocodeCache(tmp_path / "cache.json")

    cache.set("LOC1", GeocodeResult.failure("No results found", address="nowhere"))
    cache.set("", make_result())
    cache.set("   ", make_result())
    cache.set(None, make_result())

    assert len(cache) == 0
    assert cache.get("LOC1") is None


def test_get_returns_independent_copy(tmp_path):
    cache = GeocodeCache(tmp_path / "cache.json")
    cache.set("LOC1", make_result())

    first = cache.get("LOC1")
    first.latitude = 0.0

    assert cache.get("LOC1").latitude == 33.75


def test_missing_file_starts_empty(tmp_path):
    cache = GeocodeCache(tmp_path / "does-not-exist.json")
    assert len(cache) == 0
    assert "anything" not in cache


def test_corrupt_file_starts_empty(tmp_path):
    """An unreadable cache file is logged and treated as empty."""
    cache_file = tmp_path / "cache.json"
    cache_file.write_text("{not valid json")

    cache = GeocodeCache(cache_file)

    assert len(cache) == 0
    cache.set("LOC1", make_result())
    assert cache.save() is True
    assert "LOC1" in json.loads(cache_file.read_text())


def test_prune_old_entries(tmp_path):
    """Entries older than the retention window are dropped and the file rewritten."""
    cache_file = tmp_path / "cache.json"
    old = (datetime.now(timezone.utc) - timedelta(days=45)).isoformat()
    fresh = (datetime.now(timezone.utc) - timedelta(days=2)).isoformat()
    cache_file.write_text(json.dumps({
        "OLD": make_result().model_dump(mode="json", by_alias=True) | {"cachedAt": old},
        "FRESH": make_result().model_dump(mode="json", by_alias=True) | {"cachedAt": fresh},
    }))

    cache = GeocodeCache(cache_file)
    removed = cache.prune_old_entries(30)

    assert removed == 1
    assert "OLD" not in cache
    assert "FRESH" in cache
    assert set(json.loads(cache_file.read_text())) == {"FRESH"}


def test_prune_without_expired_entries_does_not_write(tmp_path):
    cache_file = tmp_path / "cache.json"
    cache = GeocodeCache(cache_file)
    cache.set("LOC1", make_result())

    assert cache.prune_old_entries(30) == 0
    assert not cache_file.exists()


def test_clear_persists_immediately(tmp_path):
    cache_file = tmp_path / "cache.json"
    cache = GeocodeCache(cache_file)
    cache.set("LOC1", make_result())
    cache.save()

    cache.clear()

    assert len(cache) == 0
    assert json.loads(cache_file.read_text()) == {}


def test_context_manager_saves_on_exit(tmp_path):
    cache_file = tmp_path / "nested" / "cache.json"
    with GeocodeCache(cache_file) as cache:
        cache.set("LOC1", make_result())

    assert GeocodeCache(cache_file).has("LOC1")


def test_stats():
    cache = GeocodeCache("/nonexistent-dir-for-stats/cache.json")
    cache.set("A", make_result())
    stats = cache.stats()
    assert stats["totalEntries"] == 1
    assert stats["keys"] == ["A"]


def test_last_successful_set_wins(tmp_path):
    cache = GeocodeCache(tmp_path / "cache.json")
    cache.set("LOC1", make_result(lat=33.75, lng=-84.39))
    cache.set("LOC1", make_result(lat=34.05, lng=-84.12))

    hit = cache.get("LOC1")

    assert hit.success is True
    assert (hit.latitude, hit.longitude) == (34.05, -84.12)


def test_failure_does_not_replace_success(tmp_path):
    cache = GeocodeCache(tmp_path / "cache.json")
    cache.set("LOC1", make_result())
    cache.set("LOC1", GeocodeResult.failure("No results found", address="nowhere"))

    assert cache.has("LOC1") is True
    hit = cache.get("LOC1")
    assert hit.success is True
    assert (hit.latitude, hit.longitude) == (33.75, -84.39)
