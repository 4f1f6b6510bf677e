"""
Tests for the analysis cache and its content-addressed keys.
"""
import pytest
import time
from insight_weaver.core.cache import (
    SimpleCache,
    canonicalize_dataset,
    dataset_content_hash,
    generate_analysis_cache_key,
    response_fingerprint,
)


def test_simple_cache_set_get():
    """Test basic cache set and get operations."""
    cache = SimpleCache(default_ttl=1.0)

    cache.set("key1", "value1")
    assert cache.get("key1") == "value1"

    cache.set("key2", "value2", ttl=0.1)
    assert cache.get("key2") == "value2"

    # Wait for expiration
    time.sleep(0.2)
    assert cache.get("key2") is None


def test_simple_cache_cleanup():
    """Expired entries are removed and counted."""
    cache = SimpleCache(default_ttl=0.1)

    cache.set("key1", "value1")
    cache.set("key2", "value2", ttl=1.0)

    time.sleep(0.15)
    assert cache.cleanup_expired() == 1

    assert cache.get("key1") is None
    assert cache.get("key2") == "value2"


def test_simple_cache_stats():
    """Hits and misses are tracked until the cache is cleared."""
    cache = SimpleCache(default_ttl=1.0)

    cache.set("key1", "value1")
    cache.set("key2", "value2")
    cache.get("key1")
    cache.get("missing")

    stats = cache.get_stats()
    assert stats["size"] == 2
    assert stats["default_ttl"] == 1.0
    assert (stats["hits"], stats["misses"]) == (1, 1)

    cache.clear()
    assert cache.get_stats() == {"size": 0, "default_ttl": 1.0, "hits": 0, "misses": 0}


def test_dataset_hash_ignores_cell_padding():
    """Trimmed cell text is what gets hashed."""
    rows = [["Region", "Revenue"], ["North", 12000]]
    padded = [[" Region", "Revenue "], ["North  ", "12000"]]

    assert dataset_content_hash(rows) == dataset_content_hash(padded)
    assert canonicalize_dataset([["a", None]]) == "a\u001f"


def test_dataset_hash_is_order_sensitive():
    rows = [["Region", "Revenue"], ["North", "1"], ["South", "2"]]
    swapped = [rows[0], rows[2], rows[1]]

    assert dataset_content_hash(rows) != dataset_content_hash(swapped)
    # Cell boundaries are part of the content
    assert dataset_content_hash([["ab", "c"]]) != dataset_content_hash([["a", "bc"]])


@pytest.mark.parametrize("perspective", ["general", "finance"])
def test_analysis_cache_key_format(perspective):
    rows = [["A"], ["1"]]
    key = generate_analysis_cache_key(rows, perspective)

    assert key == f"analysis:{dataset_content_hash(rows)}:{perspective}"
    assert len(dataset_content_hash(rows)) == 64


def test_response_fingerprint_ignores_key_order():
    first = {"dashboardViews": [{"title": "Revenue by Region", "chartType": "bar"}], "insights": []}
    reordered = {"insights": [], "dashboardViews": [{"chartType": "bar", "title": "Revenue by Region"}]}
    other = {"dashboardViews": [{"title": "Revenue by Month", "chartType": "bar"}], "insights": []}

    assert response_fingerprint(first) == response_fingerprint(reordered)
    assert response_fingerprint(first) != response_fingerprint(other)
    assert response_fingerprint(" {} ") == response_fingerprint("{}")


def test_analysis_cache_key_includes_source_fingerprint():
    rows = [["A"], ["1"]]
    fingerprint = response_fingerprint({"dashboardViews": []})
    key = generate_analysis_cache_key(rows, "general", fingerprint)

    assert key == f"analysis:{dataset_content_hash(rows)}:general:{fingerprint}"
    assert key != generate_analysis_cache_key(rows, "general", response_fingerprint({}))
