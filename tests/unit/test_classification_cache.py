"""
Unit tests for the classification cache.
"""

from concurrent.futures import ThreadPoolExecutor
from unittest.mock import Mock

import pytest

from src.cache.classification_cache import ClassificationCache, build_classification_cache
from src.pipeline.classifier import QueryIntentClassifier
from src.utils.observability import metrics


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return ClassificationCache(max_entries=3, ttl_seconds=60, clock=clock)


class TestClassificationCache:
    """Test get/set, expiry and eviction."""

    def test_miss_then_hit(self, cache):
        """Test a stored value is returned on the next read."""
        assert cache.get("explain this function") is None

        cache.set("explain this function", "analysis")

        assert cache.get("explain this function") == "analysis"
        stats = cache.stats()
        assert stats.hits == 1
        assert stats.misses == 1
        assert stats.hit_rate == pytest.approx(0.5)

    def test_make_key_is_stable(self):
        """Test keys are namespaced md5 digests."""
        key = ClassificationCache.make_key("what is a for loop?")

        assert key == ClassificationCache.make_key("what is a for loop?")
        assert key.startswith("classification:")
        assert len(key) == len("classification:") + 32

    def test_entry_expires_after_ttl(self, cache, clock):
        """Test entries older than the TTL are dropped on read."""
        cache.set("query", "analysis")

        clock.advance(59)
        assert cache.get("query") == "analysis"

        clock.advance(2)
        assert cache.get("query") is None
        assert cache.stats().expirations == 1
        assert len(cache) == 0

    def test_lru_eviction(self, cache):
        """Test the least recently used entry is evicted at capacity."""
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("c", 3)

        # Touch "a" so "b" becomes the oldest
        cache.get("a")
        cache.set("d", 4)

        assert cache.get("b") is None
        assert cache.get("a") == 1
        assert cache.get("d") == 4
        assert cache.stats().evictions == 1
        assert len(cache) == 3

    def test_overwrite_refreshes_entry(self, cache, clock):
        """Test setting an existing key resets its TTL."""
        cache.set("query", "old")
        clock.advance(50)
        cache.set("query", "new")
        clock.advance(50)

        assert cache.get("query") == "new"
        assert len(cache) == 1

    def test_invalidate(self, cache):
        """Test removing a single entry."""
        cache.set("query", "analysis")

        assert cache.invalidate("query") is True
        assert cache.invalidate("query") is False
        assert cache.get("query") is None

    def test_clear(self, cache):
        """Test clearing returns the number of dropped entries."""
        cache.set("a", 1)
        cache.set("b", 2)

        assert cache.clear() == 2
        assert len(cache) == 0

    def test_purge_expired(self, cache, clock):
        """Test eager removal of expired entries."""
        cache.set("a", 1)
        clock.advance(30)
        cache.set("b", 2)
        clock.advance(40)

        assert cache.purge_expired() == 1
        assert cache.get("b") == 2

    def test_global_metrics_updated(self, cache):
        """Test hits and misses reach the metrics collector."""
        cache.get("query")
        cache.set("query", "analysis")
        cache.get("query")

        assert metrics.metrics["cache_hits"] == 1
        assert metrics.metrics["cache_misses"] == 1

    @pytest.mark.parametrize("max_entries,ttl", [(0, 60), (10, 0), (-1, 60)])
    def test_invalid_limits_rejected(self, max_entries, ttl):
        """Test non-positive capacity or TTL is rejected."""
        with pytest.raises(ValueError):
            ClassificationCache(max_entries=max_entries, ttl_seconds=ttl)


class TestConcurrentAccess:
    """Test a small cache shared by classifier calls from many threads."""

    QUERIES = [
        "Explain this function",
        "What is a for loop?",
        "Explain this file: app.js",
        "Show me examples from my codebase",
        "tell me about recursion limits",
        "what does the documentation say about deployment",
        "how to implement authentication?",
        "compare this with a linked list approach",
        "help",
        "",
    ]

    def test_shared_cache_under_threads(self):
        """Test concurrent analysis stays consistent and the cache stays bounded."""
        baseline = {q: QueryIntentClassifier().analyze(q) for q in self.QUERIES}
        cache = ClassificationCache(max_entries=4, ttl_seconds=60)
        classifier = QueryIntentClassifier(cache=cache)
        calls = self.QUERIES * 40

        with ThreadPoolExecutor(max_workers=8) as executor:
            results = list(executor.map(classifier.analyze, calls))

        assert all(r.method == "rules" for r in results)
        for query, result in zip(calls, results):
            assert result.category == baseline[query].category
            assert result.confidence == baseline[query].confidence
            assert result.requires_context == baseline[query].requires_context
        assert len(cache) <= 4
        stats = cache.stats()
        assert stats.hits + stats.misses == len(calls)


class TestBuildClassificationCache:
    """Test building the cache from settings."""

    def test_disabled_returns_none(self):
        """Test no cache when disabled in settings."""
        app_settings = Mock(enable_classification_cache=False)

        assert build_classification_cache(app_settings) is None

    def test_enabled_uses_settings(self):
        """Test capacity and TTL come from settings."""
        app_settings = Mock(
            enable_classification_cache=True,
            classification_cache_max_entries=16,
            classification_cache_ttl=30,
        )

        cache = build_classification_cache(app_settings)

        assert cache.max_entries == 16
        assert cache.ttl_seconds == 30
