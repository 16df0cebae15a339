from __future__ import annotations

import pytest
from fakes import issue

from issueview.resolved_cache import DEFAULT_CAPACITY, ResolvedObjectCache


def test_default_capacity_is_fifty():
    cache = ResolvedObjectCache()
    assert cache.capacity == DEFAULT_CAPACITY == 50


def test_get_missing_returns_none():
    assert ResolvedObjectCache().get("acme/widgets#1") is None


def test_never_exceeds_capacity():
    cache = ResolvedObjectCache()
    for n in range(1, 131):
        cache.set(f"k{n}", issue(n))
        assert len(cache) <= 50
    assert len(cache) == 50
    # The 80 oldest insertions were evicted in order
    assert "k80" not in cache
    assert "k81" in cache
    assert cache.keys()[0] == "k81"


def test_get_refreshes_recency():
    cache = ResolvedObjectCache(capacity=3)
    cache.set("a", issue(1))
    cache.set("b", issue(2))
    cache.set("c", issue(3))
    assert cache.get("a") == issue(1)
    cache.set("d", issue(4))
    assert "b" not in cache
    assert cache.keys() == ["c", "a", "d"]


def test_set_existing_key_replaces_value_and_refreshes():
    cache = ResolvedObjectCache(capacity=2)
    cache.set("a", issue(1))
    cache.set("b", issue(2))
    cache.set("a", issue(10))
    cache.set("c", issue(3))
    assert cache.get("a") == issue(10)
    assert "b" not in cache
    assert len(cache) == 2


def test_contains_does_not_touch_recency():
    cache = ResolvedObjectCache(capacity=2)
    cache.set("a", issue(1))
    cache.set("b", issue(2))
    assert "a" in cache
    cache.set("c", issue(3))
    assert "a" not in cache


def test_rejects_non_positive_capacity():
    with pytest.raises(ValueError):
        ResolvedObjectCache(capacity=0)
