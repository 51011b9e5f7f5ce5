"""Tests for cache-persisted variables."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import pytest

from graphcache.cache import CachedVar, InvalidationPolicyCache
from graphcache.store import InMemoryStore

if TYPE_CHECKING:
    from conftest import FakeClock


class TestCachedVar:
    """Test the value holder."""

    def test_read_and_set(self) -> None:
        var = CachedVar("light")
        assert var() == "light"
        assert var("dark") == "dark"
        assert var() == "dark"

    def test_listener_fires_once_on_change(self) -> None:
        var = CachedVar(1)
        seen: list[int] = []
        var.on_next_change(seen.append)

        var(1)
        assert seen == []
        var(2)
        var(3)
        assert seen == [2]

    def test_removed_listener_does_not_fire(self) -> None:
        var = CachedVar(1)
        seen: list[int] = []
        remove = var.on_next_change(seen.append)
        remove()
        var(2)
        assert seen == []


class TestCachedVarRegistry:
    """Test variables persisted through the cache."""

    @pytest.fixture
    def cache(self, clock: FakeClock) -> InvalidationPolicyCache:
        return InvalidationPolicyCache(InMemoryStore(), {}, clock=clock, enable_collections=False)

    def test_default_is_written_to_cache(self, cache: InvalidationPolicyCache) -> None:
        theme = cache.make_cached_var("theme", "light")

        assert theme() == "light"
        assert cache.store.extract()["CachedReactiveVar:theme"] == {
            "__typename": "CachedReactiveVar",
            "id": "theme",
            "value": "light",
        }
        assert "theme" in cache.cached_vars

    def test_changes_are_written_back(self, cache: InvalidationPolicyCache) -> None:
        theme = cache.make_cached_var("theme", "light")
        theme("dark")
        theme("solarized")
        assert cache.cached_vars.read("theme") == "solarized"

    def test_existing_value_wins_over_default(self, cache: InvalidationPolicyCache) -> None:
        cache.make_cached_var("page_size", 20)(50)
        assert cache.make_cached_var("page_size", 20)() == 50

    def test_falsy_values_are_kept(self, cache: InvalidationPolicyCache) -> None:
        cache.make_cached_var("page", 3)(0)
        assert cache.cached_vars.read("page") == 0

    def test_duplicate_id_warns(
        self, cache: InvalidationPolicyCache, caplog: pytest.LogCaptureFixture
    ) -> None:
        cache.make_cached_var("theme", "light")
        with caplog.at_level(logging.WARNING, logger="graphcache.cache.cached_vars"):
            cache.make_cached_var("theme", "light")
        assert "Duplicate cached variable with id theme" in caplog.text
        assert len(cache.cached_vars) == 1

    def test_restore_refreshes_variables(self, cache: InvalidationPolicyCache) -> None:
        theme = cache.make_cached_var("theme", "light")
        theme("dark")
        snapshot = cache.extract()
        theme("light")

        cache.restore(snapshot)
        assert theme() == "dark"

    def test_reset_restores_defaults(self, cache: InvalidationPolicyCache) -> None:
        theme = cache.make_cached_var("theme", "light")
        theme("dark")

        cache.reset()
        assert theme() == "light"
        assert cache.cached_vars.read("theme") == "light"
