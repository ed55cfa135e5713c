"""Partition bookkeeping, patches, staleness and filtering of the list cache."""
from conftest import make_boost

from stockboost.list_cache import ACTIVE_KEY, HISTORICAL_PREFIX, ListCache, filter_boosts, historical_key
from stockboost.models import HistoricalPage, Pagination


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def history(*boosts, total=None, page=1, limit=20):
    return HistoricalPage(
        boosts=list(boosts),
        pagination=Pagination(page=page, limit=limit, total=len(boosts) if total is None else total),
    )


def test_filter_matches_sku_and_nested_target_case_insensitively():
    direct = make_boost(1, "SKU-002")
    nested = make_boost(2, "SKU-001", targets=["SKU-002-X"])
    other = make_boost(3, "SKU-003")

    assert filter_boosts([direct, nested, other], "sku-002") == [direct, nested]


def test_filter_trims_term_and_checks_auxiliary_skus():
    bundle = make_boost(1, "BUNDLE-1", all_skus=["SKU-010", "SKU-011"])
    plain = make_boost(2, "SKU-020")

    assert filter_boosts([bundle, plain], "  Sku-011 ") == [bundle]
    assert filter_boosts([bundle, plain], "   ") == [bundle, plain]
    assert filter_boosts([bundle, plain], None) == [bundle, plain]


def test_prepend_is_noop_until_active_is_loaded():
    cache = ListCache()

    assert cache.prepend_active(make_boost(1, "SKU-001")) is False
    assert cache.get_active() is None


def test_prepend_keeps_previous_snapshot_untouched():
    cache = ListCache()
    cache.set_active([make_boost(1, "SKU-001")])
    before = cache.get_active()

    cache.prepend_active(make_boost(2, "SKU-002"))

    assert [boost.id for boost in cache.get_active()] == [2, 1]
    assert [boost.id for boost in before] == [1]


def test_remove_active_returns_removed_boost():
    cache = ListCache()
    cache.set_active([make_boost(1, "SKU-001"), make_boost(2, "SKU-002")])

    removed = cache.remove_active(1)

    assert removed.id == 1
    assert [boost.id for boost in cache.get_active()] == [2]
    assert cache.remove_active(99) is None


def test_insert_historical_head_patches_only_first_pages():
    cache = ListCache()
    cache.set_historical(1, 20, history(make_boost(10, "SKU-010", "completed"), total=21))
    cache.set_historical(2, 20, history(make_boost(11, "SKU-011", "completed"), total=21, page=2))

    patched = cache.insert_historical_head(make_boost(1, "SKU-001", "completed"))

    first = cache.get_historical(1, 20)
    assert patched == 1
    assert [boost.id for boost in first.boosts] == [1, 10]
    assert first.pagination.total == 22
    assert cache.get_historical(2, 20).pagination.total == 21


def test_insert_historical_head_never_duplicates():
    cache = ListCache()
    boost = make_boost(1, "SKU-001", "completed")
    cache.set_historical(1, 20, history(make_boost(10, "SKU-010", "completed"), boost))

    cache.insert_historical_head(boost)

    page = cache.get_historical(1, 20)
    assert [item.id for item in page.boosts] == [1, 10]
    assert page.pagination.total == 2


def test_insert_historical_head_without_pagination_block():
    cache = ListCache()
    cache.set_historical(1, 20, HistoricalPage(boosts=[]))

    cache.insert_historical_head(make_boost(1, "SKU-001", "completed"))

    assert cache.get_historical(1, 20).pagination.total == 1


def test_staleness_follows_partition_timeouts():
    clock = FakeClock()
    cache = ListCache(active_stale_after=300, historical_stale_after=600, clock=clock)
    cache.set_active([])
    cache.set_historical(1, 20, history())

    clock.now += 301
    assert cache.is_stale(ACTIVE_KEY) is True
    assert cache.is_stale(historical_key(1, 20)) is False

    clock.now += 300
    assert cache.is_stale(historical_key(1, 20)) is True
    assert cache.is_stale(historical_key(2, 20)) is True


def test_invalidate_marks_loaded_keys_and_keeps_data():
    cache = ListCache()
    cache.set_active([make_boost(1, "SKU-001")])
    cache.set_historical(1, 20, history())
    cache.set_historical(2, 20, history(page=2))

    keys = cache.invalidate(HISTORICAL_PREFIX)

    assert sorted(keys) == [historical_key(1, 20), historical_key(2, 20)]
    assert cache.is_stale(historical_key(1, 20)) is True
    assert cache.is_stale(ACTIVE_KEY) is False
    assert cache.get_historical(1, 20) is not None

    cache.set_historical(1, 20, history())
    assert cache.is_stale(historical_key(1, 20)) is False


def test_contains_spans_both_partitions():
    cache = ListCache()
    cache.set_active([make_boost(1, "SKU-001")])
    cache.set_historical(1, 20, history(make_boost(2, "SKU-002", "completed")))

    assert cache.contains(1) and cache.contains(2)
    assert cache.in_historical(2) and not cache.in_historical(1)
    assert not cache.contains(3)

    cache.clear()
    assert cache.get_active() is None
