"""Tests for round-robin collection across brands."""

import itertools

import pytest

from autopulse.generator.cluster import BrandClusters, TopicCluster
from autopulse.generator.round_robin import collect_round_robin


def _brand(name, count):
    clusters = [
        TopicCluster(items=[], centroid=(1.0, 0.0), similarity=1.0, brand=name)
        for _ in range(count)
    ]
    return BrandClusters(brand=name, clusters=clusters)


def test_interleaves_in_priority_order():
    brands = [_brand("Tesla", 3), _brand("BYD", 2), _brand("BMW", 1)]

    result = collect_round_robin(brands, target_count=10, max_per_brand=3)

    assert [c.brand for c in result.collected] == ["Tesla", "BYD", "BMW", "Tesla", "BYD", "Tesla"]
    assert [c.round_number for c in result.collected] == [1, 1, 1, 2, 2, 3]
    assert result.rounds_completed == 3


def test_every_brand_gets_first_pick_before_any_second():
    brands = [_brand("Tesla", 5), _brand("BYD", 5), _brand("BMW", 5), _brand("Audi", 5)]

    result = collect_round_robin(brands, target_count=4, max_per_brand=3)

    assert [c.brand for c in result.collected] == ["Tesla", "BYD", "BMW", "Audi"]


def test_stops_at_target_mid_round():
    brands = [_brand("Tesla", 5), _brand("BYD", 5), _brand("BMW", 5)]

    result = collect_round_robin(brands, target_count=5, max_per_brand=3)

    assert len(result.collected) == 5
    assert [c.brand for c in result.collected] == ["Tesla", "BYD", "BMW", "Tesla", "BYD"]
    assert result.rounds_completed == 1


def test_underfill_is_not_an_error():
    result = collect_round_robin([_brand("Tesla", 1), _brand("BYD", 1)], target_count=10, max_per_brand=3)

    assert len(result.collected) == 2
    assert result.rounds_completed == 1


def test_empty_inputs():
    assert collect_round_robin([], target_count=5).collected == []
    assert collect_round_robin([_brand("Tesla", 2)], target_count=0).collected == []


@pytest.mark.parametrize("target,cap", list(itertools.product([1, 2, 5, 9, 15, 40], [1, 2, 3, 4])))
def test_cap_and_target_always_hold(target, cap):
    brands = [_brand("Tesla", 6), _brand("BYD", 1), _brand("BMW", 4), _brand("Other", 9)]

    result = collect_round_robin(brands, target_count=target, max_per_brand=cap)

    assert len(result.collected) <= target
    assert all(count <= cap for count in result.per_brand().values())

    available = sum(min(cap, len(b.clusters)) for b in brands)
    assert len(result.collected) == min(target, available)


def test_clusters_taken_in_brand_order():
    tesla = _brand("Tesla", 3)
    result = collect_round_robin([tesla], target_count=3, max_per_brand=3)

    assert [c.cluster for c in result.collected] == tesla.clusters
