"""
Tests for market revenue redistribution and quality ranking

Tests cover:
- Churn and growth pools are handed out in full
- Shares follow effectiveness
- The opening-quarter exclusion of the player
- Recession freezing growth
- Quality rank positions
"""

import pytest

from markets import distribute_market_revenue, quality_rank, rank_products
from models import Market, Product


def make_product(owner, revenue, marketing=0, effectiveness=0.0):
    return Product(
        owner_name=owner,
        market_name="Widgets",
        assigned_employees={"r&d": 0, "q&a": 0, "marketing": marketing},
        revenue=revenue,
        effectiveness=effectiveness,
    )


class TestDistributeMarketRevenue:
    """Test suite for one quarter of churn and growth"""

    def test_pools_are_conserved(self):
        market = Market(name="Widgets", size=1_000_000.0, base_growth_rate=0.1)
        products = [make_product("A", 100_000.0, marketing=1), make_product("B", 100_000.0, marketing=3)]

        distribute_market_revenue(market, products)

        # 0.92 * 200k retained + 16k churn + 25k growth
        total = sum(p.revenue for p in products)
        assert total == pytest.approx(225_000.0)
        assert market.last_quarter_total_revenue == pytest.approx(225_000.0)
        assert market.size == pytest.approx(225_000.0)

    def test_more_effective_product_takes_larger_share(self):
        market = Market(name="Widgets", size=1_000_000.0, base_growth_rate=0.1)
        weak = make_product("A", 100_000.0, marketing=1)
        strong = make_product("B", 100_000.0, marketing=3)

        distribute_market_revenue(market, [weak, strong])

        # marketing effective spend tracks actual spend immediately, so shares are 1:3
        assert weak.revenue == pytest.approx(92_000.0 + 41_000.0 * 0.25)
        assert strong.revenue == pytest.approx(92_000.0 + 41_000.0 * 0.75)
        assert strong.last_growth() > weak.last_growth() > 0

    def test_excluded_owner_sits_out(self):
        market = Market(name="Widgets", size=1_000_000.0, base_growth_rate=0.1)
        player = make_product("Player", 50_000.0, marketing=5)
        rival = make_product("Rival", 100_000.0, marketing=1)

        distribute_market_revenue(market, [player, rival], excluded_owner="Player")

        assert player.revenue == 50_000.0
        assert player.effective_spend["marketing"] == 0.0
        assert len(player.recent_growth) == 0
        # rival collects both pools on its own
        assert rival.revenue == pytest.approx(92_000.0 + 0.08 * 150_000.0 + 25_000.0)

    def test_zero_effectiveness_keeps_retained_revenue_only(self):
        market = Market(name="Widgets", size=1_000_000.0, base_growth_rate=0.1)
        products = [make_product("A", 10_000.0), make_product("B", 30_000.0)]

        distribute_market_revenue(market, products)

        assert products[0].revenue == pytest.approx(9_200.0)
        assert products[1].revenue == pytest.approx(27_600.0)

    def test_empty_market_resets_total(self):
        market = Market(name="Widgets", size=1_000_000.0, base_growth_rate=0.1,
                        last_quarter_total_revenue=5_000.0)

        distribute_market_revenue(market, [])

        assert market.last_quarter_total_revenue == 0.0
        assert market.size == 1_000_000.0

    def test_recession_freezes_growth_and_keeps_shrunk_size(self):
        market = Market(name="Widgets", size=1_000_000.0, base_growth_rate=0.1)
        market.enter_recession(3)
        products = [make_product("A", 100_000.0, marketing=1)]

        distribute_market_revenue(market, products)

        # only the churn pool comes back
        assert products[0].revenue == pytest.approx(100_000.0)
        assert market.size == pytest.approx(950_000.0)
        assert market.recession_quarters_left == 2

    def test_last_total_seeded_from_current_revenues(self):
        market = Market(name="Widgets", size=0.0, base_growth_rate=0.0)
        products = [make_product("A", 40_000.0, marketing=1)]

        distribute_market_revenue(market, products)

        assert products[0].revenue == pytest.approx(40_000.0)


class TestQualityRank:
    """Test suite for market-relative quality labels"""

    def test_five_product_ladder(self):
        products = [make_product(f"C{i}", 0.0, effectiveness=float(5 - i)) for i in range(5)]

        ranks = [quality_rank(p, products) for p in products]

        assert ranks == ["Very Good", "Good", "Moderate", "Bad", "Very Bad"]

    def test_single_product_is_leader(self):
        product = make_product("Solo", 0.0, effectiveness=0.2)
        assert quality_rank(product, [product]) == "Very Good"

    def test_two_products(self):
        high = make_product("H", 0.0, effectiveness=2.0)
        low = make_product("L", 0.0, effectiveness=1.0)
        assert quality_rank(high, [low, high]) == "Very Good"
        assert quality_rank(low, [low, high]) == "Very Bad"

    def test_product_outside_market_raises(self):
        inside = make_product("In", 0.0)
        outside = make_product("Out", 0.0)
        with pytest.raises(ValueError):
            quality_rank(outside, [inside])

    def test_rank_products_labels_whole_market_at_once(self):
        products = [make_product(f"C{i}", 0.0, effectiveness=float(i)) for i in range(5)]

        ranks = rank_products(products)

        assert len(ranks) == 5
        for product in products:
            assert ranks[id(product)] == quality_rank(product, products)
        assert ranks[id(products[4])] == "Very Good"
        assert ranks[id(products[0])] == "Very Bad"
