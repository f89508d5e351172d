"""
test_simulation.py - Price paths and the liquidation keeper

Tests:
- GBM path shape and seed reproducibility
- Laying paths out on heights
- A keeper run that liquidates once the path crosses the liquidation line
"""

import pytest
from decimal import Decimal

from marginpool import (
    generate_price_path, price_paths_source, liquidation_sweep, run_keeper,
    HeightSeriesPricingSource,
)

from tests.conftest import MARKET_ID, build_engine, fund, open_position


class TestGeneratePricePath:
    """Tests for generate_price_path."""

    def test_length_and_start(self):
        path = generate_price_path(Decimal("2000"), 0.8, 30, seed=7)
        assert len(path) == 31
        assert path[0] == Decimal("2000")
        assert all(isinstance(p, Decimal) for p in path)
        assert all(p > 0 for p in path)

    def test_seed_reproducible(self):
        assert generate_price_path(Decimal("2000"), 0.8, 50, seed=3) == \
            generate_price_path(Decimal("2000"), 0.8, 50, seed=3)

    def test_seeds_differ(self):
        assert generate_price_path(Decimal("2000"), 0.8, 50, seed=3) != \
            generate_price_path(Decimal("2000"), 0.8, 50, seed=4)

    def test_zero_volatility_is_flat(self):
        path = generate_price_path(Decimal("20"), 0.0, 10)
        assert set(path) == {Decimal("20")}

    def test_precision(self):
        path = generate_price_path(Decimal("1"), 0.5, 5, precision=2)
        assert all(p.as_tuple().exponent == -2 for p in path)

    def test_zero_steps(self):
        assert generate_price_path(Decimal("5"), 0.3, 0) == [Decimal("5")]

    def test_invalid_arguments(self):
        with pytest.raises(ValueError):
            generate_price_path(Decimal("5"), 0.3, -1)
        with pytest.raises(ValueError):
            generate_price_path(Decimal("5"), -0.3, 10)


class TestPricePathsSource:
    """Tests for price_paths_source."""

    def test_heights(self):
        source = price_paths_source({"ETH": [Decimal("20"), Decimal("18")]}, start_height=10, step=5)
        assert isinstance(source, HeightSeriesPricingSource)
        assert source.get_all_heights("ETH") == [10, 15]
        assert source.get_price("ETH", 12) == Decimal("20")
        assert source.get_price("ETH", 99) == Decimal("18")
        assert source.get_price("ETH", 9) is None

    def test_step_must_be_positive(self):
        with pytest.raises(ValueError):
            price_paths_source({"ETH": [Decimal("1")]}, step=0)


class TestKeeper:
    """A keeper following ETH 20 -> 20 -> 10 -> 10 liquidates at height 2."""

    @pytest.fixture
    def engine(self):
        prices = price_paths_source({
            "ETH": [Decimal("20"), Decimal("20"), Decimal("10"), Decimal("10")],
            "USDT": [Decimal("1")] * 4,
        })
        engine = build_engine(prices=prices)
        fund(engine, "lender", "USDT", 100_000)
        engine.supply_pool("lender", "USDT", 100_000)
        open_position(engine)
        return engine

    def test_sweep_skips_healthy(self, engine):
        result = liquidation_sweep(engine, [("trader", MARKET_ID)], "keeper")
        assert result.height == 0
        assert result.liquidated == []
        assert result.skipped == [("trader", MARKET_ID)]

    def test_run_keeper(self, engine):
        accounts = [("trader", MARKET_ID), ("nobody", MARKET_ID)]
        results = run_keeper(engine, accounts, [1, 2, 3], "keeper")

        assert [r.height for r in results] == [1, 2, 3]
        assert results[0].liquidated == []
        assert results[1].liquidated == [("trader", MARKET_ID, 1)]
        assert results[1].skipped == [("nobody", MARKET_ID)]
        # Already LIQUID at height 3
        assert results[2].liquidated == []
        assert engine.active_auction_ids() == [1]
