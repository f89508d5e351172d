"""
pricing_source.py - Price inputs for account risk evaluation

Provides the price source the collateral-account risk check consumes.

Classes:
- PricingSource: Protocol defining the pricing interface
- StaticPricingSource: Height-independent prices
- HeightSeriesPricingSource: Height-varying prices with historical data

A price is the value of ONE SMALLEST UNIT of an asset in a common numeraire,
as a Decimal. The engine converts it to fixed point at the point of use.
"""

from decimal import Decimal
from typing import Dict, Set, Optional, List, Tuple, Protocol, runtime_checkable
from bisect import bisect_right


@runtime_checkable
class PricingSource(Protocol):
    """
    Protocol for price sources.

    Implementations must provide get_price() and get_prices().
    """

    def get_price(self, asset: str, height: int) -> Optional[Decimal]:
        """Get the price of a single asset at a height (None if unknown)."""
        ...

    def get_prices(self, assets: Set[str], height: int) -> Dict[str, Decimal]:
        """Get prices for multiple assets at a height, skipping unknown ones."""
        ...


class StaticPricingSource:
    """
    Price source with static prices (height-independent).

    Useful for tests and for driving price shocks by hand with update_price().
    """

    def __init__(self, prices: Dict[str, Decimal]):
        self.prices = {asset: Decimal(str(p)) for asset, p in prices.items()}

    def get_price(self, asset: str, height: int) -> Optional[Decimal]:
        """Get static price (height is ignored)."""
        return self.prices.get(asset)

    def get_prices(self, assets: Set[str], height: int) -> Dict[str, Decimal]:
        return {asset: self.prices[asset] for asset in assets if asset in self.prices}

    def update_price(self, asset: str, price: Decimal):
        self.prices[asset] = Decimal(str(price))

    def update_prices(self, prices: Dict[str, Decimal]):
        for asset, price in prices.items():
            self.update_price(asset, price)

    def __repr__(self):
        return f"StaticPricingSource({len(self.prices)} prices)"


class HeightSeriesPricingSource:
    """
    Price source with height-varying prices.

    Uses the most recent price at or before the requested height.
    """

    def __init__(self, price_paths: Optional[Dict[str, List[Tuple[int, Decimal]]]] = None):
        """
        Initialize pricing source.

        Args:
            price_paths: Optional dict mapping assets to lists of (height, price).
                         If None, creates an empty source.

        Example:
            pricer = HeightSeriesPricingSource({
                'ETH': [(0, Decimal("2000")), (100, Decimal("1800"))],
            })
            pricer.get_price('ETH', 150)   # -> Decimal("1800")
        """
        self.price_history: Dict[str, List[Tuple[int, Decimal]]] = {}
        if price_paths:
            for asset, path in price_paths.items():
                if not path:
                    continue
                self.price_history[asset] = sorted(path, key=lambda x: x[0])

    def add_price(self, asset: str, height: int, price: Decimal):
        history = self.price_history.setdefault(asset, [])
        history.append((height, Decimal(str(price))))
        history.sort(key=lambda x: x[0])

    def add_prices(self, prices: Dict[str, Decimal], height: int):
        for asset, price in prices.items():
            self.add_price(asset, height, price)

    def get_price(self, asset: str, height: int) -> Optional[Decimal]:
        """
        Get price at or before the specified height.

        Uses binary search for O(log n) lookup.
        """
        history = self.price_history.get(asset)
        if not history:
            return None
        heights = [h for h, _ in history]
        idx = bisect_right(heights, height)
        if idx == 0:
            # No price at or before height
            return None
        return history[idx - 1][1]

    def get_prices(self, assets: Set[str], height: int) -> Dict[str, Decimal]:
        prices = {}
        for asset in assets:
            price = self.get_price(asset, height)
            if price is not None:
                prices[asset] = price
        return prices

    def get_all_heights(self, asset: Optional[str] = None) -> List[int]:
        """Sorted heights with observations (for one asset, or the union)."""
        if asset:
            return [h for h, _ in self.price_history.get(asset, [])]
        all_heights: Set[int] = set()
        for path in self.price_history.values():
            all_heights.update(h for h, _ in path)
        return sorted(all_heights)

    def __repr__(self):
        total = sum(len(history) for history in self.price_history.values())
        return f"HeightSeriesPricingSource({len(self.price_history)} assets, {total} observations)"
