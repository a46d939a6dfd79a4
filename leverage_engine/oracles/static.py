"""Fixed-price oracle for simulations and tests."""
from __future__ import annotations

import logging

from ..errors import InvalidPriceData

logger = logging.getLogger(__name__)


class StaticPriceOracle:
    """Serves prices from an in-memory table (8-decimal USD)."""

    def __init__(self, prices: dict[str, int] | None = None) -> None:
        self._prices: dict[str, int] = dict(prices or {})

    def set_price(self, asset: str, price: int) -> None:
        logger.debug("Static price for %s set to %d", asset, price)
        self._prices[asset] = price

    async def prices_usd(self, assets: list[str]) -> list[int]:
        prices: list[int] = []
        for asset in assets:
            price = self._prices.get(asset, 0)
            if price <= 0:
                raise InvalidPriceData(
                    f"Invalid price for {asset}: {price}",
                    {"asset": asset, "price": price},
                )
            prices.append(price)
        return prices
