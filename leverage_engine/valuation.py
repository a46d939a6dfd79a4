"""USD valuation of native asset amounts.

Prices and USD values use the oracle's 8-decimal convention. Native amounts are
integers in each asset's smallest unit, so every conversion normalizes by the
asset's decimals.
"""
from __future__ import annotations

import logging

from .errors import InvalidPriceData, UnsupportedAsset
from .interfaces.price_oracle import PriceOracle

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Pure conversions: no I/O
# ---------------------------------------------------------------------------


def usd_value(amount: int, price: int, decimals: int) -> int:
    """``amount * price / 10^decimals``, truncated."""
    return amount * price // 10**decimals


def asset_amount(usd: int, price: int, decimals: int) -> int:
    """Inverse of :func:`usd_value`, rounded up by one native unit.

    The extra unit covers floor-division loss so a caller converting a USD
    figure back to an asset never ends up short. Zero stays zero.
    """
    if usd <= 0:
        return 0
    return usd * 10**decimals // price + 1


def convert(
    amount: int,
    price_in: int,
    decimals_in: int,
    price_out: int,
    decimals_out: int,
) -> int:
    """Convert ``amount`` of one asset into another at oracle prices."""
    return amount * price_in * 10**decimals_out // (price_out * 10**decimals_in)


class AssetValuation:
    """Oracle-backed conversions between native amounts and USD."""

    def __init__(self, oracle: PriceOracle, token_decimals: dict[str, int]) -> None:
        self._oracle = oracle
        self._decimals = dict(token_decimals)

    def decimals(self, asset: str) -> int:
        try:
            return self._decimals[asset]
        except KeyError:
            raise UnsupportedAsset(asset, "missing decimals configuration") from None

    async def prices(self, assets: list[str]) -> dict[str, int]:
        """Fetch prices for ``assets``, failing on any non-positive value."""
        raw = await self._oracle.prices_usd(list(assets))
        if len(raw) != len(assets):
            raise InvalidPriceData(
                f"Oracle returned {len(raw)} prices for {len(assets)} assets",
                {"assets": list(assets)},
            )
        prices = dict(zip(assets, raw))
        for asset, price in prices.items():
            if price <= 0:
                raise InvalidPriceData(
                    f"Invalid price for {asset}: {price}",
                    {"asset": asset, "price": price},
                )
        return prices

    async def price_of(self, asset: str) -> int:
        return (await self.prices([asset]))[asset]

    async def value_in_usd(self, asset: str, amount: int) -> int:
        price = await self.price_of(asset)
        return usd_value(amount, price, self.decimals(asset))

    async def usd_to_asset(self, usd: int, asset: str) -> int:
        price = await self.price_of(asset)
        return asset_amount(usd, price, self.decimals(asset))

    async def rate(self, asset_base: str, asset_quote: str, amount: int) -> int:
        """Amount of ``asset_quote`` worth ``amount`` of ``asset_base``."""
        if asset_base == asset_quote:
            return amount
        prices = await self.prices([asset_base, asset_quote])
        return convert(
            amount,
            prices[asset_base],
            self.decimals(asset_base),
            prices[asset_quote],
            self.decimals(asset_quote),
        )
