"""Leverage arithmetic in fixed point (``PRECISION`` == 1.0x).

Two ceilings exist and are kept apart:

* the *safe* ceiling ``PRECISION + min_ltv`` is linear in the weakest LTV and is
  enforced before any borrowing in safe mode;
* the *theoretical* ceiling ``1 / (1 - ltv)`` is the limit of an endless
  supply/borrow/swap loop and is only the convergence target in degen mode.
"""
from __future__ import annotations

import logging

from .constants import LTV_SCALE, PRECISION
from .errors import InvalidCollateralCount, InvalidLeverage
from .interfaces.lending import LendingAdapter

logger = logging.getLogger(__name__)


def ltv_to_precision(ltv: int) -> int:
    """Rescale an LTV from ``LTV_SCALE`` to ``PRECISION`` units."""
    return ltv * PRECISION // LTV_SCALE


def validate_leverage(leverage: int) -> None:
    if leverage < PRECISION:
        raise InvalidLeverage(
            f"Leverage {leverage} is below 1x ({PRECISION})",
            {"leverage": leverage},
        )


def max_safe_leverage_from_ltvs(ltvs: list[int]) -> int:
    """Safe ceiling bound by the lowest LTV among all collateral assets."""
    if not ltvs:
        raise InvalidCollateralCount("At least one collateral asset is required")
    return PRECISION + min(ltvs) * PRECISION // LTV_SCALE


def theoretical_max_leverage(ltv: int) -> int:
    """``1 / (1 - ltv)`` in fixed point, the geometric-series limit of looping."""
    v = ltv_to_precision(ltv)
    if v >= PRECISION:
        raise InvalidLeverage(f"LTV {ltv} leaves no equity", {"ltv": ltv})
    return PRECISION * PRECISION // (PRECISION - v)


def target_borrow_usd(collateral_usd: int, leverage: int) -> int:
    """USD to borrow so that ``collateral_usd`` of equity reaches ``leverage``."""
    validate_leverage(leverage)
    return collateral_usd * (leverage - PRECISION) // PRECISION


def current_leverage(collateral_usd: int, debt_usd: int) -> int:
    """``collateral / (collateral - debt)`` in fixed point."""
    if debt_usd <= 0:
        return PRECISION
    if debt_usd >= collateral_usd:
        raise InvalidLeverage(
            "Debt meets or exceeds collateral; leverage is undefined",
            {"collateral_usd": collateral_usd, "debt_usd": debt_usd},
        )
    return collateral_usd * PRECISION // (collateral_usd - debt_usd)


def format_leverage(leverage: int) -> str:
    return f"{leverage / PRECISION:.4f}x"


class LeverageCalculator:
    """Leverage ceilings derived from the lending protocol's asset configuration."""

    def __init__(self, lending: LendingAdapter) -> None:
        self._lending = lending

    async def ltv_of(self, asset: str) -> int:
        return (await self._lending.get_asset_config(asset)).ltv

    async def max_safe_leverage(self, assets: list[str]) -> int:
        ltvs = [await self.ltv_of(asset) for asset in assets]
        maximum = max_safe_leverage_from_ltvs(ltvs)
        logger.debug("Safe leverage ceiling for %s: %s", assets, format_leverage(maximum))
        return maximum

    async def max_loop_leverage(self, asset: str) -> int:
        return theoretical_max_leverage(await self.ltv_of(asset))
