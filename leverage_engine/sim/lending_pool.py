"""Simulated lending protocol with per-asset LTV and liquidation thresholds.

Collateral and debt are tracked per protocol account. Borrow capacity is the
LTV-weighted collateral value; withdrawals are refused when they would push
the health factor below one. Interest accrual is not modelled.
"""
from __future__ import annotations

import logging
from collections import defaultdict

from ..config import MarketConfig
from ..constants import BPS, HEALTH_FACTOR_MAX, HEALTH_FACTOR_ONE, LTV_SCALE
from ..errors import UnsupportedAsset
from ..models import AccountAggregate, AssetConfig
from ..valuation import AssetValuation, usd_value
from .faults import FaultPlan, SimulationError
from .ledger import TokenLedger

logger = logging.getLogger(__name__)

POOL_HOLDER = "lending-pool"


class SimulatedLendingPool:
    """In-memory :class:`~leverage_engine.interfaces.LendingAdapter`."""

    def __init__(
        self,
        ledger: TokenLedger,
        valuation: AssetValuation,
        markets: dict[str, MarketConfig],
    ) -> None:
        self._ledger = ledger
        self._valuation = valuation
        self._markets = dict(markets)
        self._supplied: dict[str, dict[str, int]] = defaultdict(lambda: defaultdict(int))
        self._borrowed: dict[str, dict[str, int]] = defaultdict(lambda: defaultdict(int))
        self.faults = FaultPlan()

    def seed_liquidity(self, asset: str, amount: int) -> None:
        self._ledger.mint(POOL_HOLDER, asset, amount)

    def set_market(self, asset: str, market: MarketConfig) -> None:
        self._markets[asset] = market

    def supplied(self, account: str, asset: str) -> int:
        return self._supplied[account][asset]

    def borrowed(self, account: str, asset: str) -> int:
        return self._borrowed[account][asset]

    def _market(self, asset: str) -> MarketConfig:
        try:
            return self._markets[asset]
        except KeyError:
            raise UnsupportedAsset(asset) from None

    def _require_active(self, asset: str) -> MarketConfig:
        market = self._market(asset)
        if not market.active:
            raise SimulationError(f"Market {asset} is frozen")
        return market

    # ------------------------------------------------------------------
    # Valuation
    # ------------------------------------------------------------------

    async def _totals(
        self,
        supplied: dict[str, int],
        borrowed: dict[str, int],
    ) -> tuple[int, int, int, int]:
        """Return (collateral_usd, borrow_capacity_usd, liquidation_usd, debt_usd)."""
        assets = sorted({a for a, v in supplied.items() if v} | {a for a, v in borrowed.items() if v})
        if not assets:
            return 0, 0, 0, 0
        prices = await self._valuation.prices(assets)

        collateral = capacity = liquidation = debt = 0
        for asset, amount in supplied.items():
            if not amount:
                continue
            value = usd_value(amount, prices[asset], self._valuation.decimals(asset))
            market = self._market(asset)
            collateral += value
            capacity += value * market.ltv // LTV_SCALE
            liquidation += value * (market.liquidation_threshold or market.ltv) // LTV_SCALE
        for asset, amount in borrowed.items():
            if amount:
                debt += usd_value(amount, prices[asset], self._valuation.decimals(asset))
        return collateral, capacity, liquidation, debt

    @staticmethod
    def _health_factor(liquidation_usd: int, debt_usd: int) -> int:
        if debt_usd == 0:
            return HEALTH_FACTOR_MAX
        return liquidation_usd * HEALTH_FACTOR_ONE // debt_usd

    # ------------------------------------------------------------------
    # LendingAdapter
    # ------------------------------------------------------------------

    async def supply(self, account: str, asset: str, amount: int) -> None:
        self.faults.check("supply", asset)
        self._require_active(asset)
        self._ledger.transfer(asset, account, POOL_HOLDER, amount)
        self._supplied[account][asset] += amount
        logger.debug("%s supplied %d %s", account, amount, asset)

    async def borrow(self, account: str, asset: str, amount: int) -> None:
        self.faults.check("borrow", asset)
        self._require_active(asset)

        after = dict(self._borrowed[account])
        after[asset] = after.get(asset, 0) + amount
        _, capacity, _, debt = await self._totals(self._supplied[account], after)
        if debt > capacity:
            raise SimulationError(
                f"Borrow of {amount} {asset} exceeds capacity (${debt} > ${capacity})"
            )
        if self._ledger.balance(POOL_HOLDER, asset) < amount:
            raise SimulationError(f"Insufficient {asset} liquidity for {amount}")

        self._ledger.transfer(asset, POOL_HOLDER, account, amount)
        self._borrowed[account][asset] += amount
        logger.debug("%s borrowed %d %s", account, amount, asset)

    async def repay(self, account: str, asset: str, amount: int | None) -> int:
        self.faults.check("repay", asset)
        outstanding = self._borrowed[account][asset]
        paid = outstanding if amount is None else min(amount, outstanding)
        if paid == 0:
            return 0
        self._ledger.transfer(asset, account, POOL_HOLDER, paid)
        self._borrowed[account][asset] -= paid
        logger.debug("%s repaid %d %s", account, paid, asset)
        return paid

    async def withdraw(self, account: str, asset: str, amount: int | None) -> int:
        self.faults.check("withdraw", asset)
        balance = self._supplied[account][asset]
        taken = balance if amount is None else amount
        if taken > balance:
            raise SimulationError(f"{account} has only {balance} {asset} supplied")
        if taken == 0:
            return 0

        after = dict(self._supplied[account])
        after[asset] -= taken
        _, _, liquidation, debt = await self._totals(after, self._borrowed[account])
        if self._health_factor(liquidation, debt) < HEALTH_FACTOR_ONE:
            raise SimulationError(f"Withdrawal of {taken} {asset} would leave {account} unhealthy")

        self._ledger.transfer(asset, POOL_HOLDER, account, taken)
        self._supplied[account][asset] -= taken
        logger.debug("%s withdrew %d %s", account, taken, asset)
        return taken

    async def get_account_aggregate(self, account: str) -> AccountAggregate:
        collateral, capacity, liquidation, debt = await self._totals(
            self._supplied[account], self._borrowed[account]
        )
        return AccountAggregate(
            total_collateral_usd=collateral,
            total_debt_usd=debt,
            available_borrow_usd=max(0, capacity - debt),
            liquidation_threshold=liquidation * BPS // collateral if collateral else 0,
            ltv=capacity * BPS // collateral if collateral else 0,
            health_factor=self._health_factor(liquidation, debt),
        )

    async def get_asset_config(self, asset: str) -> AssetConfig:
        market = self._market(asset)
        return AssetConfig(
            ltv=market.ltv,
            active=market.active,
            reserve_factor=market.reserve_factor,
            liquidation_threshold=market.liquidation_threshold,
        )

    async def is_asset_supported(self, asset: str) -> bool:
        return asset in self._markets
