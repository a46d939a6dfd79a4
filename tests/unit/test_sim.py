"""Unit tests for the in-memory ledger, lending pool and swap venue."""
from __future__ import annotations

import pytest

from conftest import ETH, USDC
from leverage_engine.constants import HEALTH_FACTOR_MAX
from leverage_engine.errors import UnsupportedAsset
from leverage_engine.simulation import SimulationEnvironment
from leverage_engine.sim import FaultPlan, OracleSwapVenue, SimulationError, TokenLedger

ACCOUNT = "pos-test"


class TestFaultPlan:
    def test_fails_after_count(self) -> None:
        plan = FaultPlan()
        plan.fail("borrow", after=1)
        plan.check("borrow", "USDC")
        with pytest.raises(SimulationError):
            plan.check("borrow", "USDC")

    def test_asset_specific(self) -> None:
        plan = FaultPlan()
        plan.fail("swap", "ETH")
        plan.check("swap", "WBTC")
        with pytest.raises(SimulationError):
            plan.check("swap", "ETH")

    def test_clear(self) -> None:
        plan = FaultPlan()
        plan.fail("supply")
        plan.clear("supply")
        plan.check("supply", "ETH")


class TestTokenLedger:
    def test_transfer(self) -> None:
        ledger = TokenLedger()
        ledger.mint("a", "ETH", 10)
        ledger.transfer("ETH", "a", "b", 4)
        assert ledger.balance("a", "ETH") == 6
        assert ledger.balance("b", "ETH") == 4

    def test_overdraw_rejected(self) -> None:
        ledger = TokenLedger()
        ledger.mint("a", "ETH", 1)
        with pytest.raises(SimulationError):
            ledger.transfer("ETH", "a", "b", 2)
        assert ledger.balance("a", "ETH") == 1

    @pytest.mark.asyncio
    async def test_custody_calls(self) -> None:
        ledger = TokenLedger()
        ledger.mint("owner", "ETH", 5)
        await ledger.pull("ETH", "owner", ACCOUNT, 5)
        assert await ledger.balance_of(ACCOUNT, "ETH") == 5
        await ledger.push("ETH", ACCOUNT, "owner", 2)
        assert await ledger.balance_of("owner", "ETH") == 2

    @pytest.mark.asyncio
    async def test_pull_fault(self) -> None:
        ledger = TokenLedger()
        ledger.mint("owner", "ETH", 5)
        ledger.faults.fail("pull", "ETH")
        with pytest.raises(SimulationError):
            await ledger.pull("ETH", "owner", ACCOUNT, 5)


class TestSimulatedLendingPool:
    @pytest.fixture()
    def funded(self, env: SimulationEnvironment) -> SimulationEnvironment:
        env.ledger.mint(ACCOUNT, "ETH", ETH)
        return env

    @pytest.mark.asyncio
    async def test_supply_and_aggregate(self, funded: SimulationEnvironment) -> None:
        await funded.lending.supply(ACCOUNT, "ETH", ETH)
        aggregate = await funded.lending.get_account_aggregate(ACCOUNT)
        assert aggregate.total_collateral_usd == 2_000 * 10**8
        assert aggregate.total_debt_usd == 0
        assert aggregate.available_borrow_usd == 1_500 * 10**8
        assert aggregate.ltv == 7500
        assert aggregate.liquidation_threshold == 8000
        assert aggregate.health_factor == HEALTH_FACTOR_MAX

    @pytest.mark.asyncio
    async def test_borrow_up_to_capacity(self, funded: SimulationEnvironment) -> None:
        lending = funded.lending
        await lending.supply(ACCOUNT, "ETH", ETH)
        await lending.borrow(ACCOUNT, "USDC", 1_500 * USDC)
        assert lending.borrowed(ACCOUNT, "USDC") == 1_500 * USDC
        assert funded.ledger.balance(ACCOUNT, "USDC") == 1_500 * USDC

        aggregate = await lending.get_account_aggregate(ACCOUNT)
        assert aggregate.available_borrow_usd == 0
        assert aggregate.health_factor == 1_600 * 10**18 // 1_500

        with pytest.raises(SimulationError, match="exceeds capacity"):
            await lending.borrow(ACCOUNT, "USDC", 1)

    @pytest.mark.asyncio
    async def test_unhealthy_withdraw_rejected(self, funded: SimulationEnvironment) -> None:
        lending = funded.lending
        await lending.supply(ACCOUNT, "ETH", ETH)
        await lending.borrow(ACCOUNT, "USDC", 1_500 * USDC)
        with pytest.raises(SimulationError, match="unhealthy"):
            await lending.withdraw(ACCOUNT, "ETH", ETH // 5)
        assert lending.supplied(ACCOUNT, "ETH") == ETH

    @pytest.mark.asyncio
    async def test_repay_all_and_withdraw_all(self, funded: SimulationEnvironment) -> None:
        lending = funded.lending
        await lending.supply(ACCOUNT, "ETH", ETH)
        await lending.borrow(ACCOUNT, "USDC", 500 * USDC)
        assert await lending.repay(ACCOUNT, "USDC", None) == 500 * USDC
        assert await lending.withdraw(ACCOUNT, "ETH", None) == ETH
        assert funded.ledger.balance(ACCOUNT, "ETH") == ETH

    @pytest.mark.asyncio
    async def test_repay_caps_at_outstanding(self, funded: SimulationEnvironment) -> None:
        lending = funded.lending
        await lending.supply(ACCOUNT, "ETH", ETH)
        await lending.borrow(ACCOUNT, "USDC", 100 * USDC)
        funded.ledger.mint(ACCOUNT, "USDC", 50 * USDC)
        assert await lending.repay(ACCOUNT, "USDC", 150 * USDC) == 100 * USDC
        assert funded.ledger.balance(ACCOUNT, "USDC") == 50 * USDC

    @pytest.mark.asyncio
    async def test_frozen_market_rejects_supply(self, env: SimulationEnvironment) -> None:
        env.ledger.mint(ACCOUNT, "FROZEN", ETH)
        with pytest.raises(SimulationError, match="frozen"):
            await env.lending.supply(ACCOUNT, "FROZEN", ETH)

    @pytest.mark.asyncio
    async def test_asset_config(self, env: SimulationEnvironment) -> None:
        config = await env.lending.get_asset_config("FROZEN")
        assert config.ltv == 5000
        assert config.active is False
        assert await env.lending.is_asset_supported("ETH")
        assert not await env.lending.is_asset_supported("DOGE")
        with pytest.raises(UnsupportedAsset):
            await env.lending.get_asset_config("DOGE")


class TestOracleSwapVenue:
    @pytest.mark.asyncio
    async def test_quote_applies_fee(self, env: SimulationEnvironment) -> None:
        assert await env.swapper.quote("ETH", "USDC", ETH) == 1_994 * USDC

    @pytest.mark.asyncio
    async def test_swap_moves_balances(self, env: SimulationEnvironment) -> None:
        env.ledger.mint(ACCOUNT, "ETH", ETH)
        out = await env.swapper.swap_exact(
            ACCOUNT, "ETH", "USDC", ETH, 1_980 * USDC, 2**62
        )
        assert out == 1_994 * USDC
        assert env.ledger.balance(ACCOUNT, "ETH") == 0
        assert env.ledger.balance(ACCOUNT, "USDC") == 1_994 * USDC

    @pytest.mark.asyncio
    async def test_min_out_enforced(self, env: SimulationEnvironment) -> None:
        env.ledger.mint(ACCOUNT, "ETH", ETH)
        with pytest.raises(SimulationError, match="Insufficient output"):
            await env.swapper.swap_exact(ACCOUNT, "ETH", "USDC", ETH, 2_000 * USDC, 2**62)
        with pytest.raises(SimulationError, match="min_out"):
            await env.swapper.swap_exact(ACCOUNT, "ETH", "USDC", ETH, 0, 2**62)
        assert env.ledger.balance(ACCOUNT, "ETH") == ETH

    @pytest.mark.asyncio
    async def test_deadline_enforced(self, env: SimulationEnvironment) -> None:
        venue = OracleSwapVenue(env.ledger, env.valuation, clock=lambda: 1_000.0)
        env.ledger.mint(ACCOUNT, "ETH", ETH)
        with pytest.raises(SimulationError, match="deadline"):
            await venue.swap_exact(ACCOUNT, "ETH", "USDC", ETH, 1, 999)
