"""Shared test fixtures and sample data."""
from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from leverage_engine.config import (
    AppConfig,
    AssetEntry,
    EngineConfig,
    MarketConfig,
    NotificationsConfig,
    PriceOracleConfig,
    SimulationConfig,
)
from leverage_engine.models import PositionEvent
from leverage_engine.notifications import NotificationDispatcher
from leverage_engine.oracles import StaticPriceOracle
from leverage_engine.services import PositionOperations, PositionRegistry
from leverage_engine.simulation import SimulationEnvironment, build_environment
from leverage_engine.valuation import AssetValuation

ALICE = "alice"
BOB = "bob"

ETH = 10**18
WBTC = 10**8
USDC = 10**6

PRICES = {
    "ETH": 2_000 * 10**8,
    "WBTC": 60_000 * 10**8,
    "WSTETH": 2_300 * 10**8,
    "USDC": 1 * 10**8,
    "FROZEN": 10 * 10**8,
}

DECIMALS = {"ETH": 18, "WBTC": 8, "WSTETH": 18, "USDC": 6, "FROZEN": 18}


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def sample_markets() -> dict[str, MarketConfig]:
    return {
        "ETH": MarketConfig(ltv=7500, liquidation_threshold=8000),
        "WBTC": MarketConfig(ltv=7000, liquidation_threshold=7500),
        "WSTETH": MarketConfig(ltv=7000, liquidation_threshold=7500),
        "USDC": MarketConfig(ltv=7700, liquidation_threshold=8000),
        "FROZEN": MarketConfig(ltv=5000, liquidation_threshold=6000, active=False),
    }


@pytest.fixture()
def sample_app_config(sample_markets: dict[str, MarketConfig]) -> AppConfig:
    return AppConfig(
        engine=EngineConfig(),
        assets={symbol: AssetEntry(decimals=d) for symbol, d in DECIMALS.items()},
        price_oracle=PriceOracleConfig(provider="static", static_prices=dict(PRICES)),
        simulation=SimulationConfig(
            markets=sample_markets,
            swap_fee_bps=30,
            pool_liquidity={"USDC": 100_000_000 * USDC, "ETH": 10_000 * ETH},
        ),
        notifications=NotificationsConfig(log_events=False),
    )


# ---------------------------------------------------------------------------
# Collaborator fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def static_oracle() -> StaticPriceOracle:
    return StaticPriceOracle(dict(PRICES))


@pytest.fixture()
def valuation(static_oracle: StaticPriceOracle) -> AssetValuation:
    return AssetValuation(static_oracle, dict(DECIMALS))


@pytest.fixture()
def env(sample_app_config: AppConfig) -> SimulationEnvironment:
    """Simulation with funded wallets for ALICE and BOB."""
    environment = build_environment(sample_app_config)
    for owner in (ALICE, BOB):
        environment.ledger.mint(owner, "ETH", 10 * ETH)
        environment.ledger.mint(owner, "WBTC", 1 * WBTC)
        environment.ledger.mint(owner, "WSTETH", 10 * ETH)
        environment.ledger.mint(owner, "USDC", 50_000 * USDC)
    return environment


class EventRecorder:
    """Notifier that keeps every published event."""

    def __init__(self) -> None:
        self.events: list[PositionEvent] = []

    async def publish(self, event: PositionEvent) -> bool:
        self.events.append(event)
        return True

    def of_type(self, event_type: type) -> list[PositionEvent]:
        return [e for e in self.events if isinstance(e, event_type)]


@pytest.fixture()
def recorder() -> EventRecorder:
    return EventRecorder()


@pytest.fixture()
def registry(env: SimulationEnvironment, recorder: EventRecorder) -> PositionRegistry:
    ops = PositionOperations(
        env.lending, env.swapper, env.ledger, env.valuation, env.config.engine
    )
    return PositionRegistry(ops, NotificationDispatcher([recorder]))


# ---------------------------------------------------------------------------
# Config YAML fixture
# ---------------------------------------------------------------------------

SAMPLE_YAML = textwrap.dedent("""\
    engine:
      max_collateral_assets: 4
      max_loop_iterations: 8
      borrow_haircut_bps: 9000
      max_slippage_bps: 50
      swap_deadline_seconds: 120
    assets:
      eth:
        decimals: 18
        pyth_feed: "0xaaa"
      USDC:
        decimals: 6
        pyth_feed: "bbb"
    price_oracle:
      provider: static
      pyth:
        hermes_url: "https://hermes.example.com"
        timeout: 5
      static_prices: {ETH: 200000000000, USDC: 100000000}
    simulation:
      swap_fee_bps: 10
      markets:
        ETH: {ltv: 7500, liquidation_threshold: 8000}
        USDC: {ltv: 7700, liquidation_threshold: 8000, active: false}
      pool_liquidity: {USDC: 1000000000000}
    notifications:
      log_events: false
      telegram:
        enabled: true
        bot_token: "tok"
        chat_id: 999
""")


@pytest.fixture()
def sample_yaml_path(tmp_path: Path) -> Path:
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(SAMPLE_YAML)
    return cfg_file
