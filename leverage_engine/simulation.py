"""Wires the engine to in-memory collaborators built from configuration."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from .config import AppConfig
from .interfaces.notifier import Notifier
from .interfaces.price_oracle import PriceOracle
from .notifications import LogNotifier, NotificationDispatcher, TelegramNotifier
from .oracles import PythOracle, StaticPriceOracle
from .services import PositionOperations, PositionRegistry
from .sim import OracleSwapVenue, SimulatedLendingPool, TokenLedger
from .valuation import AssetValuation

logger = logging.getLogger(__name__)

# Registry of price oracle factories keyed by provider name.
_ORACLE_FACTORIES: dict[str, Any] = {
    "pyth": lambda cfg: PythOracle(cfg.pyth),
    "static": lambda cfg: StaticPriceOracle(cfg.static_prices),
}


@dataclass
class SimulationEnvironment:
    config: AppConfig
    oracle: PriceOracle
    valuation: AssetValuation
    ledger: TokenLedger
    lending: SimulatedLendingPool
    swapper: OracleSwapVenue
    registry: PositionRegistry


def build_oracle(config: AppConfig) -> PriceOracle:
    factory = _ORACLE_FACTORIES.get(config.price_oracle.provider)
    if factory is None:
        raise ValueError(f"No oracle factory for provider '{config.price_oracle.provider}'")
    return factory(config.price_oracle)


def build_notifiers(config: AppConfig) -> list[Notifier]:
    notifiers: list[Notifier] = []
    if config.notifications.log_events:
        notifiers.append(LogNotifier())
    if config.notifications.telegram.enabled:
        notifiers.append(TelegramNotifier(config.notifications.telegram))
    return notifiers


def build_environment(
    config: AppConfig, oracle: PriceOracle | None = None
) -> SimulationEnvironment:
    """Create a ledger, lending pool, swap venue and registry from ``config``."""
    oracle = oracle or build_oracle(config)
    valuation = AssetValuation(oracle, config.token_decimals)
    ledger = TokenLedger()
    lending = SimulatedLendingPool(ledger, valuation, config.simulation.markets)
    for asset, amount in config.simulation.pool_liquidity.items():
        lending.seed_liquidity(asset, amount)
    swapper = OracleSwapVenue(ledger, valuation, config.simulation.swap_fee_bps)

    ops = PositionOperations(lending, swapper, ledger, valuation, config.engine)
    registry = PositionRegistry(ops, NotificationDispatcher(build_notifiers(config)))
    logger.debug(
        "Simulation ready: %d market(s), oracle=%s",
        len(config.simulation.markets), config.price_oracle.provider,
    )
    return SimulationEnvironment(
        config=config,
        oracle=oracle,
        valuation=valuation,
        ledger=ledger,
        lending=lending,
        swapper=swapper,
        registry=registry,
    )
