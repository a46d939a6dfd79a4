"""Configuration loader: reads config.yaml, interpolates env vars, validates."""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from .constants import (
    BPS,
    DEFAULT_BORROW_HAIRCUT_BPS,
    DEFAULT_MAX_COLLATERAL_ASSETS,
    DEFAULT_MAX_LOOP_ITERATIONS,
    DEFAULT_MAX_SLIPPAGE_BPS,
    DEFAULT_SWAP_DEADLINE_SECONDS,
    LTV_SCALE,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Frozen config dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EngineConfig:
    max_collateral_assets: int = DEFAULT_MAX_COLLATERAL_ASSETS
    max_loop_iterations: int = DEFAULT_MAX_LOOP_ITERATIONS
    borrow_haircut_bps: int = DEFAULT_BORROW_HAIRCUT_BPS
    max_slippage_bps: int = DEFAULT_MAX_SLIPPAGE_BPS
    swap_deadline_seconds: int = DEFAULT_SWAP_DEADLINE_SECONDS


@dataclass(frozen=True)
class AssetEntry:
    decimals: int = 18
    pyth_feed: str = ""


@dataclass(frozen=True)
class PythConfig:
    hermes_url: str = "https://hermes.pyth.network/v2/updates/price/latest"
    feeds: dict[str, str] = field(default_factory=dict)
    timeout: int = 30


@dataclass(frozen=True)
class PriceOracleConfig:
    provider: str = "static"
    pyth: PythConfig = field(default_factory=PythConfig)
    # USD prices with 8 decimals, used by the static provider
    static_prices: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class MarketConfig:
    ltv: int = 0
    liquidation_threshold: int = 0
    active: bool = True
    reserve_factor: int = 0


@dataclass(frozen=True)
class SimulationConfig:
    markets: dict[str, MarketConfig] = field(default_factory=dict)
    swap_fee_bps: int = 30
    pool_liquidity: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class TelegramConfig:
    enabled: bool = False
    bot_token: str = ""
    chat_id: str = ""


@dataclass(frozen=True)
class NotificationsConfig:
    telegram: TelegramConfig = field(default_factory=TelegramConfig)
    log_events: bool = True


@dataclass(frozen=True)
class AppConfig:
    engine: EngineConfig = field(default_factory=EngineConfig)
    assets: dict[str, AssetEntry] = field(default_factory=dict)
    price_oracle: PriceOracleConfig = field(default_factory=PriceOracleConfig)
    simulation: SimulationConfig = field(default_factory=SimulationConfig)
    notifications: NotificationsConfig = field(default_factory=NotificationsConfig)

    @property
    def token_decimals(self) -> dict[str, int]:
        return {symbol: entry.decimals for symbol, entry in self.assets.items()}


# ---------------------------------------------------------------------------
# Env interpolation
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)}")


def _interpolate_env(value: Any) -> Any:
    """Recursively replace ${VAR} references with environment variable values."""
    if isinstance(value, str):
        return _ENV_VAR_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _interpolate_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_interpolate_env(item) for item in value]
    return value


# ---------------------------------------------------------------------------
# YAML → dataclass builders
# ---------------------------------------------------------------------------


def _build_engine(raw: dict[str, Any]) -> EngineConfig:
    return EngineConfig(
        max_collateral_assets=int(
            raw.get("max_collateral_assets", DEFAULT_MAX_COLLATERAL_ASSETS)
        ),
        max_loop_iterations=int(
            raw.get("max_loop_iterations", DEFAULT_MAX_LOOP_ITERATIONS)
        ),
        borrow_haircut_bps=int(raw.get("borrow_haircut_bps", DEFAULT_BORROW_HAIRCUT_BPS)),
        max_slippage_bps=int(raw.get("max_slippage_bps", DEFAULT_MAX_SLIPPAGE_BPS)),
        swap_deadline_seconds=int(
            raw.get("swap_deadline_seconds", DEFAULT_SWAP_DEADLINE_SECONDS)
        ),
    )


def _build_assets(raw: dict[str, Any]) -> dict[str, AssetEntry]:
    assets: dict[str, AssetEntry] = {}
    for symbol, cfg in raw.items():
        cfg = cfg or {}
        assets[symbol.upper()] = AssetEntry(
            decimals=int(cfg.get("decimals", 18)),
            pyth_feed=cfg.get("pyth_feed", ""),
        )
    return assets


def _build_price_oracle(
    raw: dict[str, Any], assets: dict[str, AssetEntry]
) -> PriceOracleConfig:
    pyth_raw = raw.get("pyth", {})
    # Feeds declared per asset are merged under any explicit pyth.feeds mapping
    feeds = {s: a.pyth_feed for s, a in assets.items() if a.pyth_feed}
    feeds.update({k.upper(): v for k, v in pyth_raw.get("feeds", {}).items()})
    return PriceOracleConfig(
        provider=raw.get("provider") or "static",
        pyth=PythConfig(
            hermes_url=pyth_raw.get("hermes_url", PythConfig.hermes_url),
            feeds=feeds,
            timeout=int(pyth_raw.get("timeout", 30)),
        ),
        static_prices={
            k.upper(): int(v) for k, v in raw.get("static_prices", {}).items()
        },
    )


def _build_simulation(raw: dict[str, Any]) -> SimulationConfig:
    markets: dict[str, MarketConfig] = {}
    for symbol, cfg in raw.get("markets", {}).items():
        markets[symbol.upper()] = MarketConfig(
            ltv=int(cfg.get("ltv", 0)),
            liquidation_threshold=int(cfg.get("liquidation_threshold", 0)),
            active=bool(cfg.get("active", True)),
            reserve_factor=int(cfg.get("reserve_factor", 0)),
        )
    return SimulationConfig(
        markets=markets,
        swap_fee_bps=int(raw.get("swap_fee_bps", 30)),
        pool_liquidity={
            k.upper(): int(v) for k, v in raw.get("pool_liquidity", {}).items()
        },
    )


def _build_notifications(raw: dict[str, Any]) -> NotificationsConfig:
    tg = raw.get("telegram", {})
    return NotificationsConfig(
        telegram=TelegramConfig(
            enabled=bool(tg.get("enabled", False)),
            bot_token=tg.get("bot_token", ""),
            chat_id=str(tg.get("chat_id", "")),
        ),
        log_events=bool(raw.get("log_events", True)),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load and validate application configuration from YAML + .env.

    Args:
        config_path: Path to config.yaml. Defaults to ``config.yaml`` in the
            project root (one level up from this package).
    """
    load_dotenv()

    if config_path is None:
        config_path = Path(__file__).resolve().parent.parent / "config.yaml"
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    raw = _interpolate_env(raw)

    assets = _build_assets(raw.get("assets", {}))
    cfg = AppConfig(
        engine=_build_engine(raw.get("engine", {})),
        assets=assets,
        price_oracle=_build_price_oracle(raw.get("price_oracle", {}), assets),
        simulation=_build_simulation(raw.get("simulation", {})),
        notifications=_build_notifications(raw.get("notifications", {})),
    )

    _validate(cfg)
    logger.info("Configuration loaded from %s", config_path)
    return cfg


def _validate(cfg: AppConfig) -> None:
    """Raise on invalid configuration."""
    if not cfg.assets:
        raise ValueError("At least one asset must be configured")

    engine = cfg.engine
    if engine.max_collateral_assets < 1:
        raise ValueError("max_collateral_assets must be at least 1")
    if engine.max_loop_iterations < 1:
        raise ValueError("max_loop_iterations must be at least 1")
    if not 0 < engine.borrow_haircut_bps <= BPS:
        raise ValueError(f"borrow_haircut_bps must be in (0, {BPS}]")
    if not 0 <= engine.max_slippage_bps < BPS:
        raise ValueError(f"max_slippage_bps must be in [0, {BPS})")
    if engine.swap_deadline_seconds <= 0:
        raise ValueError("swap_deadline_seconds must be positive")

    for symbol, entry in cfg.assets.items():
        if entry.decimals < 0:
            raise ValueError(f"Asset '{symbol}' has negative decimals")

    oracle = cfg.price_oracle
    if oracle.provider not in ("pyth", "static"):
        raise ValueError(f"Unknown price oracle provider '{oracle.provider}'")
    if oracle.provider == "pyth":
        missing = sorted(s for s in cfg.assets if s not in oracle.pyth.feeds)
        if missing:
            raise ValueError(f"No Pyth feed configured for: {', '.join(missing)}")

    for symbol, market in cfg.simulation.markets.items():
        if symbol not in cfg.assets:
            raise ValueError(f"Market '{symbol}' references unknown asset")
        if not 0 <= market.ltv < LTV_SCALE:
            raise ValueError(f"Market '{symbol}' ltv must be in [0, {LTV_SCALE})")
        if market.liquidation_threshold and market.liquidation_threshold < market.ltv:
            raise ValueError(
                f"Market '{symbol}' liquidation_threshold is below its ltv"
            )
