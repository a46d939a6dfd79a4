"""Price oracle protocol: USD prices with 8 decimals."""
from typing import Protocol


class PriceOracle(Protocol):
    """Abstract interface for fetching asset prices."""

    async def prices_usd(self, assets: list[str]) -> list[int]: ...
