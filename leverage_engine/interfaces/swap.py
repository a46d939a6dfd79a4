"""Swap adapter: single-hop exact-input swaps."""
from typing import Protocol


class SwapAdapter(Protocol):
    """Abstract interface for a two-asset swap venue."""

    async def swap_exact(
        self,
        account: str,
        from_asset: str,
        to_asset: str,
        amount_in: int,
        min_out: int,
        deadline: int,
    ) -> int: ...
