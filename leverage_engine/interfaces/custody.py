"""Asset custody protocol: token movement between owners and position accounts."""
from typing import Protocol


class AssetCustody(Protocol):
    """Abstract interface for pulling funds in from and pushing funds out to owners."""

    async def pull(self, asset: str, owner: str, account: str, amount: int) -> None: ...

    async def push(self, asset: str, account: str, owner: str, amount: int) -> None: ...

    async def balance_of(self, holder: str, asset: str) -> int: ...
