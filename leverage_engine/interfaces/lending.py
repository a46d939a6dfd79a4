"""Lending adapter: supply/borrow/repay/withdraw against one protocol account."""
from typing import Protocol

from ..models import AccountAggregate, AssetConfig


class LendingAdapter(Protocol):
    """Abstract interface for a lending protocol.

    ``account`` is the isolated protocol account of a single position. For
    ``repay`` and ``withdraw`` an ``amount`` of ``None`` means the full balance.
    """

    async def supply(self, account: str, asset: str, amount: int) -> None: ...

    async def borrow(self, account: str, asset: str, amount: int) -> None: ...

    async def repay(self, account: str, asset: str, amount: int | None) -> int: ...

    async def withdraw(self, account: str, asset: str, amount: int | None) -> int: ...

    async def get_account_aggregate(self, account: str) -> AccountAggregate: ...

    async def get_asset_config(self, asset: str) -> AssetConfig: ...

    async def is_asset_supported(self, asset: str) -> bool: ...
