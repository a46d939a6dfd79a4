"""Protocol interfaces for the collaborators the engine drives."""
from .custody import AssetCustody
from .lending import LendingAdapter
from .notifier import Notifier
from .price_oracle import PriceOracle
from .swap import SwapAdapter

__all__ = ["AssetCustody", "LendingAdapter", "Notifier", "PriceOracle", "SwapAdapter"]
