"""In-memory collaborators for simulations and tests."""
from .faults import FaultPlan, SimulationError
from .ledger import TokenLedger
from .lending_pool import POOL_HOLDER, SimulatedLendingPool
from .swap_venue import OracleSwapVenue

__all__ = [
    "FaultPlan",
    "OracleSwapVenue",
    "POOL_HOLDER",
    "SimulatedLendingPool",
    "SimulationError",
    "TokenLedger",
]
