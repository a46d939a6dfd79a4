"""Exception hierarchy for the leverage engine.

Every error carries a short machine-readable ``code`` and a ``details`` dict so
callers (CLI, services) can render or serialize failures uniformly.
"""
from __future__ import annotations

from typing import Any


class LeverageEngineError(Exception):
    """Base exception for all engine errors."""

    code = "ENG-0000"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_code": self.code,
            "error_type": type(self).__name__,
            "message": self.message,
            "details": self.details,
        }


# ---------------------------------------------------------------------------
# Validation: caller input is categorically wrong
# ---------------------------------------------------------------------------


class ValidationError(LeverageEngineError):
    code = "VAL-0000"


class InvalidLeverage(ValidationError):
    code = "VAL-0001"


class UnsupportedAsset(ValidationError):
    code = "VAL-0002"

    def __init__(self, asset: str, reason: str = "not supported") -> None:
        super().__init__(f"Asset {asset} is {reason}", {"asset": asset})
        self.asset = asset


class TooManyCollateralAssets(ValidationError):
    code = "VAL-0003"


class IdenticalAssets(ValidationError):
    code = "VAL-0004"

    def __init__(self, asset: str) -> None:
        super().__init__(
            f"Collateral and debt asset must differ (got {asset} for both)",
            {"asset": asset},
        )


class InvalidCollateralCount(ValidationError):
    code = "VAL-0005"


class DuplicateCollateralAsset(ValidationError):
    code = "VAL-0006"


class InvalidAmount(ValidationError):
    code = "VAL-0007"


# ---------------------------------------------------------------------------
# Policy / safety
# ---------------------------------------------------------------------------


class PolicyError(LeverageEngineError):
    code = "POL-0000"


class LeverageExceedsSafeMax(PolicyError):
    code = "POL-0001"

    def __init__(self, requested: int, maximum: int) -> None:
        super().__init__(
            f"Requested leverage {requested} exceeds safe maximum {maximum}",
            {"requested": requested, "maximum": maximum},
        )


class BorrowCapacityExceeded(PolicyError):
    code = "POL-0002"


class ExcessiveRepayment(PolicyError):
    code = "POL-0003"

    def __init__(self, amount: int, outstanding: int) -> None:
        super().__init__(
            f"Repayment {amount} exceeds outstanding debt {outstanding}",
            {"amount": amount, "outstanding": outstanding},
        )


class TargetLeverageNotReached(PolicyError):
    code = "POL-0004"

    def __init__(self, reached: int, target: int, iterations: int) -> None:
        super().__init__(
            f"Leverage {reached} below target {target} after {iterations} iterations",
            {"reached": reached, "target": target, "iterations": iterations},
        )


# ---------------------------------------------------------------------------
# Authorization / state
# ---------------------------------------------------------------------------


class AuthorizationError(LeverageEngineError):
    code = "AUTH-0000"


class Unauthorized(AuthorizationError):
    code = "AUTH-0001"

    def __init__(self, caller: str) -> None:
        super().__init__(f"{caller or '<anonymous>'} is not the position owner", {"caller": caller})


class StateError(LeverageEngineError):
    code = "STA-0000"


class PositionNotOpen(StateError):
    code = "STA-0001"


class PositionNotFound(StateError):
    code = "STA-0002"


class PositionBusy(StateError):
    code = "STA-0003"


class PositionAlreadyInitialized(StateError):
    code = "STA-0004"


# ---------------------------------------------------------------------------
# External dependencies
# ---------------------------------------------------------------------------


class ExternalDependencyError(LeverageEngineError):
    code = "EXT-0000"


class InvalidPriceData(ExternalDependencyError):
    code = "EXT-0001"


class BorrowFailed(ExternalDependencyError):
    code = "EXT-0002"


class SwapFailed(ExternalDependencyError):
    code = "EXT-0003"


class LendingOperationFailed(ExternalDependencyError):
    code = "EXT-0004"


class TransferFailed(ExternalDependencyError):
    code = "EXT-0005"


class UnwindIncomplete(ExternalDependencyError):
    code = "EXT-0006"

    def __init__(self, failed_steps: list[str]) -> None:
        super().__init__(
            f"Could not undo {len(failed_steps)} step(s): {', '.join(failed_steps)}",
            {"failed_steps": list(failed_steps)},
        )
        self.failed_steps = list(failed_steps)
