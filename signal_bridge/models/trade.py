"""
Trade proposal and validation result models.
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, computed_field


class TradeState(str, Enum):
    """Lifecycle of a proposal inside the risk layer"""
    EVALUATING = "evaluating"
    VALIDATED = "validated"
    REJECTED = "rejected"


class TradeProposal(BaseModel):
    """
    A trade the bridge would like to place.

    ``calculated_size`` is filled in by RiskManager.validate_trade when both
    prices are present and sizing succeeds.
    """

    symbol: str
    action: str
    entry_price: Optional[float] = None
    stop_loss_price: Optional[float] = None
    signal_strength: Optional[float] = None
    calculated_size: Optional[float] = None


class ValidationResult(BaseModel):
    """Outcome of one validate_trade call. Errors never short-circuit."""

    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    adjusted_trade: TradeProposal

    @computed_field
    @property
    def is_valid(self) -> bool:
        return not self.errors

    @property
    def state(self) -> TradeState:
        return TradeState.VALIDATED if self.is_valid else TradeState.REJECTED
