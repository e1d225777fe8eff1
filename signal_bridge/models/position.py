"""
Position snapshot model.

Parses a row from Bybit's /v5/position/list. The exchange owns positions;
these are read-only snapshots.
"""

from typing import Any, Dict

from pydantic import BaseModel, Field, field_validator


class Position(BaseModel):
    """
    Position snapshot.

    Example:
        position = Position.from_exchange({
            "symbol": "BTCUSDT",
            "side": "Buy",
            "size": "0.01",
            "markPrice": "50120.5",
            "avgPrice": "50000"
        })
    """

    symbol: str = Field(default="", description="Exchange symbol")
    side: str = Field(default="", description="Buy, Sell, or empty when flat")
    size: float = Field(default=0.0, description="Position size as reported")
    mark_price: float = Field(default=0.0, alias="markPrice")
    avg_price: float = Field(default=0.0, alias="avgPrice")

    @field_validator('size', 'mark_price', 'avg_price', mode='before')
    @classmethod
    def validate_number(cls, v):
        """Exchange sends numbers as strings and empty strings for 'none'"""
        if v is None or v == "":
            return 0.0
        return v

    @field_validator('side', mode='before')
    @classmethod
    def validate_side(cls, v):
        if v is None or v == "None":
            return ""
        return v

    @property
    def is_open(self) -> bool:
        return self.size != 0

    @property
    def signed_size(self) -> float:
        """Negative for shorts, whether the exchange signs size or reports a side"""
        if self.side == "Sell":
            return -abs(self.size)
        return self.size

    @property
    def closing_side(self) -> str:
        """Order side that flattens this position"""
        return "Buy" if self.signed_size < 0 else "Sell"

    @property
    def reference_price(self) -> float:
        return self.mark_price or self.avg_price

    @classmethod
    def from_exchange(cls, row: Dict[str, Any]) -> "Position":
        return cls.model_validate(row)

    class Config:
        populate_by_name = True
        extra = "ignore"
