"""
Risk state and reporting models.
"""

from datetime import date

from pydantic import BaseModel, Field


class DailyStats(BaseModel):
    """In-memory daily tally owned by one RiskManager. Not persisted."""

    trades_count: int = 0
    pnl: float = 0.0
    last_reset_date: date


class RiskMetrics(BaseModel):
    """Point-in-time risk report appended to every processed signal"""

    exposure: str = Field(description="Open notional as % of balance, 2dp")
    drawdown: str = Field(description="% decline from the initial balance, 2dp")
    daily_pnl: str = Field(alias="dailyPnl")
    daily_trades: int = Field(alias="dailyTrades")
    open_positions: int = Field(alias="openPositions")

    def to_response(self) -> dict:
        return self.model_dump(by_alias=True)

    class Config:
        populate_by_name = True
        frozen = True
