"""
Risk policy model.

Every recognized option is a field with its default; there is no
default-then-override dict merging.
"""

from typing import FrozenSet

from pydantic import BaseModel, Field, field_validator, model_validator


DEFAULT_ALLOWED_SYMBOLS = frozenset({"BTCUSDT", "ETHUSDT", "SOLUSDT", "ADAUSDT", "DOTUSDT"})


class TradingHours(BaseModel):
    """UTC hour-of-day window, start inclusive, end exclusive"""

    start: int = Field(default=0, ge=0, le=24)
    end: int = Field(default=24, ge=0, le=24)

    def contains(self, hour: int) -> bool:
        return self.start <= hour < self.end

    class Config:
        frozen = True


class RiskConfig(BaseModel):
    """
    Immutable risk policy.

    Example:
        config = RiskConfig.from_settings(settings)
        strict = config.with_overrides(max_total_positions=1)
    """

    max_risk_per_trade: float = Field(default=2.0, gt=0, le=100, description="% of balance risked per trade")
    max_daily_loss: float = Field(default=10.0, gt=0, le=100, description="% of balance lost before trading stops")
    max_positions_per_symbol: int = Field(default=1, ge=0)
    max_total_positions: int = Field(default=3, ge=0)
    min_account_balance: float = Field(default=100.0, ge=0, description="Minimum USDT balance")
    allowed_symbols: FrozenSet[str] = Field(default=DEFAULT_ALLOWED_SYMBOLS)
    trading_hours: TradingHours = Field(default_factory=TradingHours)

    @field_validator('allowed_symbols', mode='before')
    @classmethod
    def validate_symbols(cls, v):
        """Accept any iterable (or a comma list) and store uppercase"""
        if isinstance(v, str):
            v = v.split(",")
        return frozenset(s.strip().upper() for s in v if s and s.strip())

    @model_validator(mode='after')
    def validate_hours(self):
        if self.trading_hours.start > self.trading_hours.end:
            raise ValueError('Trading hours start must not be after end')
        return self

    def is_symbol_allowed(self, symbol: str) -> bool:
        return symbol.upper() in self.allowed_symbols

    def with_overrides(self, **overrides) -> "RiskConfig":
        """Return a validated copy with some options replaced"""
        data = self.model_dump()
        data.update(overrides)
        return type(self).model_validate(data)

    @classmethod
    def from_settings(cls, settings) -> "RiskConfig":
        """Policy from BridgeSettings; options not in settings keep their defaults"""
        return cls(
            max_risk_per_trade=settings.max_risk_per_trade,
            max_daily_loss=settings.max_daily_loss,
            allowed_symbols=settings.allowed_symbols,
        )

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "max_risk_per_trade": 2.0,
                "max_daily_loss": 10.0,
                "max_positions_per_symbol": 1,
                "max_total_positions": 3,
                "min_account_balance": 100.0,
                "allowed_symbols": ["BTCUSDT", "ETHUSDT"],
                "trading_hours": {"start": 0, "end": 24}
            }
        }
