"""
Inbound signal models.

Signal is the raw TradingView alert body; ProcessedSignal is the trade
direction derived from it by the risk layer.
"""

from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from signal_bridge.utils.errors import SignalFormatError


DEFAULT_SYMBOL = "BTCUSDT"


class Signal(BaseModel):
    """
    Raw alert body as sent by TradingView.

    Unknown keys are kept so the queue and the response can echo them.

    Example:
        signal = Signal.parse({"symbol": "BTCUSDT", "trendComposite": 5, "token": "..."})
    """

    symbol: Optional[str] = Field(default=None, description="Exchange symbol, e.g. BTCUSDT")
    trend_composite: float = Field(default=0.0, alias="trendComposite", allow_inf_nan=False,
                                   description="Composite trend indicator")
    atr_stop: Optional[float] = Field(default=None, allow_inf_nan=False, description="Explicit stop-loss price")
    timestamp: Optional[Any] = Field(default=None, description="Alert time as sent by the source")
    token: Optional[str] = Field(default=None, description="Shared webhook secret")
    account: Optional[str] = Field(default=None, description="Queue / risk account")

    @field_validator('trend_composite', mode='before')
    @classmethod
    def validate_trend(cls, v):
        """Missing or null composite reads as neutral"""
        if v is None or v == "":
            return 0.0
        return v

    @field_validator('atr_stop', mode='before')
    @classmethod
    def validate_atr_stop(cls, v):
        if v == "":
            return None
        return v

    @classmethod
    def parse(cls, body: Any) -> "Signal":
        """
        Validate a decoded JSON body.

        Raises:
            SignalFormatError: body is not an object or a field has the wrong type
        """
        if not isinstance(body, dict):
            raise SignalFormatError("Signal body must be a JSON object")
        try:
            return cls.model_validate(body)
        except ValidationError as e:
            raise SignalFormatError(
                "Invalid signal",
                context={'fields': ", ".join(str(err['loc'][0]) for err in e.errors())},
            ) from e

    def raw(self) -> Dict[str, Any]:
        """Original body, including unknown keys"""
        return self.model_dump(by_alias=True, exclude_none=True)

    class Config:
        populate_by_name = True
        extra = "allow"
        json_schema_extra = {
            "example": {
                "symbol": "BTCUSDT",
                "trendComposite": 4.5,
                "atr_stop": 49000.0,
                "token": "secret",
                "account": "FTMO"
            }
        }


class ProcessedSignal(BaseModel):
    """Trade direction and strength derived from a Signal. Immutable."""

    action: Literal["buy", "sell", "close", "hold"]
    signal_strength: float = Field(ge=0)
    symbol: str
    timestamp: Any
    original_signal: Dict[str, Any]

    class Config:
        frozen = True
