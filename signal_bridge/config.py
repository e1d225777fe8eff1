"""
Bridge settings loaded from environment variables (and .env).

Every recognized option is listed on ``BridgeSettings`` with its default.
"""

import math
import os
from typing import List, Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field


DEFAULT_ALLOWED_SYMBOLS = "BTCUSDT,ETHUSDT,SOLUSDT"


class BridgeSettings(BaseModel):
    """
    Runtime configuration for the bridge.

    Example:
        settings = load_settings()
        if settings.webhook_secret and body.get('token') != settings.webhook_secret:
            ...
    """

    bybit_api_key: str = Field(default="", description="Bybit API key")
    bybit_api_secret: str = Field(default="", description="Bybit API secret")
    bybit_testnet: bool = Field(default=False, description="Use api-testnet.bybit.com")
    bybit_timeout: float = Field(default=10.0, gt=0, description="HTTP timeout in seconds")

    max_risk_per_trade: float = Field(default=2.0, gt=0, description="Risk per trade, % of balance")
    max_daily_loss: float = Field(default=10.0, gt=0, description="Daily loss limit, % of balance")
    allowed_symbols: List[str] = Field(
        default_factory=lambda: DEFAULT_ALLOWED_SYMBOLS.split(","),
        description="Symbols the risk layer accepts",
    )

    webhook_secret: Optional[str] = Field(default=None, description="Shared token expected in webhook bodies")
    default_account: str = Field(default="FTMO", description="Queue account when none is given")

    supabase_url: Optional[str] = Field(default=None)
    supabase_key: Optional[str] = Field(default=None)

    max_risk_accounts: int = Field(default=32, gt=0, description="Distinct risk accounts kept in memory")

    port: int = Field(default=8080, gt=0)

    @property
    def has_bybit_credentials(self) -> bool:
        return bool(self.bybit_api_key and self.bybit_api_secret)


def _float_or(value: Optional[str], default: float) -> float:
    # Unparseable, non-finite, zero and empty values all mean "use the default"
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(parsed):
        return default
    return parsed or default


def _symbols(value: Optional[str]) -> List[str]:
    raw = value or DEFAULT_ALLOWED_SYMBOLS
    return [s.strip().upper() for s in raw.split(",") if s.strip()]


def load_settings(environ: Optional[Mapping[str, str]] = None) -> BridgeSettings:
    """
    Build settings from the process environment.

    Args:
        environ: Mapping to read instead of os.environ (tests). When omitted,
                 a .env file in the working directory is loaded first.

    Returns:
        BridgeSettings
    """
    if environ is None:
        load_dotenv()
        environ = os.environ

    return BridgeSettings(
        bybit_api_key=environ.get("BYBIT_API_KEY", ""),
        bybit_api_secret=environ.get("BYBIT_API_SECRET", ""),
        bybit_testnet=environ.get("BYBIT_TESTNET", "") == "true",
        bybit_timeout=_float_or(environ.get("BYBIT_TIMEOUT"), 10.0),
        max_risk_per_trade=_float_or(environ.get("MAX_RISK_PER_TRADE"), 2.0),
        max_daily_loss=_float_or(environ.get("MAX_DAILY_LOSS"), 10.0),
        allowed_symbols=_symbols(environ.get("ALLOWED_SYMBOLS")),
        webhook_secret=environ.get("WEBHOOK_SECRET") or None,
        default_account=(environ.get("DEFAULT_ACCOUNT") or "FTMO").upper(),
        supabase_url=environ.get("SUPABASE_URL") or None,
        supabase_key=environ.get("SUPABASE_KEY") or None,
        max_risk_accounts=int(_float_or(environ.get("MAX_RISK_ACCOUNTS"), 32)),
        port=int(_float_or(environ.get("PORT"), 8080)),
    )
