"""
Data models using Pydantic.

All models validate data at the bridge's boundaries.
"""

from .signal import Signal, ProcessedSignal
from .trade import TradeProposal, ValidationResult, TradeState
from .position import Position
from .config import RiskConfig, TradingHours
from .risk import DailyStats, RiskMetrics

__all__ = [
    'Signal',
    'ProcessedSignal',
    'TradeProposal',
    'ValidationResult',
    'TradeState',
    'Position',
    'RiskConfig',
    'TradingHours',
    'DailyStats',
    'RiskMetrics',
]
