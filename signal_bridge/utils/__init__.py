"""
Utility modules for error handling, retry logic and structured logging.

This package provides the error handling infrastructure for the signal bridge.
"""

from .errors import (
    BridgeError,
    TransportFault,
    EmptyResponseError,
    MalformedResponseError,
    ExchangeAPIError,
    NoOpenPositionError,
    InvalidStopLossError,
    MarketDataUnavailableError,
    TradeValidationError,
    SignalFormatError,
    ConfigurationError,
    DatabaseError,
    RiskAccountLimitError,
)
from .retry import retry_db_operation

__all__ = [
    # Exceptions
    'BridgeError',
    'TransportFault',
    'EmptyResponseError',
    'MalformedResponseError',
    'ExchangeAPIError',
    'NoOpenPositionError',
    'InvalidStopLossError',
    'MarketDataUnavailableError',
    'TradeValidationError',
    'SignalFormatError',
    'ConfigurationError',
    'DatabaseError',
    'RiskAccountLimitError',
    # Utilities
    'retry_db_operation',
]
