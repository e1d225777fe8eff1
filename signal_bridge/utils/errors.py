"""
Custom exception classes for the signal bridge.

All exceptions provide rich context for better debugging and error reporting.
"""

from typing import List, Optional


class BridgeError(Exception):
    """
    Base exception for all signal bridge errors.

    All custom exceptions inherit from this to allow catching bridge-specific errors.
    """
    def __init__(self, message: str, context: dict = None):
        self.message = message
        self.context = context or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format error message with context"""
        msg = self.message
        if self.context:
            ctx_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            msg = f"{msg} | Context: {ctx_str}"
        return msg


class TransportFault(BridgeError):
    """
    Network call to the exchange failed before a response was read.

    Examples:
    - DNS failure
    - Connection refused / reset
    - Request timeout
    """
    pass


class EmptyResponseError(BridgeError):
    """Exchange answered with an empty body."""
    pass


class MalformedResponseError(BridgeError):
    """Exchange answered with a body that is not JSON."""
    pass


class ExchangeAPIError(BridgeError):
    """
    Well-formed exchange envelope with a non-zero status code.

    ``reason`` is the classified rejection (see ``classify_rejection``),
    so callers branch on it instead of parsing ``message``.
    """
    def __init__(self, code: int, message: str, reason=None, context: dict = None):
        self.code = code
        self.exchange_message = message
        self.reason = reason
        super().__init__(
            f"Bybit API Error: {message} (Code: {code})",
            context=context,
        )


class NoOpenPositionError(BridgeError):
    """Close requested for a symbol without an open position."""
    pass


class InvalidStopLossError(BridgeError):
    """Stop-loss price equals entry price, so risk per unit is zero."""
    pass


class MarketDataUnavailableError(BridgeError):
    """Balance or last price resolved to zero, so nothing can be sized."""
    pass


class TradeValidationError(BridgeError):
    """
    Trade rejected by the risk rules.

    Carries every violated rule, not just the first one.
    """
    def __init__(self, errors: List[str], warnings: Optional[List[str]] = None):
        self.errors = list(errors)
        self.warnings = list(warnings or [])
        super().__init__(
            "Trade validation failed",
            context={'errors': "; ".join(self.errors)},
        )


class SignalFormatError(BridgeError):
    """
    Inbound signal could not be parsed.

    Examples:
    - Body is not a JSON object
    - trendComposite is not a number
    """
    pass


class ConfigurationError(BridgeError):
    """
    Configuration error or missing required config.

    Examples:
    - Missing BYBIT_API_KEY / BYBIT_API_SECRET
    - Invalid risk values
    """
    pass


class DatabaseError(BridgeError):
    """
    Queue storage operation failed.

    Examples:
    - Connection timeout
    - Query execution error
    """
    pass


class RiskAccountLimitError(BridgeError):
    """A request named a new risk account after the registry reached its cap."""
    pass
