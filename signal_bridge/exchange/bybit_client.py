"""
Bybit v5 REST client.

Authenticated calls for the unified account on linear (USDT-margined)
contracts. Every exchange fault is surfaced to the caller; the only retry is
the one-way -> hedge position mode fallback in place_order.
"""

import json
import re
import time
from enum import Enum
from typing import Any, Dict, List, Optional

import requests

from signal_bridge.exchange.signer import SignatureSigner, canonical_json, canonical_query
from signal_bridge.models.position import Position
from signal_bridge.utils.errors import (
    ConfigurationError,
    EmptyResponseError,
    ExchangeAPIError,
    MalformedResponseError,
    NoOpenPositionError,
    TransportFault,
)
from signal_bridge.utils.logger import get_logger


MAINNET_URL = "https://api.bybit.com"
TESTNET_URL = "https://api-testnet.bybit.com"

CATEGORY = "linear"
SETTLE_COIN = "USDT"


class RejectReason(str, Enum):
    """Why the exchange refused a request, as far as the bridge cares"""
    POSITION_IDX_MISMATCH = "position_idx_mismatch"
    OTHER = "other"


def classify_rejection(code: Optional[int], message: str) -> RejectReason:
    """
    Map an exchange error envelope to a RejectReason.

    Bybit reports a position-mode mismatch under the generic parameter error
    code, so the message text is the only distinguishing field. This is the
    single place that text is inspected.
    """
    if "position idx not match" in (message or "").lower():
        return RejectReason.POSITION_IDX_MISMATCH
    return RejectReason.OTHER


def format_symbol(symbol: str) -> str:
    """Normalize to Bybit format, e.g. 'btc/usdt' -> 'BTCUSDT'"""
    return re.sub(r'[^A-Z0-9]', '', (symbol or '').upper())


def format_number(value: Any) -> str:
    """Render a quantity or price for the API: no exponent, no trailing zeros"""
    if isinstance(value, str):
        return value
    text = f"{float(value):.8f}".rstrip("0").rstrip(".")
    return text or "0"


class BybitClient:
    """
    Signed Bybit v5 client.

    Example:
        client = BybitClient(api_key, api_secret, testnet=True)
        coins = client.get_balance()
        order = client.place_order("BTCUSDT", "Buy", 0.01)
    """

    def __init__(self, api_key: str, api_secret: str, testnet: bool = True,
                 timeout: float = 10.0, session: Optional[requests.Session] = None):
        self.logger = get_logger(__name__, role="Bybit")

        self.api_key = api_key
        self.signer = SignatureSigner(api_key, api_secret)
        self.base_url = TESTNET_URL if testnet else MAINNET_URL
        self.testnet = testnet
        self.timeout = timeout
        self._owns_session = session is None
        self.session = session or requests.Session()

    def close(self):
        """Release the HTTP session if this client created it"""
        if self._owns_session:
            self.session.close()

    @classmethod
    def from_settings(cls, settings, session: Optional[requests.Session] = None) -> "BybitClient":
        """
        Build a client from BridgeSettings.

        Raises:
            ConfigurationError: API key or secret missing
        """
        if not settings.has_bybit_credentials:
            raise ConfigurationError(
                "Bybit credentials missing",
                context={'required': 'BYBIT_API_KEY, BYBIT_API_SECRET'},
            )
        return cls(
            settings.bybit_api_key,
            settings.bybit_api_secret,
            testnet=settings.bybit_testnet,
            timeout=settings.bybit_timeout,
            session=session,
        )

    def _headers(self, timestamp: str, signature: str) -> Dict[str, str]:
        return {
            'X-BAPI-API-KEY': self.api_key,
            'X-BAPI-SIGN': signature,
            'X-BAPI-SIGN-TYPE': '2',
            'X-BAPI-TIMESTAMP': timestamp,
            'X-BAPI-RECV-WINDOW': self.signer.recv_window,
            'Content-Type': 'application/json',
        }

    def request(self, endpoint: str, method: str = 'GET', params: Optional[Dict[str, Any]] = None) -> Any:
        """
        Make an authenticated API request.

        Args:
            endpoint: API path, e.g. '/v5/position/list'
            method: 'GET' or 'POST'
            params: Query params (GET) or JSON body (POST)

        Returns:
            The envelope's ``result`` payload, unchanged

        Raises:
            TransportFault: network failure or timeout
            EmptyResponseError: empty body
            MalformedResponseError: body is not a JSON envelope
            ExchangeAPIError: retCode != 0
        """
        method = method.upper()
        params = params or {}
        timestamp = str(int(time.time() * 1000))
        url = f"{self.base_url}{endpoint}"
        body = None

        if method == 'POST':
            # Sign exactly the string that is sent
            body = canonical_json(params)
            signature = self.signer.sign(timestamp, body, method)
        else:
            signature = self.signer.sign(timestamp, params, method)
            if params:
                url += '?' + canonical_query(params)

        self.logger.debug("Bybit request", method=method, endpoint=endpoint)

        try:
            response = self.session.request(
                method,
                url,
                headers=self._headers(timestamp, signature),
                data=body,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            self.logger.error("Bybit request failed", endpoint=endpoint, error=str(e), error_type=type(e).__name__)
            raise TransportFault(
                f"Request to {endpoint} failed",
                context={'error': str(e)},
            ) from e

        text = response.text
        if not text:
            self.logger.error("Bybit empty response", endpoint=endpoint, status=response.status_code)
            raise EmptyResponseError(
                "Empty response from Bybit API",
                context={'endpoint': endpoint, 'status': response.status_code},
            )

        try:
            data = json.loads(text)
        except ValueError as e:
            self.logger.error("Bybit non-JSON response", endpoint=endpoint, status=response.status_code)
            raise MalformedResponseError(
                f"Invalid JSON response from Bybit: {text[:200]}",
                context={'endpoint': endpoint, 'status': response.status_code},
            ) from e

        if not isinstance(data, dict):
            raise MalformedResponseError(
                f"Unexpected response envelope from Bybit: {text[:200]}",
                context={'endpoint': endpoint},
            )

        ret_code = data.get('retCode')
        if ret_code != 0:
            message = str(data.get('retMsg', ''))
            self.logger.error("Bybit API error", endpoint=endpoint, code=ret_code, ret_msg=message)
            raise ExchangeAPIError(ret_code, message, reason=classify_rejection(ret_code, message))

        return data.get('result')

    def get_balance(self) -> List[Dict[str, Any]]:
        """
        Coin balances of the unified account.

        Returns:
            List of coin rows (coin, walletBalance, ...); empty if absent
        """
        result = self.request('/v5/account/wallet-balance', 'GET', {
            'accountType': 'UNIFIED'
        }) or {}

        accounts = result.get('list') or []
        if not accounts:
            return []
        return accounts[0].get('coin') or []

    def get_positions(self, symbol: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        Open linear positions, optionally filtered server-side by symbol.
        """
        params = {
            'category': CATEGORY,
            'settleCoin': SETTLE_COIN,
        }
        if symbol:
            params['symbol'] = symbol

        result = self.request('/v5/position/list', 'GET', params) or {}
        return result.get('list') or []

    def place_order(self, symbol: str, side: str, qty: float,
                    order_type: str = 'Market', time_in_force: str = 'IOC') -> Dict[str, Any]:
        """
        Place an order, assuming one-way position mode first.

        If the account is in hedge mode the exchange rejects positionIdx 0;
        that one rejection is retried with positionIdx 1 (Buy) or 2 (Sell).

        Args:
            symbol: e.g. 'BTCUSDT'
            side: 'Buy' or 'Sell'
            qty: Order quantity in contracts
            order_type: 'Market' or 'Limit'
            time_in_force: e.g. 'IOC', 'GTC'

        Returns:
            Order result (orderId, orderLinkId)
        """
        params = {
            'category': CATEGORY,
            'symbol': symbol,
            'side': side,
            'orderType': order_type,
            'qty': format_number(qty),
            'timeInForce': time_in_force,
            'positionIdx': 0,
            'reduceOnly': False,
        }

        try:
            result = self.request('/v5/order/create', 'POST', params)
        except ExchangeAPIError as e:
            if e.reason is not RejectReason.POSITION_IDX_MISMATCH:
                raise

            self.logger.warning("One-way mode rejected, retrying in hedge mode", symbol=symbol, side=side)
            params['positionIdx'] = 1 if side == 'Buy' else 2
            result = self.request('/v5/order/create', 'POST', params)

        self.logger.success("Order placed", symbol=symbol, side=side, qty=params['qty'],
                            position_idx=params['positionIdx'], order_id=(result or {}).get('orderId'))
        return result or {}

    def close_position(self, symbol: str, side: str) -> Dict[str, Any]:
        """
        Flatten the position on ``symbol`` with a market order.

        Args:
            symbol: e.g. 'BTCUSDT'
            side: Side of the open position ('Buy' for long, 'Sell' for short)

        Raises:
            NoOpenPositionError: nothing open on symbol (no order is sent)
        """
        rows = self.get_positions(symbol)
        position = next(
            (Position.from_exchange(r) for r in rows if r.get('symbol') == symbol),
            None,
        )

        if position is None or not position.is_open:
            raise NoOpenPositionError(
                f"No open position found for {symbol}",
                context={'symbol': symbol},
            )

        closing_side = 'Sell' if side == 'Buy' else 'Buy'
        return self.place_order(symbol, closing_side, abs(position.size), 'Market')

    def get_ticker(self, symbol: str) -> Optional[Dict[str, Any]]:
        """First ticker row for symbol, or None"""
        result = self.request('/v5/market/tickers', 'GET', {
            'category': CATEGORY,
            'symbol': symbol,
        }) or {}

        rows = result.get('list') or []
        return rows[0] if rows else None

    def cancel_all_orders(self, symbol: str) -> Dict[str, Any]:
        """Cancel every open order on symbol"""
        return self.request('/v5/order/cancel-all', 'POST', {
            'category': CATEGORY,
            'symbol': symbol,
        }) or {}

    def set_trading_stop(self, symbol: str, side: str, stop_loss: Optional[float] = None,
                         take_profit: Optional[float] = None) -> Dict[str, Any]:
        """
        Attach stop-loss and/or take-profit to the open position.

        One-way mode only (positionIdx 0). ``side`` is accepted for symmetry
        with place_order; the exchange resolves the position by index.
        """
        params = {
            'category': CATEGORY,
            'symbol': symbol,
            'positionIdx': 0,
        }

        if stop_loss:
            params['stopLoss'] = format_number(stop_loss)

        if take_profit:
            params['takeProfit'] = format_number(take_profit)

        return self.request('/v5/position/trading-stop', 'POST', params) or {}

    def ping(self) -> bool:
        """
        Unauthenticated server-time check.

        Returns:
            True when the exchange answers retCode 0; False on any failure
        """
        try:
            response = self.session.get(f"{self.base_url}/v5/market/time", timeout=self.timeout)
            return response.json().get('retCode') == 0
        except (requests.RequestException, ValueError, AttributeError) as e:
            self.logger.warning("Bybit ping failed", error=str(e))
            return False
