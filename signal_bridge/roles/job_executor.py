import math
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional, Tuple

from signal_bridge.exchange.bybit_client import BybitClient, format_symbol
from signal_bridge.models import Position, ProcessedSignal, Signal, TradeProposal
from signal_bridge.models.signal import DEFAULT_SYMBOL
from signal_bridge.roles.job_risk import RiskManager
from signal_bridge.utils.errors import (
    BridgeError,
    MarketDataUnavailableError,
    SignalFormatError,
    TradeValidationError,
)
from signal_bridge.utils.logger import get_logger, iso_now, log_execution_time


# Fallback stop distance when the alert carries no atr_stop
DEFAULT_STOP_PCT = 0.02

logger = get_logger(__name__, role="Sniper")


def _usable(value: float) -> bool:
    return math.isfinite(value) and value != 0


class SignalProcessor:
    """
    THE SNIPER (Execution Engine)
    Role: Runs a TradingView signal past The Guard and, when approved,
    executes it on Bybit.
    """
    def __init__(self, client: BybitClient, risk_manager: RiskManager):
        self.client = client
        self.risk_manager = risk_manager
        self.logger = logger

    def _fetch_market_state(self, symbol: str) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]], Optional[Dict[str, Any]]]:
        """Balance, positions and ticker, fetched in parallel"""
        with ThreadPoolExecutor(max_workers=3) as pool:
            balance_future = pool.submit(self.client.get_balance)
            positions_future = pool.submit(self.client.get_positions, symbol)
            ticker_future = pool.submit(self.client.get_ticker, symbol)

            return balance_future.result(), positions_future.result(), ticker_future.result()

    @log_execution_time(logger, operation="process_signal")
    def process(self, body: Any) -> Tuple[Dict[str, Any], int]:
        """
        Handle one inbound alert end to end.

        Args:
            body: Decoded JSON alert

        Returns:
            (response payload, HTTP status)
        """
        try:
            signal = Signal.parse(body)
            processed = self.risk_manager.process_signal(signal)
            symbol = format_symbol(processed.symbol) or DEFAULT_SYMBOL

            self.logger.info("Processing signal", symbol=symbol, action=processed.action,
                             strength=processed.signal_strength)

            balance_rows, position_rows, ticker = self._fetch_market_state(symbol)

            usdt = next((b for b in balance_rows if b.get('coin') == 'USDT'), None) or {}
            current_balance = float(usdt.get('walletBalance') or 0)
            current_price = float((ticker or {}).get('lastPrice') or 0)

            if not _usable(current_balance) or not _usable(current_price):
                raise MarketDataUnavailableError(
                    "Unable to get balance or price information",
                    context={'symbol': symbol, 'balance': current_balance, 'price': current_price},
                )

            positions = [Position.from_exchange(row) for row in position_rows]

            if processed.action == 'close':
                result = self._close_all(symbol, positions)
            elif processed.action in ('buy', 'sell'):
                result = self._open_trade(symbol, processed, signal, current_balance, current_price, positions)
            else:
                result = {
                    'action': 'hold',
                    'message': 'Signal not strong enough for trade execution',
                    'signalStrength': processed.signal_strength,
                }

            # No separate baseline here, so drawdown always reads 0.00
            metrics = self.risk_manager.get_risk_metrics(current_balance, current_balance, positions)
            result['riskMetrics'] = metrics.to_response()

            return {'ok': True, **result, 'timestamp': iso_now()}, 200

        except TradeValidationError as e:
            return {
                'ok': False,
                'error': e.message,
                'errors': e.errors,
                'warnings': e.warnings,
                'timestamp': iso_now(),
            }, 400

        except SignalFormatError as e:
            self.logger.warning("Rejected malformed signal", error=str(e))
            return {'ok': False, 'error': e.message, 'timestamp': iso_now()}, 400

        except Exception as e:
            self.logger.error("Bybit trading error", error=str(e), error_type=type(e).__name__)
            return {
                'ok': False,
                'error': e.message if isinstance(e, BridgeError) else str(e),
                'timestamp': iso_now(),
            }, 500

    def _close_all(self, symbol: str, positions: List[Position]) -> Dict[str, Any]:
        """Flatten every open position on symbol. Zero open positions is not an error."""
        open_positions = [p for p in positions if p.is_open]

        for position in open_positions:
            order = self.client.place_order(symbol, position.closing_side, abs(position.size))
            self.logger.success("Position closed", symbol=symbol, side=position.closing_side,
                                qty=abs(position.size), order_id=order.get('orderId'))

        return {
            'action': 'close_all',
            'closedPositions': len(open_positions),
            'message': f"Closed {len(open_positions)} positions for {symbol}",
        }

    def _open_trade(self, symbol: str, processed: ProcessedSignal, signal: Signal,
                    current_balance: float, current_price: float,
                    positions: List[Position]) -> Dict[str, Any]:
        """
        Validate, place the entry order, then attach the stop.

        Raises:
            TradeValidationError: the Guard rejected the trade (no order sent)
        """
        if signal.atr_stop:
            stop_loss_price = signal.atr_stop
        elif processed.action == 'buy':
            stop_loss_price = current_price * (1 - DEFAULT_STOP_PCT)
        else:
            stop_loss_price = current_price * (1 + DEFAULT_STOP_PCT)

        trade = TradeProposal(
            symbol=symbol,
            action=processed.action,
            entry_price=current_price,
            stop_loss_price=stop_loss_price,
            signal_strength=processed.signal_strength,
        )

        validation = self.risk_manager.validate_trade(trade, current_balance, positions)
        if not validation.is_valid:
            raise TradeValidationError(validation.errors, validation.warnings)

        side = 'Buy' if processed.action == 'buy' else 'Sell'
        quantity = validation.adjusted_trade.calculated_size
        warnings = list(validation.warnings)

        order = self.client.place_order(symbol, side, quantity)

        # The entry stays in place even if the stop cannot be attached
        if order.get('orderId'):
            try:
                self.client.set_trading_stop(symbol, side, stop_loss_price)
            except BridgeError as e:
                self.logger.warning("Failed to set stop loss", symbol=symbol, order_id=order.get('orderId'),
                                    error=str(e))
                warnings.append(f"Failed to set stop loss: {e.message}")

        return {
            'action': processed.action,
            'orderId': order.get('orderId'),
            'symbol': symbol,
            'side': side,
            'quantity': quantity,
            'price': current_price,
            'stopLoss': stop_loss_price,
            'signalStrength': processed.signal_strength,
            'validation': {
                'warnings': warnings,
            },
        }
