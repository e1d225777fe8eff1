import math
import threading
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

import pytz

from signal_bridge.models.signal import DEFAULT_SYMBOL
from signal_bridge.models import (
    DailyStats,
    Position,
    ProcessedSignal,
    RiskConfig,
    RiskMetrics,
    Signal,
    TradeProposal,
    TradeState,
    ValidationResult,
)
from signal_bridge.utils.errors import InvalidStopLossError, RiskAccountLimitError
from signal_bridge.utils.logger import get_logger


BUY_THRESHOLD = 3
SELL_THRESHOLD = -3
MIN_POSITION_SIZE = 0.01
MAX_POSITION_PCT_OF_BALANCE = 50
MAX_STRENGTH_MULTIPLIER = 1.5
MAX_RISK_ACCOUNTS = 32


def _utc_now() -> datetime:
    return datetime.now(pytz.UTC)


def _round_half_up(value: float, places: str = "0.01") -> float:
    return float(Decimal(str(value)).quantize(Decimal(places), rounding=ROUND_HALF_UP))


def _as_positions(rows: Optional[Iterable[Union[Position, Dict[str, Any]]]]) -> List[Position]:
    return [r if isinstance(r, Position) else Position.from_exchange(r) for r in (rows or [])]


class RiskManager:
    """
    THE GUARD (Risk Manager)
    Role: Turns a raw signal into a trade direction, sizes the trade from the
    risk budget and vetoes trades that break account, position or time limits.

    Daily stats live in memory only and reset on UTC date change. One
    instance per account is kept alive by RiskRegistry; the lock guards every
    read-modify-write of the stats.
    """
    def __init__(self, config: Optional[RiskConfig] = None, clock: Optional[Callable[[], datetime]] = None):
        self.config = config or RiskConfig()
        self.logger = get_logger(__name__, role="Guard")
        self._clock = clock or _utc_now
        self._lock = threading.Lock()
        self.daily_stats = DailyStats(last_reset_date=self._today())

    def _now(self) -> datetime:
        now = self._clock()
        if now.tzinfo is None:
            return pytz.UTC.localize(now)
        return now.astimezone(pytz.UTC)

    def _today(self) -> date:
        return self._now().date()

    def _reset_if_new_day(self):
        # Caller holds self._lock
        today = self._today()
        if self.daily_stats.last_reset_date != today:
            self.daily_stats = DailyStats(last_reset_date=today)
            self.logger.info("Daily stats reset for new trading day", date=today.isoformat())

    def reset_daily_stats_if_needed(self):
        with self._lock:
            self._reset_if_new_day()

    def is_symbol_allowed(self, symbol: str) -> bool:
        return self.config.is_symbol_allowed(symbol)

    def is_within_trading_hours(self) -> bool:
        return self.config.trading_hours.contains(self._now().hour)

    def process_signal(self, signal: Union[Signal, Dict[str, Any]]) -> ProcessedSignal:
        """
        Derive direction and strength from trendComposite.

        > 3 buy, < -3 sell, exactly 0 close, anything else hold.
        """
        if not isinstance(signal, Signal):
            signal = Signal.parse(signal)

        trend = signal.trend_composite

        if trend > BUY_THRESHOLD:
            action = 'buy'
        elif trend < SELL_THRESHOLD:
            action = 'sell'
        elif trend == 0:
            # Neutral composite flattens the symbol
            action = 'close'
        else:
            # Dead zone [-3, 0) and (0, 3]: intentionally not traded
            action = 'hold'

        return ProcessedSignal(
            action=action,
            signal_strength=abs(trend),
            symbol=signal.symbol or DEFAULT_SYMBOL,
            timestamp=signal.timestamp or int(self._now().timestamp() * 1000),
            original_signal=signal.raw(),
        )

    def calculate_position_size(self, balance: float, entry_price: float, stop_loss_price: float,
                                signal_strength: float = 1) -> float:
        """
        Size a trade so that hitting the stop loses max_risk_per_trade % of balance.

        Strength scales the size by min(strength / 3, 1.5). Rounded half-up to 2dp.

        Raises:
            InvalidStopLossError: entry and stop are equal, or either is not finite
        """
        risk_amount = balance * (self.config.max_risk_per_trade / 100)
        risk_per_unit = abs(entry_price - stop_loss_price)

        if risk_per_unit == 0:
            raise InvalidStopLossError(
                "Invalid stop loss price - no risk per unit",
                context={'entry': entry_price, 'stop_loss': stop_loss_price},
            )

        if not math.isfinite(risk_per_unit):
            raise InvalidStopLossError(
                "Invalid stop loss price - risk per unit is not finite",
                context={'entry': entry_price, 'stop_loss': stop_loss_price},
            )

        strength_multiplier = min(signal_strength / 3, MAX_STRENGTH_MULTIPLIER)
        size = risk_amount / risk_per_unit * strength_multiplier

        return _round_half_up(size)

    def calculate_stop_loss(self, entry_price: float, side: str, atr_value: float,
                            atr_multiplier: float = 2) -> float:
        """ATR stop: below entry for Buy, above for Sell"""
        atr_distance = atr_value * atr_multiplier

        if side == 'Buy':
            return entry_price - atr_distance
        return entry_price + atr_distance

    def validate_trade(self, trade: TradeProposal, current_balance: float,
                       current_positions: Optional[Iterable[Union[Position, Dict[str, Any]]]] = None) -> ValidationResult:
        """
        Check a proposal against every rule and collect all violations.

        Sizing fills trade.calculated_size when both prices are given.
        """
        self.logger.debug("Evaluating trade", symbol=trade.symbol, state=TradeState.EVALUATING.value)

        positions = _as_positions(current_positions)

        with self._lock:
            self._reset_if_new_day()
            daily_pnl = self.daily_stats.pnl

        errors: List[str] = []
        warnings: List[str] = []

        if current_balance < self.config.min_account_balance:
            errors.append(
                f"Insufficient balance: {current_balance:.2f} < {self.config.min_account_balance:.2f}"
            )

        if not self.is_symbol_allowed(trade.symbol):
            errors.append(f"Symbol {trade.symbol} not in allowed list")

        if not self.is_within_trading_hours():
            errors.append("Outside trading hours")

        # Balance <= 0 is already reported above
        if current_balance > 0:
            daily_loss_percent = daily_pnl / current_balance * 100
            if daily_loss_percent <= -self.config.max_daily_loss:
                errors.append(f"Daily loss limit reached: {daily_loss_percent:.2f}%")

        open_positions = [p for p in positions if p.is_open]

        symbol_positions = [p for p in open_positions if p.symbol == trade.symbol]
        if len(symbol_positions) >= self.config.max_positions_per_symbol:
            errors.append(f"Max positions reached for {trade.symbol}: {len(symbol_positions)}")

        if len(open_positions) >= self.config.max_total_positions:
            errors.append(f"Max total positions reached: {len(open_positions)}")

        if trade.entry_price and trade.stop_loss_price:
            try:
                position_size = self.calculate_position_size(
                    current_balance,
                    trade.entry_price,
                    trade.stop_loss_price,
                    trade.signal_strength or 1,
                )
            except InvalidStopLossError as e:
                errors.append(f"Position size calculation failed: {e.message}")
            else:
                if position_size < MIN_POSITION_SIZE:
                    warnings.append(f"Position size very small: {position_size}")

                if current_balance > 0:
                    position_percent = position_size * trade.entry_price / current_balance * 100
                    if position_percent > MAX_POSITION_PCT_OF_BALANCE:
                        errors.append(f"Position too large: {position_percent:.2f}% of balance")

                trade.calculated_size = position_size

        if trade.signal_strength and not (1 <= trade.signal_strength <= 5):
            warnings.append(f"Invalid signal strength: {trade.signal_strength}")

        result = ValidationResult(errors=errors, warnings=warnings, adjusted_trade=trade)

        if result.is_valid:
            self.logger.info("Trade validated", symbol=trade.symbol, action=trade.action,
                             size=trade.calculated_size, warnings=warnings, state=result.state.value)
        else:
            self.logger.warning("Trade rejected", symbol=trade.symbol, action=trade.action,
                                errors=errors, state=result.state.value)
        return result

    def should_trigger_emergency_stop(self, current_balance: float, initial_balance: float) -> bool:
        """True once the drawdown from initial_balance reaches max_daily_loss %"""
        if initial_balance <= 0:
            return False
        total_loss = (initial_balance - current_balance) / initial_balance * 100
        return total_loss >= self.config.max_daily_loss

    def update_daily_stats(self, pnl: float, trades_count: int = 1) -> DailyStats:
        """
        Record realized PnL. Callers invoke this after a fill is confirmed.

        Returns:
            Snapshot of the stats after the update
        """
        with self._lock:
            self._reset_if_new_day()
            self.daily_stats.pnl += pnl
            self.daily_stats.trades_count += trades_count
            snapshot = self.daily_stats.model_copy()

        self.logger.info("Daily stats updated", pnl=round(snapshot.pnl, 2), trades=snapshot.trades_count)
        return snapshot

    def get_risk_metrics(self, current_balance: float, initial_balance: float,
                         current_positions: Optional[Iterable[Union[Position, Dict[str, Any]]]] = None) -> RiskMetrics:
        """Point-in-time exposure, drawdown and daily tally. Does not mutate state."""
        positions = _as_positions(current_positions)

        total_position_value = sum(abs(p.size) * p.reference_price for p in positions)

        exposure = total_position_value / current_balance * 100 if current_balance else 0.0
        drawdown = (initial_balance - current_balance) / initial_balance * 100 if initial_balance else 0.0

        with self._lock:
            daily_pnl = self.daily_stats.pnl
            daily_trades = self.daily_stats.trades_count

        return RiskMetrics(
            exposure=f"{exposure:.2f}",
            drawdown=f"{drawdown:.2f}",
            daily_pnl=f"{daily_pnl:.2f}",
            daily_trades=daily_trades,
            open_positions=sum(1 for p in positions if p.is_open),
        )


class RiskRegistry:
    """
    Keeps one RiskManager per account alive for the process lifetime,
    so daily stats accumulate across requests.

    Managers are never evicted, so a daily loss tally lasts the whole UTC
    day. New accounts are refused once max_accounts exist.
    """
    def __init__(self, config: Optional[RiskConfig] = None, clock: Optional[Callable[[], datetime]] = None,
                 max_accounts: int = MAX_RISK_ACCOUNTS):
        self.config = config or RiskConfig()
        self.max_accounts = max_accounts
        self._clock = clock
        self._managers: Dict[str, RiskManager] = {}
        self._lock = threading.Lock()

    def get(self, account: str) -> RiskManager:
        """
        Manager for account (case-insensitive), created on first use.

        Raises:
            RiskAccountLimitError: account is new and the registry is full
        """
        key = (account or "").upper()
        with self._lock:
            manager = self._managers.get(key)
            if manager is None:
                if len(self._managers) >= self.max_accounts:
                    raise RiskAccountLimitError(
                        f"Too many risk accounts (max {self.max_accounts})",
                        context={'account': key},
                    )
                manager = RiskManager(self.config, clock=self._clock)
                self._managers[key] = manager
            return manager

    def accounts(self) -> List[str]:
        with self._lock:
            return sorted(self._managers)
