"""
Unit tests for settings, models, errors and logging

Tests cover:
- Environment parsing and fallbacks
- RiskConfig validation and overrides
- Position / Signal parsing quirks of the exchange and TradingView
- Error message formatting
- Structured JSON log lines
"""

import json
import logging

import pytest
from pydantic import ValidationError

from signal_bridge.config import load_settings
from signal_bridge.models import Position, RiskConfig, RiskMetrics, Signal, TradingHours
from signal_bridge.utils.errors import BridgeError, SignalFormatError, TradeValidationError
from signal_bridge.utils.logger import JSONFormatter, get_logger, log_execution_time, resolve_level


@pytest.mark.unit
class TestSettings:
    """Test load_settings"""

    def test_defaults(self):
        settings = load_settings(environ={})

        assert settings.bybit_testnet is False
        assert settings.bybit_timeout == 10.0
        assert settings.max_risk_per_trade == 2.0
        assert settings.max_daily_loss == 10.0
        assert settings.allowed_symbols == ['BTCUSDT', 'ETHUSDT', 'SOLUSDT']
        assert settings.webhook_secret is None
        assert settings.default_account == 'FTMO'
        assert settings.port == 8080
        assert settings.max_risk_accounts == 32
        assert not settings.has_bybit_credentials

    def test_testnet_flag_is_exact(self):
        assert load_settings(environ={'BYBIT_TESTNET': 'true'}).bybit_testnet is True
        assert load_settings(environ={'BYBIT_TESTNET': 'TRUE'}).bybit_testnet is False
        assert load_settings(environ={'BYBIT_TESTNET': '1'}).bybit_testnet is False

    @pytest.mark.parametrize("raw", ['', '0', 'abc', 'nan', 'inf'])
    def test_bad_numbers_fall_back(self, raw):
        settings = load_settings(environ={'MAX_RISK_PER_TRADE': raw, 'MAX_DAILY_LOSS': raw,
                                          'MAX_RISK_ACCOUNTS': raw, 'PORT': raw})

        assert settings.max_risk_per_trade == 2.0
        assert settings.max_daily_loss == 10.0
        assert settings.max_risk_accounts == 32
        assert settings.port == 8080

    def test_numbers(self):
        settings = load_settings(environ={'MAX_RISK_PER_TRADE': '1.5', 'PORT': '9000', 'MAX_RISK_ACCOUNTS': '5'})

        assert settings.max_risk_per_trade == 1.5
        assert settings.port == 9000
        assert settings.max_risk_accounts == 5

    def test_symbol_list(self):
        settings = load_settings(environ={'ALLOWED_SYMBOLS': 'btcusdt, ethusdt,,'})

        assert settings.allowed_symbols == ['BTCUSDT', 'ETHUSDT']

    def test_empty_secret_means_no_check(self):
        assert load_settings(environ={'WEBHOOK_SECRET': ''}).webhook_secret is None


@pytest.mark.unit
class TestRiskConfig:
    """Test the risk policy model"""

    def test_defaults(self, risk_config):
        assert risk_config.max_positions_per_symbol == 1
        assert risk_config.max_total_positions == 3
        assert risk_config.min_account_balance == 100.0
        assert risk_config.allowed_symbols == {'BTCUSDT', 'ETHUSDT', 'SOLUSDT', 'ADAUSDT', 'DOTUSDT'}

    def test_from_settings(self):
        settings = load_settings(environ={'MAX_RISK_PER_TRADE': '1', 'ALLOWED_SYMBOLS': 'XRPUSDT'})

        config = RiskConfig.from_settings(settings)

        assert config.max_risk_per_trade == 1.0
        assert config.allowed_symbols == {'XRPUSDT'}
        assert config.max_total_positions == 3

    def test_symbols_from_comma_string(self):
        assert RiskConfig(allowed_symbols='btcusdt,ethusdt').allowed_symbols == {'BTCUSDT', 'ETHUSDT'}

    def test_is_immutable(self, risk_config):
        with pytest.raises(ValidationError):
            risk_config.max_total_positions = 10

    def test_with_overrides(self, risk_config):
        strict = risk_config.with_overrides(max_total_positions=1)

        assert strict.max_total_positions == 1
        assert risk_config.max_total_positions == 3

    def test_with_overrides_validates(self, risk_config):
        with pytest.raises(ValidationError):
            risk_config.with_overrides(max_risk_per_trade=0)

    def test_hours_must_be_ordered(self):
        with pytest.raises(ValidationError):
            RiskConfig(trading_hours=TradingHours(start=20, end=8))

    def test_trading_hours_end_is_exclusive(self):
        hours = TradingHours(start=8, end=16)

        assert hours.contains(8)
        assert hours.contains(15)
        assert not hours.contains(16)


@pytest.mark.unit
class TestPosition:
    """Test exchange row parsing"""

    def test_parses_strings(self):
        position = Position.from_exchange({'symbol': 'BTCUSDT', 'side': 'Buy', 'size': '0.01',
                                           'markPrice': '50000', 'avgPrice': '49000'})

        assert position.size == 0.01
        assert position.reference_price == 50000
        assert position.closing_side == 'Sell'
        assert position.is_open

    def test_empty_strings_are_zero(self):
        position = Position.from_exchange({'symbol': 'BTCUSDT', 'side': 'None', 'size': '',
                                           'markPrice': '', 'avgPrice': ''})

        assert position.side == ''
        assert position.size == 0
        assert not position.is_open

    def test_short_by_side(self):
        position = Position.from_exchange({'symbol': 'BTCUSDT', 'side': 'Sell', 'size': '0.5'})

        assert position.signed_size == -0.5
        assert position.closing_side == 'Buy'

    def test_short_by_signed_size(self):
        position = Position.from_exchange({'symbol': 'BTCUSDT', 'size': '-0.5'})

        assert position.closing_side == 'Buy'

    def test_mark_price_falls_back_to_avg(self):
        position = Position.from_exchange({'symbol': 'ETHUSDT', 'size': '1', 'avgPrice': '3000'})

        assert position.reference_price == 3000


@pytest.mark.unit
class TestSignal:
    """Test alert body parsing"""

    def test_aliases_and_extras(self):
        signal = Signal.parse({'symbol': 'BTCUSDT', 'trendComposite': '4.5', 'atr_stop': '49000', 'note': 'x'})

        assert signal.trend_composite == 4.5
        assert signal.atr_stop == 49000.0
        assert signal.raw()['note'] == 'x'

    def test_blank_fields(self):
        signal = Signal.parse({'trendComposite': None, 'atr_stop': ''})

        assert signal.trend_composite == 0
        assert signal.atr_stop is None

    def test_nan_is_rejected(self):
        with pytest.raises(SignalFormatError):
            Signal.parse({'trendComposite': float('nan')})

    @pytest.mark.parametrize("atr_stop", ['NaN', float('inf')])
    def test_non_finite_atr_stop_is_rejected(self, atr_stop):
        with pytest.raises(SignalFormatError):
            Signal.parse({'trendComposite': 5, 'atr_stop': atr_stop})

    def test_metrics_aliases(self):
        metrics = RiskMetrics(exposure='1.00', drawdown='0.00', daily_pnl='0.00', daily_trades=0, open_positions=1)

        assert set(metrics.to_response()) == {'exposure', 'drawdown', 'dailyPnl', 'dailyTrades', 'openPositions'}


@pytest.mark.unit
class TestErrorsAndLogging:
    """Test error formatting and structured logs"""

    def test_context_in_str(self):
        error = BridgeError("Something failed", context={'symbol': 'BTCUSDT'})

        assert error.message == "Something failed"
        assert str(error) == "Something failed | Context: symbol=BTCUSDT"

    def test_trade_validation_error_keeps_lists(self):
        error = TradeValidationError(['a', 'b'], ['w'])

        assert error.message == "Trade validation failed"
        assert error.errors == ['a', 'b']
        assert error.warnings == ['w']

    def test_log_line_is_json(self, caplog):
        logger = get_logger('tests.structured', role="Guard")

        with caplog.at_level(logging.INFO, logger='tests.structured'):
            logger.success("Trade validated", symbol="BTCUSDT")

        data = json.loads(caplog.records[-1].getMessage())
        assert data['level'] == 'SUCCESS'
        assert data['role'] == 'Guard'
        assert data['symbol'] == 'BTCUSDT'
        assert data['timestamp'].endswith('Z')

    def test_get_logger_caches(self):
        assert get_logger('tests.cached', role='Bybit') is get_logger('tests.cached', role='Bybit')

    def test_execution_time_reraises(self, caplog):
        logger = get_logger('tests.timed')

        @log_execution_time(logger, operation="explode")
        def explode():
            raise ValueError("boom")

        with caplog.at_level(logging.INFO, logger='tests.timed'):
            with pytest.raises(ValueError):
                explode()

        data = json.loads(caplog.records[-1].getMessage())
        assert data['message'] == 'explode failed'
        assert data['error_type'] == 'ValueError'

    @pytest.mark.parametrize("raw, expected", [
        ('debug', logging.DEBUG),
        ('WARNING', logging.WARNING),
        ('verbose', logging.INFO),
        ('', logging.INFO),
    ])
    def test_unknown_log_level_falls_back_to_info(self, raw, expected, monkeypatch):
        monkeypatch.delenv('LOG_LEVEL', raising=False)

        assert resolve_level(raw) == expected

    def test_plain_records_are_wrapped_as_json(self):
        record = logging.LogRecord('signal_bridge.utils.retry', logging.WARNING, __file__, 1,
                                   "Retrying in %s seconds", (0.5,), None)

        data = json.loads(JSONFormatter().format(record))

        assert data['level'] == 'WARNING'
        assert data['message'] == 'Retrying in 0.5 seconds'
        assert data['logger'] == 'signal_bridge.utils.retry'

    def test_structured_records_pass_through(self):
        record = logging.LogRecord('signal_bridge.server', logging.INFO, __file__, 1,
                                   '{"message": "ok"}', None, None)
        record.structured = True

        assert JSONFormatter().format(record) == '{"message": "ok"}'
