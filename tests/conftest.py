"""
Pytest configuration and shared fixtures for signal bridge tests.

This module provides:
- Mock HTTP session for the Bybit client
- Mock Bybit client for the signal processor
- Sample exchange payloads
- Flask test client wired to in-memory components
"""

import json

import pytest
from unittest.mock import Mock
from datetime import datetime

import pytz

from signal_bridge.config import load_settings
from signal_bridge.exchange.bybit_client import BybitClient
from signal_bridge.models import RiskConfig
from signal_bridge.roles.job_risk import RiskManager, RiskRegistry
from signal_bridge.server import create_app
from signal_bridge.signal_queue import MemoryKVStore, SignalQueue


# ===========================
# Clock
# ===========================

NOON_UTC = datetime(2026, 1, 15, 12, 0, 0, tzinfo=pytz.UTC)


@pytest.fixture
def fixed_clock():
    """Clock pinned to noon UTC"""
    return lambda: NOON_UTC


# ===========================
# Risk
# ===========================

@pytest.fixture
def risk_config():
    """Default policy: 2% risk, 10% daily loss, 1 per symbol, 3 total, 100 min balance"""
    return RiskConfig()


@pytest.fixture
def risk_manager(risk_config, fixed_clock):
    return RiskManager(risk_config, clock=fixed_clock)


# ===========================
# Mock HTTP Session
# ===========================

def make_response(payload=None, text=None, status_code=200):
    """Fake requests.Response; payload is JSON-encoded unless raw text is given"""
    response = Mock()
    response.status_code = status_code
    response.text = text if text is not None else json.dumps(payload)
    response.json = Mock(side_effect=lambda: json.loads(response.text))
    return response


def ok(result=None):
    """Successful Bybit envelope"""
    return make_response({'retCode': 0, 'retMsg': 'OK', 'result': result if result is not None else {}})


def api_error(code, message):
    """Rejected Bybit envelope"""
    return make_response({'retCode': code, 'retMsg': message, 'result': {}})


@pytest.fixture
def mock_session():
    """Mock requests.Session; set .request.return_value or .side_effect per test"""
    session = Mock()
    session.request = Mock(return_value=ok())
    session.get = Mock(return_value=ok())
    return session


@pytest.fixture
def bybit_client(mock_session):
    return BybitClient("test-key", "test-secret", testnet=True, session=mock_session)


# ===========================
# Sample Exchange Data
# ===========================

@pytest.fixture
def sample_balance():
    """Coin rows as returned by BybitClient.get_balance"""
    return [
        {'coin': 'BTC', 'walletBalance': '0.5'},
        {'coin': 'USDT', 'walletBalance': '1000'},
    ]


@pytest.fixture
def sample_ticker():
    return {'symbol': 'BTCUSDT', 'lastPrice': '50000'}


@pytest.fixture
def sample_positions():
    """One long BTC, one short ETH, one flat SOL row"""
    return [
        {'symbol': 'BTCUSDT', 'side': 'Buy', 'size': '0.01', 'markPrice': '50000', 'avgPrice': '49000'},
        {'symbol': 'ETHUSDT', 'side': 'Sell', 'size': '0.5', 'markPrice': '', 'avgPrice': '3000'},
        {'symbol': 'SOLUSDT', 'side': 'None', 'size': '0', 'markPrice': '100', 'avgPrice': ''},
    ]


# ===========================
# Mock Bybit Client
# ===========================

@pytest.fixture
def mock_client(sample_balance, sample_ticker):
    """Mock BybitClient: 1000 USDT, BTC at 50000, no positions"""
    client = Mock(spec=BybitClient)
    client.get_balance = Mock(return_value=sample_balance)
    client.get_positions = Mock(return_value=[])
    client.get_ticker = Mock(return_value=sample_ticker)
    client.place_order = Mock(return_value={'orderId': 'order-1', 'orderLinkId': ''})
    client.set_trading_stop = Mock(return_value={})
    client.ping = Mock(return_value=True)
    return client


# ===========================
# Flask App
# ===========================

@pytest.fixture
def settings():
    return load_settings(environ={
        'BYBIT_API_KEY': 'test-key',
        'BYBIT_API_SECRET': 'test-secret',
        'BYBIT_TESTNET': 'true',
        'WEBHOOK_SECRET': 'secret',
    })


@pytest.fixture
def signal_queue():
    return SignalQueue(MemoryKVStore(), default_account="FTMO")


@pytest.fixture
def registry(settings, fixed_clock):
    return RiskRegistry(RiskConfig.from_settings(settings), clock=fixed_clock)


@pytest.fixture
def app(settings, signal_queue, registry, mock_client):
    app = create_app(settings, queue=signal_queue, registry=registry,
                     client_factory=lambda: mock_client)
    app.config['TESTING'] = True
    return app


@pytest.fixture
def http(app):
    """Flask test client"""
    return app.test_client()
