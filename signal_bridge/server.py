"""
Webhook HTTP shell.

POST /enqueue     TradingView -> polling queue
GET  /dequeue     terminal EA polls the next signal
POST /bybit       TradingView -> risk gate -> Bybit
POST /bybit/pnl   report realized PnL into the account's daily stats
GET  /status      exchange liveness
"""

import math
from typing import Any, Callable, Dict, Optional

from flask import Flask, jsonify, request

from signal_bridge.config import BridgeSettings, load_settings
from signal_bridge.exchange.bybit_client import BybitClient
from signal_bridge.models import RiskConfig
from signal_bridge.roles.job_executor import SignalProcessor
from signal_bridge.roles.job_risk import RiskRegistry
from signal_bridge.signal_queue import SignalQueue, build_queue
from signal_bridge.utils.errors import BridgeError, ConfigurationError, RiskAccountLimitError
from signal_bridge.utils.logger import get_logger, iso_now


# Risk-state key for /bybit requests that name no account
BYBIT_ACCOUNT = "BYBIT"

logger = get_logger(__name__, role="Server")


def create_app(settings: Optional[BridgeSettings] = None,
               queue: Optional[SignalQueue] = None,
               registry: Optional[RiskRegistry] = None,
               client_factory: Optional[Callable[[], BybitClient]] = None) -> Flask:
    """
    Build the Flask app.

    Args:
        settings: Defaults to load_settings()
        queue: Defaults to build_queue(settings)
        registry: Per-account risk managers, kept for the app's lifetime
        client_factory: Returns a BybitClient per request (tests inject mocks)
    """
    settings = settings or load_settings()
    queue = queue or build_queue(settings)
    registry = registry or RiskRegistry(RiskConfig.from_settings(settings),
                                        max_accounts=settings.max_risk_accounts)

    app = Flask(__name__)

    def make_client(require_credentials: bool = True) -> BybitClient:
        if client_factory is not None:
            return client_factory()
        if require_credentials:
            return BybitClient.from_settings(settings)
        # /v5/market/time needs no signature
        return BybitClient(settings.bybit_api_key, settings.bybit_api_secret,
                           testnet=settings.bybit_testnet, timeout=settings.bybit_timeout)

    def read_json() -> Optional[Dict[str, Any]]:
        # TradingView posts JSON as text/plain
        body = request.get_json(force=True, silent=True)
        return body if isinstance(body, dict) else None

    def token_ok(body: Dict[str, Any]) -> bool:
        # TradingView cannot set headers, so the secret travels in the body
        return not settings.webhook_secret or body.get('token') == settings.webhook_secret

    def fail(error: str, status: int, **extra):
        return jsonify({'ok': False, 'error': error, **extra}), status

    def finite_number(value: Any) -> float:
        number = float(value)
        if not math.isfinite(number):
            raise ValueError(f"not a finite number: {value!r}")
        return number

    @app.after_request
    def add_cors_headers(response):
        response.headers['access-control-allow-origin'] = '*'
        if request.method == 'OPTIONS':
            response.headers['access-control-allow-methods'] = 'GET,POST,OPTIONS'
            response.headers['access-control-allow-headers'] = 'content-type'
        return response

    @app.errorhandler(404)
    @app.errorhandler(405)
    def not_found(_error):
        return "Not found", 404

    @app.route('/enqueue', methods=['POST'])
    def enqueue():
        body = read_json()
        if body is None:
            return fail("Invalid JSON", 400)

        if not token_ok(body):
            logger.warning("Rejected enqueue with bad token", remote=request.remote_addr)
            return fail("Bad token", 403)

        account = (body.get('account') or settings.default_account).upper()
        signal = {k: v for k, v in body.items() if k != 'token'}

        try:
            signal_id, size = queue.enqueue(account, signal)
        except BridgeError as e:
            logger.error("Enqueue failed", account=account, error=str(e))
            return fail(e.message, 500)

        return jsonify({'ok': True, 'size': size, 'signalId': signal_id})

    @app.route('/dequeue', methods=['GET'])
    def dequeue():
        account = (request.args.get('account') or settings.default_account).upper()
        return jsonify(queue.dequeue(account))

    @app.route('/bybit', methods=['POST'])
    def bybit():
        body = read_json()
        if body is None:
            return fail("Invalid JSON", 400)

        if not token_ok(body):
            logger.warning("Rejected bybit signal with bad token", remote=request.remote_addr)
            return fail("Bad token", 403)

        try:
            client = make_client()
        except ConfigurationError as e:
            logger.error("Bybit client unavailable", error=str(e))
            return fail(e.message, 500, timestamp=iso_now())

        account = (body.get('account') or BYBIT_ACCOUNT).upper()
        try:
            processor = SignalProcessor(client, registry.get(account))
            payload, status = processor.process(body)
        except RiskAccountLimitError as e:
            logger.warning("Rejected unknown risk account", account=account)
            return fail(e.message, 400, timestamp=iso_now())
        finally:
            client.close()

        return jsonify(payload), status

    @app.route('/bybit/pnl', methods=['POST'])
    def bybit_pnl():
        body = read_json()
        if body is None:
            return fail("Invalid JSON", 400)

        if not token_ok(body):
            return fail("Bad token", 403)

        try:
            pnl = finite_number(body['pnl'])
            trades = int(body.get('trades', 1))
            balances = None
            if body.get('currentBalance') is not None and body.get('initialBalance') is not None:
                balances = (finite_number(body['currentBalance']), finite_number(body['initialBalance']))
        except (KeyError, TypeError, ValueError, OverflowError):
            return fail("pnl, currentBalance and initialBalance must be finite numbers, trades an integer", 400)

        if trades < 0:
            return fail("trades must not be negative", 400)

        account = (body.get('account') or BYBIT_ACCOUNT).upper()
        try:
            manager = registry.get(account)
        except RiskAccountLimitError as e:
            return fail(e.message, 400)

        stats = manager.update_daily_stats(pnl, trades)

        response = {
            'ok': True,
            'account': account,
            'dailyPnl': f"{stats.pnl:.2f}",
            'dailyTrades': stats.trades_count,
            'timestamp': iso_now(),
        }

        if balances is not None:
            response['emergencyStop'] = manager.should_trigger_emergency_stop(*balances)

        return jsonify(response)

    @app.route('/status', methods=['GET'])
    def status():
        try:
            client = make_client(require_credentials=False)
            try:
                healthy = client.ping()
            finally:
                client.close()
        except BridgeError as e:
            return jsonify({'status': 'error', 'error': e.message, 'timestamp': iso_now()}), 500

        return jsonify({
            'status': 'healthy' if healthy else 'unhealthy',
            'bybit': healthy,
            'timestamp': iso_now(),
            'testnet': settings.bybit_testnet,
        })

    return app


def main():
    settings = load_settings()
    app = create_app(settings)
    logger.info("Signal bridge starting", port=settings.port, testnet=settings.bybit_testnet,
                queue="supabase" if settings.supabase_url else "memory")
    app.run(host='0.0.0.0', port=settings.port, threaded=True)


if __name__ == '__main__':
    main()
