"""
signal_bridge: relays TradingView alerts to a polling queue and to Bybit
behind a risk gate.
"""

from dotenv import load_dotenv

# Before any module logger reads LOG_LEVEL
load_dotenv()

__version__ = "1.0.0"
