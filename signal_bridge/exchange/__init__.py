"""
Exchange module.

Signed REST access to Bybit v5 (linear / USDT-margined).
"""

from .signer import SignatureSigner
from .bybit_client import BybitClient, RejectReason, classify_rejection, format_symbol

__all__ = [
    'SignatureSigner',
    'BybitClient',
    'RejectReason',
    'classify_rejection',
    'format_symbol',
]
