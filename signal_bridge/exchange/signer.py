"""
Bybit v5 request signing.

The signed message is ``timestamp + api_key + recv_window + payload`` where
payload is the JSON body for POST and the query string for GET.
"""

import hmac
import hashlib
import json
from typing import Any, Mapping, Union
from urllib.parse import urlencode


RECV_WINDOW = "5000"


def canonical_json(params: Mapping[str, Any]) -> str:
    """Compact JSON in insertion order, byte-identical to the body that is sent"""
    return json.dumps(params, separators=(",", ":"))


def canonical_query(params: Mapping[str, Any]) -> str:
    """URL-encoded query string in insertion order (no sorting)"""
    return urlencode(params)


class SignatureSigner:
    """
    HMAC-SHA256 signer for Bybit v5 authenticated requests.

    Example:
        signer = SignatureSigner(api_key, api_secret)
        sign = signer.sign("1700000000000", {"accountType": "UNIFIED"}, "GET")
    """

    def __init__(self, api_key: str, api_secret: str, recv_window: str = RECV_WINDOW):
        self.api_key = api_key
        self._secret = api_secret.encode('utf-8')
        self.recv_window = recv_window

    def payload(self, params: Union[str, Mapping[str, Any], None], method: str = 'GET') -> str:
        """
        Canonical payload for the given method.

        Args:
            params: Request parameters, or an already-serialized POST body
            method: 'GET' or 'POST'

        Returns:
            The string that goes after the recv window in the signed message
        """
        if method.upper() == 'POST':
            if isinstance(params, str):
                return params
            return canonical_json(params or {})
        return canonical_query(params or {})

    def sign(self, timestamp: str, params: Union[str, Mapping[str, Any], None], method: str = 'GET') -> str:
        """
        Generate the hex signature for one request.

        Args:
            timestamp: Epoch milliseconds as a string
            params: Query params (GET) or body / body string (POST)
            method: 'GET' or 'POST'

        Returns:
            Lowercase hex HMAC-SHA256 digest
        """
        message = timestamp + self.api_key + self.recv_window + self.payload(params, method)
        return hmac.new(self._secret, message.encode('utf-8'), hashlib.sha256).hexdigest()
