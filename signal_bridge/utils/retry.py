"""
Retry logic with exponential backoff for the queue storage.

Uses tenacity library for robust retry mechanisms. Exchange calls are never
retried through here: the only exchange retry is the position-mode fallback
in ``BybitClient.place_order``.
"""

from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log,
)
import logging

from .errors import DatabaseError

logger = logging.getLogger(__name__)


def retry_db_operation(max_attempts: int = 2):
    """
    Retry decorator for queue storage operations.

    Short retry window since a webhook caller is waiting on the answer.

    Args:
        max_attempts: Maximum number of attempts (default: 2)

    Example:
        @retry_db_operation()
        def get(self, key):
            return db.table('signal_queue').select('value').eq('key', key).execute()
    """
    return retry(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=2.0),
        retry=retry_if_exception_type((DatabaseError, ConnectionError, TimeoutError)),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
