"""Embedding endpoint retry and circuit breaker helpers.

Private module - import from _retry package.
"""

from __future__ import annotations

import logging

import circuitbreaker
import httpx
import tenacity

from vault_index.clients._retry.httpx_errors import is_retryable_httpx_error

__all__ = [
    'embedding_breaker',
    'is_retryable_embedding_error',
    'log_embedding_retry',
]

logger = logging.getLogger(__name__)

# 429: rate limited
# 500/502/503/504: provider or gateway failure
RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})

EMBEDDING_FAILURE_THRESHOLD = 10
EMBEDDING_RECOVERY_TIMEOUT = 60


def is_retryable_embedding_error(exc: BaseException) -> bool:
    """Transport errors and transient HTTP statuses are retried."""
    if is_retryable_httpx_error(exc):
        return True
    return isinstance(exc, httpx.HTTPStatusError) and exc.response.status_code in RETRYABLE_STATUS_CODES


def log_embedding_retry(retry_state: tenacity.RetryCallState) -> None:
    """Log a failed embedding attempt before backing off."""
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    if exc is None:
        return

    exc_msg = str(exc)
    if isinstance(exc, httpx.HTTPStatusError):
        exc_msg = f'HTTP {exc.response.status_code}: {exc_msg}'

    logger.warning(f'[RETRY] Embed attempt {retry_state.attempt_number} failed: {type(exc).__name__}: {exc_msg}')


def _embedding_circuit_filter(thrown_type: type, thrown_value: BaseException) -> bool:  # noqa: ARG001
    """Only transient errors count toward opening the circuit."""
    return is_retryable_embedding_error(thrown_value)


embedding_breaker = circuitbreaker.CircuitBreaker(
    failure_threshold=EMBEDDING_FAILURE_THRESHOLD,
    recovery_timeout=EMBEDDING_RECOVERY_TIMEOUT,
    expected_exception=_embedding_circuit_filter,
    name='embedding',
)
