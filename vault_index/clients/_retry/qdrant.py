"""Vector store retry and circuit breaker policy.

Private module - import from _retry package.

Unlike the embedding endpoint, Qdrant's retry behaviour is per client:
each QdrantClient builds a QdrantRetryPolicy from its QdrantConfig and
owns its own breaker, so two stores never trip each other's circuit.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Set
from dataclasses import dataclass, field

import circuitbreaker
import qdrant_client.http.exceptions
import tenacity

from vault_index.clients._retry.httpx_errors import is_retryable_httpx_error
from vault_index.schemas.config import QdrantConfig

__all__ = [
    'QdrantRetryPolicy',
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QdrantRetryPolicy:
    """Which Qdrant failures are retried, how often, and when the circuit opens."""

    retryable_status_codes: Set[int] = field(default_factory=lambda: frozenset({408, 502, 503, 504}))
    max_attempts: int = 3
    failure_threshold: int = 5
    recovery_timeout: int = 30

    @classmethod
    def from_config(cls, config: QdrantConfig) -> QdrantRetryPolicy:
        return cls(
            retryable_status_codes=frozenset(config.retry_status_codes),
            max_attempts=config.max_attempts,
            failure_threshold=config.failure_threshold,
            recovery_timeout=config.recovery_timeout,
        )

    def is_retryable(self, exc: BaseException) -> bool:
        """Transport failures and the configured HTTP statuses.

        qdrant-client wraps transport errors in ResponseHandlingException (the
        httpx error is in `.source`) and HTTP status errors in UnexpectedResponse.
        """
        if isinstance(exc, qdrant_client.http.exceptions.ResponseHandlingException):
            return is_retryable_httpx_error(exc.source)
        if isinstance(exc, qdrant_client.http.exceptions.UnexpectedResponse):
            return exc.status_code in self.retryable_status_codes
        return False

    def wrap[**P, R](self, operation: Callable[P, Awaitable[R]], name: str) -> Callable[P, Awaitable[R]]:
        """Retry `operation` with backoff, behind a breaker owned by this call site."""
        retrying = tenacity.retry(
            retry=tenacity.retry_if_exception(self.is_retryable),
            stop=tenacity.stop_after_attempt(self.max_attempts),
            wait=tenacity.wait_exponential(multiplier=0.5, max=5),
            before_sleep=_log_retry(name),
            reraise=True,
        )
        breaker = circuitbreaker.CircuitBreaker(
            failure_threshold=self.failure_threshold,
            recovery_timeout=self.recovery_timeout,
            # Only transient errors count toward opening the circuit
            expected_exception=lambda _type, value: self.is_retryable(value),
            name=f'qdrant-{name}',
        )
        return breaker(retrying(operation))


def _log_retry(name: str) -> Callable[[tenacity.RetryCallState], None]:
    def log(retry_state: tenacity.RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        if exc is None:
            return
        source_info = ''
        if isinstance(exc, qdrant_client.http.exceptions.ResponseHandlingException) and exc.source:
            source_info = f' (source: {type(exc.source).__name__}: {exc.source})'
        logger.warning(
            f'[RETRY] Qdrant {name} attempt {retry_state.attempt_number} failed: '
            f'{type(exc).__name__}: {exc}{source_info}'
        )

    return log
