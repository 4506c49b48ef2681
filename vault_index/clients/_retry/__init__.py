"""Retry helpers for transient network errors across API clients.

Private submodule - not exported by the package.

Retry policy
------------
- RETRY: timeouts, network errors, remote protocol errors, and transient
  HTTP statuses (per client). Backoff is exponential, 3 attempts.
- PROPAGATE: local protocol errors, invalid URLs, proxy and decoding
  errors, and any other status. These are bugs or configuration problems.

Each client also has a circuit breaker that opens after consecutive
retryable failures and fails fast until its recovery timeout passes.

Client-specific notes
---------------------
- Embedding endpoint (httpx): retries 429 and 5xx responses.
- Qdrant (qdrant-client): wraps httpx errors in ResponseHandlingException;
  the underlying error is in `exc.source`. Retried statuses, attempts and
  breaker thresholds come from QdrantConfig; 500 is not retried by default.
"""

from __future__ import annotations

from vault_index.clients._retry.embedding import embedding_breaker, is_retryable_embedding_error, log_embedding_retry
from vault_index.clients._retry.httpx_errors import is_retryable_httpx_error
from vault_index.clients._retry.qdrant import QdrantRetryPolicy

__all__ = [
    'QdrantRetryPolicy',
    'embedding_breaker',
    'is_retryable_embedding_error',
    'is_retryable_httpx_error',
    'log_embedding_retry',
]
