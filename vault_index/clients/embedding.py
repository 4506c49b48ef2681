"""OpenAI-compatible embedding client.

Thin wrapper around a `POST /embeddings` endpoint (OpenRouter, OpenAI, or a
local server speaking the same API). Handles API calls only.

Uses native async httpx for concurrent requests. Concurrency controlled via
semaphore; transient failures retried with backoff behind a circuit breaker.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Sequence

import httpx
import tenacity

from vault_index.boundary import LibraryBoundary
from vault_index.clients import _retry
from vault_index.errors import EmbeddingError
from vault_index.paths import SECRETS_DIR
from vault_index.schemas.config import EmbeddingConfig

__all__ = [
    'HttpEmbeddingClient',
]

logger = logging.getLogger(__name__)

# Secrets file used when the configured environment variable is unset
API_KEY_FILE = SECRETS_DIR / 'embedding_api_key'


class HttpEmbeddingClient:
    """Low-level embedding client for OpenAI-compatible endpoints."""

    DEFAULT_TIMEOUT = 30.0
    DEFAULT_MAX_CONNECTIONS = 32

    def __init__(
        self,
        config: EmbeddingConfig,
        *,
        api_key: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize client.

        Args:
            config: Endpoint, model, dimensions and batching settings.
            api_key: Bearer token. Loaded from the environment or secrets dir when None.
            timeout: Request timeout in seconds.
            transport: Custom httpx transport (tests use httpx.MockTransport).
        """
        self._config = config
        self._api_key = api_key
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._semaphore = asyncio.Semaphore(config.max_concurrent)

    @property
    def dimensions(self) -> int:
        return self._config.dimensions

    @LibraryBoundary(EmbeddingError, context='embedding client setup')
    async def initialize(self) -> None:
        """Create the HTTP client. Idempotent."""
        if self._client is not None:
            return
        api_key = self._api_key or _load_api_key(self._config.api_key_env)
        self._client = httpx.AsyncClient(
            base_url=self._config.base_url,
            headers={
                'Authorization': f'Bearer {api_key}',
                'Content-Type': 'application/json',
            },
            timeout=self._timeout,
            limits=httpx.Limits(max_connections=self.DEFAULT_MAX_CONNECTIONS),
            transport=self._transport,
        )

    @LibraryBoundary(EmbeddingError, context='embed')
    async def embed(self, texts: Sequence[str]) -> Sequence[Sequence[float]]:
        """Embed texts, one vector per input, in input order.

        Inputs larger than the configured batch size are split into
        concurrent requests.

        Raises:
            EmbeddingError: Provider failure after retries, open circuit, or a
                response with the wrong number or size of vectors.
        """
        if not texts:
            return []
        await self.initialize()

        size = self._config.batch_size
        batches = [texts[i : i + size] for i in range(0, len(texts), size)]
        results = await asyncio.gather(*(self._embed_batch(batch) for batch in batches))
        vectors = [vector for batch in results for vector in batch]

        if len(vectors) != len(texts):
            raise EmbeddingError(f'Expected {len(texts)} embeddings, got {len(vectors)}')
        for vector in vectors:
            if not isinstance(vector, list) or len(vector) != self._config.dimensions:
                size = len(vector) if isinstance(vector, list) else type(vector).__name__
                raise EmbeddingError(f'Expected {self._config.dimensions}-dim vectors, got {size}')
            if not all(isinstance(x, int | float) and not isinstance(x, bool) for x in vector):
                raise EmbeddingError('Embedding contains non-numeric values')
        logger.debug(f'[EMBED] {len(texts)} texts in {len(batches)} requests')
        return [[float(x) for x in vector] for vector in vectors]

    @_retry.embedding_breaker
    @tenacity.retry(
        retry=tenacity.retry_if_exception(_retry.is_retryable_embedding_error),
        stop=tenacity.stop_after_attempt(3),
        wait=tenacity.wait_exponential(multiplier=0.5, max=5),
        before_sleep=_retry.log_embedding_retry,
        reraise=True,
    )
    async def _embed_batch(self, texts: Sequence[str]) -> Sequence[Sequence[float]]:
        assert self._client is not None
        body: dict[str, object] = {
            'model': self._config.model,
            'input': list(texts),
            'encoding_format': 'float',
            'dimensions': self._config.dimensions,
        }
        async with self._semaphore:
            response = await self._client.post('/embeddings', json=body)
            response.raise_for_status()
            data = response.json()

        # Sort by index to ensure order matches input
        embeddings = sorted(data['data'], key=lambda x: x['index'])
        return [e['embedding'] for e in embeddings]

    async def close(self) -> None:
        """Close HTTP client and release resources."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> HttpEmbeddingClient:
        await self.initialize()
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.close()


def _load_api_key(env_var: str) -> str:
    """API key from the environment, else the secrets file."""
    if key := os.environ.get(env_var, '').strip():
        return key
    if not API_KEY_FILE.exists():
        raise EmbeddingError(f'Embedding API key not found: set {env_var} or write it to {API_KEY_FILE}')
    return API_KEY_FILE.read_text().strip()
