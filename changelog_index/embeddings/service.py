"""Embedding service interface and implementations."""

import asyncio
import math
import time
from abc import ABC, abstractmethod
from collections.abc import Awaitable
from typing import Any, TypeVar

import httpx

from changelog_index.config import EmbeddingSettings, get_settings
from changelog_index.embeddings.models import EmbeddingResult
from changelog_index.exceptions import (
    EmbeddingUnavailableError,
    ErrorCode,
    InvalidInputError,
)
from changelog_index.logging_config import get_logger
from changelog_index.observability.metrics import track_embedding_request

logger = get_logger(__name__)

T = TypeVar("T")


class EmbeddingService(ABC):
    """Abstract base class for embedding services.

    Subclasses provide backend initialization and the raw text-to-vector
    call. The base class owns the shared contract:

    - blank text is rejected with InvalidInputError before any I/O;
    - the backend is initialized once, on first use, even when several
      callers arrive concurrently;
    - every call is bounded by a caller-level timeout;
    - every returned vector is finite and of one fixed dimension.
    """

    def __init__(self, timeout: float | None = None) -> None:
        """Initialize shared state.

        Args:
            timeout: Seconds to wait for one embedding call, or None.
        """
        self._timeout = timeout
        self._init_lock = asyncio.Lock()
        self._initialized = False
        self._dimensions: int | None = None

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Get the model name used for embeddings."""
        ...

    @property
    def dimensions(self) -> int | None:
        """Get the embedding dimensions, or None until known."""
        return self._dimensions

    @property
    def initialized(self) -> bool:
        """Whether the backend has been initialized."""
        return self._initialized

    @abstractmethod
    async def _initialize(self) -> None:
        """Load or connect the underlying model. Called at most once."""
        ...

    @abstractmethod
    async def _embed_texts(self, texts: list[str]) -> list[list[float]]:
        """Embed already-validated texts with the backend.

        Raises:
            EmbeddingUnavailableError: If the backend call fails.
        """
        ...

    async def close(self) -> None:
        """Release backend resources."""
        return None

    async def _ensure_initialized(self) -> None:
        if self._initialized:
            return
        async with self._init_lock:
            if self._initialized:
                return
            logger.info("Initializing embedding backend", extra={"model": self.model_name})
            await self._initialize()
            self._initialized = True

    async def _with_timeout(self, awaitable: Awaitable[T]) -> T:
        if self._timeout is None:
            return await awaitable
        try:
            return await asyncio.wait_for(awaitable, timeout=self._timeout)
        except TimeoutError as e:
            raise EmbeddingUnavailableError(
                f"Embedding request timed out after {self._timeout}s",
                code=ErrorCode.EMBEDDING_TIMEOUT,
                details={"timeout": self._timeout, "model": self.model_name},
            ) from e

    async def embed(self, text: str) -> EmbeddingResult:
        """Generate embedding for a single text.

        Args:
            text: Text to embed.

        Returns:
            EmbeddingResult with vector.

        Raises:
            InvalidInputError: If the text is blank.
            EmbeddingUnavailableError: If embedding fails.
        """
        results = await self.embed_batch([text])
        return results[0]

    async def embed_batch(self, texts: list[str]) -> list[EmbeddingResult]:
        """Generate embeddings for multiple texts.

        Args:
            texts: List of texts to embed.

        Returns:
            One EmbeddingResult per text, in input order.

        Raises:
            InvalidInputError: If any text is blank.
            EmbeddingUnavailableError: If embedding fails.
        """
        if not texts:
            return []

        for position, text in enumerate(texts):
            if not text or not text.strip():
                raise InvalidInputError(
                    "Cannot embed empty text",
                    details={"position": position},
                )

        start = time.perf_counter()
        try:
            await self._with_timeout(self._ensure_initialized())
            vectors = await self._with_timeout(self._embed_texts(texts))
            self._validate_vectors(texts, vectors)
        except EmbeddingUnavailableError:
            track_embedding_request(
                model=self.model_name,
                duration=time.perf_counter() - start,
                batch_size=len(texts),
                success=False,
            )
            raise

        track_embedding_request(
            model=self.model_name,
            duration=time.perf_counter() - start,
            batch_size=len(texts),
        )

        return [
            EmbeddingResult(
                text=text,
                embedding=vector,
                model=self.model_name,
                dimensions=len(vector),
            )
            for text, vector in zip(texts, vectors, strict=True)
        ]

    def _validate_vectors(self, texts: list[str], vectors: list[list[float]]) -> None:
        """Reject malformed backend output instead of passing it on."""
        if len(vectors) != len(texts):
            raise EmbeddingUnavailableError(
                f"Embedding service returned {len(vectors)} vectors for {len(texts)} texts",
                code=ErrorCode.EMBEDDING_MALFORMED,
                details={"expected": len(texts), "received": len(vectors)},
            )

        for position, vector in enumerate(vectors):
            if not vector:
                raise EmbeddingUnavailableError(
                    "Embedding service returned an empty vector",
                    code=ErrorCode.EMBEDDING_MALFORMED,
                    details={"position": position},
                )
            if not all(math.isfinite(v) for v in vector):
                raise EmbeddingUnavailableError(
                    "Embedding service returned non-finite components",
                    code=ErrorCode.EMBEDDING_MALFORMED,
                    details={"position": position},
                )
            if self._dimensions is None:
                self._dimensions = len(vector)
            elif len(vector) != self._dimensions:
                raise EmbeddingUnavailableError(
                    f"Embedding has {len(vector)} dimensions, expected {self._dimensions}",
                    code=ErrorCode.EMBEDDING_MALFORMED,
                    details={
                        "position": position,
                        "expected": self._dimensions,
                        "received": len(vector),
                    },
                )


class HTTPEmbeddingService(EmbeddingService):
    """Embedding service using HTTP API.

    Compatible with OpenAI-style embedding APIs and
    text-embeddings-inference (TEI) servers.
    """

    # Known model dimensions
    MODEL_DIMENSIONS = {
        "thenlper/gte-small": 384,
        "Supabase/gte-small": 384,
        "BAAI/bge-small-en-v1.5": 384,
        "BAAI/bge-base-en-v1.5": 768,
        "BAAI/bge-large-en-v1.5": 1024,
        "text-embedding-ada-002": 1536,
        "text-embedding-3-small": 1536,
        "text-embedding-3-large": 3072,
    }

    def __init__(
        self,
        settings: EmbeddingSettings | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the HTTP embedding service.

        Args:
            settings: Embedding configuration. Uses defaults if not provided.
            client: HTTP client. Creates new one if not provided.
        """
        self._settings = settings or get_settings().embedding
        super().__init__(timeout=self._settings.timeout)
        self._client = client
        self._owns_client = client is None
        self._dimensions = self._settings.dimensions or self.MODEL_DIMENSIONS.get(
            self._settings.model
        )

    @property
    def model_name(self) -> str:
        """Get the model name."""
        return self._settings.model

    async def _initialize(self) -> None:
        """Create the HTTP client."""
        await self._get_client()

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            headers = {}
            if self._settings.api_key is not None:
                headers["Authorization"] = (
                    f"Bearer {self._settings.api_key.get_secret_value()}"
                )
            self._client = httpx.AsyncClient(timeout=self._settings.timeout, headers=headers)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if we own it."""
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
            self._initialized = False

    async def _embed_texts(self, texts: list[str]) -> list[list[float]]:
        """Embed texts in batches of the configured size."""
        client = await self._get_client()
        url = f"{self._settings.base_url.rstrip('/')}/embeddings"

        vectors: list[list[float]] = []
        batch_size = self._settings.batch_size
        for i in range(0, len(texts), batch_size):
            batch = texts[i : i + batch_size]
            vectors.extend(await self._embed_batch_request(client, url, batch))
        return vectors

    async def _embed_batch_request(
        self,
        client: httpx.AsyncClient,
        url: str,
        texts: list[str],
    ) -> list[list[float]]:
        """Make embedding request for a batch.

        Args:
            client: HTTP client.
            url: Embedding endpoint URL.
            texts: Batch of texts.

        Returns:
            One vector per text, in input order.

        Raises:
            EmbeddingUnavailableError: If request fails.
        """
        payload = {
            "input": texts,
            "model": self._settings.model,
        }

        try:
            response = await client.post(url, json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                f"Embedding request failed: {e.response.status_code}",
                extra={"url": url, "status": e.response.status_code},
            )
            raise EmbeddingUnavailableError(
                f"Embedding service returned {e.response.status_code}",
                details={"status_code": e.response.status_code},
            ) from e
        except httpx.RequestError as e:
            logger.error(f"Embedding request error: {e}", extra={"url": url})
            raise EmbeddingUnavailableError(
                f"Failed to connect to embedding service: {e}",
                details={"url": url},
            ) from e

        try:
            data: Any = response.json()
            items = data["data"]
            # OpenAI-style responses carry an index; TEI keeps input order
            if all(isinstance(item, dict) and "index" in item for item in items):
                items = sorted(items, key=lambda item: item["index"])
            return [[float(v) for v in item["embedding"]] for item in items]
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise EmbeddingUnavailableError(
                f"Invalid response from embedding service: {e}",
                code=ErrorCode.EMBEDDING_MALFORMED,
                details={"error": str(e)},
            ) from e
