"""OpenAIEmbedding — async embedding provider for OpenAI-compatible backends."""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING

import openai
from openai import AsyncOpenAI

from noteindex.config import DEFAULT_BASE_URL
from noteindex.exceptions import BackendUnreachableError, ConfigurationError, GenerationError

if TYPE_CHECKING:
    from noteindex.config import IndexConfig

logger = logging.getLogger(__name__)

# Local backends ignore the key, but the SDK refuses to start without one.
_PLACEHOLDER_KEY = "noteindex"


class OpenAIEmbedding:
    """Async embedding provider backed by an OpenAI-compatible ``/v1`` API.

    Defaults to a local Ollama server (``http://localhost:11434/v1``); any
    server that implements ``/v1/embeddings`` and ``/v1/models`` works.
    Connection failures and timeouts raise
    :class:`~noteindex.exceptions.BackendUnreachableError`; API errors and
    empty responses raise :class:`~noteindex.exceptions.GenerationError`.
    """

    def __init__(
        self,
        *,
        base_url: str = DEFAULT_BASE_URL,
        api_key: str | None = None,
        max_retries: int = 2,
        timeout: float = 60.0,
    ) -> None:
        resolved_key = api_key or os.environ.get("OPENAI_API_KEY") or _PLACEHOLDER_KEY
        self._base_url = base_url
        self._client = AsyncOpenAI(
            base_url=base_url,
            api_key=resolved_key,
            max_retries=max_retries,
            timeout=timeout,
        )

    @classmethod
    def from_config(
        cls,
        config: IndexConfig,
        *,
        max_retries: int = 2,
        timeout: float = 60.0,
    ) -> OpenAIEmbedding:
        """Build a provider from an :class:`~noteindex.config.IndexConfig`."""
        return cls(
            base_url=config.base_url,
            api_key=config.api_key,
            max_retries=max_retries,
            timeout=timeout,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    # ------------------------------------------------------------------
    # EmbeddingProvider protocol
    # ------------------------------------------------------------------

    async def embed(self, text: str, *, model: str) -> list[float]:
        """Embed a single text string via the embeddings endpoint."""
        if not model:
            msg = "No embedding model configured"
            raise ConfigurationError(msg)

        try:
            response = await self._client.embeddings.create(input=[text], model=model)
        except openai.APIConnectionError as e:
            msg = f"Cannot reach embedding backend at {self._base_url}: {e}"
            raise BackendUnreachableError(msg) from e
        except openai.APIError as e:
            msg = f"Embedding generation error: {e}"
            raise GenerationError(msg) from e

        data = sorted(response.data or [], key=lambda item: item.index)
        vector = list(data[0].embedding) if data else []
        if not vector:
            msg = "Invalid embedding response"
            raise GenerationError(msg)
        return [float(x) for x in vector]

    async def check_connection(self) -> bool:
        """Return True if the model listing endpoint answers."""
        try:
            await self._client.models.list()
        except openai.APIError:
            logger.debug("Connectivity check against %s failed", self._base_url, exc_info=True)
            return False
        return True

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Close the underlying httpx client."""
        await self._client.close()
