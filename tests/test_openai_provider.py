"""Tests for the OpenAI-compatible embedding provider."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from noteindex.config import DEFAULT_BASE_URL, IndexConfig
from noteindex.exceptions import BackendUnreachableError, ConfigurationError, GenerationError
from noteindex.search.protocols import EmbeddingProvider
from noteindex.search.providers.openai import OpenAIEmbedding

# ==================================================================
# Helpers
# ==================================================================


def _make_provider(**kwargs) -> OpenAIEmbedding:
    return OpenAIEmbedding(api_key="sk-test-key", **kwargs)


def _mock_response(vectors: list[list[float]]):
    """Build a mock CreateEmbeddingResponse (items deliberately reversed)."""
    mock_resp = MagicMock()
    mock_data = []
    for i, vec in enumerate(vectors):
        item = MagicMock()
        item.embedding = vec
        item.index = i
        mock_data.append(item)
    mock_resp.data = list(reversed(mock_data))
    return mock_resp


def _request() -> httpx.Request:
    return httpx.Request("POST", f"{DEFAULT_BASE_URL}/embeddings")


# ==================================================================
# OpenAIEmbedding
# ==================================================================


class TestOpenAIEmbedding:
    def test_satisfies_protocol(self) -> None:
        assert isinstance(_make_provider(), EmbeddingProvider)

    def test_defaults_to_local_backend(self) -> None:
        provider = _make_provider()
        assert provider.base_url == DEFAULT_BASE_URL

    def test_from_config(self) -> None:
        config = IndexConfig(embedding_model="m", base_url="http://gpu-box:11434/v1")
        provider = OpenAIEmbedding.from_config(config)
        assert provider.base_url == "http://gpu-box:11434/v1"

    def test_placeholder_key_without_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        provider = OpenAIEmbedding()
        assert provider._client.api_key == "noteindex"

    @pytest.mark.asyncio
    async def test_embed(self) -> None:
        provider = _make_provider()
        provider._client.embeddings.create = AsyncMock(
            return_value=_mock_response([[0.1, 0.2, 0.3]])
        )

        result = await provider.embed("hello", model="nomic-embed-text")

        assert result == [0.1, 0.2, 0.3]
        call_kwargs = provider._client.embeddings.create.call_args[1]
        assert call_kwargs["input"] == ["hello"]
        assert call_kwargs["model"] == "nomic-embed-text"

    @pytest.mark.asyncio
    async def test_embed_picks_first_by_index(self) -> None:
        provider = _make_provider()
        provider._client.embeddings.create = AsyncMock(
            return_value=_mock_response([[1.0], [2.0]])
        )
        assert await provider.embed("hello", model="m") == [1.0]

    @pytest.mark.asyncio
    async def test_embed_requires_model(self) -> None:
        provider = _make_provider()
        provider._client.embeddings.create = AsyncMock()

        with pytest.raises(ConfigurationError):
            await provider.embed("hello", model="")
        provider._client.embeddings.create.assert_not_called()

    @pytest.mark.asyncio
    async def test_empty_response_is_generation_error(self) -> None:
        provider = _make_provider()
        provider._client.embeddings.create = AsyncMock(return_value=_mock_response([]))

        with pytest.raises(GenerationError, match="Invalid embedding response"):
            await provider.embed("hello", model="m")

    @pytest.mark.asyncio
    async def test_empty_vector_is_generation_error(self) -> None:
        provider = _make_provider()
        provider._client.embeddings.create = AsyncMock(return_value=_mock_response([[]]))

        with pytest.raises(GenerationError):
            await provider.embed("hello", model="m")

    @pytest.mark.asyncio
    async def test_connection_error_is_backend_unreachable(self) -> None:
        provider = _make_provider()
        provider._client.embeddings.create = AsyncMock(
            side_effect=openai.APIConnectionError(request=_request())
        )

        with pytest.raises(BackendUnreachableError):
            await provider.embed("hello", model="m")

    @pytest.mark.asyncio
    async def test_api_error_is_generation_error(self) -> None:
        provider = _make_provider()
        error = openai.NotFoundError(
            "model 'm' not found",
            response=httpx.Response(404, request=_request()),
            body=None,
        )
        provider._client.embeddings.create = AsyncMock(side_effect=error)

        with pytest.raises(GenerationError, match="not found"):
            await provider.embed("hello", model="m")

    @pytest.mark.asyncio
    async def test_check_connection(self) -> None:
        provider = _make_provider()
        provider._client.models.list = AsyncMock(return_value=MagicMock())
        assert await provider.check_connection()

    @pytest.mark.asyncio
    async def test_check_connection_failure(self) -> None:
        provider = _make_provider()
        provider._client.models.list = AsyncMock(
            side_effect=openai.APIConnectionError(request=_request())
        )
        assert not await provider.check_connection()

    @pytest.mark.asyncio
    async def test_close(self) -> None:
        provider = _make_provider()
        provider._client.close = AsyncMock()
        await provider.close()
        provider._client.close.assert_awaited_once()
