"""Embedding providers."""

from noteindex.search.providers.openai import OpenAIEmbedding

__all__ = ["OpenAIEmbedding"]
