"""Persistence for the embedding index."""

from noteindex.search.stores.codec import decode_vector, encode_vector
from noteindex.search.stores.local import SCHEMA_VERSION, LocalIndexStore

__all__ = [
    "SCHEMA_VERSION",
    "LocalIndexStore",
    "decode_vector",
    "encode_vector",
]
