"""Float32 vector buffers encoded as base64 text."""

from __future__ import annotations

import base64
import binascii
from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from collections.abc import Sequence

# Native byte order: caches are machine-local.
_DTYPE = np.dtype(np.float32)


def encode_vector(vector: Sequence[float]) -> str:
    """Pack *vector* as native-endian float32 and return it base64-encoded."""
    buffer = np.asarray(vector, dtype=_DTYPE).tobytes()
    return base64.b64encode(buffer).decode("ascii")


def decode_vector(encoded: str) -> list[float]:
    """Inverse of :func:`encode_vector`.

    Raises:
        ValueError: If *encoded* is not valid base64 or not a whole number
            of float32 values.
    """
    try:
        buffer = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as e:
        msg = f"Invalid vector encoding: {e}"
        raise ValueError(msg) from e
    if len(buffer) % _DTYPE.itemsize:
        msg = f"Vector buffer length {len(buffer)} is not a multiple of {_DTYPE.itemsize}"
        raise ValueError(msg)
    return np.frombuffer(buffer, dtype=_DTYPE).astype(np.float64).tolist()
