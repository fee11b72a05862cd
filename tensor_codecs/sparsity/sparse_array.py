"""
SparseArray record: per-token top-k features in zero-based COO form

Data has shape [num_tokens, num_features] and sparsity is applied along the
feature dimension. Every token keeps the same number of features, so token
indices are implicit: token t owns entries
[t * num_sparse_features, (t + 1) * num_sparse_features).

Persisted layout (little-endian):
- 2 bytes: num_tokens
- 2 bytes: num_features
- 2 bytes: num_sparse_features
- 2 bytes x (num_tokens * num_sparse_features): feature indices
- 4 bytes x (num_tokens * num_sparse_features): FP32 values
"""

import math
import numbers
import struct

import numpy as np

from ..errors import AllocationError, InvalidArgumentError


HEADER = struct.Struct('<HHH')
HEADER_SIZE = HEADER.size  # 6 bytes

MAX_DIMENSION = 0xFFFF  # dimensions are stored as u16


def _check_dimension(name, value):
    if value is None or not isinstance(value, numbers.Integral) or isinstance(value, bool):
        raise InvalidArgumentError(f"{name} must be an integer, got {value!r}")
    if not 0 < value <= MAX_DIMENSION:
        raise InvalidArgumentError(f"{name} must be in 1..{MAX_DIMENSION}, got {value}")
    return int(value)


def _check_ratio(sparse_ratio):
    if (sparse_ratio is None or not isinstance(sparse_ratio, numbers.Real)
            or isinstance(sparse_ratio, bool)):
        raise InvalidArgumentError(f"sparse_ratio must be a number, got {sparse_ratio!r}")
    # NaN fails both comparisons
    if not 0.0 <= sparse_ratio <= 1.0:
        raise InvalidArgumentError(f"sparse_ratio must be in [0, 1], got {sparse_ratio}")
    return float(sparse_ratio)


def compute_num_sparse_features(num_features: int, sparse_ratio: float) -> int:
    """
    Retained features per token.

    round(num_features * ratio) over the FP32 product, halves away from zero,
    clamped to [1, num_features] for a positive ratio; 0 when ratio is 0.
    """
    num_features = _check_dimension("num_features", num_features)
    sparse_ratio = _check_ratio(sparse_ratio)

    raw = float(np.float32(num_features) * np.float32(sparse_ratio))
    retained = int(math.floor(raw + 0.5))

    if retained > num_features:
        retained = num_features
    elif retained == 0 and sparse_ratio > 0.0:
        retained = 1  # a positive ratio always keeps something
    return retained


def sparse_array_size(num_tokens: int, num_sparse_features: int) -> int:
    """Persisted size in bytes for the given header fields"""
    num_entries = num_tokens * num_sparse_features
    return HEADER_SIZE + num_entries * (2 + 4)


class SparseArray:
    """
    Flattened per-token (index, value) pairs.

    Created zeroed by `allocate_sparse_array`, populated exactly once by
    `compress`, read-only afterwards.
    """

    def __init__(self, buffer: bytearray, populated: bool = False):
        num_tokens, num_features, num_sparse_features = HEADER.unpack_from(buffer, 0)
        self._num_tokens = num_tokens
        self._num_features = num_features
        self._num_sparse_features = num_sparse_features

        num_entries = num_tokens * num_sparse_features
        self._buffer = buffer
        self._sparse_indices = np.frombuffer(buffer, dtype='<u2', count=num_entries,
                                             offset=HEADER_SIZE)
        self._values = np.frombuffer(buffer, dtype='<f4', count=num_entries,
                                     offset=HEADER_SIZE + num_entries * 2)
        self._populated = False
        if populated:
            self._seal()

    def __repr__(self):
        return (f"SparseArray(num_tokens={self._num_tokens}, num_features={self._num_features}, "
                f"num_sparse_features={self._num_sparse_features})")

    @property
    def num_tokens(self) -> int:
        return self._num_tokens

    @property
    def num_features(self) -> int:
        return self._num_features

    @property
    def num_sparse_features(self) -> int:
        return self._num_sparse_features

    @property
    def sparsity(self) -> float:
        """Fraction of features kept per token"""
        return self._num_sparse_features / self._num_features

    @property
    def populated(self) -> bool:
        return self._populated

    @property
    def released(self) -> bool:
        return self._buffer is None

    @property
    def sparse_indices(self) -> np.ndarray:
        """Flattened uint16 feature indices, grouped by token"""
        self._check_alive()
        return self._sparse_indices

    @property
    def values(self) -> np.ndarray:
        """Flattened FP32 values matching sparse_indices"""
        self._check_alive()
        return self._values

    def token_indices(self, token: int) -> np.ndarray:
        """Feature indices kept for one token, in selection order"""
        start, stop = self._segment(token)
        return self.sparse_indices[start:stop]

    def token_values(self, token: int) -> np.ndarray:
        """Values kept for one token, in selection order"""
        start, stop = self._segment(token)
        return self.values[start:stop]

    def to_bytes(self) -> bytes:
        """Persisted representation, see module docstring"""
        self._check_alive()
        return bytes(self._buffer)

    def release(self):
        """Drop the backing buffer. Any later access raises."""
        self._sparse_indices = None
        self._values = None
        self._buffer = None

    def _segment(self, token):
        if not 0 <= token < self._num_tokens:
            raise InvalidArgumentError(f"token {token} out of range 0..{self._num_tokens - 1}")
        start = token * self._num_sparse_features
        return start, start + self._num_sparse_features

    def _check_alive(self):
        if self._buffer is None:
            raise InvalidArgumentError("SparseArray has been released")

    def _begin_population(self):
        self._check_alive()
        if self._populated:
            raise InvalidArgumentError("SparseArray is already populated")

    def _seal(self):
        self._sparse_indices.flags.writeable = False
        self._values.flags.writeable = False
        self._populated = True


def allocate_sparse_array(num_tokens: int, num_features: int, sparse_ratio: float) -> SparseArray:
    """
    Allocate a zeroed record for a [num_tokens, num_features] input.

    Raises:
        InvalidArgumentError: If a dimension is zero or above 65535, or the
            ratio is outside [0, 1]
        AllocationError: If the backing buffer cannot be allocated
    """
    num_tokens = _check_dimension("num_tokens", num_tokens)
    num_features = _check_dimension("num_features", num_features)
    num_sparse_features = compute_num_sparse_features(num_features, sparse_ratio)

    try:
        buffer = bytearray(sparse_array_size(num_tokens, num_sparse_features))
    except MemoryError as e:
        raise AllocationError(
            f"Could not allocate SparseArray for {num_tokens}x{num_sparse_features} entries"
        ) from e

    HEADER.pack_into(buffer, 0, num_tokens, num_features, num_sparse_features)
    return SparseArray(buffer)


def get_sparse_array_size(sparse_array: SparseArray) -> int:
    """Number of bytes needed to persist the record"""
    if sparse_array is None:
        raise InvalidArgumentError("sparse_array is required")
    return sparse_array_size(sparse_array.num_tokens, sparse_array.num_sparse_features)


def load_sparse_array_from_buffer(buffer) -> SparseArray:
    """
    Rebuild a record from bytes produced by `SparseArray.to_bytes()`.

    The bytes are copied and the index/value regions are located from the
    copied header.

    Raises:
        InvalidArgumentError: If the buffer is missing, truncated, inconsistent
            with its header, or holds an out-of-range feature index
    """
    if buffer is None:
        raise InvalidArgumentError("buffer is required")

    copied = bytearray(buffer)
    if len(copied) < HEADER_SIZE:
        raise InvalidArgumentError(
            f"Buffer too small for SparseArray header: {len(copied)} < {HEADER_SIZE} bytes"
        )

    num_tokens, num_features, num_sparse_features = HEADER.unpack_from(copied, 0)
    if num_tokens == 0 or num_features == 0:
        raise InvalidArgumentError("Stored num_tokens and num_features must be positive")
    if num_sparse_features > num_features:
        raise InvalidArgumentError(
            f"Stored num_sparse_features {num_sparse_features} exceeds num_features {num_features}"
        )

    expected = sparse_array_size(num_tokens, num_sparse_features)
    if len(copied) != expected:
        raise InvalidArgumentError(
            f"Buffer size mismatch: expected {expected} bytes, got {len(copied)}"
        )

    sparse_array = SparseArray(copied, populated=True)
    if sparse_array.sparse_indices.size and sparse_array.sparse_indices.max() >= num_features:
        raise InvalidArgumentError("Stored feature index out of range")
    return sparse_array
