"""
Minimal tensor file used by the evaluation tooling

Layout (little-endian):
- 1 byte:  element type (0 = FLOAT32, the only supported type)
- 8 bytes: n_embed (features per token)
- 8 bytes: n_tokens
- 8 bytes: tensor_size in bytes (must equal n_tokens * n_embed * 4)
- tensor_size bytes: FP32 payload, row-major [n_tokens, n_embed]
"""

import struct
from dataclasses import dataclass
from pathlib import Path
from typing import Union

import numpy as np

from .errors import TensorFileError


HEADER = struct.Struct('<BQQQ')
FLOAT32_TYPE = 0


@dataclass
class TensorFile:
    n_embed: int
    n_tokens: int
    data: np.ndarray  # float32, shape (n_tokens, n_embed)

    @property
    def num_elements(self) -> int:
        return self.n_embed * self.n_tokens


def read_tensor_file(path: Union[str, Path]) -> TensorFile:
    """
    Read a tensor file.

    Raises:
        FileNotFoundError: If the file does not exist
        TensorFileError: If the header or payload is malformed
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Tensor file not found: {path}")

    with open(path, 'rb') as f:
        header = f.read(HEADER.size)
        if len(header) != HEADER.size:
            raise TensorFileError(f"Failed to read header from {path}")

        dtype_tag, n_embed, n_tokens, tensor_size = HEADER.unpack(header)
        if dtype_tag != FLOAT32_TYPE:
            raise TensorFileError(
                f"Unsupported element type: {dtype_tag} (expected {FLOAT32_TYPE} for FLOAT32)"
            )

        expected = n_tokens * n_embed * 4
        if tensor_size != expected:
            raise TensorFileError(
                f"Tensor size mismatch: expected {expected} bytes, got {tensor_size}"
            )

        payload = f.read(tensor_size)
        if len(payload) != tensor_size:
            raise TensorFileError(f"Failed to read tensor data from {path}")

    data = np.frombuffer(payload, dtype='<f4').astype(np.float32).reshape(n_tokens, n_embed)
    return TensorFile(n_embed=n_embed, n_tokens=n_tokens, data=data)


def write_tensor_file(path: Union[str, Path], data, n_embed: int, n_tokens: int) -> Path:
    """Write `n_tokens * n_embed` float32 values with the tensor file header"""
    path = Path(path)
    values = np.asarray(data, dtype='<f4').reshape(-1)
    if values.size != n_embed * n_tokens:
        raise TensorFileError(
            f"Data holds {values.size} values, expected {n_embed * n_tokens}"
        )

    with open(path, 'wb') as f:
        f.write(HEADER.pack(FLOAT32_TYPE, n_embed, n_tokens, values.nbytes))
        f.write(values.tobytes())
    return path
