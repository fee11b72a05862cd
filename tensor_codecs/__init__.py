"""
tensor-codecs - block quantization and top-k sparsity for float32 tensors
"""

__version__ = "0.1.0"

from .errors import AllocationError, CodecError, InvalidArgumentError, UnknownFormatError
from .quantization import (
    QuantizedArray,
    allocate_quantized_array,
    dequantize,
    get_quantized_array_size,
    load_quantized_array_from_buffer,
    quantize,
)
from .sparsity import (
    SparseArray,
    allocate_sparse_array,
    compress,
    decompress,
    get_sparse_array_size,
    load_sparse_array_from_buffer,
)

__all__ = [
    "CodecError", "InvalidArgumentError", "UnknownFormatError", "AllocationError",
    "QuantizedArray", "allocate_quantized_array", "quantize", "dequantize",
    "get_quantized_array_size", "load_quantized_array_from_buffer",
    "SparseArray", "allocate_sparse_array", "compress", "decompress",
    "get_sparse_array_size", "load_sparse_array_from_buffer",
]
