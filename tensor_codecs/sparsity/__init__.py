"""
Per-token top-k sparsification in COO form
"""

from .sparse_array import (
    SparseArray,
    allocate_sparse_array,
    compute_num_sparse_features,
    get_sparse_array_size,
    load_sparse_array_from_buffer,
)
from .topk import compress, compress_into, decompress, select_top_k

__all__ = [
    "SparseArray", "allocate_sparse_array", "compute_num_sparse_features",
    "get_sparse_array_size", "load_sparse_array_from_buffer",
    "compress", "compress_into", "decompress", "select_top_k",
]
