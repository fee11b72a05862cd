"""
Per-token top-k magnitude sparsification

For every token (row) the features are ordered by descending absolute value,
ties broken by ascending feature index, and the first num_sparse_features
(index, value) pairs are kept. Rows are independent, so they are split into
contiguous chunks and processed by a thread pool; each chunk writes only its
own rows' segments of the output record.
"""

import multiprocessing as mp
from functools import partial
from multiprocessing.pool import ThreadPool
from typing import Optional

import numpy as np

from ..errors import InvalidArgumentError
from ..theme import paint
from .sparse_array import SparseArray, allocate_sparse_array


def select_top_k(rows: np.ndarray, k: int):
    """
    Top-k by magnitude for each row of a 2D array.

    Returns:
        (indices, values): both shaped (rows, k). Indices are ordered by
        descending |value|; equal magnitudes keep ascending index order.
    """
    # Stable sort on -|x| gives descending magnitude with index tie-break
    order = np.argsort(-np.abs(rows), axis=1, kind='stable')[:, :k]
    return order, np.take_along_axis(rows, order, axis=1)


def _compress_rows(row_range, dense, k, indices_out, values_out):
    start, stop = row_range
    indices, values = select_top_k(dense[start:stop], k)
    indices_out[start:stop] = indices
    values_out[start:stop] = values


def _row_chunks(num_tokens: int, num_chunks: int):
    bounds = np.linspace(0, num_tokens, num_chunks + 1).astype(np.int64)
    return [(int(a), int(b)) for a, b in zip(bounds[:-1], bounds[1:]) if b > a]


def _dense_input(float_array, num_tokens: int, num_features: int) -> np.ndarray:
    if float_array is None:
        raise InvalidArgumentError("float_array is required")

    values = np.asarray(float_array, dtype=np.float32).reshape(-1)
    num_elements = num_tokens * num_features
    if values.size < num_elements:
        raise InvalidArgumentError(
            f"float_array holds {values.size} values, expected at least {num_elements}"
        )
    return values[:num_elements].reshape(num_tokens, num_features)


def compress(float_array, num_tokens: int, num_features: int, sparse_ratio: float,
             parallel: bool = True, num_workers: Optional[int] = None,
             verbose: bool = False) -> SparseArray:
    """
    Sparsify a [num_tokens, num_features] array into a new record.

    Args:
        float_array: array-like of floats, read flat in row-major order
        num_tokens: rows (1..65535)
        num_features: columns (1..65535)
        sparse_ratio: fraction of features to keep per token, in [0, 1]
        parallel: split rows across worker threads
        num_workers: worker count (None = CPU cores - 1)
        verbose: print worker information

    Returns:
        SparseArray: populated, read-only record

    Raises:
        InvalidArgumentError: If an argument is missing or out of range
    """
    if float_array is None:
        raise InvalidArgumentError("float_array is required")

    sparse_array = allocate_sparse_array(num_tokens, num_features, sparse_ratio)
    return compress_into(float_array, sparse_array, parallel=parallel,
                         num_workers=num_workers, verbose=verbose)


def compress_into(float_array, sparse_array: SparseArray, parallel: bool = True,
                  num_workers: Optional[int] = None, verbose: bool = False) -> SparseArray:
    """
    Populate an allocated record.

    Raises:
        InvalidArgumentError: If an argument is missing or the record is already populated
    """
    if sparse_array is None:
        raise InvalidArgumentError("sparse_array is required")

    num_tokens = sparse_array.num_tokens
    k = sparse_array.num_sparse_features
    dense = _dense_input(float_array, num_tokens, sparse_array.num_features)
    sparse_array._begin_population()

    if k > 0:
        indices_out = sparse_array.sparse_indices.reshape(num_tokens, k)
        values_out = sparse_array.values.reshape(num_tokens, k)
        worker_func = partial(_compress_rows, dense=dense, k=k,
                              indices_out=indices_out, values_out=values_out)

        if num_workers is None:
            num_workers = max(1, mp.cpu_count() - 1)
        if num_workers < 1:
            raise InvalidArgumentError(f"num_workers must be at least 1, got {num_workers}")
        num_workers = min(num_workers, num_tokens)

        if parallel and num_workers > 1:
            if verbose:
                print(paint("info", f"Using {num_workers} worker threads for {num_tokens} tokens"),
                      flush=True)
            with ThreadPool(processes=num_workers) as pool:
                # map blocks until every chunk is written
                pool.map(worker_func, _row_chunks(num_tokens, num_workers))
        else:
            worker_func((0, num_tokens))

    sparse_array._seal()
    return sparse_array


def decompress(sparse_array: SparseArray, float_array: np.ndarray) -> np.ndarray:
    """
    Scatter a record back into a dense caller-owned float32 buffer.

    The first num_tokens * num_features values of `float_array` are zeroed,
    then each token's kept values are written at their original positions.

    Returns:
        float_array
    """
    if sparse_array is None:
        raise InvalidArgumentError("sparse_array is required")
    if float_array is None:
        raise InvalidArgumentError("Output float_array is required")
    if not isinstance(float_array, np.ndarray) or float_array.dtype != np.float32:
        raise InvalidArgumentError("Output must be a float32 numpy array")
    if not float_array.flags.c_contiguous or not float_array.flags.writeable:
        raise InvalidArgumentError("Output array must be C-contiguous and writable")

    num_tokens = sparse_array.num_tokens
    num_features = sparse_array.num_features
    k = sparse_array.num_sparse_features
    num_elements = num_tokens * num_features
    if float_array.size < num_elements:
        raise InvalidArgumentError(
            f"Output holds {float_array.size} values, expected at least {num_elements}"
        )

    dense = float_array.reshape(-1)[:num_elements].reshape(num_tokens, num_features)
    dense[:] = 0.0

    if k > 0:
        rows = np.arange(num_tokens)[:, None]
        indices = sparse_array.sparse_indices.reshape(num_tokens, k).astype(np.intp)
        dense[rows, indices] = sparse_array.values.reshape(num_tokens, k)

    return float_array
