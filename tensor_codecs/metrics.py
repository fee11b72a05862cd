"""
Reconstruction error metrics
"""

from typing import NamedTuple

import numpy as np


class ErrorMetrics(NamedTuple):
    mae: float
    mse: float
    max_abs: float


def measure_metrics(original, reconstructed) -> ErrorMetrics:
    """Mean absolute, mean squared and max absolute error, computed in FP64"""
    original = np.asarray(original, dtype=np.float64).reshape(-1)
    reconstructed = np.asarray(reconstructed, dtype=np.float64).reshape(-1)
    if original.shape != reconstructed.shape:
        raise ValueError(
            f"Shape mismatch: {original.shape} vs {reconstructed.shape}"
        )
    if original.size == 0:
        return ErrorMetrics(0.0, 0.0, 0.0)

    error = reconstructed - original
    abs_error = np.abs(error)
    return ErrorMetrics(
        mae=float(abs_error.mean()),
        mse=float(np.mean(error * error)),
        max_abs=float(abs_error.max()),
    )


def bits_per_weight(size_bytes: int, num_elements: int) -> float:
    """Encoded bits per original element"""
    if num_elements <= 0:
        raise ValueError("num_elements must be positive")
    return 8.0 * size_bytes / num_elements
