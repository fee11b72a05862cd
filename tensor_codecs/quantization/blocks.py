"""
Helpers shared by the block quantizers
"""

import numpy as np


def split_blocks(values, num_blocks, block_size):
    """
    View a flat float32 array as (num_blocks, block_size).

    The last block is zero-padded when it is partial. Padding does not change
    a block's max absolute value, so scales match an unpadded computation.
    """
    total = num_blocks * block_size
    if values.size == total:
        return values.reshape(num_blocks, block_size)

    padded = np.zeros(total, dtype=np.float32)
    padded[:values.size] = values
    return padded.reshape(num_blocks, block_size)


def block_scales(blocks, qmax):
    """
    Compute per-block scale d = amax / qmax and its inverse.

    Both are 0 for an all-zero block. NaN elements are ignored, so an all-NaN
    block also gets scale 0. Arithmetic stays in FP32.
    """
    amax = np.fmax.reduce(np.abs(blocks), axis=1)
    amax[np.isnan(amax)] = 0.0
    d = (amax / np.float32(qmax)).astype(np.float32)

    id_scale = np.zeros_like(d)
    np.divide(np.float32(1.0), d, out=id_scale, where=d > 0)
    return d, id_scale


def round_half_away_from_zero(x):
    """Nearest integer, halves rounded away from zero (2.5 -> 3, -2.5 -> -3)"""
    # FP64 so that adding 0.5 to an FP32 value is exact
    x = np.asarray(x, dtype=np.float64)
    return np.trunc(x + np.copysign(0.5, x))


def quantize_blocks(values, num_blocks, block_size, qmax):
    """
    Quantize a flat array to signed integer codes in [-qmax, qmax].

    Returns:
        (scales, codes): FP32 scale per block and int8 code per input element
    """
    blocks = split_blocks(values, num_blocks, block_size)
    d, id_scale = block_scales(blocks, qmax)

    # q = round(x / d) = round(x * id)
    scaled = blocks * id_scale[:, None]
    # NaN inputs (and inf * 0 from an infinite block max) encode as 0
    scaled = np.nan_to_num(scaled, nan=0.0, posinf=qmax, neginf=-qmax)
    q = np.clip(round_half_away_from_zero(scaled), -qmax, qmax).astype(np.int8)

    return d, q.reshape(-1)[:values.size]


def expand_scales(scales, block_size, num_elements):
    """Repeat each block scale over its elements"""
    return np.repeat(scales.astype(np.float32), block_size)[:num_elements]
