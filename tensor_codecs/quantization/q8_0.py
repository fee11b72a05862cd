"""
Q8_0 quantization implementation

Q8_0 format:
- Block size: 32 elements (last block may be partial)
- Each block: 1 FP32 scale, stored in the scale region
- Each element: 1 int8 code in [-127, 127], stored in the code region
"""

import numpy as np

from .blocks import expand_scales, quantize_blocks


QK8_0 = 32  # Block size for Q8_0
Q8_0_MAX = 127


def quantize_q8_0(values, quantized_array):
    """
    Quantize a flat float32 array into an allocated Q8_0 record.

    Args:
        values: 1D float32 numpy array with quantized_array.num_elements values
        quantized_array: unpopulated Q8_0 QuantizedArray (written in place)

    Per block:
        d = amax / 127, id = 1 / d (both 0 when amax == 0)
        q = round(x * id), clamped to [-127, 127]
    """
    scales, codes = quantize_blocks(
        values,
        quantized_array.num_blocks,
        quantized_array.block_size,
        Q8_0_MAX,
    )
    quantized_array.scales[:] = scales
    quantized_array.data[:] = codes


def dequantize_q8_0(quantized_array, output):
    """
    Dequantize a Q8_0 record into a flat float32 buffer.

    Args:
        quantized_array: Q8_0 QuantizedArray
        output: writable 1D float32 array with at least num_elements values

    value = d * q
    """
    n = quantized_array.num_elements
    d = expand_scales(quantized_array.scales, quantized_array.block_size, n)
    output[:n] = d * quantized_array.data.astype(np.float32)
