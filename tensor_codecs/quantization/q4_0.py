"""
Q4_0 quantization implementation

Q4_0 format:
- Block size: 32 elements (last block may be partial)
- Each block: 1 FP32 scale, stored in the scale region
- Each element: 4-bit two's-complement code in [-7, 7]
- Packing: element j goes to byte j // 2, even j in the high nibble,
  odd j in the low nibble. An odd element count leaves the final low
  nibble zero.
"""

import numpy as np

from .blocks import expand_scales, quantize_blocks


QK4_0 = 32  # Block size for Q4_0
Q4_0_MAX = 7


def pack_nibbles(codes):
    """
    Pack signed 4-bit codes two per byte (first code in the high nibble).

    Args:
        codes: int8 array with values in [-8, 7]

    Returns:
        uint8 array of length ceil(len(codes) / 2)
    """
    nibbles = codes.astype(np.int8).view(np.uint8) & np.uint8(0x0F)
    if nibbles.size % 2:
        nibbles = np.append(nibbles, np.uint8(0))

    high = nibbles[0::2]
    low = nibbles[1::2]
    return ((high << np.uint8(4)) | low).astype(np.uint8)


def unpack_nibbles(packed, count):
    """
    Unpack `count` signed 4-bit codes from packed bytes.

    Sign extension: shift the nibble into the top of an int8, then shift
    back arithmetically.
    """
    packed = packed.astype(np.uint8)
    nibbles = np.empty(packed.size * 2, dtype=np.uint8)
    nibbles[0::2] = packed >> np.uint8(4)
    nibbles[1::2] = packed & np.uint8(0x0F)

    nibbles = nibbles[:count]
    return (nibbles << np.uint8(4)).view(np.int8) >> np.int8(4)


def quantize_q4_0(values, quantized_array):
    """
    Quantize a flat float32 array into an allocated Q4_0 record.

    Args:
        values: 1D float32 numpy array with quantized_array.num_elements values
        quantized_array: unpopulated Q4_0 QuantizedArray (written in place)

    Per block:
        d = amax / 7, id = 1 / d (both 0 when amax == 0)
        q = round(x * id), clamped to [-7, 7]
    """
    scales, codes = quantize_blocks(
        values,
        quantized_array.num_blocks,
        quantized_array.block_size,
        Q4_0_MAX,
    )
    quantized_array.scales[:] = scales
    quantized_array.data[:] = pack_nibbles(codes)


def dequantize_q4_0(quantized_array, output):
    """
    Dequantize a Q4_0 record into a flat float32 buffer.

    value = d * sign_extend(nibble)
    """
    n = quantized_array.num_elements
    codes = unpack_nibbles(quantized_array.data, n)
    d = expand_scales(quantized_array.scales, quantized_array.block_size, n)
    output[:n] = d * codes.astype(np.float32)
