"""
Block-wise linear quantization (Q8_0, packed Q4_0)
"""

from .layout import (
    Q4_0,
    Q8_0,
    QUANTIZATION_TYPES,
    QuantizedArray,
    allocate_quantized_array,
    get_quantized_array_size,
    load_quantized_array_from_buffer,
)
from .q8_0 import QK8_0
from .q4_0 import QK4_0
from .quantizer import dequantize, quantize, quantize_into

__all__ = [
    "Q8_0", "Q4_0", "QK8_0", "QK4_0", "QUANTIZATION_TYPES",
    "QuantizedArray", "allocate_quantized_array", "get_quantized_array_size",
    "load_quantized_array_from_buffer", "quantize", "quantize_into", "dequantize",
]
