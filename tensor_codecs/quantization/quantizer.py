"""
Quantize / dequantize entry points, dispatching on the record's type
"""

import numbers
from typing import Optional, Union

import numpy as np

from ..errors import InvalidArgumentError, UnknownFormatError
from .layout import (
    Q4_0,
    Q8_0,
    QuantizedArray,
    allocate_quantized_array,
    resolve_quantized_type,
)
from .q4_0 import QK4_0, dequantize_q4_0, quantize_q4_0
from .q8_0 import QK8_0, dequantize_q8_0, quantize_q8_0


# tag -> (encode, decode, default block size)
_CODECS = {
    Q8_0: (quantize_q8_0, dequantize_q8_0, QK8_0),
    Q4_0: (quantize_q4_0, dequantize_q4_0, QK4_0),
}


def _codec_for(quantized_type: int):
    try:
        return _CODECS[quantized_type]
    except KeyError:
        raise UnknownFormatError(f"Unsupported quantization type tag: {quantized_type!r}") from None


def _flat_input(float_array, num_elements: Optional[int]) -> np.ndarray:
    if float_array is None:
        raise InvalidArgumentError("float_array is required")

    values = np.asarray(float_array, dtype=np.float32).reshape(-1)
    if num_elements is None:
        num_elements = values.size
    elif not isinstance(num_elements, numbers.Integral) or isinstance(num_elements, bool):
        raise InvalidArgumentError(f"num_elements must be an integer, got {num_elements!r}")
    num_elements = int(num_elements)

    if num_elements <= 0:
        raise InvalidArgumentError("Cannot quantize an empty array")
    if values.size < num_elements:
        raise InvalidArgumentError(
            f"float_array holds {values.size} values, expected at least {num_elements}"
        )
    return values[:num_elements]


def _flat_output(float_array, num_elements: int) -> np.ndarray:
    if float_array is None:
        raise InvalidArgumentError("Output float_array is required")
    if not isinstance(float_array, np.ndarray) or float_array.dtype != np.float32:
        raise InvalidArgumentError("Output must be a float32 numpy array")
    if not float_array.flags.c_contiguous or not float_array.flags.writeable:
        raise InvalidArgumentError("Output array must be C-contiguous and writable")
    if float_array.size < num_elements:
        raise InvalidArgumentError(
            f"Output holds {float_array.size} values, expected at least {num_elements}"
        )
    return float_array.reshape(-1)


def quantize(float_array, num_elements: Optional[int] = None,
             quantized_type: Union[str, int] = "Q8_0") -> QuantizedArray:
    """
    Quantize a float array into a new record using the type's default block size.

    Args:
        float_array: array-like of floats (any shape, read flat)
        num_elements: number of leading values to encode (default: all)
        quantized_type: "Q8_0" / "Q4_0" or tag 0 / 1

    Returns:
        QuantizedArray: populated, read-only record

    Raises:
        InvalidArgumentError: If the input is missing or empty
        UnknownFormatError: If quantized_type is not supported
    """
    values = _flat_input(float_array, num_elements)
    tag = resolve_quantized_type(quantized_type)
    _, _, block_size = _codec_for(tag)

    quantized_array = allocate_quantized_array(values.size, block_size, tag)
    quantize_into(values, quantized_array)
    return quantized_array


def quantize_into(float_array, quantized_array: QuantizedArray) -> QuantizedArray:
    """
    Populate an allocated record from `quantized_array.num_elements` input values.

    Raises:
        InvalidArgumentError: If an argument is missing or the record is already populated
    """
    if quantized_array is None:
        raise InvalidArgumentError("quantized_array is required")

    values = _flat_input(float_array, quantized_array.num_elements)
    quantized_array._begin_population()

    encode, _, _ = _codec_for(quantized_array.quantized_type)
    encode(values, quantized_array)
    quantized_array._seal()
    return quantized_array


def dequantize(quantized_array: QuantizedArray, float_array: np.ndarray) -> np.ndarray:
    """
    Decode a record into a caller-owned float32 buffer.

    Args:
        quantized_array: record to decode
        float_array: writable C-contiguous float32 array with at least
            num_elements values; only the first num_elements are written

    Returns:
        float_array
    """
    if quantized_array is None:
        raise InvalidArgumentError("quantized_array is required")

    output = _flat_output(float_array, quantized_array.num_elements)
    _, decode, _ = _codec_for(quantized_array.quantized_type)
    decode(quantized_array, output)
    return float_array
