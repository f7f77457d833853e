from dataclasses import dataclass
from typing import NamedTuple

import numpy as np

INT32_MIN = -(1 << 31)
INT32_MAX = (1 << 31) - 1

# Element kinds the reference kernel is instantiated for
UINT8 = np.dtype(np.uint8)
INT32 = np.dtype(np.int32)
FLOAT32 = np.dtype(np.float32)


class NumericCastError(OverflowError):
    """Raised when a narrowing conversion would lose information."""


class TensorShape(NamedTuple):
    """[batch, channels, height, width] of an NCHW tensor."""

    batch: int
    channels: int
    height: int
    width: int

    def num_elements(self):
        return self.batch * self.channels * self.height * self.width


@dataclass(frozen=True)
class ConvolutionParameters:
    stride_y: int = 1
    stride_x: int = 1
    pad_top: int = 0
    pad_left: int = 0
    bias_enabled: bool = False
    # only used to check the declared output size
    pad_bottom: int = 0
    pad_right: int = 0


@dataclass(frozen=True)
class QuantizationParameters:
    """
    Per-tensor quantization: real = scale * (q - offset).

    A scale of 0.0 on the output tensor means "do not requantize".
    """

    scale: float = 0.0
    offset: int = 0


def is_integer_type(dtype):
    return np.issubdtype(np.dtype(dtype), np.integer)


def dtype_range(dtype):
    """
    Representable range of a numeric kind.

    Arguments:
    dtype -- numpy dtype (or anything np.dtype accepts)

    Returns:
    (lowest, highest) -- python ints for integer kinds, floats otherwise
    """
    dtype = np.dtype(dtype)
    if is_integer_type(dtype):
        info = np.iinfo(dtype)
        return int(info.min), int(info.max)
    info = np.finfo(dtype)
    return float(info.min), float(info.max)


def numeric_cast(value, dtype):
    """
    Convert `value` to `dtype`, refusing to wrap or truncate.

    Integer targets only accept integral values inside the target range.
    Float targets accept any finite value inside the target range.
    """
    dtype = np.dtype(dtype)
    lowest, highest = dtype_range(dtype)
    if is_integer_type(dtype):
        if isinstance(value, (float, np.floating)):
            if not np.isfinite(value) or value != np.floor(value):
                raise NumericCastError(f"{value!r} is not an integral value for {dtype.name}")
        value = int(value)
        if value < lowest or value > highest:
            raise NumericCastError(f"{value} is outside the range of {dtype.name} [{lowest}, {highest}]")
        return dtype.type(value)
    if np.isfinite(value) and (value < lowest or value > highest):
        raise NumericCastError(f"{value!r} is outside the range of {dtype.name}")
    return dtype.type(value)


def saturate(value, dtype):
    lowest, highest = dtype_range(dtype)
    return min(max(value, lowest), highest)


def conv_output_size(input_size, filter_size, stride, pad_before, pad_after):
    return (input_size + pad_before + pad_after - filter_size) // stride + 1
