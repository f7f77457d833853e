"""
Reference convolution shared by normal and depthwise convolution.

Tensors are NCHW and passed as flat row-major buffers together with their
TensorShape. One accumulation per output element with virtual zero padding;
quantized outputs are requantized through a fixed-point multiplier.
"""

import logging

import numpy as np

from .quantized_multiplier import QuantizedMultiplierSmallerThanOne
from .tensor_types import (
    FLOAT32,
    INT32,
    UINT8,
    QuantizationParameters,
    TensorShape,
    conv_output_size,
    is_integer_type,
    numeric_cast,
    saturate,
)

logger = logging.getLogger(__name__)


def _flat(data):
    return np.asarray(data).reshape(-1)


def conv_impl(
    params,
    input_data,
    input_shape,
    input_quant,
    filter_data,
    filter_shape,
    filter_quant,
    bias_data,
    output_shape,
    output_quant,
    accumulator_type,
    depthwise=False,
    output_type=None,
):
    """
    Implements a 2D convolution (standard or depthwise) over NCHW tensors.

    Arguments:
    params -- ConvolutionParameters (strides, top/left padding, bias flag)
    input_data -- flat buffer of input_shape elements
    input_shape -- TensorShape of the input
    input_quant -- QuantizationParameters of the input
    filter_data -- flat buffer of filter_shape elements
    filter_shape -- [C_out, C_in, K_h, K_w], or [M, C_in, K_h, K_w] for depthwise
    filter_quant -- QuantizationParameters of the filter
    bias_data -- flat buffer with one value per output channel, or None
    output_shape -- TensorShape of the output
    output_quant -- QuantizationParameters of the output (scale 0.0 skips requantization)
    accumulator_type -- dtype the sum is carried in (int32 or float32)
    depthwise -- select depthwise convolution
    output_type -- dtype of the output, defaults to the input's dtype

    Returns:
    output -- numpy array of output_shape and output_type
    """
    assert not params.bias_enabled or bias_data is not None, "bias enabled but no bias data given"

    input_flat = _flat(input_data)
    filter_flat = _flat(filter_data)
    bias_flat = _flat(bias_data) if params.bias_enabled else None
    accumulator_type = np.dtype(accumulator_type)
    output_type = np.dtype(output_type if output_type is not None else input_flat.dtype)
    integer_accumulator = is_integer_type(accumulator_type)

    depth_mult = filter_shape[0] if depthwise else 1
    channels_input = filter_shape[1]
    channels_output = channels_input * depth_mult if depthwise else filter_shape[0]

    batch_size = output_shape[0]
    height_output = output_shape[2]
    width_output = output_shape[3]
    height_input = input_shape[2]
    width_input = input_shape[3]

    height_filter = filter_shape[2]
    width_filter = filter_shape[3]

    padding_top = params.pad_top
    padding_left = params.pad_left
    h_stride = params.stride_y
    x_stride = params.stride_x

    filter_offset = numeric_cast(filter_quant.offset, accumulator_type)
    input_offset = numeric_cast(input_quant.offset, accumulator_type)
    if integer_accumulator:
        filter_offset = int(filter_offset)
        input_offset = int(input_offset)

    rescale = None
    if output_quant.scale != 0.0:
        multiplier = (np.float32(input_quant.scale) * np.float32(filter_quant.scale)) / np.float32(output_quant.scale)
        rescale = QuantizedMultiplierSmallerThanOne(multiplier)
        logger.debug("requantizing with multiplier %.9g -> %r", multiplier, rescale)

    zero = 0 if integer_accumulator else accumulator_type.type(0)
    output = np.zeros(int(np.prod(tuple(output_shape))), dtype=output_type)

    for batch_idx in range(batch_size):
        for c_output in range(channels_output):
            for y_output in range(height_output):
                for x_output in range(width_output):
                    total = zero

                    # depthwise reads exactly one input channel per output channel
                    if depthwise:
                        input_channels = (c_output // depth_mult,)
                        depthwise_multiplier_idx = c_output % depth_mult
                    else:
                        input_channels = range(channels_input)
                        depthwise_multiplier_idx = 0

                    for c_input in input_channels:
                        for y_filter in range(height_filter):
                            for x_filter in range(width_filter):
                                if depthwise:
                                    filter_index = (depthwise_multiplier_idx * width_filter * height_filter * channels_input
                                                    + c_input * width_filter * height_filter
                                                    + y_filter * width_filter
                                                    + x_filter)
                                else:
                                    filter_index = (c_output * width_filter * height_filter * channels_input
                                                    + c_input * width_filter * height_filter
                                                    + y_filter * width_filter
                                                    + x_filter)
                                filter_value = _to_accumulator(filter_flat[filter_index], accumulator_type) - filter_offset

                                y_input = y_output * h_stride + y_filter
                                x_input = x_output * x_stride + x_filter

                                if (y_input < padding_top or y_input >= height_input + padding_top
                                        or x_input < padding_left or x_input >= width_input + padding_left):
                                    # padding reads as a raw zero
                                    raw_input = zero
                                else:
                                    raw_input = _to_accumulator(
                                        input_flat[batch_idx * width_input * height_input * channels_input
                                                   + width_input * height_input * c_input
                                                   + width_input * (y_input - padding_top)
                                                   + x_input - padding_left],
                                        accumulator_type)
                                total += filter_value * (raw_input - input_offset)

                    if params.bias_enabled:
                        total += _to_accumulator(bias_flat[c_output], accumulator_type)

                    total = numeric_cast(total, accumulator_type)

                    if rescale is not None:
                        # roughly round(multiplier * total + output_offset), in integer arithmetic
                        scaled = rescale * numeric_cast(total, INT32) + int(output_quant.offset)
                        value = numeric_cast(saturate(scaled, output_type), output_type)
                    else:
                        value = numeric_cast(total, output_type)

                    output[batch_idx * width_output * height_output * channels_output
                           + width_output * height_output * c_output
                           + width_output * y_output
                           + x_output] = value

    return output.reshape(tuple(output_shape))


def _to_accumulator(value, accumulator_type):
    if is_integer_type(accumulator_type):
        return int(value)
    return accumulator_type.type(value)


def checked_conv_impl(
    params,
    input_data,
    input_shape,
    input_quant,
    filter_data,
    filter_shape,
    filter_quant,
    bias_data,
    output_shape,
    output_quant,
    accumulator_type,
    depthwise=False,
    output_type=None,
):
    """
    Same as conv_impl, but validates every caller contract first and raises
    ValueError instead of relying on assertions.
    """
    input_shape = _checked_shape("input", input_shape)
    filter_shape = _checked_shape("filter", filter_shape)
    output_shape = _checked_shape("output", output_shape)

    if params.stride_y <= 0 or params.stride_x <= 0:
        raise ValueError(f"strides must be positive, got ({params.stride_y}, {params.stride_x})")
    for name in ("pad_top", "pad_left", "pad_bottom", "pad_right"):
        if getattr(params, name) < 0:
            raise ValueError(f"{name} must be non-negative, got {getattr(params, name)}")

    _check_buffer("input", input_data, input_shape)
    _check_buffer("filter", filter_data, filter_shape)

    if depthwise:
        depth_mult, channels_input = filter_shape[0], filter_shape[1]
        channels_output = channels_input * depth_mult
    else:
        channels_input, channels_output = filter_shape[1], filter_shape[0]

    if input_shape.channels != channels_input:
        raise ValueError(f"input has {input_shape.channels} channels, filter expects {channels_input}")
    if output_shape.channels != channels_output:
        raise ValueError(f"output has {output_shape.channels} channels, expected {channels_output}")
    if output_shape.batch != input_shape.batch:
        raise ValueError(f"batch mismatch: input {input_shape.batch}, output {output_shape.batch}")

    expected_h = conv_output_size(input_shape.height, filter_shape[2], params.stride_y, params.pad_top, params.pad_bottom)
    expected_w = conv_output_size(input_shape.width, filter_shape[3], params.stride_x, params.pad_left, params.pad_right)
    if (output_shape.height, output_shape.width) != (expected_h, expected_w):
        raise ValueError(
            f"output spatial size {(output_shape.height, output_shape.width)} does not match "
            f"convolution parameters, expected {(expected_h, expected_w)}"
        )

    if params.bias_enabled:
        if bias_data is None:
            raise ValueError("bias enabled but no bias data given")
        if np.asarray(bias_data).size != channels_output:
            raise ValueError(f"bias has {np.asarray(bias_data).size} values, expected {channels_output}")

    if output_quant.scale < 0.0:
        raise ValueError(f"output scale must be >= 0, got {output_quant.scale}")
    if output_quant.scale != 0.0 and (input_quant.scale <= 0.0 or filter_quant.scale <= 0.0):
        raise ValueError("input and filter scales must be positive when requantizing")

    return conv_impl(params, input_data, input_shape, input_quant, filter_data, filter_shape, filter_quant,
                     bias_data, output_shape, output_quant, accumulator_type, depthwise=depthwise,
                     output_type=output_type)


def _checked_shape(name, shape):
    dims = tuple(int(d) for d in shape)
    if len(dims) != 4:
        raise ValueError(f"{name} shape must have 4 dimensions, got {len(dims)}")
    if any(d <= 0 for d in dims):
        raise ValueError(f"{name} shape dimensions must be positive, got {dims}")
    return TensorShape(*dims)


def _check_buffer(name, data, shape):
    size = np.asarray(data).size
    if size != shape.num_elements():
        raise ValueError(f"{name} buffer has {size} elements, shape {tuple(shape)} needs {shape.num_elements()}")


def convolution2d_uint8(params, input_data, input_shape, input_quant, filter_data, filter_shape, filter_quant,
                        bias_data, output_shape, output_quant):
    """uint8 input/filter/output, int32 bias and accumulator."""
    return conv_impl(params, np.asarray(input_data, dtype=UINT8), input_shape, input_quant,
                     np.asarray(filter_data, dtype=UINT8), filter_shape, filter_quant,
                     None if bias_data is None else np.asarray(bias_data, dtype=INT32),
                     output_shape, output_quant, INT32, depthwise=False, output_type=UINT8)


def depthwise_convolution2d_uint8(params, input_data, input_shape, input_quant, filter_data, filter_shape,
                                  filter_quant, bias_data, output_shape, output_quant):
    return conv_impl(params, np.asarray(input_data, dtype=UINT8), input_shape, input_quant,
                     np.asarray(filter_data, dtype=UINT8), filter_shape, filter_quant,
                     None if bias_data is None else np.asarray(bias_data, dtype=INT32),
                     output_shape, output_quant, INT32, depthwise=True, output_type=UINT8)


def convolution2d_float32(params, input_data, input_shape, filter_data, filter_shape, bias_data, output_shape):
    """float32 everywhere; no quantization, so the output scale is 0."""
    return conv_impl(params, np.asarray(input_data, dtype=FLOAT32), input_shape, QuantizationParameters(),
                     np.asarray(filter_data, dtype=FLOAT32), filter_shape, QuantizationParameters(),
                     None if bias_data is None else np.asarray(bias_data, dtype=FLOAT32),
                     output_shape, QuantizationParameters(), FLOAT32, depthwise=False, output_type=FLOAT32)


def depthwise_convolution2d_float32(params, input_data, input_shape, filter_data, filter_shape, bias_data,
                                    output_shape):
    return conv_impl(params, np.asarray(input_data, dtype=FLOAT32), input_shape, QuantizationParameters(),
                     np.asarray(filter_data, dtype=FLOAT32), filter_shape, QuantizationParameters(),
                     None if bias_data is None else np.asarray(bias_data, dtype=FLOAT32),
                     output_shape, QuantizationParameters(), FLOAT32, depthwise=True, output_type=FLOAT32)
