import logging

import numpy as np
import tensorflow as tf

from .tensor_types import dtype_range, is_integer_type

logger = logging.getLogger(__name__)


def _tensor_quantization(details):
    scale, zero_point = details.get("quantization", (0.0, 0))
    return float(scale), int(zero_point)


def quantize_input(data, input_details):
    """Float sample -> the interpreter's input kind, clamped to its range."""
    dtype = np.dtype(input_details["dtype"])
    scale, zero_point = _tensor_quantization(input_details)
    if not is_integer_type(dtype) or scale == 0:
        return data.astype(dtype)
    lowest, highest = dtype_range(dtype)
    return np.clip(np.round(data / scale + zero_point), lowest, highest).astype(dtype)


def dequantize_output(data, output_details):
    scale, zero_point = _tensor_quantization(output_details)
    if not is_integer_type(output_details["dtype"]) or scale == 0:
        return data.astype(np.float32)
    return scale * (data.astype(np.float32) - zero_point)


class TfliteClassifierModel:
    """Runs one sample at a time through a TFLite classifier and returns its confidences."""

    def __init__(self, model_path):
        self.model_path = str(model_path)
        self.interpreter = tf.lite.Interpreter(model_path=self.model_path)
        self.interpreter.allocate_tensors()
        self.input_details = self.interpreter.get_input_details()[0]
        self.output_details = self.interpreter.get_output_details()[0]
        logger.info("Loaded %s: input %s %s, output %s %s", self.model_path,
                    self.input_details["shape"], np.dtype(self.input_details["dtype"]).name,
                    self.output_details["shape"], np.dtype(self.output_details["dtype"]).name)

    @property
    def output_size(self):
        return int(np.prod(self.output_details["shape"]))

    def run(self, sample):
        input_data = np.asarray(sample, dtype=np.float32).reshape(self.input_details["shape"])
        self.interpreter.set_tensor(self.input_details["index"], quantize_input(input_data, self.input_details))
        self.interpreter.invoke()
        output_data = self.interpreter.get_tensor(self.output_details["index"])
        return dequantize_output(output_data, self.output_details).reshape(-1)
