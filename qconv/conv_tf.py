import numpy as np
import tensorflow as tf


def _nchw_to_nhwc(x):
    return np.transpose(np.asarray(x, dtype=np.float32), (0, 2, 3, 1))


def _nhwc_to_nchw(x):
    return np.transpose(np.asarray(x), (0, 3, 1, 2))


def convolution2d_tf(x, w, b, stride, padding):
    """
    Standard convolution using TensorFlow's Functional API, for cross-checking
    the reference kernel.

    Arguments:
    x -- input data, numpy array of shape (m, C_in, H, W)
    w -- weights, numpy array of shape (C_out, C_in, K_h, K_w)
    b -- biases, numpy array of shape (C_out,) or None
    stride -- (stride_y, stride_x)
    padding -- ((pad_top, pad_bottom), (pad_left, pad_right))

    Returns:
    z -- conv output, numpy array of shape (m, C_out, H_out, W_out)
    """
    x_nhwc = _nchw_to_nhwc(x)
    n_C = w.shape[0]
    kernel = np.transpose(np.asarray(w, dtype=np.float32), (2, 3, 1, 0))

    X_input = tf.keras.layers.Input(x_nhwc.shape[1:])
    X_padded = tf.keras.layers.ZeroPadding2D(padding)(X_input)
    Z = tf.keras.layers.Conv2D(filters=n_C, kernel_size=kernel.shape[:2], strides=stride, padding="valid",
                               use_bias=b is not None, name="conv1")(X_padded)
    model = tf.keras.Model(inputs=X_input, outputs=Z)

    weights = [kernel] if b is None else [kernel, np.asarray(b, dtype=np.float32).reshape(-1)]
    model.get_layer("conv1").set_weights(weights)

    return _nhwc_to_nchw(model(x_nhwc).numpy())


def depthwise_convolution2d_tf(x, w_depthwise, b, stride, padding):
    """
    Depthwise convolution using TensorFlow.

    Arguments:
    x -- input data, numpy array of shape (m, C_in, H, W)
    w_depthwise -- weights, numpy array of shape (M, C_in, K_h, K_w), M = depth multiplier
    b -- biases, numpy array of shape (C_in * M,) or None
    stride -- (stride_y, stride_x)
    padding -- ((pad_top, pad_bottom), (pad_left, pad_right))

    Returns:
    z -- conv output, numpy array of shape (m, C_in * M, H_out, W_out)
    """
    x_nhwc = _nchw_to_nhwc(x)
    depth_mult = w_depthwise.shape[0]
    kernel = np.transpose(np.asarray(w_depthwise, dtype=np.float32), (2, 3, 1, 0))

    X_input = tf.keras.layers.Input(x_nhwc.shape[1:])
    X = tf.keras.layers.ZeroPadding2D(padding)(X_input)
    Z = tf.keras.layers.DepthwiseConv2D(kernel_size=kernel.shape[:2], strides=stride, padding="valid",
                                        depth_multiplier=depth_mult, use_bias=b is not None,
                                        name="depthwise_conv")(X)
    model = tf.keras.Model(inputs=X_input, outputs=Z)

    weights = [kernel] if b is None else [kernel, np.asarray(b, dtype=np.float32).reshape(-1)]
    model.get_layer("depthwise_conv").set_weights(weights)

    return _nhwc_to_nchw(model(x_nhwc).numpy())
