"""
Validation files: one predicted class index per test case, newline separated.

A file written with --validation-file-out can be fed back through
--validation-file-in to check that a later run predicts the same classes.
"""

import logging

from .errors import ValidationFileError

logger = logging.getLogger(__name__)


def read_predictions(path):
    """
    Read expected predictions, in ascending test-case-id order.

    Raises ValidationFileError if the file cannot be opened or holds anything
    other than non-negative integers.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            tokens = f.read().split()
    except OSError as e:
        raise ValidationFileError(f"Failed to open input validation file: {path}", path=path) from e

    predictions = []
    for token in tokens:
        if not (token.isascii() and token.isdigit()):
            raise ValidationFileError(f"Malformed prediction {token!r} in input validation file: {path}", path=path)
        predictions.append(int(token))
    logger.debug("read %d predictions from %s", len(predictions), path)
    return predictions


def write_predictions(path, predictions):
    try:
        with open(path, "w", encoding="utf-8") as f:
            for prediction in predictions:
                f.write(f"{int(prediction)}\n")
    except OSError as e:
        raise ValidationFileError(f"Failed to open output validation file: {path}", path=path) from e
    logger.debug("wrote %d predictions to %s", len(predictions), path)
