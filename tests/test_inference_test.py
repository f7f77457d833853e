import logging

import numpy as np
import pytest

from qconv.classifier_test import ClassifierTestCaseProvider, InferenceTestOptions, TestCaseResult
from qconv.inference_test import inference_test, main, parse_args, perform_test_case
from qconv.test_database import TestCaseData
from qconv.validation_file import read_predictions, write_predictions


class EchoModel:
    def __init__(self):
        self.calls = 0

    def run(self, sample):
        self.calls += 1
        return np.asarray(sample, dtype=np.float32)


class ListDatabase:
    def __init__(self, cases):
        self.cases = cases
        self.requested = []

    def get_test_case_data(self, test_case_id):
        self.requested.append(test_case_id)
        if test_case_id >= len(self.cases):
            return None
        return self.cases[test_case_id]


def one_hot(index, size=4):
    out = np.zeros(size, dtype=np.float32)
    out[index] = 1.0
    return out


def make_cases(predictions, labels):
    return [TestCaseData(label, one_hot(prediction)) for prediction, label in zip(predictions, labels)]


def make_provider(predictions, labels, **kwargs):
    database = ListDatabase(make_cases(predictions, labels))
    return ClassifierTestCaseProvider(EchoModel(), database, **kwargs), database


def test_perform_test_case_without_data_aborts():
    provider, _ = make_provider([], [])
    result, outcome = perform_test_case(InferenceTestOptions(iteration_count=1), provider, 0)
    assert result is TestCaseResult.Abort
    assert outcome is None


def test_perform_test_case_logs_inference_time(caplog):
    provider, _ = make_provider([1], [1])
    with caplog.at_level(logging.INFO, logger="qconv.inference_test"):
        result, _ = perform_test_case(InferenceTestOptions(iteration_count=1, enable_profiling=True), provider, 0)
    assert result is TestCaseResult.Ok
    assert "Inference time for test case 0" in caplog.text


def test_default_test_cases_pass():
    provider, database = make_provider([2, 0, 1], [2, 0, 1])
    assert inference_test(InferenceTestOptions(), [0, 2], provider)
    assert database.requested == [0, 2]


def test_default_test_case_misclassified_fails():
    provider, _ = make_provider([2, 3], [2, 0])
    assert not inference_test(InferenceTestOptions(), [0, 1], provider)


def test_no_default_test_cases_fails():
    provider, database = make_provider([0], [0])
    assert not inference_test(InferenceTestOptions(), [], provider)
    assert database.requested == []


def test_iterations_tolerate_wrong_predictions(caplog):
    predictions = [0, 1, 2, 3, 0, 1, 2, 3, 0, 1]
    labels = [0, 1, 2, 3, 0, 1, 2, 0, 1, 2]
    provider, database = make_provider(predictions, labels)
    with caplog.at_level(logging.INFO):
        assert inference_test(InferenceTestOptions(iteration_count=10), [0], provider)
    assert database.requested == list(range(10))
    assert "Overall accuracy: 0.700" in caplog.text


def test_abort_stops_the_sweep():
    provider, database = make_provider([0, 1, 2], [0, 1, 2])
    assert not inference_test(InferenceTestOptions(iteration_count=10), [0], provider)
    assert database.requested == [0, 1, 2, 3]
    assert provider.model.calls == 3


def test_validation_mismatch_fails_but_sweep_continues(tmp_path):
    out_file = tmp_path / "out.txt"
    provider, database = make_provider(
        [0, 1, 2, 3], [0, 1, 2, 3], validation_predictions=[0, 3, 2, 3], validation_file_out=str(out_file)
    )
    assert not inference_test(InferenceTestOptions(iteration_count=4), [0], provider)
    assert database.requested == [0, 1, 2, 3]
    # the mismatching test case is left out of the recorded predictions
    assert read_predictions(out_file) == [0, 2, 3]


def test_parse_args_defaults():
    args = parse_args(["-d", "data", "-m", "model.tflite"])
    assert args.iterations == 0
    assert args.test_case_ids == [0]
    assert args.validation_file_in == ""
    assert not args.enable_profiling


def test_parse_args_rejects_negative_iterations():
    with pytest.raises(SystemExit):
        parse_args(["-d", "data", "-m", "model.tflite", "-i", "-1"])


def _write_database(data_dir, predictions, labels):
    images = np.stack([one_hot(p) for p in predictions])
    np.savez(data_dir / "test_cases.npz", images=images, labels=np.array(labels))


def test_main_round_trips_validation_file(tmp_path):
    _write_database(tmp_path, [3, 1, 0, 2, 2], [3, 1, 0, 2, 1])
    out_file = tmp_path / "predictions.txt"

    argv = ["-d", str(tmp_path), "-m", "unused.tflite", "-i", "5", "--validation-file-out", str(out_file)]
    assert main(argv, model=EchoModel()) == 0
    assert read_predictions(out_file) == [3, 1, 0, 2, 2]

    argv = ["-d", str(tmp_path), "-m", "unused.tflite", "-i", "5", "--validation-file-in", str(out_file)]
    assert main(argv, model=EchoModel()) == 0


def test_main_fails_on_validation_mismatch(tmp_path):
    _write_database(tmp_path, [3, 1, 0], [3, 1, 0])
    validation_in = tmp_path / "expected.txt"
    write_predictions(validation_in, [3, 2, 0])
    argv = ["-d", str(tmp_path), "-m", "unused.tflite", "-i", "3", "--validation-file-in", str(validation_in)]
    assert main(argv, model=EchoModel()) == 1


def test_main_missing_data_directory(tmp_path, caplog):
    argv = ["-d", str(tmp_path / "nope"), "-m", "unused.tflite"]
    with caplog.at_level(logging.CRITICAL, logger="qconv.inference_test"):
        assert main(argv, model=EchoModel()) == 1
    assert "Data directory not found" in caplog.text


def test_main_missing_validation_file(tmp_path):
    _write_database(tmp_path, [0], [0])
    argv = ["-d", str(tmp_path), "-m", "unused.tflite", "--validation-file-in", str(tmp_path / "nope.txt")]
    assert main(argv, model=EchoModel()) == 1


def test_main_runs_tflite_model(tmp_path):
    tf = pytest.importorskip("tensorflow")

    model = tf.keras.Sequential([tf.keras.Input(shape=(4,)), tf.keras.layers.Dense(4, use_bias=False)])
    model.layers[-1].set_weights([np.eye(4, dtype=np.float32)])
    model_path = tmp_path / "identity.tflite"
    model_path.write_bytes(tf.lite.TFLiteConverter.from_keras_model(model).convert())

    _write_database(tmp_path, [2, 0, 3, 1], [2, 0, 3, 1])
    argv = ["-d", str(tmp_path), "-m", str(model_path), "-i", "4"]
    assert main(argv) == 0
