from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import numpy as np

from .errors import DataDirectoryError

TEST_CASES_FILE = "test_cases.npz"


@dataclass(frozen=True)
class TestCaseData:
    __test__ = False

    label: int
    input_image: np.ndarray


class NpzTestCaseDatabase:
    """
    Test cases stored as an NPZ with 'images' (N, ...) and 'labels' (N,),
    the layout build_imagenet_npz writes.
    """

    def __init__(self, data_dir, filename=TEST_CASES_FILE):
        path = Path(data_dir) / filename
        if not path.is_file():
            raise DataDirectoryError(f"Test case file not found: {path}", path=str(path))
        with np.load(path) as data:
            self.images = data["images"].astype(np.float32)
            self.labels = data["labels"].astype(np.int64).reshape(-1)
        if self.images.shape[0] != self.labels.shape[0]:
            raise DataDirectoryError(
                f"image count {self.images.shape[0]} != label count {self.labels.shape[0]} in {path}",
                path=str(path),
            )

    def __len__(self):
        return int(self.labels.shape[0])

    def get_test_case_data(self, test_case_id) -> Optional[TestCaseData]:
        if test_case_id < 0 or test_case_id >= len(self):
            return None
        return TestCaseData(int(self.labels[test_case_id]), self.images[test_case_id])
