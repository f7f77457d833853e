class InferenceTestError(RuntimeError):
    """Environment error raised while setting up or finishing an inference test."""

    def __init__(self, message, path=None):
        super().__init__(message)
        self.path = path


class ValidationFileError(InferenceTestError):
    pass


class DataDirectoryError(InferenceTestError):
    pass
