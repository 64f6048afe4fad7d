"""
Exceptions raised by the covariance encoding engine.

Configuration and shape errors are raised before any estimation starts.
Numerical problems met while estimating are raised only when the caller
asked for it (see `on_nonconvergence` and `on_error`).
"""


class EncodingError(Exception):
    """Base class for all errors raised while encoding trials."""
    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class ConfigurationError(EncodingError, ValueError):
    """Exception raised for invalid options or unsupported estimator/data combinations."""


class ShapeError(ConfigurationError):
    """Exception raised when matrix dimensions do not agree."""


class ConvergenceError(EncodingError, RuntimeError):
    """Exception raised when an M-estimator exceeds `maxiter` without reaching `tol`.

    Attributes:
        result: The MEstimatorResult holding the last iterate
    """
    def __init__(self, message: str, result=None):
        self.result = result
        super().__init__(message)


class TrialEstimationError(EncodingError):
    """Exception raised by the batch encoder when estimating one trial fails.

    Attributes:
        index: Position of the failing trial in the input collection
        estimator: Name of the estimator in use
    """
    def __init__(self, index: int, estimator: str, reason: str):
        self.index = index
        self.estimator = estimator
        super().__init__(
            f"Estimation of trial {index} with estimator '{estimator}' failed: {reason}"
        )
