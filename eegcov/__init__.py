"""Covariance encoding of EEG trials for Riemannian BCI classification."""

from eegcov.covariance import (
    estimate_covariance,
    encode_trials,
    EncodingError,
    ConfigurationError,
    ShapeError,
    ConvergenceError,
    TrialEstimationError
)
from eegcov.bci import assemble_and_encode
from eegcov.data import EEGRecording

__version__ = '0.1.0'

__all__ = [
    'estimate_covariance',
    'encode_trials',
    'assemble_and_encode',
    'EEGRecording',
    'EncodingError',
    'ConfigurationError',
    'ShapeError',
    'ConvergenceError',
    'TrialEstimationError',
]
