"""Covariance estimation module for EEG trials."""

from eegcov.covariance.errors import (
    EncodingError,
    ConfigurationError,
    ShapeError,
    ConvergenceError,
    TrialEstimationError
)
from eegcov.covariance.linalg import (
    hermitian,
    sample_covariance,
    quadratic_forms,
    blas_num_threads,
    SMALL_MATRIX_THRESHOLD
)
from eegcov.covariance.m_estimators import (
    MEstimatorResult,
    tme,
    nrtme,
    shrinkage_intensity
)
from eegcov.covariance.shrinkage import (
    linear_shrinkage,
    nonlinear_shrinkage
)
from eegcov.covariance.estimators import (
    Estimator,
    EstimatorKind,
    parse_estimator,
    register_estimator,
    available_estimators
)
from eegcov.covariance.diagnostics import (
    EstimationDiagnostics,
    EncodingReport
)
from eegcov.covariance.dispatcher import (
    estimate_covariance,
    validate_inputs
)
from eegcov.covariance.encoder import encode_trials
from eegcov.covariance.regularization import tikhonov

__all__ = [
    # Errors
    'EncodingError',
    'ConfigurationError',
    'ShapeError',
    'ConvergenceError',
    'TrialEstimationError',
    # Linear algebra
    'hermitian',
    'sample_covariance',
    'quadratic_forms',
    'blas_num_threads',
    'SMALL_MATRIX_THRESHOLD',
    # Estimators
    'MEstimatorResult',
    'tme',
    'nrtme',
    'shrinkage_intensity',
    'linear_shrinkage',
    'nonlinear_shrinkage',
    'Estimator',
    'EstimatorKind',
    'parse_estimator',
    'register_estimator',
    'available_estimators',
    # Encoding
    'EstimationDiagnostics',
    'EncodingReport',
    'estimate_covariance',
    'validate_inputs',
    'encode_trials',
    'tikhonov',
]
