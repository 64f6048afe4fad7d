"""
Configuration classes for covariance encoding.

This module defines the configuration of the estimators, of the batch
execution and of the paradigm-dependent prototype construction.
"""

from dataclasses import dataclass, field
from typing import Optional

from eegcov.covariance.encoder import ERROR_POLICIES
from eegcov.covariance.errors import ConfigurationError
from eegcov.covariance.linalg import SMALL_MATRIX_THRESHOLD
from eegcov.covariance.m_estimators import NONCONVERGENCE_POLICIES, REGULARIZATIONS
from eegcov.data.erps import ERP_WEIGHTS


@dataclass(frozen=True)
class EstimatorConfig:
    """Covariance estimator configuration.

    Attributes:
        estimator: Estimator name ('sample', 'lwf', 'nshr', 'tyler', 'nrtyler'
                   or a registered external estimator)
        tol: Tolerance of the M-estimators
        maxiter: Maximum number of iterations of the M-estimators
        reg: Regularization of the normalized regularized Tyler estimator ('rmt', 'lw')
        verbose: Log the M-estimator iterations
        standardize: Standardize every trial before estimation
        use_fast_path: Use the optimized sample covariance multiply
        fast_path_threshold: Column count below which the direct multiply is used
        on_nonconvergence: 'warn' or 'raise'
    """
    estimator: str = 'sample'
    tol: float = 1e-6
    maxiter: int = 200
    reg: str = 'rmt'
    verbose: bool = False
    standardize: bool = False
    use_fast_path: bool = True
    fast_path_threshold: int = SMALL_MATRIX_THRESHOLD
    on_nonconvergence: str = 'warn'

    def __post_init__(self):
        if not isinstance(self.estimator, str) or not self.estimator:
            raise ConfigurationError(f"`estimator` must be a non-empty string, got {self.estimator!r}")
        if not self.tol > 0:
            raise ConfigurationError(f"`tol` must be positive, got {self.tol}")
        if self.maxiter < 1:
            raise ConfigurationError(f"`maxiter` must be at least 1, got {self.maxiter}")
        if self.reg not in REGULARIZATIONS:
            raise ConfigurationError(f"`reg` must be one of {REGULARIZATIONS}, got '{self.reg}'")
        if self.fast_path_threshold < 1:
            raise ConfigurationError(
                f"`fast_path_threshold` must be at least 1, got {self.fast_path_threshold}"
            )
        if self.on_nonconvergence not in NONCONVERGENCE_POLICIES:
            raise ConfigurationError(
                f"`on_nonconvergence` must be one of {NONCONVERGENCE_POLICIES}, got '{self.on_nonconvergence}'"
            )

    def to_options(self) -> dict:
        """Keyword arguments understood by `estimate_covariance` and `encode_trials`."""
        return {
            'standardize': self.standardize,
            'use_fast_path': self.use_fast_path,
            'reg': self.reg,
            'tol': self.tol,
            'maxiter': self.maxiter,
            'verbose': self.verbose,
            'on_nonconvergence': self.on_nonconvergence,
            'fast_path_threshold': self.fast_path_threshold,
        }


@dataclass(frozen=True)
class ExecutionConfig:
    """Batch execution configuration.

    Attributes:
        parallel: Encode trials concurrently
        n_jobs: Number of worker threads (-1 for all cores)
        on_error: 'raise' aborts on the first failing trial, 'collect' goes on
    """
    parallel: bool = True
    n_jobs: int = -1
    on_error: str = 'raise'

    def __post_init__(self):
        if self.n_jobs == 0:
            raise ConfigurationError("`n_jobs` must be a non-zero integer")
        if self.on_error not in ERROR_POLICIES:
            raise ConfigurationError(f"`on_error` must be one of {ERROR_POLICIES}, got '{self.on_error}'")


@dataclass(frozen=True)
class ParadigmConfig:
    """Prototype construction configuration.

    Attributes:
        paradigm: 'MI', 'P300' or 'ERP'; None uses the paradigm of the recording
        target_label: Class label of the target class (P300, case-insensitive)
        pcadim: Number of principal components kept in the prototype
                (no reduction unless 0 < pcadim < n_channels)
        weights: 'a' for adaptive-weight ERP means, 'none' for arithmetic means
        tikh: Tikhonov regularization added to all matrices (0 disables it)
    """
    paradigm: Optional[str] = None
    target_label: str = 'target'
    pcadim: int = 8
    weights: str = 'a'
    tikh: float = 0.0

    def __post_init__(self):
        if self.pcadim < 0:
            raise ConfigurationError(f"`pcadim` must be non-negative, got {self.pcadim}")
        if self.weights not in ERP_WEIGHTS:
            raise ConfigurationError(f"`weights` must be one of {ERP_WEIGHTS}, got '{self.weights}'")
        if self.tikh < 0:
            raise ConfigurationError(f"`tikh` must be non-negative, got {self.tikh}")


def _default_pipeline_estimator() -> EstimatorConfig:
    return EstimatorConfig(estimator='lwf')


@dataclass(frozen=True)
class EncodingConfig:
    """Full configuration of the end-to-end encoding.

    Attributes:
        estimator: Estimator configuration (linear shrinkage by default)
        execution: Batch execution configuration
        paradigm: Prototype construction configuration
        name: Optional name for this configuration
    """
    estimator: EstimatorConfig = field(default_factory=_default_pipeline_estimator)
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)
    paradigm: ParadigmConfig = field(default_factory=ParadigmConfig)
    name: Optional[str] = None
