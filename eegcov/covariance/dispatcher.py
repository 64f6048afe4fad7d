"""
Single-trial covariance estimation.

`estimate_covariance` maps an estimator selector, one trial and an optional
prototype to one Hermitian covariance matrix, choosing the fastest correct
code path.
"""

import logging
from typing import Callable, Optional, Tuple, Union

import numpy as np

from eegcov.covariance.diagnostics import EstimationDiagnostics
from eegcov.covariance.errors import ConfigurationError, ShapeError
from eegcov.covariance.estimators import Estimator, EstimatorKind, parse_estimator
from eegcov.covariance.linalg import (
    FAST_PATH_STRATEGIES,
    SMALL_MATRIX_THRESHOLD,
    hermitian,
    sample_covariance,
    select_strategy
)
from eegcov.covariance.m_estimators import (
    NONCONVERGENCE_POLICIES,
    REGULARIZATIONS,
    nrtme,
    tme
)
from eegcov.covariance.shrinkage import pyriemann_covariance
from eegcov.data.standardization import standardize_eeg


logger = logging.getLogger(__name__)


def check_estimation_options(
    reg: str = 'rmt',
    tol: float = 1e-6,
    maxiter: int = 200,
    on_nonconvergence: str = 'warn',
    fast_path_strategy: str = 'auto',
    fast_path_threshold: int = SMALL_MATRIX_THRESHOLD
):
    """Validate the estimation options, raising ConfigurationError on the first invalid one."""
    if reg not in REGULARIZATIONS:
        raise ConfigurationError(f"`reg` must be one of {REGULARIZATIONS}, got '{reg}'")
    if not tol > 0:
        raise ConfigurationError(f"`tol` must be positive, got {tol}")
    if maxiter < 1:
        raise ConfigurationError(f"`maxiter` must be at least 1, got {maxiter}")
    if on_nonconvergence not in NONCONVERGENCE_POLICIES:
        raise ConfigurationError(
            f"`on_nonconvergence` must be one of {NONCONVERGENCE_POLICIES}, got '{on_nonconvergence}'"
        )
    if fast_path_strategy not in FAST_PATH_STRATEGIES:
        raise ConfigurationError(
            f"`fast_path_strategy` must be one of {FAST_PATH_STRATEGIES}, got '{fast_path_strategy}'"
        )
    if fast_path_threshold < 1:
        raise ConfigurationError(f"`fast_path_threshold` must be at least 1, got {fast_path_threshold}")


def validate_inputs(
    trial: np.ndarray,
    estimator: Union[str, Estimator, Callable],
    prototype: Optional[np.ndarray] = None,
    standardize: bool = False
) -> Estimator:
    """
    Check a trial, its prototype and the estimator before any computation.

    Args:
        trial: Trial (n_samples, n_channels)
        estimator: Estimator selector, see `parse_estimator`
        prototype: Optional prototype (n_samples, n_prototype_columns)
        standardize: Whether the trial will be standardized

    Returns:
        The resolved Estimator

    Raises:
        ShapeError: If the trial or prototype is not 2-D or their row counts differ
        ConfigurationError: For an unknown estimator, non-finite values or an estimator
                            not supporting complex data
    """
    est = parse_estimator(estimator)

    if trial.ndim != 2 or trial.size == 0:
        raise ShapeError(f"A trial must be a non-empty 2-D (n_samples, n_channels) matrix, got shape {trial.shape}")
    if not np.all(np.isfinite(trial)):
        raise ConfigurationError("The trial contains NaN or infinite values")

    is_complex = np.iscomplexobj(trial)
    if prototype is not None:
        if prototype.ndim != 2:
            raise ShapeError(f"The prototype must be a 2-D matrix, got shape {prototype.shape}")
        if prototype.shape[0] != trial.shape[0]:
            raise ShapeError(
                f"The prototype has {prototype.shape[0]} rows (samples) but the trial has {trial.shape[0]}"
            )
        is_complex = is_complex or np.iscomplexobj(prototype)

    if is_complex and not est.supports_complex:
        raise ConfigurationError(
            f"For complex data only the 'sample' estimator is supported, got '{est.name}'"
        )
    if is_complex and standardize:
        raise ConfigurationError("Standardization is only supported for real-valued data")

    return est


def _as_float_array(A: np.ndarray) -> np.ndarray:
    A = np.asarray(A)
    if not np.issubdtype(A.dtype, np.inexact):
        A = A.astype(np.float64)
    return A


def estimate_covariance(
    trial: np.ndarray,
    estimator: Union[str, Estimator, Callable] = 'sample',
    prototype: Optional[np.ndarray] = None,
    standardize: bool = False,
    use_fast_path: bool = True,
    *,
    standardize_fn: Optional[Callable[[np.ndarray], np.ndarray]] = None,
    reg: str = 'rmt',
    tol: float = 1e-6,
    maxiter: int = 200,
    verbose: bool = False,
    on_nonconvergence: str = 'warn',
    fast_path_strategy: str = 'auto',
    fast_path_threshold: int = SMALL_MATRIX_THRESHOLD,
    return_diagnostics: bool = False
) -> Union[np.ndarray, Tuple[np.ndarray, EstimationDiagnostics]]:
    """
    Estimate the covariance matrix of one trial, optionally stacked with a prototype.

    Steps:
    1. Standardize the trial (if requested). The prototype is used as given.
    2. Stack the prototype to the right of the trial to form a super-trial.
    3. Estimate the covariance of the (super-)trial with the selected estimator.

    Args:
        trial: Trial (n_samples, n_channels), real or complex
        estimator: 'sample', 'lwf', 'nshr', 'tyler', 'nrtyler', a registered
                   external estimator name, an Estimator or a callable
        prototype: Optional matrix (n_samples, n_prototype_columns) stacked to the trial
        standardize: Apply `standardize_fn` to the trial before stacking
        use_fast_path: Compute the sample covariance with the optimized multiply
                       (otherwise pyriemann's non-centered 'scm' estimator is used)
        standardize_fn: Standardization transform (default: standardize_eeg)
        reg: Regularization of the normalized regularized Tyler estimator ('rmt' or 'lw')
        tol: Tolerance of the M-estimators
        maxiter: Maximum number of iterations of the M-estimators
        verbose: Log M-estimator convergence information
        on_nonconvergence: 'warn' or 'raise' when an M-estimator does not converge
        fast_path_strategy: 'auto', 'blas' or 'direct' multiply for the fast path
        fast_path_threshold: Column count below which 'auto' uses the direct multiply
        return_diagnostics: Also return an EstimationDiagnostics object

    Returns:
        covariance: Hermitian matrix (n_columns, n_columns), n_columns being the
                    number of channels plus the number of prototype columns
        diagnostics: (optional) EstimationDiagnostics

    Raises:
        ConfigurationError: Unsupported estimator/data combination or invalid options
        ShapeError: Trial and prototype row counts differ
        ConvergenceError: M-estimator not converged and on_nonconvergence == 'raise'
    """
    check_estimation_options(reg, tol, maxiter, on_nonconvergence,
                             fast_path_strategy, fast_path_threshold)
    trial = _as_float_array(trial)
    if prototype is not None:
        prototype = _as_float_array(prototype)
    est = validate_inputs(trial, estimator, prototype, standardize)

    if standardize:
        transform = standardize_fn if standardize_fn is not None else standardize_eeg
        trial = transform(trial)

    Y = trial if prototype is None else np.hstack([trial, prototype])

    diagnostics = EstimationDiagnostics(estimator=est.name, code_path=est.kind.value)

    if est.kind is EstimatorKind.SAMPLE:
        if use_fast_path:
            strategy = select_strategy(Y.shape[1], fast_path_strategy, fast_path_threshold)
            diagnostics.code_path = f"sample:{strategy}"
            C = sample_covariance(Y, strategy)
        else:
            diagnostics.code_path = "sample:scm"
            C = hermitian(pyriemann_covariance(Y, 'scm', assume_centered=True))

    elif est.is_m_estimator:
        # the M-estimators take a wide (n_columns, n_samples) matrix
        if est.kind is EstimatorKind.TYLER:
            result = tme(Y.T, tol=tol, maxiter=maxiter, verbose=verbose,
                         on_nonconvergence=on_nonconvergence)
        else:
            result = nrtme(Y.T, reg=reg, tol=tol, maxiter=maxiter, verbose=verbose,
                           on_nonconvergence=on_nonconvergence)
        C = result.covariance
        diagnostics.n_iter = result.n_iter
        diagnostics.residual = result.residual
        diagnostics.converged = result.converged
        diagnostics.zero_norm_samples = result.zero_norm_samples
        diagnostics.degenerate = result.degenerate
        diagnostics.shrinkage = result.shrinkage
        if not result.converged:
            diagnostics.add_warning(
                f"Not converged in {result.n_iter} iterations (residual {result.residual:.3e})"
            )
        if result.zero_norm_samples:
            diagnostics.add_warning(f"{result.zero_norm_samples} zero-norm sample(s) skipped")
        if result.degenerate:
            diagnostics.add_warning("Fewer usable samples than channels")

    else:
        C = np.asarray(est.func(Y))
        if C.shape != (Y.shape[1], Y.shape[1]):
            raise ShapeError(
                f"Estimator '{est.name}' returned a matrix of shape {C.shape}, "
                f"expected {(Y.shape[1], Y.shape[1])}"
            )
        C = hermitian(C)

    if return_diagnostics:
        return C, diagnostics
    return C
