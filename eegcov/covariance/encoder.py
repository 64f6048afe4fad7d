"""
Batch covariance estimation.

`encode_trials` applies `estimate_covariance` to an ordered collection of
trials and returns the matrices in the same order, as a preallocated
(n_trials, n, n) array. Each worker writes exactly one slot, so the parallel
and sequential modes produce index-aligned results.
"""

import logging
from typing import Callable, List, Optional, Sequence, Tuple, Union

import numpy as np
from joblib import Parallel, delayed
from threadpoolctl import threadpool_limits

from eegcov.covariance.diagnostics import EncodingReport, EstimationDiagnostics
from eegcov.covariance.dispatcher import (
    check_estimation_options,
    estimate_covariance,
    validate_inputs
)
from eegcov.covariance.errors import (
    ConfigurationError,
    ConvergenceError,
    EncodingError,
    ShapeError,
    TrialEstimationError
)
from eegcov.covariance.estimators import Estimator, EstimatorKind
from eegcov.covariance.linalg import blas_num_threads


logger = logging.getLogger(__name__)

ERROR_POLICIES = ('raise', 'collect')


def _check_trials(
    trials: Sequence[np.ndarray],
    estimator: Union[str, Estimator, Callable],
    prototype: Optional[np.ndarray],
    standardize: bool
) -> Tuple[List[np.ndarray], Estimator, int, np.dtype]:
    """Validate the whole batch before any estimation starts."""
    if trials is None:
        raise ConfigurationError("No trials given")

    trials = [np.asarray(t) for t in trials]
    if len(trials) == 0:
        raise ConfigurationError("The trial collection is empty")

    n_channels = None
    is_complex = False
    est = None
    for i, trial in enumerate(trials):
        try:
            est = validate_inputs(trial, estimator, prototype, standardize)
        except ShapeError as e:
            raise ShapeError(f"Trial {i}: {e.message}") from e
        if n_channels is None:
            n_channels = trial.shape[1]
        elif trial.shape[1] != n_channels:
            raise ShapeError(
                f"Trial {i} has {trial.shape[1]} channels, expected {n_channels} as in trial 0"
            )
        is_complex = is_complex or np.iscomplexobj(trial)

    n = n_channels + (prototype.shape[1] if prototype is not None else 0)
    if is_complex or (prototype is not None and np.iscomplexobj(prototype)):
        dtype = np.complex128
    else:
        dtype = np.float64
    return trials, est, n, dtype


def _estimate_into(out, diagnostics, i, trial, estimator, prototype, on_error, options):
    """Estimate trial i and write the result to its own slot of `out`."""
    try:
        out[i], diag = estimate_covariance(
            trial, estimator, prototype, return_diagnostics=True, **options
        )
    except (EncodingError, np.linalg.LinAlgError, ValueError) as e:
        if on_error == 'raise':
            raise TrialEstimationError(i, estimator.name, str(e)) from e

        diag = EstimationDiagnostics(estimator=estimator.name, code_path=estimator.kind.value)
        diag.failed = True
        diag.failure_reason = str(e)
        if isinstance(e, ConvergenceError) and e.result is not None:
            # best effort: keep the last iterate
            out[i] = e.result.covariance
            diag.n_iter = e.result.n_iter
            diag.residual = e.result.residual
            diag.converged = False
            diag.degenerate = e.result.degenerate
            diag.shrinkage = e.result.shrinkage
        else:
            out[i] = np.nan
        logger.warning(f"Trial {i} ({estimator.name}) failed: {e}")

    diag.index = i
    diagnostics[i] = diag


def encode_trials(
    trials: Sequence[np.ndarray],
    estimator: Union[str, Estimator, Callable] = 'sample',
    prototype: Optional[np.ndarray] = None,
    parallel: bool = True,
    *,
    n_jobs: int = -1,
    on_error: str = 'raise',
    return_report: bool = False,
    **opts
) -> Union[np.ndarray, Tuple[np.ndarray, EncodingReport]]:
    """
    Estimate one covariance matrix per trial.

    Args:
        trials: Ordered collection of trials, each (n_samples, n_channels), with the
                same number of channels (and of samples if a prototype is given)
        estimator: Estimator selector, see `estimate_covariance`
        prototype: Optional prototype stacked to every trial
        parallel: Process trials concurrently on a thread pool
        n_jobs: Number of worker threads (-1 for all cores)
        on_error: 'raise' aborts the batch on the first failing trial with a
                  TrialEstimationError; 'collect' records the failure in the report,
                  keeps the best-effort matrix (or NaNs) and goes on
        return_report: Also return an EncodingReport
        **opts: Options passed to `estimate_covariance` (standardize, use_fast_path,
                standardize_fn, reg, tol, maxiter, verbose, on_nonconvergence,
                fast_path_strategy, fast_path_threshold)

    Returns:
        covariances: Array (n_trials, n, n), index-aligned with `trials`
        report: (optional) EncodingReport

    Raises:
        ConfigurationError: Invalid options, unknown estimator, complex data with an
                            estimator other than 'sample'
        ShapeError: Inconsistent channel counts or prototype rows
        TrialEstimationError: A trial failed and on_error == 'raise'
    """
    if on_error not in ERROR_POLICIES:
        raise ConfigurationError(f"`on_error` must be one of {ERROR_POLICIES}, got '{on_error}'")
    if 'return_diagnostics' in opts:
        raise ConfigurationError("`return_diagnostics` is not an option of encode_trials, use `return_report`")
    check_estimation_options(
        **{k: opts[k] for k in ('reg', 'tol', 'maxiter', 'on_nonconvergence',
                                'fast_path_strategy', 'fast_path_threshold') if k in opts}
    )
    if prototype is not None:
        prototype = np.asarray(prototype)
        if not np.issubdtype(prototype.dtype, np.inexact):
            prototype = prototype.astype(np.float64)

    trials, est, n, dtype = _check_trials(
        trials, estimator, prototype, opts.get('standardize', False)
    )
    n_trials = len(trials)

    covariances = np.empty((n_trials, n, n), dtype=dtype)
    diagnostics: List[Optional[EstimationDiagnostics]] = [None] * n_trials

    # the BLAS already parallelizes the fast sample covariance
    fast_sample = est.kind is EstimatorKind.SAMPLE and opts.get('use_fast_path', True)
    if parallel and fast_sample and blas_num_threads() > 1:
        logger.info("Multi-threaded BLAS detected: encoding sample covariances sequentially")
        parallel = False
    if parallel and n_trials == 1:
        parallel = False

    execution = 'threads' if parallel else 'sequential'
    logger.info(f"Encoding {n_trials} trials with estimator '{est.name}' ({execution})")

    if parallel:
        with threadpool_limits(limits=1, user_api='blas'):
            Parallel(n_jobs=n_jobs, backend='threading')(
                delayed(_estimate_into)(
                    covariances, diagnostics, i, trial, est, prototype, on_error, opts
                )
                for i, trial in enumerate(trials)
            )
    else:
        for i, trial in enumerate(trials):
            _estimate_into(covariances, diagnostics, i, trial, est, prototype, on_error, opts)

    report = EncodingReport(estimator=est.name, execution=execution, diagnostics=diagnostics)
    if report.n_failed:
        logger.warning(f"{report.n_failed}/{n_trials} trials failed: {report.failed_indices}")

    if return_report:
        return covariances, report
    return covariances
