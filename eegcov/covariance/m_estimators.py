"""
Robust M-estimators of the covariance (shape) matrix.

This module implements Tyler's M-estimator and its normalized, regularized
variant. Both take a wide data matrix (n_channels, n_samples), i.e. one
observation per column, and return a trace-normalized Hermitian matrix
(trace equal to the number of channels).

References:
    Tyler (1987), A distribution-free M-estimator of multivariate scatter.
    Chen, Wiesel & Hero (2011), Robust shrinkage estimation of high-dimensional
    covariance matrices.
    Zhang & Wiesel (2016), Automatic diagonal loading for Tyler's robust
    covariance estimator.
"""

import logging
from dataclasses import dataclass

import numpy as np
from sklearn.covariance import ledoit_wolf_shrinkage

from eegcov.covariance.errors import ConfigurationError, ConvergenceError, ShapeError
from eegcov.covariance.linalg import hermitian, quadratic_forms


logger = logging.getLogger(__name__)

REGULARIZATIONS = ('rmt', 'lw')
NONCONVERGENCE_POLICIES = ('warn', 'raise')

# Margin kept above the lower bound 1 - T/N of the shrinkage intensity, below
# which the regularized fixed point does not exist.
_SHRINKAGE_MARGIN = 1e-3


@dataclass
class MEstimatorResult:
    """Outcome of an M-estimator run.

    Attributes:
        covariance: Trace-normalized Hermitian estimate (n_channels, n_channels)
        n_iter: Number of iterations performed
        residual: Relative Frobenius change at the last iteration
        converged: Whether the residual fell below the tolerance
        zero_norm_samples: Number of all-zero observations that were skipped
        degenerate: True if there were fewer usable samples than channels
        shrinkage: Shrinkage intensity used (0.0 for Tyler's estimator)
    """
    covariance: np.ndarray
    n_iter: int
    residual: float
    converged: bool
    zero_norm_samples: int = 0
    degenerate: bool = False
    shrinkage: float = 0.0


def _check_options(tol: float, maxiter: int, on_nonconvergence: str):
    if tol <= 0:
        raise ConfigurationError(f"`tol` must be positive, got {tol}")
    if maxiter < 1:
        raise ConfigurationError(f"`maxiter` must be at least 1, got {maxiter}")
    if on_nonconvergence not in NONCONVERGENCE_POLICIES:
        raise ConfigurationError(
            f"`on_nonconvergence` must be one of {NONCONVERGENCE_POLICIES}, got '{on_nonconvergence}'"
        )


def _usable_samples(X: np.ndarray, name: str):
    """Validate X and drop the zero-norm columns, which have no direction."""
    X = np.asarray(X)
    if X.ndim != 2:
        raise ShapeError(f"{name}: expected a 2-D (n_channels, n_samples) matrix, got shape {X.shape}")
    if X.shape[0] < 1:
        raise ShapeError(f"{name}: the data matrix has no channels")
    if not np.issubdtype(X.dtype, np.inexact):
        X = X.astype(np.float64)
    if not np.all(np.isfinite(X)):
        raise ConfigurationError(f"{name}: the data matrix contains NaN or infinite values")

    norms = np.linalg.norm(X, axis=0)
    nonzero = norms > 0
    n_zero = int(X.shape[1] - np.count_nonzero(nonzero))
    if n_zero == X.shape[1]:
        raise ConfigurationError(f"{name}: all {X.shape[1]} samples have zero norm")
    if n_zero > 0:
        logger.warning(f"{name}: skipping {n_zero} zero-norm sample(s) out of {X.shape[1]}")
        X = X[:, nonzero]
        norms = norms[nonzero]
    return X, norms, n_zero


def _normalize_trace(C: np.ndarray) -> np.ndarray:
    return C * (C.shape[0] / np.trace(C).real)


def _fixed_point(X, tol, maxiter, verbose, shrinkage, name):
    """Iterate C <- (1-a)(N/T) sum x x^H / (x^H C^-1 x) + a I, trace-normalized."""
    N, T = X.shape
    eye = np.eye(N, dtype=X.dtype)
    C = eye.copy()
    residual = np.inf
    converged = False

    for it in range(1, maxiter + 1):
        q, _ = quadratic_forms(C, X)
        # guards against underflow for nearly-null observations
        q = np.maximum(q, np.finfo(q.dtype).tiny)

        scatter = (X / q) @ X.conj().T * (N / T)
        C_new = (1.0 - shrinkage) * scatter + shrinkage * eye
        C_new = _normalize_trace(hermitian(C_new))

        residual = float(np.linalg.norm(C_new - C, 'fro') / np.linalg.norm(C, 'fro'))
        C = C_new

        if verbose:
            logger.info(f"{name} iteration {it}/{maxiter} | residual: {residual:.6e}")

        if residual < tol:
            converged = True
            break

    return C, it, residual, converged


def _report_convergence(result: MEstimatorResult, name: str, tol: float, maxiter: int,
                        on_nonconvergence: str, verbose: bool):
    if result.converged:
        if verbose:
            logger.info(f"{name} converged at iteration {result.n_iter} (residual: {result.residual:.6e})")
        return

    if result.degenerate and result.residual < tol:
        message = f"{name} reached a rank-deficient fixed point; the estimate is singular"
    else:
        message = (
            f"{name} did not converge within {maxiter} iterations "
            f"(residual: {result.residual:.6e}, tol: {tol:.1e})"
        )
    if on_nonconvergence == 'raise':
        raise ConvergenceError(message, result=result)
    logger.warning(message)


def tme(
    X: np.ndarray,
    tol: float = 1e-6,
    maxiter: int = 200,
    verbose: bool = False,
    on_nonconvergence: str = 'warn'
) -> MEstimatorResult:
    """
    Tyler's M-estimator of scatter.

    Solves C = (N/T) sum_t x_t x_t^H / (x_t^H C^{-1} x_t) by fixed-point
    iteration, normalizing the trace to N at every step. The estimate is
    defined up to scale, so `tme(s * X)` equals `tme(X)` for any s > 0.

    With fewer usable samples than channels the iteration settles on a
    singular matrix. The result is then flagged `degenerate` and reported as
    not converged, so the non-convergence policy applies.

    Args:
        X: Wide data matrix (n_channels, n_samples), real or complex
        tol: Tolerance on the relative Frobenius change between iterates
        maxiter: Maximum number of iterations
        verbose: Log the residual at every iteration
        on_nonconvergence: 'warn' returns the last iterate flagged as not
                           converged, 'raise' raises ConvergenceError

    Returns:
        MEstimatorResult

    Raises:
        ShapeError: If X is not a 2-D matrix with at least one channel
        ConfigurationError: For invalid options or if every sample is zero
        ConvergenceError: If not converged and on_nonconvergence == 'raise'
    """
    _check_options(tol, maxiter, on_nonconvergence)
    X, _, n_zero = _usable_samples(X, 'tme')
    N, T = X.shape

    degenerate = T < N
    if degenerate:
        logger.warning(
            f"tme: {T} usable samples for {N} channels; Tyler's estimator is not "
            f"well defined in this regime, consider nrtme"
        )

    C, n_iter, residual, converged = _fixed_point(X, tol, maxiter, verbose, 0.0, 'tme')
    converged = converged and not degenerate
    result = MEstimatorResult(
        covariance=C,
        n_iter=n_iter,
        residual=residual,
        converged=converged,
        zero_norm_samples=n_zero,
        degenerate=degenerate,
    )
    _report_convergence(result, 'tme', tol, maxiter, on_nonconvergence, verbose)
    return result


def _sign_covariance(X: np.ndarray, norms: np.ndarray) -> np.ndarray:
    """Trace-normalized covariance of the spatial signs x_t / ||x_t||."""
    N, T = X.shape
    U = X / norms
    return hermitian((U @ U.conj().T) * (N / T))


def _rmt_intensity(R: np.ndarray, T: int) -> float:
    """Closed-form oracle shrinkage intensity from the spectrum of the sign covariance."""
    N = R.shape[0]
    eigenvalues = np.linalg.eigvalsh(R)
    tr_r2 = float(np.sum(eigenvalues ** 2))
    numerator = N ** 2 + (1.0 - 2.0 / N) * tr_r2
    denominator = (N ** 2 - T * N - 2.0 * T) + (T + 1.0 + 2.0 * (T - 1.0) / N) * tr_r2
    if denominator <= 0:
        return 1.0
    return numerator / denominator


def shrinkage_intensity(X: np.ndarray, reg: str = 'rmt') -> float:
    """
    Data-driven shrinkage intensity toward the identity for the regularized Tyler estimator.

    Args:
        X: Wide data matrix (n_channels, n_samples)
        reg: 'rmt' for the random-matrix-theory oracle intensity computed from the
             eigenvalues of the sign covariance matrix, 'lw' for the Ledoit-Wolf
             intensity of the (scaled) spatial signs

    Returns:
        Intensity in (max(0, 1 - T/N), 1]
    """
    if reg not in REGULARIZATIONS:
        raise ConfigurationError(f"`reg` must be one of {REGULARIZATIONS}, got '{reg}'")
    X, norms, _ = _usable_samples(X, 'shrinkage_intensity')
    N, T = X.shape

    if reg == 'rmt':
        alpha = _rmt_intensity(_sign_covariance(X, norms), T)
    else:
        if np.iscomplexobj(X):
            raise ConfigurationError("`reg='lw'` is only supported for real-valued data")
        signs = (X / norms).T * np.sqrt(N)
        alpha = float(ledoit_wolf_shrinkage(signs, assume_centered=True))

    lower = max(0.0, 1.0 - T / N)
    return float(min(max(alpha, lower + _SHRINKAGE_MARGIN), 1.0))


def nrtme(
    X: np.ndarray,
    reg: str = 'rmt',
    tol: float = 1e-6,
    maxiter: int = 200,
    verbose: bool = False,
    on_nonconvergence: str = 'warn'
) -> MEstimatorResult:
    """
    Normalized regularized Tyler's M-estimator.

    Iterates C~ = (1-a)(N/T) sum_t x_t x_t^H / (x_t^H C^{-1} x_t) + a I and
    normalizes the trace to N, with the intensity `a` estimated from the data
    (see `shrinkage_intensity`). Unlike `tme`, the estimate exists and is
    positive definite also when there are fewer samples than channels.

    Args:
        X: Wide data matrix (n_channels, n_samples), real or complex
        reg: 'rmt' (random matrix theory) or 'lw' (Ledoit-Wolf) intensity
        tol: Tolerance on the relative Frobenius change between iterates
        maxiter: Maximum number of iterations
        verbose: Log the residual at every iteration
        on_nonconvergence: 'warn' or 'raise', see `tme`

    Returns:
        MEstimatorResult with the intensity in `shrinkage`
    """
    _check_options(tol, maxiter, on_nonconvergence)
    if reg not in REGULARIZATIONS:
        raise ConfigurationError(f"`reg` must be one of {REGULARIZATIONS}, got '{reg}'")
    if reg == 'lw' and np.iscomplexobj(X):
        raise ConfigurationError("`reg='lw'` is only supported for real-valued data")

    X, _, n_zero = _usable_samples(X, 'nrtme')
    N, T = X.shape
    alpha = shrinkage_intensity(X, reg)

    if verbose:
        logger.info(f"nrtme: {N} channels, {T} samples, shrinkage intensity {alpha:.4f} ({reg})")

    C, n_iter, residual, converged = _fixed_point(X, tol, maxiter, verbose, alpha, 'nrtme')
    result = MEstimatorResult(
        covariance=C,
        n_iter=n_iter,
        residual=residual,
        converged=converged,
        zero_norm_samples=n_zero,
        degenerate=T < N,
        shrinkage=alpha,
    )
    _report_convergence(result, 'nrtme', tol, maxiter, on_nonconvergence, verbose)
    return result
