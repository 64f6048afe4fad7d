"""
Dense linear algebra helpers shared by the covariance estimators.

Only one triangle of a covariance matrix is computed or trusted; `hermitian`
rebuilds the full matrix from the upper triangle.
"""

import logging
from typing import Tuple

import numpy as np
from scipy import linalg
from scipy.linalg import blas
from threadpoolctl import threadpool_info


logger = logging.getLogger(__name__)

# Column count below which a plain transpose-multiply beats the symmetric
# rank-k update when the BLAS runs single-threaded. Machine dependent, see
# experiments/benchmark_fast_path.py.
SMALL_MATRIX_THRESHOLD = 64

FAST_PATH_STRATEGIES = ('auto', 'blas', 'direct')


def hermitian(A: np.ndarray) -> np.ndarray:
    """
    Build the Hermitian (real symmetric) matrix defined by the upper triangle of `A`.

    Args:
        A: Square matrix; only its upper triangle (diagonal included) is read

    Returns:
        Full Hermitian matrix of the same dtype as `A`
    """
    A = np.asarray(A)
    if A.ndim != 2 or A.shape[0] != A.shape[1]:
        raise ValueError(f"Expected a square matrix, got shape {A.shape}")

    upper = np.triu(A, k=1)
    H = upper + upper.conj().T
    diag = np.diagonal(A).real if np.iscomplexobj(A) else np.diagonal(A)
    H[np.diag_indices_from(H)] = diag
    return H


def blas_num_threads() -> int:
    """Number of threads used by the loaded BLAS library (1 if it cannot be determined)."""
    n_threads = [
        info.get('num_threads', 1)
        for info in threadpool_info()
        if info.get('user_api') == 'blas'
    ]
    return max(n_threads) if n_threads else 1


def _syrk_upper(Y: np.ndarray, alpha: float) -> np.ndarray:
    """alpha * Y^H Y via the BLAS symmetric (Hermitian) rank-k update, upper triangle only."""
    if np.iscomplexobj(Y):
        herk, = blas.get_blas_funcs(('herk',), (Y,))
        # trans=2 is 'C' (conjugate transpose)
        return herk(alpha, Y, trans=2, lower=0)
    syrk, = blas.get_blas_funcs(('syrk',), (Y,))
    return syrk(alpha, Y, trans=1, lower=0)


def select_strategy(
    n_columns: int,
    strategy: str = 'auto',
    threshold: int = SMALL_MATRIX_THRESHOLD
) -> str:
    """Resolve 'auto' to the multiply strategy used for a matrix with `n_columns` columns."""
    if strategy not in FAST_PATH_STRATEGIES:
        raise ValueError(f"Unsupported sample covariance strategy: {strategy}")
    if strategy != 'auto':
        return strategy
    # a multi-threaded BLAS always gets the BLAS path
    if blas_num_threads() > 1 or n_columns >= threshold:
        return 'blas'
    return 'direct'


def sample_covariance(
    Y: np.ndarray,
    strategy: str = 'auto',
    threshold: int = SMALL_MATRIX_THRESHOLD
) -> np.ndarray:
    """
    Compute the (non-centered) sample covariance matrix (1/n_samples) * Y^H Y.

    Args:
        Y: Data matrix (n_samples, n_columns), real or complex
        strategy: 'blas' (symmetric rank-k update), 'direct' (transpose-multiply)
                  or 'auto' (pick the faster one for the current BLAS threading)
        threshold: Column count below which 'auto' uses the direct product
                   when the BLAS is single-threaded

    Returns:
        Hermitian matrix of shape (n_columns, n_columns)
    """
    Y = np.asarray(Y)
    if not np.issubdtype(Y.dtype, np.inexact):
        Y = Y.astype(np.float64)

    den = 1.0 / Y.shape[0]
    strategy = select_strategy(Y.shape[1], strategy, threshold)

    if strategy == 'blas':
        return hermitian(_syrk_upper(Y, den))
    return hermitian((Y.conj().T @ Y) * den)


def quadratic_forms(
    C: np.ndarray,
    X: np.ndarray,
    jitter: float = 1e-10,
    max_attempts: int = 6
) -> Tuple[np.ndarray, float]:
    """
    Compute x_t^H C^{-1} x_t for every column x_t of X.

    The Cholesky factor of C is used. If C is not numerically positive definite a
    ridge proportional to its average eigenvalue is added, growing tenfold at every
    failed attempt.

    Args:
        C: Hermitian positive (semi-)definite matrix (N, N)
        X: Data matrix (N, T), one observation per column
        jitter: Initial relative ridge
        max_attempts: Number of ridge increases before giving up

    Returns:
        q: Array of shape (T,) with the quadratic forms
        ridge: Absolute ridge that was added to C (0.0 if none was needed)

    Raises:
        numpy.linalg.LinAlgError: If C cannot be factorized even after regularization
    """
    scale = np.trace(C).real / C.shape[0]
    eye = np.eye(C.shape[0], dtype=C.dtype)
    ridge = 0.0
    eps = jitter

    for attempt in range(max_attempts + 1):
        try:
            L = linalg.cholesky(C + ridge * eye, lower=True)
            break
        except linalg.LinAlgError:
            if attempt == max_attempts:
                raise
            ridge = eps * scale
            eps *= 10.0
    if ridge > 0.0:
        logger.debug(f"Added ridge {ridge:.3e} to factorize the scatter matrix")

    Z = linalg.solve_triangular(L, X, lower=True)
    q = np.sum(np.abs(Z) ** 2, axis=0)
    return q, ridge
