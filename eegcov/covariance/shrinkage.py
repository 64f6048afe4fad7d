"""
Shrinkage covariance estimators.

All functions take a trial (n_samples, n_channels) and return a covariance
matrix (n_channels, n_channels).
"""

import numpy as np
from pyriemann.estimation import Covariances


def pyriemann_covariance(Y: np.ndarray, estimator: str, **kwds) -> np.ndarray:
    """
    Estimate a covariance matrix with one of pyriemann's estimators.

    Args:
        Y: Trial (n_samples, n_channels)
        estimator: pyriemann estimator name ('scm', 'lwf', 'oas', 'sch', 'mcd', 'corr', 'cov')
        **kwds: Forwarded to the pyriemann estimator (e.g. assume_centered=True for 'scm')

    Returns:
        Covariance matrix (n_channels, n_channels)
    """
    cov_estimator = Covariances(estimator=estimator, **kwds)
    return cov_estimator.fit_transform(np.asarray(Y).T[np.newaxis])[0]


def linear_shrinkage(Y: np.ndarray) -> np.ndarray:
    """Ledoit-Wolf linear shrinkage estimator (Ledoit & Wolf, 2004)."""
    return pyriemann_covariance(Y, 'lwf')


def nonlinear_shrinkage(Y: np.ndarray) -> np.ndarray:
    """
    Analytical non-linear shrinkage estimator (Ledoit & Wolf, 2020).

    Each sample eigenvalue is replaced by a kernel estimate of the optimal
    shrunk eigenvalue, computed from the Hilbert transform of the
    (Epanechnikov-smoothed) limiting spectral density.

    Args:
        Y: Trial (n_samples, n_channels)

    Returns:
        Covariance matrix (n_channels, n_channels)
    """
    Y = np.asarray(Y, dtype=np.float64)
    n, p = Y.shape
    Y = Y - Y.mean(axis=0, keepdims=True)
    n -= 1
    if n < 1:
        raise ValueError("Non-linear shrinkage needs at least two samples")

    sample = (Y.T @ Y) / n
    eigenvalues, eigenvectors = np.linalg.eigh(sample)
    eigenvalues = np.maximum(eigenvalues, 0.0)
    # only the min(n, p) largest eigenvalues are informative
    lam = eigenvalues[max(0, p - n):]
    lam = np.maximum(lam, np.finfo(np.float64).tiny)

    h = n ** (-1.0 / 3.0)
    L = np.tile(lam[:, np.newaxis], (1, lam.size))
    H = h * L.T
    x = (L - L.T) / H
    sqrt5 = np.sqrt(5.0)

    ftilde = (3.0 / 4.0 / sqrt5) * np.mean(np.maximum(1.0 - x ** 2 / 5.0, 0.0) / H, axis=1)

    with np.errstate(divide='ignore', invalid='ignore'):
        Hftemp = (-3.0 / 10.0 / np.pi) * x + (3.0 / 4.0 / sqrt5 / np.pi) * (1.0 - x ** 2 / 5.0) \
            * np.log(np.abs((sqrt5 - x) / (sqrt5 + x)))
    edge = np.isclose(np.abs(x), sqrt5)
    Hftemp[edge] = (-3.0 / 10.0 / np.pi) * x[edge]
    Hftilde = np.mean(Hftemp / H, axis=1)

    if p <= n:
        c = p / n
        dtilde = lam / ((np.pi * c * lam * ftilde) ** 2
                        + (1.0 - c - np.pi * c * lam * Hftilde) ** 2)
    else:
        Hftilde0 = (1.0 / np.pi) * (
            3.0 / 10.0 / h ** 2
            + 3.0 / 4.0 / sqrt5 / h * (1.0 - 1.0 / 5.0 / h ** 2)
            * np.log(np.abs((1.0 + sqrt5 * h) / (1.0 - sqrt5 * h)))
        ) * np.mean(1.0 / lam)
        dtilde0 = 1.0 / (np.pi * (p - n) / n * Hftilde0)
        dtilde1 = lam / (np.pi ** 2 * lam ** 2 * (ftilde ** 2 + Hftilde ** 2))
        dtilde = np.concatenate([np.full(p - n, dtilde0), dtilde1])

    return (eigenvectors * dtilde) @ eigenvectors.T
