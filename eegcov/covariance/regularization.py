"""
Post-processing of estimated covariance matrices.
"""

import logging

import numpy as np

from eegcov.covariance.errors import ConfigurationError, ShapeError


logger = logging.getLogger(__name__)


def tikhonov(covs: np.ndarray, alpha: float) -> np.ndarray:
    """
    Tikhonov regularization: add alpha * I to every covariance matrix.

    Args:
        covs: Covariance matrices (n_matrices, n, n) or a single matrix (n, n)
        alpha: Non-negative regularization parameter

    Returns:
        Regularized copy of `covs`
    """
    if alpha < 0 or not np.isfinite(alpha):
        raise ConfigurationError(f"The Tikhonov parameter must be a non-negative number, got {alpha}")

    covs = np.array(covs, copy=True)
    if covs.ndim not in (2, 3) or covs.shape[-1] != covs.shape[-2]:
        raise ShapeError(f"Expected square matrices (n, n) or (n_matrices, n, n), got shape {covs.shape}")

    if alpha == 0:
        return covs

    n = covs.shape[-1]
    idx = np.arange(n)
    covs[..., idx, idx] += alpha
    logger.debug(f"Tikhonov regularization with alpha={alpha} applied to {covs.size // (n * n)} matrices")
    return covs
