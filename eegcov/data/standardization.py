"""
Whole-matrix standardization of EEG data.

Unlike channel-wise z-scoring, a single location and a single scale are
computed over all entries of the matrix, so that the relative amplitude of
the channels is preserved.
"""

import numpy as np
from scipy import stats
from scipy.stats import mstats


def standardize_eeg(X: np.ndarray, robust: bool = False, prop: float = 0.2) -> np.ndarray:
    """
    Standardize an EEG matrix to global mean 0 and global standard deviation 1.

    Args:
        X: EEG data (n_samples, n_channels)
        robust: If True, use the winsorized mean and the standard deviation of the
                trimmed data instead of the arithmetic mean and standard deviation
        prop: Proportion of data trimmed at both ends (used only if robust is True)

    Returns:
        Standardized copy of X

    Raises:
        ValueError: If `prop` is out of range or the data have zero spread
    """
    X = np.asarray(X, dtype=np.float64)
    values = X.ravel()

    if robust:
        if not 0 <= prop < 0.5:
            raise ValueError(f"`prop` must be in [0, 0.5), got {prop}")
        mu = float(np.mean(mstats.winsorize(values, limits=(prop, prop))))
        sigma = float(np.std(stats.trimboth(values, prop), ddof=1))
    else:
        mu = float(np.mean(values))
        sigma = float(np.std(values, ddof=1))

    if sigma == 0 or not np.isfinite(sigma):
        raise ValueError("Cannot standardize a matrix with zero spread")

    return (X - mu) / sigma
