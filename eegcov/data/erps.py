"""
Event-related potential (ERP) means.

Trials are windows of `wl` samples of a continuous recording X
(n_samples, n_channels) starting at the marker positions. Markers are given
per class as lists of sample indices (see `EEGRecording.mark`).
"""

import logging
from typing import List, Sequence, Union

import numpy as np

from eegcov.covariance.errors import ConfigurationError, ShapeError


logger = logging.getLogger(__name__)

ERP_WEIGHTS = ('a', 'none')


def _window(X: np.ndarray, start: int, wl: int) -> np.ndarray:
    if start < 0 or start + wl > X.shape[0]:
        raise ShapeError(
            f"Trial window [{start}, {start + wl}) falls outside the recording of {X.shape[0]} samples"
        )
    return X[start:start + wl]


def trial_weights(X: np.ndarray, markers: Sequence[int], wl: int, offset: int = 0) -> np.ndarray:
    """
    Adaptive trial weights: the inverse squared Frobenius norm of each trial.

    Trials with a large amplitude (typically artefacted) get small weights.

    Args:
        X: Continuous recording (n_samples, n_channels)
        markers: Start sample of every trial of one class
        wl: Trial length in samples
        offset: Shift added to every marker

    Returns:
        Weights normalized to mean 1 (empty array for no markers)
    """
    if len(markers) == 0:
        return np.empty(0)
    norms = np.array([np.linalg.norm(_window(X, m + offset, wl)) ** 2 for m in markers])
    if np.any(norms == 0):
        raise ConfigurationError("Cannot compute adaptive weights for an all-zero trial")
    w = 1.0 / norms
    return w / np.mean(w)


def _explicit_weights(weights: Sequence[Sequence[float]], nonempty: List[Sequence[int]]) -> List[np.ndarray]:
    if len(weights) != len(nonempty):
        raise ConfigurationError(
            f"`weights` holds {len(weights)} vectors but there are {len(nonempty)} non-empty marker lists"
        )
    normalized = []
    for i, (w, markers) in enumerate(zip(weights, nonempty)):
        w = np.asarray(w, dtype=np.float64)
        if w.shape != (len(markers),):
            raise ConfigurationError(
                f"Weight vector {i} has {w.size} entries for {len(markers)} markers"
            )
        if np.any(w < 0) or not np.sum(w) > 0:
            raise ConfigurationError(f"Weight vector {i} must be non-negative with a positive sum")
        normalized.append(w / np.sum(w))
    return normalized


def mean_erps(
    X: np.ndarray,
    wl: int,
    mark: Sequence[Sequence[int]],
    offset: int = 0,
    weights: Union[str, Sequence[Sequence[float]]] = 'a'
) -> List[np.ndarray]:
    """
    Compute the mean ERP of every class.

    Args:
        X: Continuous recording (n_samples, n_channels)
        wl: Trial length in samples
        mark: One list of trial start samples per class; empty lists are skipped
        offset: Shift added to every marker (0 if `mark` already includes it)
        weights: 'none' for the arithmetic mean, 'a' for the weighted mean with
                 adaptive weights (see `trial_weights`), or one vector of
                 non-negative trial weights per non-empty marker list

    Returns:
        One (wl, n_channels) mean per non-empty marker list, in class order
    """
    if isinstance(weights, str) and weights not in ERP_WEIGHTS:
        raise ConfigurationError(f"`weights` must be one of {ERP_WEIGHTS} or weight vectors, got '{weights}'")
    X = np.asarray(X, dtype=np.float64)
    if X.ndim != 2:
        raise ShapeError(f"Expected a 2-D (n_samples, n_channels) recording, got shape {X.shape}")
    if wl < 1:
        raise ConfigurationError(f"The window length must be positive, got {wl}")

    nonempty = [m for m in mark if len(m) > 0]
    if not nonempty:
        raise ConfigurationError("No markers given: cannot compute ERP means")
    if len(nonempty) < len(mark):
        logger.info("There are no markers for one or more classes")

    explicit = None if isinstance(weights, str) else _explicit_weights(weights, nonempty)

    means = []
    for i, markers in enumerate(nonempty):
        trials = np.stack([_window(X, m + offset, wl) for m in markers])
        if explicit is not None:
            means.append(np.tensordot(explicit[i], trials, axes=1))
        elif weights == 'none':
            means.append(trials.mean(axis=0))
        else:
            w = trial_weights(X, markers, wl, offset)
            w = w / np.sum(w)
            means.append(np.tensordot(w, trials, axes=1))
    return means
