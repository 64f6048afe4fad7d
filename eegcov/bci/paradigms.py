"""
Paradigm-dependent prototypes.

For event-related paradigms every trial is encoded together with a prototype
of the expected response, so that the covariance matrix also captures the
cross-covariance between the trial and the prototype:

- MI (motor imagery): no prototype.
- P300: the mean target ERP, scaled by the square root of the number of
  target trials.
- ERP: the mean ERP of every class, each scaled by the square root of its
  number of trials, concatenated along the columns.

The same prototype is stacked to every trial regardless of the trial's class.
"""

import logging
from enum import Enum
from typing import Callable, List, Optional, Sequence, Union

import numpy as np
from sklearn.decomposition import PCA

from eegcov.covariance.errors import ConfigurationError
from eegcov.data.erps import mean_erps
from eegcov.data.recording import EEGRecording
from eegcov.data.standardization import standardize_eeg


logger = logging.getLogger(__name__)


class Paradigm(Enum):
    MI = 'MI'
    P300 = 'P300'
    ERP = 'ERP'


def parse_paradigm(paradigm: Union[str, Paradigm, None]) -> Paradigm:
    """
    Resolve a paradigm tag (case-insensitive).

    Raises:
        ConfigurationError: If the tag is not one of MI, P300, ERP
    """
    if isinstance(paradigm, Paradigm):
        return paradigm
    if isinstance(paradigm, str):
        for p in Paradigm:
            if p.value == paradigm.upper():
                return p
    raise ConfigurationError(
        f"Unsupported BCI paradigm {paradigm!r}; the paradigm must be one of "
        f"{', '.join(p.value for p in Paradigm)}"
    )


def resolve_target_class(clabels: Sequence[str], target_label: str) -> int:
    """
    Find the class code of the target label.

    Args:
        clabels: Class labels, clabels[k - 1] labeling class code k
        target_label: Label of the target class, matched case-insensitively

    Returns:
        Class code (1-based)

    Raises:
        ConfigurationError: If no class label matches
    """
    lowered = [str(label).lower() for label in clabels]
    if target_label.lower() not in lowered:
        raise ConfigurationError(
            f"Target label '{target_label}' for P300 encoding not found among the class labels {list(clabels)}"
        )
    return lowered.index(target_label.lower()) + 1


def reduce_prototype_pca(Y: np.ndarray, pcadim: int) -> np.ndarray:
    """
    Project a prototype onto its `pcadim` principal components.

    Nothing is done unless 0 < pcadim < n_channels.

    Args:
        Y: Prototype (n_samples, n_channels)
        pcadim: Number of components to keep

    Returns:
        Prototype (n_samples, pcadim), or `Y` unchanged
    """
    n_channels = Y.shape[1]
    if not 0 < pcadim < n_channels:
        return Y
    pca = PCA(n_components=pcadim).fit(Y)
    # the projection is not centered: the prototype keeps its mean
    return Y @ pca.components_.T


def _prepare(Y: np.ndarray, count: int, pcadim: int, standardize: bool,
             standardize_fn: Callable[[np.ndarray], np.ndarray]) -> np.ndarray:
    Y = Y * np.sqrt(count)
    if standardize:
        Y = standardize_fn(Y)
    return reduce_prototype_pca(Y, pcadim)


def build_prototype(
    recording: EEGRecording,
    paradigm: Union[str, Paradigm],
    target_label: str = 'target',
    pcadim: int = 8,
    weights: str = 'a',
    standardize: bool = False,
    erp_mean_fn: Callable[..., List[np.ndarray]] = mean_erps,
    standardize_fn: Callable[[np.ndarray], np.ndarray] = standardize_eeg
) -> Optional[np.ndarray]:
    """
    Build the prototype stacked to every trial of a recording.

    Args:
        recording: Tagged recording
        paradigm: 'MI', 'P300' or 'ERP'
        target_label: Target class label (P300 only)
        pcadim: Number of principal components kept per mean (0 disables PCA)
        weights: ERP mean weighting passed to `erp_mean_fn` ('a' or 'none')
        standardize: Standardize every scaled mean before PCA
        erp_mean_fn: ERP mean estimator (X, wl, mark, weights=...) -> list of means
        standardize_fn: Standardization transform

    Returns:
        Prototype (wl, n_columns), or None for MI

    Raises:
        ConfigurationError: Unknown paradigm, missing target label or no stimulations
    """
    paradigm = parse_paradigm(paradigm)
    if paradigm is Paradigm.MI:
        return None

    if recording.stim is None:
        raise ConfigurationError(f"A {paradigm.value} prototype needs the stimulations of the recording")

    counts = recording.class_counts()
    mark = recording.mark

    if paradigm is Paradigm.P300:
        target = resolve_target_class(recording.clabels, target_label)
        if not mark[target - 1]:
            raise ConfigurationError(f"The recording holds no complete '{target_label}' trial")
        # only the target class is averaged
        mean = erp_mean_fn(recording.X, recording.wl, [mark[target - 1]], weights=weights)[0]
        Y = _prepare(mean, counts[target], pcadim, standardize, standardize_fn)
        logger.info(f"P300 prototype: target class {target} ({counts[target]} trials), {Y.shape[1]} columns")
        return Y

    codes = [k for k in range(1, recording.nc + 1) if mark[k - 1]]
    if not codes:
        raise ConfigurationError("The recording holds no complete trial for any class")
    means = erp_mean_fn(recording.X, recording.wl, [mark[k - 1] for k in codes], weights=weights)
    Y = np.hstack([
        _prepare(mean, counts[k], pcadim, standardize, standardize_fn)
        for k, mean in zip(codes, means)
    ])
    logger.info(f"ERP prototype: {len(codes)} classes, {Y.shape[1]} columns")
    return Y
