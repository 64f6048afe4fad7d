"""
In-memory EEG recording with its stimulations.

The recording holds a continuous signal and a stimulation vector with one
entry per sample: 0 for no stimulation, k for the onset of a trial of class
k (1-based, class k being labeled clabels[k - 1]).
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np

from eegcov.covariance.errors import ConfigurationError, ShapeError


logger = logging.getLogger(__name__)


@dataclass
class EEGRecording:
    """A tagged EEG recording.

    Attributes:
        X: Continuous data (n_samples, n_channels)
        sr: Sampling rate in Hz
        wl: Trial length in samples
        offset: Shift in samples applied to every stimulation to get the trial start
        clabels: Class labels, clabels[k - 1] labeling stimulation code k
        stim: Stimulation vector (n_samples,) of non-negative integer codes
        paradigm: BCI paradigm of the recording ('MI', 'P300' or 'ERP')
        sensors: Channel names
        trials: Trials (n_trials, wl, n_channels); extracted from `stim` when None
    """
    X: np.ndarray
    sr: float
    wl: int
    offset: int = 0
    clabels: List[str] = field(default_factory=list)
    stim: Optional[np.ndarray] = None
    paradigm: Optional[str] = None
    sensors: List[str] = field(default_factory=list)
    trials: Optional[np.ndarray] = None

    def __post_init__(self):
        self.X = np.asarray(self.X)
        if self.X.ndim != 2 or self.X.size == 0:
            raise ShapeError(f"X must be a non-empty (n_samples, n_channels) matrix, got shape {self.X.shape}")
        if self.sr <= 0:
            raise ConfigurationError(f"The sampling rate must be positive, got {self.sr}")
        if not 0 < self.wl <= self.ns:
            raise ConfigurationError(f"The trial length must be in [1, {self.ns}], got {self.wl}")
        if self.sensors and len(self.sensors) != self.ne:
            raise ShapeError(f"{len(self.sensors)} sensor names given for {self.ne} channels")

        if self.stim is not None:
            self.stim = np.asarray(self.stim).astype(int)
            if self.stim.shape != (self.ns,):
                raise ShapeError(f"The stimulation vector must have {self.ns} entries, got shape {self.stim.shape}")
            if np.any(self.stim < 0):
                raise ConfigurationError("Stimulation codes must be non-negative")
            if self.clabels and self.stim.max() > len(self.clabels):
                raise ConfigurationError(
                    f"Stimulation code {self.stim.max()} has no class label ({len(self.clabels)} labels given)"
                )

        if self.trials is not None:
            self.trials = np.asarray(self.trials)
            if self.trials.ndim != 3 or self.trials.shape[2] != self.ne:
                raise ShapeError(
                    f"Trials must be a (n_trials, n_samples, {self.ne}) array, got shape {self.trials.shape}"
                )

    @property
    def ns(self) -> int:
        """Number of samples."""
        return self.X.shape[0]

    @property
    def ne(self) -> int:
        """Number of channels (electrodes)."""
        return self.X.shape[1]

    @property
    def nc(self) -> int:
        """Number of classes."""
        if self.clabels:
            return len(self.clabels)
        if self.stim is None:
            return 0
        return int(self.stim.max())

    def _onsets(self) -> np.ndarray:
        """Trial start samples in stimulation order, dropping incomplete windows."""
        if self.stim is None:
            raise ConfigurationError("The recording has no stimulation vector")
        onsets = np.flatnonzero(self.stim) + self.offset
        valid = (onsets >= 0) & (onsets + self.wl <= self.ns)
        if not np.all(valid):
            logger.warning(
                f"Ignoring {np.count_nonzero(~valid)} stimulation(s) whose trial window "
                f"falls outside the recording"
            )
        return onsets[valid]

    @property
    def labels(self) -> np.ndarray:
        """Class code of every complete trial, in stimulation order."""
        onsets = self._onsets()
        return self.stim[onsets - self.offset]

    @property
    def mark(self) -> List[List[int]]:
        """Trial start samples (offset included) of each class 1..nc."""
        onsets = self._onsets()
        codes = self.stim[onsets - self.offset]
        return [onsets[codes == k].tolist() for k in range(1, self.nc + 1)]

    def class_counts(self) -> Dict[int, int]:
        """Number of stimulations of every class code 1..nc."""
        if self.stim is None:
            raise ConfigurationError("The recording has no stimulation vector")
        return {k: int(np.count_nonzero(self.stim == k)) for k in range(1, self.nc + 1)}

    def extract_trials(self) -> np.ndarray:
        """
        Cut the trials out of the continuous recording.

        Returns:
            Trials (n_trials, wl, n_channels) in stimulation order
        """
        onsets = self._onsets()
        if onsets.size == 0:
            raise ConfigurationError("The recording holds no complete trial")
        return np.stack([self.X[s:s + self.wl] for s in onsets])

    def get_trials(self) -> np.ndarray:
        """The stored trials, extracted from the stimulations on first access."""
        if self.trials is None:
            self.trials = self.extract_trials()
            logger.debug(f"Extracted {len(self.trials)} trials of {self.wl} samples")
        return self.trials
