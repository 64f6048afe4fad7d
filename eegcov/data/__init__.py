"""EEG recording, ERP and standardization utilities."""

from eegcov.data.recording import EEGRecording
from eegcov.data.erps import mean_erps, trial_weights
from eegcov.data.standardization import standardize_eeg

__all__ = [
    'EEGRecording',
    'mean_erps',
    'trial_weights',
    'standardize_eeg',
]
