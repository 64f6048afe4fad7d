"""Shared fixtures: synthetic trials and a synthetic tagged recording."""

import numpy as np
import pytest

from eegcov.data.recording import EEGRecording


N_SAMPLES = 4000
N_CHANNELS = 8
WL = 64
SR = 128


def make_trials(rng, n_trials: int = 6, n_samples: int = 200, n_channels: int = 8) -> list:
    """Gaussian trials with a random (non-identity) spatial covariance."""
    mixing = rng.standard_normal((n_channels, n_channels))
    return [rng.standard_normal((n_samples, n_channels)) @ mixing for _ in range(n_trials)]


def make_recording(rng, paradigm: str = 'P300', clabels=('nontarget', 'Target')) -> EEGRecording:
    """Continuous noise with 39 stimulations every 100 samples.

    Every third stimulation is of class 2 and carries an evoked response.
    """
    X = rng.standard_normal((N_SAMPLES, N_CHANNELS))
    stim = np.zeros(N_SAMPLES, dtype=int)
    waveform = np.outer(np.sin(np.linspace(0, np.pi, WL)), np.linspace(1.0, 2.0, N_CHANNELS))

    for i, onset in enumerate(range(50, 3900, 100)):
        code = 2 if i % 3 == 2 else 1
        stim[onset] = code
        if code == 2:
            X[onset:onset + WL] += 3.0 * waveform

    return EEGRecording(
        X=X,
        sr=SR,
        wl=WL,
        clabels=list(clabels),
        stim=stim,
        paradigm=paradigm,
        sensors=[f"E{i + 1}" for i in range(N_CHANNELS)],
    )


@pytest.fixture
def rng():
    return np.random.default_rng(42)


@pytest.fixture
def trials(rng):
    return make_trials(rng)


@pytest.fixture
def trial(rng):
    return make_trials(rng, n_trials=1)[0]


@pytest.fixture
def recording(rng):
    return make_recording(rng)


def assert_hermitian_psd(C: np.ndarray, tol: float = 1e-10):
    """Assert that C is Hermitian and positive semi-definite."""
    assert C.shape[0] == C.shape[1]
    np.testing.assert_allclose(C, C.conj().T, atol=0)
    eigenvalues = np.linalg.eigvalsh(C)
    assert eigenvalues.min() >= -tol * max(1.0, abs(eigenvalues.max()))
