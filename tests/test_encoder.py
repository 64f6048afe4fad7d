"""Tests for batch encoding of trials."""

import logging

import numpy as np
import pytest

from eegcov.covariance import encoder
from eegcov.covariance.dispatcher import estimate_covariance
from eegcov.covariance.encoder import encode_trials
from eegcov.covariance.errors import ConfigurationError, ShapeError, TrialEstimationError

from conftest import assert_hermitian_psd, make_trials


class TestOrdering:
    """Output matrices are index-aligned with the input trials."""

    def test_output_order(self, trials):
        # distinct scales make any permutation visible
        trials = [t * (i + 1) for i, t in enumerate(trials)]
        covs = encode_trials(trials, 'sample')
        assert covs.shape == (len(trials), 8, 8)
        for i, t in enumerate(trials):
            np.testing.assert_allclose(covs[i], estimate_covariance(t), rtol=1e-10)

    @pytest.mark.parametrize("estimator", ['sample', 'lwf', 'tyler', 'nrtyler'])
    def test_parallel_equals_sequential(self, trials, estimator):
        parallel = encode_trials(trials, estimator, parallel=True, n_jobs=3)
        sequential = encode_trials(trials, estimator, parallel=False)
        np.testing.assert_allclose(parallel, sequential, rtol=1e-10, atol=1e-12)

    def test_all_hermitian_psd(self, trials):
        for C in encode_trials(trials, 'nrtyler', n_jobs=2):
            assert_hermitian_psd(C)

    def test_prototype_stacked_to_every_trial(self, rng, trials):
        prototype = rng.standard_normal((trials[0].shape[0], 4))
        covs = encode_trials(trials, 'sample', prototype)
        assert covs.shape == (len(trials), 12, 12)
        for i, t in enumerate(trials):
            np.testing.assert_allclose(covs[i, 8:, 8:], prototype.T @ prototype / t.shape[0], rtol=1e-10)

    def test_complex_trials(self, rng):
        trials = [rng.standard_normal((50, 4)) + 1j * rng.standard_normal((50, 4)) for _ in range(3)]
        covs = encode_trials(trials)
        assert covs.dtype == np.complex128
        for i, t in enumerate(trials):
            np.testing.assert_allclose(covs[i], t.conj().T @ t / 50, rtol=1e-10)


class TestExecution:
    """Choice between threads and sequential execution."""

    def test_m_estimator_runs_on_threads(self, trials):
        _, report = encode_trials(trials, 'tyler', parallel=True, n_jobs=2, return_report=True)
        assert report.execution == 'threads'
        assert report.n_trials == len(trials)
        assert [d.index for d in report.diagnostics] == list(range(len(trials)))

    def test_sample_sequential_with_threaded_blas(self, monkeypatch, trials):
        monkeypatch.setattr(encoder, 'blas_num_threads', lambda: 4)
        _, report = encode_trials(trials, 'sample', parallel=True, return_report=True)
        assert report.execution == 'sequential'

    def test_sample_threads_with_single_threaded_blas(self, monkeypatch, trials):
        monkeypatch.setattr(encoder, 'blas_num_threads', lambda: 1)
        _, report = encode_trials(trials, 'sample', parallel=True, n_jobs=2, return_report=True)
        assert report.execution == 'threads'

    def test_sequential_requested(self, trials):
        _, report = encode_trials(trials, 'tyler', parallel=False, return_report=True)
        assert report.execution == 'sequential'

    def test_logs_batch(self, trials, caplog):
        with caplog.at_level(logging.INFO, logger='eegcov.covariance.encoder'):
            encode_trials(trials, 'lwf', parallel=False)
        assert f"Encoding {len(trials)} trials with estimator 'lwf'" in caplog.text


class TestUpfrontValidation:
    """Batch-level errors are raised before any estimation."""

    def test_inconsistent_channels(self, rng):
        trials = make_trials(rng, 3) + [rng.standard_normal((200, 7))]
        with pytest.raises(ShapeError, match="Trial 3"):
            encode_trials(trials)

    def test_prototype_sample_mismatch(self, rng, trials):
        with pytest.raises(ShapeError):
            encode_trials(trials, 'sample', rng.standard_normal((10, 2)))

    def test_empty_batch(self):
        with pytest.raises(ConfigurationError, match="empty"):
            encode_trials([])

    def test_complex_with_tyler(self, rng):
        trials = [rng.standard_normal((50, 4)) + 1j * rng.standard_normal((50, 4))]
        with pytest.raises(ConfigurationError, match="complex"):
            encode_trials(trials, 'tyler')

    def test_invalid_on_error(self, trials):
        with pytest.raises(ConfigurationError, match="on_error"):
            encode_trials(trials, on_error='skip')

    def test_invalid_option(self, trials):
        with pytest.raises(ConfigurationError, match="maxiter"):
            encode_trials(trials, 'tyler', maxiter=0)

    def test_validation_before_estimation(self, rng, monkeypatch):
        calls = []
        monkeypatch.setattr(encoder, 'estimate_covariance', lambda *a, **k: calls.append(1))
        trials = make_trials(rng, 3) + [rng.standard_normal((200, 5))]
        with pytest.raises(ShapeError):
            encode_trials(trials, 'tyler')
        assert calls == []


class TestErrorPolicy:
    """on_error='raise' aborts, on_error='collect' goes on."""

    def test_raise_reports_index(self, trials):
        trials[2] = np.zeros_like(trials[2])
        with pytest.raises(TrialEstimationError) as excinfo:
            encode_trials(trials, 'tyler', parallel=False, on_error='raise')
        assert excinfo.value.index == 2
        assert excinfo.value.estimator == 'tyler'
        assert isinstance(excinfo.value.__cause__, ConfigurationError)

    def test_collect_marks_failed_trial(self, trials, caplog):
        trials[1] = np.zeros_like(trials[1])
        with caplog.at_level(logging.WARNING, logger='eegcov.covariance.encoder'):
            covs, report = encode_trials(
                trials, 'tyler', n_jobs=2, on_error='collect', return_report=True
            )
        assert report.failed_indices == [1]
        assert np.all(np.isnan(covs[1]))
        assert np.all(np.isfinite(np.delete(covs, 1, axis=0)))
        assert report.diagnostics[1].failure_reason is not None
        assert "Trial 1" in caplog.text

    def test_collect_keeps_last_iterate(self, trials):
        covs, report = encode_trials(
            trials, 'tyler', parallel=False, on_error='collect', return_report=True,
            tol=1e-14, maxiter=1, on_nonconvergence='raise'
        )
        assert report.n_failed == len(trials)
        assert report.n_not_converged == len(trials)
        assert np.all(np.isfinite(covs))
        for C in covs:
            assert np.isclose(np.trace(C), 8)

    def test_warn_policy_does_not_fail(self, trials):
        _, report = encode_trials(
            trials, 'tyler', parallel=False, return_report=True, tol=1e-14, maxiter=1
        )
        assert report.n_failed == 0
        assert report.n_not_converged == len(trials)
