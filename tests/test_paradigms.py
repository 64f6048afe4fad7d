"""Tests for paradigm prototypes and the end-to-end encoding."""

import numpy as np
import pytest

from eegcov.bci import pipeline
from eegcov.bci.paradigms import (
    Paradigm,
    build_prototype,
    parse_paradigm,
    reduce_prototype_pca,
    resolve_target_class
)
from eegcov.bci.pipeline import assemble_and_encode
from eegcov.config.encoding_config import EncodingConfig, ExecutionConfig, ParadigmConfig
from eegcov.covariance.errors import ConfigurationError
from eegcov.data.erps import mean_erps

from conftest import N_CHANNELS, WL, assert_hermitian_psd, make_recording


class TestParadigmSelection:
    """Paradigm tags and target labels."""

    @pytest.mark.parametrize("tag,expected", [
        ('MI', Paradigm.MI),
        ('p300', Paradigm.P300),
        ('Erp', Paradigm.ERP),
        (Paradigm.P300, Paradigm.P300),
    ])
    def test_parse(self, tag, expected):
        assert parse_paradigm(tag) is expected

    @pytest.mark.parametrize("tag", ['SSVEP', '', None])
    def test_unknown_paradigm(self, tag):
        with pytest.raises(ConfigurationError, match="paradigm"):
            parse_paradigm(tag)

    def test_target_case_insensitive(self):
        assert resolve_target_class(['NonTarget', 'Target'], 'target') == 2
        assert resolve_target_class(['target', 'nontarget'], 'TARGET') == 1

    def test_target_missing(self):
        with pytest.raises(ConfigurationError, match="not found"):
            resolve_target_class(['left_hand', 'right_hand'], 'target')


class TestPrototype:
    """Prototype construction per paradigm."""

    def test_pca_reduction(self, rng):
        Y = rng.standard_normal((64, 8))
        assert reduce_prototype_pca(Y, 3).shape == (64, 3)

    @pytest.mark.parametrize("pcadim", [0, 8, 12])
    def test_no_pca_outside_range(self, rng, pcadim):
        Y = rng.standard_normal((64, 8))
        assert reduce_prototype_pca(Y, pcadim) is Y

    def test_mi_has_no_prototype(self, recording):
        assert build_prototype(recording, 'MI') is None

    def test_p300_scaled_target_mean(self, recording):
        Y = build_prototype(recording, 'P300', pcadim=0, weights='none')
        target_mean = mean_erps(recording.X, WL, [recording.mark[1]], weights='none')[0]
        np.testing.assert_allclose(Y, target_mean * np.sqrt(13))

    def test_p300_pca(self, recording):
        assert build_prototype(recording, 'P300', pcadim=4).shape == (WL, 4)

    def test_erp_concatenates_classes(self, recording):
        Y = build_prototype(recording, 'ERP', pcadim=3)
        assert Y.shape == (WL, 6)
        Y_full = build_prototype(recording, 'ERP', pcadim=0, weights='none')
        means = mean_erps(recording.X, WL, recording.mark, weights='none')
        np.testing.assert_allclose(Y_full[:, :N_CHANNELS], means[0] * np.sqrt(26))
        np.testing.assert_allclose(Y_full[:, N_CHANNELS:], means[1] * np.sqrt(13))

    def test_standardized_prototype(self, recording):
        Y = build_prototype(recording, 'P300', pcadim=0, standardize=True)
        assert np.isclose(Y.mean(), 0, atol=1e-12)
        assert np.isclose(Y.std(ddof=1), 1)

    def test_custom_erp_mean_fn(self, recording):
        def constant_means(X, wl, mark, weights='a'):
            return [np.ones((wl, X.shape[1])) for _ in mark]

        Y = build_prototype(recording, 'P300', pcadim=0, erp_mean_fn=constant_means)
        np.testing.assert_allclose(Y, np.sqrt(13) * np.ones((WL, N_CHANNELS)))


class TestAssembleAndEncode:
    """End-to-end, paradigm-aware encoding."""

    def test_mi_side_length(self, rng):
        recording = make_recording(rng, paradigm='MI', clabels=('left_hand', 'right_hand'))
        covs = assemble_and_encode(recording, parallel=False)
        assert covs.shape == (39, N_CHANNELS, N_CHANNELS)

    def test_p300_side_length(self, recording):
        covs = assemble_and_encode(recording, 'P300', pcadim=4, parallel=False)
        assert covs.shape == (39, N_CHANNELS + 4, N_CHANNELS + 4)
        for C in covs:
            assert_hermitian_psd(C)

    def test_erp_side_length(self, recording):
        covs = assemble_and_encode(recording, 'ERP', pcadim=2, parallel=False)
        assert covs.shape == (39, N_CHANNELS + 4, N_CHANNELS + 4)

    def test_paradigm_from_recording(self, recording):
        covs = assemble_and_encode(recording, pcadim=4, parallel=False)
        assert covs.shape[1] == N_CHANNELS + 4

    def test_paradigm_from_config(self, recording):
        config = EncodingConfig(paradigm=ParadigmConfig(paradigm='MI'))
        covs = assemble_and_encode(recording, config=config, parallel=False)
        assert covs.shape[1] == N_CHANNELS

    def test_sample_estimator_matches_encoder(self, recording):
        covs = assemble_and_encode(recording, 'MI', estimator='sample', parallel=False)
        trials = recording.get_trials()
        np.testing.assert_allclose(covs[5], trials[5].T @ trials[5] / WL, rtol=1e-10)

    def test_tikhonov_applied_globally(self, recording):
        plain = assemble_and_encode(recording, 'MI', estimator='sample', parallel=False)
        regularized = assemble_and_encode(recording, 'MI', estimator='sample', tikh=0.5, parallel=False)
        np.testing.assert_allclose(regularized - plain, np.broadcast_to(0.5 * np.eye(N_CHANNELS), plain.shape),
                                   atol=1e-12)

    def test_custom_tikhonov_fn(self, recording):
        calls = []

        def spy(covs, alpha):
            calls.append(alpha)
            return covs

        assemble_and_encode(recording, 'MI', tikh=0.1, tikhonov_fn=spy, parallel=False)
        assert calls == [0.1]

    @pytest.mark.parametrize("estimator", ['tyler', 'nrtyler'])
    def test_m_estimators_with_report(self, recording, estimator):
        covs, report = assemble_and_encode(
            recording, 'P300', estimator=estimator, pcadim=4, return_report=True,
            config=EncodingConfig(execution=ExecutionConfig(n_jobs=2))
        )
        assert covs.shape == (39, 12, 12)
        assert report.n_trials == 39
        assert report.estimator == estimator
        for C in covs:
            assert np.isclose(np.trace(C), 12)

    def test_unknown_paradigm_fails_fast(self, recording, monkeypatch):
        monkeypatch.setattr(pipeline, 'encode_trials', pytest.fail)
        with pytest.raises(ConfigurationError, match="paradigm"):
            assemble_and_encode(recording, 'SSVEP')

    def test_missing_target_fails_before_computation(self, rng, monkeypatch):
        recording = make_recording(rng, clabels=('left_hand', 'right_hand'))
        calls = []

        def spy_mean(*args, **kwargs):
            calls.append(1)
            return mean_erps(*args, **kwargs)

        monkeypatch.setattr(pipeline, 'encode_trials', pytest.fail)
        with pytest.raises(ConfigurationError, match="not found"):
            assemble_and_encode(recording, 'P300', erp_mean_fn=spy_mean)
        assert calls == []

    def test_no_paradigm_anywhere(self, recording):
        recording.paradigm = None
        with pytest.raises(ConfigurationError, match="No BCI paradigm"):
            assemble_and_encode(recording)

    def test_unknown_override(self, recording):
        with pytest.raises(ConfigurationError, match="Unknown encoding option"):
            assemble_and_encode(recording, 'MI', shrinkage=0.3)

    def test_invalid_override_value(self, recording):
        with pytest.raises(ConfigurationError, match="pcadim"):
            assemble_and_encode(recording, 'P300', pcadim=-1)
