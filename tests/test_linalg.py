"""Tests for the dense linear algebra helpers and the fast sample covariance."""

import numpy as np
import pytest
from scipy import linalg as sla

from eegcov.covariance import linalg
from eegcov.covariance.linalg import hermitian, quadratic_forms, sample_covariance, select_strategy


def _relative_error(A, B):
    return np.linalg.norm(A - B) / np.linalg.norm(B)


class TestHermitian:
    """hermitian() trusts only the upper triangle."""

    def test_lower_triangle_ignored(self, rng):
        A = rng.standard_normal((5, 5))
        A[np.tril_indices(5, k=-1)] = 1e6
        H = hermitian(A)
        np.testing.assert_array_equal(np.triu(H), np.triu(A))
        np.testing.assert_array_equal(H, H.T)

    def test_complex_diagonal_is_real(self, rng):
        A = rng.standard_normal((4, 4)) + 1j * rng.standard_normal((4, 4))
        H = hermitian(A)
        np.testing.assert_array_equal(H, H.conj().T)
        assert np.all(np.diagonal(H).imag == 0)

    def test_non_square_raises(self):
        with pytest.raises(ValueError):
            hermitian(np.ones((3, 4)))


class TestSampleCovariance:
    """Both multiply strategies compute (1/n) Y^H Y."""

    @pytest.mark.parametrize("n_columns", [19, 63, 64, 100])
    def test_strategies_agree(self, rng, n_columns):
        Y = rng.standard_normal((256, n_columns))
        blas = sample_covariance(Y, 'blas')
        direct = sample_covariance(Y, 'direct')
        assert _relative_error(blas, direct) < 1e-10

    def test_matches_definition(self, rng):
        Y = rng.standard_normal((300, 12))
        np.testing.assert_allclose(sample_covariance(Y), Y.T @ Y / 300, rtol=1e-10, atol=1e-12)

    def test_complex_uses_conjugate_transpose(self, rng):
        Y = rng.standard_normal((200, 10)) + 1j * rng.standard_normal((200, 10))
        expected = Y.conj().T @ Y / 200
        for strategy in ('blas', 'direct'):
            C = sample_covariance(Y, strategy)
            assert _relative_error(C, expected) < 1e-10
            np.testing.assert_array_equal(C, C.conj().T)

    def test_trace_of_tall_trial(self, rng):
        trial = rng.standard_normal((128, 19))
        C = sample_covariance(trial)
        assert np.isclose(np.trace(C), np.sum(trial ** 2) / 128, rtol=1e-9, atol=0)

    def test_integer_input_is_promoted(self):
        Y = np.arange(12).reshape(4, 3)
        C = sample_covariance(Y)
        assert C.dtype == np.float64
        np.testing.assert_allclose(C, Y.T @ Y / 4)


class TestSelectStrategy:
    """'auto' resolution depends on the column count and the BLAS threading."""

    def test_explicit_strategy_kept(self):
        assert select_strategy(5, 'blas') == 'blas'
        assert select_strategy(500, 'direct') == 'direct'

    def test_single_threaded_uses_threshold(self, monkeypatch):
        monkeypatch.setattr(linalg, 'blas_num_threads', lambda: 1)
        assert select_strategy(63, 'auto', 64) == 'direct'
        assert select_strategy(64, 'auto', 64) == 'blas'
        assert select_strategy(10, 'auto', 8) == 'blas'

    def test_multi_threaded_always_blas(self, monkeypatch):
        monkeypatch.setattr(linalg, 'blas_num_threads', lambda: 8)
        assert select_strategy(4, 'auto') == 'blas'

    def test_unknown_strategy_raises(self):
        with pytest.raises(ValueError, match="Unsupported"):
            select_strategy(10, 'gemm')


class TestQuadraticForms:
    """Cholesky-based x^H C^-1 x."""

    def test_matches_explicit_inverse(self, rng):
        A = rng.standard_normal((6, 6))
        C = A @ A.T + 6 * np.eye(6)
        X = rng.standard_normal((6, 40))
        q, ridge = quadratic_forms(C, X)
        expected = np.einsum('it,it->t', X, np.linalg.solve(C, X))
        np.testing.assert_allclose(q, expected, rtol=1e-10)
        assert ridge == 0.0

    def test_singular_matrix_gets_ridge(self, rng):
        C = np.diag([1.0, 1.0, 0.0])
        X = rng.standard_normal((3, 5))
        X[2] = 0.0
        q, ridge = quadratic_forms(C, X)
        assert ridge > 0.0
        np.testing.assert_allclose(q, np.sum(X ** 2, axis=0), rtol=1e-6)

    def test_negative_definite_raises(self):
        with pytest.raises(sla.LinAlgError):
            quadratic_forms(-np.eye(3), np.ones((3, 2)))
