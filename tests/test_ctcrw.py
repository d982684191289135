"""
Tests for the CTCRW movement model.

Tests the Argos error model, the transition moments, fitting, smoothing
and posterior simulation on synthetic tracks.
"""
import pytest
import numpy as np
import pandas as pd

from mlhabitat.data.synthetic import simulate_argos_track
from mlhabitat.data.tracks import DEFAULT_COLUMN_MAP, clean_fixes, project_fixes
from mlhabitat.errors import ModelFitError
from mlhabitat.habitat import sampling
from mlhabitat.movement.ctcrw import (
    FittedCTCRW,
    ellipse_covariance,
    fit_ctcrw,
    transition,
)

from conftest import CRS


def synthetic_fixes(n_fixes=60, seed=11):
    """Projected fix table plus true positions."""
    raw = simulate_argos_track(n_fixes=n_fixes, seed=seed)
    df = raw.rename(columns={v: k for k, v in DEFAULT_COLUMN_MAP.items()})
    df["timestamp"] = pd.to_datetime(df["timestamp"], utc=True)
    return project_fixes(clean_fixes(df), CRS)


@pytest.fixture(scope="module")
def fixes():
    return synthetic_fixes()


@pytest.fixture(scope="module")
def model(fixes):
    return fit_ctcrw(fixes)


class TestEllipseCovariance:
    """Test Argos error ellipse -> covariance conversion."""

    def test_north_oriented_major_axis(self):
        cov = ellipse_covariance([1000.0], [200.0], [0.0])[0]
        assert cov[0, 0] == pytest.approx(200.0 ** 2 / 2)
        assert cov[1, 1] == pytest.approx(1000.0 ** 2 / 2)
        assert cov[0, 1] == pytest.approx(0.0, abs=1e-6)

    def test_east_oriented_major_axis(self):
        cov = ellipse_covariance([1000.0], [200.0], [90.0])[0]
        assert cov[0, 0] == pytest.approx(1000.0 ** 2 / 2)
        assert cov[1, 1] == pytest.approx(200.0 ** 2 / 2)

    def test_diagonal_orientation_correlated(self):
        cov = ellipse_covariance([1000.0], [200.0], [45.0])[0]
        assert cov[0, 1] == pytest.approx((1000.0 ** 2 - 200.0 ** 2) / 4)
        assert cov[0, 1] == cov[1, 0]

    def test_circle_is_isotropic(self):
        cov = ellipse_covariance([300.0], [300.0], [37.0])[0]
        assert cov[0, 0] == pytest.approx(cov[1, 1])
        assert cov[0, 1] == pytest.approx(0.0, abs=1e-6)

    def test_positive_definite(self):
        rng = np.random.default_rng(0)
        smin = rng.uniform(50, 500, 20)
        smaj = smin + rng.uniform(0, 3000, 20)
        covs = ellipse_covariance(smaj, smin, rng.uniform(0, 180, 20))
        assert covs.shape == (20, 2, 2)
        assert np.all(np.linalg.eigvalsh(covs) > 0)


class TestTransition:
    """Test CTCRW transition matrix and process noise."""

    def test_short_step_is_nearly_identity(self):
        T, Q = transition(1e-3, beta=1e-4, sigma=0.01)
        expected = np.eye(4)
        expected[0, 1] = expected[2, 3] = 1e-3
        np.testing.assert_allclose(T, expected, atol=1e-6)
        assert np.all(np.abs(Q) < 1e-6)

    def test_long_step_velocity_variance_is_stationary(self):
        sigma, beta = 0.02, 1e-3
        _, Q = transition(1e6, beta=beta, sigma=sigma)
        assert Q[1, 1] == pytest.approx(sigma ** 2 / (2 * beta))
        assert Q[3, 3] == pytest.approx(sigma ** 2 / (2 * beta))

    def test_axes_independent(self):
        T, Q = transition(3600.0, beta=1e-4, sigma=0.01)
        assert np.all(T[:2, 2:] == 0)
        assert np.all(Q[:2, 2:] == 0)

    def test_noise_positive_semidefinite(self):
        for dt in [1.0, 60.0, 3600.0, 86400.0]:
            _, Q = transition(dt, beta=1e-4, sigma=0.01)
            assert np.all(np.linalg.eigvalsh(Q) >= -1e-9)


class TestFit:
    """Test maximum likelihood fitting."""

    def test_fit_returns_model(self, model, fixes):
        assert isinstance(model, FittedCTCRW)
        assert len(model) == len(fixes)
        assert np.isfinite(model.log_likelihood)
        assert model.params["sigma"] > 0
        assert model.params["beta"] > 0
        assert model.params["error_scale"] == 1.0

    def test_model_keeps_observation_times(self, model, fixes):
        assert model.times.equals(pd.Index(fixes["timestamp"]))

    def test_summary(self, model):
        summary = model.summary()
        assert summary["n_fixes"] == len(model)
        assert summary["aic"] == pytest.approx(2 * 2 - 2 * model.log_likelihood)
        assert summary["stationary_speed_sd"] > 0

    def test_estimate_error_scale(self, fixes):
        fitted = fit_ctcrw(fixes, estimate_error_scale=True)
        assert fitted.n_estimated == 3
        assert 0.05 <= fitted.params["error_scale"] <= 20.0

    def test_too_few_fixes(self, fixes):
        with pytest.raises(ModelFitError):
            fit_ctcrw(fixes.iloc[:2])

    def test_unordered_fixes(self, fixes):
        with pytest.raises(ModelFitError):
            fit_ctcrw(fixes.iloc[::-1])

    def test_numeric_times(self, fixes):
        numeric = fixes.copy()
        numeric["timestamp"] = (fixes["timestamp"] - fixes["timestamp"].iloc[0]).dt.total_seconds()
        fitted = fit_ctcrw(numeric)
        assert fitted.predict().shape == (len(fixes), 2)


class TestPredict:
    """Test smoothed location prediction."""

    def test_shape(self, model, fixes):
        assert model.predict().shape == (len(fixes), 2)

    def test_observation_times_explicit(self, model, fixes):
        np.testing.assert_allclose(model.predict(fixes["timestamp"]), model.predict())

    def test_smoothing_reduces_error(self, model, fixes):
        truth = fixes[["true_x", "true_y"]].to_numpy()
        raw = fixes[["x", "y"]].to_numpy()

        raw_rmse = np.sqrt(np.mean(np.sum((raw - truth) ** 2, axis=1)))
        smooth_rmse = np.sqrt(np.mean(np.sum((model.predict() - truth) ** 2, axis=1)))

        assert smooth_rmse < raw_rmse

    def test_between_fixes(self, model, fixes):
        times = pd.date_range(fixes["timestamp"].iloc[0], fixes["timestamp"].iloc[-1], freq="6h")
        predicted = model.predict(times)
        assert predicted.shape == (len(times), 2)
        assert np.all(np.isfinite(predicted))

    def test_before_first_fix(self, model, fixes):
        with pytest.raises(ValueError):
            model.predict([fixes["timestamp"].iloc[0] - pd.Timedelta(hours=1)])

    def test_predict_track_frame(self, model, fixes):
        track = model.predict_track()
        assert list(track.columns) == ["timestamp", "x", "y", "se_x", "se_y"]
        assert len(track) == len(fixes)
        assert (track["se_x"] > 0).all()
        np.testing.assert_allclose(track[["x", "y"]].to_numpy(), model.predict())


class TestSimulate:
    """Test posterior simulation."""

    def test_shape(self, model, fixes):
        draw = model.simulate(rng=np.random.default_rng(0))
        assert draw.shape == (len(fixes), 2)

    def test_same_stream_same_draw(self, model):
        a = model.simulate(rng=np.random.default_rng(7))
        b = model.simulate(rng=np.random.default_rng(7))
        np.testing.assert_array_equal(a, b)

    def test_different_streams_differ(self, model):
        a = model.simulate(rng=np.random.default_rng(1))
        b = model.simulate(rng=np.random.default_rng(2))
        assert not np.allclose(a, b)

    def test_draws_centre_on_prediction(self, model):
        rng = np.random.default_rng(3)
        n_draws = 300
        draws = np.stack([model.simulate(rng=rng) for _ in range(n_draws)])
        track = model.predict_track()

        mean = draws.mean(axis=0)
        se = track[["se_x", "se_y"]].to_numpy() / np.sqrt(n_draws)
        assert np.all(np.abs(mean - track[["x", "y"]].to_numpy()) < 5 * se + 1e-6)

    def test_simulate_does_not_change_model(self, model):
        before = model.predict().copy()
        model.simulate(rng=np.random.default_rng(0))
        np.testing.assert_array_equal(model.predict(), before)


class TestTextTimestamps:
    """Fix tables whose timestamps are still strings."""

    @pytest.fixture
    def text_fixes(self, fixes):
        subset = pd.DataFrame(fixes.drop(columns="geometry")).iloc[:12].reset_index(drop=True)
        subset["timestamp"] = subset["timestamp"].dt.strftime("%Y-%m-%d %H:%M:%S")
        return subset

    def test_fit_parses_strings(self, text_fixes):
        fitted = fit_ctcrw(text_fixes)

        assert isinstance(fitted.times, pd.DatetimeIndex)
        assert str(fitted.times.tz) == "UTC"
        assert fitted.predict().shape == (len(text_fixes), 2)

    def test_fitted_model_accepted_by_sampling(self, text_fixes):
        fitted = fit_ctcrw(text_fixes)

        def outside_overlay(points):
            return ["none"] * len(points)

        result = sampling.run(fitted, text_fixes, outside_overlay, repetitions=3, seed=0)

        assert len(result) == len(text_fixes)
        assert [a.timestamp for a in result] == list(fitted.times)
        assert all(a.majority == "none" for a in result)
