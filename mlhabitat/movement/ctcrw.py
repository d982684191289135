"""
Continuous-time correlated random walk (CTCRW) movement model.

State-space model for irregularly timed Argos fixes (Johnson et al. 2008).
On each projected axis the state is (position, velocity); velocity is an
Ornstein-Uhlenbeck process with autocorrelation rate ``beta`` (1/s) and
variability ``sigma``. Fixes are observed with the covariance implied by
their Argos error ellipse (McClintock et al. 2015).

The fitted model supports:
- ``predict``: Rauch-Tung-Striebel smoothed positions
- ``simulate``: one draw from the posterior of the positions given all
  fixes (forward-filter backward-sample)
"""

import logging
from typing import Dict, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from scipy.linalg import block_diag
from scipy.optimize import minimize

from ..data.tracks import as_time_index
from ..errors import ModelFitError

logger = logging.getLogger(__name__)

# State vector is [x, vx, y, vy]
OBS_MATRIX = np.array([[1.0, 0.0, 0.0, 0.0],
                       [0.0, 0.0, 1.0, 0.0]])

LOG_2PI = np.log(2.0 * np.pi)

# Optimiser bounds on log parameters
LOG_SIGMA_BOUNDS = (-20.0, 10.0)
LOG_BETA_BOUNDS = (np.log(1e-9), 0.0)
LOG_SCALE_BOUNDS = (np.log(0.05), np.log(20.0))

MIN_FIXES = 3

TimesLike = Union[pd.Index, pd.Series, np.ndarray, Sequence]


def ellipse_covariance(smaj, smin, eor) -> np.ndarray:
    """
    Observation error covariances from Argos error ellipses.

    Args:
        smaj: Semi-major axes (m)
        smin: Semi-minor axes (m)
        eor: Ellipse orientation, degrees clockwise from north

    Returns:
        (n, 2, 2) covariance matrices in (easting, northing)
    """
    smaj = np.asarray(smaj, dtype=float)
    smin = np.asarray(smin, dtype=float)
    c = np.radians(np.asarray(eor, dtype=float))

    major2 = (smaj / np.sqrt(2.0)) ** 2
    minor2 = (smin / np.sqrt(2.0)) ** 2
    sin_c, cos_c = np.sin(c), np.cos(c)

    cov = np.empty(smaj.shape + (2, 2))
    cov[..., 0, 0] = major2 * sin_c ** 2 + minor2 * cos_c ** 2
    cov[..., 1, 1] = major2 * cos_c ** 2 + minor2 * sin_c ** 2
    cov[..., 0, 1] = cov[..., 1, 0] = (major2 - minor2) * sin_c * cos_c
    return cov


def transition(dt: float, beta: float, sigma: float) -> Tuple[np.ndarray, np.ndarray]:
    """
    Transition matrix and process noise for a time step of ``dt`` seconds.

    Returns:
        (T, Q), both 4x4 for the [x, vx, y, vy] state
    """
    one_minus_e = -np.expm1(-beta * dt)
    one_minus_e2 = -np.expm1(-2.0 * beta * dt)
    s2 = sigma ** 2

    t_axis = np.array([[1.0, one_minus_e / beta],
                       [0.0, 1.0 - one_minus_e]])

    var_pos = s2 / beta ** 2 * (dt - 2.0 * one_minus_e / beta + one_minus_e2 / (2.0 * beta))
    var_vel = s2 / (2.0 * beta) * one_minus_e2
    cov_pv = s2 / (2.0 * beta ** 2) * (one_minus_e ** 2)
    q_axis = np.array([[max(var_pos, 0.0), cov_pv],
                       [cov_pv, var_vel]])

    return block_diag(t_axis, t_axis), block_diag(q_axis, q_axis)


def _symmetrize(m: np.ndarray) -> np.ndarray:
    return 0.5 * (m + m.T)


def _draw_mvn(rng: np.random.Generator, mean: np.ndarray, cov: np.ndarray) -> np.ndarray:
    """Multivariate normal draw that tolerates singular covariances"""
    w, v = np.linalg.eigh(_symmetrize(cov))
    w = np.clip(w, 0.0, None)
    return mean + v @ (np.sqrt(w) * rng.standard_normal(len(mean)))


def _seconds(times: pd.Index, origin) -> np.ndarray:
    """Seconds since ``origin`` (numeric times are taken to be seconds already)"""
    if isinstance(times, pd.DatetimeIndex):
        return np.asarray((times - origin).total_seconds(), dtype=float)
    return np.asarray(times, dtype=float) - float(origin)


class KalmanPass:
    """Output of one forward filter pass over a time grid"""

    def __init__(self, n: int):
        self.pred_mean = np.zeros((n, 4))
        self.pred_cov = np.zeros((n, 4, 4))
        self.filt_mean = np.zeros((n, 4))
        self.filt_cov = np.zeros((n, 4, 4))
        self.trans = np.zeros((n, 4, 4))
        self.log_likelihood = 0.0


def kalman_filter(seconds: np.ndarray, obs: np.ndarray, obs_cov: np.ndarray,
                  beta: float, sigma: float) -> KalmanPass:
    """
    Forward Kalman filter over a strictly increasing time grid.

    The first grid point must be observed; it fixes the initial state at that
    fix with its own error covariance and zero-mean stationary velocity.
    Rows of ``obs`` that are NaN are prediction-only steps.

    Args:
        seconds: (n,) grid times in seconds
        obs: (n, 2) observed positions, NaN where unobserved
        obs_cov: (n, 2, 2) observation covariances
        beta: Velocity autocorrelation rate
        sigma: Velocity variability

    Returns:
        KalmanPass with predicted/filtered moments and the log-likelihood of
        all observations after the first
    """
    n = len(seconds)
    kp = KalmanPass(n)
    observed = ~np.isnan(obs).any(axis=1)

    vel_var = sigma ** 2 / (2.0 * beta)
    init_mean = np.array([obs[0, 0], 0.0, obs[0, 1], 0.0])
    init_cov = np.zeros((4, 4))
    init_cov[np.ix_([0, 2], [0, 2])] = obs_cov[0]
    init_cov[1, 1] = init_cov[3, 3] = vel_var

    kp.pred_mean[0], kp.pred_cov[0] = init_mean, init_cov
    kp.filt_mean[0], kp.filt_cov[0] = init_mean, init_cov
    kp.trans[0] = np.eye(4)

    loglik = 0.0
    for t in range(1, n):
        T, Q = transition(seconds[t] - seconds[t - 1], beta, sigma)
        mp = T @ kp.filt_mean[t - 1]
        Pp = _symmetrize(T @ kp.filt_cov[t - 1] @ T.T + Q)
        kp.trans[t] = T
        kp.pred_mean[t], kp.pred_cov[t] = mp, Pp

        if not observed[t]:
            kp.filt_mean[t], kp.filt_cov[t] = mp, Pp
            continue

        S = _symmetrize(OBS_MATRIX @ Pp @ OBS_MATRIX.T + obs_cov[t])
        resid = obs[t] - OBS_MATRIX @ mp
        gain = np.linalg.solve(S, OBS_MATRIX @ Pp).T
        kp.filt_mean[t] = mp + gain @ resid
        kp.filt_cov[t] = _symmetrize(Pp - gain @ S @ gain.T)

        sign, logdet = np.linalg.slogdet(S)
        if sign <= 0:
            loglik = -np.inf
            continue
        loglik += -0.5 * (logdet + resid @ np.linalg.solve(S, resid) + 2.0 * LOG_2PI)

    kp.log_likelihood = loglik
    return kp


def rts_smoother(kp: KalmanPass) -> Tuple[np.ndarray, np.ndarray]:
    """Rauch-Tung-Striebel smoothed means and covariances"""
    n = len(kp.filt_mean)
    mean = kp.filt_mean.copy()
    cov = kp.filt_cov.copy()
    for t in range(n - 2, -1, -1):
        gain = np.linalg.solve(kp.pred_cov[t + 1], kp.trans[t + 1] @ kp.filt_cov[t]).T
        mean[t] = kp.filt_mean[t] + gain @ (mean[t + 1] - kp.pred_mean[t + 1])
        cov[t] = _symmetrize(kp.filt_cov[t] + gain @ (cov[t + 1] - kp.pred_cov[t + 1]) @ gain.T)
    return mean, cov


def backward_sample(kp: KalmanPass, rng: np.random.Generator) -> np.ndarray:
    """One posterior draw of the full state path (forward-filter backward-sample)"""
    n = len(kp.filt_mean)
    states = np.zeros((n, 4))
    states[-1] = _draw_mvn(rng, kp.filt_mean[-1], kp.filt_cov[-1])
    for t in range(n - 2, -1, -1):
        Pp = kp.pred_cov[t + 1]
        gain = np.linalg.solve(Pp, kp.trans[t + 1] @ kp.filt_cov[t]).T
        mean = kp.filt_mean[t] + gain @ (states[t + 1] - kp.pred_mean[t + 1])
        cov = kp.filt_cov[t] - gain @ Pp @ gain.T
        states[t] = _draw_mvn(rng, mean, cov)
    return states


class FittedCTCRW:
    """
    A CTCRW model fit to one track.

    Attributes:
        times: Observation timestamps the model was fit on
        params: {"sigma", "beta", "error_scale"}
        log_likelihood: Maximised log-likelihood
        converged: Whether the optimiser reported success
    """

    def __init__(self, times: TimesLike, xy: np.ndarray, obs_cov: np.ndarray,
                 params: Dict[str, float], log_likelihood: float,
                 n_estimated: int, converged: bool = True,
                 param_se: Optional[Dict[str, float]] = None):
        self.times = as_time_index(times)
        self.origin = self.times[0] if isinstance(self.times, pd.DatetimeIndex) else 0.0
        self.seconds = _seconds(self.times, self.origin)
        self.xy = np.asarray(xy, dtype=float)
        self.base_obs_cov = np.asarray(obs_cov, dtype=float)
        self.params = dict(params)
        self.log_likelihood = float(log_likelihood)
        self.n_estimated = n_estimated
        self.converged = converged
        self.param_se = dict(param_se or {})

        self.obs_cov = self.base_obs_cov * self.params["error_scale"] ** 2
        self._obs_pass = kalman_filter(self.seconds, self.xy, self.obs_cov,
                                       self.params["beta"], self.params["sigma"])

    def __len__(self) -> int:
        return len(self.times)

    def _pass_for(self, times: Optional[TimesLike]) -> Tuple[KalmanPass, np.ndarray]:
        """Filter pass covering ``times`` and the grid rows that correspond to them"""
        if times is None:
            return self._obs_pass, np.arange(len(self.times))

        req = _seconds(as_time_index(times), self.origin)
        if np.array_equal(req, self.seconds):
            return self._obs_pass, np.arange(len(self.times))
        if len(req) and req.min() < self.seconds[0]:
            raise ValueError("Cannot predict before the first observed fix")

        grid = np.union1d(self.seconds, req)
        obs_rows = np.searchsorted(grid, self.seconds)
        obs = np.full((len(grid), 2), np.nan)
        obs[obs_rows] = self.xy
        cov = np.zeros((len(grid), 2, 2))
        cov[obs_rows] = self.obs_cov

        kp = kalman_filter(grid, obs, cov, self.params["beta"], self.params["sigma"])
        return kp, np.searchsorted(grid, req)

    def predict(self, times: Optional[TimesLike] = None) -> np.ndarray:
        """
        Smoothed (most likely) positions.

        Args:
            times: Timestamps to predict at; defaults to the observation times.
                   Times between fixes are predicted from the fitted process.

        Returns:
            (n, 2) array of projected x/y
        """
        kp, rows = self._pass_for(times)
        mean, _ = rts_smoother(kp)
        return mean[rows][:, [0, 2]]

    def predict_track(self, times: Optional[TimesLike] = None) -> pd.DataFrame:
        """Smoothed positions with standard errors as a DataFrame"""
        kp, rows = self._pass_for(times)
        mean, cov = rts_smoother(kp)
        out_times = self.times if times is None else as_time_index(times)
        return pd.DataFrame({
            "timestamp": out_times,
            "x": mean[rows, 0],
            "y": mean[rows, 2],
            "se_x": np.sqrt(cov[rows, 0, 0]),
            "se_y": np.sqrt(cov[rows, 2, 2]),
        })

    def simulate(self, times: Optional[TimesLike] = None,
                 rng: Optional[np.random.Generator] = None) -> np.ndarray:
        """
        One draw from the posterior distribution of positions.

        Args:
            times: Timestamps to simulate at; defaults to the observation times
            rng: Random generator. Independent generators give independent draws.

        Returns:
            (n, 2) array of projected x/y
        """
        if rng is None:
            rng = np.random.default_rng()
        kp, rows = self._pass_for(times)
        states = backward_sample(kp, rng)
        return states[rows][:, [0, 2]]

    def summary(self) -> Dict:
        """Parameter estimates and fit statistics"""
        aic = 2.0 * self.n_estimated - 2.0 * self.log_likelihood
        return {
            "n_fixes": len(self.times),
            "sigma": self.params["sigma"],
            "beta": self.params["beta"],
            "error_scale": self.params["error_scale"],
            "stationary_speed_sd": float(self.params["sigma"] / np.sqrt(2.0 * self.params["beta"])),
            "log_likelihood": self.log_likelihood,
            "aic": aic,
            "converged": self.converged,
            "log_param_se": self.param_se,
        }


def fit_ctcrw(observations: pd.DataFrame,
              error_scale: float = 1.0,
              estimate_error_scale: bool = False,
              initial_params: Optional[Dict[str, float]] = None,
              max_iter: int = 500) -> FittedCTCRW:
    """
    Fit a CTCRW model by maximum likelihood.

    Args:
        observations: Fixes with timestamp, x, y, smaj, smin, eor columns,
                      strictly increasing in time
        error_scale: Multiplier on the ellipse axes (fixed unless estimated)
        estimate_error_scale: Estimate the error scale alongside sigma and beta
        initial_params: Starting {"sigma", "beta"}
        max_iter: Optimiser iteration limit

    Returns:
        FittedCTCRW
    """
    if len(observations) < MIN_FIXES:
        raise ModelFitError(f"Need at least {MIN_FIXES} fixes to fit, got {len(observations)}")

    times = as_time_index(observations["timestamp"])
    if not times.is_monotonic_increasing or not times.is_unique:
        raise ModelFitError("Fix timestamps must be strictly increasing")

    origin = times[0] if isinstance(times, pd.DatetimeIndex) else 0.0
    seconds = _seconds(times, origin)
    xy = observations[["x", "y"]].to_numpy(dtype=float)
    base_cov = ellipse_covariance(observations["smaj"], observations["smin"], observations["eor"])

    start = {"sigma": 0.01, "beta": 1e-4}
    start.update(initial_params or {})
    theta0 = [np.log(start["sigma"]), np.log(start["beta"])]
    bounds = [LOG_SIGMA_BOUNDS, LOG_BETA_BOUNDS]
    if estimate_error_scale:
        theta0.append(np.log(error_scale))
        bounds.append(LOG_SCALE_BOUNDS)

    def unpack(theta):
        sigma, beta = np.exp(theta[0]), np.exp(theta[1])
        scale = np.exp(theta[2]) if estimate_error_scale else error_scale
        return sigma, beta, scale

    def neg_loglik(theta):
        sigma, beta, scale = unpack(theta)
        try:
            ll = kalman_filter(seconds, xy, base_cov * scale ** 2, beta, sigma).log_likelihood
        except np.linalg.LinAlgError:
            return 1e25
        return -ll if np.isfinite(ll) else 1e25

    logger.info(f"Fitting CTCRW to {len(xy)} fixes "
                f"({'estimating' if estimate_error_scale else 'fixed'} error scale)")
    result = minimize(neg_loglik, np.array(theta0), method="L-BFGS-B",
                      bounds=bounds, options={"maxiter": max_iter})

    if not np.isfinite(result.fun) or result.fun >= 1e25:
        raise ModelFitError(f"CTCRW optimisation failed: {result.message}")
    if not result.success:
        logger.warning(f"CTCRW optimiser did not report convergence: {result.message}")

    sigma, beta, scale = unpack(result.x)
    names = ["log_sigma", "log_beta", "log_error_scale"][:len(result.x)]
    try:
        se = np.sqrt(np.clip(np.diag(result.hess_inv.todense()), 0.0, None))
        param_se = {name: float(v) for name, v in zip(names, se)}
    except AttributeError:
        param_se = {}

    logger.info(f"  sigma={sigma:.4g}, beta={beta:.4g}, error_scale={scale:.3g}, "
                f"logLik={-result.fun:.2f}")

    return FittedCTCRW(
        times=times,
        xy=xy,
        obs_cov=base_cov,
        params={"sigma": float(sigma), "beta": float(beta), "error_scale": float(scale)},
        log_likelihood=-float(result.fun),
        n_estimated=len(result.x),
        converged=bool(result.success),
        param_se=param_se,
    )
