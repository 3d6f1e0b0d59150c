"""
Unit tests for the Unscented Kalman Filter.

Tests cover:
    - Construction, accessors and reset
    - Constant-velocity prediction without corrections
    - Equivalence with a linear Kalman filter
    - Covariance symmetry over predict/correct cycles
    - Cross covariance built from the sigma points of the last predict
    - Perfect observations and silent numerical failure
    - Angle-aware mean, residual and add functions
"""

import logging
import unittest

import numpy as np
import pytest
from numpy.testing import assert_allclose, assert_array_equal

from nonlinear_estimation import UnscentedKalmanFilter, MerweScaledSigmaPoints
from nonlinear_estimation.common import (angle_diff, make_add_fn, make_mean_fn,
                                         make_residual_fn, rk4_step)
from nonlinear_estimation.models import OmnidirectionalRobot


def constant_velocity(x, u):
    return np.array([x[1], 0.0])


def position_sensor(x, u):
    return np.array([x[0]])


def pendulum(x, u):
    return np.array([x[1], -9.81 * np.sin(x[0]) + u[0]])


def expected_correction(x, P, sigmas_state_side, points, u, y, h, R):
    """Reference correct step with an explicit state-side sigma point set."""
    sigmas = points.sigma_points(x, P)
    sigmas_h = np.array([h(s, u) for s in sigmas])

    y_hat = points.Wm @ sigmas_h
    dz = sigmas_h - y_hat
    Py = (dz.T * points.Wc) @ dz + R

    dx = sigmas_state_side - x
    Pxy = (dx.T * points.Wc) @ dz

    K = Pxy @ np.linalg.inv(Py)
    return x + K @ (y - y_hat), P - K @ Py @ K.T


class TestConstruction(unittest.TestCase):

    def setUp(self):
        self.ukf = UnscentedKalmanFilter(constant_velocity, position_sensor,
                                         [0.1, 0.2], [0.3], dt=0.05)

    def test_noise_models(self):
        assert_allclose(self.ukf.cont_Q, np.diag([0.01, 0.04]))
        assert_allclose(self.ukf.cont_R, [[0.09]])
        assert_allclose(self.ukf.disc_R, [[0.09 / 0.05]])

    def test_state_zeroed(self):
        assert_array_equal(self.ukf.x, np.zeros(2))
        assert_array_equal(self.ukf.P, np.zeros((2, 2)))
        assert_array_equal(self.ukf.sigmas_f, np.zeros((5, 2)))

    def test_dimensions(self):
        self.assertEqual(self.ukf.dim_x, 2)
        self.assertEqual(self.ukf.dim_z, 1)
        self.assertEqual(self.ukf.dim_u, 0)
        self.assertEqual(self.ukf.points.n, 2)

    def test_invalid_std_devs(self):
        with pytest.raises(ValueError):
            UnscentedKalmanFilter(constant_velocity, position_sensor, [], [0.1], dt=0.1)
        with pytest.raises(ValueError):
            UnscentedKalmanFilter(constant_velocity, position_sensor, [0.1, 0.1],
                                  [[0.1]], dt=0.1)

    def test_mismatched_sigma_points(self):
        with pytest.raises(ValueError):
            UnscentedKalmanFilter(constant_velocity, position_sensor, [0.1, 0.1], [0.1],
                                  dt=0.1, points=MerweScaledSigmaPoints(3))


class TestAccessors(unittest.TestCase):

    def setUp(self):
        self.ukf = UnscentedKalmanFilter(constant_velocity, position_sensor,
                                         [0.1, 0.1], [0.1], dt=0.1)

    def test_whole_state_assignment_copies(self):
        x0 = np.array([1.0, 2.0])
        self.ukf.x = x0
        x0[0] = 5.0

        assert_array_equal(self.ukf.x, [1.0, 2.0])

    def test_list_assignment_is_converted(self):
        self.ukf.x = [1, 2]
        self.ukf.P = [[1, 0], [0, 1]]

        self.assertEqual(self.ukf.x.dtype, np.float64)
        self.assertEqual(self.ukf.P.dtype, np.float64)

    def test_single_elements(self):
        self.ukf.P = np.eye(2)
        self.ukf.x[1] = 3.0
        self.ukf.P[0, 1] = 0.25

        self.assertEqual(self.ukf.x[1], 3.0)
        self.assertEqual(self.ukf.P[0, 1], 0.25)

    def test_wrong_shape_rejected(self):
        with pytest.raises(ValueError):
            self.ukf.P = np.eye(3)


class TestConstantVelocityPrediction(unittest.TestCase):
    """Prediction only: position = velocity * elapsed time."""

    def test_ten_predictions(self):
        dt = 0.1
        ukf = UnscentedKalmanFilter(constant_velocity, position_sensor,
                                    [0.1, 0.1], [0.1], dt=dt)
        ukf.x = [0.0, 1.0]
        ukf.P = np.eye(2) * 1e-9

        p00 = [ukf.P[0, 0]]
        for _ in range(10):
            ukf.predict(u=None, dt=dt)
            p00.append(ukf.P[0, 0])

        self.assertAlmostEqual(ukf.x[0], 1.0, places=6)
        self.assertAlmostEqual(ukf.x[1], 1.0, places=6)
        self.assertTrue(np.all(np.diff(p00) > 0))

    def test_models_may_return_lists(self):
        ukf = UnscentedKalmanFilter(lambda x, u: [x[1], 0.0], lambda x, u: [x[0]],
                                    [0.1, 0.1], [0.1], dt=0.1)
        ukf.x = [0.0, 1.0]
        ukf.P = np.eye(2) * 1e-9

        ukf.predict(None, 0.1)
        ukf.correct(None, [0.1])

        assert_allclose(ukf.x, [0.1, 1.0], atol=1e-6)

    def test_predict_refreshes_disc_r(self):
        ukf = UnscentedKalmanFilter(constant_velocity, position_sensor,
                                    [0.1, 0.1], [0.1], dt=0.1)
        ukf.P = np.eye(2)

        ukf.predict(None, 0.02)

        assert_allclose(ukf.disc_R, [[0.01 / 0.02]])
        assert_allclose(ukf.disc_A, [[1.0, 0.02], [0.0, 1.0]], atol=1e-9)


class TestLinearKalmanFilterEquivalence(unittest.TestCase):
    """
    Diagonal linear dynamics without process noise.

    Here the sigma points propagated by predict coincide with those
    regenerated in correct, so the filter reduces to the linear Kalman
    filter with F = the RK4 transition matrix.
    """

    def setUp(self):
        self.a = np.array([0.5, 1.5])
        self.H = np.array([[1.0, 2.0], [0.5, -1.0]])
        self.dt = 0.05
        self.meas_std = np.array([0.3, 0.2])

        self.f = lambda x, u: -self.a * x
        self.h = lambda x, u: self.H @ x

        self.x0 = np.array([1.0, -2.0])
        self.P0 = np.diag([0.5, 0.2])

    def test_matches_linear_kalman_filter(self):
        ukf = UnscentedKalmanFilter(self.f, self.h, [0.0, 0.0], self.meas_std, dt=self.dt)
        ukf.x = self.x0
        ukf.P = self.P0

        Adt = -self.a * self.dt
        F = np.diag(1 + Adt + Adt**2 / 2 + Adt**3 / 6 + Adt**4 / 24)
        R = np.diag(self.meas_std ** 2) / self.dt

        x = self.x0.copy()
        P = self.P0.copy()

        rng = np.random.default_rng(3)
        for _ in range(8):
            y = rng.normal(size=2)

            x = F @ x
            P = F @ P @ F.T
            ukf.predict(None, self.dt)

            assert_allclose(ukf.x, x, rtol=1e-6, atol=1e-8)
            assert_allclose(ukf.P, P, rtol=1e-5, atol=1e-8)

            S = self.H @ P @ self.H.T + R
            K = P @ self.H.T @ np.linalg.inv(S)
            x = x + K @ (y - self.H @ x)
            P = P - K @ S @ K.T
            ukf.correct(None, y)

            assert_allclose(ukf.x, x, rtol=1e-5, atol=1e-8)
            assert_allclose(ukf.P, P, rtol=1e-5, atol=1e-8)


class TestCovarianceSymmetry(unittest.TestCase):

    def test_symmetric_after_every_step(self):
        dt = 0.02
        ukf = UnscentedKalmanFilter(pendulum, position_sensor, [0.05, 0.2], [0.05],
                                    dt=dt, dim_u=1)
        ukf.x = [0.8, 0.0]
        ukf.P = np.diag([0.1, 0.2])

        truth = np.array([1.0, 0.0])
        rng = np.random.default_rng(0)
        for _ in range(50):
            u = np.array([0.1])
            truth = rk4_step(pendulum, truth, u, dt)

            ukf.predict(u, dt)
            assert_allclose(ukf.P, ukf.P.T, atol=1e-12)

            y = position_sensor(truth, u) + rng.normal(0.0, 0.05, size=1)
            ukf.correct(u, y)
            assert_allclose(ukf.P, ukf.P.T, atol=1e-12)

        self.assertTrue(np.all(np.isfinite(ukf.x)))


class TestReset(unittest.TestCase):

    def make_filter(self):
        return UnscentedKalmanFilter(pendulum, position_sensor, [0.05, 0.2], [0.05],
                                     dt=0.02, dim_u=1)

    def run_sequence(self, ukf):
        ukf.x = [0.5, -0.2]
        ukf.P = np.diag([0.1, 0.3])

        history = []
        for k in range(10):
            u = np.array([0.05 * k])
            ukf.predict(u, 0.02)
            ukf.correct(u, np.array([0.5 - 0.01 * k]))
            history.append((ukf.x.copy(), ukf.P.copy()))
        return history

    def test_reset_clears_estimate_only(self):
        ukf = self.make_filter()
        self.run_sequence(ukf)
        cont_Q = ukf.cont_Q.copy()
        cont_R = ukf.cont_R.copy()

        ukf.reset()

        assert_array_equal(ukf.x, np.zeros(2))
        assert_array_equal(ukf.P, np.zeros((2, 2)))
        assert_array_equal(ukf.sigmas_f, np.zeros((5, 2)))
        assert_array_equal(ukf.cont_Q, cont_Q)
        assert_array_equal(ukf.cont_R, cont_R)

    def test_reset_matches_fresh_filter_bit_for_bit(self):
        used = self.make_filter()
        used.x = [2.0, 1.0]
        used.P = np.eye(2)
        for _ in range(5):
            used.predict(np.array([1.0]), 0.05)
            used.correct(np.array([1.0]), np.array([1.5]))
        used.reset()

        fresh = self.make_filter()

        for (x_a, P_a), (x_b, P_b) in zip(self.run_sequence(fresh), self.run_sequence(used)):
            assert_array_equal(x_a, x_b)
            assert_array_equal(P_a, P_b)


class TestCrossCovariancePairing(unittest.TestCase):
    """
    Regression: correct pairs the sigma points propagated by the last
    predict with sigma points regenerated from the predicted estimate.
    """

    def setUp(self):
        self.dt = 0.1
        self.u = np.array([0.0])
        self.ukf = UnscentedKalmanFilter(pendulum, position_sensor, [0.3, 0.5], [0.1],
                                         dt=self.dt, dim_u=1)
        self.ukf.x = [0.5, 0.0]
        self.ukf.P = np.diag([0.1, 0.1])

    def test_uses_sigma_points_from_last_predict(self):
        ukf = self.ukf
        ukf.predict(self.u, self.dt)

        x = ukf.x.copy()
        P = ukf.P.copy()
        y = position_sensor(x, self.u) + 0.5

        x_expected, P_expected = expected_correction(
            x, P, ukf.sigmas_f.copy(), ukf.points, self.u, y, position_sensor, ukf.disc_R)

        # State side regenerated from the predicted estimate instead
        x_fresh, P_fresh = expected_correction(
            x, P, ukf.points.sigma_points(x, P), ukf.points, self.u, y,
            position_sensor, ukf.disc_R)

        ukf.correct(self.u, y)

        assert_allclose(ukf.x, x_expected, rtol=1e-9, atol=1e-12)
        assert_allclose(ukf.P, P_expected, rtol=1e-9, atol=1e-12)
        self.assertFalse(np.allclose(ukf.x, x_fresh, rtol=1e-6, atol=1e-9))
        self.assertFalse(np.allclose(ukf.P, P_fresh, rtol=1e-6, atol=1e-9))

    def test_correct_without_predict_uses_zero_sigma_points(self):
        ukf = self.ukf
        x = ukf.x.copy()
        P = ukf.P.copy()
        y = np.array([0.7])

        x_expected, P_expected = expected_correction(
            x, P, np.zeros((5, 2)), ukf.points, self.u, y, position_sensor, ukf.disc_R)

        ukf.correct(self.u, y)

        assert_allclose(ukf.x, x_expected, rtol=1e-9, atol=1e-12)
        assert_allclose(ukf.P, P_expected, rtol=1e-9, atol=1e-12)

    def test_generic_correct_with_other_sensor(self):
        ukf = self.ukf
        ukf.predict(self.u, self.dt)

        h2 = lambda x, u: np.array([np.sin(x[0]), x[1]])
        R2 = np.diag([0.01, 0.04])
        y = np.array([0.4, -0.3])

        x_expected, P_expected = expected_correction(
            ukf.x.copy(), ukf.P.copy(), ukf.sigmas_f.copy(), ukf.points, self.u, y, h2, R2)

        ukf.correct(self.u, y, h2, R2)

        assert_allclose(ukf.x, x_expected, rtol=1e-9, atol=1e-12)
        assert_allclose(ukf.P, P_expected, rtol=1e-9, atol=1e-12)
        self.assertEqual(ukf.innovation.shape, (2,))
        self.assertEqual(ukf.K.shape, (2, 2))
        assert_allclose(ukf.S, ukf.S.T, atol=1e-12)

    def test_other_sensor_requires_noise(self):
        ukf = self.ukf
        ukf.predict(self.u, self.dt)
        x = ukf.x.copy()
        P = ukf.P.copy()

        h2 = lambda x, u: np.array([np.sin(x[0]), x[1]])
        with pytest.raises(ValueError):
            ukf.correct(self.u, np.array([0.1, 1.0]), h2)

        assert_array_equal(ukf.x, x)
        assert_array_equal(ukf.P, P)

    def test_noise_must_match_measurement_length(self):
        ukf = self.ukf
        ukf.predict(self.u, self.dt)

        h2 = lambda x, u: np.array([np.sin(x[0]), x[1]])
        with pytest.raises(ValueError):
            ukf.correct(self.u, np.array([0.1, 1.0]), h2, np.eye(1) * 0.01)
        with pytest.raises(ValueError):
            ukf.correct(self.u, np.array([0.1, 1.0]), R=ukf.disc_R)
        with pytest.raises(ValueError):
            ukf.correct(self.u, np.array([0.1, 1.0]))

    def test_stored_sensor_accepts_noise_override(self):
        ukf = self.ukf
        ukf.predict(self.u, self.dt)
        R = np.array([[0.5]])
        y = np.array([0.7])

        x_expected, P_expected = expected_correction(
            ukf.x.copy(), ukf.P.copy(), ukf.sigmas_f.copy(), ukf.points, self.u, y,
            position_sensor, R)

        ukf.correct(self.u, y, R=R)

        assert_allclose(ukf.x, x_expected, rtol=1e-9, atol=1e-12)
        assert_allclose(ukf.S, ukf.S.T, atol=1e-12)
        assert_allclose(ukf.P, P_expected, rtol=1e-9, atol=1e-12)

    def test_explicit_measurement_functions_win_over_stored(self):
        ukf = self.ukf
        ukf.set_residual_fn(residual_z_fn=lambda a, b: np.full(1, 100.0))
        ukf.predict(self.u, self.dt)
        y = np.array([0.7])

        x_expected, _ = expected_correction(
            ukf.x.copy(), ukf.P.copy(), ukf.sigmas_f.copy(), ukf.points, self.u, y,
            position_sensor, ukf.disc_R)

        ukf.correct(self.u, y, residual_z_fn=lambda a, b: a - b)

        assert_allclose(ukf.x, x_expected, rtol=1e-9, atol=1e-12)
        self.assertLess(abs(ukf.innovation[0]), 100.0)


class TestPerfectObservation(unittest.TestCase):

    def test_estimate_unchanged_and_variance_not_increased(self):
        ukf = UnscentedKalmanFilter(pendulum, position_sensor, [0.1, 0.1], [0.1],
                                    dt=0.05, dim_u=1)
        ukf.x = [0.5, 0.2]
        ukf.P = np.diag([0.05, 0.1])
        u = np.array([0.0])

        for _ in range(3):
            ukf.predict(u, 0.05)

            x_before = ukf.x.copy()
            P_before = ukf.P.copy()
            ukf.correct(u, position_sensor(x_before, u), position_sensor, np.eye(1) * 1e-12)

            assert_allclose(ukf.x, x_before, atol=1e-8)
            self.assertTrue(np.all(np.diag(ukf.P) <= np.diag(P_before) + 1e-15))


class TestSilentNumericalFailure(unittest.TestCase):

    def test_singular_innovation_covariance_propagates_nan(self):
        ukf = UnscentedKalmanFilter(constant_velocity, position_sensor, [0.1, 0.1], [0.1],
                                    dt=0.1)
        ukf.x = [0.0, 1.0]
        ukf.P = np.eye(2)
        ukf.predict(None, 0.1)

        blind = lambda x, u: np.zeros(1)
        with self.assertLogs('nonlinear_estimation.filters.unscented', level=logging.WARNING):
            ukf.correct(None, np.array([1.0]), blind, np.zeros((1, 1)))

        self.assertTrue(np.all(np.isnan(ukf.x)))
        self.assertTrue(np.all(np.isnan(ukf.P)))
        self.assertEqual(ukf.condition_number, np.inf)

    def test_well_conditioned_records_condition_number(self):
        ukf = UnscentedKalmanFilter(constant_velocity, position_sensor, [0.1, 0.1], [0.1],
                                    dt=0.1)
        ukf.P = np.eye(2)
        ukf.predict(None, 0.1)
        x_prior = ukf.x.copy()
        ukf.correct(None, np.array([0.2]))

        assert_allclose(ukf.condition_number, 1.0)
        assert_allclose(ukf.innovation, [0.2 - x_prior[0]], atol=1e-8)
        self.assertLess(ukf.P[0, 0], 1.0)


class TestAngleHandling(unittest.TestCase):
    """Heading estimate near the +/-pi wrap."""

    def make_filter(self):
        heading_rate = lambda x, u: np.array([u[0]])
        heading_sensor = lambda x, u: np.array([x[0]])
        ukf = UnscentedKalmanFilter(heading_rate, heading_sensor, [0.05], [0.05],
                                    dt=0.1, dim_u=1)
        ukf.x = [np.pi - 0.01]
        ukf.P = [[0.01]]
        return ukf

    def test_wrapped_measurement(self):
        ukf = self.make_filter()
        ukf.set_mean_fn(x_mean_fn=make_mean_fn([0]), z_mean_fn=make_mean_fn([0]))
        ukf.set_residual_fn(residual_x_fn=make_residual_fn([0]),
                            residual_z_fn=make_residual_fn([0]))
        ukf.set_add_fn(make_add_fn([0]))

        u = np.array([0.0])
        ukf.predict(u, 0.1)
        ukf.correct(u, np.array([-np.pi + 0.01]))

        self.assertLess(abs(ukf.innovation[0]), 0.05)
        self.assertLess(abs(angle_diff(ukf.x[0], np.pi)), 0.02)
        self.assertLessEqual(abs(ukf.x[0]), np.pi)

    def test_plain_arithmetic_does_not_wrap(self):
        ukf = self.make_filter()

        u = np.array([0.0])
        ukf.predict(u, 0.1)
        ukf.correct(u, np.array([-np.pi + 0.01]))

        self.assertGreater(abs(ukf.innovation[0]), np.pi)


class TestOmnidirectionalTracking(unittest.TestCase):
    """End-to-end run on the omnidirectional robot model."""

    def test_tracks_velocity_and_heading(self):
        robot = OmnidirectionalRobot()
        dt = 0.01
        n_steps = 300

        ukf = UnscentedKalmanFilter(robot.dynamics, robot.measurement,
                                    robot.state_std_devs, robot.measurement_std_devs,
                                    dt=dt, dim_u=robot.INPUT_DIM)
        ukf.set_mean_fn(x_mean_fn=make_mean_fn(robot.STATE_ANGLE_INDICES),
                        z_mean_fn=make_mean_fn(robot.MEASUREMENT_ANGLE_INDICES))
        ukf.set_residual_fn(residual_x_fn=make_residual_fn(robot.STATE_ANGLE_INDICES),
                            residual_z_fn=make_residual_fn(robot.MEASUREMENT_ANGLE_INDICES))
        ukf.set_add_fn(make_add_fn(robot.STATE_ANGLE_INDICES))

        truth = np.array([0.0, 0.0, 0.3, 0.2, 0.0, 0.5])
        ukf.x = truth
        ukf.P = np.diag([0.01, 0.01, 0.01, 0.05, 0.05, 0.05])

        rng = np.random.default_rng(7)
        meas_std = np.sqrt(np.diag(ukf.disc_R))
        errors = []
        for k in range(n_steps):
            u = np.array([0.5 * np.cos(0.02 * k), 0.2])
            truth = rk4_step(robot.dynamics, truth, u, dt)
            y = robot.measurement(truth, u) + rng.normal(0.0, meas_std)

            ukf.predict(u, dt)
            ukf.correct(u, y)
            errors.append(ukf.x - truth)

        errors = np.array(errors)
        errors[:, 2] = angle_diff(errors[:, 2], 0.0)
        rms = np.sqrt(np.mean(errors[n_steps // 2:] ** 2, axis=0))

        self.assertTrue(np.all(np.isfinite(errors)))
        self.assertLess(rms[2], 0.1)
        self.assertLess(rms[3], 0.2)
        self.assertLess(rms[4], 0.2)
        self.assertLess(rms[5], 0.3)


if __name__ == "__main__":
    unittest.main()
