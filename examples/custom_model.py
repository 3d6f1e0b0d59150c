"""
Custom Model Example

Shows how to plug a user-defined continuous-time model into the UKF.
The model is a differential drive robot; only f(x, u) and h(x, u) are
needed, no Jacobians.
"""

import os
import sys
from pathlib import Path

import numpy as np
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from nonlinear_estimation import UnscentedKalmanFilter, MerweScaledSigmaPoints
from nonlinear_estimation.common import rk4_step, make_residual_fn, make_add_fn
from nonlinear_estimation.metrics import rmse
from nonlinear_estimation.visualization import plot_uncertainty


# ============================================================================
# CONFIGURATION
# ============================================================================
N_POINTS = 500
DT = 0.01
SEED = 1
RESULTS_PATH = Path(__file__).parent.parent / 'results' / 'custom_model'
# ============================================================================


class DifferentialDriveRobot:
    """
    Simple differential drive robot.

    State: x = [x, y, theta, v, omega]
    Control: u = [a, alpha] (linear and angular acceleration)
    Measurement: y = [v, omega, theta]
    """

    STATE_DIM = 5
    INPUT_DIM = 2

    def dynamics(self, x, u):
        """Continuous dynamics dx/dt = f(x, u)."""
        _, _, theta, v, omega = x
        a, alpha = u

        return np.array([
            v * np.cos(theta),
            v * np.sin(theta),
            omega,
            a,
            alpha,
        ])

    def measurement(self, x, u):
        """Measurement: y = h(x, u) = [v, omega, theta]"""
        return np.array([x[3], x[4], x[2]])


def generate_circle_trajectory(robot, N, dt, meas_std, rng):
    """Accelerate forward while turning."""
    time = np.arange(N) * dt
    controls = np.tile([0.5, 0.3], (N, 1))

    ground_truth = np.zeros((N, 5))
    ground_truth[0] = [0.0, 0.0, np.pi/2, 0.0, 0.0]
    for k in range(N - 1):
        ground_truth[k + 1] = rk4_step(robot.dynamics, ground_truth[k], controls[k], dt)

    measurements = np.array([robot.measurement(x, u) for x, u in zip(ground_truth, controls)])
    measurements += rng.normal(0.0, meas_std, size=measurements.shape)

    return time, controls, measurements, ground_truth


def run_custom_model_example():
    """Run the UKF with a custom differential drive model."""

    print("\n" + "="*60)
    print("Custom Model Example - Differential Drive Robot")
    print("="*60 + "\n")

    rng = np.random.default_rng(SEED)
    robot = DifferentialDriveRobot()

    state_std_devs = [0.005, 0.005, 0.01, 0.1, 0.1]
    measurement_std_devs = [0.01, 0.01, 0.005]

    # Wider sigma point spread than the default
    points = MerweScaledSigmaPoints(robot.STATE_DIM, alpha=0.5, beta=2.0, kappa=0.0)
    ukf = UnscentedKalmanFilter(robot.dynamics, robot.measurement,
                                state_std_devs, measurement_std_devs,
                                dt=DT, dim_u=robot.INPUT_DIM, points=points)
    ukf.set_residual_fn(residual_x_fn=make_residual_fn([2]),
                        residual_z_fn=make_residual_fn([2]))
    ukf.set_add_fn(make_add_fn([2]))

    print("Generating circular trajectory...")
    meas_std = np.sqrt(np.diag(ukf.disc_R))
    time, controls, measurements, ground_truth = generate_circle_trajectory(
        robot, N_POINTS, DT, meas_std, rng)
    N = len(time)

    ukf.x = ground_truth[0] + np.array([0.1, 0.1, 0.05, 0.0, 0.0])
    ukf.P = np.diag([0.2, 0.2, 0.1, 0.1, 0.05])

    estimates = np.zeros((N, 5))
    covariances = np.zeros((N, 5, 5))
    estimates[0] = ukf.x
    covariances[0] = ukf.P

    print("Running UKF with custom model...")
    for k in range(N - 1):
        ukf.predict(controls[k], DT)
        ukf.correct(controls[k], measurements[k + 1])

        estimates[k + 1] = ukf.x
        covariances[k + 1] = ukf.P

        if (k + 1) % 100 == 0:
            print(f"  Processed {k+1}/{N-1} steps...")

    print("UKF complete!\n")

    pos_rmse = rmse(estimates[:, :2], ground_truth[:, :2])
    print(f"Position RMSE: x={pos_rmse[0]:.6f} m, y={pos_rmse[1]:.6f} m\n")

    print("Generating plot...")
    RESULTS_PATH.mkdir(parents=True, exist_ok=True)
    save_path = RESULTS_PATH / 'custom_model_trajectory.png'
    plot_uncertainty(estimates, covariances, ground_truth=ground_truth,
                     title="Custom Model: Differential Drive Robot",
                     save_path=save_path, show=False)
    print(f"  Saved: {save_path}")

    print("\n" + "="*60)
    print("Custom Model Example Complete!")
    print("="*60)


if __name__ == "__main__":
    run_custom_model_example()
