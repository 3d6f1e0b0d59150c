"""
UKF Example for Omnidirectional Robot

Tracks a simulated omnidirectional robot driven by IMU accelerations.
Encoders and the heading sensor are fused every cycle; a slower absolute
position fix is fused through the generic correct with its own
measurement function and noise.
"""

import csv
import logging
import os
import sys
from pathlib import Path

import numpy as np
import matplotlib.pyplot as plt
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from nonlinear_estimation import UnscentedKalmanFilter
from nonlinear_estimation.common import (rk4_step, discretize_r, make_cov_matrix,
                                         make_mean_fn, make_residual_fn, make_add_fn,
                                         normalize_angle)
from nonlinear_estimation.models import OmnidirectionalRobot
from nonlinear_estimation.metrics import compute_all_metrics, print_metrics
from nonlinear_estimation.visualization import (plot_uncertainty, plot_state_bounds,
                                                plot_consistency)


# ============================================================================
# CONFIGURATION
# ============================================================================
N_POINTS = 2000  # Number of control cycles
DT = 0.01  # Time step in seconds
SEED = 0

# Continuous-time noise standard deviations
STATE_STD_DEVS = [0.01, 0.01, 0.01, 0.2, 0.2, 0.1]
MEASUREMENT_STD_DEVS = [0.02, 0.02, 0.05, 0.01]

# Absolute position fix (e.g. overhead camera)
POSITION_FIX_EVERY = 20  # cycles
POSITION_FIX_STD = [0.02, 0.02]  # m, discrete

RESULTS_PATH = Path(__file__).parent.parent / 'results' / 'ukf'
SHOW_PLOTS = False
# ============================================================================


def position_fix(x, u):
    """Absolute position measurement h(x, u) = [x, y]."""
    return x[:2]


def generate_synthetic_data(robot, N, dt, rng):
    """
    Simulate a square-like pattern with a slow spin.

    Returns
    -------
    dict
        time (N,), controls (N, 2), measurements (N, 4), ground_truth (N, 6)
    """
    time = np.arange(N) * dt

    controls = np.zeros((N, 2))
    segment_length = N // 4
    for k in range(N):
        segment = min(k // segment_length, 3)
        controls[k] = [[0.5, 0.0], [0.0, 0.5], [-0.5, 0.0], [0.0, -0.5]][segment]

    ground_truth = np.zeros((N, 6))
    ground_truth[0] = [0.0, 0.0, 0.0, 0.0, 0.0, 0.2]
    for k in range(N - 1):
        ground_truth[k + 1] = rk4_step(robot.dynamics, ground_truth[k], controls[k], dt)
    ground_truth[:, 2] = normalize_angle(ground_truth[:, 2])

    # Sampled sensor noise corresponds to the continuous model at rate 1/dt
    R = discretize_r(make_cov_matrix(robot.measurement_std_devs), dt)
    measurements = np.array([robot.measurement(x, u) for x, u in zip(ground_truth, controls)])
    measurements += rng.multivariate_normal(np.zeros(robot.MEASUREMENT_DIM), R, size=N)
    measurements[:, 3] = normalize_angle(measurements[:, 3])

    return {
        'time': time,
        'controls': controls,
        'measurements': measurements,
        'ground_truth': ground_truth,
    }


def run_ukf_example():
    """Run UKF example with synthetic data."""
    logging.basicConfig(level=logging.INFO, format='%(levelname)s %(name)s: %(message)s')

    print("\n" + "="*60)
    print("Unscented Kalman Filter Example - Omnidirectional Robot")
    print("="*60 + "\n")

    rng = np.random.default_rng(SEED)
    robot = OmnidirectionalRobot(STATE_STD_DEVS, MEASUREMENT_STD_DEVS)

    print("Generating synthetic data...")
    data = generate_synthetic_data(robot, N_POINTS, DT, rng)
    time = data['time']
    controls = data['controls']
    measurements = data['measurements']
    ground_truth = data['ground_truth']
    N = len(time)

    print("Initializing Unscented Kalman Filter...")
    ukf = UnscentedKalmanFilter(robot.dynamics, robot.measurement,
                                robot.state_std_devs, robot.measurement_std_devs,
                                dt=DT, dim_u=robot.INPUT_DIM)

    # Heading wraps at +/-pi
    ukf.set_mean_fn(x_mean_fn=make_mean_fn(robot.STATE_ANGLE_INDICES),
                    z_mean_fn=make_mean_fn(robot.MEASUREMENT_ANGLE_INDICES))
    ukf.set_residual_fn(residual_x_fn=make_residual_fn(robot.STATE_ANGLE_INDICES),
                        residual_z_fn=make_residual_fn(robot.MEASUREMENT_ANGLE_INDICES))
    ukf.set_add_fn(make_add_fn(robot.STATE_ANGLE_INDICES))

    ukf.x = ground_truth[0] + np.array([0.1, -0.1, 0.05, 0.0, 0.0, 0.0])
    ukf.P = np.diag([0.05, 0.05, 0.01, 0.01, 0.01, 0.01])

    R_fix = make_cov_matrix(POSITION_FIX_STD)

    estimates = np.zeros((N, 6))
    covariances = np.zeros((N, 6, 6))
    innovations = np.zeros((N - 1, robot.MEASUREMENT_DIM))
    innovation_covs = np.zeros((N - 1, robot.MEASUREMENT_DIM, robot.MEASUREMENT_DIM))
    estimates[0] = ukf.x
    covariances[0] = ukf.P

    print("Running UKF...")
    for k in range(N - 1):
        u = controls[k]
        ukf.predict(u, DT)
        ukf.correct(u, measurements[k + 1])

        innovations[k] = ukf.innovation
        innovation_covs[k] = ukf.S

        if (k + 1) % POSITION_FIX_EVERY == 0:
            y_fix = ground_truth[k + 1, :2] + rng.normal(0.0, POSITION_FIX_STD)
            ukf.correct(u, y_fix, position_fix, R_fix)

        estimates[k + 1] = ukf.x
        covariances[k + 1] = ukf.P

        if (k + 1) % 500 == 0:
            print(f"  Processed {k+1}/{N-1} steps...")

    print("UKF complete!\n")

    errors = estimates - ground_truth
    errors[:, 2] = normalize_angle(errors[:, 2])
    metrics = compute_all_metrics(errors, np.zeros_like(errors), covariances,
                                  innovations, innovation_covs)
    print_metrics(metrics, filter_name="UKF")

    print("\nGenerating plots...")
    results_dir = RESULTS_PATH
    results_dir.mkdir(parents=True, exist_ok=True)

    plot_uncertainty(estimates, covariances, ground_truth=ground_truth,
                     title="UKF Trajectory with 3σ Ellipses",
                     save_path=results_dir / 'ukf_trajectory.png', show=SHOW_PLOTS)

    state_labels = ['X [m]', 'Y [m]', '$\\phi$ [rad]', '$v_x$ [m/s]', '$v_y$ [m/s]',
                    '$\\omega$ [rad/s]']
    plot_state_bounds(time, estimates, covariances, ground_truth=ground_truth,
                      state_names=state_labels, title="UKF State Estimates",
                      save_path=results_dir / 'ukf_states.png', show=SHOW_PLOTS)

    plot_consistency(metrics['nees'], dof=robot.STATE_DIM, kind='NEES',
                     save_path=results_dir / 'ukf_nees.png', show=SHOW_PLOTS)
    plot_consistency(metrics['nis'], dof=robot.MEASUREMENT_DIM, kind='NIS',
                     save_path=results_dir / 'ukf_nis.png', show=SHOW_PLOTS)
    plt.close('all')

    metrics_path = results_dir / 'ukf_metrics.csv'
    names = ['X', 'Y', 'Phi', 'Vx', 'Vy', 'Omega']
    with open(metrics_path, 'w', newline='') as f:
        writer = csv.writer(f)
        writer.writerow(['Metric', 'Value'])
        writer.writerow(['RMSE Total', f"{metrics['rmse_total']:.6f}"])
        for name, value in zip(names, metrics['rmse']):
            writer.writerow([f'RMSE {name}', f"{value:.6f}"])
        writer.writerow(['MAE Total', f"{metrics['mae_total']:.6f}"])
        for name, value in zip(names, metrics['mae']):
            writer.writerow([f'MAE {name}', f"{value:.6f}"])
        writer.writerow(['NEES Mean', f"{metrics['nees_mean']:.6f}"])
        writer.writerow(['NEES In Bounds', f"{metrics['nees_in_bounds']:.4f}"])
        writer.writerow(['NIS Mean', f"{metrics['nis_mean']:.6f}"])
        writer.writerow(['NIS In Bounds', f"{metrics['nis_in_bounds']:.4f}"])
    print(f"  Saved: {metrics_path}")

    print("\n" + "="*60)
    print("UKF Example Complete!")
    print(f"Results saved to '{results_dir}' directory")
    print("="*60)


if __name__ == "__main__":
    run_ukf_example()
